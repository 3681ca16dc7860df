"""CLI integration tests for passport-cleaner."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import Workbook, load_workbook
from rich.console import Console
from typer.testing import CliRunner

import passport_cleaner.cli as cli_mod
from passport_cleaner import __version__
from passport_cleaner.cli import HeaderMap, app

runner = CliRunner()

HEADER = [
    "Name",
    "Email",
    "Program",
    "CPNW: Tdap - Status",
    "Patient Safety - Status",
    "Patient Safety - Completed",
]
ROWS = [
    ["Ada Lovelace", "ada@example.edu", "Nursing", "Approved", "Complete", datetime(2024, 1, 5)],
    ["Grace Hopper", "grace@example.edu", "Radiology", None, None, None],
]


def _write_export(
    tmp_path: Path,
    *,
    name: str = "export.xlsx",
    sheet: str = "Sheet 1",
    header: list[str] | None = None,
    rows: list[list[object]] | None = None,
) -> Path:
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    ws.title = sheet
    ws.append(header if header is not None else HEADER)
    for row in rows if rows is not None else ROWS:
        ws.append(row)
    path = tmp_path / name
    wb.save(path)
    return path


def _read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_clean_writes_workbook_and_artifacts(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["clean", "--input", str(export), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0, result.output
    report = out_dir / "CPNW_CleanExport.xlsx"
    assert report.exists()
    ws = load_workbook(report)["Cleaned"]
    assert [c.value for c in ws[1]] == ["Name", "Email", "Program", "Tdap", "eLearning Modules"]
    assert ws["A2"].value == "Ada Lovelace"
    assert ws["D2"].value == "Status: Approved"
    modules = ws["E2"].value.split("\n")
    assert len(modules) == 10
    assert "Patient Safety - Status: Complete - Completed: 01/05/2024" in modules
    assert ws.max_row == 3

    qc = _read_json(out_dir / "qc_report.json")
    assert qc["rows_out"] == 2
    assert qc["missing_columns"] == []
    assert "Compliance" in qc["missing_modules"]

    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "success"
    assert manifest["sheet_name"] == "Sheet 1"
    assert manifest["output_path"] == str(report.resolve())
    assert len(manifest["sha256"]) == 64

    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "rows_out: 2" in summary
    assert "module_7: Patient Safety (1/2 rows with data)" in summary
    assert "command: pclean clean" in summary


def test_clean_appends_xlsx_to_output_name(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["clean", "-i", str(export), "-o", str(out_dir), "--output", "roster", "-q"],
    )

    assert result.exit_code == 0, result.output
    assert (out_dir / "roster.xlsx").exists()


def test_clean_reads_named_sheet_and_csv(tmp_path: Path) -> None:
    export = _write_export(tmp_path, sheet="Passport")
    out_dir = tmp_path / "out"
    result = runner.invoke(
        app, ["clean", "-i", str(export), "-o", str(out_dir), "--sheet", "Passport", "-q"]
    )
    assert result.exit_code == 0, result.output

    csv_path = tmp_path / "export.csv"
    csv_path.write_text(
        "Name,Email,Program,Compliance - Completed\nAda,ada@example.edu,Nursing,2024-03-01\n",
        encoding="utf-8",
    )
    csv_out = tmp_path / "csv_out"
    result = runner.invoke(app, ["clean", "-i", str(csv_path), "-o", str(csv_out), "-q"])
    assert result.exit_code == 0, result.output
    ws = load_workbook(csv_out / "CPNW_CleanExport.xlsx")["Cleaned"]
    assert "Compliance - Completed: 03/01/2024" in ws["D2"].value.split("\n")


def test_clean_missing_sheet_fails_with_artifacts(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["clean", "-i", str(export), "-o", str(out_dir), "--sheet", "Roster", "-q"]
    )

    assert result.exit_code == 2
    assert not (out_dir / "CPNW_CleanExport.xlsx").exists()
    qc = _read_json(out_dir / "qc_report.json")
    assert qc["warnings"] == ['Sheet "Roster" not found in the workbook.']
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert manifest["output_path"] == ""


def test_clean_header_only_sheet_fails(tmp_path: Path) -> None:
    export = _write_export(tmp_path, rows=[])
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["clean", "-i", str(export), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert "The sheet is empty or could not be read." in result.output
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["error_message"] == "The sheet is empty or could not be read."


def test_clean_map_renames_headers(tmp_path: Path) -> None:
    header = ["Full Name", "Email", "Program", "Compliance - Status"]
    export = _write_export(
        tmp_path, header=header, rows=[["Ada", "ada@example.edu", "Nursing", "Complete"]]
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["clean", "-i", str(export), "-o", str(out_dir), "--map", "Name=Full  Name", "-q"],
    )

    assert result.exit_code == 0, result.output
    ws = load_workbook(out_dir / "CPNW_CleanExport.xlsx")["Cleaned"]
    assert ws["A1"].value == "Name"
    assert ws["A2"].value == "Ada"
    assert [c.value for c in ws[1]].count("Full Name") == 0


def test_clean_profile_map_and_duplicate_target_fails(tmp_path: Path) -> None:
    header = ["Name", "Full Name", "Email"]
    export = _write_export(tmp_path, header=header, rows=[["Ada", "Ada L", "a@x.edu"]])
    profile = tmp_path / "profile.txt"
    profile.write_text("# header renames\nName=Full Name\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["clean", "-i", str(export), "-o", str(out_dir), "--profile", str(profile), "-q"],
    )

    assert result.exit_code == 2
    qc = _read_json(out_dir / "qc_report.json")
    assert "Mapping produced duplicate columns" in qc["warnings"][0]
    assert qc["rows_in"] == 1


def test_clean_invalid_map_value_fails(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["clean", "-i", str(export), "-o", str(out_dir), "--map", "oops", "-q"]
    )

    assert result.exit_code == 2
    assert "Invalid --map value" in _read_json(out_dir / "qc_report.json")["warnings"][0]


def test_header_map_profile_lines_come_before_map_options(tmp_path: Path) -> None:
    profile = tmp_path / "profile.txt"
    profile.write_text("Name=Full Name\nEmail=E-mail\n", encoding="utf-8")

    header_map = HeaderMap.from_options(["Name=Full   Name ", "Program=Track"], profile)

    assert header_map.renames == {"Full Name": "Name", "E-mail": "Email", "Track": "Program"}


def test_header_map_apply_matches_collapsed_whitespace() -> None:
    df = pd.DataFrame({" Full\tName ": ["Ada"], "Email": ["a@x.edu"]})

    renamed = HeaderMap({"Full Name": "Name"}).apply(df)

    assert list(renamed.columns) == ["Name", "Email"]
    assert list(df.columns) == [" Full\tName ", "Email"]


def test_header_map_apply_rejects_duplicate_targets() -> None:
    df = pd.DataFrame({"Name": ["Ada"], "Full Name": ["Ada L"]})

    with pytest.raises(ValueError, match=r"Name \(source: Name \+ Full Name\)"):
        HeaderMap({"Full Name": "Name"}).apply(df)


@pytest.mark.parametrize("pair", ["oops", "=Full Name", "Name= "])
def test_header_map_rejects_malformed_pairs(pair: str) -> None:
    with pytest.raises(ValueError, match="Invalid --map value"):
        HeaderMap.from_options([pair], None)


def test_clean_modules_file_replaces_module_list(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    modules = tmp_path / "modules.txt"
    modules.write_text("Patient Safety\n# retired\nFire Safety\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["clean", "-i", str(export), "-o", str(out_dir), "--modules-file", str(modules), "-q"],
    )

    assert result.exit_code == 0, result.output
    ws = load_workbook(out_dir / "CPNW_CleanExport.xlsx")["Cleaned"]
    assert ws["E2"].value == (
        "Patient Safety - Status: Complete - Completed: 01/05/2024\nFire Safety"
    )
    assert ws["E3"].value == "Patient Safety\nFire Safety"


def test_clean_duplicate_modules_file_fails(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    modules = tmp_path / "modules.txt"
    modules.write_text("Compliance\nCompliance\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["clean", "-i", str(export), "-o", str(out_dir), "--modules-file", str(modules), "-q"],
    )

    assert result.exit_code == 2
    assert "duplicates" in _read_json(out_dir / "run_manifest.json")["error_message"]


def test_clean_csv_with_control_character_succeeds(tmp_path: Path) -> None:
    csv_path = tmp_path / "export.csv"
    csv_path.write_text(
        "Name,Email,Program,Notes - A\nAda,a@x.edu,RN,line\x0bbreak\n", encoding="utf-8"
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["clean", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 0, result.output
    ws = load_workbook(out_dir / "CPNW_CleanExport.xlsx")["Cleaned"]
    assert ws["D1"].value == "Notes"
    assert ws["D2"].value == "A: linebreak"


def test_clean_repeated_header_reports_last_value(tmp_path: Path) -> None:
    csv_path = tmp_path / "export.csv"
    csv_path.write_text("Name,Notes - Status,Notes - Status\nAda,a,b\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["clean", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 0, result.output
    ws = load_workbook(out_dir / "CPNW_CleanExport.xlsx")["Cleaned"]
    assert ws["D1"].value == "Notes"
    assert ws["D2"].value == "Status: b"


def test_clean_unexpected_error_exits_1(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    def _boom(*_args: object, **_kwargs: object) -> Path:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "write_report", _boom)

    result = runner.invoke(app, ["clean", "-i", str(export), "-o", str(out_dir), "-q"])

    assert result.exit_code == 1
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["error_code"] == 1
    assert manifest["error_message"] == "Unexpected internal error: disk on fire"


def test_clean_verbose_output_still_succeeds(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["clean", "-i", str(export), "-o", str(out_dir), "-v"])

    assert result.exit_code == 0, result.output
    assert "Clean Complete" in result.output


def test_validate_writes_qc_and_manifest_only(tmp_path: Path) -> None:
    export = _write_export(tmp_path)
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(export), "-o", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Validation Summary" in result.output
    assert (out_dir / "qc_report.json").exists()
    assert _read_json(out_dir / "run_manifest.json")["status"] == "success"
    assert not (out_dir / "CPNW_CleanExport.xlsx").exists()
    assert not (out_dir / "summary.txt").exists()


def test_validate_all_empty_rows_fails(tmp_path: Path) -> None:
    export = _write_export(tmp_path, rows=[["", "  ", None, None, None, None], ["x"]])
    out_dir = tmp_path / "out"
    result = runner.invoke(app, ["validate", "-i", str(export), "-o", str(out_dir), "-q"])
    assert result.exit_code == 0

    export = _write_export(tmp_path, name="blank.xlsx", rows=[["  ", None, None, None, None, None]])
    result = runner.invoke(app, ["validate", "-i", str(export), "-o", str(out_dir), "-q"])
    assert result.exit_code == 2
    qc = _read_json(out_dir / "qc_report.json")
    assert qc["rows_out"] == 0


def test_search_lists_faq_and_articles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_mod, "console", Console(width=300))
    faq = tmp_path / "faq.json"
    faq.write_text(
        json.dumps(
            [
                {"question": "Where is my dashboard?", "answer": "Top menu."},
                {"question": "How do I reset a password?", "answer": "Use the login page."},
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["search", "dashboard", "--faq", str(faq)])

    assert result.exit_code == 0, result.output
    assert "1 of 2 entries shown" in result.output
    assert "Where is my dashboard?" in result.output
    assert "How do I reset a password?" not in result.output
    assert "Student Dashboard Walkthrough" in result.output


def test_search_short_and_unmatched_terms(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_mod, "console", Console(width=300))

    short = runner.invoke(app, ["search", "a"])
    missing = runner.invoke(app, ["search", "parking permit"])

    assert short.exit_code == 0
    assert "Start typing to see suggested guides and tutorials." in short.output
    assert missing.exit_code == 0
    assert "No related guides found. Try different keywords." in missing.output


def test_search_bad_faq_file_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(app, ["search", "dashboard", "--faq", str(tmp_path / "nope.html")])

    assert result.exit_code == 2


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
