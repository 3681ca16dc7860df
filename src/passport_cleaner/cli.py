"""CLI entry point for passport-cleaner."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn

import pandas as pd
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from passport_cleaner import DEFAULT_OUTPUT_NAME, DEFAULT_SHEET, __version__
from passport_cleaner.faq import FaqEntry, filter_faq, load_faq_entries, search_articles
from passport_cleaner.io import (
    load_table,
    normalize_output_name,
    read_name_list,
    sha256_file,
    utcnow_iso,
    write_json,
    write_text_artifact,
)
from passport_cleaner.models import CleanerConfig, QCReport, RunManifest
from passport_cleaner.pipeline import clean_dataframe, compute_module_coverage
from passport_cleaner.report import write_qc_report, write_report

app = typer.Typer(
    name="pclean",
    help="passport-cleaner: reshape compliance-training exports into clean reports.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)

EMPTY_SHEET_MESSAGE = "The sheet is empty or could not be read."


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("passport_cleaner")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    package_logger.addHandler(
        RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    )
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"passport-cleaner v{__version__}")
        raise typer.Exit()


# ── Header renames ───────────────────────────────────────────────


def _squash(header: object) -> str:
    return " ".join(str(header).split())


@dataclass
class HeaderMap:
    """Export header renames, keyed by the whitespace-collapsed source header.

    Built from ``--profile`` lines followed by ``--map`` options, each in
    ``target=source`` form; a later pair for the same source replaces an
    earlier one.
    """

    renames: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_options(cls, pairs: list[str] | None, profile: Path | None) -> HeaderMap:
        lines: list[str] = []
        if profile is not None:
            try:
                lines = read_name_list(profile)
            except ValueError as exc:
                raise ValueError(
                    f"Profile error: {exc} (expected lines like Name=Full Name)"
                ) from exc

        renames: dict[str, str] = {}
        for pair in [*lines, *(pairs or [])]:
            target, sep, source = pair.partition("=")
            target, source = _squash(target), _squash(source)
            if not sep:
                raise ValueError(f"Invalid --map value: {pair!r} (expected target=source)")
            if not target or not source:
                raise ValueError(f"Invalid --map value: {pair!r} (empty target or source)")
            if source in renames:
                logger.warning("Header %r is mapped twice; using %r", source, target)
            renames[source] = target
        return cls(renames)

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return *df* with renamed headers.

        Raises ValueError when two headers would end up with the same name.
        """
        if not self.renames:
            return df
        names = [self.renames.get(_squash(col), str(col)) for col in df.columns]

        sources: dict[str, list[str]] = {}
        for col, name in zip(df.columns, names):
            sources.setdefault(name, []).append(str(col))
        clashes = [
            f"{name} (source: {' + '.join(cols)})"
            for name, cols in sorted(sources.items())
            if len(cols) > 1
        ]
        if clashes:
            raise ValueError(
                f"Mapping produced duplicate columns: {'; '.join(clashes)}. "
                "Rename or remove one."
            )

        renamed = df.copy()
        renamed.columns = pd.Index(names, dtype=object)
        return renamed


def _build_config(modules_file: Path | None, dayfirst: bool) -> CleanerConfig:
    if modules_file is None:
        return CleanerConfig(dayfirst=dayfirst)
    modules = read_name_list(modules_file)
    if not modules:
        raise ValueError(f"Modules file lists no modules: {modules_file}")
    return CleanerConfig(module_bases=tuple(modules), dayfirst=dayfirst)


# ── Run bookkeeping ──────────────────────────────────────────────


@dataclass
class _RunContext:
    input_file: Path
    out_dir: Path
    sheet_name: str
    output_path: Path | None
    quiet: bool = False
    created_at: str = field(default_factory=utcnow_iso)

    @property
    def run_id(self) -> str:
        return self.created_at

    def echo(self, message: str) -> None:
        if not self.quiet:
            console.print(message)


def _write_manifest(
    ctx: _RunContext,
    qc: QCReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(ctx.input_file)
    except OSError as exc:
        logger.debug("Could not hash %s: %s", ctx.input_file, exc)

    manifest = RunManifest(
        version=__version__,
        run_id=ctx.run_id,
        input_path=str(ctx.input_file.resolve()),
        sheet_name=ctx.sheet_name,
        output_path=(
            str(ctx.output_path.resolve()) if ctx.output_path and status == "success" else ""
        ),
        created_at_utc=ctx.created_at,
        rows_in=qc.rows_in,
        rows_out=qc.rows_out,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(ctx.out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    ctx: _RunContext,
    message: str,
    *,
    qc: QCReport | None = None,
    rows_in: int = 0,
    error_code: int = 2,
) -> NoReturn:
    """Write failure QC + manifest, report *message*, and exit."""
    if qc is None:
        qc = QCReport(rows_in=rows_in, rows_out=0, dropped_rows=rows_in, warnings=[message])
    qc_path = write_qc_report(ctx.out_dir, qc)
    manifest_path = _write_manifest(
        ctx, qc, status="failed", error_code=error_code, error_message=message
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    raise typer.Exit(code=error_code)


def _prepare(
    ctx: _RunContext,
    *,
    col_map: list[str] | None,
    profile: Path | None,
    modules_file: Path | None,
    dayfirst: bool,
) -> tuple[HeaderMap, CleanerConfig]:
    try:
        header_map = HeaderMap.from_options(col_map, profile)
        config = _build_config(modules_file, dayfirst)
    except (ValueError, TypeError) as exc:
        _fail(ctx, str(exc))
    return header_map, config


def _load_and_clean(
    ctx: _RunContext, header_map: HeaderMap, config: CleanerConfig
) -> tuple[pd.DataFrame, pd.DataFrame, QCReport]:
    """Load the input sheet, rename headers and clean. Exits on input failures."""
    ctx.echo("[blue]>[/blue] Loading input file …")
    try:
        raw_df = load_table(ctx.input_file, sheet_name=ctx.sheet_name)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _fail(ctx, str(exc))

    ctx.echo(f"  {len(raw_df)} rows x {len(raw_df.columns)} columns")
    if raw_df.empty:
        _fail(ctx, EMPTY_SHEET_MESSAGE)

    try:
        raw_df = header_map.apply(raw_df)
    except ValueError as exc:
        _fail(ctx, str(exc), rows_in=len(raw_df))

    ctx.echo("[blue]>[/blue] Cleaning …")
    clean_df, qc = clean_dataframe(raw_df, config)
    if qc.rows_out == 0:
        _fail(ctx, EMPTY_SHEET_MESSAGE, qc=qc)
    return raw_df, clean_df, qc


def _summary_command(
    *,
    ctx: _RunContext,
    renames: dict[str, str],
    profile: Path | None,
    modules_file: Path | None,
    dayfirst: bool,
) -> str:
    parts: list[str] = [
        "pclean clean",
        f"--input {ctx.input_file.name}",
        f"--sheet {ctx.sheet_name!r}",
        f"--out-dir {ctx.out_dir.name or str(ctx.out_dir)}",
        "--dayfirst" if dayfirst else "--monthfirst",
    ]
    if ctx.output_path is not None:
        parts.append(f"--output {ctx.output_path.name}")
    if profile:
        parts.append(f"--profile {profile.name}")
    if modules_file:
        parts.append(f"--modules-file {modules_file.name}")
    for source, target in sorted(renames.items()):
        parts.append(f"--map {target}={source!r}")
    return " ".join(parts)


def _write_summary_artifact(
    *,
    ctx: _RunContext,
    qc: QCReport,
    coverage: pd.DataFrame,
    command: str,
    max_warnings: int = 5,
) -> Path:
    warning_lines = qc.warnings[:max_warnings]
    lines: list[str] = [
        "passport-cleaner summary",
        f"tool_version: passport-cleaner v{__version__}",
        f"input_file: {ctx.input_file.name}",
        f"sheet: {ctx.sheet_name}",
        f"output_file: {ctx.output_path.name if ctx.output_path else 'N/A'}",
        f"rows_in: {qc.rows_in}",
        f"rows_out: {qc.rows_out}",
        f"rows_dropped: {qc.dropped_rows}",
        f"warning_count: {len(qc.warnings)}",
    ]
    for idx, warning in enumerate(warning_lines, start=1):
        lines.append(f"warning_{idx}: {warning}")
    if len(qc.warnings) > max_warnings:
        lines.append(f"warning_more: {len(qc.warnings) - max_warnings}")

    for idx, rec in enumerate(coverage.to_dict(orient="records"), start=1):
        lines.append(
            f"module_{idx}: {rec['module']} "
            f"({rec['rows_with_data']}/{qc.rows_out} rows with data)"
        )
    lines.append(f"command: {command}")
    return write_text_artifact(ctx.out_dir / "summary.txt", "\n".join(lines) + "\n")


def _coverage_table(coverage: pd.DataFrame, rows_out: int) -> RichTable:
    tbl = RichTable(title="Module Coverage", show_lines=False)
    tbl.add_column("Module", style="bold")
    tbl.add_column("Columns", justify="right")
    tbl.add_column("Rows with data", justify="right")
    for rec in coverage.to_dict(orient="records"):
        style = None if rec["columns"] else "yellow"
        tbl.add_row(
            str(rec["module"]),
            str(rec["columns"]),
            f"{rec['rows_with_data']}/{rows_out}",
            style=style,
        )
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """passport-cleaner CLI."""


# ── clean command ────────────────────────────────────────────────


@app.command()
def clean(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the XLSX (or CSV) export.",
        exists=True, readable=True,
    ),
    sheet_name: str = typer.Option(
        DEFAULT_SHEET, "--sheet", "-s",
        help="Worksheet to read (ignored for CSV input).",
    ),
    output_name: str = typer.Option(
        DEFAULT_OUTPUT_NAME, "--output",
        help="File name of the cleaned workbook; .xlsx is appended if missing.",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for workbook + QC + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Header mapping: target=source (rename source->target). "
            "E.g. --map 'Name=Full Name'"
        ),
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header mappings (target=source lines).",
    ),
    modules_file: Path | None = typer.Option(
        None, "--modules-file",
        help="Replace the fixed eLearning module list (one module name per line).",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous text dates like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Emit debug logging.",
    ),
) -> None:
    """Clean a passport export into a consolidated, styled workbook."""
    _configure_logging(verbose)
    out_dir.mkdir(parents=True, exist_ok=True)
    output_path = out_dir / normalize_output_name(output_name)
    ctx = _RunContext(
        input_file=input_file,
        out_dir=out_dir,
        sheet_name=sheet_name,
        output_path=output_path,
        quiet=quiet,
    )
    header_map, config = _prepare(
        ctx,
        col_map=col_map,
        profile=profile,
        modules_file=modules_file,
        dayfirst=dayfirst,
    )

    if not quiet:
        console.print(Panel(
            f"[bold]passport-cleaner[/bold] v{__version__}\n"
            f"Input:  {input_file} [dim](sheet {sheet_name!r})[/dim]\n"
            f"Output: {ctx.output_path}",
            title="Clean Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        if header_map.renames:
            console.print(f"  Column map: {header_map.renames}")
        if modules_file:
            console.print(f"  Modules from: {modules_file} ({len(config.module_bases)})")

    raw_df = pd.DataFrame()
    try:
        raw_df, clean_df, qc = _load_and_clean(ctx, header_map, config)

        if not quiet:
            for w in qc.warnings:
                console.print(f"  [yellow]![/yellow] {w}")
            console.print(f"  {qc.rows_out} rows cleaned")

        # ── Write workbook ───────────────────────────────────────
        ctx.echo(f"[blue]>[/blue] Writing {output_path.name} …")
        report_path = write_report(output_path, clean_df)
        ctx.echo(f"  Report   -> {report_path}")

        qc_path = write_qc_report(out_dir, qc)
        ctx.echo(f"  QC report -> {qc_path}")

        manifest_path = _write_manifest(ctx, qc)
        ctx.echo(f"  Manifest -> {manifest_path}")

        coverage = compute_module_coverage(raw_df, config)
        summary_path = _write_summary_artifact(
            ctx=ctx,
            qc=qc,
            coverage=coverage,
            command=_summary_command(
                ctx=ctx,
                renames=header_map.renames,
                profile=profile,
                modules_file=modules_file,
                dayfirst=dayfirst,
            ),
        )
        ctx.echo(f"  Summary  -> {summary_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green]: {qc.rows_out} rows -> {report_path}",
                title="Clean Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        logger.debug("Unexpected failure", exc_info=True)
        _fail(
            ctx,
            f"Unexpected internal error: {exc}",
            rows_in=len(raw_df),
            error_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the XLSX (or CSV) export.",
        exists=True, readable=True,
    ),
    sheet_name: str = typer.Option(
        DEFAULT_SHEET, "--sheet", "-s",
        help="Worksheet to read (ignored for CSV input).",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Header mapping: target=source (rename source->target).",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header mappings (target=source lines).",
    ),
    modules_file: Path | None = typer.Option(
        None, "--modules-file",
        help="Replace the fixed eLearning module list (one module name per line).",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for ambiguous text dates like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Emit debug logging.",
    ),
) -> None:
    """Check an export without writing the cleaned workbook.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = unreadable or empty input.
    """
    _configure_logging(verbose)
    out_dir.mkdir(parents=True, exist_ok=True)
    ctx = _RunContext(
        input_file=input_file,
        out_dir=out_dir,
        sheet_name=sheet_name,
        output_path=None,
        quiet=quiet,
    )
    header_map, config = _prepare(
        ctx,
        col_map=col_map,
        profile=profile,
        modules_file=modules_file,
        dayfirst=dayfirst,
    )

    if not quiet:
        console.print(Panel(
            f"[bold]passport-cleaner[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file} [dim](sheet {sheet_name!r})[/dim]",
            title="Validate", border_style="cyan",
        ))

    raw_df = pd.DataFrame()
    try:
        raw_df, _clean_df, qc = _load_and_clean(ctx, header_map, config)
        qc_path = write_qc_report(out_dir, qc)
        manifest_path = _write_manifest(ctx, qc)

        if not quiet:
            tbl = RichTable(title="Validation Summary", show_lines=True)
            tbl.add_column("Check", style="bold")
            tbl.add_column("Result")

            tbl.add_row("Rows in", str(qc.rows_in))
            tbl.add_row("Rows out", str(qc.rows_out))
            tbl.add_row("Skipped (empty)", str(qc.dropped_rows))
            tbl.add_row(
                "Missing base columns",
                ", ".join(qc.missing_columns) if qc.missing_columns else "[green]none[/green]",
            )
            for w in qc.warnings:
                tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
            tbl.add_row("Status", "[green]PASS[/green]")
            console.print(tbl)
            console.print(_coverage_table(compute_module_coverage(raw_df, config), qc.rows_out))

        console.print(f"  QC       -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")
    except typer.Exit:
        raise
    except Exception as exc:
        logger.debug("Unexpected failure", exc_info=True)
        _fail(
            ctx,
            f"Unexpected internal error: {exc}",
            rows_in=len(raw_df),
            error_code=1,
        )


# ── search command ───────────────────────────────────────────────


@app.command()
def search(
    term: str = typer.Argument(..., help="Search term (at least 2 characters)."),
    faq_file: Path | None = typer.Option(
        None, "--faq",
        help="FAQ page (.html accordion) or .json list of {question, answer}.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Emit debug logging.",
    ),
) -> None:
    """Search FAQ entries and help articles by keyword."""
    _configure_logging(verbose)

    entries: list[FaqEntry] = []
    if faq_file is not None:
        try:
            entries = load_faq_entries(faq_file)
        except (FileNotFoundError, ValueError, OSError) as exc:
            _err(str(exc))
            raise typer.Exit(code=2)

    if entries:
        visible = [match.entry for match in filter_faq(entries, term) if match.visible]
        console.print(f"[bold]FAQ[/bold]: {len(visible)} of {len(entries)} entries shown")
        for entry in visible:
            console.print(f"  • {entry.question}")

    result = search_articles(term)
    if not result.matches:
        console.print(f"[dim]{result.message}[/dim]")
        return

    tbl = RichTable(title="Suggested Guides", show_lines=True)
    tbl.add_column("Title", style="bold")
    tbl.add_column("Description")
    tbl.add_column("Link")
    tbl.add_column("Tags", style="cyan")
    for article in result.matches:
        tbl.add_row(article.title, article.description, article.url, ", ".join(article.tags))
    console.print(tbl)
