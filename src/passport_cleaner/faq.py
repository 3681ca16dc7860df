"""Keyword search over FAQ entries and the help-article catalog."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 2

PROMPT_MESSAGE = "Start typing to see suggested guides and tutorials."
NO_MATCH_MESSAGE = "No related guides found. Try different keywords."

FAQ_CONTAINER_ID = "studentFaqAccordion"


@dataclass(frozen=True)
class FaqEntry:
    question: str
    answer: str

    @property
    def content(self) -> str:
        return f"{self.question} {self.answer}".lower()


@dataclass(frozen=True)
class FaqMatch:
    entry: FaqEntry
    visible: bool


@dataclass(frozen=True)
class Article:
    title: str
    description: str
    url: str
    tags: tuple[str, ...] = ()

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match on title, description or a tag."""
        needle = needle.lower()
        return (
            needle in self.title.lower()
            or needle in self.description.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )


@dataclass
class ArticleSearch:
    term: str
    matches: list[Article] = field(default_factory=list)
    message: str = ""


ARTICLES: tuple[Article, ...] = (
    Article(
        title="CPNW Requirements Checklist",
        description=(
            "Step-by-step guide for WATCH background checks, immunization uploads, "
            "and other compliance evidence."
        ),
        url="student-cpnw-requirements.html",
        tags=("requirements", "watch", "background check", "documentation"),
    ),
    Article(
        title="Student Dashboard Walkthrough",
        description=(
            "Learn how to interpret notifications, track placement tasks, "
            "and stay ahead on deadlines."
        ),
        url="student-dashboard.html",
        tags=("dashboard", "notifications", "alerts", "status"),
    ),
    Article(
        title="eLearning Modules Overview",
        description=(
            "See the 10 mandatory modules, completion tips, and how to confirm "
            "each module is showing as completed."
        ),
        url="student-elearning-modules.html",
        tags=("elearning", "modules", "training", "courses"),
    ),
    Article(
        title="How to Register with CPNW",
        description=(
            "New to CPNW? Follow this tutorial to create your account, verify "
            "demographics, and set up security settings."
        ),
        url="how-to-register.html",
        tags=("register", "account", "login", "setup"),
    ),
    Article(
        title="Understanding Requirement Statuses",
        description=(
            "Explains the color coding, pending review state, and what to do "
            "if something is red or expired."
        ),
        url="student-requirements.html",
        tags=("status", "pending", "expired", "upload"),
    ),
    Article(
        title="Accepted Documentation Formats",
        description=(
            "See required data points, approved file types, and examples of "
            "acceptable uploads before you submit."
        ),
        url="accepted-document-formats.html",
        tags=("documents", "uploads", "formats", "examples"),
    ),
)


# ── Search ───────────────────────────────────────────────────────


def filter_faq(entries: Iterable[FaqEntry], term: str) -> list[FaqMatch]:
    """Flag each entry visible or hidden for *term*.

    Terms shorter than ``MIN_TERM_LENGTH`` (after trimming) show everything.
    """
    normalized = term.strip().lower()
    show_all = len(normalized) < MIN_TERM_LENGTH
    return [
        FaqMatch(entry, show_all or normalized in entry.content) for entry in entries
    ]


def search_articles(term: str, articles: Sequence[Article] = ARTICLES) -> ArticleSearch:
    """Return the articles matching *term*, with a hint when there are none."""
    trimmed = term.strip()
    if len(trimmed) < MIN_TERM_LENGTH:
        return ArticleSearch(term=trimmed, message=PROMPT_MESSAGE)

    matches = [article for article in articles if article.matches(trimmed)]
    if not matches:
        return ArticleSearch(term=trimmed, message=NO_MATCH_MESSAGE)
    return ArticleSearch(term=trimmed, matches=matches)


# ── Loading ──────────────────────────────────────────────────────


def _node_text(node: Tag | None) -> str:
    if node is None:
        return ""
    return " ".join(node.get_text(" ").split())


def parse_faq_html(html: str) -> list[FaqEntry]:
    """Extract question/answer pairs from an accordion FAQ page.

    Items are ``.accordion-item`` elements inside ``#studentFaqAccordion``;
    a page without that container yields no entries.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.find(id=FAQ_CONTAINER_ID)
    if container is None:
        logger.debug("No #%s container in FAQ page", FAQ_CONTAINER_ID)
        return []

    entries: list[FaqEntry] = []
    for item in container.select(".accordion-item"):
        question = item.select_one(".accordion-button")
        answer = item.select_one(".accordion-body")
        entries.append(
            FaqEntry(
                question=_node_text(question),
                answer=_node_text(answer),
            )
        )
    return entries


def _entries_from_json(data: object, path: Path) -> list[FaqEntry]:
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of FAQ entries")
    entries: list[FaqEntry] = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"{path}: entry {idx} must be an object")
        question = item.get("question", "")
        answer = item.get("answer", "")
        if not isinstance(question, str) or not isinstance(answer, str):
            raise ValueError(f"{path}: entry {idx} question/answer must be strings")
        entries.append(FaqEntry(question=question, answer=answer))
    return entries


def load_faq_entries(path: Path) -> list[FaqEntry]:
    """Load FAQ entries from an ``.html`` page or a ``.json`` list.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the file type is unsupported or the JSON is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"FAQ file not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix in (".html", ".htm"):
        entries = parse_faq_html(text)
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
        entries = _entries_from_json(data, path)
    else:
        raise ValueError(f"Unsupported FAQ file type: {suffix!r}. Use .html or .json")

    logger.debug("Loaded %d FAQ entries from %s", len(entries), path)
    return entries
