"""Core data models shared across repocensus components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

HEAD_REFERENCE = "refs/heads/HEAD"

STATUS_PENDING = "pending"
STATUS_FETCHING = "fetching"
STATUS_FETCHED = "fetched"
STATUS_NOT_FOUND = "not_found"
STATUS_AUTH_REQUIRED = "auth_required"

STATUSES = (
    STATUS_PENDING,
    STATUS_FETCHING,
    STATUS_FETCHED,
    STATUS_NOT_FOUND,
    STATUS_AUTH_REQUIRED,
)


@dataclass(frozen=True)
class Reference:
    """A reference of a repository tagged with the storage root it was built from."""

    name: str
    hash: str
    init: str


@dataclass(frozen=True)
class RepositoryRecord:
    """Catalog entry describing one logical repository."""

    id: str
    endpoints: List[str]
    references: List[Reference]
    status: str = STATUS_FETCHED

    def head(self) -> Optional[Reference]:
        """Return the HEAD pointer reference, if the record has one."""
        for ref in self.references:
            if ref.name == HEAD_REFERENCE:
                return ref
        return None

    def roots(self) -> List[str]:
        """Return the distinct storage roots referenced by this record, sorted."""
        return sorted({ref.init for ref in self.references if ref.init})


@dataclass
class LanguageUsage:
    """Files, bytes and naive line totals for one language."""

    files: int = 0
    bytes: int = 0
    lines: int = 0


@dataclass
class LineCounts:
    """Blank, code and comment line totals for one language."""

    blank: int = 0
    code: int = 0
    comments: int = 0


@dataclass
class Language:
    """Merged usage and line classification for one language."""

    usage: LanguageUsage = field(default_factory=LanguageUsage)
    lines: LineCounts = field(default_factory=LineCounts)


@dataclass
class ExportRecord:
    """One exported row, owned by a single worker until handed to the exporter."""

    url: str
    siva_files: List[str] = field(default_factory=list)
    files: int = 0
    languages: Dict[str, Language] = field(default_factory=dict)
    head_commits: int = 0
    commits: int = 0
    branches: int = 0
    forks: int = 0
    license: Optional[str] = None

    def to_row(self) -> List[str]:
        """Render the record as CSV columns, per-language values aligned by name."""
        langs = sorted(self.languages)
        entries = [self.languages[lang] for lang in langs]
        return [
            self.url,
            _join(self.siva_files),
            str(self.files),
            _join(langs),
            _join(str(entry.usage.bytes) for entry in entries),
            _join(str(entry.usage.lines) for entry in entries),
            _join(str(entry.usage.files) for entry in entries),
            str(self.head_commits),
            str(self.branches),
            str(self.forks),
            _join(str(entry.lines.blank) for entry in entries),
            _join(str(entry.lines.code) for entry in entries),
            _join(str(entry.lines.comments) for entry in entries),
            self.license or "",
        ]


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of processing one repository, as sent through the fan-in queue."""

    repository_id: str
    record: Optional[ExportRecord] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class RunSummary:
    """Final counters of an export run."""

    processed: int
    failed: int
    total: int
    written: int
    expected: int
    cancelled: bool = False


def siva_file_name(root: str) -> str:
    return f"{root}.siva"


def _join(values) -> str:
    return ",".join(values)


__all__ = [
    "ExportRecord",
    "HEAD_REFERENCE",
    "Language",
    "LanguageUsage",
    "LineCounts",
    "ProcessResult",
    "Reference",
    "RepositoryRecord",
    "RunSummary",
    "STATUSES",
    "STATUS_FETCHED",
    "siva_file_name",
]
