"""Per-repository extraction of files, languages, commits, branches and license."""

from __future__ import annotations

import tempfile
import time
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .analyzers.language import detect_language
from .analyzers.license import DEFAULT_CATALOG, LicenseCatalog, classify, is_license_file
from .analyzers.lines import LineCounter
from .config import DEFAULT_HOSTING_MARKER
from .errors import MissingHeadError, ProcessingError, RepocensusError
from .git.storage import FileEntry, Transaction, Transactioner
from .locker import ResourceLocker
from .logging import get_logger
from .models import (
    ExportRecord,
    Language,
    LanguageUsage,
    LineCounts,
    ProcessResult,
    RepositoryRecord,
    siva_file_name,
)

_TAG_PREFIX = "refs/tags/"


class RepositoryProcessor:
    """Builds the ExportRecord of one repository at a time.

    All access to a storage root happens while holding that root's lock from
    the shared ResourceLocker, inside a view that is always rolled back.
    """

    def __init__(
        self,
        transactioner: Transactioner,
        locker: ResourceLocker,
        *,
        hosting_marker: str = DEFAULT_HOSTING_MARKER,
        line_counter: LineCounter | None = None,
        detector: Callable[[str, bytes], str] | None = None,
        catalog: LicenseCatalog = DEFAULT_CATALOG,
        scratch_dir: Path | None = None,
    ) -> None:
        self.transactioner = transactioner
        self.locker = locker
        self.hosting_marker = hosting_marker
        self.detector = detector or detect_language
        self.line_counter = line_counter or LineCounter(self.detector)
        self.catalog = catalog
        self.scratch_dir = scratch_dir
        self.logger = get_logger("processor")

    def run(self, record: RepositoryRecord) -> ProcessResult:
        """Process ``record`` and convert any failure into a failed result."""
        try:
            data = self.process(record)
        except RepocensusError as exc:
            self.logger.error("Unable to process repository %s: %s", record.id, exc)
            return ProcessResult(repository_id=record.id, error=str(exc))
        except Exception as exc:  # pragma: no cover - defensive guard
            self.logger.exception("Unexpected failure processing repository %s", record.id)
            return ProcessResult(repository_id=record.id, error=str(exc))
        return ProcessResult(repository_id=record.id, record=data)

    def process(self, record: RepositoryRecord) -> ExportRecord:
        """Return the export data of ``record``; raises ProcessingError on failure."""
        with self._timed(f"processing repository {record.id}"):
            head_ref = record.head()
            if head_ref is None:
                raise MissingHeadError(f"repository {record.id} has no HEAD")

            with self._view(head_ref.init) as tx:
                data, repo_id = self._data(record, tx)

            for root in record.roots():
                self.logger.debug("Processing root %s of %s", root, data.url)
                with self._view(root) as tx:
                    try:
                        data.commits += tx.count_root_commits()
                        data.branches += _count_branches(tx.reference_names(), repo_id)
                    except RepocensusError as exc:
                        raise ProcessingError(f"unable to process root {root}: {exc}") from exc
                self.logger.debug("Finished processing root %s of %s", root, data.url)

            data.siva_files = [siva_file_name(root) for root in record.roots()]
            self.logger.debug(
                "Repository %s: %d commits and %d branches across %d roots",
                data.url,
                data.commits,
                data.branches,
                len(data.siva_files),
            )
            return data

    def _data(self, record: RepositoryRecord, tx: Transaction) -> tuple[ExportRecord, str]:
        data = ExportRecord(url=canonical_url(record.endpoints, self.hosting_marker))

        try:
            repo_id = tx.repository_id(record.endpoints)
            head = tx.head(repo_id)
        except RepocensusError as exc:
            raise ProcessingError(f"unable to get HEAD ref: {exc}") from exc

        with self._timed("getting files of HEAD"):
            try:
                files = tx.head_files(head)
            except RepocensusError as exc:
                raise ProcessingError(f"unable to get head files: {exc}") from exc
        data.files = len(files)

        with self._timed("building language report"):
            usage = language_usage(files, self.detector)

        with self._timed("building line counts"):
            lines = self._line_counts(files)

        data.languages = merge_language_data(usage, lines)

        with self._timed("counting HEAD commits"):
            try:
                data.head_commits = tx.count_commits(head)
            except RepocensusError as exc:
                raise ProcessingError(f"unable to get head commits: {exc}") from exc

        data.license = self._license(files)
        return data, repo_id

    def _line_counts(self, files: Sequence[FileEntry]) -> Dict[str, LineCounts]:
        try:
            with tempfile.TemporaryDirectory(prefix="repocensus-", dir=self.scratch_dir) as scratch:
                paths = write_files(Path(scratch), files)
                return self.line_counter.analyze(paths)
        except OSError as exc:
            raise ProcessingError(f"unable to count lines: {exc}") from exc

    def _license(self, files: Sequence[FileEntry]) -> Optional[str]:
        for entry in files:
            if not is_license_file(entry.path, self.catalog):
                continue
            family, ok = classify(entry.content.decode("utf-8", errors="replace"), self.catalog)
            if not ok:
                self.logger.debug("Unrecognized license text in %s", entry.path)
            return family
        return None

    @contextmanager
    def _view(self, root: str) -> Iterator[Transaction]:
        with self.locker.acquire(root):
            try:
                tx = self.transactioner.begin(root)
            except RepocensusError as exc:
                raise ProcessingError(f"can't start transaction on root {root}: {exc}") from exc
            try:
                yield tx
            finally:
                tx.rollback()

    @contextmanager
    def _timed(self, step: str) -> Iterator[None]:
        self.logger.debug("Start %s", step)
        start = time.perf_counter()
        try:
            yield
        finally:
            self.logger.debug("Finished %s in %.3fs", step, time.perf_counter() - start)


def canonical_url(endpoints: Sequence[str], marker: str = DEFAULT_HOSTING_MARKER) -> str:
    """Return the first endpoint on the public host, else the first endpoint."""
    if not endpoints:
        return ""
    for endpoint in endpoints:
        if marker in endpoint:
            return endpoint
    return endpoints[0]


def language_usage(
    files: Sequence[FileEntry], detector: Callable[[str, bytes], str] = detect_language
) -> Dict[str, LanguageUsage]:
    """Aggregate file, byte and newline-split line counts per detected language."""
    usage: Dict[str, LanguageUsage] = {}
    for entry in files:
        language = detector(entry.path, entry.content)
        if not language:
            continue
        report = usage.setdefault(language, LanguageUsage())
        report.files += 1
        report.bytes += entry.size
        report.lines += len(entry.content.split(b"\n"))
    return usage


def merge_language_data(
    usage: Dict[str, LanguageUsage], counts: Dict[str, LineCounts]
) -> Dict[str, Language]:
    """Join usage and line counts by language; missing sides count as zero."""
    merged: Dict[str, Language] = {}
    for language in set(usage) | set(counts):
        merged[language] = Language(
            usage=usage.get(language, LanguageUsage()),
            lines=counts.get(language, LineCounts()),
        )
    return merged


def write_files(base: Path, files: Sequence[FileEntry]) -> List[Path]:
    """Write ``files`` below ``base`` and return their paths."""
    paths: List[Path] = []
    for entry in files:
        relative = PurePosixPath(entry.path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ProcessingError(f"refusing to write file outside scratch dir: {entry.path}")
        path = base.joinpath(*relative.parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(entry.content)
        paths.append(path)
    return paths


def _count_branches(reference_names: Sequence[str], repo_id: str) -> int:
    suffix = f"/{repo_id}"
    return sum(
        1
        for name in reference_names
        if name.endswith(suffix) and not name.startswith(_TAG_PREFIX)
    )


__all__ = [
    "RepositoryProcessor",
    "canonical_url",
    "language_usage",
    "merge_language_data",
    "write_files",
]
