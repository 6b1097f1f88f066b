"""Repository catalog stored as a JSON document."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import CatalogError
from ..logging import get_logger
from ..models import STATUSES, Reference, RepositoryRecord

_CATALOG_VERSION = 1


@dataclass(frozen=True)
class RepositoryQuery:
    """Filter and window applied to the catalog. Builder methods return copies."""

    status: Optional[str] = None
    limit_: Optional[int] = None
    offset_: int = 0

    def find_by_status(self, status: str) -> "RepositoryQuery":
        if status not in STATUSES:
            raise ValueError(f"unknown repository status: {status}")
        return replace(self, status=status)

    def limit(self, count: int) -> "RepositoryQuery":
        if count < 0:
            raise ValueError("limit cannot be negative")
        return replace(self, limit_=count)

    def offset(self, count: int) -> "RepositoryQuery":
        if count < 0:
            raise ValueError("offset cannot be negative")
        return replace(self, offset_=count)

    def select(self, entries: Sequence[Dict[str, object]]) -> List[Dict[str, object]]:
        matched = [
            entry for entry in entries if self.status is None or entry.get("status") == self.status
        ]
        end = None if self.limit_ is None else self.offset_ + self.limit_
        return matched[self.offset_ : end]


class RepositoryResultSet:
    """Forward-only cursor over the entries matched by a query."""

    def __init__(self, entries: Sequence[Dict[str, object]]) -> None:
        self._entries = list(entries)
        self._position = -1

    def __len__(self) -> int:
        return len(self._entries)

    def next(self) -> bool:
        """Advance to the next entry; return False once the set is exhausted."""
        if self._position + 1 >= len(self._entries):
            self._position = len(self._entries)
            return False
        self._position += 1
        return True

    def get(self) -> RepositoryRecord:
        """Decode the current entry."""
        if not 0 <= self._position < len(self._entries):
            raise CatalogError("result set is not positioned on an entry")
        return record_from_dict(self._entries[self._position])

    def __iter__(self) -> Iterator[RepositoryRecord]:
        while self.next():
            yield self.get()


class RepositoryStore:
    """Reads repository records from a JSON catalog file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.logger = get_logger("stores.repositories")

    def find(self, query: RepositoryQuery) -> RepositoryResultSet:
        return RepositoryResultSet(query.select(self._load()))

    def count(self, query: RepositoryQuery) -> int:
        """Return how many records ``find`` yields for ``query``."""
        return len(query.select(self._load()))

    def save(self, records: Sequence[RepositoryRecord]) -> None:
        payload = {
            "version": _CATALOG_VERSION,
            "repositories": [record_to_dict(record) for record in records],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def _load(self) -> List[Dict[str, object]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise CatalogError(f"repository catalog not found: {self.path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogError(f"unable to read repository catalog {self.path}: {exc}") from exc

        if not isinstance(data, dict) or data.get("version") != _CATALOG_VERSION:
            raise CatalogError(f"unsupported repository catalog format: {self.path}")
        repositories = data.get("repositories")
        if not isinstance(repositories, list):
            raise CatalogError("repository catalog must contain a 'repositories' list")

        entries: List[Dict[str, object]] = []
        for index, entry in enumerate(repositories):
            if not isinstance(entry, dict):
                self.logger.warning("Skipping catalog entry %d: not a mapping", index)
                continue
            entries.append(entry)
        return entries


def record_from_dict(payload: Dict[str, object]) -> RepositoryRecord:
    repo_id = payload.get("id")
    endpoints = payload.get("endpoints")
    references = payload.get("references")
    status = payload.get("status")
    if not isinstance(repo_id, str) or not repo_id:
        raise CatalogError(f"catalog entry without a valid id: {payload!r}")
    if not isinstance(endpoints, list) or not all(isinstance(e, str) for e in endpoints):
        raise CatalogError(f"repository {repo_id} has invalid endpoints")
    if not endpoints:
        raise CatalogError(f"repository {repo_id} has no endpoints")
    if not isinstance(references, list):
        raise CatalogError(f"repository {repo_id} has invalid references")
    if status not in STATUSES:
        raise CatalogError(f"repository {repo_id} has unknown status {status!r}")

    refs: List[Reference] = []
    for ref in references:
        if not isinstance(ref, dict):
            raise CatalogError(f"repository {repo_id} has a malformed reference")
        name, sha, init = ref.get("name"), ref.get("hash"), ref.get("init")
        if not (isinstance(name, str) and isinstance(sha, str) and isinstance(init, str)):
            raise CatalogError(f"repository {repo_id} has a malformed reference")
        refs.append(Reference(name=name, hash=sha, init=init))

    return RepositoryRecord(id=repo_id, endpoints=list(endpoints), references=refs, status=status)


def record_to_dict(record: RepositoryRecord) -> Dict[str, object]:
    return {
        "id": record.id,
        "endpoints": list(record.endpoints),
        "status": record.status,
        "references": [
            {"name": ref.name, "hash": ref.hash, "init": ref.init} for ref in record.references
        ],
    }


__all__ = [
    "RepositoryQuery",
    "RepositoryResultSet",
    "RepositoryStore",
    "record_from_dict",
    "record_to_dict",
]
