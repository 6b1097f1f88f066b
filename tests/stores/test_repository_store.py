"""Tests for the JSON repository catalog."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from repocensus.errors import CatalogError
from repocensus.models import HEAD_REFERENCE, Reference, RepositoryRecord
from repocensus.stores.repositories import RepositoryQuery, RepositoryStore


def _record(repo_id: str, status: str = "fetched") -> RepositoryRecord:
    return RepositoryRecord(
        id=repo_id,
        endpoints=[f"https://github.com/org/{repo_id}"],
        references=[Reference(HEAD_REFERENCE, "a" * 40, f"root-{repo_id}")],
        status=status,
    )


def test_store_round_trip_preserves_records(tmp_path: Path) -> None:
    store = RepositoryStore(tmp_path / "repositories.json")
    records = [_record("a"), _record("b", status="pending")]
    store.save(records)

    loaded = list(RepositoryStore(tmp_path / "repositories.json").find(RepositoryQuery()))

    assert loaded == records


def test_find_by_status_with_window(tmp_path: Path) -> None:
    store = RepositoryStore(tmp_path / "repositories.json")
    store.save(
        [_record("a"), _record("b", "not_found"), _record("c"), _record("d"), _record("e")]
    )
    query = RepositoryQuery().find_by_status("fetched").offset(1).limit(2)

    results = store.find(query)

    assert store.count(query) == 2
    assert [record.id for record in results] == ["c", "d"]


def test_result_set_cursor(tmp_path: Path) -> None:
    store = RepositoryStore(tmp_path / "repositories.json")
    store.save([_record("a")])
    results = store.find(RepositoryQuery())

    with pytest.raises(CatalogError):
        results.get()
    assert results.next()
    assert results.get().id == "a"
    assert not results.next()
    assert not results.next()


def test_query_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        RepositoryQuery().find_by_status("cloned")
    with pytest.raises(ValueError):
        RepositoryQuery().limit(-1)
    with pytest.raises(ValueError):
        RepositoryQuery().offset(-3)


def test_missing_or_invalid_catalog_raises(tmp_path: Path) -> None:
    with pytest.raises(CatalogError):
        RepositoryStore(tmp_path / "missing.json").count(RepositoryQuery())

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        RepositoryStore(broken).find(RepositoryQuery())

    unversioned = tmp_path / "unversioned.json"
    unversioned.write_text(json.dumps({"repositories": []}), encoding="utf-8")
    with pytest.raises(CatalogError):
        RepositoryStore(unversioned).find(RepositoryQuery())


def test_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "repositories.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "repositories": [
                    "not a mapping",
                    {"id": "a", "status": "fetched", "endpoints": ["u"], "references": [{}]},
                ],
            }
        ),
        encoding="utf-8",
    )
    results = RepositoryStore(path).find(RepositoryQuery())

    assert len(results) == 1
    assert results.next()
    with pytest.raises(CatalogError, match="malformed reference"):
        results.get()
