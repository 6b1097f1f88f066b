"""End-to-end export tests over fake storage."""

from __future__ import annotations

import csv
import json
import threading
import time
from pathlib import Path
from typing import Dict, List

import pytest

from repocensus.config import CensusConfig
from repocensus.errors import CatalogError
from repocensus.exporter import CSV_HEADER, StreamingExporter
from repocensus.models import ExportRecord
from repocensus.pipeline import ExportPipeline, export
from repocensus.stores.repositories import RepositoryStore
from tests._fixtures.storage import (
    FakeRepository,
    FakeRoot,
    FakeTransactioner,
    make_record,
    python_files,
)


def _endpoint(repo_id: str) -> str:
    return f"https://github.com/org/{repo_id}"


def _repo(repo_id: str) -> FakeRepository:
    return FakeRepository(repo_id, [_endpoint(repo_id)], python_files())


def _rows(path: Path) -> List[List[str]]:
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


def _forks_by_url(path: Path) -> Dict[str, int]:
    fork_column = CSV_HEADER.index("FORK_COUNT")
    return {row[0]: int(row[fork_column]) for row in _rows(path)[1:]}


def _five_roots() -> Dict[str, FakeRoot]:
    return {f"r{i}": FakeRoot([_repo(repo_id)]) for i, repo_id in enumerate("abcde", start=1)}


def test_failed_repository_is_counted_and_skipped(tmp_path: Path, catalog_store) -> None:
    records = [
        make_record("a", [_endpoint("a")], "r1"),
        make_record("b", [_endpoint("b")], "r2"),
        make_record("c", [_endpoint("c")], None, "r3"),
        make_record("d", [_endpoint("d")], "r4"),
        make_record("e", [_endpoint("e")], "r5"),
    ]
    store = catalog_store(records)
    output = tmp_path / "result.csv"

    summary = ExportPipeline(store, FakeTransactioner(_five_roots()), workers=3).run(output)

    assert (summary.processed, summary.failed, summary.total) == (4, 1, 5)
    assert (summary.written, summary.expected, summary.cancelled) == (4, 5, False)
    rows = _rows(output)
    assert rows[0] == CSV_HEADER
    assert sorted(row[0] for row in rows[1:]) == [_endpoint(r) for r in "abde"]


def _shared_setup() -> tuple:
    roots = {
        "r1": FakeRoot([_repo("a")]),
        "r2": FakeRoot([_repo("b")]),
        "r3": FakeRoot([_repo("c")]),
        "shared": FakeRoot([_repo("a"), _repo("b"), _repo("d")]),
    }
    records = [
        make_record("a", [_endpoint("a")], "r1", "shared"),
        make_record("b", [_endpoint("b")], "r2", "shared"),
        make_record("c", [_endpoint("c")], "r3"),
        make_record("d", [_endpoint("d")], None, "shared"),
    ]
    return roots, records


def test_sweep_forks_count_only_processed_peers(tmp_path: Path, catalog_store) -> None:
    roots, records = _shared_setup()
    output = tmp_path / "result.csv"

    summary = ExportPipeline(
        catalog_store(records), FakeTransactioner(roots), workers=2, fork_mode="sweep"
    ).run(output)

    assert (summary.processed, summary.failed) == (3, 1)
    assert _forks_by_url(output) == {_endpoint("a"): 1, _endpoint("b"): 1, _endpoint("c"): 0}


def test_eager_forks_count_every_fetched_peer(tmp_path: Path, catalog_store) -> None:
    roots, records = _shared_setup()
    output = tmp_path / "result.csv"

    summary = ExportPipeline(
        catalog_store(records), FakeTransactioner(roots), workers=2, fork_mode="eager"
    ).run(output)

    assert (summary.processed, summary.failed) == (3, 1)
    assert _forks_by_url(output) == {_endpoint("a"): 2, _endpoint("b"): 2, _endpoint("c"): 0}


def test_no_concurrent_views_on_a_shared_root(tmp_path: Path, catalog_store) -> None:
    ids = "abcdefgh"
    roots = {"shared": FakeRoot([_repo(repo_id) for repo_id in ids])}
    records = [make_record(repo_id, [_endpoint(repo_id)], "shared") for repo_id in ids]
    transactioner = FakeTransactioner(roots, delay=0.005)
    output = tmp_path / "result.csv"

    summary = ExportPipeline(catalog_store(records), transactioner, workers=4).run(output)

    assert summary.processed == len(ids)
    assert transactioner.recorder.overlaps == []
    assert transactioner.recorder.max_active["shared"] == 1
    assert set(_forks_by_url(output).values()) == {len(ids) - 1}


def test_cancel_keeps_rows_already_written(
    tmp_path: Path, catalog_store, monkeypatch: pytest.MonkeyPatch
) -> None:
    records = [
        make_record(repo_id, [_endpoint(repo_id)], f"r{i}")
        for i, repo_id in enumerate("abcde", start=1)
    ]
    gate = threading.Event()
    transactioner = FakeTransactioner(_five_roots(), blocked={"r3", "r4", "r5"}, gate=gate)
    cancel = threading.Event()
    original_write = StreamingExporter.write

    def write_then_cancel(self: StreamingExporter, record: ExportRecord) -> None:
        original_write(self, record)
        if self.written >= 2:
            cancel.set()

    monkeypatch.setattr(StreamingExporter, "write", write_then_cancel)
    output = tmp_path / "result.csv"

    try:
        summary = ExportPipeline(
            catalog_store(records),
            transactioner,
            workers=5,
            fork_mode="eager",
            poll_interval=0.01,
        ).run(output, cancel=cancel)
    finally:
        gate.set()

    assert summary.cancelled
    assert (summary.written, summary.expected) == (2, 5)
    rows = _rows(output)
    assert len(rows) == 3
    assert {row[0] for row in rows[1:]} == {_endpoint("a"), _endpoint("b")}


def test_sweep_cancelled_before_flush_writes_header_only(tmp_path: Path, catalog_store) -> None:
    records = [make_record("a", [_endpoint("a")], "r1")]
    cancel = threading.Event()
    cancel.set()
    output = tmp_path / "result.csv"

    summary = ExportPipeline(
        catalog_store(records), FakeTransactioner(_five_roots()), poll_interval=0.01
    ).run(output, cancel=cancel)

    assert summary.cancelled
    assert summary.written == 0
    assert _rows(output) == [CSV_HEADER]


def test_malformed_catalog_entry_counts_as_failed(tmp_path: Path) -> None:
    catalog = tmp_path / "repositories.json"
    catalog.write_text(
        json.dumps(
            {
                "version": 1,
                "repositories": [
                    {
                        "id": "a",
                        "status": "fetched",
                        "endpoints": [_endpoint("a")],
                        "references": [
                            {"name": "refs/heads/HEAD", "hash": "0" * 40, "init": "r1"}
                        ],
                    },
                    {"id": "broken", "status": "fetched", "endpoints": [], "references": []},
                    {"id": "later", "status": "pending", "endpoints": ["x"], "references": []},
                ],
            }
        ),
        encoding="utf-8",
    )

    summary = ExportPipeline(RepositoryStore(catalog), FakeTransactioner(_five_roots())).run(
        tmp_path / "result.csv"
    )

    assert (summary.processed, summary.failed, summary.total) == (1, 1, 2)


def test_limit_and_offset_window_the_catalog(tmp_path: Path, catalog_store) -> None:
    records = [
        make_record(repo_id, [_endpoint(repo_id)], f"r{i}")
        for i, repo_id in enumerate("abcde", start=1)
    ]
    output = tmp_path / "result.csv"

    summary = ExportPipeline(
        catalog_store(records), FakeTransactioner(_five_roots()), limit=2, offset=1
    ).run(output)

    assert summary.total == 2
    assert sorted(row[0] for row in _rows(output)[1:]) == [_endpoint("b"), _endpoint("c")]


def test_missing_catalog_is_fatal(tmp_path: Path) -> None:
    output = tmp_path / "result.csv"

    with pytest.raises(CatalogError):
        export(RepositoryStore(tmp_path / "missing.json"), FakeTransactioner({}), output)
    assert not output.exists()


def test_export_uses_config_settings(tmp_path: Path, catalog_store) -> None:
    roots, records = _shared_setup()
    config = CensusConfig(root=tmp_path, workers=2, fork_mode="eager")
    output = tmp_path / "out" / "result.csv"

    summary = export(catalog_store(records), FakeTransactioner(roots), output, config=config)

    assert summary.processed + summary.failed == summary.total
    assert _forks_by_url(output)[_endpoint("a")] == 2


def _many_records(count: int) -> tuple:
    ids = [f"repo{index:02d}" for index in range(count)]
    roots = {f"r{index}": FakeRoot([_repo(repo_id)]) for index, repo_id in enumerate(ids)}
    records = [
        make_record(repo_id, [_endpoint(repo_id)], f"r{index}") for index, repo_id in enumerate(ids)
    ]
    return roots, records


def test_cancelled_run_submits_no_further_repositories(tmp_path: Path, catalog_store) -> None:
    roots, records = _many_records(20)
    transactioner = FakeTransactioner(roots)
    cancel = threading.Event()
    cancel.set()

    summary = ExportPipeline(
        catalog_store(records), transactioner, workers=1, fork_mode="eager", poll_interval=0.01
    ).run(tmp_path / "result.csv", cancel=cancel)
    time.sleep(0.3)

    assert summary.cancelled
    assert transactioner.transactions == []
    assert summary.processed == 0


def test_cancel_mid_run_lets_only_running_units_finish(tmp_path: Path, catalog_store) -> None:
    roots, records = _many_records(10)
    gate = threading.Event()
    transactioner = FakeTransactioner(roots, blocked={"r0"}, gate=gate)
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()

    try:
        summary = ExportPipeline(
            catalog_store(records), transactioner, workers=1, fork_mode="eager", poll_interval=0.01
        ).run(tmp_path / "result.csv", cancel=cancel)
    finally:
        gate.set()
        timer.join()
    time.sleep(0.3)

    assert summary.cancelled
    assert summary.written == 0
    assert {tx.root for tx in transactioner.transactions} == {"r0"}
