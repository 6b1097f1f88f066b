"""Export pipeline: fetched repositories in, one CSV row per repository out."""

from __future__ import annotations

import queue
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from .config import FORK_MODE_EAGER, FORK_MODE_SWEEP, FORK_MODES, CensusConfig
from .errors import CatalogError, ConfigError
from .exporter import END_OF_STREAM, ExportOutcome, StreamingExporter
from .forks import ForkAggregator, set_forks
from .git.storage import Transactioner
from .locker import ResourceLocker
from .logging import get_logger
from .models import STATUS_FETCHED, ExportRecord, RepositoryRecord, RunSummary, siva_file_name
from .pool import WorkerPool
from .processor import RepositoryProcessor
from .stores.repositories import RepositoryQuery, RepositoryResultSet, RepositoryStore


class _Counters:
    """Processed and failed totals shared by the workers and the producer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.processed = 0
        self.failed = 0

    def success(self) -> None:
        with self._lock:
            self.processed += 1

    def failure(self) -> None:
        with self._lock:
            self.failed += 1

    def snapshot(self) -> Tuple[int, int]:
        with self._lock:
            return self.processed, self.failed


class ExportPipeline:
    """Coordinates the worker pool, fork aggregation and streaming export.

    Repository records are read sequentially by a producer thread and handed
    to the worker pool. Completed records reach the exporter through a single
    queue, in completion order. With ``fork_mode="sweep"`` the records are
    buffered until every repository finished so fork counts only consider
    processed peers; with ``fork_mode="eager"`` fork counts come from the roots
    listed in the catalog and rows are written as soon as they complete.

    Cancellation stops the exporter and the submission of further
    repositories. Units already running finish in the background and their
    results are dropped.
    """

    def __init__(
        self,
        store: RepositoryStore,
        transactioner: Transactioner,
        *,
        workers: Optional[int] = None,
        fork_mode: str = FORK_MODE_SWEEP,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        processor: RepositoryProcessor | None = None,
        locker: ResourceLocker | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        if fork_mode not in FORK_MODES:
            raise ConfigError(f"unknown fork mode: {fork_mode}")
        self.store = store
        self.transactioner = transactioner
        self.workers = workers
        self.fork_mode = fork_mode
        self.limit = limit
        self.offset = offset
        self.locker = locker or ResourceLocker()
        self.processor = processor or RepositoryProcessor(transactioner, self.locker)
        self.poll_interval = poll_interval
        self.logger = get_logger("pipeline")

    @classmethod
    def from_config(
        cls,
        config: CensusConfig,
        store: RepositoryStore,
        transactioner: Transactioner,
    ) -> "ExportPipeline":
        locker = ResourceLocker()
        processor = RepositoryProcessor(
            transactioner,
            locker,
            hosting_marker=config.hosting_marker,
            scratch_dir=config.storage.scratch_dir,
        )
        return cls(
            store,
            transactioner,
            workers=config.workers,
            fork_mode=config.fork_mode,
            limit=config.limit,
            offset=config.offset,
            processor=processor,
            locker=locker,
        )

    def query(self) -> RepositoryQuery:
        query = RepositoryQuery().find_by_status(STATUS_FETCHED)
        if self.limit is not None:
            query = query.limit(self.limit)
        if self.offset is not None:
            query = query.offset(self.offset)
        return query

    def run(self, output: Path, *, cancel: threading.Event | None = None) -> RunSummary:
        """Export every fetched repository to ``output``.

        Raises CatalogError when the result set cannot be obtained and
        ExportError when the output file cannot be created.
        """
        cancel = cancel or threading.Event()
        query = self.query()
        total = self.store.count(query)
        results = self.store.find(query)

        aggregator: Optional[ForkAggregator] = None
        if self.fork_mode == FORK_MODE_EAGER:
            aggregator = self._seed_forks(query)

        exporter = StreamingExporter(output, poll_interval=self.poll_interval)
        exporter.open()

        counters = _Counters()
        fan_in: "queue.Queue[Optional[ExportRecord]]" = queue.Queue()
        pool = WorkerPool(self.workers)
        self.logger.info("Start processing %d repositories with %d workers", total, pool.size)
        start = time.perf_counter()

        producer = threading.Thread(
            target=self._produce,
            args=(results, pool, fan_in, counters, aggregator, cancel),
            name="repocensus-producer",
            daemon=True,
        )
        producer.start()

        try:
            if aggregator is not None:
                outcome = exporter.consume(fan_in, expected=total, cancel=cancel)
            else:
                outcome = self._sweep(exporter, fan_in, total, cancel)
        finally:
            exporter.close()

        if not outcome.cancelled:
            producer.join()
        self.logger.debug("Finished processing repositories in %.3fs", time.perf_counter() - start)

        processed, failed = counters.snapshot()
        summary = RunSummary(
            processed=processed,
            failed=failed,
            total=total,
            written=outcome.written,
            expected=outcome.expected,
            cancelled=outcome.cancelled,
        )
        if summary.cancelled:
            self.logger.warning(
                "Export interrupted: wrote %d of %d records (processed=%d failed=%d total=%d)",
                summary.written,
                summary.expected,
                processed,
                failed,
                total,
            )
        else:
            self.logger.info(
                "Finished processing all repositories: processed=%d failed=%d total=%d",
                processed,
                failed,
                total,
            )
        return summary

    def _produce(
        self,
        results: RepositoryResultSet,
        pool: WorkerPool,
        fan_in: "queue.Queue[Optional[ExportRecord]]",
        counters: _Counters,
        aggregator: Optional[ForkAggregator],
        cancel: threading.Event,
    ) -> None:
        self.logger.debug("Start submitting repositories")
        try:
            while results.next():
                if cancel.is_set():
                    self.logger.debug("Export cancelled, no more repositories are submitted")
                    break
                try:
                    record = results.get()
                except CatalogError as exc:
                    self.logger.error("Unable to get next repository: %s", exc)
                    counters.failure()
                    continue
                pool.submit(self._work, record, fan_in, counters, aggregator, cancel)
            pool.wait()
        finally:
            pool.shutdown()
            fan_in.put(END_OF_STREAM)
            self.logger.debug("Finished submitting repositories")

    def _work(
        self,
        record: RepositoryRecord,
        fan_in: "queue.Queue[Optional[ExportRecord]]",
        counters: _Counters,
        aggregator: Optional[ForkAggregator],
        cancel: threading.Event,
    ) -> None:
        if cancel.is_set():
            self.logger.debug("Skipping repository %s, export cancelled", record.id)
            return
        self.logger.debug("Starting worker for repository %s", record.id)
        result = self.processor.run(record)
        if not result.ok or result.record is None:
            counters.failure()
            return
        if aggregator is not None:
            result.record.forks = aggregator.fork_count(result.record.siva_files)
        counters.success()
        fan_in.put(result.record)
        self.logger.debug("Stopping worker for repository %s", record.id)

    def _seed_forks(self, query: RepositoryQuery) -> ForkAggregator:
        aggregator = ForkAggregator()
        seeds = self.store.find(query)
        while seeds.next():
            try:
                record = seeds.get()
            except CatalogError:
                continue
            aggregator.add(siva_file_name(root) for root in record.roots())
        return aggregator

    def _sweep(
        self,
        exporter: StreamingExporter,
        fan_in: "queue.Queue[Optional[ExportRecord]]",
        total: int,
        cancel: threading.Event,
    ) -> ExportOutcome:
        records, cancelled = self._collect(fan_in, cancel)
        if cancelled:
            self.logger.warning("Export cancelled before any record was written")
            return ExportOutcome(written=0, expected=total, cancelled=True)

        set_forks(records)
        ready: "queue.Queue[Optional[ExportRecord]]" = queue.Queue()
        for record in records:
            ready.put(record)
        ready.put(END_OF_STREAM)
        return exporter.consume(ready, expected=total, cancel=cancel)

    def _collect(
        self,
        channel: "queue.Queue[Optional[ExportRecord]]",
        cancel: threading.Event,
    ) -> Tuple[List[ExportRecord], bool]:
        records: List[ExportRecord] = []
        while not cancel.is_set():
            try:
                record = channel.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if record is END_OF_STREAM:
                return records, False
            records.append(record)
        return records, True


def export(
    store: RepositoryStore,
    transactioner: Transactioner,
    output: Path,
    *,
    config: CensusConfig | None = None,
    cancel: threading.Event | None = None,
) -> RunSummary:
    """Export all fetched repositories in ``store`` to the CSV file ``output``."""
    if config is None:
        pipeline = ExportPipeline(store, transactioner)
    else:
        pipeline = ExportPipeline.from_config(config, store, transactioner)
    return pipeline.run(output, cancel=cancel)


__all__ = ["ExportPipeline", "export"]
