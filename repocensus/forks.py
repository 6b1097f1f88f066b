"""Fork counting across repositories that share storage roots."""

from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Iterable, Sequence

from .logging import get_logger
from .models import ExportRecord

_logger = get_logger("forks")


class ForkAggregator:
    """Counts, per storage root, how many repositories list it.

    A repository's fork count is the sum over its roots of the other
    repositories listing the same root. Pairs sharing several roots are
    counted once per shared root.
    """

    def __init__(self) -> None:
        self._members: Counter[str] = Counter()
        self._lock = threading.Lock()

    def add(self, roots: Iterable[str]) -> None:
        """Register one repository listing ``roots``."""
        distinct = set(roots)
        with self._lock:
            self._members.update(distinct)

    def fork_count(self, roots: Iterable[str]) -> int:
        """Return the fork count of a registered repository listing ``roots``."""
        with self._lock:
            return sum(max(self._members[root] - 1, 0) for root in set(roots))

    def apply(self, records: Sequence[ExportRecord]) -> None:
        """Register ``records`` and set the fork count of each of them."""
        for record in records:
            self.add(record.siva_files)
        for record in records:
            record.forks = self.fork_count(record.siva_files)


def set_forks(records: Sequence[ExportRecord]) -> None:
    """Set fork counts on ``records`` considering only each other as peers."""
    _logger.debug("Setting forks for %d repositories", len(records))
    start = time.perf_counter()
    ForkAggregator().apply(records)
    _logger.debug("Finished setting forks in %.3fs", time.perf_counter() - start)


__all__ = ["ForkAggregator", "set_forks"]
