from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator, Sequence

import pytest

from repocensus.models import RepositoryRecord
from repocensus.stores.repositories import RepositoryStore


@pytest.fixture
def catalog_store(tmp_path: Path) -> Callable[[Sequence[RepositoryRecord]], RepositoryStore]:
    """Provide a factory persisting records to a catalog under tmp_path."""

    def _build(records: Sequence[RepositoryRecord]) -> RepositoryStore:
        store = RepositoryStore(tmp_path / "repositories.json")
        store.save(records)
        return store

    return _build


@pytest.fixture(autouse=True)
def _reset_repocensus_logger() -> Iterator[None]:
    """Undo handlers installed by configure_logging so caplog keeps working."""
    yield
    logger = logging.getLogger("repocensus")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
