"""CLI entrypoint for the repocensus export."""

from __future__ import annotations

import argparse
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import CONFIG_FILENAME, FORK_MODES, load_config
from .errors import RepocensusError
from .git.storage import GitTransactioner
from .logging import configure_logging, get_logger
from .pipeline import export
from .stores.repositories import RepositoryStore

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repocensus",
        description="Export per-repository metadata from rooted git storage to a CSV file.",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="CSV file path with the results (defaults to result.csv).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Show debug logs.",
    )
    parser.add_argument(
        "--logfile",
        type=Path,
        default=None,
        help="Write logs to this file instead of the console.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(CONFIG_FILENAME),
        help=f"Path to the configuration file (defaults to {CONFIG_FILENAME}).",
    )
    parser.add_argument(
        "--storage",
        type=Path,
        default=None,
        help="Directory holding one bare repository per storage root.",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="JSON catalog of repository records.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of repositories processed concurrently (defaults to CPU count).",
    )
    parser.add_argument("--limit", type=int, default=None, help="Export at most N repositories.")
    parser.add_argument("--offset", type=int, default=None, help="Skip the first N repositories.")
    parser.add_argument(
        "--fork-mode",
        choices=FORK_MODES,
        default=None,
        help="When fork counts are computed relative to processing.",
    )
    return parser


@contextmanager
def _interruptible(cancel: threading.Event) -> Iterator[None]:
    """Set ``cancel`` on SIGINT while the block runs."""

    def _handler(signum: int, frame: object) -> None:
        get_logger("cli").warning("Interrupt received, stopping export")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for repocensus."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(verbose=bool(args.debug), log_file=args.logfile)
    except OSError as exc:
        parser.exit(EXIT_FAILURE, f"unable to create log file {args.logfile}: {exc}\n")

    try:
        config = load_config(args.config).with_overrides(
            output=args.output,
            path=args.storage,
            catalog=args.catalog,
            workers=args.workers,
            limit=args.limit,
            offset=args.offset,
            fork_mode=args.fork_mode,
        )
    except RepocensusError as exc:
        parser.exit(EXIT_FAILURE, f"invalid configuration: {exc}\n")

    store = RepositoryStore(config.storage.catalog)
    transactioner = GitTransactioner(config.storage.path, scratch_dir=config.storage.scratch_dir)
    cancel = threading.Event()

    try:
        with _interruptible(cancel):
            summary = export(store, transactioner, config.output, config=config, cancel=cancel)
    except RepocensusError as exc:
        parser.exit(EXIT_FAILURE, f"repocensus export failed: {exc}\nRun with --debug for more details.\n")
    except Exception as exc:  # pragma: no cover - defensive guard
        parser.exit(EXIT_FAILURE, f"repocensus export failed: {exc}\nRun with --debug for more details.\n")

    if summary.cancelled:
        parser.exit(
            EXIT_CANCELLED,
            f"Export cancelled: wrote {summary.written} of {summary.expected} records to {config.output}\n",
        )
    print(
        f"Exported {summary.written} repositories to {config.output} "
        f"(processed={summary.processed} failed={summary.failed} total={summary.total})"
    )


__all__ = ["main"]
