"""Rollback-only transactional views over storage roots backed by GitPython.

A storage directory holds one bare repository per root, ``<root>.git``. Every
logical repository stored in a root is a git remote named after the repository
id, with the repository's endpoints as its URLs, and its references are kept
as ``refs/heads/HEAD/<id>``, ``refs/heads/<branch>/<id>`` and
``refs/tags/<tag>/<id>``.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import git
from git.exc import BadName, GitError

from ..errors import StorageError, UnknownRepositoryError
from ..logging import get_logger

_TAG_PREFIX = "refs/tags/"


@dataclass(frozen=True)
class FileEntry:
    """A file of a commit tree with its content."""

    path: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class Transaction(Protocol):
    """Read-only view onto a single storage root that must always be rolled back."""

    root: str

    def repository_id(self, endpoints: Sequence[str]) -> str:
        """Return the id of the repository whose remote URLs match ``endpoints``."""

    def head(self, repository_id: str) -> str:
        """Return the commit the repository's HEAD reference points to."""

    def head_files(self, commit: str) -> List[FileEntry]:
        """Return every file of the tree of ``commit``."""

    def count_commits(self, commit: str) -> int:
        """Return the number of commits reachable from ``commit``."""

    def count_root_commits(self) -> int:
        """Return the number of commits reachable from any branch reference."""

    def reference_names(self) -> List[str]:
        """Return the full names of every reference in the root."""

    def rollback(self) -> None:
        """Discard the view. Safe to call more than once."""


class Transactioner(Protocol):
    def begin(self, root: str) -> Transaction:
        """Open a rollback-only view of ``root``."""


class GitTransaction:
    """A transaction over a private copy of a bare repository."""

    def __init__(self, root: str, repo: git.Repo, scratch: Path) -> None:
        self.root = root
        self._repo: Optional[git.Repo] = repo
        self._scratch = scratch
        self.logger = get_logger("storage")

    def __enter__(self) -> "GitTransaction":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.rollback()

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            raise StorageError(f"transaction on root {self.root} was rolled back")
        return self._repo

    def repository_id(self, endpoints: Sequence[str]) -> str:
        wanted = set(endpoints)
        try:
            remotes = sorted(self.repo.remotes, key=lambda remote: remote.name)
            for remote in remotes:
                for url in remote.urls:
                    if url in wanted:
                        return remote.name
        except GitError as exc:
            raise StorageError(f"unable to read remotes of root {self.root}: {exc}") from exc
        raise UnknownRepositoryError(
            f"unable to guess the repository from config of root {self.root}"
        )

    def head(self, repository_id: str) -> str:
        name = f"refs/heads/HEAD/{repository_id}"
        try:
            return self.repo.commit(name).hexsha
        except (BadName, GitError, ValueError) as exc:
            raise StorageError(f"unable to resolve {name} in root {self.root}: {exc}") from exc

    def head_files(self, commit: str) -> List[FileEntry]:
        try:
            tree = self.repo.commit(commit).tree
            return [
                FileEntry(path=item.path, content=item.data_stream.read())
                for item in tree.traverse()
                if item.type == "blob"
            ]
        except (BadName, GitError, ValueError) as exc:
            raise StorageError(f"can't get files of commit {commit}: {exc}") from exc

    def count_commits(self, commit: str) -> int:
        try:
            return _parse_count(self.repo.git.rev_list("--count", commit))
        except (BadName, GitError, ValueError) as exc:
            raise StorageError(f"can't count commits from {commit}: {exc}") from exc

    def count_root_commits(self) -> int:
        try:
            return _parse_count(
                self.repo.git.rev_list("--count", f"--exclude={_TAG_PREFIX}*", "--all")
            )
        except (BadName, GitError, ValueError) as exc:
            raise StorageError(f"can't count commits of root {self.root}: {exc}") from exc

    def reference_names(self) -> List[str]:
        try:
            return sorted(ref.path for ref in self.repo.references)
        except (GitError, ValueError) as exc:
            raise StorageError(f"can't get references of root {self.root}: {exc}") from exc

    def rollback(self) -> None:
        repo, self._repo = self._repo, None
        if repo is None:
            return
        repo.close()
        shutil.rmtree(self._scratch, ignore_errors=True)
        self.logger.debug("Rolled back transaction on root %s", self.root)


class GitTransactioner:
    """Begins transactions over the bare repositories in ``storage_path``."""

    def __init__(self, storage_path: Path, scratch_dir: Path | None = None) -> None:
        self.storage_path = Path(storage_path)
        self.scratch_dir = scratch_dir

    def root_path(self, root: str) -> Path:
        return self.storage_path / f"{root}.git"

    def begin(self, root: str) -> GitTransaction:
        source = self.root_path(root)
        if not source.is_dir():
            raise StorageError(f"storage root {root} not found in {self.storage_path}")

        scratch = Path(tempfile.mkdtemp(prefix="repocensus-tx-", dir=self.scratch_dir))
        target = scratch / source.name
        try:
            shutil.copytree(source, target, symlinks=True)
            repo = git.Repo(target)
        except (OSError, GitError) as exc:
            shutil.rmtree(scratch, ignore_errors=True)
            raise StorageError(f"can't start transaction on root {root}: {exc}") from exc
        return GitTransaction(root, repo, scratch)


def _parse_count(output: str) -> int:
    try:
        return int(output.strip() or 0)
    except ValueError as exc:
        raise StorageError(f"unexpected commit count output: {output!r}") from exc


__all__ = [
    "FileEntry",
    "GitTransaction",
    "GitTransactioner",
    "Transaction",
    "Transactioner",
]
