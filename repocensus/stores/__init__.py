"""Persistent stores used by repocensus."""

from .repositories import RepositoryQuery, RepositoryResultSet, RepositoryStore

__all__ = ["RepositoryQuery", "RepositoryResultSet", "RepositoryStore"]
