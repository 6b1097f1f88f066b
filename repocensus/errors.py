"""Exception hierarchy shared across repocensus components."""

from __future__ import annotations


class RepocensusError(RuntimeError):
    """Base class for every error raised by repocensus."""


class ConfigError(RepocensusError):
    """Raised when the configuration file cannot be parsed."""


class CatalogError(RepocensusError):
    """Raised when the repository catalog cannot be read or decoded."""


class StorageError(RepocensusError):
    """Raised when a storage root cannot be opened or read."""


class ProcessingError(RepocensusError):
    """Raised when a single repository cannot be processed."""


class MissingHeadError(ProcessingError):
    """Raised when a repository record has no HEAD reference."""


class UnknownRepositoryError(ProcessingError):
    """Raised when no remote in a storage root matches the repository endpoints."""


class ExportError(RepocensusError):
    """Raised when the output destination cannot be created or written."""


__all__ = [
    "CatalogError",
    "ConfigError",
    "ExportError",
    "MissingHeadError",
    "ProcessingError",
    "RepocensusError",
    "StorageError",
    "UnknownRepositoryError",
]
