"""Storage access for repositories kept in shared git roots."""

from .storage import FileEntry, GitTransaction, GitTransactioner, Transaction, Transactioner

__all__ = [
    "FileEntry",
    "GitTransaction",
    "GitTransactioner",
    "Transaction",
    "Transactioner",
]
