"""Concurrent repository metadata export with license classification."""

__version__ = "0.1.0"
