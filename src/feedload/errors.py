"""Error types raised by feedload.

A missing source file is not an error: the loader reports it through
``LoadOutcome.found``. Everything here propagates to the caller untouched.
"""

from pathlib import Path


class FeedLoadError(Exception):
    """Base error for all feedload errors."""


class StoreError(FeedLoadError):
    """A failure reported by the relational store."""


class StoreOpenError(StoreError):
    """Raised when the store cannot be opened or configured."""


class StatementError(StoreError):
    """Raised when a statement fails; carries the store's own diagnostic."""

    def __init__(self, message: str, sql: str | None = None) -> None:
        self.sql = sql
        super().__init__(message)


class StatementTimeoutError(StatementError):
    """Raised when a batch does not settle before its deadline."""


class ProbeError(FeedLoadError):
    """Raised when a source file exists but cannot be inspected or opened."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot access {path}: {reason}")


class ParseError(FeedLoadError):
    """Raised for malformed tabular input."""

    def __init__(self, path: Path, line: int | None, reason: str) -> None:
        self.path = path
        self.line = line
        where = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"{where}: {reason}")


class HeaderError(ParseError):
    """Raised when a header column name cannot be used as an identifier."""
