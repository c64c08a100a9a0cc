"""Exception hierarchy shared by adapters, stores and the orchestrator."""
from __future__ import annotations


class IngestError(Exception):
    """Base class for item-level ingestion failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class FetchError(IngestError):
    """Raised when an upstream source is unreachable or returns a bad payload."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class NotFoundError(FetchError):
    """Raised when a detail endpoint reports no movie for a slug."""


class FilteredOut(IngestError):
    """Raised when the type rule excludes an item before any write."""

    def __init__(self, message: str, *, movie_type: str) -> None:
        super().__init__(message)
        self.movie_type = movie_type


class PersistenceError(IngestError):
    """Raised when a catalog write or read fails."""


class InvalidInputError(IngestError):
    """Raised for malformed work items, page ranges or unknown sources."""
