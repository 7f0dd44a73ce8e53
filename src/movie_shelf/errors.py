"""Error taxonomy shared by the collection engine."""

from __future__ import annotations


class MovieShelfError(RuntimeError):
    """Base class for collection engine failures."""


class InvalidIdentity(MovieShelfError):
    """Raised when a record carries neither an IMDb id nor a source id."""


class EnrichmentFailed(MovieShelfError):
    """Metadata lookup failed or timed out; the record is kept unenriched."""

    def __init__(self, imdb_id: str, reason: str) -> None:
        super().__init__(f"Enrichment failed for {imdb_id}: {reason}")
        self.imdb_id = imdb_id
        self.reason = reason


class NotFound(MovieShelfError):
    """Raised when an edit targets a key that is not in the collection."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Item not found: {key}")
        self.key = key


class StoreUnavailable(MovieShelfError):
    """Backend I/O failed. Retryable; previously persisted state is intact."""


__all__ = [
    "EnrichmentFailed",
    "InvalidIdentity",
    "MovieShelfError",
    "NotFound",
    "StoreUnavailable",
]
