from .movie import (
    BaseRecord,
    ENRICHABLE_FIELDS,
    ListState,
    MediaType,
    MovieItem,
    ReEnrichResult,
    Recommendation,
    SourceRecord,
    SyncResult,
    is_unknown,
)

__all__ = [
    "BaseRecord",
    "ENRICHABLE_FIELDS",
    "ListState",
    "MediaType",
    "MovieItem",
    "ReEnrichResult",
    "Recommendation",
    "SourceRecord",
    "SyncResult",
    "is_unknown",
]
