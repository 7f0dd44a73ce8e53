from .enrichment import EnrichmentResult, MetadataEnricher
from .identity import IdentityResolver
from .list_state import ListStateMachine
from .query import QueryEngine
from .reconcile import ReconcileOutcome, Reconciler

__all__ = [
    "EnrichmentResult",
    "IdentityResolver",
    "ListStateMachine",
    "MetadataEnricher",
    "QueryEngine",
    "ReconcileOutcome",
    "Reconciler",
]
