from .base import CollectionStore
from .factory import build_store
from .local import LocalCollectionStore

__all__ = ["CollectionStore", "LocalCollectionStore", "build_store"]
