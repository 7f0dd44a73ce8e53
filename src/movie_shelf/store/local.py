"""File-backed collection store used when no remote store is configured."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import re
import tempfile
from collections.abc import Sequence
from pathlib import Path

from movie_shelf.errors import StoreUnavailable
from movie_shelf.models import MovieItem
from movie_shelf.store.base import CollectionStore, decode_snapshot, encode_snapshot, prepare_snapshot

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def partition_filename(user_id: str) -> str:
    """Map an opaque user id onto a filesystem-safe file name.

    The readable prefix is lossy, so a digest of the raw id keeps distinct
    users in distinct files.
    """
    safe = _UNSAFE_CHARS.sub("_", user_id.strip()).strip("._")[:64]
    digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:12]
    return f"{safe or 'default'}-{digest}.json"


class LocalCollectionStore(CollectionStore):
    """Stores each partition as a JSON file, cached in-process after first read."""

    name = "local"

    def __init__(self, data_dir: Path | str) -> None:
        self._root = Path(data_dir).expanduser() / "collections"
        self._cache: dict[str, tuple[MovieItem, ...]] = {}

    def path_for(self, user_id: str) -> Path:
        return self._root / partition_filename(user_id)

    async def load_all(self, user_id: str) -> list[MovieItem]:
        path = self.path_for(user_id)
        cached = self._cache.get(path.name)
        if cached is not None:
            return list(cached)

        items = await asyncio.to_thread(self._read, path)
        self._cache[path.name] = tuple(items)
        return list(items)

    async def save_all(self, user_id: str, items: Sequence[MovieItem]) -> None:
        snapshot = prepare_snapshot(items)
        payload = encode_snapshot(snapshot)
        path = self.path_for(user_id)
        await asyncio.to_thread(self._write_atomic, path, payload)
        # Only reached once the new file is in place.
        self._cache[path.name] = tuple(snapshot)
        logger.debug("Saved %d items for %s", len(snapshot), user_id)

    def invalidate(self, user_id: str | None = None) -> None:
        """Drop cached snapshots so the next load reads from disk."""
        if user_id is None:
            self._cache.clear()
        else:
            self._cache.pop(partition_filename(user_id), None)

    @staticmethod
    def _read(path: Path) -> list[MovieItem]:
        try:
            payload = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read collection file {path}: {exc}") from exc
        return decode_snapshot(payload, origin=str(path))

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write collection file {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temporary file %s", tmp_name)


__all__ = ["LocalCollectionStore", "partition_filename"]
