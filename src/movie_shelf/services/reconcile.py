"""Merging freshly fetched source records into a stored collection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from movie_shelf.errors import InvalidIdentity
from movie_shelf.models import ENRICHABLE_FIELDS, MovieItem, SourceRecord, is_unknown
from movie_shelf.services.identity import IdentityResolver, resolver as default_resolver

logger = logging.getLogger(__name__)

# Fields the source is authoritative for; they overwrite stored values when provided.
SOURCE_FIELDS: tuple[str, ...] = ("title", "year", "date", "type")


@dataclass
class ReconcileOutcome:
    items: list[MovieItem]
    added: int = 0
    updated: int = 0
    skipped: int = 0
    pending: list[str] = field(default_factory=list)


class Reconciler:
    """Merges source records into an existing collection without losing user state.

    Source fields overwrite, user fields and list state are kept, metadata is
    only filled where the stored value is empty. Records the incoming batch
    cannot key are skipped and counted.
    """

    def __init__(self, resolver: IdentityResolver | None = None) -> None:
        self._resolver = resolver or default_resolver

    def reconcile(
        self,
        existing: Sequence[MovieItem],
        incoming: Iterable[SourceRecord | Mapping[str, Any]],
    ) -> ReconcileOutcome:
        items: dict[str, MovieItem] = {}
        for item in existing:
            try:
                items[self._resolver.key(item)] = item
            except InvalidIdentity:
                logger.warning("Dropping stored item without identity: %s", item.title)

        # Source id -> IMDb key, for records that carry both ids.
        aliases: dict[str, str] = {}
        # Source id -> key, for records still waiting on an IMDb id.
        id_only: dict[str, str] = {}
        for key, item in items.items():
            id_key = self._resolver.id_key(item)
            if id_key is None:
                continue
            if item.imdb_id:
                aliases.setdefault(id_key, key)
            else:
                id_only[id_key] = key

        # Stored id-only records whose IMDb id is already known elsewhere.
        for id_key, old_key in list(id_only.items()):
            target = aliases.get(id_key)
            if target is not None:
                items[target] = fold_item(items[target], items.pop(old_key))
                del id_only[id_key]
                logger.info("Folded %s into %s (%s)", old_key, target, items[target].title)

        added: set[str] = set()
        updated: set[str] = set()
        touched: list[str] = []
        skipped = 0

        for raw in incoming:
            record = _coerce(raw)
            if record is None:
                skipped += 1
                continue
            try:
                key = self._resolver.key(record)
            except InvalidIdentity as exc:
                logger.debug("Skipping record: %s", exc)
                skipped += 1
                continue

            id_key = self._resolver.id_key(record)
            if id_key is not None:
                if not record.imdb_id:
                    key = aliases.get(id_key, key)
                else:
                    old_key = id_only.get(id_key)
                    previous = items.get(old_key) if old_key is not None else None
                    if (
                        previous is not None
                        and old_key != key
                        and self._resolver.is_upgrade(previous, record)
                    ):
                        self._upgrade(items, record, key, old_key)
                        del id_only[id_key]
                        for bucket in (added, updated):
                            if old_key in bucket:
                                bucket.discard(old_key)
                                bucket.add(key)
                        if key in added:
                            updated.discard(key)
                        renamed = (key if name == old_key else name for name in touched)
                        touched = list(dict.fromkeys(renamed))
                    aliases.setdefault(id_key, key)

            current = items.get(key)
            if current is None:
                created = _new_item(record)
                if created is None:
                    logger.debug("Skipping untitled record %s", key)
                    skipped += 1
                    continue
                items[key] = created
                added.add(key)
            else:
                items[key] = merge_item(current, record)
                if key not in added:
                    updated.add(key)

            if not record.imdb_id and id_key == key:
                id_only[id_key] = key
            if key not in touched:
                touched.append(key)

        merged = self._resolver.dedupe(items.values())
        pending = [key for key in touched if key in items and _needs_enrichment(items[key])]
        logger.debug(
            "Reconciled %d records: %d added, %d updated, %d skipped",
            len(touched),
            len(added),
            len(updated),
            skipped,
        )
        return ReconcileOutcome(
            items=merged,
            added=len(added),
            updated=len(updated),
            skipped=skipped,
            pending=pending,
        )

    @staticmethod
    def _upgrade(items: dict[str, MovieItem], record: SourceRecord, key: str, old_key: str) -> None:
        """Move an id-only record onto the IMDb key, folding it into any record already there."""
        old = items.pop(old_key)
        current = items.get(key)
        if current is None:
            items[key] = old.model_copy(update={"imdb_id": record.imdb_id})
            logger.info("Upgraded identity %s -> %s (%s)", old_key, key, old.title)
        else:
            items[key] = fold_item(current, old)
            logger.info("Folded %s into %s (%s)", old_key, key, current.title)


def fold_item(primary: MovieItem, duplicate: MovieItem) -> MovieItem:
    """Merge a duplicate record of the same title into ``primary``.

    Fields set on ``primary`` win; the duplicate only fills what is unset,
    including the user's rating, note and list state.
    """
    update: dict[str, Any] = {}
    for name in ("id", "year", "date", "list_state", "user_rating", "user_note"):
        if getattr(primary, name) in (None, "") and getattr(duplicate, name) not in (None, ""):
            update[name] = getattr(duplicate, name)

    for name in ENRICHABLE_FIELDS:
        if is_unknown(getattr(primary, name)) and not is_unknown(getattr(duplicate, name)):
            update[name] = getattr(duplicate, name)

    if duplicate.plays is not None and (primary.plays is None or duplicate.plays > primary.plays):
        update["plays"] = duplicate.plays

    return primary.model_copy(update=update) if update else primary


def merge_item(current: MovieItem, record: SourceRecord) -> MovieItem:
    """Apply one source record to a stored item."""
    provided = record.model_fields_set
    update: dict[str, Any] = {}

    for name in SOURCE_FIELDS:
        value = getattr(record, name)
        if name in provided and value not in (None, "") and value != getattr(current, name):
            update[name] = value

    for name in ENRICHABLE_FIELDS:
        value = getattr(record, name)
        if is_unknown(getattr(current, name)) and not is_unknown(value):
            update[name] = value

    if record.plays is not None and (current.plays is None or record.plays > current.plays):
        update["plays"] = record.plays

    return current.model_copy(update=update) if update else current


def _needs_enrichment(item: MovieItem) -> bool:
    return bool(item.imdb_id) and bool(item.missing_fields())


def _new_item(record: SourceRecord) -> MovieItem | None:
    data = record.model_dump(exclude_none=True)
    # Watched is the default; only an explicit watchlist entry starts on the list.
    data["list_state"] = "watchlist" if record.list_state == "watchlist" else None
    try:
        return MovieItem.model_validate(data)
    except ValidationError:
        return None


def _coerce(raw: SourceRecord | Mapping[str, Any]) -> SourceRecord | None:
    if isinstance(raw, SourceRecord):
        return raw
    try:
        return SourceRecord.model_validate(raw)
    except ValidationError as exc:
        logger.debug("Skipping malformed record: %s", exc.errors()[0]["msg"])
        return None


__all__ = ["ReconcileOutcome", "Reconciler", "fold_item", "merge_item"]
