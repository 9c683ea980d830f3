"""Inbox triage: arrivals from external sources, dismiss, and convert-to-todo.

Items are terminal once they leave ``pending``. Arrivals are deduplicated
by the originating system's id (``sourceId``), backed by a uniqueness
constraint on (source, sourceId) in the store.

Conversion writes the todo under the deterministic id ``inbox-<itemId>``
before marking the item converted, so a retry after a failed status update
finds the todo already there instead of creating a second one.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from goalpost.errors import DuplicateSourceItem, InboxStateError
from goalpost.models import INBOX_SOURCES, InboxItem, iso
from goalpost.store import INBOX, DocumentStore
from goalpost.todos import create_todo
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)

BULK_DEFAULTS = {"categoryId": "professional", "priority": "medium"}


def converted_todo_id(item_id: str) -> str:
    return f"inbox-{item_id}"


# ── Views ─────────────────────────────────────────────────────


def pending_items(items: Iterable[InboxItem], source: str | None = None) -> list[InboxItem]:
    return [i for i in items if i.status == "pending" and (source is None or i.source == source)]


def count_by_source(items: Iterable[InboxItem]) -> dict[str, int]:
    counts = {source: 0 for source in INBOX_SOURCES}
    for item in pending_items(items):
        if item.source in counts:
            counts[item.source] += 1
    return counts


# ── Store operations ──────────────────────────────────────────


def load_items(store: DocumentStore, owner: str, status: str | None = None) -> list[InboxItem]:
    where = {"status": status} if status else None
    docs = store.query(owner, INBOX, where=where, order_by="createdAt", descending=True)
    return [InboxItem.from_dict(d) for d in docs]


def get_item(store: DocumentStore, owner: str, item_id: str) -> InboxItem | None:
    doc = store.get(owner, INBOX, item_id)
    return InboxItem.from_dict(doc) if doc else None


def add_item(store: DocumentStore, owner: str, data: dict[str, Any]) -> str | None:
    """Insert an arrival as a pending item. Returns None if its sourceId is already present."""
    source_id = data.get("sourceId")
    if source_id and store.find_one(owner, INBOX, {"sourceId": source_id}):
        logger.info("Discarding duplicate inbox arrival %s for %s", source_id, owner)
        return None

    now = now_local(store.root)
    item = InboxItem.from_dict({**data, "userId": owner})
    item.status = "pending"
    item.created_at = item.updated_at = now
    unique_on = ("source", "sourceId") if item.source_id else None
    try:
        return store.create(owner, INBOX, item.to_dict(), unique_on=unique_on)
    except DuplicateSourceItem:
        logger.info("Discarding duplicate inbox arrival %s for %s", source_id, owner)
        return None


def dismiss(store: DocumentStore, owner: str, item_id: str) -> bool:
    """Mark a pending item dismissed. Missing or already-triaged items are left alone."""
    item = get_item(store, owner, item_id)
    if item is None or item.status != "pending":
        return False
    return store.update(
        owner, INBOX, item_id, {"status": "dismissed", "updatedAt": iso(now_local(store.root))}
    )


def bulk_dismiss(store: DocumentStore, owner: str, item_ids: Iterable[str]) -> int:
    return sum(1 for item_id in item_ids if dismiss(store, owner, item_id))


def convert(
    store: DocumentStore, owner: str, item_id: str, todo_fields: dict[str, Any] | None = None
) -> str | None:
    """Turn a pending item into a todo and return the todo id.

    Title and description default to the item's own. Returns None for an
    unknown item; raises InboxStateError when the item is not pending.
    """
    item = get_item(store, owner, item_id)
    if item is None:
        return None
    if item.status != "pending":
        raise InboxStateError(f"Inbox item {item_id} is already {item.status}")

    fields = {k: v for k, v in (todo_fields or {}).items() if v is not None}
    data = {
        "title": item.title,
        "description": item.description,
        **fields,
        "source": "inbox",
        "sourceId": item_id,
    }
    todo = create_todo(store, owner, data, doc_id=converted_todo_id(item_id))

    now = iso(now_local(store.root))
    store.update(
        owner, INBOX, item_id,
        {"status": "converted", "convertedToId": todo.id, "convertedAt": now, "updatedAt": now},
    )
    logger.info("Converted inbox item %s to todo %s", item_id, todo.id)
    return todo.id


def bulk_convert(
    store: DocumentStore, owner: str, item_ids: Iterable[str], defaults: dict[str, Any] | None = None
) -> list[str]:
    """Convert every pending item in item_ids with shared todo defaults; others are skipped."""
    fields = {**BULK_DEFAULTS, **{k: v for k, v in (defaults or {}).items() if v}}
    fields["status"] = "pending"
    created = []
    for item_id in item_ids:
        item = get_item(store, owner, item_id)
        if item is None or item.status != "pending":
            logger.debug("Skipping inbox item %s in bulk convert", item_id)
            continue
        todo_id = convert(store, owner, item_id, fields)
        if todo_id:
            created.append(todo_id)
    return created
