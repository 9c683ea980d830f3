"""Per-user document store backed by the goalpost workspace.

Each (owner, collection) pair is one JSON object file mapping document id
to document body, written atomically. Writes notify live subscribers with
the full matching result set, mirroring a real-time document database.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from goalpost.errors import DuplicateSourceItem, StoreError
from goalpost.fileio import read_json, write_json_atomic
from goalpost.workspace import collection_path, users_dir, workspace_root

logger = logging.getLogger(__name__)

GOALS = "goals"
TODOS = "todos"
CHECK_INS = "checkIns"
INBOX = "inbox"
CATEGORIES = "categories"
INTEGRATIONS = "integrations"

Document = dict[str, Any]
Listener = Callable[[list[Document]], None]
ErrorListener = Callable[[Exception], None]


@dataclass
class _Subscription:
    callback: Listener
    where: dict[str, Any] | None
    order_by: str | None
    descending: bool
    on_error: ErrorListener | None


def _matches(doc: Document, where: dict[str, Any] | None) -> bool:
    if not where:
        return True
    return all(doc.get(k) == v for k, v in where.items())


def _ordered(docs: list[Document], order_by: str | None, descending: bool) -> list[Document]:
    if not order_by:
        return docs
    present = [d for d in docs if d.get(order_by) is not None]
    missing = [d for d in docs if d.get(order_by) is None]
    present.sort(key=lambda d: d[order_by], reverse=descending)
    return present + missing


class DocumentStore:
    """Document collections scoped per owner, with equality filters and live queries."""

    def __init__(self, root: Path | None = None):
        self.root = root if root is not None else workspace_root()
        self._lock = threading.RLock()
        self._subscriptions: dict[tuple[str, str], list[_Subscription]] = defaultdict(list)

    # ── Raw file access ──────────────────────────────────────

    def _load(self, owner: str, collection: str) -> dict[str, Document]:
        try:
            return read_json(collection_path(owner, collection, self.root))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read {owner}/{collection}: {e}") from e

    def _save(self, owner: str, collection: str, docs: dict[str, Document]) -> None:
        try:
            write_json_atomic(collection_path(owner, collection, self.root), docs)
        except OSError as e:
            raise StoreError(f"Cannot write {owner}/{collection}: {e}") from e

    @staticmethod
    def _with_id(doc_id: str, body: Document) -> Document:
        return {**body, "id": doc_id}

    # ── Writes ───────────────────────────────────────────────

    def create(
        self,
        owner: str,
        collection: str,
        data: Document,
        doc_id: str | None = None,
        unique_on: tuple[str, ...] | None = None,
    ) -> str:
        """Insert a document and return its id.

        With an explicit doc_id that already exists the call is a no-op.
        unique_on names fields whose combined values must not already be
        present in the collection; a clash raises DuplicateSourceItem.
        The constraint does not apply when any of those fields is unset.
        """
        body = {k: v for k, v in data.items() if k != "id"}
        with self._lock:
            docs = self._load(owner, collection)
            if doc_id is not None and doc_id in docs:
                return doc_id
            if unique_on:
                key = {f: body.get(f) for f in unique_on}
                complete = all(v not in (None, "") for v in key.values())
                if complete and any(_matches(existing, key) for existing in docs.values()):
                    raise DuplicateSourceItem(collection, key)
            new_id = doc_id or uuid.uuid4().hex
            docs[new_id] = body
            self._save(owner, collection, docs)
        self._notify(owner, collection)
        return new_id

    def update(self, owner: str, collection: str, doc_id: str, changes: Document) -> bool:
        """Merge changes into a document. Returns False if it does not exist."""
        with self._lock:
            docs = self._load(owner, collection)
            if doc_id not in docs:
                return False
            docs[doc_id].update({k: v for k, v in changes.items() if k != "id"})
            self._save(owner, collection, docs)
        self._notify(owner, collection)
        return True

    def set(self, owner: str, collection: str, doc_id: str, data: Document) -> None:
        """Create or fully replace a document under a known id."""
        with self._lock:
            docs = self._load(owner, collection)
            docs[doc_id] = {k: v for k, v in data.items() if k != "id"}
            self._save(owner, collection, docs)
        self._notify(owner, collection)

    def delete(self, owner: str, collection: str, doc_id: str) -> bool:
        with self._lock:
            docs = self._load(owner, collection)
            if docs.pop(doc_id, None) is None:
                return False
            self._save(owner, collection, docs)
        self._notify(owner, collection)
        return True

    # ── Reads ────────────────────────────────────────────────

    def get(self, owner: str, collection: str, doc_id: str) -> Document | None:
        docs = self._load(owner, collection)
        body = docs.get(doc_id)
        return self._with_id(doc_id, body) if body is not None else None

    def query(
        self,
        owner: str,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        docs = self._load(owner, collection)
        found = [self._with_id(k, v) for k, v in docs.items() if _matches(v, where)]
        return _ordered(found, order_by, descending)

    def find_one(self, owner: str, collection: str, where: dict[str, Any]) -> Document | None:
        found = self.query(owner, collection, where=where)
        return found[0] if found else None

    def owners(self) -> list[str]:
        """All owner ids that have any stored collection."""
        base = users_dir(self.root)
        if not base.exists():
            return []
        return sorted(p.name for p in base.iterdir() if p.is_dir())

    # ── Live queries ─────────────────────────────────────────

    def subscribe(
        self,
        owner: str,
        collection: str,
        callback: Listener,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        on_error: ErrorListener | None = None,
    ) -> Callable[[], None]:
        """Deliver the matching result set now and after every write.

        Returns an unsubscribe function.
        """
        sub = _Subscription(callback, where, order_by, descending, on_error)
        with self._lock:
            self._subscriptions[(owner, collection)].append(sub)
        self._deliver(owner, collection, sub)

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscriptions.get((owner, collection), [])
                if sub in subs:
                    subs.remove(sub)

        return unsubscribe

    def _deliver(self, owner: str, collection: str, sub: _Subscription) -> None:
        try:
            results = self.query(owner, collection, sub.where, sub.order_by, sub.descending)
            sub.callback(results)
        except Exception as e:
            logger.exception("Live query on %s/%s failed", owner, collection)
            if sub.on_error is not None:
                sub.on_error(e)

    def _notify(self, owner: str, collection: str) -> None:
        with self._lock:
            subs = list(self._subscriptions.get((owner, collection), []))
        for sub in subs:
            self._deliver(owner, collection, sub)
