"""Per-owner live cache of the four core collections.

A Session subscribes to goals, todos, check-ins and pending inbox items
when started and holds the latest immutable Snapshot. Derived views are
plain functions over a Snapshot and live next to the entity they read
(goals.py, todos.py, inbox.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from goalpost.errors import NotAuthenticated
from goalpost.models import DailyCheckIn, Goal, InboxItem, Todo
from goalpost.store import CHECK_INS, GOALS, INBOX, TODOS, DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    goals: tuple[Goal, ...] = ()
    todos: tuple[Todo, ...] = ()
    check_ins: tuple[DailyCheckIn, ...] = ()
    inbox: tuple[InboxItem, ...] = ()


def load_snapshot(store: DocumentStore, owner: str) -> Snapshot:
    """One-shot read of everything a session would subscribe to."""
    return Snapshot(
        goals=tuple(Goal.from_dict(d) for d in store.query(owner, GOALS, order_by="createdAt", descending=True)),
        todos=tuple(Todo.from_dict(d) for d in store.query(owner, TODOS, order_by="createdAt", descending=True)),
        check_ins=tuple(DailyCheckIn.from_dict(d) for d in store.query(owner, CHECK_INS, order_by="date", descending=True)),
        inbox=tuple(
            InboxItem.from_dict(d)
            for d in store.query(owner, INBOX, where={"status": "pending"}, order_by="createdAt", descending=True)
        ),
    )


class Session:
    """Subscribe/unsubscribe lifecycle for one signed-in owner."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.owner: str | None = None
        self.snapshot = Snapshot()
        self.error: str | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._listeners: list[Callable[[Snapshot], None]] = []

    def require_owner(self) -> str:
        if not self.owner:
            raise NotAuthenticated()
        return self.owner

    def on_change(self, listener: Callable[[Snapshot], None]) -> None:
        self._listeners.append(listener)

    def start(self, owner: str) -> None:
        """Begin a session for owner, replacing any previous one."""
        if self.owner is not None:
            self.stop()
        self.owner = owner
        subscriptions = [
            (GOALS, "goals", Goal, None, "createdAt"),
            (TODOS, "todos", Todo, None, "createdAt"),
            (CHECK_INS, "check_ins", DailyCheckIn, None, "date"),
            (INBOX, "inbox", InboxItem, {"status": "pending"}, "createdAt"),
        ]
        for collection, attr, model, where, order_by in subscriptions:
            self._unsubscribers.append(
                self.store.subscribe(
                    owner,
                    collection,
                    self._receiver(attr, model),
                    where=where,
                    order_by=order_by,
                    descending=True,
                    on_error=self._on_error,
                )
            )
        logger.info("Session started for %s", owner)

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.snapshot = Snapshot()
        logger.info("Session stopped for %s", self.owner)
        self.owner = None

    def _receiver(self, attr: str, model: type) -> Callable[[list[dict]], None]:
        def receive(docs: list[dict]) -> None:
            self.snapshot = replace(self.snapshot, **{attr: tuple(model.from_dict(d) for d in docs)})
            self.error = None
            for listener in self._listeners:
                listener(self.snapshot)

        return receive

    def _on_error(self, exc: Exception) -> None:
        self.error = str(exc)
