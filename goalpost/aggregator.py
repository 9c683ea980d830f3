"""Bottom-up goal progress aggregation.

Precedence, first match wins:
1. child goals      -> rounded mean of the children's effective progress
2. linked todos     -> rounded share of completed todos
3. status           -> completed 100, not-started 0, cancelled 0
4. otherwise        -> the stored manual progress

The stored ``progress`` field is only a snapshot of this computation.
Parent links are not guaranteed acyclic, so both the child walk and the
upward refresh walk carry a visited path and raise CyclicHierarchy.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from goalpost.errors import CyclicHierarchy
from goalpost.goals import load_goals
from goalpost.models import GOAL_TIERS, Goal, Todo
from goalpost.store import GOALS, TODOS, DocumentStore
from goalpost.streaks import round_half_up
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)

STATUS_PROGRESS = {"completed": 100, "not-started": 0, "cancelled": 0}


def effective_progress(goals: Iterable[Goal], todos: Iterable[Todo], goal_id: str) -> int:
    """Computed completion percentage for goal_id (0 for an unknown id)."""
    by_id = {g.id: g for g in goals}
    children: dict[str, list[Goal]] = defaultdict(list)
    for g in by_id.values():
        if g.parent_goal_id:
            children[g.parent_goal_id].append(g)
    linked: dict[str, list[Todo]] = defaultdict(list)
    for t in todos:
        if t.goal_id:
            linked[t.goal_id].append(t)

    memo: dict[str, int] = {}

    def compute(gid: str, path: list[str]) -> int:
        if gid in path:
            raise CyclicHierarchy(path[path.index(gid):] + [gid])
        if gid in memo:
            return memo[gid]
        goal = by_id.get(gid)
        if goal is None:
            return 0

        kids = children.get(gid)
        if kids:
            values = [compute(k.id, path + [gid]) for k in kids]
            result = round_half_up(sum(values) / len(values))
        elif linked.get(gid):
            items = linked[gid]
            done = sum(1 for t in items if t.status == "completed")
            result = round_half_up(100 * done / len(items))
        elif goal.status in STATUS_PROGRESS:
            result = STATUS_PROGRESS[goal.status]
        else:
            result = goal.progress
        memo[gid] = result
        return result

    return compute(goal_id, [])


class GoalProgressAggregator:
    """Recomputes and persists goal progress for one owner."""

    def __init__(self, store: DocumentStore, owner: str):
        self.store = store
        self.owner = owner

    def _load(self) -> tuple[list[Goal], list[Todo]]:
        goals = load_goals(self.store, self.owner)
        todos = [Todo.from_dict(d) for d in self.store.query(self.owner, TODOS)]
        return goals, todos

    def effective_progress(self, goal_id: str) -> int:
        goals, todos = self._load()
        return effective_progress(goals, todos, goal_id)

    def refresh_progress(self, goal_id: str) -> list[str]:
        """Persist goal_id's progress if it changed, then walk up to its parents.

        Stops at the first goal whose stored value is already current.
        Returns the ids that were rewritten, child first.
        """
        goals, todos = self._load()
        by_id = {g.id: g for g in goals}
        path: list[str] = []
        updated: list[str] = []
        current: str | None = goal_id

        while current:
            if current in path:
                raise CyclicHierarchy(path[path.index(current):] + [current])
            path.append(current)
            goal = by_id.get(current)
            if goal is None:
                break
            value = effective_progress(goals, todos, current)
            if value == goal.progress:
                break
            self.store.update(
                self.owner, GOALS, current,
                {"progress": value, "updatedAt": now_local(self.store.root).isoformat(timespec="seconds")},
            )
            logger.debug("Goal %s progress %d -> %d", current, goal.progress, value)
            goal.progress = value
            updated.append(current)
            current = goal.parent_goal_id
        return updated

    def refresh_all(self) -> list[str]:
        """Refresh every goal, most specific tier first, so parents see fresh children."""
        goals, _ = self._load()
        updated: list[str] = []
        for tier in reversed(GOAL_TIERS):
            for goal in goals:
                if goal.type == tier:
                    updated.extend(self.refresh_progress(goal.id))
        return updated
