#!/usr/bin/env python3
"""goalpost TUI: today's check-ins, todos and inbox, powered by Textual."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import DataTable, Footer, Header, Label, Static

from goalpost import (
    CheckInLedger,
    DocumentStore,
    GoalpostError,
    GoalProgressAggregator,
    InboxStateError,
    Session,
    Snapshot,
    convert,
    count_by_source,
    current_streak,
    dismiss,
    load_settings,
    pending_items,
    today_local,
    today_todos,
    toggle_todo_status,
    tracking_summary,
    workspace_root,
)
from goalpost.slack import SlackClient, sync_user_mentions


CSS = """
Screen {
    layout: vertical;
}

#main-layout {
    height: 1fr;
}

#left-pane {
    width: 1fr;
    padding: 0 1;
}

#right-pane {
    width: 1fr;
    padding: 0 1;
}

.section-title {
    text-style: bold;
    color: $accent;
    margin: 1 0 0 0;
}

#goals-table, #todos-table, #inbox-table {
    height: 1fr;
}

#status-bar {
    dock: bottom;
    height: 1;
    background: $primary-background;
    color: $text-muted;
    padding: 0 2;
}
"""

STATUS_MARKS = {"completed": "[x]", "in-progress": "[~]", "cancelled": "[-]"}


def _owner() -> str:
    return os.environ.get("GOALPOST_USER") or load_settings().api_username or "guest"


def _selected_key(table: DataTable) -> str | None:
    if table.row_count == 0:
        return None
    row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
    return row_key.value


class GoalpostApp(App):
    """Today view over a live session."""

    TITLE = "goalpost"
    CSS = CSS
    AUTO_FOCUS = "#goals-table"

    BINDINGS = [
        Binding("c", "toggle_checkin", "Check in"),
        Binding("x", "toggle_todo", "Toggle todo"),
        Binding("v", "convert_item", "Convert"),
        Binding("z", "dismiss_item", "Dismiss"),
        Binding("r", "refresh_progress", "Refresh"),
        Binding("s", "sync_slack", "Sync Slack"),
        Binding("q", "quit_app", "Quit"),
    ]

    def __init__(self, owner: str | None = None) -> None:
        super().__init__()
        self.store = DocumentStore()
        self.owner = owner or _owner()
        self.session = Session(self.store)
        self._dirty = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            Vertical(
                Label("Tracked goals", classes="section-title"),
                DataTable(id="goals-table", cursor_type="row"),
                Label("Today", classes="section-title"),
                DataTable(id="todos-table", cursor_type="row"),
                id="left-pane",
            ),
            Vertical(
                Label("Inbox", classes="section-title"),
                DataTable(id="inbox-table", cursor_type="row"),
                id="right-pane",
            ),
            id="main-layout",
        )
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#goals-table", DataTable).add_columns("Goal", "Tier", "Today", "Streak", "Progress")
        self.query_one("#todos-table", DataTable).add_columns("", "Todo", "Priority", "Due")
        self.query_one("#inbox-table", DataTable).add_columns("Source", "Title", "From")
        # store callbacks can arrive on worker threads; redraw from the UI timer only
        self.session.on_change(self._mark_dirty)
        self.session.start(self.owner)
        self._render(self.session.snapshot)
        self.set_interval(0.5, self._flush)

    def _mark_dirty(self, _snapshot: Snapshot) -> None:
        self._dirty = True

    def _flush(self) -> None:
        if self._dirty:
            self._dirty = False
            self._render(self.session.snapshot)

    def _render(self, snap: Snapshot) -> None:
        today = today_local(self.store.root)

        goals = self.query_one("#goals-table", DataTable)
        goals.clear()
        for g in snap.goals:
            if not g.is_auto_tracked:
                continue
            summary = tracking_summary(g, snap.check_ins, today)
            done_today = any(
                c.goal_id == g.id and c.completed and c.date == today for c in snap.check_ins
            )
            goals.add_row(
                g.title,
                g.type,
                "[x]" if done_today else "[ ]",
                str(current_streak(snap.check_ins, g.id, today)),
                f"{summary['progress']}% ({summary['completedDays']}/{g.target_days})",
                key=g.id,
            )

        todos = self.query_one("#todos-table", DataTable)
        todos.clear()
        for t in today_todos(snap.todos, today):
            todos.add_row(
                STATUS_MARKS.get(t.status, "[ ]"),
                t.title,
                t.priority,
                t.due_date.isoformat() if t.due_date else "",
                key=t.id,
            )

        inbox = self.query_one("#inbox-table", DataTable)
        inbox.clear()
        for item in pending_items(snap.inbox):
            inbox.add_row(item.source, item.title, item.source_sender or "", key=item.id)

        counts = count_by_source(snap.inbox)
        parts = [f"{self.owner}", today.isoformat()]
        parts.append("inbox " + " ".join(f"{k}:{v}" for k, v in counts.items()))
        if self.session.error:
            parts.append(f"error: {self.session.error}")
        self.query_one("#status-bar", Static).update("  |  ".join(parts))

    # ── Actions ───────────────────────────────────────────────

    def action_toggle_checkin(self) -> None:
        goal_id = _selected_key(self.query_one("#goals-table", DataTable))
        if goal_id is None:
            return
        today = today_local(self.store.root)
        done = CheckInLedger(self.store, self.owner).toggle(goal_id, today)
        self.notify("Checked in for today" if done else "Check-in removed")

    def action_toggle_todo(self) -> None:
        todo_id = _selected_key(self.query_one("#todos-table", DataTable))
        if todo_id is None:
            return
        try:
            status = toggle_todo_status(self.store, self.owner, todo_id)
        except GoalpostError as e:
            self.notify(str(e), title="Error", severity="error")
            return
        if status:
            self.notify(f"Todo {status}")

    def action_convert_item(self) -> None:
        item_id = _selected_key(self.query_one("#inbox-table", DataTable))
        if item_id is None:
            return
        try:
            todo_id = convert(self.store, self.owner, item_id)
        except InboxStateError as e:
            self.notify(str(e), title="Convert Failed", severity="warning")
            return
        if todo_id:
            self.notify("Converted to todo", title="Inbox")

    def action_dismiss_item(self) -> None:
        item_id = _selected_key(self.query_one("#inbox-table", DataTable))
        if item_id is not None and dismiss(self.store, self.owner, item_id):
            self.notify("Dismissed", title="Inbox")

    def action_refresh_progress(self) -> None:
        self._do_refresh()

    @work(thread=True)
    def _do_refresh(self) -> None:
        """Recompute every goal in a worker thread."""
        try:
            updated = GoalProgressAggregator(self.store, self.owner).refresh_all()
            self.call_from_thread(self.notify,
                f"Updated {len(updated)} goal(s)", title="Progress", severity="information")
        except GoalpostError as e:
            self.call_from_thread(self.notify,
                f"Error: {e}", title="Error", severity="error")

    def action_sync_slack(self) -> None:
        self._do_sync()

    @work(thread=True)
    def _do_sync(self) -> None:
        with SlackClient() as client:
            result = sync_user_mentions(self.store, self.owner, client)
        if result.get("error"):
            self.call_from_thread(self.notify,
                f"Slack sync failed: {result['error']}", title="Slack", severity="warning")
        else:
            self.call_from_thread(self.notify,
                f"{result['synced']} new mention(s)", title="Slack", severity="information")

    def action_quit_app(self) -> None:
        self.session.stop()
        self.exit()


def main() -> None:
    root = workspace_root()
    if not Path(root).exists():
        print(f"Workspace not found: {root}")
        print("Set GOALPOST_ROOT to a directory holding goalpost.yaml.")
        sys.exit(1)

    app = GoalpostApp()
    app.run()


if __name__ == "__main__":
    main()
