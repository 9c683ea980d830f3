from __future__ import annotations

import json
import logging
import os
import secrets
from datetime import date
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from goalpost import (
    CheckInLedger,
    CyclicHierarchy,
    DocumentStore,
    GoalProgressAggregator,
    InboxStateError,
    RecurrencePattern,
    ValidationError,
    bulk_convert,
    bulk_dismiss,
    convert,
    count_by_source,
    create_goal,
    create_todo,
    delete_goal,
    delete_todo,
    effective_progress,
    ensure_not_future,
    filter_todos,
    find_goal,
    get_todo,
    goals_by_type,
    load_goals,
    load_settings,
    load_snapshot,
    next_occurrence,
    orphaned_goals,
    parent_options,
    pending_items,
    seed_categories,
    today_local,
    today_todos,
    toggle_todo_status,
    tracking_summary,
    update_goal,
    update_todo,
)
from goalpost import inbox as inbox_ops
from goalpost import google, slack

logging.basicConfig(
    level=os.environ.get("GOALPOST_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("goalpost.api")

app = FastAPI(title="goalpost", version="0.1.0")

security = HTTPBasic(auto_error=False)


# ── Auth & helpers ────────────────────────────────────────────

def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    """The owner id for this request: the Basic auth username, or "guest" when auth is off."""
    settings = load_settings()
    expected_username = settings.api_username
    expected_password = settings.api_password

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def get_store() -> DocumentStore:
    return DocumentStore()


def _doc(model: Any) -> dict[str, Any]:
    return {"id": model.id, **model.to_dict()}


def _parse_day(value: Any) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


# Malformed dates and numbers in a payload surface as ValueError or TypeError.
BAD_INPUT = (ValidationError, ValueError, TypeError)


def _bad_request(e: Exception) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail="; ".join(e.errors))
    return HTTPException(status_code=400, detail=f"Invalid value: {e}")


def _refresh_goals(store: DocumentStore, username: str, *goal_ids: str | None) -> None:
    """Re-derive stored progress for the goals a write touched, and their ancestors."""
    aggregator = GoalProgressAggregator(store, username)
    try:
        for goal_id in dict.fromkeys(g for g in goal_ids if g):
            aggregator.refresh_progress(goal_id)
    except CyclicHierarchy as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


# ── Goals ─────────────────────────────────────────────────────

@app.get("/api/goals")
def api_list_goals(
    type: str | None = None,
    categoryId: str | None = None,
    search: str | None = None,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Goals with their computed progress and tracking figures."""
    snap = load_snapshot(store, username)
    goals = list(snap.goals)
    if type:
        goals = goals_by_type(goals, type, category_id=categoryId, search=search)
    today = today_local(store.root)
    try:
        rows = [
            {
                **_doc(g),
                "effectiveProgress": effective_progress(snap.goals, snap.todos, g.id),
                "tracking": tracking_summary(g, snap.check_ins, today),
            }
            for g in goals
        ]
    except CyclicHierarchy as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"goals": rows, "orphaned": [g.id for g in orphaned_goals(snap.goals)]}


@app.get("/api/goals/parent-options")
def api_parent_options(
    type: str,
    exclude: str | None = None,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    snap = load_snapshot(store, username)
    return {"goals": [_doc(g) for g in parent_options(snap.goals, type, exclude_id=exclude)]}


@app.post("/api/goals")
def api_create_goal(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        goal = create_goal(store, username, payload)
    except BAD_INPUT as e:
        raise _bad_request(e)
    _refresh_goals(store, username, goal.parent_goal_id)
    return {"ok": True, "goal": _doc(goal)}


@app.put("/api/goals/{goal_id}")
def api_update_goal(
    goal_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    before = find_goal(load_goals(store, username), goal_id)
    try:
        goal = update_goal(store, username, goal_id, payload)
    except BAD_INPUT as e:
        raise _bad_request(e)
    if goal is None:
        raise HTTPException(status_code=404, detail=f"Goal not found: {goal_id}")
    _refresh_goals(store, username, goal.id, before.parent_goal_id if before else None)
    return {"ok": True, "goal": _doc(goal)}


@app.delete("/api/goals/{goal_id}")
def api_delete_goal(
    goal_id: str,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Delete without cascading; children left behind are reported."""
    before = find_goal(load_goals(store, username), goal_id)
    orphans = delete_goal(store, username, goal_id)
    if before is not None:
        _refresh_goals(store, username, before.parent_goal_id)
    return {"ok": True, "goal_id": goal_id, "orphaned": [g.id for g in orphans]}


@app.post("/api/goals/refresh")
def api_refresh_goals(
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Recompute and persist progress for every goal."""
    try:
        updated = GoalProgressAggregator(store, username).refresh_all()
    except CyclicHierarchy as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"ok": True, "updated": updated}


@app.get("/api/goals/{goal_id}/tracking")
def api_goal_tracking(
    goal_id: str,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    snap = load_snapshot(store, username)
    goal = find_goal(snap.goals, goal_id)
    if goal is None:
        raise HTTPException(status_code=404, detail=f"Goal not found: {goal_id}")
    return tracking_summary(goal, snap.check_ins, today_local(store.root))


@app.get("/api/categories")
def api_categories(
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    return {"categories": [_doc(c) for c in seed_categories(store, username)]}


# ── Check-ins ─────────────────────────────────────────────────

@app.get("/api/checkins")
def api_list_checkins(
    goalId: str | None = None,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    ledger = CheckInLedger(store, username)
    records = ledger.records_for_goal(goalId) if goalId else ledger.all_records()
    return {"checkins": [_doc(c) for c in records]}


@app.post("/api/checkins/toggle")
def api_toggle_checkin(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Flip one day for a goal. Dates after today are refused."""
    goal_id = payload.get("goalId")
    if not goal_id:
        raise HTTPException(status_code=400, detail="Missing goalId")
    today = today_local(store.root)
    day = _parse_day(payload["date"]) if payload.get("date") else today
    try:
        day = ensure_not_future(day, today)
    except BAD_INPUT as e:
        raise _bad_request(e)
    completed = CheckInLedger(store, username).toggle(goal_id, day)
    return {"ok": True, "goalId": goal_id, "date": day.isoformat(), "completed": completed}


# ── Todos ─────────────────────────────────────────────────────

@app.get("/api/todos")
def api_list_todos(
    categoryId: str | None = None,
    goalId: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """status and priority accept comma-separated lists."""
    snap = load_snapshot(store, username)
    todos = filter_todos(
        snap.todos,
        category_id=categoryId,
        goal_id=goalId,
        statuses=status.split(",") if status else None,
        priorities=priority.split(",") if priority else None,
        search=search,
    )
    return {"todos": [_doc(t) for t in todos]}


@app.get("/api/todos/today")
def api_today_todos(
    sort_by: str = "priority",
    direction: str = "asc",
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    snap = load_snapshot(store, username)
    try:
        todos = today_todos(snap.todos, today_local(store.root), sort_by, direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"todos": [_doc(t) for t in todos]}


@app.post("/api/todos")
def api_create_todo(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        todo = create_todo(store, username, payload)
    except BAD_INPUT as e:
        raise _bad_request(e)
    _refresh_goals(store, username, todo.goal_id)
    return {"ok": True, "todo": _doc(todo)}


@app.put("/api/todos/{todo_id}")
def api_update_todo(
    todo_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """A status change or a move between goals refreshes every goal involved."""
    before = get_todo(store, username, todo_id)
    try:
        todo = update_todo(store, username, todo_id, payload)
    except BAD_INPUT as e:
        raise _bad_request(e)
    if todo is None:
        raise HTTPException(status_code=404, detail=f"Todo not found: {todo_id}")
    _refresh_goals(store, username, before.goal_id if before else None, todo.goal_id)
    return {"ok": True, "todo": _doc(todo)}


@app.delete("/api/todos/{todo_id}")
def api_delete_todo(
    todo_id: str,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    before = get_todo(store, username, todo_id)
    if before is None or not delete_todo(store, username, todo_id):
        raise HTTPException(status_code=404, detail=f"Todo not found: {todo_id}")
    _refresh_goals(store, username, before.goal_id)
    return {"ok": True, "todo_id": todo_id}


@app.post("/api/todos/{todo_id}/toggle")
def api_toggle_todo(
    todo_id: str,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        new_status = toggle_todo_status(store, username, todo_id)
    except CyclicHierarchy as e:
        raise HTTPException(status_code=409, detail=str(e))
    if new_status is None:
        raise HTTPException(status_code=404, detail=f"Todo not found: {todo_id}")
    return {"ok": True, "todo_id": todo_id, "status": new_status}


@app.post("/api/recurrence/preview")
def api_recurrence_preview(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Up to `count` upcoming dates for a pattern starting after `from`."""
    try:
        pattern = RecurrencePattern.from_dict(payload.get("pattern"))
        count = max(1, min(int(payload.get("count", 5)), 50))
    except BAD_INPUT as e:
        raise _bad_request(e)
    if pattern is None:
        raise HTTPException(status_code=400, detail="Missing pattern")
    cursor = _parse_day(payload.get("from", ""))
    dates = []
    try:
        for _ in range(count):
            cursor = next_occurrence(cursor, pattern)
            if cursor is None:
                break
            dates.append(cursor.isoformat())
    except BAD_INPUT as e:
        raise _bad_request(e)
    return {"dates": dates}


# ── Inbox ─────────────────────────────────────────────────────

@app.get("/api/inbox")
def api_inbox(
    source: str | None = None,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    snap = load_snapshot(store, username)
    return {
        "items": [_doc(i) for i in pending_items(snap.inbox, source)],
        "counts": count_by_source(snap.inbox),
    }


@app.post("/api/inbox/{item_id}/dismiss")
def api_dismiss(
    item_id: str,
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    return {"ok": True, "dismissed": inbox_ops.dismiss(store, username, item_id)}


@app.post("/api/inbox/{item_id}/convert")
def api_convert(
    item_id: str,
    payload: dict[str, Any] = Body(default={}),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        todo_id = convert(store, username, item_id, payload)
    except InboxStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except BAD_INPUT as e:
        raise _bad_request(e)
    if todo_id is None:
        raise HTTPException(status_code=404, detail=f"Inbox item not found: {item_id}")
    return {"ok": True, "todo_id": todo_id}


@app.post("/api/inbox/bulk-dismiss")
def api_bulk_dismiss(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    return {"ok": True, "dismissed": bulk_dismiss(store, username, payload.get("ids") or [])}


@app.post("/api/inbox/bulk-convert")
def api_bulk_convert(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        created = bulk_convert(store, username, payload.get("ids") or [], payload.get("defaults"))
    except BAD_INPUT as e:
        raise _bad_request(e)
    return {"ok": True, "todo_ids": created}


@app.post("/api/google/sync")
def api_google_sync(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """Pull calendar events and/or emails into the inbox with the caller's Google token."""
    token = payload.get("accessToken")
    if not token:
        raise HTTPException(status_code=400, detail="Missing accessToken")
    sources = payload.get("sources") or ["calendar", "email"]
    results: dict[str, Any] = {}
    if "calendar" in sources:
        results["calendar"] = google.sync_calendar(store, username, token)
    if "email" in sources:
        results["email"] = google.sync_email(store, username, token, payload.get("query") or google.DEFAULT_EMAIL_QUERY)
    return {"ok": True, **results}


# ── Slack ─────────────────────────────────────────────────────

@app.post("/api/slack/webhook")
async def api_slack_webhook(request: Request, store: DocumentStore = Depends(get_store)) -> Any:
    """Event endpoint. Anything but a bad signature is acknowledged with 200."""
    raw = await request.body()
    secret = load_settings().slack.signing_secret
    if not secret:
        logger.warning("Slack signing secret not configured; skipping verification")
    elif not slack.verify_signature(
        secret,
        request.headers.get("x-slack-request-timestamp"),
        raw,
        request.headers.get("x-slack-signature"),
    ):
        logger.error("Invalid Slack signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        return slack.handle_event_payload(store, json.loads(raw))
    except Exception:
        logger.exception("Slack webhook handling failed")
        return {"ok": True}


@app.get("/api/slack/oauth")
def api_slack_oauth(
    code: str | None = None,
    state: str | None = None,
    store: DocumentStore = Depends(get_store),
) -> RedirectResponse:
    url = slack.handle_oauth_callback(store, load_settings(), code, state)
    return RedirectResponse(url=url, status_code=302)


@app.api_route("/api/slack/sync-mentions", methods=["GET", "POST"])
def api_slack_sync(request: Request, store: DocumentStore = Depends(get_store)) -> dict[str, Any]:
    """Cron entry point; requires `Bearer <cron_secret>` when a secret is configured."""
    cron_secret = load_settings().cron_secret
    if cron_secret and request.headers.get("authorization") != f"Bearer {cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")
    return slack.sync_all_mentions(store)


@app.post("/api/slack/disconnect")
def api_slack_disconnect(
    username: str = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    return {"ok": True, "disconnected": slack.disconnect(store, username)}
