"""Slack integration: signed webhook events, OAuth token exchange, mention sync.

Push path: Slack posts signed events to the service; every ``<@USER>``
mention that maps to a connected local owner becomes one inbox arrival
for that owner, keyed by the message ts.

Pull path: for each connected owner, search.messages is queried for
mentions since the last sync (default: the last 24 hours).

The integration record lives in the owner's ``integrations`` collection
under the document id ``slack``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx

from goalpost.config import Settings
from goalpost.errors import GoalpostError, IntegrationError
from goalpost.inbox import add_item
from goalpost.models import SlackIntegration, iso
from goalpost.store import INTEGRATIONS, DocumentStore
from goalpost.workspace import is_valid_owner, now_local

logger = logging.getLogger(__name__)

SLACK_API = "https://slack.com/api"
INTEGRATION_ID = "slack"
MAX_CLOCK_SKEW = 300  # seconds
TITLE_LIMIT = 100
SEARCH_COUNT = 50
DEFAULT_LOOKBACK = timedelta(hours=24)

MENTION_RE = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")


# ── Signatures and parsing ────────────────────────────────────


def compute_signature(secret: str, timestamp: str, body: bytes | str) -> str:
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    base = f"v0:{timestamp}:{body}".encode("utf-8")
    return "v0=" + hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    timestamp: str | None,
    body: bytes | str,
    signature: str | None,
    now: float | None = None,
) -> bool:
    """Check a request signature. Stale timestamps fail even with a valid digest."""
    if not timestamp or not signature:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if now is None:
        now = time.time()
    if abs(int(now) - sent_at) > MAX_CLOCK_SKEW:
        return False
    expected = compute_signature(secret, timestamp, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def parse_mentions(text: str) -> list[str]:
    """Mentioned user ids in order of first appearance."""
    seen: list[str] = []
    for user_id in MENTION_RE.findall(text or ""):
        if user_id not in seen:
            seen.append(user_id)
    return seen


def message_title(text: str) -> str:
    if len(text) > TITLE_LIMIT:
        return text[:TITLE_LIMIT] + "..."
    return text


def message_to_arrival(message: dict[str, Any]) -> dict[str, Any]:
    """Slack message (event or search match) -> inbox arrival document."""
    text = message.get("text") or ""
    ts = str(message["ts"])
    return {
        "source": "slack",
        "title": message_title(text),
        "description": text,
        "originalContent": json.dumps(message, sort_keys=True),
        "sourceId": ts,
        "sourceUrl": message.get("permalink") or None,
        "sourceSender": message.get("user"),
        "sourceChannel": message.get("channel"),
        "sourceDate": iso(datetime.fromtimestamp(float(ts), tz=timezone.utc)),
    }


# ── Integration records ───────────────────────────────────────


def load_integration(store: DocumentStore, owner: str) -> SlackIntegration:
    return SlackIntegration.from_dict(store.get(owner, INTEGRATIONS, INTEGRATION_ID))


def save_integration(store: DocumentStore, owner: str, integration: SlackIntegration) -> None:
    store.set(owner, INTEGRATIONS, INTEGRATION_ID, integration.to_dict())


def disconnect(store: DocumentStore, owner: str) -> bool:
    """Drop the tokens and mark the record disconnected. False if there was nothing to clear."""
    integration = load_integration(store, owner)
    if not integration.is_connected and not integration.access_token and not integration.bot_access_token:
        return False
    integration.access_token = integration.bot_access_token = ""
    integration.is_connected = False
    save_integration(store, owner, integration)
    logger.info("Slack disconnected for %s", owner)
    return True


def connected_owners(store: DocumentStore) -> list[tuple[str, SlackIntegration]]:
    out = []
    for owner in store.owners():
        integration = load_integration(store, owner)
        if integration.is_connected:
            out.append((owner, integration))
    return out


def find_owner_by_slack_id(store: DocumentStore, slack_user_id: str) -> str | None:
    for owner, integration in connected_owners(store):
        if integration.slack_user_id == slack_user_id:
            return owner
    return None


# ── Webhook events ────────────────────────────────────────────


def _is_ingestible(event: dict[str, Any]) -> bool:
    if event.get("type") == "app_mention":
        return True
    return event.get("type") == "message" and not event.get("subtype") and not event.get("bot_id")


def ingest_message(store: DocumentStore, event: dict[str, Any]) -> list[str]:
    """Create an inbox arrival for every local owner mentioned in the message."""
    if not event.get("ts"):
        return []
    message = {k: event.get(k) for k in ("text", "user", "channel", "ts", "thread_ts") if event.get(k)}
    created = []
    for slack_id in parse_mentions(event.get("text", "")):
        owner = find_owner_by_slack_id(store, slack_id)
        if owner is None:
            logger.debug("No local owner for Slack user %s", slack_id)
            continue
        item_id = add_item(store, owner, message_to_arrival(message))
        if item_id:
            logger.info("Created inbox item for %s from Slack message %s", owner, event["ts"])
            created.append(item_id)
    return created


def handle_event_payload(store: DocumentStore, payload: dict[str, Any]) -> dict[str, Any]:
    """Response body for a verified webhook payload."""
    kind = payload.get("type")
    if kind == "url_verification":
        return {"challenge": payload.get("challenge")}
    if kind == "event_callback":
        event = payload.get("event") or {}
        if _is_ingestible(event):
            ingest_message(store, event)
    return {"ok": True}


# ── HTTP client ───────────────────────────────────────────────


class SlackClient:
    """Thin Slack Web API client. Pass a transport to stub the network."""

    def __init__(self, transport: httpx.BaseTransport | None = None, base_url: str = SLACK_API):
        self._client = httpx.Client(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(10.0, connect=5.0),
        )

    def __enter__(self) -> SlackClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _result(self, response: httpx.Response, method: str) -> dict[str, Any]:
        response.raise_for_status()
        result = response.json()
        if not result.get("ok"):
            raise IntegrationError(f"Slack {method} failed: {result.get('error', 'unknown_error')}")
        return result

    def oauth_access(self, client_id: str, client_secret: str, code: str) -> dict[str, Any]:
        response = self._client.post(
            "/oauth.v2.access",
            data={"client_id": client_id, "client_secret": client_secret, "code": code},
        )
        return self._result(response, "oauth.v2.access")

    def search_mentions(self, token: str, slack_user_id: str, since: datetime) -> list[dict[str, Any]]:
        after = since.astimezone(timezone.utc).date().isoformat() if since.tzinfo else since.date().isoformat()
        response = self._client.get(
            "/search.messages",
            params={
                "query": f"<@{slack_user_id}> after:{after}",
                "sort": "timestamp",
                "sort_dir": "desc",
                "count": SEARCH_COUNT,
            },
            headers={"Authorization": f"Bearer {token}"},
        )
        result = self._result(response, "search.messages")
        matches = (result.get("messages") or {}).get("matches") or []
        out = []
        for match in matches:
            channel = match.get("channel") or {}
            out.append({
                "text": match.get("text") or "",
                "user": match.get("user") or match.get("username") or "unknown",
                "channel": channel.get("name") or channel.get("id") or "unknown",
                "ts": match.get("ts"),
                "permalink": match.get("permalink") or "",
            })
        return out


# ── OAuth ─────────────────────────────────────────────────────


def exchange_code(settings: Settings, code: str, client: SlackClient, now: datetime) -> SlackIntegration:
    """Trade an authorization code for tokens. Raises IntegrationError."""
    if not settings.slack.has_client_credentials:
        raise IntegrationError("Slack credentials not configured")
    result = client.oauth_access(settings.slack.client_id, settings.slack.client_secret, code)

    authed_user = result.get("authed_user") or {}
    access_token = authed_user.get("access_token") or result.get("access_token")
    if not access_token:
        raise IntegrationError("Slack OAuth failed: no access token received")
    team = result.get("team") or {}
    return SlackIntegration(
        access_token=access_token,
        bot_access_token=result.get("access_token") or "",
        token_type=authed_user.get("token_type") or result.get("token_type") or "user",
        team_id=team.get("id") or "",
        team_name=team.get("name") or "",
        slack_user_id=authed_user.get("id") or "",
        scope=authed_user.get("scope") or result.get("scope") or "",
        is_connected=True,
        connected_at=now,
        last_sync_at=None,
    )


def handle_oauth_callback(
    store: DocumentStore,
    settings: Settings,
    code: str | None,
    state: str | None,
    transport: httpx.BaseTransport | None = None,
) -> str:
    """Complete the OAuth redirect and return the URL to send the browser to.

    state is ``<owner>:<nonce>``. Every failure becomes an error redirect.
    """
    settings_url = f"{settings.app_url}/settings"
    if not code or not state:
        logger.error("Slack OAuth callback missing code or state")
        return f"{settings_url}?slack=error&message=missing_params"

    owner = state.split(":", 1)[0]
    if not is_valid_owner(owner):
        logger.error("Slack OAuth callback with invalid state owner %r", owner)
        return f"{settings_url}?slack=error&message=invalid_state"

    try:
        with SlackClient(transport=transport) as client:
            integration = exchange_code(settings, code, client, now_local(store.root))
        save_integration(store, owner, integration)
    except (GoalpostError, httpx.HTTPError, ValueError) as e:
        logger.exception("Slack OAuth error")
        return f"{settings_url}?slack=error&message={quote(str(e), safe='')}"

    logger.info("Slack connected for %s", owner)
    return f"{settings_url}?slack=success"


# ── Mention sync ──────────────────────────────────────────────


def sync_user_mentions(store: DocumentStore, owner: str, client: SlackClient) -> dict[str, Any]:
    """Pull recent mentions for one owner into their inbox. Errors are reported, not raised."""
    integration = load_integration(store, owner)
    if not integration.access_token or not integration.slack_user_id:
        return {"userId": owner, "synced": 0, "error": "Missing access token or Slack user ID"}

    now = now_local(store.root)
    since = integration.last_sync_at or now - DEFAULT_LOOKBACK
    try:
        mentions = client.search_mentions(integration.access_token, integration.slack_user_id, since)
        synced = 0
        for mention in mentions:
            if mention.get("ts") and add_item(store, owner, message_to_arrival(mention)):
                synced += 1
        store.update(owner, INTEGRATIONS, INTEGRATION_ID, {"lastSyncAt": iso(now)})
    except (GoalpostError, httpx.HTTPError, ValueError) as e:
        logger.exception("Error syncing Slack mentions for %s", owner)
        return {"userId": owner, "synced": 0, "error": str(e)}
    return {"userId": owner, "synced": synced}


def sync_all_mentions(store: DocumentStore, transport: httpx.BaseTransport | None = None) -> dict[str, Any]:
    results = []
    with SlackClient(transport=transport) as client:
        for owner, _ in connected_owners(store):
            results.append(sync_user_mentions(store, owner, client))
    total = sum(r["synced"] for r in results)
    logger.info("Slack sync complete: %d new mentions across %d users", total, len(results))
    return {
        "ok": True,
        "usersProcessed": len(results),
        "totalMentionsSynced": total,
        "results": results,
    }
