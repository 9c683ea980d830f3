"""Tests for goalpost/slack.py: signatures, webhook events, OAuth and mention sync."""

import json
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx

from goalpost.config import load_settings
from goalpost.models import SlackIntegration
from goalpost.slack import (
    compute_signature,
    disconnect,
    find_owner_by_slack_id,
    handle_event_payload,
    handle_oauth_callback,
    load_integration,
    message_title,
    parse_mentions,
    save_integration,
    sync_all_mentions,
    verify_signature,
)
from goalpost.store import INBOX

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
TS = "1531420618"
BODY = "token=xyzz0WbapA4vBCDEFasx0q6G&team_id=T1DC2JH3J&command=%2Fweather"


def _connect(store, owner, slack_user_id, **fields):
    save_integration(store, owner, SlackIntegration(
        access_token=f"xoxp-{owner}", slack_user_id=slack_user_id, is_connected=True, **fields,
    ))


# ── Signatures & parsing ──────────────────────────────────────


def test_verify_signature_valid():
    signature = compute_signature(SECRET, TS, BODY)
    assert signature.startswith("v0=")
    assert verify_signature(SECRET, TS, BODY, signature, now=int(TS) + 10) is True
    assert verify_signature(SECRET, TS, BODY.encode("utf-8"), signature, now=int(TS)) is True


def test_verify_signature_rejects_tampering():
    signature = compute_signature(SECRET, TS, BODY)
    assert verify_signature(SECRET, TS, BODY + "x", signature, now=int(TS)) is False
    assert verify_signature("other", TS, BODY, signature, now=int(TS)) is False
    assert verify_signature(SECRET, TS, BODY, None, now=int(TS)) is False
    assert verify_signature(SECRET, "abc", BODY, signature, now=int(TS)) is False


def test_verify_signature_rejects_stale_timestamp_even_if_valid():
    signature = compute_signature(SECRET, TS, BODY)
    assert verify_signature(SECRET, TS, BODY, signature, now=int(TS) + 301) is False
    assert verify_signature(SECRET, TS, BODY, signature, now=int(TS) - 301) is False
    assert verify_signature(SECRET, TS, BODY, signature, now=int(TS) + 300) is True


def test_parse_mentions():
    text = "hey <@U123ABC> and <@W999|dana>, also <@U123ABC> again <#C1|general>"
    assert parse_mentions(text) == ["U123ABC", "W999"]
    assert parse_mentions("") == []


def test_message_title_truncates():
    assert message_title("short") == "short"
    long = "x" * 150
    assert message_title(long) == "x" * 100 + "..."


# ── Webhook events ────────────────────────────────────────────


def test_url_verification_echoes_challenge(store):
    assert handle_event_payload(store, {"type": "url_verification", "challenge": "abc123"}) == {"challenge": "abc123"}


def test_mention_creates_item_per_resolved_owner(store, owner):
    _connect(store, owner, "UALICE")
    _connect(store, "bob", "UBOB")
    event = {
        "type": "message",
        "text": "<@UALICE> <@UBOB> <@UNKNOWN> can you look at this?",
        "user": "USENDER",
        "channel": "C42",
        "ts": "1700000000.000100",
    }
    payload = {"type": "event_callback", "event": event}
    assert handle_event_payload(store, payload) == {"ok": True}

    for who in (owner, "bob"):
        items = store.query(who, INBOX)
        assert len(items) == 1
        item = items[0]
        assert item["source"] == "slack"
        assert item["sourceId"] == "1700000000.000100"
        assert item["sourceSender"] == "USENDER"
        assert item["sourceChannel"] == "C42"
        assert item["sourceDate"].startswith("2023-11-14T22:13:20")

    # redelivery is deduplicated
    handle_event_payload(store, payload)
    assert len(store.query(owner, INBOX)) == 1


def test_bot_and_subtype_messages_ignored(store, owner):
    _connect(store, owner, "UALICE")
    for extra in ({"subtype": "message_changed"}, {"bot_id": "B1"}):
        event = {"type": "message", "text": "<@UALICE> hi", "ts": "1.0", **extra}
        handle_event_payload(store, {"type": "event_callback", "event": event})
    assert store.query(owner, INBOX) == []


def test_app_mention_is_ingested(store, owner):
    _connect(store, owner, "UALICE")
    event = {"type": "app_mention", "text": "<@UBOT> remind <@UALICE>", "ts": "1700000001.000200", "user": "U9"}
    handle_event_payload(store, {"type": "event_callback", "event": event})
    assert len(store.query(owner, INBOX)) == 1


def test_find_owner_skips_disconnected(store, owner):
    _connect(store, owner, "UALICE")
    save_integration(store, "carol", SlackIntegration(slack_user_id="UCAROL", is_connected=False))
    assert find_owner_by_slack_id(store, "UALICE") == owner
    assert find_owner_by_slack_id(store, "UCAROL") is None


def test_disconnect_clears_tokens_and_keeps_record(store, owner):
    _connect(store, owner, "UALICE", bot_access_token="xoxb-bot", team_name="Acme")
    assert disconnect(store, owner) is True
    integration = load_integration(store, owner)
    assert integration.is_connected is False
    assert integration.access_token == ""
    assert integration.bot_access_token == ""
    assert integration.slack_user_id == "UALICE"
    assert integration.team_name == "Acme"
    assert find_owner_by_slack_id(store, "UALICE") is None
    assert disconnect(store, owner) is False
    assert disconnect(store, "nobody") is False


# ── OAuth ─────────────────────────────────────────────────────


def _oauth_transport(payload, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, json=payload)
    return httpx.MockTransport(handler)


def test_oauth_success_persists_user_token(store, workspace):
    seen = []
    payload = {
        "ok": True,
        "access_token": "xoxb-bot",
        "token_type": "bot",
        "scope": "chat:write",
        "team": {"id": "T1", "name": "Acme"},
        "authed_user": {"id": "UALICE", "access_token": "xoxp-user", "token_type": "user", "scope": "search:read"},
    }
    url = handle_oauth_callback(store, load_settings(workspace), "code-1", "alice:nonce:extra", _oauth_transport(payload, seen))
    assert url == "http://app.test/settings?slack=success"

    form = parse_qs(seen[0].content.decode("utf-8"))
    assert seen[0].url.path == "/api/oauth.v2.access"
    assert form == {"client_id": ["cid"], "client_secret": ["csecret"], "code": ["code-1"]}

    integration = load_integration(store, "alice")
    assert integration.access_token == "xoxp-user"
    assert integration.bot_access_token == "xoxb-bot"
    assert integration.slack_user_id == "UALICE"
    assert integration.team_name == "Acme"
    assert integration.scope == "search:read"
    assert integration.is_connected is True
    assert integration.last_sync_at is None


def test_oauth_missing_params(store, workspace):
    url = handle_oauth_callback(store, load_settings(workspace), None, "alice:n")
    assert url == "http://app.test/settings?slack=error&message=missing_params"


def test_oauth_rejects_state_owner_outside_users_dir(store, workspace):
    seen = []
    ok = {"ok": True, "access_token": "xoxb", "authed_user": {"id": "U1", "access_token": "xoxp"}}
    for state in ("../../escaped:nonce", ":nonce", "a/b:nonce", "..:nonce"):
        url = handle_oauth_callback(store, load_settings(workspace), "code", state, _oauth_transport(ok, seen))
        assert url == "http://app.test/settings?slack=error&message=invalid_state"
    assert seen == []
    assert not (workspace.parent / "escaped").exists()
    assert store.owners() == []


def test_oauth_platform_error_redirects(store, workspace):
    url = handle_oauth_callback(store, load_settings(workspace), "c", "alice:n", _oauth_transport({"ok": False, "error": "invalid_code"}))
    assert url.startswith("http://app.test/settings?slack=error&message=")
    assert "invalid_code" in url
    assert " " not in url
    assert load_integration(store, "alice").is_connected is False


def test_oauth_missing_credentials_redirects(store, workspace):
    settings = load_settings(workspace)
    settings.slack.client_secret = ""
    url = handle_oauth_callback(store, settings, "c", "alice:n", _oauth_transport({"ok": True}))
    assert "slack=error" in url
    assert "credentials" in url


# ── Mention sync ──────────────────────────────────────────────


def test_sync_all_mentions(store, owner):
    last = datetime(2024, 5, 1, 23, 30, tzinfo=timezone.utc)
    _connect(store, owner, "UALICE", last_sync_at=last)
    _connect(store, "bob", "UBOB")
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.headers["authorization"] == "Bearer xoxp-bob":
            return httpx.Response(200, json={"ok": False, "error": "token_revoked"})
        return httpx.Response(200, json={
            "ok": True,
            "messages": {"matches": [
                {"text": "<@UALICE> ping", "user": "U2", "ts": "1714600000.000100",
                 "channel": {"id": "C1", "name": "general"}, "permalink": "https://slack.test/p1"},
                {"text": "<@UALICE> again", "username": "dana", "ts": "1714600100.000200",
                 "channel": {"id": "C2"}},
            ]},
        })

    result = sync_all_mentions(store, httpx.MockTransport(handler))
    assert result["ok"] is True
    assert result["usersProcessed"] == 2
    assert result["totalMentionsSynced"] == 2

    by_user = {r["userId"]: r for r in result["results"]}
    assert by_user[owner]["synced"] == 2
    assert "token_revoked" in by_user["bob"]["error"]

    alice_request = next(r for r in requests if r.headers["authorization"] == "Bearer xoxp-alice")
    assert alice_request.url.params["query"] == "<@UALICE> after:2024-05-01"
    assert alice_request.url.params["sort"] == "timestamp"
    assert alice_request.url.params["count"] == "50"

    items = {i["sourceId"]: i for i in store.query(owner, INBOX)}
    assert items["1714600000.000100"]["sourceUrl"] == "https://slack.test/p1"
    assert items["1714600000.000100"]["sourceChannel"] == "general"
    assert items["1714600100.000200"]["sourceSender"] == "dana"
    assert load_integration(store, owner).last_sync_at > last
    assert load_integration(store, "bob").last_sync_at is None

    # second run finds the same messages and adds nothing
    again = sync_all_mentions(store, httpx.MockTransport(handler))
    assert again["totalMentionsSynced"] == 0
    assert json.loads(items["1714600000.000100"]["originalContent"])["ts"] == "1714600000.000100"
