"""Tests for goalpost/inbox.py: arrivals, dedup, dismiss and conversion."""

import pytest

from goalpost.errors import InboxStateError
from goalpost.inbox import (
    add_item,
    bulk_convert,
    bulk_dismiss,
    convert,
    converted_todo_id,
    count_by_source,
    dismiss,
    get_item,
    load_items,
    pending_items,
)
from goalpost.models import InboxItem
from goalpost.store import INBOX, TODOS


def _arrival(source_id="1700000000.000100", source="slack", title="Review the deck"):
    return {"source": source, "sourceId": source_id, "title": title, "description": "please review"}


def test_add_item_creates_pending(store, owner):
    item_id = add_item(store, owner, _arrival())
    item = get_item(store, owner, item_id)
    assert item.status == "pending"
    assert item.user_id == owner
    assert item.created_at is not None


def test_same_source_id_delivered_twice_yields_one_item(store, owner):
    assert add_item(store, owner, _arrival()) is not None
    assert add_item(store, owner, _arrival()) is None
    assert len(store.query(owner, INBOX)) == 1


def test_dedup_is_per_owner(store, owner):
    add_item(store, owner, _arrival())
    assert add_item(store, "bob", _arrival()) is not None


def test_arrivals_without_source_id_are_not_deduplicated(store, owner):
    first = add_item(store, owner, {"source": "email", "title": "First"})
    second = add_item(store, owner, {"source": "email", "title": "Second, different"})
    assert first is not None
    assert second is not None
    assert sorted(d["title"] for d in store.query(owner, INBOX)) == ["First", "Second, different"]


def test_dismiss(store, owner):
    item_id = add_item(store, owner, _arrival())
    assert dismiss(store, owner, item_id) is True
    assert get_item(store, owner, item_id).status == "dismissed"
    assert dismiss(store, owner, item_id) is False
    assert dismiss(store, owner, "missing") is False


def test_convert_creates_todo_and_marks_item(store, owner):
    item_id = add_item(store, owner, _arrival())
    todo_id = convert(store, owner, item_id, {"priority": "high"})
    assert todo_id == converted_todo_id(item_id)

    todo = store.get(owner, TODOS, todo_id)
    assert todo["source"] == "inbox"
    assert todo["sourceId"] == item_id
    assert todo["title"] == "Review the deck"
    assert todo["description"] == "please review"
    assert todo["priority"] == "high"

    item = get_item(store, owner, item_id)
    assert item.status == "converted"
    assert item.converted_to_id == todo_id
    assert item.converted_at is not None


def test_convert_caller_title_overrides_item(store, owner):
    item_id = add_item(store, owner, _arrival())
    todo_id = convert(store, owner, item_id, {"title": "Deck review"})
    assert store.get(owner, TODOS, todo_id)["title"] == "Deck review"


def test_convert_already_converted_is_rejected(store, owner):
    item_id = add_item(store, owner, _arrival())
    convert(store, owner, item_id)
    with pytest.raises(InboxStateError):
        convert(store, owner, item_id)
    assert len(store.query(owner, TODOS)) == 1


def test_convert_dismissed_is_rejected(store, owner):
    item_id = add_item(store, owner, _arrival())
    dismiss(store, owner, item_id)
    with pytest.raises(InboxStateError):
        convert(store, owner, item_id)


def test_convert_retry_after_failed_mark_does_not_duplicate(store, owner):
    item_id = add_item(store, owner, _arrival())
    # todo written, item never marked converted
    store.create(owner, TODOS, {"title": "Review the deck", "source": "inbox", "sourceId": item_id},
                 doc_id=converted_todo_id(item_id))
    todo_id = convert(store, owner, item_id)
    assert todo_id == converted_todo_id(item_id)
    assert len(store.query(owner, TODOS)) == 1
    assert get_item(store, owner, item_id).status == "converted"


def test_convert_missing_returns_none(store, owner):
    assert convert(store, owner, "missing") is None


def test_bulk_operations(store, owner):
    ids = [add_item(store, owner, _arrival(source_id=str(i), title=f"item {i}")) for i in range(4)]
    assert bulk_dismiss(store, owner, ids[:2]) == 2

    created = bulk_convert(store, owner, ids)
    assert len(created) == 2
    for todo_id in created:
        todo = store.get(owner, TODOS, todo_id)
        assert todo["categoryId"] == "professional"
        assert todo["priority"] == "medium"
    assert load_items(store, owner, status="pending") == []


def test_views():
    items = [
        InboxItem(id="a", source="slack"),
        InboxItem(id="b", source="email"),
        InboxItem(id="c", source="slack", status="dismissed"),
        InboxItem(id="d", source="calendar", status="converted"),
    ]
    assert [i.id for i in pending_items(items)] == ["a", "b"]
    assert [i.id for i in pending_items(items, "slack")] == ["a"]
    assert count_by_source(items) == {"slack": 1, "email": 1, "calendar": 0}
