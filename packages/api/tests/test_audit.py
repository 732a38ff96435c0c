"""Tests for the hash-chained audit service."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from mediconnect_db import AuditEvent
from mediconnect_db.enums import UserRole

from mediconnect_api.services.audit import (
    GENESIS_HASH,
    _compute_hash,
    audit_user_event,
    verify_audit_chain,
    write_audit_event,
)

from .factories import make_result, make_session, make_user


def _mock_audit_session(prev_event=None):
    """Build a mock session that supports advisory lock + latest-event query."""
    mock_session = AsyncMock()
    # execute is called twice: advisory lock, then latest-event query
    lock_result = MagicMock()
    query_result = MagicMock()
    query_result.scalar_one_or_none.return_value = prev_event
    mock_session.execute = AsyncMock(side_effect=[lock_result, query_result])
    mock_session.add = MagicMock()
    return mock_session


def _stored_event(id, prev_hash, event_type="letter_generated"):
    e = MagicMock()
    e.id = id
    e.timestamp = datetime(2026, 3, 1, 12, id, tzinfo=UTC)
    e.event_type = event_type
    e.user_id = "hospital-1"
    e.user_role = "hospital"
    e.application_id = 100
    e.event_data = {"document_id": id}
    e.prev_hash = prev_hash
    return e


def _hash_of(e):
    return _compute_hash(
        e.id, str(e.timestamp), e.event_type, e.user_id, e.user_role, e.application_id, e.event_data,
    )


def _chain(n):
    events = []
    for i in range(1, n + 1):
        prev = GENESIS_HASH if not events else _hash_of(events[-1])
        events.append(_stored_event(i, prev))
    return events


async def test_first_event_links_to_genesis():
    session = _mock_audit_session(prev_event=None)

    await write_audit_event(session, event_type="requirement_created", user_id="admin-1")

    added = session.add.call_args[0][0]
    assert isinstance(added, AuditEvent)
    assert added.prev_hash == GENESIS_HASH
    session.flush.assert_awaited_once()


async def test_event_links_to_hash_of_predecessor():
    prev = _stored_event(7, "whatever")
    session = _mock_audit_session(prev_event=prev)

    await write_audit_event(session, event_type="letter_verified", application_id=100)

    added = session.add.call_args[0][0]
    assert added.prev_hash == _hash_of(prev)
    assert len(added.prev_hash) == 64


async def test_advisory_lock_taken_before_reading_latest():
    session = _mock_audit_session()

    await write_audit_event(session, event_type="notes_updated")

    first_sql = str(session.execute.call_args_list[0].args[0])
    assert "pg_advisory_xact_lock" in first_sql


async def test_audit_user_event_stamps_actor():
    session = _mock_audit_session()

    await audit_user_event(
        session, make_user(UserRole.HOSPITAL, "hospital-1"), "letter_generated", application_id=5,
    )

    added = session.add.call_args[0][0]
    assert added.user_id == "hospital-1"
    assert added.user_role == "hospital"
    assert added.application_id == 5


def test_hash_changes_with_payload():
    base = _compute_hash(1, "t", "x", "u", "r", 1, {"a": 1})
    assert base != _compute_hash(1, "t", "x", "u", "r", 1, {"a": 2})
    assert base == _compute_hash(1, "t", "x", "u", "r", 1, {"a": 1})


async def test_verify_intact_chain():
    session = make_session(make_result(items=_chain(4)))

    result = await verify_audit_chain(session)

    assert result == {"status": "OK", "events_checked": 4}


async def test_verify_detects_tampered_payload():
    events = _chain(4)
    events[1].event_data = {"document_id": 999}

    result = await verify_audit_chain(make_session(make_result(items=events)))

    assert result["status"] == "TAMPERED"
    assert result["first_break_id"] == 3


async def test_verify_empty_chain_is_ok():
    result = await verify_audit_chain(make_session(make_result(items=[])))
    assert result == {"status": "OK", "events_checked": 0}
