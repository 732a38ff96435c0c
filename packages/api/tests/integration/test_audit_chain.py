"""Audit hash chain and append-only triggers against real PostgreSQL."""

import pytest
from mediconnect_db import AuditEvent
from sqlalchemy import text, update
from sqlalchemy.exc import DBAPIError

from mediconnect_api.services import workflow
from mediconnect_api.services.audit import (
    GENESIS_HASH,
    get_audit_chain_length,
    verify_audit_chain,
    write_audit_event,
)

from .helpers import PATIENT, add_requirement, application_body

pytestmark = pytest.mark.integration


async def _write(session, n):
    events = []
    for i in range(n):
        events.append(
            await write_audit_event(
                session, event_type="requirement_updated", user_id="admin", event_data={"i": i},
            )
        )
    await session.commit()
    return events


async def test_chain_links_and_verifies(db_session):
    events = await _write(db_session, 3)

    assert events[0].prev_hash == GENESIS_HASH
    assert events[1].prev_hash != events[2].prev_hash
    assert await get_audit_chain_length(db_session) == 3
    assert await verify_audit_chain(db_session) == {"status": "OK", "events_checked": 3}


async def test_audit_update_blocked(db_session):
    [event] = await _write(db_session, 1)
    with pytest.raises(DBAPIError, match="append-only"):
        await db_session.execute(
            update(AuditEvent).where(AuditEvent.id == event.id).values(event_type="forged")
        )


async def test_audit_delete_blocked(db_session):
    [event] = await _write(db_session, 1)
    with pytest.raises(DBAPIError, match="append-only"):
        await db_session.execute(text(f"DELETE FROM audit_events WHERE id = {event.id}"))


async def test_workflow_log_update_blocked(db_session):
    await add_requirement(db_session, code="US", required=())
    app = await workflow.submit_application(db_session, PATIENT, application_body("US"))
    with pytest.raises(DBAPIError, match="append-only"):
        await db_session.execute(
            text(
                "UPDATE visa_workflow_logs SET notes = 'edited' "
                f"WHERE visa_application_id = {app.id}"
            )
        )


async def test_tampering_detected(db_session):
    events = await _write(db_session, 3)
    # Owner-level bypass, rolled back with the test transaction
    await db_session.execute(text("ALTER TABLE audit_events DISABLE TRIGGER USER"))
    await db_session.execute(
        text(f"UPDATE audit_events SET event_data = '{{\"i\": 99}}' WHERE id = {events[1].id}")
    )
    db_session.expire_all()

    result = await verify_audit_chain(db_session)

    assert result["status"] == "TAMPERED"
    assert result["first_break_id"] == events[2].id
