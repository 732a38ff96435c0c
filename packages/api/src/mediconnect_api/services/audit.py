"""Audit event service.

Writes append-only audit trail entries for workflow events that are not
stage transitions (letter generation, requirement edits, document
verification, notes). Each entry carries a SHA-256 hash of its
predecessor for tamper evidence; a PostgreSQL advisory lock serializes
hash computation across concurrent writers.
"""

import hashlib
import json
import logging

from mediconnect_db import AuditEvent
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.auth import UserContext

logger = logging.getLogger(__name__)

# Fixed advisory lock key for audit trail serialization.
# Only audit event inserts are serialized; other DB operations are unaffected.
AUDIT_LOCK_KEY = 900_001

GENESIS_HASH = "genesis"


def _compute_hash(
    event_id: int,
    timestamp: str,
    event_type: str,
    user_id: str | None,
    user_role: str | None,
    application_id: int | None,
    event_data: dict | None,
) -> str:
    """Compute SHA-256 hash of an audit event's key fields."""
    payload = "|".join(
        [
            str(event_id),
            timestamp,
            event_type,
            user_id or "",
            user_role or "",
            str(application_id or ""),
            json.dumps(event_data, sort_keys=True, default=str),
        ]
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def _hash_event(event: AuditEvent) -> str:
    return _compute_hash(
        event.id,
        str(event.timestamp),
        event.event_type,
        event.user_id,
        event.user_role,
        event.application_id,
        event.event_data,
    )


async def write_audit_event(
    session: AsyncSession,
    *,
    event_type: str,
    user_id: str | None = None,
    user_role: str | None = None,
    application_id: int | None = None,
    event_data: dict | None = None,
) -> AuditEvent:
    """Write a single audit event with hash chain linkage.

    Acquires a PostgreSQL advisory lock to serialize hash computation,
    then computes prev_hash from the most recent event. The caller owns
    the transaction: the event commits or rolls back with it.

    Args:
        session: Database session.
        event_type: Event category (e.g. 'letter_generated', 'requirement_updated').
        user_id: User who triggered the event.
        user_role: Role at the time of the event.
        application_id: Related visa application, if any.
        event_data: Arbitrary JSON-serializable event payload.

    Returns:
        The created AuditEvent row (with prev_hash set).
    """
    # Released automatically when the transaction commits or rolls back.
    await session.execute(text(f"SELECT pg_advisory_xact_lock({AUDIT_LOCK_KEY})"))

    latest_stmt = select(AuditEvent).order_by(AuditEvent.id.desc()).limit(1)
    result = await session.execute(latest_stmt)
    prev_event = result.scalar_one_or_none()

    prev_hash = _hash_event(prev_event) if prev_event is not None else GENESIS_HASH

    audit = AuditEvent(
        event_type=event_type,
        user_id=user_id,
        user_role=user_role,
        application_id=application_id,
        event_data=event_data,
        prev_hash=prev_hash,
    )
    session.add(audit)
    await session.flush()
    return audit


async def audit_user_event(
    session: AsyncSession,
    user: UserContext,
    event_type: str,
    *,
    application_id: int | None = None,
    event_data: dict | None = None,
) -> AuditEvent:
    """Convenience wrapper stamping the acting user onto the event."""
    return await write_audit_event(
        session,
        event_type=event_type,
        user_id=user.user_id,
        user_role=user.role.value,
        application_id=application_id,
        event_data=event_data,
    )


async def verify_audit_chain(session: AsyncSession) -> dict:
    """Verify the integrity of the audit event hash chain.

    Walks all events in ID order, recomputes each expected prev_hash,
    and compares against the stored value.

    Returns:
        {"status": "OK", "events_checked": N} on success, or
        {"status": "TAMPERED", "first_break_id": id, "events_checked": N}
        if a mismatch is found.
    """
    stmt = select(AuditEvent).order_by(AuditEvent.id.asc())
    result = await session.execute(stmt)
    events = list(result.scalars().all())

    for i, event in enumerate(events):
        expected = GENESIS_HASH if i == 0 else _hash_event(events[i - 1])
        if event.prev_hash != expected:
            logger.warning("Audit chain break at event %s", event.id)
            return {
                "status": "TAMPERED",
                "first_break_id": event.id,
                "events_checked": i + 1,
            }

    return {"status": "OK", "events_checked": len(events)}


async def get_audit_chain_length(session: AsyncSession) -> int:
    """Return the total number of audit events."""
    result = await session.execute(select(func.count(AuditEvent.id)))
    return result.scalar_one()


async def get_events_by_application(
    session: AsyncSession,
    application_id: int,
) -> list[AuditEvent]:
    """Return all audit events for one visa application, oldest first."""
    stmt = (
        select(AuditEvent)
        .where(AuditEvent.application_id == application_id)
        .order_by(AuditEvent.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_events_by_type(
    session: AsyncSession,
    event_type: str,
    *,
    limit: int = 100,
) -> list[AuditEvent]:
    """Return the most recent audit events of one type, newest first."""
    stmt = (
        select(AuditEvent)
        .where(AuditEvent.event_type == event_type)
        .order_by(AuditEvent.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
