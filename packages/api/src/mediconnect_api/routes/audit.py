"""Admin audit trail query and chain verification endpoints."""

from fastapi import APIRouter, Depends, Query
from mediconnect_db import get_db
from mediconnect_db.enums import UserRole
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import require_roles
from ..schemas.audit import (
    AuditByApplicationResponse,
    AuditChainVerifyResponse,
    AuditEventItem,
    AuditEventListResponse,
)
from ..services.audit import get_events_by_application, get_events_by_type, verify_audit_chain

router = APIRouter()


@router.get(
    "/application/{application_id}",
    response_model=AuditByApplicationResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def audit_by_application(
    application_id: int,
    session: AsyncSession = Depends(get_db),
) -> AuditByApplicationResponse:
    """Non-transition audit events recorded against one application."""
    events = await get_events_by_application(session, application_id)
    return AuditByApplicationResponse(
        application_id=application_id,
        count=len(events),
        events=[AuditEventItem.model_validate(e) for e in events],
    )


@router.get(
    "/events",
    response_model=AuditEventListResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def audit_events_by_type(
    event_type: str = Query(..., min_length=1, description="Event type, e.g. letter_verified"),
    limit: int = Query(default=100, ge=1, le=1000),
    session: AsyncSession = Depends(get_db),
) -> AuditEventListResponse:
    """Most recent audit events of one type, newest first."""
    events = await get_events_by_type(session, event_type, limit=limit)
    return AuditEventListResponse(
        count=len(events),
        events=[AuditEventItem.model_validate(e) for e in events],
    )


@router.get(
    "/verify",
    response_model=AuditChainVerifyResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def verify_audit(
    session: AsyncSession = Depends(get_db),
) -> AuditChainVerifyResponse:
    """Walk the audit hash chain and report the first break, if any."""
    result = await verify_audit_chain(session)
    return AuditChainVerifyResponse(**result)
