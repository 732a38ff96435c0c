"""Pydantic response schemas for audit trail endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AuditEventItem(BaseModel):
    """Single audit event in a query response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    event_type: str
    user_id: str | None = None
    user_role: str | None = None
    application_id: int | None = None
    event_data: dict | None = None


class AuditByApplicationResponse(BaseModel):
    application_id: int
    count: int
    events: list[AuditEventItem]


class AuditChainVerifyResponse(BaseModel):
    """Result of walking the audit hash chain."""

    status: str
    events_checked: int
    first_break_id: int | None = None


class AuditEventListResponse(BaseModel):
    count: int
    events: list[AuditEventItem]
