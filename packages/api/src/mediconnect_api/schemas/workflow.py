"""Workflow transition, log, and progress schemas."""

from datetime import datetime
from typing import Literal

from mediconnect_db.enums import ApplicationStatus, VisaStage
from pydantic import BaseModel, ConfigDict


class AdvanceRequest(BaseModel):
    """Move an application to the next stage, or to rejected."""

    target_stage: VisaStage
    note: str | None = None


class RejectRequest(BaseModel):
    reason: str = ""


class ApproveRequest(BaseModel):
    note: str | None = None


class WorkflowLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stage: VisaStage
    action: str
    notes: str | None = None
    performed_by: str
    created_at: datetime


class WorkflowLogResponse(BaseModel):
    application_id: int
    count: int
    entries: list[WorkflowLogEntryResponse]


class StageProgress(BaseModel):
    """One stage of the happy path with its position relative to the application."""

    stage: VisaStage
    label: str
    description: str
    state: Literal["completed", "current", "upcoming"]


class WorkflowProgressResponse(BaseModel):
    """Progress summary for the patient-facing tracker."""

    application_id: int
    workflow_stage: VisaStage
    application_status: ApplicationStatus
    current_step: int
    total_steps: int
    is_terminal: bool
    rejection_reason: str | None = None
    stages: list[StageProgress]
