"""Visa application routes: intake, reads, and stage transitions."""

from fastapi import APIRouter, Depends, Query
from mediconnect_db import VisaApplication, get_db
from mediconnect_db.enums import ApplicationStatus, UserRole, VisaStage
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas import Pagination
from ..schemas.application import (
    AdminNotesUpdate,
    VisaApplicationCreate,
    VisaApplicationListResponse,
    VisaApplicationResponse,
)
from ..schemas.checklist import ChecklistResponse
from ..schemas.workflow import (
    AdvanceRequest,
    ApproveRequest,
    RejectRequest,
    WorkflowLogEntryResponse,
    WorkflowLogResponse,
    WorkflowProgressResponse,
)
from ..services import workflow
from ..services.checklist import get_checklist
from ..services.errors import NotFoundError

router = APIRouter()

_ALL_AUTHENTICATED = (UserRole.ADMIN, UserRole.HOSPITAL, UserRole.PATIENT)
_TRANSITION_ROLES = (UserRole.ADMIN, UserRole.HOSPITAL)


def _not_found(application_id: int) -> NotFoundError:
    return NotFoundError(f"Visa application {application_id} not found")


def _to_response(app: VisaApplication) -> VisaApplicationResponse:
    return VisaApplicationResponse.model_validate(app)


@router.post(
    "/",
    response_model=VisaApplicationResponse,
    status_code=201,
    dependencies=[Depends(require_roles(UserRole.PATIENT))],
)
async def submit_application(
    body: VisaApplicationCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VisaApplicationResponse:
    """Submit a medical visa application for the current patient."""
    app = await workflow.submit_application(session, user, body)
    return _to_response(app)


@router.get(
    "/",
    response_model=VisaApplicationListResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def list_applications(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    filter_stage: VisaStage | None = None,
    filter_status: ApplicationStatus | None = None,
) -> VisaApplicationListResponse:
    """List applications visible to the current user's role and data scope."""
    applications, total = await workflow.list_applications(
        session,
        user,
        offset=offset,
        limit=limit,
        filter_stage=filter_stage,
        filter_status=filter_status,
    )
    return VisaApplicationListResponse(
        data=[_to_response(a) for a in applications],
        pagination=Pagination(
            total=total,
            offset=offset,
            limit=limit,
            has_more=(offset + limit < total),
        ),
    )


@router.get(
    "/{application_id}",
    response_model=VisaApplicationResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_application(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VisaApplicationResponse:
    """Get a single application. Returns 404 for out-of-scope resources."""
    app = await workflow.get_application(session, user, application_id)
    if app is None:
        raise _not_found(application_id)
    return _to_response(app)


@router.get(
    "/{application_id}/checklist",
    response_model=ChecklistResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_application_checklist(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> ChecklistResponse:
    """Required documents for the application and which are still missing."""
    result = await get_checklist(session, user, application_id)
    if result is None:
        raise _not_found(application_id)
    return result


@router.get(
    "/{application_id}/workflow-log",
    response_model=WorkflowLogResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_workflow_log(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> WorkflowLogResponse:
    entries = await workflow.get_workflow_log(session, user, application_id)
    if entries is None:
        raise _not_found(application_id)
    return WorkflowLogResponse(
        application_id=application_id,
        count=len(entries),
        entries=[WorkflowLogEntryResponse.model_validate(e) for e in entries],
    )


@router.get(
    "/{application_id}/progress",
    response_model=WorkflowProgressResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_progress(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> WorkflowProgressResponse:
    result = await workflow.get_progress(session, user, application_id)
    if result is None:
        raise _not_found(application_id)
    return result


@router.post(
    "/{application_id}/advance",
    response_model=VisaApplicationResponse,
    dependencies=[Depends(require_roles(*_TRANSITION_ROLES))],
)
async def advance_application(
    application_id: int,
    body: AdvanceRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VisaApplicationResponse:
    """Move the application to the next stage, or reject it with a note."""
    app = await workflow.advance(session, user, application_id, body.target_stage, body.note)
    return _to_response(app)


@router.post(
    "/{application_id}/reject",
    response_model=VisaApplicationResponse,
    dependencies=[Depends(require_roles(*_TRANSITION_ROLES))],
)
async def reject_application(
    application_id: int,
    body: RejectRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VisaApplicationResponse:
    app = await workflow.reject(session, user, application_id, body.reason)
    return _to_response(app)


@router.post(
    "/{application_id}/approve",
    response_model=VisaApplicationResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def approve_application(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    body: ApproveRequest | None = None,
) -> VisaApplicationResponse:
    app = await workflow.approve(session, user, application_id, body.note if body else None)
    return _to_response(app)


@router.patch(
    "/{application_id}/notes",
    response_model=VisaApplicationResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def update_notes(
    application_id: int,
    body: AdminNotesUpdate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> VisaApplicationResponse:
    app = await workflow.update_admin_notes(session, user, application_id, body.admin_notes)
    return _to_response(app)
