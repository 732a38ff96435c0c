"""Visa application state machine.

Owns the ``workflow_stage`` / ``application_status`` pair. Every mutation
is a conditional UPDATE guarded by the stage the caller read, so of two
concurrent transitions from the same stage exactly one wins and the other
gets ``ConflictError``. The workflow log row is written in the same
transaction as the stage change; notifications go out only after commit.

Every query is filtered through the caller's DataScope so that patients
see only their own applications, hospitals only those tied to them, and
admins see all.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime

from mediconnect_db import Attendant, VisaApplication, WorkflowLogEntry
from mediconnect_db.enums import ApplicationStatus, LetterStatus, VisaStage
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..schemas.application import VisaApplicationCreate
from ..schemas.auth import UserContext
from ..schemas.workflow import StageProgress, WorkflowProgressResponse
from .audit import audit_user_event
from .checklist import missing, uploaded_tags
from .errors import (
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from .notifications import notify
from .requirements import get_active_requirement, normalize_country_code
from .scope import apply_data_scope

logger = logging.getLogger(__name__)

MAX_ATTENDANTS = 3

SUBMITTED_ACTION = "application_submitted"
SUBMITTED_NOTE = "Visa application submitted by patient"

_TERMINAL_STAGES = VisaStage.terminal_stages()
_TRANSITIONS = VisaStage.valid_transitions()
_HAPPY_PATH = VisaStage.ordered_stages()

STAGE_LABELS: dict[VisaStage, str] = {
    VisaStage.DOCUMENTS_UPLOADED: "Documents Uploaded",
    VisaStage.ADMIN_VERIFICATION: "Admin Verification",
    VisaStage.HOSPITAL_LETTER_VERIFIED: "Hospital Letter Verified",
    VisaStage.VISA_SUPPORT_APPROVED: "Visa Support Approved",
    VisaStage.SENT_TO_EMBASSY: "Sent to Embassy",
    VisaStage.COMPLETED: "Completed",
    VisaStage.REJECTED: "Rejected",
}

STAGE_DESCRIPTIONS: dict[VisaStage, str] = {
    VisaStage.DOCUMENTS_UPLOADED: "Your documents have been uploaded and are pending verification",
    VisaStage.ADMIN_VERIFICATION: "Admin is reviewing your documents",
    VisaStage.HOSPITAL_LETTER_VERIFIED: "Hospital invitation letter has been verified",
    VisaStage.VISA_SUPPORT_APPROVED: "Your visa support has been approved",
    VisaStage.SENT_TO_EMBASSY: "Documents sent to embassy for processing",
    VisaStage.COMPLETED: "Visa process completed successfully",
    VisaStage.REJECTED: "Your visa application has been rejected",
}


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def check_transition(current: VisaStage, target: VisaStage) -> None:
    """Raise IllegalTransitionError unless ``target`` directly follows ``current``.

    Self-transitions are never legal, and terminal stages have no successors.
    """
    if target == current:
        raise IllegalTransitionError(
            f"Application is already in '{current.value}'; self-transitions are not allowed."
        )
    allowed = _TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise IllegalTransitionError(
            f"Cannot transition from '{current.value}' to '{target.value}'. "
            f"Allowed: {sorted(s.value for s in allowed) if allowed else 'none (terminal stage)'}."
        )


def is_valid_walk(stages: Sequence[VisaStage]) -> bool:
    """True when ``stages`` starts at the initial stage and follows legal transitions."""
    if not stages or stages[0] != VisaStage.initial_stage():
        return False
    return all(nxt in _TRANSITIONS.get(prev, frozenset()) for prev, nxt in zip(stages, stages[1:]))


def validate_submission(data: VisaApplicationCreate, today: date) -> None:
    """Check the intake rules that do not need the database."""
    if data.passport_expiry <= today:
        raise ValidationError("Passport expiry must be a future date")
    if len(data.attendants) > MAX_ATTENDANTS:
        raise ValidationError(
            f"At most {MAX_ATTENDANTS} attendants are allowed, got {len(data.attendants)}"
        )
    for i, attendant in enumerate(data.attendants, start=1):
        if not attendant.full_name.strip():
            raise ValidationError(f"Attendant {i} must have a full name")
        if attendant.passport_expiry is not None and attendant.passport_expiry <= today:
            raise ValidationError(f"Attendant {i} passport expiry must be a future date")
    if (
        data.estimated_arrival_date is not None
        and data.estimated_departure_date is not None
        and data.estimated_departure_date < data.estimated_arrival_date
    ):
        raise ValidationError("Estimated departure date must not precede arrival date")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _apply_filters(stmt, filter_stage, filter_status):
    if filter_stage is not None:
        stmt = stmt.where(VisaApplication.workflow_stage == filter_stage)
    if filter_status is not None:
        stmt = stmt.where(VisaApplication.application_status == filter_status)
    return stmt


async def list_applications(
    session: AsyncSession,
    user: UserContext,
    *,
    offset: int = 0,
    limit: int = 20,
    filter_stage: VisaStage | None = None,
    filter_status: ApplicationStatus | None = None,
) -> tuple[list[VisaApplication], int]:
    """Return applications visible to the current user, newest first."""
    count_stmt = select(func.count(VisaApplication.id))
    count_stmt = apply_data_scope(count_stmt, user.data_scope, user)
    count_stmt = _apply_filters(count_stmt, filter_stage, filter_status)
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(VisaApplication)
        .options(selectinload(VisaApplication.attendants))
        .order_by(VisaApplication.created_at.desc(), VisaApplication.id.desc())
        .offset(offset)
        .limit(limit)
    )
    stmt = apply_data_scope(stmt, user.data_scope, user)
    stmt = _apply_filters(stmt, filter_stage, filter_status)
    result = await session.execute(stmt)
    return list(result.unique().scalars().all()), total


async def get_application(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> VisaApplication | None:
    """Return a single application if visible to the current user.

    Returns None for out-of-scope applications rather than signalling
    forbidden, to avoid leaking existence of resources.
    """
    stmt = (
        select(VisaApplication)
        .options(selectinload(VisaApplication.attendants))
        .where(VisaApplication.id == application_id)
        .execution_options(populate_existing=True)
    )
    stmt = apply_data_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    return result.unique().scalar_one_or_none()


async def require_application(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> VisaApplication:
    app = await get_application(session, user, application_id)
    if app is None:
        raise NotFoundError(f"Visa application {application_id} not found")
    return app


async def get_workflow_log(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> list[WorkflowLogEntry] | None:
    """Return the stage history for an application, oldest first."""
    if await get_application(session, user, application_id) is None:
        return None
    stmt = (
        select(WorkflowLogEntry)
        .where(WorkflowLogEntry.visa_application_id == application_id)
        .order_by(WorkflowLogEntry.created_at.asc(), WorkflowLogEntry.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def submit_application(
    session: AsyncSession,
    user: UserContext,
    data: VisaApplicationCreate,
    *,
    today: date | None = None,
) -> VisaApplication:
    """Create an application in ``documents_uploaded`` / ``pending``.

    The country's required documents are copied onto the application so
    later registry edits do not move the target.

    Raises:
        ValidationError: unknown or inactive country, expired passport,
            more than three attendants, or a malformed attendant.
    """
    today = today or datetime.now(UTC).date()
    code = normalize_country_code(data.country_of_origin)
    validate_submission(data, today)

    requirement = await get_active_requirement(session, code)
    if requirement is None:
        raise ValidationError(f"No active visa requirement for country '{code}'")

    application = VisaApplication(
        patient_id=user.user_id,
        hospital_id=data.hospital_id,
        booking_id=data.booking_id,
        country_of_origin=code,
        destination_country=settings.DESTINATION_COUNTRY,
        passport_number=data.passport_number.strip(),
        passport_expiry=data.passport_expiry,
        emergency_contact_name=data.emergency_contact_name,
        emergency_contact_phone=data.emergency_contact_phone,
        estimated_arrival_date=data.estimated_arrival_date,
        estimated_departure_date=data.estimated_departure_date,
        visa_type=data.visa_type,
        treatment_details=data.treatment_details,
        accommodation_needed=data.accommodation_needed,
        airport_pickup_needed=data.airport_pickup_needed,
        number_of_attendants=len(data.attendants),
        required_documents=list(requirement.required_documents or []),
        workflow_stage=VisaStage.initial_stage(),
        application_status=ApplicationStatus.PENDING,
        letter_status=LetterStatus.NOT_GENERATED,
        attendants=[
            Attendant(
                full_name=a.full_name.strip(),
                relationship_to_patient=a.relationship,
                passport_number=a.passport_number,
                passport_expiry=a.passport_expiry,
                date_of_birth=a.date_of_birth,
                nationality=a.nationality,
            )
            for a in data.attendants
        ],
    )
    session.add(application)
    await session.flush()

    session.add(
        WorkflowLogEntry(
            visa_application_id=application.id,
            stage=VisaStage.initial_stage(),
            action=SUBMITTED_ACTION,
            notes=SUBMITTED_NOTE,
            performed_by=user.user_id,
        )
    )
    app_id = application.id  # capture before commit
    await session.commit()
    logger.info(
        "Visa application %s submitted by %s (country=%s, attendants=%d)",
        app_id,
        user.user_id,
        code,
        len(data.attendants),
    )
    return await get_application(session, user, app_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def _check_preconditions(
    session: AsyncSession,
    app: VisaApplication,
    target: VisaStage,
) -> None:
    if target == VisaStage.ADMIN_VERIFICATION:
        required = app.required_documents or []
        have = await uploaded_tags(session, app.patient_id, required)
        absent = missing(required, have)
        if absent:
            raise PreconditionError(
                f"Document checklist incomplete; missing: {', '.join(absent)}"
            )
    if target == VisaStage.VISA_SUPPORT_APPROVED and app.letter_status != LetterStatus.VERIFIED:
        raise PreconditionError(
            "Hospital invitation letter must be verified before visa support can be approved"
        )


def _action_for(target: VisaStage) -> str:
    if target == VisaStage.REJECTED:
        return "application_rejected"
    if target == VisaStage.COMPLETED:
        return "application_approved"
    return "stage_advanced"


async def _raise_lost_race(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    expected: VisaStage,
) -> None:
    current = await get_application(session, user, application_id)
    if current is None:
        raise NotFoundError(f"Visa application {application_id} not found")
    logger.warning(
        "Lost transition race on application %s: expected '%s', found '%s' (actor=%s)",
        application_id,
        expected.value,
        current.workflow_stage.value,
        user.user_id,
    )
    raise ConflictError(
        f"Application {application_id} changed concurrently "
        f"(now in '{current.workflow_stage.value}'); re-read and retry."
    )


def _notify_transition(app: VisaApplication, old: VisaStage, new: VisaStage, note: str | None):
    if new == VisaStage.REJECTED:
        title = "Visa Application Rejected"
        message = f"Your visa application has been rejected. Reason: {note or 'Please contact support'}"
    elif new == VisaStage.COMPLETED:
        title = "Visa Application Approved"
        message = (
            "Your visa application has been approved. "
            "You can now proceed with embassy submission."
        )
    else:
        title = "Visa Application Update"
        message = (
            f"Your visa application moved from {STAGE_LABELS[old]} to {STAGE_LABELS[new]}."
        )
    notify(app.patient_id, title, message, type="visa", related_id=app.id)


async def _transition(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    target: VisaStage,
    note: str | None,
) -> VisaApplication:
    app = await require_application(session, user, application_id)
    current = app.workflow_stage
    check_transition(current, target)
    await _check_preconditions(session, app, target)

    now = datetime.now(UTC)
    values: dict = {"workflow_stage": target, "stage_updated_at": now, "updated_at": now}
    guards = [VisaApplication.id == application_id, VisaApplication.workflow_stage == current]
    if target == VisaStage.REJECTED:
        values["application_status"] = ApplicationStatus.REJECTED
        values["rejection_reason"] = note
    elif target == VisaStage.COMPLETED:
        values["application_status"] = ApplicationStatus.APPROVED
    elif target == VisaStage.VISA_SUPPORT_APPROVED:
        guards.append(VisaApplication.letter_status == LetterStatus.VERIFIED)

    stmt = (
        update(VisaApplication)
        .where(*guards)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    stmt = apply_data_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        await _raise_lost_race(session, user, application_id, current)

    session.add(
        WorkflowLogEntry(
            visa_application_id=application_id,
            stage=target,
            action=_action_for(target),
            notes=note,
            performed_by=user.user_id,
        )
    )
    await session.commit()
    logger.info(
        "Application %s moved %s -> %s by %s (%s)",
        application_id,
        current.value,
        target.value,
        user.user_id,
        user.role.value,
    )

    updated = await get_application(session, user, application_id)
    _notify_transition(updated or app, current, target, note)
    return updated


async def advance(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    target_stage: VisaStage,
    note: str | None = None,
) -> VisaApplication:
    """Move an application to a direct successor stage, or to rejected.

    Raises:
        NotFoundError: application absent or out of scope.
        ValidationError: rejecting without a reason.
        IllegalTransitionError: ``target_stage`` is not a legal successor,
            or is ``completed`` (reachable only through :func:`approve`).
        PreconditionError: checklist incomplete for admin verification,
            or letter not verified for visa support approval.
        ConflictError: another actor moved the application first.
    """
    if target_stage == VisaStage.COMPLETED:
        raise IllegalTransitionError(
            "Applications are completed through approve, not advance."
        )
    note = note.strip() if note else None
    if target_stage == VisaStage.REJECTED and not note:
        raise ValidationError("A reason is required to reject an application")
    return await _transition(session, user, application_id, target_stage, note)


async def reject(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    reason: str,
) -> VisaApplication:
    """Reject an application from any non-terminal stage. ``reason`` is mandatory."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to reject an application")
    return await _transition(session, user, application_id, VisaStage.REJECTED, reason)


async def approve(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    note: str | None = None,
) -> VisaApplication:
    """Complete an application that has been sent to the embassy.

    Legal only from ``sent_to_embassy``; any other stage raises
    IllegalTransitionError.
    """
    return await _transition(
        session, user, application_id, VisaStage.COMPLETED, (note or "").strip() or None,
    )


# ---------------------------------------------------------------------------
# Notes and progress
# ---------------------------------------------------------------------------


async def update_admin_notes(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    admin_notes: str,
) -> VisaApplication:
    """Replace the admin notes on an application. Does not touch the stage."""
    app = await require_application(session, user, application_id)
    app.admin_notes = admin_notes
    await audit_user_event(
        session,
        user,
        "notes_updated",
        application_id=application_id,
        event_data={"length": len(admin_notes)},
    )
    await session.commit()
    logger.info("Admin notes updated on application %s by %s", application_id, user.user_id)
    return await get_application(session, user, application_id)


def build_progress(
    app: VisaApplication,
    reached: VisaStage | None = None,
) -> WorkflowProgressResponse:
    """Summarize where an application sits on the happy path.

    ``reached`` is the last happy-path stage before rejection; it is only
    consulted for rejected applications.
    """
    stage = app.workflow_stage
    if stage == VisaStage.REJECTED:
        anchor = reached if reached in _HAPPY_PATH else VisaStage.initial_stage()
    else:
        anchor = stage
    index = _HAPPY_PATH.index(anchor)

    stages = []
    for i, s in enumerate(_HAPPY_PATH):
        if i < index or stage == VisaStage.COMPLETED:
            state = "completed"
        elif i == index:
            state = "current"
        else:
            state = "upcoming"
        stages.append(
            StageProgress(stage=s, label=STAGE_LABELS[s], description=STAGE_DESCRIPTIONS[s], state=state)
        )

    return WorkflowProgressResponse(
        application_id=app.id,
        workflow_stage=stage,
        application_status=app.application_status,
        current_step=index + 1,
        total_steps=len(_HAPPY_PATH),
        is_terminal=stage in _TERMINAL_STAGES,
        rejection_reason=app.rejection_reason,
        stages=stages,
    )


async def get_progress(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> WorkflowProgressResponse | None:
    """Return the progress summary, or None for out-of-scope applications."""
    app = await get_application(session, user, application_id)
    if app is None:
        return None

    reached = None
    if app.workflow_stage == VisaStage.REJECTED:
        stmt = (
            select(WorkflowLogEntry.stage)
            .where(
                WorkflowLogEntry.visa_application_id == application_id,
                WorkflowLogEntry.stage != VisaStage.REJECTED,
            )
            .order_by(WorkflowLogEntry.id.desc())
            .limit(1)
        )
        reached = (await session.execute(stmt)).scalar_one_or_none()
    return build_progress(app, reached)
