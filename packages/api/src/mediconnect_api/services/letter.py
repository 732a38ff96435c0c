"""Hospital invitation letter generation and verification.

Generation and verification are separate operations. Generation renders a
plain-text letter, writes it to the blob store, and only then records the
document row and flips ``letter_status`` to ``generated``. Verification is
a later confirmation that moves ``generated`` to ``verified``, which the
state machine requires before visa support can be approved.
"""

import logging
from datetime import UTC, date, datetime

from mediconnect_db import Document, VisaApplication
from mediconnect_db.enums import DocumentStatus, DocumentType, LetterStatus, UserRole, VisaStage
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..schemas.auth import UserContext
from ..schemas.letter import LetterGenerateRequest
from .audit import audit_user_event
from .errors import ConflictError, IllegalTransitionError, PreconditionError, ValidationError
from .notifications import notify
from .scope import apply_data_scope
from .storage import get_storage_service
from .workflow import get_application, require_application

logger = logging.getLogger(__name__)

REQUIRED_LETTER_FIELDS = (
    "doctor_name",
    "designation",
    "purpose",
    "treatment_duration",
    "stay_duration",
)

_TERMINAL_STAGES = VisaStage.terminal_stages()

LETTER_CONTENT_TYPE = "text/plain"


def validate_letter_request(request: LetterGenerateRequest) -> None:
    """Reject the request if any required letter field is empty."""
    empty = [f for f in REQUIRED_LETTER_FIELDS if not (getattr(request, f) or "").strip()]
    if empty:
        raise ValidationError(f"Letter fields must not be empty: {', '.join(empty)}")


def render_letter(
    *,
    hospital_name: str,
    hospital_address: str,
    issued_on: date,
    patient_name: str,
    treatment: str,
    purpose: str,
    treatment_duration: str,
    stay_duration: str,
    doctor_name: str,
    designation: str,
    reference: str,
    notes: str | None = None,
) -> str:
    """Render the invitation letter. Same inputs always give the same text."""
    lines = [
        "MEDICAL VISA SUPPORT LETTER",
        "",
        hospital_name,
        hospital_address,
        "",
        f"Date: {issued_on.isoformat()}",
        f"Reference: {reference}",
        "",
        "To Whom It May Concern,",
        "",
        f"RE: MEDICAL VISA SUPPORT FOR {patient_name.upper()}",
        "",
        f"This is to certify that {patient_name} has been scheduled for medical "
        "treatment at our facility.",
        "",
        "TREATMENT DETAILS:",
        f"Treatment: {treatment}",
        f"Purpose: {purpose}",
        f"Duration: {treatment_duration}",
        f"Recommended Stay: {stay_duration}",
        "",
        "ATTENDING PHYSICIAN:",
        f"Name: {doctor_name}",
        f"Designation: {designation}",
        "",
    ]
    if notes and notes.strip():
        lines += ["ADDITIONAL NOTES:", notes.strip(), ""]
    lines += [
        f"We kindly request that {patient_name} be granted a medical visa to receive "
        "treatment at our facility. We assure full cooperation and will provide all "
        "necessary medical care during their stay.",
        "",
        "For any queries, please contact us at the above-mentioned address.",
        "",
        "Sincerely,",
        "",
        hospital_name,
        "Medical Administration",
        "",
        "---",
        f"This is an official document from {hospital_name}. It does not by itself "
        "confer any entitlement to a visa; the decision rests solely with the "
        "issuing authority.",
    ]
    return "\n".join(lines)


def _letterhead_name(user: UserContext) -> str:
    if user.role == UserRole.HOSPITAL and user.name:
        return user.name
    return settings.HOSPITAL_NAME


async def generate_letter(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
    request: LetterGenerateRequest,
    *,
    issued_on: date | None = None,
) -> Document:
    """Render, store, and record an invitation letter for an application.

    The read transaction ends before the blob write; the document row, the
    ``letter_status`` update, and the audit event are then written in one
    transaction. A failed blob write leaves the database untouched.

    Raises:
        ValidationError: a required letter field is empty.
        NotFoundError: application absent or out of scope.
        IllegalTransitionError: application is completed or rejected.
        PreconditionError: the letter has already been verified.
        StorageError: the blob write failed or timed out.
        ConflictError: the application changed during generation.
    """
    validate_letter_request(request)
    app = await require_application(session, user, application_id)
    if app.workflow_stage in _TERMINAL_STAGES:
        raise IllegalTransitionError(
            f"Cannot generate a letter for an application in '{app.workflow_stage.value}'"
        )
    if app.letter_status == LetterStatus.VERIFIED:
        raise PreconditionError("Letter has already been verified and cannot be regenerated")

    patient_id = app.patient_id
    booking_id = request.booking_id or app.booking_id
    hospital_name = _letterhead_name(user)
    content = render_letter(
        hospital_name=hospital_name,
        hospital_address=settings.HOSPITAL_ADDRESS,
        issued_on=issued_on or datetime.now(UTC).date(),
        patient_name=(request.patient_name or "").strip() or patient_id,
        treatment=app.treatment_details or "As discussed",
        purpose=request.purpose.strip(),
        treatment_duration=request.treatment_duration.strip(),
        stay_duration=request.stay_duration.strip(),
        doctor_name=request.doctor_name.strip(),
        designation=request.designation.strip(),
        reference=f"VISA-{application_id}" + (f"/BOOKING-{booking_id}" if booking_id else ""),
        notes=request.notes,
    )
    # End the read transaction; nothing is held across the blob write.
    await session.commit()

    storage = get_storage_service()
    path = storage.build_letter_path(application_id)
    data = content.encode("utf-8")
    url = await storage.upload(patient_id, path, data, LETTER_CONTENT_TYPE)

    document = Document(
        user_id=patient_id,
        document_type=DocumentType.VISA_INVITATION_LETTER,
        category="visa",
        file_name=f"visa_invitation_{application_id}.txt",
        file_type=LETTER_CONTENT_TYPE,
        file_size=len(data),
        file_url=url,
        storage_key=f"{patient_id}/{path}",
        description=f"Visa invitation letter for application {application_id}",
        verification_status=DocumentStatus.PENDING,
        uploaded_by=user.user_id,
    )
    session.add(document)
    await session.flush()

    stmt = (
        update(VisaApplication)
        .where(
            VisaApplication.id == application_id,
            VisaApplication.letter_status != LetterStatus.VERIFIED,
            VisaApplication.workflow_stage.notin_(list(_TERMINAL_STAGES)),
        )
        .values(
            letter_status=LetterStatus.GENERATED,
            letter_document_id=document.id,
            updated_at=datetime.now(UTC),
        )
        .execution_options(synchronize_session=False)
    )
    stmt = apply_data_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        logger.warning(
            "Letter for application %s not recorded: application changed during generation "
            "(orphaned blob %s/%s)",
            application_id,
            patient_id,
            path,
        )
        raise ConflictError(
            f"Application {application_id} changed while the letter was generated; re-read and retry."
        )

    await audit_user_event(
        session,
        user,
        "letter_generated",
        application_id=application_id,
        event_data={
            "document_id": document.id,
            "booking_id": booking_id,
            "doctor_name": request.doctor_name.strip(),
        },
    )
    await session.commit()
    await session.refresh(document)
    logger.info(
        "Letter generated for application %s by %s (document=%s)",
        application_id,
        user.user_id,
        document.id,
    )

    notify(
        patient_id,
        "Visa Support Letter Available",
        f"Your visa support letter has been prepared by {hospital_name}. "
        "Please check your documents.",
        type="document",
        related_id=document.id,
    )
    return document


async def verify_letter(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> VisaApplication:
    """Confirm a generated letter, moving ``letter_status`` to ``verified``.

    Raises:
        NotFoundError: application absent or out of scope.
        IllegalTransitionError: application is completed or rejected.
        PreconditionError: no letter has been generated, or it is already verified.
        ConflictError: the application changed concurrently.
    """
    app = await require_application(session, user, application_id)
    if app.workflow_stage in _TERMINAL_STAGES:
        raise IllegalTransitionError(
            f"Cannot verify a letter for an application in '{app.workflow_stage.value}'"
        )
    if app.letter_status == LetterStatus.NOT_GENERATED:
        raise PreconditionError("No invitation letter has been generated for this application")
    if app.letter_status == LetterStatus.VERIFIED:
        raise PreconditionError("Invitation letter is already verified")

    stage = app.workflow_stage
    letter_document_id = app.letter_document_id
    patient_id = app.patient_id

    stmt = (
        update(VisaApplication)
        .where(
            VisaApplication.id == application_id,
            VisaApplication.letter_status == LetterStatus.GENERATED,
            VisaApplication.workflow_stage == stage,
        )
        .values(letter_status=LetterStatus.VERIFIED, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    stmt = apply_data_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        logger.warning("Lost letter verification race on application %s", application_id)
        raise ConflictError(
            f"Application {application_id} changed concurrently; re-read and retry."
        )

    if letter_document_id is not None:
        await session.execute(
            update(Document)
            .where(Document.id == letter_document_id)
            .values(verification_status=DocumentStatus.VERIFIED, verified_by=user.user_id)
            .execution_options(synchronize_session=False)
        )

    await audit_user_event(
        session,
        user,
        "letter_verified",
        application_id=application_id,
        event_data={"document_id": letter_document_id},
    )
    await session.commit()
    logger.info("Letter verified for application %s by %s", application_id, user.user_id)

    notify(
        patient_id,
        "Visa Support Letter Verified",
        "Your hospital invitation letter has been verified.",
        type="visa",
        related_id=application_id,
    )
    return await get_application(session, user, application_id)


async def get_letter_document(
    session: AsyncSession,
    app: VisaApplication,
) -> Document | None:
    """Return the current letter document for an application the caller can already see."""
    if app.letter_document_id is None:
        return None
    stmt = select(Document).where(Document.id == app.letter_document_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
