"""Hospital invitation letter routes."""

from fastapi import APIRouter, Depends
from mediconnect_db import get_db
from mediconnect_db.enums import UserRole
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.document import DocumentResponse
from ..schemas.letter import LetterGenerateRequest, LetterResponse
from ..services import letter as letter_service
from ..services.errors import NotFoundError
from ..services.workflow import get_application

router = APIRouter()

_LETTER_ROLES = (UserRole.ADMIN, UserRole.HOSPITAL)


@router.post(
    "/{application_id}/letter",
    response_model=LetterResponse,
    status_code=201,
    dependencies=[Depends(require_roles(*_LETTER_ROLES))],
)
async def generate_letter(
    application_id: int,
    body: LetterGenerateRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> LetterResponse:
    """Generate (or regenerate) the invitation letter. Does not verify it."""
    document = await letter_service.generate_letter(session, user, application_id, body)
    app = await get_application(session, user, application_id)
    return LetterResponse(
        application_id=application_id,
        letter_status=app.letter_status,
        hospital_letter_verified=app.hospital_letter_verified,
        document=DocumentResponse.model_validate(document),
    )


@router.post(
    "/{application_id}/letter/verify",
    response_model=LetterResponse,
    dependencies=[Depends(require_roles(*_LETTER_ROLES))],
)
async def verify_letter(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> LetterResponse:
    app = await letter_service.verify_letter(session, user, application_id)
    document = await letter_service.get_letter_document(session, app)
    return LetterResponse(
        application_id=application_id,
        letter_status=app.letter_status,
        hospital_letter_verified=app.hospital_letter_verified,
        document=DocumentResponse.model_validate(document) if document else None,
    )


@router.get(
    "/{application_id}/letter",
    response_model=LetterResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.HOSPITAL, UserRole.PATIENT))],
)
async def get_letter(
    application_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> LetterResponse:
    app = await get_application(session, user, application_id)
    if app is None:
        raise NotFoundError(f"Visa application {application_id} not found")
    document = await letter_service.get_letter_document(session, app)
    return LetterResponse(
        application_id=application_id,
        letter_status=app.letter_status,
        hospital_letter_verified=app.hospital_letter_verified,
        document=DocumentResponse.model_validate(document) if document else None,
    )
