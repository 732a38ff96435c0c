"""Visa document upload, listing, and verification routes."""

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from mediconnect_db import get_db
from mediconnect_db.enums import DocumentType, UserRole
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentVerificationUpdate,
)
from ..services import document as doc_service
from ..services.errors import NotFoundError

router = APIRouter()

_ALL_AUTHENTICATED = (UserRole.ADMIN, UserRole.HOSPITAL, UserRole.PATIENT)
_UPLOAD_ROLES = (UserRole.ADMIN, UserRole.PATIENT)


@router.post(
    "/",
    response_model=DocumentResponse,
    status_code=201,
    dependencies=[Depends(require_roles(*_UPLOAD_ROLES))],
)
async def upload_document(
    user: CurrentUser,
    file: UploadFile = File(...),
    document_type: DocumentType = Form(...),
    description: str | None = Form(default=None),
    owner_id: str | None = Form(default=None),
    session: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    """Upload a visa document. Admins may upload on behalf of ``owner_id``."""
    file_data = await file.read()
    doc = await doc_service.upload_document(
        session,
        user,
        doc_type=document_type,
        filename=file.filename or "",
        content_type=file.content_type or "",
        file_data=file_data,
        owner_id=owner_id,
        description=description,
    )
    return DocumentResponse.model_validate(doc)


@router.get(
    "/",
    response_model=DocumentListResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def list_documents(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    owner_id: str | None = None,
    document_type: DocumentType | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
) -> DocumentListResponse:
    documents, total = await doc_service.list_documents(
        session,
        user,
        owner_id=owner_id,
        doc_type=document_type,
        offset=offset,
        limit=limit,
    )
    return DocumentListResponse(
        data=[DocumentResponse.model_validate(d) for d in documents],
        count=total,
    )


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_document(
    document_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    doc = await doc_service.get_document(session, user, document_id)
    if doc is None:
        raise NotFoundError(f"Document {document_id} not found")
    return DocumentResponse.model_validate(doc)


@router.patch(
    "/{document_id}/verification",
    response_model=DocumentResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def verify_document(
    document_id: int,
    body: DocumentVerificationUpdate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    doc = await doc_service.verify_document(session, user, document_id, body.verification_status)
    return DocumentResponse.model_validate(doc)


@router.get(
    "/{document_id}/content",
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_document_content(
    document_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> Response:
    """Stream the stored file. Out-of-scope documents are reported as not found."""
    doc, data = await doc_service.get_document_content(session, user, document_id)
    return Response(
        content=data,
        media_type=doc.file_type,
        headers={"Content-Disposition": f'attachment; filename="{doc.file_name}"'},
    )
