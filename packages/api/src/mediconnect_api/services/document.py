"""Visa document upload, listing, and admin verification.

Uploads write the blob first and record the ``documents`` row only after
the blob store confirms, so a failed write never leaves an orphaned row.
Document presence feeds the checklist; verification status does not.
"""

import logging

from mediconnect_db import Document
from mediconnect_db.enums import DocumentStatus, DocumentType, UserRole
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..schemas.auth import UserContext
from .audit import audit_user_event
from .errors import NotFoundError, ValidationError
from .scope import apply_document_scope
from .storage import ALLOWED_CONTENT_TYPES, get_storage_service

logger = logging.getLogger(__name__)


def validate_upload(doc_type: DocumentType, content_type: str, size: int) -> None:
    """Check type, content type, and size before anything is written."""
    if doc_type == DocumentType.VISA_INVITATION_LETTER:
        raise ValidationError("Invitation letters are generated by the hospital, not uploaded")
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"Unsupported content type: {content_type}. "
            f"Allowed: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}"
        )
    if size == 0:
        raise ValidationError("Uploaded file is empty")
    max_bytes = settings.UPLOAD_MAX_SIZE_MB * 1024 * 1024
    if size > max_bytes:
        raise ValidationError(
            f"File size {size} exceeds maximum of {settings.UPLOAD_MAX_SIZE_MB}MB"
        )


async def upload_document(
    session: AsyncSession,
    user: UserContext,
    *,
    doc_type: DocumentType,
    filename: str,
    content_type: str,
    file_data: bytes,
    owner_id: str | None = None,
    description: str | None = None,
) -> Document:
    """Store a visa document for its owner and record it.

    Patients always upload for themselves; admins may upload on behalf of
    ``owner_id``.

    Raises:
        ValidationError: letter type, bad content type, empty or oversized file.
        StorageError: the blob write failed or timed out. Nothing was recorded.
    """
    validate_upload(doc_type, content_type, len(file_data))
    if user.role != UserRole.ADMIN or not owner_id:
        owner_id = user.user_id

    storage = get_storage_service()
    path = storage.build_document_path(doc_type.value, filename, content_type)
    url = await storage.upload(owner_id, path, file_data, content_type)

    document = Document(
        user_id=owner_id,
        document_type=doc_type,
        category="visa",
        file_name=filename or f"{doc_type.value}{ALLOWED_CONTENT_TYPES[content_type]}",
        file_type=content_type,
        file_size=len(file_data),
        file_url=url,
        storage_key=f"{owner_id}/{path}",
        description=description,
        verification_status=DocumentStatus.PENDING,
        uploaded_by=user.user_id,
    )
    session.add(document)
    await session.flush()
    await audit_user_event(
        session,
        user,
        "document_uploaded",
        event_data={
            "document_id": document.id,
            "owner_id": owner_id,
            "document_type": doc_type.value,
        },
    )
    await session.commit()
    await session.refresh(document)
    logger.info(
        "Document %s (%s) uploaded for %s by %s",
        document.id,
        doc_type.value,
        owner_id,
        user.user_id,
    )
    return document


async def list_documents(
    session: AsyncSession,
    user: UserContext,
    *,
    owner_id: str | None = None,
    doc_type: DocumentType | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Document], int]:
    """Return documents visible to the current user, newest first."""

    def _filters(stmt):
        stmt = apply_document_scope(stmt, user.data_scope, user)
        if owner_id is not None:
            stmt = stmt.where(Document.user_id == owner_id)
        if doc_type is not None:
            stmt = stmt.where(Document.document_type == doc_type)
        return stmt

    total = (await session.execute(_filters(select(func.count(Document.id))))).scalar() or 0
    stmt = _filters(
        select(Document)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all()), total


async def get_document(
    session: AsyncSession,
    user: UserContext,
    document_id: int,
) -> Document | None:
    """Return a single document if visible to the current user."""
    stmt = select(Document).where(Document.id == document_id)
    stmt = apply_document_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_document_content(
    session: AsyncSession,
    user: UserContext,
    document_id: int,
) -> tuple[Document, bytes]:
    """Return a visible document together with its bytes from the blob store.

    Raises:
        NotFoundError: document absent or out of scope.
        StorageError: the blob store read failed.
    """
    document = await get_document(session, user, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    data = await get_storage_service().download(document.storage_key)
    logger.info("Document %s content served to %s", document_id, user.user_id)
    return document, data


async def verify_document(
    session: AsyncSession,
    user: UserContext,
    document_id: int,
    verification_status: DocumentStatus,
) -> Document:
    """Set a document's verification status.

    Invitation letters are verified through the letter workflow instead.
    """
    document = await get_document(session, user, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    if document.document_type == DocumentType.VISA_INVITATION_LETTER:
        raise ValidationError("Invitation letters are verified through the letter workflow")

    previous = document.verification_status
    document.verification_status = verification_status
    document.verified_by = user.user_id
    await audit_user_event(
        session,
        user,
        "document_verified",
        event_data={
            "document_id": document.id,
            "owner_id": document.user_id,
            "from": previous.value if previous else None,
            "to": verification_status.value,
        },
    )
    await session.commit()
    await session.refresh(document)
    logger.info(
        "Document %s marked %s by %s", document.id, verification_status.value, user.user_id,
    )
    return document
