"""Document checklist validation.

A required document tag is satisfied when at least one document of that
exact type exists for the applicant, regardless of its verification
status. The checklist for an application is evaluated against the
requirement snapshot taken at submission.
"""

import logging
from collections.abc import Iterable

from mediconnect_db import Document, VisaApplication
from mediconnect_db.enums import DocumentType
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.auth import UserContext
from ..schemas.checklist import ChecklistItem, ChecklistResponse
from .scope import apply_data_scope

logger = logging.getLogger(__name__)

# Human-readable labels for document tags
DOC_TYPE_LABELS: dict[DocumentType, str] = {
    DocumentType.PASSPORT: "Passport (Front & Back)",
    DocumentType.PASSPORT_PHOTO: "Passport-size Photograph",
    DocumentType.MEDICAL_REPORTS: "Medical Reports",
    DocumentType.HOSPITAL_INVITATION: "Hospital Invitation Letter",
    DocumentType.FINANCIAL_PROOF: "Financial Proof (Bank Statement)",
    DocumentType.TRAVEL_INSURANCE: "Travel Insurance",
    DocumentType.BANK_STATEMENT: "Bank Statement (Last 6 months)",
    DocumentType.POLICE_CLEARANCE: "Police Clearance Certificate",
    DocumentType.VISA_INVITATION_LETTER: "Visa Invitation Letter",
}


def _tag(value) -> str:
    return value.value if isinstance(value, DocumentType) else str(value)


def missing(required: Iterable, uploaded: Iterable) -> list[str]:
    """Return required tags with no uploaded counterpart, in required order."""
    have = {_tag(t) for t in uploaded}
    return [tag for tag in dict.fromkeys(_tag(t) for t in required) if tag not in have]


def is_complete(required: Iterable, uploaded: Iterable) -> bool:
    """True when every required tag has been uploaded. An empty requirement is complete."""
    return not missing(required, uploaded)


async def get_documents_for_tags(
    session: AsyncSession,
    owner_id: str,
    tags: Iterable[str],
) -> list[Document]:
    """Return the owner's documents of the given types, newest first.

    Does NOT enforce data scope -- caller must check access to the application first.
    """
    wanted = [DocumentType(t) for t in tags]
    if not wanted:
        return []
    stmt = (
        select(Document)
        .where(Document.user_id == owner_id, Document.document_type.in_(wanted))
        .order_by(Document.created_at.desc(), Document.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def uploaded_tags(
    session: AsyncSession,
    owner_id: str,
    tags: Iterable[str],
) -> set[str]:
    """Return the subset of ``tags`` for which the owner has at least one document."""
    documents = await get_documents_for_tags(session, owner_id, tags)
    return {_tag(doc.document_type) for doc in documents}


def build_checklist(application: VisaApplication, documents: list[Document]) -> ChecklistResponse:
    """Build the checklist response from an application and its owner's documents.

    ``documents`` must be ordered newest first so the first match per tag
    is the latest upload.
    """
    latest: dict[str, Document] = {}
    for doc in documents:
        latest.setdefault(_tag(doc.document_type), doc)

    required = list(dict.fromkeys(application.required_documents or []))
    items = []
    for tag in required:
        doc = latest.get(tag)
        doc_type = DocumentType(tag)
        items.append(
            ChecklistItem(
                doc_type=doc_type,
                label=DOC_TYPE_LABELS.get(doc_type, tag),
                is_provided=doc is not None,
                document_id=doc.id if doc is not None else None,
                verification_status=doc.verification_status if doc is not None else None,
            )
        )

    absent = missing(required, latest.keys())
    return ChecklistResponse(
        application_id=application.id,
        country_code=application.country_of_origin,
        is_complete=not absent,
        missing=[DocumentType(t) for t in absent],
        items=items,
        provided_count=len(required) - len(absent),
        required_count=len(required),
    )


async def get_checklist(
    session: AsyncSession,
    user: UserContext,
    application_id: int,
) -> ChecklistResponse | None:
    """Return the checklist for an application visible to the current user.

    Returns None for out-of-scope or missing applications.
    """
    stmt = select(VisaApplication).where(VisaApplication.id == application_id)
    stmt = apply_data_scope(stmt, user.data_scope, user)
    result = await session.execute(stmt)
    application = result.unique().scalar_one_or_none()
    if application is None:
        return None

    documents = await get_documents_for_tags(
        session, application.patient_id, application.required_documents or [],
    )
    return build_checklist(application, documents)
