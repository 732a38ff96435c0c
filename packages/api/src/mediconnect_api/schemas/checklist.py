"""Document checklist schemas."""

from mediconnect_db.enums import DocumentStatus, DocumentType
from pydantic import BaseModel


class ChecklistItem(BaseModel):
    """A single required document with its fulfillment status."""

    doc_type: DocumentType
    label: str
    is_provided: bool = False
    document_id: int | None = None
    verification_status: DocumentStatus | None = None


class ChecklistResponse(BaseModel):
    """Document checklist for a visa application, evaluated against its requirement snapshot."""

    application_id: int
    country_code: str
    is_complete: bool
    missing: list[DocumentType]
    items: list[ChecklistItem]
    provided_count: int
    required_count: int
