"""Document request/response schemas."""

from datetime import datetime

from mediconnect_db.enums import DocumentStatus, DocumentType
from pydantic import BaseModel, ConfigDict


class DocumentResponse(BaseModel):
    """Document metadata with its public URL."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    document_type: DocumentType
    category: str
    file_name: str
    file_type: str
    file_size: int | None = None
    file_url: str
    description: str | None = None
    verification_status: DocumentStatus
    uploaded_by: str | None = None
    verified_by: str | None = None
    created_at: datetime
    updated_at: datetime


class DocumentListResponse(BaseModel):
    data: list[DocumentResponse]
    count: int


class DocumentVerificationUpdate(BaseModel):
    verification_status: DocumentStatus
