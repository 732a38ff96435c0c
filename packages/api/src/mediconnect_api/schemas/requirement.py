"""Country requirement registry request/response schemas."""

from datetime import datetime
from decimal import Decimal

from mediconnect_db.enums import VisaType
from pydantic import BaseModel, ConfigDict


class CountryRequirementCreate(BaseModel):
    """Create a country visa requirement. Business rules are checked by the service."""

    country_code: str
    country_name: str
    visa_type: VisaType = VisaType.MEDICAL_VISA
    required_documents: list[str] = []
    processing_time_days: int = 15
    validity_days: int = 90
    extension_available: bool = True
    fees_usd: Decimal = Decimal("0")
    special_notes: str | None = None


class CountryRequirementUpdate(BaseModel):
    """Partial update to an active country requirement."""

    country_name: str | None = None
    visa_type: VisaType | None = None
    required_documents: list[str] | None = None
    processing_time_days: int | None = None
    validity_days: int | None = None
    extension_available: bool | None = None
    fees_usd: Decimal | None = None
    special_notes: str | None = None


class CountryRequirementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    country_code: str
    country_name: str
    visa_type: VisaType
    required_documents: list[str]
    processing_time_days: int
    validity_days: int
    extension_available: bool
    fees_usd: Decimal
    special_notes: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CountryRequirementListResponse(BaseModel):
    data: list[CountryRequirementResponse]
    count: int
