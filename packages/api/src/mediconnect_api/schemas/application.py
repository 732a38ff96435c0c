"""Visa application request/response schemas."""

from datetime import date, datetime

from mediconnect_db.enums import (
    ApplicationStatus,
    AttendantRelationship,
    LetterStatus,
    VisaStage,
    VisaType,
)
from pydantic import BaseModel, ConfigDict, Field

from . import Pagination


class AttendantCreate(BaseModel):
    """Companion travelling with the patient."""

    full_name: str
    relationship: AttendantRelationship
    passport_number: str | None = None
    passport_expiry: date | None = None
    date_of_birth: date | None = None
    nationality: str | None = None


class VisaApplicationCreate(BaseModel):
    """Submit a new medical visa application.

    The attendant cap, passport expiry, and country checks are enforced by
    the workflow service so they hold for every caller.
    """

    country_of_origin: str
    passport_number: str = Field(min_length=1)
    passport_expiry: date
    hospital_id: str | None = None
    booking_id: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None
    estimated_arrival_date: date | None = None
    estimated_departure_date: date | None = None
    visa_type: VisaType = VisaType.MEDICAL_VISA
    treatment_details: str | None = None
    accommodation_needed: bool = False
    airport_pickup_needed: bool = False
    attendants: list[AttendantCreate] = []


class AttendantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    full_name: str
    relationship: AttendantRelationship = Field(validation_alias="relationship_to_patient")
    passport_number: str | None = None
    passport_expiry: date | None = None
    date_of_birth: date | None = None
    nationality: str | None = None


class VisaApplicationResponse(BaseModel):
    """Single visa application with attendants and workflow state."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    hospital_id: str | None = None
    booking_id: str | None = None
    country_of_origin: str
    destination_country: str
    passport_number: str
    passport_expiry: date
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None
    estimated_arrival_date: date | None = None
    estimated_departure_date: date | None = None
    visa_type: VisaType
    treatment_details: str | None = None
    accommodation_needed: bool
    airport_pickup_needed: bool
    number_of_attendants: int
    required_documents: list[str]
    workflow_stage: VisaStage
    application_status: ApplicationStatus
    letter_status: LetterStatus
    hospital_letter_verified: bool
    letter_document_id: int | None = None
    rejection_reason: str | None = None
    admin_notes: str | None = None
    stage_updated_at: datetime
    created_at: datetime
    updated_at: datetime
    attendants: list[AttendantResponse] = []


class VisaApplicationListResponse(BaseModel):
    """Paginated list of visa applications."""

    data: list[VisaApplicationResponse]
    pagination: Pagination


class AdminNotesUpdate(BaseModel):
    admin_notes: str
