"""Hospital invitation letter schemas."""

from mediconnect_db.enums import LetterStatus
from pydantic import BaseModel

from .document import DocumentResponse


class LetterGenerateRequest(BaseModel):
    """Letter fields. Emptiness is checked by the letter service."""

    booking_id: str | None = None
    patient_name: str | None = None
    doctor_name: str = ""
    designation: str = ""
    purpose: str = ""
    treatment_duration: str = ""
    stay_duration: str = ""
    notes: str | None = None


class LetterResponse(BaseModel):
    application_id: int
    letter_status: LetterStatus
    hospital_letter_verified: bool
    document: DocumentResponse | None = None
