"""
Domain enums for the medical visa workflow.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class VisaStage(str, enum.Enum):
    DOCUMENTS_UPLOADED = "documents_uploaded"
    ADMIN_VERIFICATION = "admin_verification"
    HOSPITAL_LETTER_VERIFIED = "hospital_letter_verified"
    VISA_SUPPORT_APPROVED = "visa_support_approved"
    SENT_TO_EMBASSY = "sent_to_embassy"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @classmethod
    def initial_stage(cls) -> "VisaStage":
        return cls.DOCUMENTS_UPLOADED

    @classmethod
    def terminal_stages(cls) -> frozenset["VisaStage"]:
        """Stages where an application is no longer active."""
        return frozenset({cls.COMPLETED, cls.REJECTED})

    @classmethod
    def ordered_stages(cls) -> tuple["VisaStage", ...]:
        """The happy path, in order. REJECTED is not part of it."""
        return (
            cls.DOCUMENTS_UPLOADED,
            cls.ADMIN_VERIFICATION,
            cls.HOSPITAL_LETTER_VERIFIED,
            cls.VISA_SUPPORT_APPROVED,
            cls.SENT_TO_EMBASSY,
            cls.COMPLETED,
        )

    @classmethod
    def valid_transitions(cls) -> dict["VisaStage", frozenset["VisaStage"]]:
        """Allowed stage transitions. Every non-terminal stage may be rejected."""
        return {
            cls.DOCUMENTS_UPLOADED: frozenset({cls.ADMIN_VERIFICATION, cls.REJECTED}),
            cls.ADMIN_VERIFICATION: frozenset({cls.HOSPITAL_LETTER_VERIFIED, cls.REJECTED}),
            cls.HOSPITAL_LETTER_VERIFIED: frozenset({cls.VISA_SUPPORT_APPROVED, cls.REJECTED}),
            cls.VISA_SUPPORT_APPROVED: frozenset({cls.SENT_TO_EMBASSY, cls.REJECTED}),
            cls.SENT_TO_EMBASSY: frozenset({cls.COMPLETED, cls.REJECTED}),
            cls.COMPLETED: frozenset(),
            cls.REJECTED: frozenset(),
        }


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LetterStatus(str, enum.Enum):
    NOT_GENERATED = "not_generated"
    GENERATED = "generated"
    VERIFIED = "verified"


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    HOSPITAL = "hospital"
    ADMIN = "admin"


class VisaType(str, enum.Enum):
    MEDICAL_VISA = "medical_visa"
    MEDICAL_ATTENDANT_VISA = "medical_attendant_visa"


class DocumentType(str, enum.Enum):
    PASSPORT = "passport"
    PASSPORT_PHOTO = "passport_photo"
    MEDICAL_REPORTS = "medical_reports"
    HOSPITAL_INVITATION = "hospital_invitation"
    FINANCIAL_PROOF = "financial_proof"
    TRAVEL_INSURANCE = "travel_insurance"
    BANK_STATEMENT = "bank_statement"
    POLICE_CLEARANCE = "police_clearance"
    VISA_INVITATION_LETTER = "visa_invitation_letter"

    @classmethod
    def checklist_tags(cls) -> frozenset["DocumentType"]:
        """Tags a country may list as required. Generated letters are excluded."""
        return frozenset(t for t in cls if t is not cls.VISA_INVITATION_LETTER)


class DocumentStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class AttendantRelationship(str, enum.Enum):
    SPOUSE = "spouse"
    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"
    RELATIVE = "relative"
    CAREGIVER = "caregiver"
