"""
MediConnect -- visa workflow domain models

Country visa requirements, patient visa applications with their attendants,
uploaded documents, the per-application workflow log, and the general
audit trail.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base
from .enums import (
    ApplicationStatus,
    AttendantRelationship,
    DocumentStatus,
    DocumentType,
    LetterStatus,
    VisaStage,
    VisaType,
)


class CountryRequirement(Base):
    """Per-country medical visa rules. Soft-deactivated, never deleted."""

    __tablename__ = "visa_country_requirements"
    __table_args__ = (
        Index(
            "uq_visa_country_requirements_active_code",
            "country_code",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    country_code = Column(String(2), nullable=False, index=True)
    country_name = Column(String(100), nullable=False)
    visa_type = Column(
        Enum(VisaType, name="visa_type", native_enum=False),
        nullable=False,
        default=VisaType.MEDICAL_VISA,
    )
    required_documents = Column(JSON, nullable=False, default=list)
    processing_time_days = Column(Integer, nullable=False, default=15)
    validity_days = Column(Integer, nullable=False, default=90)
    extension_available = Column(Boolean, nullable=False, default=True)
    fees_usd = Column(Numeric(10, 2), nullable=False, default=0)
    special_notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CountryRequirement(code='{self.country_code}', active={self.is_active})>"


class VisaApplication(Base):
    """Medical visa application submitted by a patient."""

    __tablename__ = "visa_applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(String(255), nullable=False, index=True)
    hospital_id = Column(String(255), nullable=True, index=True)
    booking_id = Column(String(255), nullable=True)
    country_of_origin = Column(String(2), nullable=False, index=True)
    destination_country = Column(String(100), nullable=False)
    passport_number = Column(String(50), nullable=False)
    passport_expiry = Column(Date, nullable=False)
    emergency_contact_name = Column(String(255), nullable=True)
    emergency_contact_phone = Column(String(50), nullable=True)
    estimated_arrival_date = Column(Date, nullable=True)
    estimated_departure_date = Column(Date, nullable=True)
    visa_type = Column(
        Enum(VisaType, name="visa_type", native_enum=False),
        nullable=False,
        default=VisaType.MEDICAL_VISA,
    )
    treatment_details = Column(Text, nullable=True)
    accommodation_needed = Column(Boolean, nullable=False, default=False)
    airport_pickup_needed = Column(Boolean, nullable=False, default=False)
    number_of_attendants = Column(Integer, nullable=False, default=0)
    # Snapshot of the country's required document tags at submission time
    required_documents = Column(JSON, nullable=False, default=list)
    workflow_stage = Column(
        Enum(VisaStage, name="visa_stage", native_enum=False),
        nullable=False,
        default=VisaStage.DOCUMENTS_UPLOADED,
        index=True,
    )
    application_status = Column(
        Enum(ApplicationStatus, name="application_status", native_enum=False),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    letter_status = Column(
        Enum(LetterStatus, name="letter_status", native_enum=False),
        nullable=False,
        default=LetterStatus.NOT_GENERATED,
    )
    letter_document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True,
    )
    rejection_reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    stage_updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    attendants = relationship(
        "Attendant", back_populates="application", cascade="all, delete-orphan",
    )
    workflow_logs = relationship(
        "WorkflowLogEntry",
        back_populates="application",
        order_by="WorkflowLogEntry.id",
    )

    @property
    def hospital_letter_verified(self) -> bool:
        return self.letter_status == LetterStatus.VERIFIED

    def __repr__(self):
        return f"<VisaApplication(id={self.id}, stage='{self.workflow_stage}')>"


class Attendant(Base):
    """Companion travelling with the patient. At most three per application."""

    __tablename__ = "visa_attendants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visa_application_id = Column(
        Integer, ForeignKey("visa_applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    full_name = Column(String(255), nullable=False)
    relationship_to_patient = Column(
        "relationship",
        Enum(AttendantRelationship, name="attendant_relationship", native_enum=False),
        nullable=False,
    )
    passport_number = Column(String(50), nullable=True)
    passport_expiry = Column(Date, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    nationality = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("VisaApplication", back_populates="attendants")

    def __repr__(self):
        return f"<Attendant(id={self.id}, app_id={self.visa_application_id})>"


class Document(Base):
    """Uploaded document owned by a user. The row is written after the blob."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    document_type = Column(
        Enum(DocumentType, name="document_type", native_enum=False),
        nullable=False,
        index=True,
    )
    category = Column(String(50), nullable=False, default="visa")
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=True)
    file_url = Column(String(1000), nullable=False)
    storage_key = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    verification_status = Column(
        Enum(DocumentStatus, name="document_status", native_enum=False),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    uploaded_by = Column(String(255), nullable=True)
    verified_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Document(id={self.id}, type='{self.document_type}')>"


class WorkflowLogEntry(Base):
    """Append-only stage history. One row per submission or stage transition."""

    __tablename__ = "visa_workflow_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visa_application_id = Column(
        Integer, ForeignKey("visa_applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage = Column(
        Enum(VisaStage, name="visa_stage", native_enum=False),
        nullable=False,
    )
    action = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    performed_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    application = relationship("VisaApplication", back_populates="workflow_logs")

    def __repr__(self):
        return f"<WorkflowLogEntry(app_id={self.visa_application_id}, stage='{self.stage}')>"


class AuditEvent(Base):
    """Append-only audit trail. INSERT + SELECT only -- no UPDATE or DELETE."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    prev_hash = Column(String(64), nullable=True)
    user_id = Column(String(255), nullable=True)
    user_role = Column(String(50), nullable=True)
    event_type = Column(String(100), nullable=False, index=True)
    application_id = Column(Integer, nullable=True, index=True)
    event_data = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<AuditEvent(id={self.id}, type='{self.event_type}')>"
