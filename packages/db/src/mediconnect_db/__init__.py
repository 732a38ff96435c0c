__version__ = "0.1.0"

from .database import Base, DatabaseService, SessionLocal, get_db, get_db_service
from .enums import (
    ApplicationStatus,
    AttendantRelationship,
    DocumentStatus,
    DocumentType,
    LetterStatus,
    UserRole,
    VisaStage,
    VisaType,
)
from .models import (
    Attendant,
    AuditEvent,
    CountryRequirement,
    Document,
    VisaApplication,
    WorkflowLogEntry,
)

__all__ = [
    "Base",
    "DatabaseService",
    "SessionLocal",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "ApplicationStatus",
    "AttendantRelationship",
    "DocumentStatus",
    "DocumentType",
    "LetterStatus",
    "UserRole",
    "VisaStage",
    "VisaType",
    # Models
    "Attendant",
    "AuditEvent",
    "CountryRequirement",
    "Document",
    "VisaApplication",
    "WorkflowLogEntry",
]
