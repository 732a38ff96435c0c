"""
SQLAdmin configuration for database administration UI

Access the admin panel at: http://localhost:8000/admin

When AUTH_DISABLED=false, requires admin credentials via login form.
When AUTH_DISABLED=true, admin panel is open (dev mode).

Workflow state is read-only here: stage changes must go through the API so
that they are conditional and logged.
"""

from mediconnect_db import (
    Attendant,
    AuditEvent,
    CountryRequirement,
    Document,
    VisaApplication,
    WorkflowLogEntry,
)
from sqladmin import Admin, ModelView
from sqladmin.authentication import AuthenticationBackend
from sqlalchemy import create_engine
from starlette.requests import Request
from starlette.responses import Response

from .core.config import settings

# SQLAdmin requires a sync engine; derive from the async DATABASE_URL
_sync_url = settings.DATABASE_URL.replace("+asyncpg", "")
engine = create_engine(_sync_url, echo=False)


class AdminAuth(AuthenticationBackend):
    """Session-based auth gate for SQLAdmin.

    When AUTH_DISABLED=true, authenticate() always returns True (dev mode).
    Otherwise, requires login with credentials from SQLADMIN_USER / SQLADMIN_PASSWORD.
    """

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = form.get("username")
        password = form.get("password")
        if username == settings.SQLADMIN_USER and password == settings.SQLADMIN_PASSWORD:
            request.session.update({"admin_authenticated": True})
            return True
        return False

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> Response | bool:
        if settings.AUTH_DISABLED:
            return True
        return request.session.get("admin_authenticated", False)


class CountryRequirementAdmin(ModelView, model=CountryRequirement):
    column_list = [
        CountryRequirement.id,
        CountryRequirement.country_code,
        CountryRequirement.country_name,
        CountryRequirement.processing_time_days,
        CountryRequirement.fees_usd,
        CountryRequirement.is_active,
    ]
    column_searchable_list = [CountryRequirement.country_code, CountryRequirement.country_name]
    column_sortable_list = [CountryRequirement.country_code, CountryRequirement.is_active]
    can_delete = False
    name = "Country Requirement"
    name_plural = "Country Requirements"
    icon = "fa-solid fa-globe"


class VisaApplicationAdmin(ModelView, model=VisaApplication):
    column_list = [
        VisaApplication.id,
        VisaApplication.patient_id,
        VisaApplication.hospital_id,
        VisaApplication.country_of_origin,
        VisaApplication.workflow_stage,
        VisaApplication.application_status,
        VisaApplication.letter_status,
        VisaApplication.created_at,
    ]
    column_searchable_list = [VisaApplication.patient_id, VisaApplication.passport_number]
    column_sortable_list = [
        VisaApplication.id,
        VisaApplication.workflow_stage,
        VisaApplication.created_at,
    ]
    column_default_sort = [(VisaApplication.created_at, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Visa Application"
    name_plural = "Visa Applications"
    icon = "fa-solid fa-passport"


class AttendantAdmin(ModelView, model=Attendant):
    column_list = [
        Attendant.id,
        Attendant.visa_application_id,
        Attendant.full_name,
        Attendant.relationship_to_patient,
        Attendant.nationality,
    ]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Attendant"
    name_plural = "Attendants"
    icon = "fa-solid fa-user-friends"


class DocumentAdmin(ModelView, model=Document):
    column_list = [
        Document.id,
        Document.user_id,
        Document.document_type,
        Document.verification_status,
        Document.uploaded_by,
        Document.created_at,
    ]
    column_searchable_list = [Document.user_id, Document.uploaded_by]
    column_sortable_list = [Document.id, Document.document_type, Document.verification_status]
    column_default_sort = [(Document.created_at, True)]
    can_create = False
    can_delete = False
    name = "Document"
    name_plural = "Documents"
    icon = "fa-solid fa-file-upload"


class WorkflowLogAdmin(ModelView, model=WorkflowLogEntry):
    column_list = [
        WorkflowLogEntry.id,
        WorkflowLogEntry.visa_application_id,
        WorkflowLogEntry.stage,
        WorkflowLogEntry.action,
        WorkflowLogEntry.performed_by,
        WorkflowLogEntry.created_at,
    ]
    column_default_sort = [(WorkflowLogEntry.id, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Workflow Log"
    name_plural = "Workflow Log"
    icon = "fa-solid fa-list"


class AuditEventAdmin(ModelView, model=AuditEvent):
    column_list = [
        AuditEvent.id,
        AuditEvent.timestamp,
        AuditEvent.event_type,
        AuditEvent.user_id,
        AuditEvent.user_role,
        AuditEvent.application_id,
    ]
    column_sortable_list = [AuditEvent.id, AuditEvent.timestamp, AuditEvent.event_type]
    column_default_sort = [(AuditEvent.timestamp, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Audit Event"
    name_plural = "Audit Events"
    icon = "fa-solid fa-shield-alt"


def setup_admin(app):
    """Set up SQLAdmin and mount it to the FastAPI app."""
    auth_backend = AdminAuth(
        secret_key=settings.SQLADMIN_SECRET_KEY,
    )
    admin = Admin(app, engine, title="MediConnect Admin", authentication_backend=auth_backend)

    admin.add_view(CountryRequirementAdmin)
    admin.add_view(VisaApplicationAdmin)
    admin.add_view(AttendantAdmin)
    admin.add_view(DocumentAdmin)
    admin.add_view(WorkflowLogAdmin)
    admin.add_view(AuditEventAdmin)

    return admin
