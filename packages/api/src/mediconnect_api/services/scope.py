"""Shared data scope filtering for service queries.

Centralizes the DataScope -> SQL WHERE logic so that every visa workflow
operation applies the same visibility rules before reading or mutating:
patients see their own applications, hospitals see applications tied to
them, admins see all. A scope granting nothing matches no rows.
"""

from mediconnect_db import Document, VisaApplication
from sqlalchemy import false, select

from ..schemas.auth import DataScope, UserContext


def application_scope_clause(scope: DataScope):
    """Return the WHERE clause restricting VisaApplication rows, or None for full access."""
    if scope.full_pipeline:
        return None
    if scope.own_data_only and scope.user_id:
        return VisaApplication.patient_id == scope.user_id
    if scope.hospital_id:
        return VisaApplication.hospital_id == scope.hospital_id
    return false()


def apply_data_scope(stmt, scope: DataScope, user: UserContext):
    """Apply data scope filtering to a query or UPDATE over VisaApplication.

    Args:
        stmt: A SQLAlchemy select or update statement on VisaApplication.
        scope: The caller's DataScope.
        user: The caller's UserContext.

    Returns:
        The filtered statement.
    """
    clause = application_scope_clause(scope)
    if clause is not None:
        stmt = stmt.where(clause)
    return stmt


def apply_document_scope(stmt, scope: DataScope, user: UserContext):
    """Apply data scope filtering to a query over Document.

    Patients see only documents they own. Hospitals see documents owned by
    patients of applications tied to them.
    """
    if scope.full_pipeline:
        return stmt
    if scope.own_data_only and scope.user_id:
        return stmt.where(Document.user_id == scope.user_id)
    if scope.hospital_id:
        patients = select(VisaApplication.patient_id).where(
            VisaApplication.hospital_id == scope.hospital_id,
        )
        return stmt.where(Document.user_id.in_(patients))
    return stmt.where(false())
