"""create visa workflow tables

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-03-02 09:12:44.201387

"""

import sqlalchemy as sa
from alembic import op

revision = "3f1a9c2e7b10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "visa_country_requirements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column("country_name", sa.String(100), nullable=False),
        sa.Column("visa_type", sa.String(50), nullable=False),
        sa.Column("required_documents", sa.JSON(), nullable=False),
        sa.Column("processing_time_days", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("validity_days", sa.Integer(), nullable=False, server_default="90"),
        sa.Column("extension_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("fees_usd", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("special_notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("char_length(country_code) = 2", name="ck_requirement_code_len"),
        sa.CheckConstraint("fees_usd >= 0", name="ck_requirement_fee_non_negative"),
        sa.CheckConstraint(
            "processing_time_days > 0 AND validity_days > 0",
            name="ck_requirement_days_positive",
        ),
    )
    op.create_index(
        "ix_visa_country_requirements_country_code",
        "visa_country_requirements",
        ["country_code"],
    )
    op.create_index(
        "uq_visa_country_requirements_active_code",
        "visa_country_requirements",
        ["country_code"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="visa"),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_url", sa.String(1000), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("verification_status", sa.String(20), nullable=False),
        sa.Column("uploaded_by", sa.String(255), nullable=True),
        sa.Column("verified_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_user_id", "documents", ["user_id"])
    op.create_index("ix_documents_document_type", "documents", ["document_type"])

    op.create_table(
        "visa_applications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.String(255), nullable=False),
        sa.Column("hospital_id", sa.String(255), nullable=True),
        sa.Column("booking_id", sa.String(255), nullable=True),
        sa.Column("country_of_origin", sa.String(2), nullable=False),
        sa.Column("destination_country", sa.String(100), nullable=False),
        sa.Column("passport_number", sa.String(50), nullable=False),
        sa.Column("passport_expiry", sa.Date(), nullable=False),
        sa.Column("emergency_contact_name", sa.String(255), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(50), nullable=True),
        sa.Column("estimated_arrival_date", sa.Date(), nullable=True),
        sa.Column("estimated_departure_date", sa.Date(), nullable=True),
        sa.Column("visa_type", sa.String(50), nullable=False),
        sa.Column("treatment_details", sa.Text(), nullable=True),
        sa.Column("accommodation_needed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("airport_pickup_needed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("number_of_attendants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_documents", sa.JSON(), nullable=False),
        sa.Column("workflow_stage", sa.String(50), nullable=False),
        sa.Column("application_status", sa.String(20), nullable=False),
        sa.Column("letter_status", sa.String(20), nullable=False),
        sa.Column("letter_document_id", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("stage_updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["letter_document_id"], ["documents.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "number_of_attendants BETWEEN 0 AND 3", name="ck_visa_applications_attendant_cap",
        ),
    )
    op.create_index("ix_visa_applications_patient_id", "visa_applications", ["patient_id"])
    op.create_index("ix_visa_applications_hospital_id", "visa_applications", ["hospital_id"])
    op.create_index(
        "ix_visa_applications_country_of_origin", "visa_applications", ["country_of_origin"],
    )
    op.create_index("ix_visa_applications_workflow_stage", "visa_applications", ["workflow_stage"])

    op.create_table(
        "visa_attendants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("visa_application_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("relationship", sa.String(50), nullable=False),
        sa.Column("passport_number", sa.String(50), nullable=True),
        sa.Column("passport_expiry", sa.Date(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("nationality", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["visa_application_id"], ["visa_applications.id"], ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_visa_attendants_visa_application_id", "visa_attendants", ["visa_application_id"],
    )

    op.create_table(
        "visa_workflow_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("visa_application_id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["visa_application_id"], ["visa_applications.id"], ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_visa_workflow_logs_visa_application_id", "visa_workflow_logs", ["visa_application_id"],
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("prev_hash", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("user_role", sa.String(50), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_application_id", "audit_events", ["application_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("visa_workflow_logs")
    op.drop_table("visa_attendants")
    op.drop_table("visa_applications")
    op.drop_table("documents")
    op.drop_table("visa_country_requirements")
