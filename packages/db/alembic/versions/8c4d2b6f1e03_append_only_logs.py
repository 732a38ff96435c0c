"""append-only triggers on visa_workflow_logs and audit_events

Revision ID: 8c4d2b6f1e03
Revises: 3f1a9c2e7b10
Create Date: 2026-03-02 10:40:05.118902

"""

from alembic import op

revision = "8c4d2b6f1e03"
down_revision = "3f1a9c2e7b10"
branch_labels = None
depends_on = None

TRIGGER_FUNCTION = """
CREATE OR REPLACE FUNCTION prevent_log_mutation()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION '% is append-only: % denied for row %', TG_TABLE_NAME, TG_OP, OLD.id;
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""

_TABLES = ("visa_workflow_logs", "audit_events")


def upgrade() -> None:
    op.execute(TRIGGER_FUNCTION)
    for table in _TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_no_update BEFORE UPDATE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION prevent_log_mutation()"
        )
        op.execute(
            f"CREATE TRIGGER {table}_no_delete BEFORE DELETE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION prevent_log_mutation()"
        )


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_no_delete ON {table}")
        op.execute(f"DROP TRIGGER IF EXISTS {table}_no_update ON {table}")
    op.execute("DROP FUNCTION IF EXISTS prevent_log_mutation()")
