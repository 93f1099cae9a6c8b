"""FWA incidents + append-only timeline.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01

This migration adds:
1. fwa_incidents (unique incident_number, version_id for optimistic concurrency)
2. fwa_incident_timeline (append-only, unique (incident_id, sequence))
3. Triggers rejecting UPDATE/DELETE on the timeline and DELETE on incidents
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create FWA incident tables and append-only guards."""

    # =========================================================================
    # 1. fwa_incidents
    # =========================================================================
    op.create_table(
        "fwa_incidents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("incident_number", sa.String(32), nullable=False, unique=True),
        sa.Column("incident_type", sa.String(40), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("detection_method", sa.String(32), nullable=False),
        sa.Column("reporter_type", sa.String(16), nullable=False),
        sa.Column("reporter_id", sa.String(128), nullable=True),
        sa.Column("reporter_protected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("incident_date", sa.DateTime(), nullable=False),
        sa.Column("reported_at", sa.DateTime(), nullable=False),
        sa.Column("affected_beneficiaries", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("affected_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("financial_impact", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("cms_violation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hipaa_violation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("false_claims_act", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("anti_kickback", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("evidence_refs", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("ai_confidence_score", sa.Float(), nullable=True),
        sa.Column("ai_analysis", postgresql.JSONB(), nullable=True),
        sa.Column("investigator_id", sa.String(128), nullable=True),
        sa.Column("investigation_started", sa.DateTime(), nullable=True),
        sa.Column("investigation_completed", sa.DateTime(), nullable=True),
        sa.Column("oig_case_number", sa.String(64), nullable=True),
        sa.Column("cms_case_number", sa.String(64), nullable=True),
        sa.Column("regulatory_reported", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("regulatory_report_date", sa.DateTime(), nullable=True),
        sa.Column("critical_alerted_at", sa.DateTime(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("timeline_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("risk_score BETWEEN 0 AND 100", name="ck_fwa_incidents_risk_score"),
        sa.CheckConstraint("financial_impact >= 0", name="ck_fwa_incidents_financial_impact"),
    )
    op.create_index("ix_fwa_incidents_status", "fwa_incidents", ["status"])
    op.create_index("ix_fwa_incidents_severity", "fwa_incidents", ["severity"])
    op.create_index("ix_fwa_incidents_reported_at", "fwa_incidents", ["reported_at"])
    op.create_index("ix_fwa_incidents_risk_score", "fwa_incidents", ["risk_score"])

    # =========================================================================
    # 2. fwa_incident_timeline
    # =========================================================================
    op.create_table(
        "fwa_incident_timeline",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "incident_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("fwa_incidents.id"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("detail", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.UniqueConstraint("incident_id", "sequence", name="uq_fwa_timeline_incident_sequence"),
    )
    op.create_index("ix_fwa_timeline_incident", "fwa_incident_timeline", ["incident_id"])

    # =========================================================================
    # 3. Append-only guards
    # =========================================================================
    op.execute("""
    CREATE OR REPLACE FUNCTION fwa_reject_mutation() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION '% is append-only: % is not permitted', TG_TABLE_NAME, TG_OP;
    END;
    $$ LANGUAGE plpgsql
    """)
    op.execute("""
    CREATE TRIGGER fwa_timeline_no_update_delete
        BEFORE UPDATE OR DELETE ON fwa_incident_timeline
        FOR EACH ROW EXECUTE FUNCTION fwa_reject_mutation()
    """)
    op.execute("""
    CREATE TRIGGER fwa_incidents_no_delete
        BEFORE DELETE ON fwa_incidents
        FOR EACH ROW EXECUTE FUNCTION fwa_reject_mutation()
    """)


def downgrade() -> None:
    """Drop FWA incident tables and guards."""
    op.execute("DROP TRIGGER IF EXISTS fwa_incidents_no_delete ON fwa_incidents")
    op.execute("DROP TRIGGER IF EXISTS fwa_timeline_no_update_delete ON fwa_incident_timeline")
    op.execute("DROP FUNCTION IF EXISTS fwa_reject_mutation()")
    op.drop_index("ix_fwa_timeline_incident", table_name="fwa_incident_timeline")
    op.drop_table("fwa_incident_timeline")
    op.drop_index("ix_fwa_incidents_risk_score", table_name="fwa_incidents")
    op.drop_index("ix_fwa_incidents_reported_at", table_name="fwa_incidents")
    op.drop_index("ix_fwa_incidents_severity", table_name="fwa_incidents")
    op.drop_index("ix_fwa_incidents_status", table_name="fwa_incidents")
    op.drop_table("fwa_incidents")
