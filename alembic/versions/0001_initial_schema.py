"""Initial HoldGate schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

# Enums are stored as VARCHAR (non-native) so the schema is dialect neutral
ENUM = sa.String(length=32)
JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create reservation tables."""
    op.create_table(
        "units",
        sa.Column("unit_id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=True),
        sa.Column("area", sa.String(length=128), nullable=True),
        sa.Column("landmark", sa.String(length=255), nullable=True),
        sa.Column("road_name", sa.String(length=255), nullable=True),
        sa.Column("side", sa.String(length=64), nullable=True),
        sa.Column("width_cm", sa.Integer(), nullable=True),
        sa.Column("height_cm", sa.Integer(), nullable=True),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("workflow_state", ENUM, nullable=True),
        sa.Column("group_id", sa.Uuid(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("code"),
    )
    op.create_index("ix_units_group_id", "units", ["group_id"])

    op.create_table(
        "users",
        sa.Column("user_id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("role", ENUM, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_users_role_active", "users", ["role", "is_active"])

    op.create_table(
        "clients",
        sa.Column("client_id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("phone"),
    )

    op.create_table(
        "claims",
        sa.Column("claim_id", sa.Uuid(), primary_key=True),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.unit_id"), nullable=False),
        sa.Column("agent_id", sa.Uuid(), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("clients.client_id"), nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("queue_position", sa.Integer(), nullable=False),
        sa.Column("designer_id", sa.Uuid(), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("design_stage", ENUM, nullable=True),
        sa.Column("fitter_id", sa.Uuid(), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("fitter_stage", ENUM, nullable=True),
        sa.Column("fitter_assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fitter_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fitter_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proofs", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_claims_agent_id", "claims", ["agent_id"])
    op.create_index("ix_claims_designer_id", "claims", ["designer_id"])
    op.create_index("ix_claims_fitter_id", "claims", ["fitter_id"])
    op.create_index("idx_claims_unit_status", "claims", ["unit_id", "status"])
    op.create_index("idx_claims_status_expires", "claims", ["status", "expires_at"])

    op.create_table(
        "commitments",
        sa.Column("commitment_id", sa.Uuid(), primary_key=True),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.unit_id"), nullable=False),
        sa.Column("claim_id", sa.Uuid(), sa.ForeignKey("claims.claim_id"), nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("claim_id"),
    )
    op.create_index("idx_commitments_unit_status", "commitments", ["unit_id", "status"])

    op.create_table(
        "audit_events",
        sa.Column("event_id", sa.Uuid(), primary_key=True),
        sa.Column("unit_id", sa.Uuid(), nullable=False),
        sa.Column("claim_id", sa.Uuid(), nullable=True),
        sa.Column("event_type", ENUM, nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", ENUM, nullable=True),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_audit_unit_type_created", "audit_events", ["unit_id", "event_type", "created_at"]
    )
    op.create_index("idx_audit_claim", "audit_events", ["claim_id"])

    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.Uuid(), primary_key=True),
        sa.Column("recipient_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("link", sa.String(length=512), nullable=True),
        sa.Column("dedupe_key", sa.String(length=512), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("dedupe_key"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("idx_audit_claim", table_name="audit_events")
    op.drop_index("idx_audit_unit_type_created", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("idx_commitments_unit_status", table_name="commitments")
    op.drop_table("commitments")

    op.drop_index("idx_claims_status_expires", table_name="claims")
    op.drop_index("idx_claims_unit_status", table_name="claims")
    op.drop_index("ix_claims_fitter_id", table_name="claims")
    op.drop_index("ix_claims_designer_id", table_name="claims")
    op.drop_index("ix_claims_agent_id", table_name="claims")
    op.drop_table("claims")

    op.drop_table("clients")

    op.drop_index("idx_users_role_active", table_name="users")
    op.drop_table("users")

    op.drop_index("ix_units_group_id", table_name="units")
    op.drop_table("units")
