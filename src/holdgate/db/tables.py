"""SQLAlchemy table definitions."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from holdgate.db.base import Base
from holdgate.db.types import JSONType, UTCDateTime, enum_column
from holdgate.models.enums import (
    AuditEventType,
    ClaimStatus,
    CommitmentStatus,
    Role,
    Stage,
    UnitStatus,
    WorkflowState,
)


class UnitTable(Base):
    """Units table - reservable physical assets."""

    __tablename__ = "units"

    unit_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Location and size (maintained by external CRUD)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    area: Mapped[str | None] = mapped_column(String(128), nullable=True)
    landmark: Mapped[str | None] = mapped_column(String(255), nullable=True)
    road_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    side: Mapped[str | None] = mapped_column(String(64), nullable=True)
    width_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Availability - only ever mutated through conditional updates
    status: Mapped[UnitStatus] = mapped_column(
        enum_column(UnitStatus), nullable=False, default=UnitStatus.AVAILABLE
    )
    workflow_state: Mapped[WorkflowState | None] = mapped_column(
        enum_column(WorkflowState), nullable=True
    )

    group_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class UserTable(Base):
    """Users table - role directory."""

    __tablename__ = "users"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[Role] = mapped_column(enum_column(Role), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_users_role_active", "role", "is_active"),)


class ClientTable(Base):
    """Clients table - keyed naturally by phone."""

    __tablename__ = "clients"

    client_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class ClaimTable(Base):
    """Claims table - queue-ordered holds on units. Rows are never deleted."""

    __tablename__ = "claims"

    claim_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    unit_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("units.unit_id"), nullable=False
    )
    agent_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=False, index=True
    )
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("clients.client_id"), nullable=False
    )

    # Requested window
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Queue
    status: Mapped[ClaimStatus] = mapped_column(
        enum_column(ClaimStatus), nullable=False, default=ClaimStatus.ACTIVE
    )
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)

    # Workflow (populated on confirmation)
    designer_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=True, index=True
    )
    design_stage: Mapped[Stage | None] = mapped_column(enum_column(Stage), nullable=True)
    fitter_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=True, index=True
    )
    fitter_stage: Mapped[Stage | None] = mapped_column(enum_column(Stage), nullable=True)
    fitter_assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    fitter_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    fitter_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    proofs: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_claims_unit_status", "unit_id", "status"),
        Index("idx_claims_status_expires", "status", "expires_at"),
    )


class CommitmentTable(Base):
    """Commitments table - durable record of confirmed bookings."""

    __tablename__ = "commitments"

    commitment_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    unit_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("units.unit_id"), nullable=False
    )
    claim_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("claims.claim_id"), nullable=False, unique=True
    )
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[CommitmentStatus] = mapped_column(
        enum_column(CommitmentStatus), nullable=False, default=CommitmentStatus.IN_PROCESS
    )
    created_by_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_commitments_unit_status", "unit_id", "status"),)


class AuditEventTable(Base):
    """Audit events table - append-only lifecycle history."""

    __tablename__ = "audit_events"

    event_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    unit_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    claim_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    event_type: Mapped[AuditEventType] = mapped_column(
        enum_column(AuditEventType), nullable=False
    )
    actor_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    actor_role: Mapped[Role | None] = mapped_column(enum_column(Role), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_audit_unit_type_created", "unit_id", "event_type", "created_at"),
        Index("idx_audit_claim", "claim_id"),
    )


class NotificationTable(Base):
    """Notifications table - delivered notification ledger."""

    __tablename__ = "notifications"

    notification_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    recipient_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Per-recipient dedupe key; duplicates are rejected by the unique constraint
    dedupe_key: Mapped[str | None] = mapped_column(String(512), nullable=True, unique=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
