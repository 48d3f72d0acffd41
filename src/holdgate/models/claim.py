"""Claim model - a provisional, time-boxed hold on a unit."""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from holdgate.models.enums import ClaimStatus, Stage


class ClientInfo(BaseModel):
    """Client details supplied with a claim request."""

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=3)
    email: Optional[str] = None
    company_name: Optional[str] = None


class Client(BaseModel):
    """Client record, keyed naturally by phone number."""

    client_id: UUID
    name: str
    phone: str
    email: Optional[str] = None
    company_name: Optional[str] = None


class ProofArtifact(BaseModel):
    """Installation proof reference (uploaded elsewhere)."""

    filename: str
    url: str
    uploaded_at: Optional[datetime] = None


class FitterAssignment(BaseModel):
    """Installation stage, owned by exactly one fitter."""

    fitter_id: UUID
    stage: Stage = Stage.PENDING
    assigned_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ClaimWorkflow(BaseModel):
    """Post-confirmation workflow. Only CONFIRMED claims carry one."""

    designer_id: UUID
    design_stage: Stage = Stage.PENDING
    fitter: Optional[FitterAssignment] = None
    proofs: list[ProofArtifact] = Field(default_factory=list)

    @property
    def fitter_stage(self) -> Stage:
        return self.fitter.stage if self.fitter else Stage.PENDING


class Claim(BaseModel):
    """An agent's queue-ordered hold on a unit for a date range."""

    # Identity
    claim_id: UUID
    unit_id: UUID

    # Ownership
    agent_id: UUID
    client_id: UUID

    # Requested window
    date_from: date
    date_to: date
    duration_months: int
    note: Optional[str] = None

    # Status
    status: ClaimStatus = ClaimStatus.ACTIVE
    queue_position: int = Field(ge=1)

    # Timestamps
    created_at: datetime
    expires_at: datetime
    updated_at: datetime

    workflow: Optional[ClaimWorkflow] = None

    @model_validator(mode="after")
    def _workflow_matches_status(self) -> "Claim":
        if self.status == ClaimStatus.CONFIRMED and self.workflow is None:
            raise ValueError("confirmed claims must carry a workflow")
        if self.status != ClaimStatus.CONFIRMED and self.workflow is not None:
            raise ValueError("only confirmed claims carry a workflow")
        return self

    def is_live(self) -> bool:
        return self.status in ClaimStatus.live_states()

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the claim's hold has lapsed."""
        if now is None:
            now = datetime.now(timezone.utc)
        return now >= self.expires_at

    def overlaps(self, date_from: date, date_to: date) -> bool:
        """Inclusive range overlap."""
        return self.date_from <= date_to and self.date_to >= date_from


class ClaimReceipt(BaseModel):
    """Result of a successful claim request."""

    claim_id: UUID
    queue_position: int
    client: Client
