"""API request/response schemas."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from holdgate.models import Actor, Claim, Client, ClientInfo, Unit


# ============================================================================
# Shared schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


# ============================================================================
# Claim lifecycle
# ============================================================================


class CreateClaimRequest(BaseModel):
    """Create claim request."""

    unit_id: UUID
    date_from: date
    duration_months: Optional[int] = Field(None, description="One of the allowed durations")
    date_to: Optional[date] = Field(None, description="Legacy end date; converted to whole months")
    note: Optional[str] = Field(None, max_length=2000)
    client: ClientInfo

    @model_validator(mode="after")
    def _duration_or_end_date(self) -> "CreateClaimRequest":
        if self.duration_months is None and self.date_to is None:
            raise ValueError("duration_months or date_to is required")
        return self


class CreateClaimResponse(BaseModel):
    """Create claim response."""

    claim_id: UUID
    queue_position: int
    client: Client


class ClaimListResponse(BaseModel):
    """List of claims."""

    claims: list[Claim]


# ============================================================================
# Commitment and workflow
# ============================================================================


class ConfirmClaimRequest(BaseModel):
    """Confirm claim request."""

    designer_id: Optional[UUID] = Field(None, description="Designer to bind; auto-picked if unique")


class StageUpdateRequest(BaseModel):
    """Design or fitter stage update."""

    status: str = Field(..., description="pending, in_progress (or inprogress), completed")


class AssignFitterRequest(BaseModel):
    """Assign fitter request."""

    fitter_id: Optional[UUID] = Field(None, description="Fitter to bind; auto-picked if unique")


class ProofFileSchema(BaseModel):
    """Reference to an uploaded installation proof."""

    filename: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class InstallationProofRequest(BaseModel):
    """Installation proof submission."""

    files: list[ProofFileSchema] = Field(default_factory=list)


# ============================================================================
# Units and directory
# ============================================================================


class UnitResponse(BaseModel):
    """Unit status response."""

    unit: Unit


class ActorListResponse(BaseModel):
    """Eligible actors for a workflow stage."""

    actors: list[Actor]


class NotificationSchema(BaseModel):
    notification_id: UUID
    title: str
    body: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationSchema]


class MetricsResponse(BaseModel):
    metrics: dict[str, Any]
