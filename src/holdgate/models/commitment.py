"""Commitment model - durable record of a confirmed booking."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel

from holdgate.models.enums import CommitmentStatus


class Commitment(BaseModel):
    """Links a unit, a date range and the actor who confirmed it."""

    commitment_id: UUID
    unit_id: UUID
    claim_id: UUID
    date_from: date
    date_to: date
    status: CommitmentStatus = CommitmentStatus.IN_PROCESS
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime
