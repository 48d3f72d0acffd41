"""Unit model - the reservable physical asset."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from holdgate.models.enums import UnitStatus, WorkflowState


class Unit(BaseModel):
    """A reservable advertising unit."""

    unit_id: UUID
    code: str
    city: Optional[str] = None
    area: Optional[str] = None
    landmark: Optional[str] = None
    road_name: Optional[str] = None
    side: Optional[str] = None
    width_cm: Optional[int] = None
    height_cm: Optional[int] = None

    status: UnitStatus = UnitStatus.AVAILABLE
    workflow_state: Optional[WorkflowState] = None

    # Co-owned sibling units share a group id
    group_id: Optional[UUID] = None

    updated_at: datetime

    @property
    def size_label(self) -> str:
        if self.width_cm and self.height_cm:
            return f"{self.width_cm}cm x {self.height_cm}cm"
        return "N/A"

    @property
    def location_label(self) -> str:
        return self.landmark or self.road_name or "N/A"
