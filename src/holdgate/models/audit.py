"""Audit event model - append-only history used for conflict attribution."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from holdgate.models.enums import AuditEventType, Role


class AuditEvent(BaseModel):
    """Audit trail for claim and unit lifecycle events."""

    event_id: UUID
    unit_id: UUID
    claim_id: Optional[UUID] = None
    event_type: AuditEventType
    actor_id: Optional[UUID] = None
    actor_role: Optional[Role] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
