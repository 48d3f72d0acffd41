"""Actor model - directory users acting on claims."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from holdgate.models.enums import Role


class Actor(BaseModel):
    """A directory user (agent, supervisor, designer, fitter...)."""

    actor_id: UUID
    name: str
    role: Role
    is_active: bool = True
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT

    @property
    def is_management(self) -> bool:
        return self.role in Role.management()

    def __hash__(self) -> int:
        return hash(self.actor_id)
