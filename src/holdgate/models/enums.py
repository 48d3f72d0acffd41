"""HoldGate enumerations."""

from enum import Enum


class ClaimStatus(str, Enum):
    """Claim lifecycle status."""

    ACTIVE = "active"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @classmethod
    def live_states(cls) -> set["ClaimStatus"]:
        """States that occupy a queue position."""
        return {cls.ACTIVE, cls.CONFIRMED}


class Stage(str, Enum):
    """Progress of a post-confirmation workflow stage (design or installation)."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, raw: str) -> "Stage":
        """Parse user input, accepting 'inprogress'. Raises ValueError on unknown stages."""
        value = str(raw or "").strip().lower()
        if value == "inprogress":
            value = cls.IN_PROGRESS.value
        return cls(value)

    def can_transition_to(self, new_stage: "Stage") -> bool:
        """Same-stage is a no-op; otherwise only the immediate next step is allowed."""
        valid_transitions: dict[Stage, set[Stage]] = {
            Stage.PENDING: {Stage.PENDING, Stage.IN_PROGRESS},
            Stage.IN_PROGRESS: {Stage.IN_PROGRESS, Stage.COMPLETED},
            Stage.COMPLETED: {Stage.COMPLETED},
        }
        return new_stage in valid_transitions[self]


class UnitStatus(str, Enum):
    """Availability status of a reservable unit."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    IN_PROCESS = "in_process"
    LIVE = "live"
    BOOKED = "booked"
    OCCUPIED = "occupied"

    @classmethod
    def committed_states(cls) -> set["UnitStatus"]:
        """States a confirmation can never claim the unit out of."""
        return {cls.IN_PROCESS, cls.LIVE, cls.BOOKED, cls.OCCUPIED}

    @classmethod
    def derived_states(cls) -> set["UnitStatus"]:
        """States the status derivation is allowed to overwrite."""
        return {cls.AVAILABLE, cls.RESERVED, cls.IN_PROCESS}

    def is_claimable(self) -> bool:
        return self not in self.committed_states()


class WorkflowState(str, Enum):
    """Internal workflow marker on a unit, separate from availability."""

    FITTER_ASSIGNED = "fitter_assigned"


class CommitmentStatus(str, Enum):
    """Binding commitment (booking) status."""

    IN_PROCESS = "in_process"
    LIVE = "live"
    BOOKED = "booked"


class Role(str, Enum):
    """Directory roles."""

    OWNER = "owner"
    MANAGER = "manager"
    ADMIN = "admin"
    AGENT = "agent"
    DESIGNER = "designer"
    FITTER = "fitter"

    @classmethod
    def supervisors(cls) -> set["Role"]:
        return {cls.OWNER, cls.MANAGER}

    @classmethod
    def management(cls) -> set["Role"]:
        """Roles allowed to cancel claims and assign fitters."""
        return {cls.OWNER, cls.MANAGER, cls.ADMIN}

    @classmethod
    def claimants(cls) -> set["Role"]:
        return {cls.AGENT, cls.OWNER, cls.MANAGER, cls.ADMIN}

    @classmethod
    def finalizers(cls) -> set["Role"]:
        return {cls.OWNER, cls.MANAGER, cls.AGENT}


class AuditEventType(str, Enum):
    """Audit trail event types."""

    CLAIM_CREATED = "claim.created"
    CLAIM_CANCELLED = "claim.cancelled"
    CLAIM_EXPIRED = "claim.expired"
    CLAIM_CONFIRMED = "claim.confirmed"
    CLAIM_RIVAL_CANCELLED = "claim.rival_cancelled"
    DESIGN_UPDATED = "design.updated"
    FITTER_ASSIGNED = "fitter.assigned"
    FITTER_UPDATED = "fitter.updated"
    PROOF_SUBMITTED = "installation.proof_submitted"
    UNIT_FINALIZED = "unit.finalized"
    UNIT_STATUS_DERIVED = "unit.status_derived"


class EventKind(str, Enum):
    """Kinds of outbound status events."""

    UNIT_STATUS = "unit-status"
    DESIGN_STATUS = "design-status"
    FITTER_STATUS = "fitter-status"
