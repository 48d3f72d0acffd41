"""HoldGate data models."""

from holdgate.models.enums import (
    AuditEventType,
    ClaimStatus,
    CommitmentStatus,
    EventKind,
    Role,
    Stage,
    UnitStatus,
    WorkflowState,
)
from holdgate.models.actor import Actor
from holdgate.models.audit import AuditEvent
from holdgate.models.claim import (
    Claim,
    ClaimReceipt,
    ClaimWorkflow,
    Client,
    ClientInfo,
    FitterAssignment,
    ProofArtifact,
)
from holdgate.models.commitment import Commitment
from holdgate.models.unit import Unit

__all__ = [
    "Actor",
    "AuditEvent",
    "AuditEventType",
    "Claim",
    "ClaimReceipt",
    "ClaimStatus",
    "ClaimWorkflow",
    "Client",
    "ClientInfo",
    "Commitment",
    "CommitmentStatus",
    "EventKind",
    "FitterAssignment",
    "ProofArtifact",
    "Role",
    "Stage",
    "Unit",
    "UnitStatus",
    "WorkflowState",
]
