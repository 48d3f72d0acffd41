"""HoldGate reservation engine."""

from holdgate.engine.core import ReservationEngine
from holdgate.engine.errors import (
    ActorNotFound,
    ClaimNotFound,
    Conflict,
    Forbidden,
    HoldGateError,
    InvalidInput,
    InvalidStageTransition,
    NotFound,
    PreconditionFailed,
    UnitNotFound,
)
from holdgate.engine.outbox import Notification, Outbox

__all__ = [
    "ActorNotFound",
    "ClaimNotFound",
    "Conflict",
    "Forbidden",
    "HoldGateError",
    "InvalidInput",
    "InvalidStageTransition",
    "NotFound",
    "Notification",
    "Outbox",
    "PreconditionFailed",
    "ReservationEngine",
    "UnitNotFound",
]
