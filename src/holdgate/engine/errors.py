"""HoldGate engine errors.

Every business-rule violation surfaces as one of these typed failures.
The transport maps each family to an HTTP status.
"""


class HoldGateError(Exception):
    """Base error for HoldGate operations."""

    def __init__(self, message: str, code: str = "HOLDGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidInput(HoldGateError):
    """Malformed or disallowed request data."""

    def __init__(self, message: str, code: str = "INVALID_INPUT"):
        super().__init__(message, code)


class NotFound(HoldGateError):
    """Referenced entity does not exist."""

    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code)


class ClaimNotFound(NotFound):
    def __init__(self, claim_id):
        super().__init__(f"Claim not found: {claim_id}", "CLAIM_NOT_FOUND")
        self.claim_id = claim_id


class UnitNotFound(NotFound):
    def __init__(self, unit_id):
        super().__init__(f"Unit not found: {unit_id}", "UNIT_NOT_FOUND")
        self.unit_id = unit_id


class ActorNotFound(NotFound):
    def __init__(self, actor_id):
        super().__init__(f"User not found: {actor_id}", "ACTOR_NOT_FOUND")
        self.actor_id = actor_id


class Forbidden(HoldGateError):
    """Caller's role is not entitled to the transition."""

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN"):
        super().__init__(message, code)


class Conflict(HoldGateError):
    """Lost a race or the target is already in a terminal state.

    `winner` names the role (or actor) that got there first, when known.
    """

    def __init__(self, message: str, winner: str | None = None, code: str = "CONFLICT"):
        super().__init__(message, code)
        self.winner = winner


class PreconditionFailed(HoldGateError):
    """Workflow stage out of order."""

    def __init__(self, message: str, code: str = "PRECONDITION_FAILED"):
        super().__init__(message, code)


class InvalidStageTransition(PreconditionFailed):
    """Stage change that is neither a no-op nor the next step."""

    def __init__(self, stage_name: str, current: str, requested: str):
        super().__init__(
            f"Invalid {stage_name} status transition from {current} to {requested}",
            "INVALID_STAGE_TRANSITION",
        )
        self.current = current
        self.requested = requested
