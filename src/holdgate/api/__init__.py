"""HoldGate REST API."""

from holdgate.api.router import router

__all__ = ["router"]
