"""API dependencies."""

import logging
import secrets
from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from holdgate.config import Environment, settings
from holdgate.db.base import async_session_factory
from holdgate.engine import (
    ActorNotFound,
    Conflict,
    Forbidden,
    HoldGateError,
    InvalidInput,
    NotFound,
    PreconditionFailed,
    ReservationEngine,
)
from holdgate.events import events
from holdgate.models import Actor
from holdgate.notifications import LedgerNotifier, Notifier

logger = logging.getLogger("holdgate.api")

_STATUS_BY_ERROR: list[tuple[type[HoldGateError], int]] = [
    (InvalidInput, 400),
    (Forbidden, 403),
    (NotFound, 404),
    (Conflict, 409),
    (PreconditionFailed, 422),
]


def http_error(error: HoldGateError) -> HTTPException:
    """Translate a typed engine failure to an HTTP error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            break
    else:
        status_code = 500

    detail: dict[str, str] = {"message": error.message, "code": error.code}
    if isinstance(error, Conflict) and error.winner:
        detail["winner"] = error.winner
    return HTTPException(status_code=status_code, detail=detail)


def get_notifier() -> Notifier:
    """Notifier used after each request commits."""
    return LedgerNotifier(async_session_factory)


async def get_engine(
    notifier: Notifier = Depends(get_notifier),
) -> AsyncGenerator[ReservationEngine, None]:
    """
    One unit of work per request.

    Commits when the endpoint returns, rolls back on error, and only after
    a successful commit dispatches the staged notifications and events.
    """
    async with async_session_factory() as session:
        engine = ReservationEngine(session)
        try:
            yield engine
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    await engine.outbox.dispatch(notifier, events)


async def get_actor(
    x_actor_id: str | None = Header(None, alias="X-Actor-ID"),
    engine: ReservationEngine = Depends(get_engine),
) -> Actor:
    """Resolve the calling user from the directory."""
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-ID header")
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid actor ID format")

    try:
        return await engine.resolve_actor(actor_id)
    except ActorNotFound:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> None:
    """
    Verify the shared API key.

    Fails closed: without a configured key every request is rejected,
    unless insecure dev mode is explicitly enabled in development.
    """
    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return

    api_key = None
    if authorization and authorization.startswith("Bearer "):
        api_key = authorization[7:]
    elif x_api_key:
        api_key = x_api_key

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Use Authorization: Bearer <key> or X-API-Key header",
        )

    if settings.api_key and secrets.compare_digest(api_key, settings.api_key):
        return

    if not settings.api_key:
        logger.error("SECURITY VIOLATION: No API key configured. Set HOLDGATE_API_KEY.")
        raise HTTPException(
            status_code=503,
            detail="Server misconfigured: authentication not properly initialized",
        )
    raise HTTPException(status_code=401, detail="Invalid API key")


def validate_auth_config() -> None:
    """
    Validate authentication configuration at startup.

    Raises:
        RuntimeError: If insecure dev mode is enabled outside development
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set HOLDGATE_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if settings.allow_insecure_dev:
        logger.warning(
            "=" * 80 + "\n"
            "WARNING: Running in INSECURE DEV MODE\n"
            "  - API key authentication is DISABLED\n"
            "  - Set HOLDGATE_ALLOW_INSECURE_DEV=false for any deployment\n"
            + "=" * 80
        )
    else:
        logger.info(f"Authentication enabled: shared API key for {settings.env.value}")
