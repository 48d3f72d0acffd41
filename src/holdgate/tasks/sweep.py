"""Claim expiry sweep background task."""

import asyncio
import logging
import random
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from holdgate.config import settings
from holdgate.db.base import async_session_factory
from holdgate.engine import ReservationEngine
from holdgate.events import EventChannel, events
from holdgate.notifications import LedgerNotifier, Notifier
from holdgate.observability.metrics import metrics

logger = logging.getLogger("holdgate.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def run_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    notifier: Notifier | None = None,
    channel: EventChannel | None = events,
    batch_size: int | None = None,
) -> int:
    """
    Expire every overdue claim, one committed batch at a time.

    Notifications for a batch go out only after that batch commits. A
    short batch means the backlog is drained.

    Returns:
        Total number of claims expired.
    """
    factory = session_factory or async_session_factory
    if notifier is None:
        notifier = LedgerNotifier(factory)
    batch = batch_size or settings.expiry_sweep_batch_size
    total = 0

    while True:
        async with factory() as session:
            engine = ReservationEngine(session)
            with metrics.timed("sweep.batch_ms"):
                expired = await engine.expire_claims(batch_size=batch)
            await session.commit()

        await engine.outbox.dispatch(notifier, channel)
        total += expired
        if expired < batch:
            return total


async def claim_expiry_loop():
    """
    Background loop that expires stale claims and promotes the next in line.

    The interval is jittered by ±20% so several instances do not sweep in
    lockstep. Errors are logged and the loop carries on.
    """
    base_interval = settings.expiry_sweep_interval_seconds
    logger.info(
        f"Claim expiry loop started (base interval: {base_interval}s with ±20% jitter)"
    )

    while not _shutdown_event.is_set():
        try:
            expired_count = await run_expiry_sweep()
            if expired_count > 0:
                logger.info(f"Expired {expired_count} claims")
        except Exception as e:
            logger.error(f"Claim expiry sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(0.8, 1.2)

        # Wait for next sweep interval or shutdown
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=jittered_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Claim expiry loop stopped")


async def start_expiry_sweep():
    """Start the claim expiry background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(claim_expiry_loop())


async def stop_expiry_sweep():
    """Stop the claim expiry background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Claim expiry task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None
