"""Outbound status-event channel.

The engine stages StatusEvents in its outbox; after commit they are
published here and fanned out to every subscriber queue. The transport
drains subscriber queues as a server-sent-events stream.
"""

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from holdgate.config import settings
from holdgate.models.enums import EventKind
from holdgate.observability.metrics import metrics
from holdgate.utils.time import utc_now

logger = logging.getLogger("holdgate.events")


class StatusEvent(BaseModel):
    """A unit, design or fitter status change."""

    kind: EventKind
    unit_id: UUID
    status: str
    claim_id: Optional[UUID] = None
    has_active_claim: Optional[bool] = None
    occurred_at: datetime = Field(default_factory=utc_now)


class EventChannel:
    """Fan-out of status events to bounded subscriber queues."""

    def __init__(self, buffer_size: int = 1000):
        self.buffer_size = buffer_size
        self._subscribers: set[asyncio.Queue[StatusEvent]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[StatusEvent]:
        queue: asyncio.Queue[StatusEvent] = asyncio.Queue(maxsize=self.buffer_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[StatusEvent]) -> None:
        self._subscribers.discard(queue)

    def publish(self, event: StatusEvent) -> None:
        """Deliver to every subscriber without blocking; slow ones lose their oldest event."""
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                metrics.inc_counter("events.dropped")
            queue.put_nowait(event)
        metrics.inc_counter("events.published")

    async def stream(self) -> AsyncIterator[StatusEvent]:
        """Yield events for one subscriber until the consumer stops iterating."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)


events = EventChannel(settings.event_channel_buffer_size)
