"""Post-commit side effects.

Operations stage notifications and status events here while their
transaction is open. Entries staged inside a savepoint that rolls back are
discarded. `dispatch` runs only after the caller commits; each delivery
failure is logged and swallowed.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional
from uuid import UUID

from holdgate.events import EventChannel, StatusEvent
from holdgate.models.enums import EventKind
from holdgate.notifications import Notifier
from holdgate.observability.metrics import metrics

logger = logging.getLogger("holdgate.outbox")


@dataclass
class Notification:
    """What to tell whom; delivery belongs to the notifier."""

    recipient_ids: list[UUID]
    title: str
    body: str
    link: Optional[str] = None
    dedupe_key: Optional[str] = None


@dataclass
class Outbox:
    notifications: list[Notification] = field(default_factory=list)
    events: list[StatusEvent] = field(default_factory=list)

    def notify(
        self,
        recipient_ids: Iterable[UUID],
        title: str,
        body: str,
        link: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> None:
        # Preserve order, drop duplicates and empties
        recipients = list(dict.fromkeys(rid for rid in recipient_ids if rid))
        if not recipients:
            return
        self.notifications.append(
            Notification(recipients, title, body, link=link, dedupe_key=dedupe_key)
        )

    def publish(
        self,
        kind: EventKind,
        unit_id: UUID,
        status: str,
        claim_id: Optional[UUID] = None,
        has_active_claim: Optional[bool] = None,
    ) -> None:
        self.events.append(
            StatusEvent(
                kind=kind,
                unit_id=unit_id,
                status=status,
                claim_id=claim_id,
                has_active_claim=has_active_claim,
            )
        )

    def mark(self) -> tuple[int, int]:
        return len(self.notifications), len(self.events)

    def rollback_to(self, mark: tuple[int, int]) -> None:
        del self.notifications[mark[0]:]
        del self.events[mark[1]:]

    def clear(self) -> None:
        self.notifications.clear()
        self.events.clear()

    async def dispatch(
        self,
        notifier: Optional[Notifier],
        channel: Optional[EventChannel] = None,
    ) -> None:
        """Deliver everything staged, then empty the outbox."""
        notifications, status_events = list(self.notifications), list(self.events)
        self.clear()

        if notifier is not None:
            for item in notifications:
                try:
                    await notifier.notify(
                        item.recipient_ids,
                        item.title,
                        item.body,
                        link=item.link,
                        dedupe_key=item.dedupe_key,
                    )
                    metrics.inc_counter("notifications.dispatched")
                except Exception:
                    metrics.inc_counter("notifications.failed")
                    logger.warning(
                        "Notification dispatch failed: %s", item.title, exc_info=True
                    )

        if channel is not None:
            for event in status_events:
                try:
                    channel.publish(event)
                except Exception:
                    logger.warning("Status event publish failed", exc_info=True)
