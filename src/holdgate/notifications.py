"""Notifier collaborator.

The engine decides what to say and to whom; a Notifier delivers it.
Duplicate suppression by dedupe key is the notifier's responsibility.
"""

import logging
from typing import Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from holdgate.db.repositories import NotificationRepository

logger = logging.getLogger("holdgate.notifications")


class Notifier(Protocol):
    async def notify(
        self,
        recipient_ids: Sequence[UUID],
        title: str,
        body: str,
        link: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> None: ...


class LedgerNotifier:
    """
    Persist notifications to the notifications table.

    Runs in its own unit of work, after the business transaction has
    committed. A dedupe key is scoped per recipient, so the same key sent
    twice to one user lands once.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(
        self,
        recipient_ids: Sequence[UUID],
        title: str,
        body: str,
        link: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as session:
            repo = NotificationRepository(session)
            for recipient_id in recipient_ids:
                key = f"{dedupe_key}:{recipient_id}" if dedupe_key else None
                created = await repo.create(recipient_id, title, body, link=link, dedupe_key=key)
                if not created:
                    logger.debug("Suppressed duplicate notification %s", key)
            await session.commit()
