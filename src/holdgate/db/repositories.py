"""Database repositories for HoldGate entities.

Every write that decides a race is a conditional update: the WHERE clause
carries the expected current state and the affected row count reports
whether this caller won.
"""

from datetime import date, datetime, timedelta
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import and_, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from holdgate.db.tables import (
    AuditEventTable,
    ClaimTable,
    ClientTable,
    CommitmentTable,
    NotificationTable,
    UnitTable,
    UserTable,
)
from holdgate.models import (
    Actor,
    AuditEvent,
    AuditEventType,
    Claim,
    ClaimStatus,
    ClaimWorkflow,
    Client,
    ClientInfo,
    Commitment,
    CommitmentStatus,
    FitterAssignment,
    ProofArtifact,
    Role,
    Stage,
    Unit,
    UnitStatus,
    WorkflowState,
)
from holdgate.utils.time import utc_now

# Sentinel for "leave column unchanged"
_UNSET: Any = object()


def _overlaps(date_from: date, date_to: date):
    """Inclusive date-range overlap predicate against the claims table."""
    return and_(ClaimTable.date_from <= date_to, ClaimTable.date_to >= date_from)


class UnitRepository:
    """Repository for unit status, the most contended piece of state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        code: str,
        status: UnitStatus = UnitStatus.AVAILABLE,
        **details: Any,
    ) -> Unit:
        """Create a unit (seeding and tests; units are owned by external CRUD)."""
        row = UnitTable(
            unit_id=uuid4(),
            code=code,
            status=status,
            updated_at=utc_now(),
            **details,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, unit_id: UUID) -> Unit | None:
        """Get a unit by ID."""
        result = await self.session.execute(
            select(UnitTable)
            .where(UnitTable.unit_id == unit_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def lock(self, unit_id: UUID) -> Unit | None:
        """Get a unit and hold its row lock until the transaction ends.

        Serializes claim creation per unit on PostgreSQL. SQLite ignores
        FOR UPDATE; there the whole store is already single-writer.
        """
        result = await self.session.execute(
            select(UnitTable)
            .where(UnitTable.unit_id == unit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def compare_and_set_status(
        self,
        unit_id: UUID,
        new_status: UnitStatus,
        *,
        expected: Iterable[UnitStatus] | None = None,
        excluded: Iterable[UnitStatus] | None = None,
        workflow_state: WorkflowState | None = _UNSET,
    ) -> bool:
        """
        Set unit status only if the current status matches.

        Returns True if exactly this caller changed the row.
        """
        conditions = [UnitTable.unit_id == unit_id]
        if expected is not None:
            conditions.append(UnitTable.status.in_(list(expected)))
        if excluded is not None:
            conditions.append(UnitTable.status.not_in(list(excluded)))

        values: dict[str, Any] = {"status": new_status, "updated_at": utc_now()}
        if workflow_state is not _UNSET:
            values["workflow_state"] = workflow_state

        result = await self.session.execute(
            update(UnitTable)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_workflow_state(self, unit_id: UUID, state: WorkflowState | None) -> None:
        """Set the internal workflow marker (does not touch availability)."""
        await self.session.execute(
            update(UnitTable)
            .where(UnitTable.unit_id == unit_id)
            .values(workflow_state=state, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    def _row_to_model(self, row: UnitTable) -> Unit:
        """Convert database row to model."""
        return Unit(
            unit_id=row.unit_id,
            code=row.code,
            city=row.city,
            area=row.area,
            landmark=row.landmark,
            road_name=row.road_name,
            side=row.side,
            width_cm=row.width_cm,
            height_cm=row.height_cm,
            status=row.status,
            workflow_state=row.workflow_state,
            group_id=row.group_id,
            updated_at=row.updated_at,
        )


class UserRepository:
    """Repository for the role directory."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        name: str,
        role: Role,
        email: str | None = None,
        phone: str | None = None,
        is_active: bool = True,
    ) -> Actor:
        """Create a directory user (seeding and tests)."""
        row = UserTable(
            user_id=uuid4(),
            name=name,
            role=role,
            email=email,
            phone=phone,
            is_active=is_active,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, user_id: UUID) -> Actor | None:
        """Get a user by ID."""
        result = await self.session.execute(
            select(UserTable).where(UserTable.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_active_with_role(self, user_id: UUID, role: Role) -> Actor | None:
        """Return the user only if it is active and holds the role."""
        result = await self.session.execute(
            select(UserTable).where(
                UserTable.user_id == user_id,
                UserTable.role == role,
                UserTable.is_active.is_(True),
            )
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list_active(self, roles: Iterable[Role]) -> list[Actor]:
        """List active users holding any of the roles, by name."""
        result = await self.session.execute(
            select(UserTable)
            .where(UserTable.role.in_(list(roles)), UserTable.is_active.is_(True))
            .order_by(UserTable.name, UserTable.user_id)
        )
        return [self._row_to_model(row) for row in result.scalars().all()]

    def _row_to_model(self, row: UserTable) -> Actor:
        """Convert database row to model."""
        return Actor(
            actor_id=row.user_id,
            name=row.name,
            role=row.role,
            is_active=row.is_active,
            email=row.email,
            phone=row.phone,
        )


class ClientRepository:
    """Repository for clients."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_or_create(self, info: ClientInfo) -> Client:
        """
        Return the client with this phone number, creating it if absent.

        DB-first: attempt the insert inside a savepoint and fall back to
        the existing row on unique violation, so concurrent claims for the
        same new client converge on one record.
        """
        phone = info.phone.strip()
        existing = await self.get_by_phone(phone)
        if existing:
            return existing

        row = ClientTable(
            client_id=uuid4(),
            name=info.name.strip(),
            phone=phone,
            email=info.email,
            company_name=info.company_name,
            created_at=utc_now(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            existing = await self.get_by_phone(phone)
            if existing:
                return existing
            raise
        return self._row_to_model(row)

    async def get(self, client_id: UUID) -> Client | None:
        """Get a client by ID."""
        result = await self.session.execute(
            select(ClientTable).where(ClientTable.client_id == client_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_by_phone(self, phone: str) -> Client | None:
        result = await self.session.execute(
            select(ClientTable).where(ClientTable.phone == phone)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    def _row_to_model(self, row: ClientTable) -> Client:
        """Convert database row to model."""
        return Client(
            client_id=row.client_id,
            name=row.name,
            phone=row.phone,
            email=row.email,
            company_name=row.company_name,
        )


class ClaimRepository:
    """Repository for claims and their embedded workflow stages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        unit_id: UUID,
        agent_id: UUID,
        client_id: UUID,
        date_from: date,
        date_to: date,
        duration_months: int,
        ttl: timedelta,
        queue_position: int,
        note: str | None = None,
    ) -> Claim:
        """Insert an ACTIVE claim with the given (provisional) position."""
        now = utc_now()
        row = ClaimTable(
            claim_id=uuid4(),
            unit_id=unit_id,
            agent_id=agent_id,
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
            duration_months=duration_months,
            note=note,
            status=ClaimStatus.ACTIVE,
            queue_position=queue_position,
            proofs=[],
            created_at=now,
            expires_at=now + ttl,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, claim_id: UUID) -> Claim | None:
        """Get a claim by ID (always re-read from the store)."""
        result = await self.session.execute(
            select(ClaimTable)
            .where(ClaimTable.claim_id == claim_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def find_active_for_agent(
        self, unit_id: UUID, agent_id: UUID, now: datetime
    ) -> Claim | None:
        """Latest unexpired ACTIVE claim by this agent on the unit."""
        result = await self.session.execute(
            select(ClaimTable)
            .where(
                ClaimTable.unit_id == unit_id,
                ClaimTable.agent_id == agent_id,
                ClaimTable.status == ClaimStatus.ACTIVE,
                ClaimTable.expires_at > now,
            )
            .order_by(ClaimTable.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list_overlapping(
        self,
        unit_id: UUID,
        date_from: date,
        date_to: date,
        statuses: Iterable[ClaimStatus],
        exclude_claim_id: UUID | None = None,
    ) -> list[Claim]:
        """Claims on the unit overlapping the window, oldest first."""
        query = select(ClaimTable).where(
            ClaimTable.unit_id == unit_id,
            ClaimTable.status.in_(list(statuses)),
            _overlaps(date_from, date_to),
        )
        if exclude_claim_id is not None:
            query = query.where(ClaimTable.claim_id != exclude_claim_id)
        query = query.order_by(ClaimTable.created_at, ClaimTable.claim_id)

        result = await self.session.execute(query.execution_options(populate_existing=True))
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def set_positions(self, positions: dict[UUID, int]) -> None:
        """Persist recomputed queue positions."""
        now = utc_now()
        for claim_id, position in positions.items():
            await self.session.execute(
                update(ClaimTable)
                .where(
                    ClaimTable.claim_id == claim_id,
                    ClaimTable.queue_position != position,
                )
                .values(queue_position=position, updated_at=now)
                .execution_options(synchronize_session=False)
            )

    async def transition_status(
        self,
        claim_id: UUID,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
        **values: Any,
    ) -> bool:
        """Conditionally move a claim between statuses. Returns True on success."""
        result = await self.session.execute(
            update(ClaimTable)
            .where(ClaimTable.claim_id == claim_id, ClaimTable.status == from_status)
            .values(status=to_status, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def has_active(self, unit_id: UUID) -> bool:
        """Check whether any ACTIVE claim exists on the unit."""
        result = await self.session.execute(
            select(
                exists().where(
                    ClaimTable.unit_id == unit_id,
                    ClaimTable.status == ClaimStatus.ACTIVE,
                )
            )
        )
        return bool(result.scalar())

    async def list_overdue(self, now: datetime, limit: int = 100) -> list[Claim]:
        """ACTIVE claims whose expiry has passed, oldest expiry first."""
        result = await self.session.execute(
            select(ClaimTable)
            .where(
                ClaimTable.status == ClaimStatus.ACTIVE,
                ClaimTable.expires_at <= now,
            )
            .order_by(ClaimTable.expires_at, ClaimTable.claim_id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_for_agent(
        self,
        agent_id: UUID,
        statuses: Iterable[ClaimStatus] | None = None,
        limit: int = 50,
    ) -> list[Claim]:
        """An agent's claims ordered by queue position."""
        query = select(ClaimTable).where(ClaimTable.agent_id == agent_id)
        if statuses is not None:
            query = query.where(ClaimTable.status.in_(list(statuses)))
        query = query.order_by(
            ClaimTable.queue_position, ClaimTable.created_at.desc()
        ).limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_queue(
        self,
        unit_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[Claim]:
        """Live claims on a unit, optionally restricted to a window."""
        query = select(ClaimTable).where(
            ClaimTable.unit_id == unit_id,
            ClaimTable.status.in_(list(ClaimStatus.live_states())),
        )
        if date_from is not None and date_to is not None:
            query = query.where(_overlaps(date_from, date_to))
        query = query.order_by(ClaimTable.queue_position, ClaimTable.created_at)

        result = await self.session.execute(query)
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_for_designer(self, designer_id: UUID) -> list[Claim]:
        """Confirmed claims bound to a designer, newest first."""
        result = await self.session.execute(
            select(ClaimTable)
            .where(
                ClaimTable.designer_id == designer_id,
                ClaimTable.status == ClaimStatus.CONFIRMED,
            )
            .order_by(ClaimTable.created_at.desc())
        )
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_for_fitter(self, fitter_id: UUID) -> list[Claim]:
        """Confirmed claims bound to a fitter, newest first."""
        result = await self.session.execute(
            select(ClaimTable)
            .where(
                ClaimTable.fitter_id == fitter_id,
                ClaimTable.status == ClaimStatus.CONFIRMED,
            )
            .order_by(ClaimTable.created_at.desc())
        )
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_recent(
        self,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        unit_id: UUID | None = None,
        agent_id: UUID | None = None,
        limit: int = 50,
    ) -> list[Claim]:
        """Claims across all units, newest first."""
        query = select(ClaimTable)
        if created_from is not None:
            query = query.where(ClaimTable.created_at >= created_from)
        if created_to is not None:
            query = query.where(ClaimTable.created_at <= created_to)
        if unit_id is not None:
            query = query.where(ClaimTable.unit_id == unit_id)
        if agent_id is not None:
            query = query.where(ClaimTable.agent_id == agent_id)
        query = query.order_by(ClaimTable.created_at.desc()).limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def set_design_stage(
        self, claim_id: UUID, designer_id: UUID, from_stage: Stage, to_stage: Stage
    ) -> bool:
        """Conditionally advance the design stage of a confirmed claim."""
        result = await self.session.execute(
            update(ClaimTable)
            .where(
                ClaimTable.claim_id == claim_id,
                ClaimTable.status == ClaimStatus.CONFIRMED,
                ClaimTable.designer_id == designer_id,
                ClaimTable.design_stage == from_stage,
            )
            .values(design_stage=to_stage, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def bind_fitter(self, claim_id: UUID, fitter_id: UUID) -> bool:
        """
        Bind a fitter only if none is bound yet.

        The `fitter_id IS NULL` predicate is the sole arbiter between
        concurrent assigners.
        """
        now = utc_now()
        result = await self.session.execute(
            update(ClaimTable)
            .where(
                ClaimTable.claim_id == claim_id,
                ClaimTable.status == ClaimStatus.CONFIRMED,
                ClaimTable.design_stage == Stage.COMPLETED,
                ClaimTable.fitter_id.is_(None),
            )
            .values(
                fitter_id=fitter_id,
                fitter_stage=Stage.PENDING,
                fitter_assigned_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_fitter_stage(
        self,
        claim_id: UUID,
        fitter_id: UUID,
        from_stage: Stage,
        to_stage: Stage,
        proofs: list[ProofArtifact] | None = None,
    ) -> bool:
        """Conditionally advance the fitter stage, optionally replacing proofs."""
        now = utc_now()
        values: dict[str, Any] = {"fitter_stage": to_stage, "updated_at": now}
        if to_stage == Stage.IN_PROGRESS and from_stage == Stage.PENDING:
            values["fitter_started_at"] = now
        if to_stage == Stage.COMPLETED and from_stage != Stage.COMPLETED:
            values["fitter_completed_at"] = now
        if proofs is not None:
            values["proofs"] = [proof.model_dump(mode="json") for proof in proofs]

        result = await self.session.execute(
            update(ClaimTable)
            .where(
                ClaimTable.claim_id == claim_id,
                ClaimTable.status == ClaimStatus.CONFIRMED,
                ClaimTable.design_stage == Stage.COMPLETED,
                ClaimTable.fitter_id == fitter_id,
                ClaimTable.fitter_stage == from_stage,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _row_to_model(self, row: ClaimTable) -> Claim:
        """Convert database row to model."""
        workflow = None
        if row.status == ClaimStatus.CONFIRMED and row.designer_id is not None:
            fitter = None
            if row.fitter_id is not None:
                fitter = FitterAssignment(
                    fitter_id=row.fitter_id,
                    stage=row.fitter_stage or Stage.PENDING,
                    assigned_at=row.fitter_assigned_at or row.updated_at,
                    started_at=row.fitter_started_at,
                    completed_at=row.fitter_completed_at,
                )
            workflow = ClaimWorkflow(
                designer_id=row.designer_id,
                design_stage=row.design_stage or Stage.PENDING,
                fitter=fitter,
                proofs=[ProofArtifact(**proof) for proof in (row.proofs or [])],
            )

        return Claim(
            claim_id=row.claim_id,
            unit_id=row.unit_id,
            agent_id=row.agent_id,
            client_id=row.client_id,
            date_from=row.date_from,
            date_to=row.date_to,
            duration_months=row.duration_months,
            note=row.note,
            status=row.status,
            queue_position=row.queue_position,
            created_at=row.created_at,
            expires_at=row.expires_at,
            updated_at=row.updated_at,
            workflow=workflow,
        )


class CommitmentRepository:
    """Repository for commitments (bookings)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, claim: Claim, created_by_id: UUID) -> Commitment:
        """Record the commitment created by a winning confirmation."""
        now = utc_now()
        row = CommitmentTable(
            commitment_id=uuid4(),
            unit_id=claim.unit_id,
            claim_id=claim.claim_id,
            date_from=claim.date_from,
            date_to=claim.date_to,
            status=CommitmentStatus.IN_PROCESS,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get_for_claim(self, claim_id: UUID) -> Commitment | None:
        result = await self.session.execute(
            select(CommitmentTable)
            .where(CommitmentTable.claim_id == claim_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def latest_for_unit(
        self, unit_id: UUID, statuses: Iterable[CommitmentStatus]
    ) -> Commitment | None:
        """Most recent commitment on the unit in one of the statuses."""
        result = await self.session.execute(
            select(CommitmentTable)
            .where(
                CommitmentTable.unit_id == unit_id,
                CommitmentTable.status.in_(list(statuses)),
            )
            .order_by(CommitmentTable.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def has_in_process(self, unit_id: UUID) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    CommitmentTable.unit_id == unit_id,
                    CommitmentTable.status == CommitmentStatus.IN_PROCESS,
                )
            )
        )
        return bool(result.scalar())

    async def transition_status(
        self,
        unit_id: UUID,
        from_status: CommitmentStatus,
        to_status: CommitmentStatus,
        claim_id: UUID | None = None,
    ) -> int:
        """Move the unit's commitments between statuses. Returns rows affected."""
        conditions = [
            CommitmentTable.unit_id == unit_id,
            CommitmentTable.status == from_status,
        ]
        if claim_id is not None:
            conditions.append(CommitmentTable.claim_id == claim_id)

        result = await self.session.execute(
            update(CommitmentTable)
            .where(*conditions)
            .values(status=to_status, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _row_to_model(self, row: CommitmentTable) -> Commitment:
        """Convert database row to model."""
        return Commitment(
            commitment_id=row.commitment_id,
            unit_id=row.unit_id,
            claim_id=row.claim_id,
            date_from=row.date_from,
            date_to=row.date_to,
            status=row.status,
            created_by_id=row.created_by_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class AuditRepository:
    """Repository for the append-only audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        unit_id: UUID,
        event_type: AuditEventType,
        actor: Actor | None = None,
        claim_id: UUID | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append an audit event."""
        row = AuditEventTable(
            event_id=uuid4(),
            unit_id=unit_id,
            claim_id=claim_id,
            event_type=event_type,
            actor_id=actor.actor_id if actor else None,
            actor_role=actor.role if actor else None,
            payload=payload or {},
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def latest(self, unit_id: UUID, event_type: AuditEventType) -> AuditEvent | None:
        """Most recent event of a type on a unit."""
        result = await self.session.execute(
            select(AuditEventTable)
            .where(
                AuditEventTable.unit_id == unit_id,
                AuditEventTable.event_type == event_type,
            )
            .order_by(AuditEventTable.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    def _row_to_model(self, row: AuditEventTable) -> AuditEvent:
        """Convert database row to model."""
        return AuditEvent(
            event_id=row.event_id,
            unit_id=row.unit_id,
            claim_id=row.claim_id,
            event_type=row.event_type,
            actor_id=row.actor_id,
            actor_role=row.actor_role,
            payload=row.payload or {},
            created_at=row.created_at,
        )


class NotificationRepository:
    """Repository for the notification ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        recipient_id: UUID,
        title: str,
        body: str,
        link: str | None = None,
        dedupe_key: str | None = None,
    ) -> bool:
        """
        Store one notification.

        Returns False when the dedupe key was already used. Insert-then-catch
        keeps concurrent duplicate deliveries from both landing.
        """
        row = NotificationTable(
            notification_id=uuid4(),
            recipient_id=recipient_id,
            title=title,
            body=body,
            link=link,
            dedupe_key=dedupe_key,
            is_read=False,
            created_at=utc_now(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            return False
        return True

    async def list_for_recipient(self, recipient_id: UUID, limit: int = 50) -> list[dict[str, Any]]:
        """Recipient's notifications, newest first."""
        result = await self.session.execute(
            select(NotificationTable)
            .where(NotificationTable.recipient_id == recipient_id)
            .order_by(NotificationTable.created_at.desc())
            .limit(limit)
        )
        return [
            {
                "notification_id": row.notification_id,
                "title": row.title,
                "body": row.body,
                "link": row.link,
                "is_read": row.is_read,
                "created_at": row.created_at,
            }
            for row in result.scalars().all()
        ]
