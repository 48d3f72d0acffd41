"""HoldGate core engine - reservation queue and workflow operations."""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from holdgate.config import settings
from holdgate.db.repositories import (
    AuditRepository,
    ClaimRepository,
    ClientRepository,
    CommitmentRepository,
    UnitRepository,
    UserRepository,
)
from holdgate.engine import messages
from holdgate.engine.errors import (
    ActorNotFound,
    ClaimNotFound,
    Conflict,
    Forbidden,
    InvalidInput,
    InvalidStageTransition,
    PreconditionFailed,
    UnitNotFound,
)
from holdgate.engine.outbox import Outbox
from holdgate.engine.queue import assign_positions, next_in_line, rank_queue
from holdgate.models import (
    Actor,
    AuditEventType,
    Claim,
    ClaimReceipt,
    ClaimStatus,
    ClientInfo,
    CommitmentStatus,
    EventKind,
    ProofArtifact,
    Role,
    Stage,
    Unit,
    UnitStatus,
    WorkflowState,
)
from holdgate.observability.metrics import metrics
from holdgate.utils.time import add_months, format_remaining, utc_now, whole_months_between

logger = logging.getLogger(__name__)

# Placeholder rank for a freshly inserted claim; replaced before commit
PROVISIONAL_POSITION = 999_999


def _status_label(status: UnitStatus) -> str:
    return status.value.replace("_", " ").title()


class ReservationEngine:
    """Core engine implementing the reservation queue and workflow operations.

    Every state change runs inside a SAVEPOINT. The caller owns the outer
    transaction: commit it, then `await engine.outbox.dispatch(...)`.
    """

    def __init__(self, session: AsyncSession, outbox: Outbox | None = None):
        self.session = session
        self.units = UnitRepository(session)
        self.users = UserRepository(session)
        self.clients = ClientRepository(session)
        self.claims = ClaimRepository(session)
        self.commitments = CommitmentRepository(session)
        self.audit = AuditRepository(session)
        self.outbox = outbox or Outbox()

    @asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        """SAVEPOINT whose staged side effects are discarded on rollback."""
        mark = self.outbox.mark()
        try:
            async with self.session.begin_nested():  # SAVEPOINT
                yield
        except BaseException:
            self.outbox.rollback_to(mark)
            raise

    # =========================================================================
    # Lookups
    # =========================================================================

    async def resolve_actor(self, actor_id: UUID) -> Actor:
        """Return an active directory user or raise ActorNotFound."""
        actor = await self.users.get(actor_id)
        if actor is None or not actor.is_active:
            raise ActorNotFound(actor_id)
        return actor

    async def _get_claim_or_raise(self, claim_id: UUID) -> Claim:
        claim = await self.claims.get(claim_id)
        if claim is None:
            raise ClaimNotFound(claim_id)
        return claim

    async def _get_unit_or_raise(self, unit_id: UUID) -> Unit:
        unit = await self.units.get(unit_id)
        if unit is None:
            raise UnitNotFound(unit_id)
        return unit

    async def _supervisor_ids(self, exclude: UUID | None = None) -> list[UUID]:
        supervisors = await self.users.list_active(Role.supervisors())
        return [s.actor_id for s in supervisors if s.actor_id != exclude]

    async def _resolve_assignee(self, role: Role, hint: UUID | None) -> Actor:
        """
        Pick the actor to bind to a workflow stage.

        An explicit hint must be an active user with the role. Without a
        hint, a single active candidate is auto-assigned; zero or several
        candidates are reported differently so the caller knows whether to
        pick one.
        """
        noun = role.value
        if hint is not None:
            candidate = await self.users.get_active_with_role(hint, role)
            if candidate is not None:
                return candidate
            other = await self.users.get(hint)
            if other is None or not other.is_active:
                raise InvalidInput(f"Selected {noun} is not available")
            raise InvalidInput(f"Selected user is not a {noun}")

        candidates = await self.users.list_active([role])
        if not candidates:
            raise InvalidInput(f"No {noun}s available to assign")
        if len(candidates) > 1:
            raise InvalidInput(f"Please select a {noun} to assign")
        return candidates[0]

    async def _winner_role(self, unit_id: UUID, event_type: AuditEventType) -> Optional[str]:
        """Role that performed the latest event of this type on the unit."""
        event = await self.audit.latest(unit_id, event_type)
        if event is None or event.actor_role is None:
            return None
        return event.actor_role.value

    async def _committed_conflict(self, unit: Unit) -> Conflict:
        """Describe who already committed the unit, as far as it is known."""
        label = _status_label(unit.status)
        winner = None
        commitment = await self.commitments.latest_for_unit(
            unit.unit_id, [CommitmentStatus.IN_PROCESS]
        )
        if commitment is not None and unit.status == UnitStatus.IN_PROCESS:
            confirmer = await self.users.get(commitment.created_by_id)
            if confirmer is not None:
                winner = confirmer.role.value

        if winner:
            return Conflict(f"This unit is already {label} (confirmed by {winner})", winner=winner)
        return Conflict(f"This unit is already {label}")

    async def _recompute_queue(self, unit_id: UUID, date_from: date, date_to: date) -> dict[UUID, int]:
        """Re-rank every live claim overlapping the window as 1..N."""
        overlapping = await self.claims.list_overlapping(
            unit_id, date_from, date_to, ClaimStatus.live_states()
        )
        positions = assign_positions(rank_queue(overlapping, date_from, date_to))
        await self.claims.set_positions(positions)
        return positions

    def _resolve_duration(
        self,
        date_from: date,
        duration_months: int | None,
        date_to: date | None,
    ) -> int:
        if duration_months is not None:
            duration = duration_months
        elif date_to is not None:
            if date_to <= date_from:
                raise InvalidInput("Invalid booking end date")
            duration = whole_months_between(date_from, date_to)
        else:
            raise InvalidInput("Booking duration is required")

        allowed = settings.allowed_durations_months
        if duration not in allowed:
            raise InvalidInput(
                "Invalid booking duration; allowed durations (months): "
                + ", ".join(str(months) for months in allowed)
            )
        return duration

    # =========================================================================
    # Claim Lifecycle
    # =========================================================================

    async def create_claim(
        self,
        actor: Actor,
        unit_id: UUID,
        date_from: date,
        client: ClientInfo,
        duration_months: int | None = None,
        date_to: date | None = None,
        note: str | None = None,
    ) -> ClaimReceipt:
        """
        Place a claim on a unit and rank it in the unit's queue.

        The insert and the queue recomputation share one savepoint, and the
        unit row is locked first so concurrent claims on the same unit
        serialize.
        """
        if actor.role not in Role.claimants():
            raise Forbidden(f"Role {actor.role.value} cannot claim units")

        duration = self._resolve_duration(date_from, duration_months, date_to)
        computed_to = add_months(date_from, duration)
        if computed_to <= date_from:
            raise InvalidInput("Invalid date range")

        now = utc_now()
        async with self._atomic():
            unit = await self.units.lock(unit_id)
            if unit is None:
                raise UnitNotFound(unit_id)
            if not unit.status.is_claimable():
                raise Conflict(
                    f"This unit is {_status_label(unit.status)} and cannot be claimed"
                )

            existing = await self.claims.find_active_for_agent(unit_id, actor.actor_id, now)
            if existing is not None:
                remaining = format_remaining(existing.expires_at - now)
                raise InvalidInput(
                    f"You have already claimed this unit. You can claim again after: {remaining}"
                )

            client_record = await self.clients.find_or_create(client)
            claim = await self.claims.create(
                unit_id=unit_id,
                agent_id=actor.actor_id,
                client_id=client_record.client_id,
                date_from=date_from,
                date_to=computed_to,
                duration_months=duration,
                ttl=timedelta(hours=settings.claim_ttl_hours),
                queue_position=PROVISIONAL_POSITION,
                note=note,
            )
            positions = await self._recompute_queue(unit_id, date_from, computed_to)
            position = positions[claim.claim_id]

            await self.audit.record(
                unit_id,
                AuditEventType.CLAIM_CREATED,
                actor=actor,
                claim_id=claim.claim_id,
                payload={"queue_position": position, "duration_months": duration},
            )

            self.outbox.notify(
                [actor.actor_id],
                *messages.queue_position(unit, position),
                link=messages.claim_link(claim.claim_id),
            )
            if actor.is_agent and settings.escalate_agent_claims:
                self.outbox.notify(
                    await self._supervisor_ids(exclude=actor.actor_id),
                    *messages.agent_claimed(unit, actor, client_record, duration, position),
                    link=messages.claim_link(claim.claim_id),
                )

        await self.derive_unit_status(unit_id)
        metrics.inc_counter("claims.created")
        logger.info(
            "Claim %s created on unit %s at position %d", claim.claim_id, unit_id, position
        )

        return ClaimReceipt(
            claim_id=claim.claim_id,
            queue_position=position,
            client=client_record,
        )

    async def cancel_claim(self, actor: Actor, claim_id: UUID) -> Claim:
        """Cancel an ACTIVE claim (management only)."""
        if actor.role not in Role.management():
            if actor.is_agent:
                raise Forbidden("Agents cannot cancel claims")
            raise Forbidden("Not allowed")

        claim = await self._get_claim_or_raise(claim_id)
        if claim.status != ClaimStatus.ACTIVE:
            raise Conflict(f"Only active claims can be cancelled (claim is {claim.status.value})")

        async with self._atomic():
            if not await self.claims.transition_status(
                claim_id, ClaimStatus.ACTIVE, ClaimStatus.CANCELLED
            ):
                raise Conflict("Claim is no longer active")

            await self._recompute_queue(claim.unit_id, claim.date_from, claim.date_to)
            await self.audit.record(
                claim.unit_id, AuditEventType.CLAIM_CANCELLED, actor=actor, claim_id=claim_id
            )
            self.outbox.notify(
                [claim.agent_id],
                *messages.claim_cancelled(),
                link=messages.unit_link(claim.unit_id),
            )

        await self.derive_unit_status(claim.unit_id)
        metrics.inc_counter("claims.cancelled")
        return await self._get_claim_or_raise(claim_id)

    async def list_my_claims(
        self,
        actor: Actor,
        statuses: Iterable[ClaimStatus] | None = None,
        limit: int | None = None,
    ) -> list[Claim]:
        """The actor's own claims, by queue position."""
        limit = min(limit or settings.default_list_limit, settings.max_list_limit)
        return await self.claims.list_for_agent(actor.actor_id, statuses=statuses, limit=limit)

    async def list_queue(
        self,
        unit_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[Claim]:
        """Live claims queued on a unit, by position."""
        await self._get_unit_or_raise(unit_id)
        if (date_from is None) != (date_to is None):
            raise InvalidInput("Both date_from and date_to are required to filter by window")
        if date_from is not None and date_to is not None and date_to < date_from:
            raise InvalidInput("Invalid date range")
        return await self.claims.list_queue(unit_id, date_from, date_to)

    async def get_claim(self, actor: Actor, claim_id: UUID) -> Claim:
        """Claim details, visible to the roles involved with it."""
        claim = await self._get_claim_or_raise(claim_id)
        workflow = claim.workflow

        if actor.role == Role.AGENT and claim.agent_id != actor.actor_id:
            raise Forbidden("Not allowed")
        if actor.role == Role.DESIGNER and (
            workflow is None or workflow.designer_id != actor.actor_id
        ):
            raise Forbidden("Not allowed")
        if actor.role == Role.FITTER and (
            workflow is None or workflow.fitter is None or workflow.fitter.fitter_id != actor.actor_id
        ):
            raise Forbidden("Not allowed")
        return claim

    async def list_recent_claims(
        self,
        actor: Actor,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        unit_id: UUID | None = None,
        agent_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[Claim]:
        """Recent claims across units (management only)."""
        if actor.role not in Role.management():
            raise Forbidden("Not allowed")
        limit = min(limit or settings.default_list_limit, settings.max_list_limit)
        return await self.claims.list_recent(
            created_from=created_from,
            created_to=created_to,
            unit_id=unit_id,
            agent_id=agent_id,
            limit=limit,
        )

    async def list_eligible(self, actor: Actor, role: Role) -> list[Actor]:
        """Active users who can be bound to a workflow stage."""
        if actor.role not in Role.management():
            raise Forbidden("Only owners, managers and admins can list assignees")
        if role not in (Role.DESIGNER, Role.FITTER):
            raise InvalidInput(f"No workflow stage is owned by role {role.value}")
        return await self.users.list_active([role])

    # =========================================================================
    # Commitment Claimer
    # =========================================================================

    async def confirm_claim(
        self,
        actor: Actor,
        claim_id: UUID,
        designer_hint: UUID | None = None,
        is_admin: bool | None = None,
    ) -> Claim:
        """
        Convert a claim into a binding commitment.

        The winner is whoever first passes the conditional update of the
        unit status; every later confirmer observes the committed unit and
        gets a Conflict naming the confirmer's role.
        """
        if actor.role not in Role.claimants():
            raise Forbidden("Not allowed to confirm claims")
        if is_admin is None:
            is_admin = actor.role in Role.management()

        claim = await self._get_claim_or_raise(claim_id)
        if (
            designer_hint is not None
            and claim.workflow is not None
            and claim.workflow.designer_id != designer_hint
        ):
            raise InvalidInput("Claim already assigned to another designer")

        unit = await self._get_unit_or_raise(claim.unit_id)
        # Checked before eligibility so late confirmers get a stable answer
        if unit.status in UnitStatus.committed_states():
            raise await self._committed_conflict(unit)

        if actor.is_agent and claim.agent_id != actor.actor_id:
            raise Forbidden("Agents can only confirm their own claims")

        if claim.status != ClaimStatus.ACTIVE:
            raise Conflict(f"Claim is {claim.status.value}, not active")
        if not is_admin:
            if claim.is_expired():
                raise Forbidden("Claim expired")
            if claim.queue_position != 1:
                raise Forbidden("Not first in queue")

        designer = await self._resolve_assignee(Role.DESIGNER, designer_hint)

        async with self._atomic():
            won = await self.units.compare_and_set_status(
                unit.unit_id,
                UnitStatus.IN_PROCESS,
                excluded=UnitStatus.committed_states(),
            )
            if not won:
                metrics.inc_counter("confirm.lost")
                logger.info("Confirm of claim %s lost the race for unit %s", claim_id, unit.unit_id)
                fresh = await self.units.get(unit.unit_id)
                raise await self._committed_conflict(fresh or unit)

            if not await self.claims.transition_status(
                claim_id,
                ClaimStatus.ACTIVE,
                ClaimStatus.CONFIRMED,
                designer_id=designer.actor_id,
                design_stage=Stage.PENDING,
            ):
                # Expired or cancelled concurrently; the unit claim rolls back with us
                raise Conflict("Claim is no longer active")

            commitment = await self.commitments.create(claim, actor.actor_id)

            rivals = await self.claims.list_overlapping(
                unit.unit_id,
                claim.date_from,
                claim.date_to,
                [ClaimStatus.ACTIVE],
                exclude_claim_id=claim_id,
            )
            cancelled_agents: list[UUID] = []
            for rival in rivals:
                if await self.claims.transition_status(
                    rival.claim_id, ClaimStatus.ACTIVE, ClaimStatus.CANCELLED
                ):
                    cancelled_agents.append(rival.agent_id)
                    await self.audit.record(
                        unit.unit_id,
                        AuditEventType.CLAIM_RIVAL_CANCELLED,
                        actor=actor,
                        claim_id=rival.claim_id,
                        payload={"confirmed_claim_id": str(claim_id)},
                    )

            await self._recompute_queue(unit.unit_id, claim.date_from, claim.date_to)
            await self.audit.record(
                unit.unit_id,
                AuditEventType.CLAIM_CONFIRMED,
                actor=actor,
                claim_id=claim_id,
                payload={
                    "commitment_id": str(commitment.commitment_id),
                    "designer_id": str(designer.actor_id),
                    "rivals_cancelled": len(cancelled_agents),
                },
            )

            client = await self.clients.get(claim.client_id)
            self.outbox.notify(
                [claim.agent_id],
                *messages.claim_confirmed(),
                link=messages.claim_link(claim_id),
            )
            self.outbox.notify(
                [agent_id for agent_id in cancelled_agents if agent_id != claim.agent_id],
                *messages.rival_cancelled(),
                link=messages.unit_link(unit.unit_id),
            )
            self.outbox.notify(
                [designer.actor_id],
                *messages.design_assigned(unit, client, claim),
                link=messages.claim_link(claim_id, from_notification=True),
            )
            if actor.role == Role.MANAGER:
                owners = await self.users.list_active([Role.OWNER])
                self.outbox.notify(
                    [owner.actor_id for owner in owners if owner.actor_id != actor.actor_id],
                    *messages.manager_confirmed(actor, unit),
                    link=messages.unit_link(unit.unit_id),
                )
            self.outbox.publish(
                EventKind.UNIT_STATUS,
                unit.unit_id,
                UnitStatus.IN_PROCESS.value,
                claim_id=claim_id,
                has_active_claim=False,
            )

        metrics.inc_counter("confirm.won")
        logger.info("Claim %s confirmed; unit %s is in process", claim_id, unit.unit_id)
        return await self._get_claim_or_raise(claim_id)

    # =========================================================================
    # Workflow State Machine
    # =========================================================================

    def _parse_stage(self, raw: str, stage_name: str) -> Stage:
        try:
            return Stage.parse(raw)
        except ValueError:
            raise InvalidInput(f"Invalid {stage_name} status") from None

    async def update_design_status(self, actor: Actor, claim_id: UUID, status: str) -> Claim:
        """Advance the design stage; only the bound designer may."""
        new_stage = self._parse_stage(status, "design")
        claim = await self._get_claim_or_raise(claim_id)
        workflow = claim.workflow
        if workflow is None:
            raise PreconditionFailed("Design workflow is not active")
        if workflow.designer_id != actor.actor_id:
            raise Forbidden("Only the assigned designer can update design status")

        current = workflow.design_stage
        if not current.can_transition_to(new_stage):
            raise InvalidStageTransition("design", current.value, new_stage.value)
        if new_stage == current:
            return claim

        async with self._atomic():
            if not await self.claims.set_design_stage(
                claim_id, actor.actor_id, current, new_stage
            ):
                raise Conflict("Design status was updated by another request")

            await self.audit.record(
                claim.unit_id,
                AuditEventType.DESIGN_UPDATED,
                actor=actor,
                claim_id=claim_id,
                payload={"from": current.value, "to": new_stage.value},
            )
            self.outbox.publish(
                EventKind.DESIGN_STATUS, claim.unit_id, new_stage.value, claim_id=claim_id
            )
            if new_stage == Stage.COMPLETED:
                unit = await self._get_unit_or_raise(claim.unit_id)
                self.outbox.notify(
                    await self._supervisor_ids(exclude=actor.actor_id),
                    *messages.design_completed(actor, unit),
                    link=messages.claim_link(claim_id, from_notification=True),
                )

        return await self._get_claim_or_raise(claim_id)

    def _require_installation(self, claim: Claim, actor: Actor, action: str):
        """Shared gates for the fitter's stage; returns the fitter assignment."""
        workflow = claim.workflow
        if workflow is None:
            raise PreconditionFailed("Installation workflow is not active")
        if workflow.design_stage != Stage.COMPLETED:
            raise PreconditionFailed("Design must be completed before installation can start")
        if workflow.fitter is None or workflow.fitter.fitter_id != actor.actor_id:
            raise Forbidden(f"Only the assigned fitter can {action}")
        return workflow.fitter

    async def update_fitter_status(self, actor: Actor, claim_id: UUID, status: str) -> Claim:
        """Advance the installation stage; only the bound fitter may."""
        new_stage = self._parse_stage(status, "fitter")
        claim = await self._get_claim_or_raise(claim_id)
        fitter = self._require_installation(claim, actor, "update installation status")

        current = fitter.stage
        if not current.can_transition_to(new_stage):
            raise InvalidStageTransition("fitter", current.value, new_stage.value)
        if new_stage == current:
            return claim
        if new_stage == Stage.COMPLETED and not claim.workflow.proofs:
            raise PreconditionFailed("At least one installation proof is required")

        async with self._atomic():
            await self._advance_fitter(claim, actor, current, new_stage)

        return await self._get_claim_or_raise(claim_id)

    async def complete_installation_with_proof(
        self,
        actor: Actor,
        claim_id: UUID,
        artifacts: list[ProofArtifact],
    ) -> Claim:
        """Record proof artifacts and complete an in-progress installation in one step."""
        if not artifacts:
            raise InvalidInput("At least one installation proof is required")

        claim = await self._get_claim_or_raise(claim_id)
        fitter = self._require_installation(claim, actor, "submit installation proof")
        if fitter.stage != Stage.IN_PROGRESS:
            raise PreconditionFailed(
                f"Installation must be in progress to submit proof (currently {fitter.stage.value})"
            )

        now = utc_now()
        stamped = [
            artifact if artifact.uploaded_at else artifact.model_copy(update={"uploaded_at": now})
            for artifact in artifacts
        ]

        async with self._atomic():
            await self._advance_fitter(
                claim,
                actor,
                Stage.IN_PROGRESS,
                Stage.COMPLETED,
                proofs=claim.workflow.proofs + stamped,
            )
            await self.audit.record(
                claim.unit_id,
                AuditEventType.PROOF_SUBMITTED,
                actor=actor,
                claim_id=claim_id,
                payload={"files": [artifact.filename for artifact in stamped]},
            )

        return await self._get_claim_or_raise(claim_id)

    async def _advance_fitter(
        self,
        claim: Claim,
        actor: Actor,
        current: Stage,
        new_stage: Stage,
        proofs: list[ProofArtifact] | None = None,
    ) -> None:
        if not await self.claims.set_fitter_stage(
            claim.claim_id, actor.actor_id, current, new_stage, proofs=proofs
        ):
            raise Conflict("Installation status was updated by another request")

        await self.audit.record(
            claim.unit_id,
            AuditEventType.FITTER_UPDATED,
            actor=actor,
            claim_id=claim.claim_id,
            payload={"from": current.value, "to": new_stage.value},
        )
        self.outbox.publish(
            EventKind.FITTER_STATUS, claim.unit_id, new_stage.value, claim_id=claim.claim_id
        )
        if new_stage == Stage.COMPLETED:
            await self._go_live(claim, actor)

    async def _go_live(self, claim: Claim, actor: Actor) -> None:
        """Installation finished: the unit goes live and the agent is asked to finalize."""
        if not await self.units.compare_and_set_status(
            claim.unit_id,
            UnitStatus.LIVE,
            expected=[UnitStatus.IN_PROCESS],
            workflow_state=None,
        ):
            unit = await self._get_unit_or_raise(claim.unit_id)
            raise Conflict(
                f"Unit is {_status_label(unit.status)} and cannot go live"
            )
        await self.commitments.transition_status(
            claim.unit_id,
            CommitmentStatus.IN_PROCESS,
            CommitmentStatus.LIVE,
            claim_id=claim.claim_id,
        )

        unit = await self._get_unit_or_raise(claim.unit_id)
        recipients = await self._supervisor_ids(exclude=actor.actor_id)
        recipients.append(claim.agent_id)
        self.outbox.notify(
            recipients,
            *messages.unit_live(unit),
            link=messages.unit_link(unit.unit_id, from_notification=True),
            dedupe_key=messages.ready_to_book_key(unit.unit_id, claim.claim_id),
        )
        self.outbox.publish(
            EventKind.UNIT_STATUS, unit.unit_id, UnitStatus.LIVE.value, claim_id=claim.claim_id
        )
        logger.info("Unit %s is live (claim %s)", unit.unit_id, claim.claim_id)

    # =========================================================================
    # Assignment Allocator
    # =========================================================================

    async def assign_fitter(
        self,
        actor: Actor,
        claim_id: UUID,
        fitter_hint: UUID | None = None,
    ) -> Claim:
        """
        Bind a fitter to a confirmed claim whose design is complete.

        At most one assignment can ever succeed; the bind is conditional on
        no fitter being bound yet.
        """
        if actor.role not in Role.management():
            raise Forbidden("Not allowed")

        claim = await self._get_claim_or_raise(claim_id)
        workflow = claim.workflow
        if workflow is None:
            raise PreconditionFailed("Installation workflow is not active")
        if workflow.design_stage != Stage.COMPLETED:
            raise PreconditionFailed("Design must be completed before assigning a fitter")
        if workflow.fitter is not None:
            raise await self._fitter_conflict(claim.unit_id)

        fitter = await self._resolve_assignee(Role.FITTER, fitter_hint)
        unit = await self._get_unit_or_raise(claim.unit_id)

        async with self._atomic():
            if not await self.claims.bind_fitter(claim_id, fitter.actor_id):
                metrics.inc_counter("assign_fitter.lost")
                logger.info("Fitter assignment for claim %s lost the race", claim_id)
                raise await self._fitter_conflict(claim.unit_id)

            await self.units.set_workflow_state(unit.unit_id, WorkflowState.FITTER_ASSIGNED)
            await self.audit.record(
                unit.unit_id,
                AuditEventType.FITTER_ASSIGNED,
                actor=actor,
                claim_id=claim_id,
                payload={"fitter_id": str(fitter.actor_id)},
            )

            client = await self.clients.get(claim.client_id)
            designer = await self.users.get(workflow.designer_id)
            self.outbox.notify(
                [fitter.actor_id],
                *messages.installation_assigned(unit, client, designer, fitter),
                link=messages.claim_link(claim_id, from_notification=True),
                dedupe_key=messages.assign_fitter_key(unit.unit_id, fitter.actor_id),
            )
            self.outbox.publish(
                EventKind.FITTER_STATUS, unit.unit_id, Stage.PENDING.value, claim_id=claim_id
            )

        metrics.inc_counter("assign_fitter.won")
        return await self._get_claim_or_raise(claim_id)

    async def _fitter_conflict(self, unit_id: UUID) -> Conflict:
        winner = await self._winner_role(unit_id, AuditEventType.FITTER_ASSIGNED)
        if winner:
            return Conflict(
                f"This unit has already been assigned by another user ({winner}).",
                winner=winner,
            )
        return Conflict("This unit has already been assigned by another user.")

    async def list_stage_assignments(self, actor: Actor) -> list[Claim]:
        """Confirmed claims whose design or installation stage the actor owns."""
        if actor.role == Role.DESIGNER:
            return await self.claims.list_for_designer(actor.actor_id)
        if actor.role == Role.FITTER:
            return await self.claims.list_for_fitter(actor.actor_id)
        raise Forbidden("Only designers and fitters have stage assignments")

    # =========================================================================
    # Finalization
    # =========================================================================

    async def finalize_status(self, actor: Actor, unit_id: UUID) -> Unit:
        """Mark a live unit as booked. Only live -> booked is legal."""
        if actor.role not in Role.finalizers():
            raise Forbidden("Not allowed")

        unit = await self._get_unit_or_raise(unit_id)
        if unit.status == UnitStatus.BOOKED:
            raise await self._finalized_conflict(unit_id)
        if unit.status != UnitStatus.LIVE:
            raise PreconditionFailed(
                f"Only Live units can be marked as booked (unit is {_status_label(unit.status)})"
            )

        async with self._atomic():
            if not await self.units.compare_and_set_status(
                unit_id,
                UnitStatus.BOOKED,
                expected=[UnitStatus.LIVE],
                workflow_state=None,
            ):
                metrics.inc_counter("finalize.lost")
                fresh = await self._get_unit_or_raise(unit_id)
                if fresh.status == UnitStatus.BOOKED:
                    raise await self._finalized_conflict(unit_id)
                raise Conflict("This unit was already updated by another user")

            await self.commitments.transition_status(
                unit_id, CommitmentStatus.LIVE, CommitmentStatus.BOOKED
            )
            await self.audit.record(unit_id, AuditEventType.UNIT_FINALIZED, actor=actor)
            self.outbox.publish(EventKind.UNIT_STATUS, unit_id, UnitStatus.BOOKED.value)

        metrics.inc_counter("finalize.won")
        return await self._get_unit_or_raise(unit_id)

    async def _finalized_conflict(self, unit_id: UUID) -> Conflict:
        winner = await self._winner_role(unit_id, AuditEventType.UNIT_FINALIZED)
        if winner:
            return Conflict(f"Already marked as booked by {winner}", winner=winner)
        return Conflict("Already marked as booked")

    # =========================================================================
    # System Operations
    # =========================================================================

    async def expire_claims(self, batch_size: int | None = None, now: datetime | None = None) -> int:
        """
        Expire overdue ACTIVE claims and promote the next in line.

        Each claim is handled in its own savepoint; a failure is logged and
        the sweep moves on. Re-running over an already expired claim is a
        no-op because the transition is conditional on ACTIVE.

        Returns:
            Number of claims expired by this call.
        """
        now = now or utc_now()
        overdue = await self.claims.list_overdue(
            now, limit=batch_size or settings.expiry_sweep_batch_size
        )
        count = 0

        for claim in overdue:
            try:
                async with self._atomic():
                    expired = await self.claims.transition_status(
                        claim.claim_id, ClaimStatus.ACTIVE, ClaimStatus.EXPIRED
                    )
                    if expired:
                        await self._after_expiry(claim)
            except Exception as e:
                logger.error(f"Failed to expire claim {claim.claim_id}: {e}", exc_info=True)
                metrics.inc_counter("claims.expired.failed")
                continue

            if expired:
                count += 1
                metrics.inc_counter("claims.expired")
            await self.derive_unit_status(claim.unit_id)

        return count

    async def _after_expiry(self, claim: Claim) -> None:
        await self._recompute_queue(claim.unit_id, claim.date_from, claim.date_to)
        await self.audit.record(
            claim.unit_id, AuditEventType.CLAIM_EXPIRED, claim_id=claim.claim_id
        )
        self.outbox.notify(
            [claim.agent_id],
            *messages.claim_expired(),
            link=messages.unit_link(claim.unit_id),
        )

        remaining = await self.claims.list_overlapping(
            claim.unit_id,
            claim.date_from,
            claim.date_to,
            [ClaimStatus.ACTIVE],
            exclude_claim_id=claim.claim_id,
        )
        head = next_in_line(remaining, claim.date_from, claim.date_to)
        if head is not None:
            self.outbox.notify(
                [head.agent_id],
                *messages.claim_promoted(),
                link=messages.unit_link(claim.unit_id),
            )

    async def derive_unit_status(self, unit_id: UUID) -> Optional[UnitStatus]:
        """
        Recompute a unit's availability from its claims and commitments.

        Best-effort: runs in its own savepoint and never raises, so the
        state change that triggered it is kept. Live and booked units are
        left alone. Returns the status written, or None if nothing changed.
        """
        try:
            async with self._atomic():
                unit = await self.units.get(unit_id)
                if unit is None or unit.status not in UnitStatus.derived_states():
                    return None

                has_active = await self.claims.has_active(unit_id)
                if await self.commitments.has_in_process(unit_id):
                    target = UnitStatus.IN_PROCESS
                elif has_active:
                    target = UnitStatus.RESERVED
                else:
                    target = UnitStatus.AVAILABLE

                if target == unit.status:
                    return None

                if not await self.units.compare_and_set_status(
                    unit_id, target, expected=[unit.status]
                ):
                    logger.info(
                        "Unit %s changed while deriving status; leaving it as is", unit_id
                    )
                    return None

                await self.audit.record(
                    unit_id,
                    AuditEventType.UNIT_STATUS_DERIVED,
                    payload={"from": unit.status.value, "to": target.value},
                )
                self.outbox.publish(
                    EventKind.UNIT_STATUS,
                    unit_id,
                    target.value,
                    has_active_claim=has_active,
                )
                return target
        except Exception:
            logger.warning("Unit status derivation failed for %s", unit_id, exc_info=True)
            metrics.inc_counter("units.derive.failed")
            return None
