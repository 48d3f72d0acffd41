"""
Design and installation stages, fitter assignment and go-live.
"""

import asyncio

import pytest

from conftest import START, add_user, client_info, fetch_unit
from holdgate.db.repositories import CommitmentRepository
from holdgate.engine import (
    Conflict,
    Forbidden,
    InvalidInput,
    InvalidStageTransition,
    PreconditionFailed,
)
from holdgate.models import (
    ClaimStatus,
    CommitmentStatus,
    ProofArtifact,
    Role,
    Stage,
    UnitStatus,
    WorkflowState,
)

PROOF = ProofArtifact(filename="install.jpg", url="https://files.example.test/install.jpg")


async def confirmed_claim(run, d):
    receipt = await run(lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3))
    await run(lambda e: e.confirm_claim(d.agent_a, receipt.claim_id))
    return receipt.claim_id


async def design_done(run, d):
    claim_id = await confirmed_claim(run, d)
    await run(lambda e: e.update_design_status(d.designer, claim_id, "in_progress"))
    await run(lambda e: e.update_design_status(d.designer, claim_id, "completed"))
    return claim_id


async def installing(run, d):
    claim_id = await design_done(run, d)
    await run(lambda e: e.assign_fitter(d.manager, claim_id))
    await run(lambda e: e.update_fitter_status(d.fitter, claim_id, "inprogress"))
    return claim_id


class TestDesignStage:
    @pytest.mark.asyncio
    async def test_designer_advances_one_step_at_a_time(self, run, directory, notifier):
        d = directory
        claim_id = await confirmed_claim(run, d)

        with pytest.raises(InvalidStageTransition):
            await run(lambda e: e.update_design_status(d.designer, claim_id, "completed"))

        claim = await run(lambda e: e.update_design_status(d.designer, claim_id, "inprogress"))
        assert claim.workflow.design_stage == Stage.IN_PROGRESS

        claim = await run(lambda e: e.update_design_status(d.designer, claim_id, "completed"))
        assert claim.workflow.design_stage == Stage.COMPLETED
        assert "Design completed" in notifier.titles_for(d.manager.actor_id)
        assert "Design completed" in notifier.titles_for(d.owner.actor_id)

        with pytest.raises(InvalidStageTransition):
            await run(lambda e: e.update_design_status(d.designer, claim_id, "pending"))

    @pytest.mark.asyncio
    async def test_same_stage_is_noop(self, run, directory):
        d = directory
        claim_id = await confirmed_claim(run, d)

        claim = await run(lambda e: e.update_design_status(d.designer, claim_id, "pending"))

        assert claim.workflow.design_stage == Stage.PENDING

    @pytest.mark.asyncio
    async def test_only_bound_designer(self, run, directory, session_factory):
        d = directory
        claim_id = await confirmed_claim(run, d)
        other = await add_user(session_factory, "Other Designer", Role.DESIGNER)

        with pytest.raises(Forbidden):
            await run(lambda e: e.update_design_status(other, claim_id, "in_progress"))

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, run, directory):
        d = directory
        claim_id = await confirmed_claim(run, d)

        with pytest.raises(InvalidInput):
            await run(lambda e: e.update_design_status(d.designer, claim_id, "done"))

    @pytest.mark.asyncio
    async def test_unconfirmed_claim_has_no_workflow(self, run, directory):
        d = directory
        receipt = await run(
            lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3)
        )

        with pytest.raises(PreconditionFailed):
            await run(lambda e: e.update_design_status(d.designer, receipt.claim_id, "in_progress"))

    @pytest.mark.asyncio
    async def test_designer_sees_assignments(self, run, directory):
        d = directory
        claim_id = await confirmed_claim(run, d)

        assigned = await run(lambda e: e.list_stage_assignments(d.designer))

        assert [c.claim_id for c in assigned] == [claim_id]
        with pytest.raises(Forbidden):
            await run(lambda e: e.list_stage_assignments(d.agent_a))


class TestFitterAssignment:
    @pytest.mark.asyncio
    async def test_requires_completed_design(self, run, directory):
        d = directory
        claim_id = await confirmed_claim(run, d)

        with pytest.raises(PreconditionFailed):
            await run(lambda e: e.assign_fitter(d.manager, claim_id))

    @pytest.mark.asyncio
    async def test_assign_binds_fitter(self, run, directory, session_factory, notifier):
        d = directory
        claim_id = await design_done(run, d)

        claim = await run(lambda e: e.assign_fitter(d.owner, claim_id))

        assert claim.workflow.fitter.fitter_id == d.fitter.actor_id
        assert claim.workflow.fitter_stage == Stage.PENDING
        unit = await fetch_unit(session_factory, d.unit.unit_id)
        assert unit.workflow_state == WorkflowState.FITTER_ASSIGNED
        assert unit.status == UnitStatus.IN_PROCESS

        sent = notifier.to(d.fitter.actor_id)
        assert sent[-1]["title"] == "New installation assigned"
        assert sent[-1]["dedupe_key"] == f"assign-fitter:{d.unit.unit_id}:{d.fitter.actor_id}"

        with pytest.raises(Conflict) as exc_info:
            await run(lambda e: e.assign_fitter(d.manager, claim_id))
        assert exc_info.value.winner == Role.OWNER.value

    @pytest.mark.asyncio
    async def test_concurrent_assignment_single_winner(self, run, directory, session_factory):
        """Owner and manager assign at once; one binding survives."""
        d = directory
        claim_id = await design_done(run, d)

        results = await asyncio.gather(
            run(lambda e: e.assign_fitter(d.owner, claim_id)),
            run(lambda e: e.assign_fitter(d.manager, claim_id)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], Conflict)
        assert losers[0].message.startswith("This unit has already been assigned by another user")
        print("✅ Concurrent fitter assignment: exactly one winner")

    @pytest.mark.asyncio
    async def test_agents_cannot_assign(self, run, directory):
        d = directory
        claim_id = await design_done(run, d)

        with pytest.raises(Forbidden):
            await run(lambda e: e.assign_fitter(d.agent_a, claim_id))

    @pytest.mark.asyncio
    async def test_fitter_hint_must_be_fitter(self, run, directory):
        d = directory
        claim_id = await design_done(run, d)

        with pytest.raises(InvalidInput) as exc_info:
            await run(lambda e: e.assign_fitter(d.manager, claim_id, fitter_hint=d.designer.actor_id))
        assert exc_info.value.message == "Selected user is not a fitter"

    @pytest.mark.asyncio
    async def test_eligible_fitters(self, run, directory):
        d = directory
        fitters = await run(lambda e: e.list_eligible(d.manager, Role.FITTER))
        assert [f.actor_id for f in fitters] == [d.fitter.actor_id]

        for actor in (d.agent_a, d.designer, d.fitter):
            with pytest.raises(Forbidden):
                await run(lambda e: e.list_eligible(actor, Role.FITTER))


class TestInstallation:
    @pytest.mark.asyncio
    async def test_completion_requires_proof(self, run, directory):
        d = directory
        claim_id = await installing(run, d)

        with pytest.raises(PreconditionFailed):
            await run(lambda e: e.update_fitter_status(d.fitter, claim_id, "completed"))

        with pytest.raises(InvalidInput):
            await run(lambda e: e.complete_installation_with_proof(d.fitter, claim_id, []))

    @pytest.mark.asyncio
    async def test_proof_takes_unit_live(self, run, directory, session_factory, notifier, channel):
        """Completing the installation makes the unit live and asks for booking."""
        d = directory
        claim_id = await installing(run, d)
        subscriber = channel.subscribe()

        claim = await run(
            lambda e: e.complete_installation_with_proof(d.fitter, claim_id, [PROOF])
        )

        assert claim.status == ClaimStatus.CONFIRMED
        assert claim.workflow.fitter_stage == Stage.COMPLETED
        assert claim.workflow.fitter.completed_at is not None
        assert [p.filename for p in claim.workflow.proofs] == ["install.jpg"]
        assert claim.workflow.proofs[0].uploaded_at is not None

        unit = await fetch_unit(session_factory, d.unit.unit_id)
        assert unit.status == UnitStatus.LIVE
        assert unit.workflow_state is None

        async with session_factory() as session:
            commitment = await CommitmentRepository(session).get_for_claim(claim_id)
            await session.commit()
        assert commitment.status == CommitmentStatus.LIVE

        live = [n for n in notifier.sent if n["title"] == "Unit is Live"]
        assert len(live) == 1
        assert d.agent_a.actor_id in live[0]["recipient_ids"]
        assert d.owner.actor_id in live[0]["recipient_ids"]
        assert live[0]["dedupe_key"] == f"ready-to-book:{d.unit.unit_id}:{claim_id}"

        kinds = []
        while not subscriber.empty():
            event = subscriber.get_nowait()
            kinds.append((event.kind.value, event.status))
        assert ("fitter-status", "completed") in kinds
        assert ("unit-status", "live") in kinds
        print("✅ Installation proof took unit live")

    @pytest.mark.asyncio
    async def test_proof_requires_in_progress(self, run, directory):
        d = directory
        claim_id = await design_done(run, d)
        await run(lambda e: e.assign_fitter(d.manager, claim_id))

        with pytest.raises(PreconditionFailed):
            await run(lambda e: e.complete_installation_with_proof(d.fitter, claim_id, [PROOF]))

    @pytest.mark.asyncio
    async def test_only_bound_fitter(self, run, directory, session_factory):
        d = directory
        claim_id = await installing(run, d)
        other = await add_user(session_factory, "Other Fitter", Role.FITTER)

        with pytest.raises(Forbidden):
            await run(lambda e: e.complete_installation_with_proof(other, claim_id, [PROOF]))

        assigned = await run(lambda e: e.list_stage_assignments(d.fitter))
        assert [c.claim_id for c in assigned] == [claim_id]
