"""
Claim expiry sweep: expire, re-rank, promote the next in line.
"""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import START, backdate_claim, client_info, fetch_unit
from holdgate.db.repositories import ClaimRepository
from holdgate.models import ClaimStatus, UnitStatus
from holdgate.observability.metrics import metrics
from holdgate.tasks.sweep import run_expiry_sweep


async def queue_two(run, d):
    a = await run(lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3))
    b = await run(
        lambda e: e.create_claim(d.agent_b, d.unit.unit_id, START, client_info("9000000002"), 3)
    )
    return a, b


@pytest.mark.asyncio
async def test_expiry_promotes_next_in_line(run, directory, session_factory, notifier):
    """A's claim lapses: it expires, B moves to #1 and is told to confirm."""
    d = directory
    a, b = await queue_two(run, d)
    await backdate_claim(session_factory, a.claim_id)

    expired = await run(lambda e: e.expire_claims())

    assert expired == 1
    claim_a = await run(lambda e: e.get_claim(d.manager, a.claim_id))
    assert claim_a.status == ClaimStatus.EXPIRED

    queue = await run(lambda e: e.list_queue(d.unit.unit_id))
    assert [(c.claim_id, c.queue_position) for c in queue] == [(b.claim_id, 1)]

    assert "Your claim expired." in [n["body"] for n in notifier.to(d.agent_a.actor_id)]
    assert "Claim promoted" in notifier.titles_for(d.agent_b.actor_id)

    unit = await fetch_unit(session_factory, d.unit.unit_id)
    assert unit.status == UnitStatus.RESERVED

    # Promoted claim can now be confirmed by its agent
    confirmed = await run(lambda e: e.confirm_claim(d.agent_b, b.claim_id))
    assert confirmed.status == ClaimStatus.CONFIRMED
    print("✅ Expired claim promoted next in line")


@pytest.mark.asyncio
async def test_expiry_is_idempotent(run, directory, session_factory, notifier):
    d = directory
    a, _ = await queue_two(run, d)
    await backdate_claim(session_factory, a.claim_id)

    assert await run(lambda e: e.expire_claims()) == 1
    sent = len(notifier.sent)
    assert await run(lambda e: e.expire_claims()) == 0
    assert len(notifier.sent) == sent


@pytest.mark.asyncio
async def test_last_expiry_frees_unit(run, directory, session_factory):
    d = directory
    a, b = await queue_two(run, d)
    await backdate_claim(session_factory, a.claim_id)
    await backdate_claim(session_factory, b.claim_id)

    assert await run(lambda e: e.expire_claims()) == 2

    unit = await fetch_unit(session_factory, d.unit.unit_id)
    assert unit.status == UnitStatus.AVAILABLE
    assert await run(lambda e: e.list_queue(d.unit.unit_id)) == []


@pytest.mark.asyncio
async def test_sole_claim_expiry_frees_unit_without_promotion(
    run, directory, session_factory, notifier
):
    d = directory
    receipt = await run(
        lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3)
    )
    await backdate_claim(session_factory, receipt.claim_id)

    assert await run(lambda e: e.expire_claims()) == 1

    claim = await run(lambda e: e.get_claim(d.manager, receipt.claim_id))
    assert claim.status == ClaimStatus.EXPIRED
    unit = await fetch_unit(session_factory, d.unit.unit_id)
    assert unit.status == UnitStatus.AVAILABLE
    assert "Claim expired" in notifier.titles_for(d.agent_a.actor_id)
    assert all(n["title"] != "Claim promoted" for n in notifier.sent)


@pytest.mark.asyncio
async def test_unexpired_claims_untouched(run, directory):
    d = directory
    await queue_two(run, d)

    assert await run(lambda e: e.expire_claims()) == 0


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_sweep(run, directory, session_factory):
    """A claim whose expiry fails is logged and skipped; the rest still expire."""
    d = directory
    a = await run(lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3))
    b = await run(
        lambda e: e.create_claim(d.agent_b, d.other_unit.unit_id, START, client_info("9000000002"), 3)
    )
    await backdate_claim(session_factory, a.claim_id, hours=2)
    await backdate_claim(session_factory, b.claim_id, hours=1)

    original = ClaimRepository.transition_status
    failed_before = metrics.counters.get("claims.expired.failed", 0)

    async def flaky(self, claim_id, *args, **kwargs):
        if claim_id == a.claim_id:
            raise RuntimeError("simulated write failure")
        return await original(self, claim_id, *args, **kwargs)

    with patch.object(ClaimRepository, "transition_status", flaky):
        assert await run(lambda e: e.expire_claims()) == 1

    assert metrics.counters["claims.expired.failed"] == failed_before + 1
    assert (await run(lambda e: e.get_claim(d.owner, a.claim_id))).status == ClaimStatus.ACTIVE
    assert (await run(lambda e: e.get_claim(d.owner, b.claim_id))).status == ClaimStatus.EXPIRED


@pytest.mark.asyncio
async def test_run_expiry_sweep_drains_in_batches(directory, session_factory, run, notifier, channel):
    d = directory
    receipts = [
        await run(lambda e: e.create_claim(d.agent_a, d.unit.unit_id, START, client_info(), 3)),
        await run(
            lambda e: e.create_claim(d.agent_b, d.unit.unit_id, START, client_info("9000000002"), 3)
        ),
        await run(
            lambda e: e.create_claim(d.manager, d.unit.unit_id, START, client_info("9000000003"), 3)
        ),
    ]
    for receipt in receipts:
        await backdate_claim(session_factory, receipt.claim_id)

    total = await run_expiry_sweep(
        session_factory=session_factory,
        notifier=notifier,
        channel=channel,
        batch_size=1,
    )

    assert total == 3
    assert "Claim expired" in notifier.titles_for(d.manager.actor_id)
    unit = await fetch_unit(session_factory, d.unit.unit_id)
    assert unit.status == UnitStatus.AVAILABLE


@pytest.mark.asyncio
async def test_sweep_dispatch_failure_is_swallowed(directory, session_factory, run, channel):
    d = directory
    a, _ = await queue_two(run, d)
    await backdate_claim(session_factory, a.claim_id)
    broken = AsyncMock()
    broken.notify.side_effect = RuntimeError("mail server down")

    total = await run_expiry_sweep(session_factory=session_factory, notifier=broken, channel=channel)

    assert total == 1
    assert broken.notify.await_count >= 1
