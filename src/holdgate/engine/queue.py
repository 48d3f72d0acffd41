"""Queue ranking.

Pure functions over claim snapshots. Persisting the result is the
caller's job and must happen in the same transaction that changed the
live set.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from holdgate.models import Claim, ClaimStatus


def windows_overlap(a_from: date, a_to: date, b_from: date, b_to: date) -> bool:
    """Inclusive overlap of two date ranges."""
    return a_from <= b_to and a_to >= b_from


def rank_queue(claims: Iterable[Claim], date_from: date, date_to: date) -> list[Claim]:
    """
    Order the live claims overlapping the window, oldest-created first.

    Ties on creation time are broken by claim id so the ranking is
    deterministic across calls.
    """
    live = [
        claim
        for claim in claims
        if claim.is_live() and claim.overlaps(date_from, date_to)
    ]
    return sorted(live, key=lambda claim: (claim.created_at, str(claim.claim_id)))


def assign_positions(ranked: list[Claim]) -> dict[UUID, int]:
    """Map ranked claims to contiguous positions 1..N."""
    return {claim.claim_id: position for position, claim in enumerate(ranked, start=1)}


def next_in_line(
    claims: Iterable[Claim],
    date_from: date,
    date_to: date,
    exclude_claim_id: Optional[UUID] = None,
) -> Optional[Claim]:
    """Lowest-positioned ACTIVE claim overlapping the window, if any."""
    candidates = [
        claim
        for claim in claims
        if claim.status == ClaimStatus.ACTIVE
        and claim.claim_id != exclude_claim_id
        and claim.overlaps(date_from, date_to)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda claim: (claim.queue_position, claim.created_at))
