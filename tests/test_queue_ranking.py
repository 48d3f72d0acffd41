"""
Queue ranking and calendar helpers.

Pure functions only; no database.
"""

from datetime import date, datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from holdgate.engine.queue import assign_positions, next_in_line, rank_queue, windows_overlap
from holdgate.models import Claim, ClaimStatus, Stage, UnitStatus
from holdgate.utils.time import add_months, format_remaining, whole_months_between

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
UNIT = uuid4()


def make_claim(
    minutes: int,
    date_from: date = date(2026, 1, 1),
    date_to: date = date(2026, 4, 1),
    status: ClaimStatus = ClaimStatus.ACTIVE,
    position: int = 1,
    claim_id: UUID | None = None,
) -> Claim:
    created = T0 + timedelta(minutes=minutes)
    return Claim(
        claim_id=claim_id or uuid4(),
        unit_id=UNIT,
        agent_id=uuid4(),
        client_id=uuid4(),
        date_from=date_from,
        date_to=date_to,
        duration_months=3,
        status=status,
        queue_position=position,
        created_at=created,
        expires_at=created + timedelta(hours=24),
        updated_at=created,
    )


class TestWindowsOverlap:
    def test_inclusive_boundaries(self):
        assert windows_overlap(date(2026, 1, 1), date(2026, 4, 1), date(2026, 4, 1), date(2026, 7, 1))
        assert not windows_overlap(
            date(2026, 1, 1), date(2026, 4, 1), date(2026, 4, 2), date(2026, 7, 1)
        )

    def test_containment(self):
        assert windows_overlap(date(2026, 1, 1), date(2026, 12, 1), date(2026, 3, 1), date(2026, 4, 1))


class TestRankQueue:
    def test_oldest_first(self):
        """Creation time decides the order, not insertion order."""
        late, early, middle = make_claim(30), make_claim(0), make_claim(10)

        ranked = rank_queue([late, early, middle], date(2026, 1, 1), date(2026, 4, 1))

        assert [c.claim_id for c in ranked] == [early.claim_id, middle.claim_id, late.claim_id]

    def test_tie_broken_by_claim_id(self):
        low = make_claim(0, claim_id=UUID(int=1))
        high = make_claim(0, claim_id=UUID(int=2))

        ranked = rank_queue([high, low], date(2026, 1, 1), date(2026, 4, 1))

        assert [c.claim_id for c in ranked] == [low.claim_id, high.claim_id]

    def test_excludes_terminal_and_non_overlapping(self):
        kept = make_claim(0)
        expired = make_claim(1, status=ClaimStatus.EXPIRED)
        cancelled = make_claim(2, status=ClaimStatus.CANCELLED)
        elsewhere = make_claim(3, date_from=date(2027, 1, 1), date_to=date(2027, 4, 1))

        ranked = rank_queue(
            [kept, expired, cancelled, elsewhere], date(2026, 1, 1), date(2026, 4, 1)
        )

        assert [c.claim_id for c in ranked] == [kept.claim_id]

    def test_positions_are_contiguous_from_one(self):
        claims = [make_claim(minute) for minute in (5, 1, 3, 2)]

        positions = assign_positions(rank_queue(claims, date(2026, 1, 1), date(2026, 4, 1)))

        assert sorted(positions.values()) == [1, 2, 3, 4]
        first = min(claims, key=lambda c: c.created_at)
        assert positions[first.claim_id] == 1


class TestNextInLine:
    def test_lowest_active_position(self):
        first = make_claim(0, position=1)
        second = make_claim(1, position=2)
        third = make_claim(2, position=3)

        head = next_in_line(
            [third, second, first], date(2026, 1, 1), date(2026, 4, 1),
            exclude_claim_id=first.claim_id,
        )

        assert head.claim_id == second.claim_id

    def test_none_when_queue_empty(self):
        only = make_claim(0)
        assert next_in_line([only], date(2026, 1, 1), date(2026, 4, 1), only.claim_id) is None


class TestCalendar:
    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (date(2026, 1, 15), 3, date(2026, 4, 15)),
            (date(2026, 1, 31), 1, date(2026, 2, 28)),
            (date(2028, 1, 31), 1, date(2028, 2, 29)),
            (date(2026, 11, 1), 3, date(2027, 2, 1)),
        ],
    )
    def test_add_months_clamps_to_month_end(self, start, months, expected):
        assert add_months(start, months) == expected

    def test_whole_months_ignores_partial_month(self):
        assert whole_months_between(date(2026, 1, 1), date(2026, 7, 1)) == 6
        assert whole_months_between(date(2026, 1, 15), date(2026, 7, 14)) == 5

    def test_format_remaining(self):
        assert format_remaining(timedelta(hours=3, minutes=12, seconds=40)) == "3h 12m"
        assert format_remaining(timedelta(minutes=45)) == "45m"
        assert format_remaining(timedelta(seconds=-30)) == "0m"


class TestStage:
    def test_parse_accepts_legacy_spelling(self):
        assert Stage.parse("inprogress") == Stage.IN_PROGRESS
        assert Stage.parse(" Completed ") == Stage.COMPLETED

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            Stage.parse("done")

    def test_only_next_step_or_noop(self):
        assert Stage.PENDING.can_transition_to(Stage.IN_PROGRESS)
        assert Stage.PENDING.can_transition_to(Stage.PENDING)
        assert not Stage.PENDING.can_transition_to(Stage.COMPLETED)
        assert not Stage.COMPLETED.can_transition_to(Stage.IN_PROGRESS)

    def test_committed_units_are_not_claimable(self):
        assert UnitStatus.RESERVED.is_claimable()
        for status in (UnitStatus.IN_PROCESS, UnitStatus.LIVE, UnitStatus.BOOKED):
            assert not status.is_claimable()
