"""Tests for the registration eligibility rule."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.eligibility import OPEN, ClosureReason, EligibilityVerdict, ensure_utc, evaluate_eligibility

DEADLINE = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)


class TestEvaluateEligibility:
    """Tests for evaluate_eligibility."""

    @pytest.mark.parametrize("count", [0, 1, 10_000])
    @pytest.mark.parametrize(
        "now",
        [datetime(1999, 1, 1, tzinfo=timezone.utc), datetime(2100, 1, 1, tzinfo=timezone.utc)],
    )
    def test_no_deadline_and_no_cap_is_always_open(self, now: datetime, count: int) -> None:
        verdict = evaluate_eligibility(None, None, count, now)

        assert verdict.is_open
        assert verdict == OPEN

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=1), timedelta(days=30)])
    def test_deadline_passed_when_now_at_or_after_deadline(self, offset: timedelta) -> None:
        verdict = evaluate_eligibility(DEADLINE, None, 0, DEADLINE + offset)

        assert verdict.reasons == {ClosureReason.DEADLINE_PASSED}

    def test_open_one_second_before_deadline(self) -> None:
        verdict = evaluate_eligibility(DEADLINE, None, 0, DEADLINE - timedelta(seconds=1))

        assert verdict.is_open

    @pytest.mark.parametrize("max_participants,count", [(1, 1), (2, 2), (2, 3), (50, 50)])
    def test_capacity_reached_when_count_at_or_above_cap(self, max_participants: int, count: int) -> None:
        verdict = evaluate_eligibility(None, max_participants, count, DEADLINE)

        assert verdict.reasons == {ClosureReason.CAPACITY_REACHED}

    def test_below_cap_is_open(self) -> None:
        assert evaluate_eligibility(None, 2, 1, DEADLINE).is_open

    def test_reports_every_applicable_reason(self) -> None:
        verdict = evaluate_eligibility(DEADLINE, 2, 2, DEADLINE + timedelta(hours=1))

        assert verdict.deadline_passed
        assert verdict.capacity_reached
        assert verdict.describe() == (
            "Inscrições encerradas: o prazo de inscrição terminou e o limite de vagas foi atingido."
        )

    def test_same_input_same_verdict(self) -> None:
        first = evaluate_eligibility(DEADLINE, 3, 3, DEADLINE)
        second = evaluate_eligibility(DEADLINE, 3, 3, DEADLINE)

        assert first == second

    def test_grace_period_extends_deadline(self) -> None:
        grace = timedelta(minutes=5)

        inside = evaluate_eligibility(DEADLINE, None, 0, DEADLINE + timedelta(minutes=4), grace_period=grace)
        at_end = evaluate_eligibility(DEADLINE, None, 0, DEADLINE + grace, grace_period=grace)

        assert inside.is_open
        assert at_end.deadline_passed

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        naive_deadline = DEADLINE.replace(tzinfo=None)

        verdict = evaluate_eligibility(naive_deadline, None, 0, DEADLINE)

        assert verdict.deadline_passed


class TestEnsureUtc:
    def test_converts_other_offsets(self) -> None:
        brasilia = timezone(timedelta(hours=-3))
        value = datetime(2025, 1, 1, 9, 0, tzinfo=brasilia)

        assert ensure_utc(value) == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestVerdictDescribe:
    def test_open_message(self) -> None:
        assert EligibilityVerdict().describe() == "Inscrições abertas."

    def test_capacity_only_message(self) -> None:
        verdict = EligibilityVerdict(reasons=frozenset({ClosureReason.CAPACITY_REACHED}))

        assert verdict.describe() == "Inscrições encerradas: o limite de vagas foi atingido."
