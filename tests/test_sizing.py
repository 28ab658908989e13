"""포지션 사이징(AllocationStrategy) 테스트."""

import pytest

from signal_backtester.backtest.sizing import (
    Candidate,
    EqualWeightAllocation,
    PositionSizing,
    SignalWeightedAllocation,
    VolatilityAdjustedAllocation,
    create_allocation,
    parse_sizing,
    shares_for,
)
from signal_backtester.core.errors import InputValidationError


def candidate(ticker: str, value: float = 3.0, volatility: float | None = 0.02) -> Candidate:
    return Candidate(ticker=ticker, signal_value=value, strength=abs(value), price=100.0, volatility=volatility)


class TestEqualWeight:

    def test_each_candidate_gets_cash_over_remaining_slots(self):
        budgets = EqualWeightAllocation().allocate([candidate("A"), candidate("B")], 90_000, 3)
        assert budgets == {"A": pytest.approx(30_000), "B": pytest.approx(30_000)}

    def test_single_slot_gets_all_cash(self):
        assert EqualWeightAllocation().allocate([candidate("A")], 50_000, 1) == {"A": 50_000}

    def test_nothing_to_allocate(self):
        allocation = EqualWeightAllocation()
        assert allocation.allocate([], 50_000, 2) == {}
        assert allocation.allocate([candidate("A")], 0, 2) == {}
        assert allocation.allocate([candidate("A")], 50_000, 0) == {}


class TestSignalWeighted:

    def test_proportional_to_signal_magnitude(self):
        selected = [candidate("A", 3.0), candidate("B", -1.0)]
        budgets = SignalWeightedAllocation().allocate(selected, 100_000, 2)
        assert budgets["A"] == pytest.approx(75_000)
        assert budgets["B"] == pytest.approx(25_000)

    def test_total_never_exceeds_day_budget(self):
        selected = [candidate("A", 9.0), candidate("B", 1.0)]
        budgets = SignalWeightedAllocation().allocate(selected, 100_000, 4)
        assert sum(budgets.values()) == pytest.approx(50_000)

    def test_zero_signals_fall_back_to_equal(self):
        selected = [candidate("A", 0.0), candidate("B", 0.0)]
        budgets = SignalWeightedAllocation().allocate(selected, 100_000, 2)
        assert budgets == {"A": pytest.approx(50_000), "B": pytest.approx(50_000)}


class TestVolatilityAdjusted:

    def test_inverse_volatility_weights(self):
        selected = [candidate("A", volatility=0.01), candidate("B", volatility=0.03)]
        budgets = VolatilityAdjustedAllocation().allocate(selected, 100_000, 2)
        assert budgets["A"] == pytest.approx(75_000)
        assert budgets["B"] == pytest.approx(25_000)

    def test_candidates_without_estimate_are_excluded(self):
        selected = [candidate("A", volatility=0.02), candidate("B", volatility=None), candidate("C", volatility=0.0)]
        budgets = VolatilityAdjustedAllocation().allocate(selected, 90_000, 3)
        assert list(budgets) == ["A"]
        assert budgets["A"] == pytest.approx(90_000)

    def test_no_estimates_allocates_nothing(self):
        assert VolatilityAdjustedAllocation().allocate([candidate("A", volatility=None)], 1_000, 1) == {}


class TestShares:

    def test_rounds_down(self):
        assert shares_for(1_050, 100) == 10

    def test_commission_included(self):
        assert shares_for(1_000, 100, commission_rate=0.01) == 9

    def test_cannot_afford_one_share(self):
        assert shares_for(99, 100) == 0
        assert shares_for(0, 100) == 0


class TestRegistry:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("equal", EqualWeightAllocation),
            ("signal_weighted", SignalWeightedAllocation),
            ("volatility", VolatilityAdjustedAllocation),
        ],
    )
    def test_create_by_name(self, name, expected):
        allocation = create_allocation(name)
        assert isinstance(allocation, expected)
        assert allocation.sizing is PositionSizing(name)

    def test_unknown_sizing(self):
        with pytest.raises(InputValidationError) as err:
            parse_sizing("kelly")
        assert err.value.details["position_sizing"] == "kelly"
