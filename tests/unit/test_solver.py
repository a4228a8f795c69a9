"""Tests for ba_clearing.engine.solver: uniform clearing price discovery."""

import random
from decimal import Decimal

import pytest

from src.ba_clearing.domain.models import PriceBand
from src.ba_clearing.engine.solver import solve
from tests.unit.fakes import T0, make_bid

SUPPLY = Decimal("500")
BAND = PriceBand(Decimal("0.01"), Decimal("1000"))


class TestClearingPrice:
    def test_marginal_bid_sets_price(self) -> None:
        # A wants 100 units, B 250, C 600: cumulative 100, 350, 950 -> C is marginal
        bids = [
            make_bid("A", "1000", "10", seconds=1),
            make_bid("B", "2000", "8", seconds=2),
            make_bid("C", "3000", "5", seconds=3),
        ]
        result = solve(bids, SUPPLY, BAND)
        assert result.clearing_price == Decimal("5")
        assert result.marginal_bid is not None
        assert result.marginal_bid.user == "C"
        assert result.total_demand_units == Decimal("950")
        assert [p.cumulative_units for p in result.demand_curve] == [
            Decimal("100"),
            Decimal("350"),
            Decimal("950"),
        ]
        assert not result.undersubscribed
        assert not result.clamped

    def test_undersubscribed_uses_lowest_price(self) -> None:
        result = solve([make_bid("A", "100", "2")], SUPPLY, BAND)
        assert result.clearing_price == Decimal("2")
        assert result.undersubscribed
        assert result.marginal_bid is None
        assert result.total_demand_units == Decimal("50")

    def test_bid_below_floor_does_not_trigger_clamp(self) -> None:
        bids = [
            make_bid("A", "3000", "6", seconds=1),  # 500 units, fully subscribes
            make_bid("B", "1", "0.005", seconds=2),
        ]
        result = solve(bids, SUPPLY, BAND)
        assert result.clearing_price == Decimal("6")
        assert not result.clamped
        assert len(result.ordered_bids) == 2

    def test_exact_supply_hit_picks_that_bid(self) -> None:
        bids = [
            make_bid("A", "2000", "4", seconds=1),  # 500 exactly
            make_bid("B", "100", "1", seconds=2),
        ]
        assert solve(bids, SUPPLY, BAND).clearing_price == Decimal("4")


class TestEdgeCases:
    def test_zero_bids_clears_at_floor(self) -> None:
        result = solve([], SUPPLY, BAND)
        assert result.clearing_price == Decimal("0.01")
        assert result.ordered_bids == ()
        assert result.total_demand_units == 0
        assert not result.clamped

    def test_malformed_bids_excluded(self) -> None:
        bids = [
            make_bid("A", "100", "2", seconds=1),
            make_bid("B", "0", "3", seconds=2),
            make_bid("C", "50", "-1", seconds=3),
        ]
        result = solve(bids, SUPPLY, BAND)
        assert [b.user for b in result.ordered_bids] == ["A"]
        assert {b.user for b in result.excluded_bids} == {"B", "C"}
        assert result.clearing_price == Decimal("2")

    def test_only_malformed_bids_behaves_like_empty_round(self) -> None:
        result = solve([make_bid("A", "0", "2")], SUPPLY, BAND)
        assert result.clearing_price == BAND.floor
        assert len(result.excluded_bids) == 1

    def test_price_above_ceiling_is_clamped(self) -> None:
        band = PriceBand(Decimal("0.01"), Decimal("100"))
        result = solve([make_bid("A", "1000000", "250")], SUPPLY, band)
        assert result.clearing_price == Decimal("100")
        assert result.clamped

    def test_undersubscribed_below_floor_is_clamped(self) -> None:
        result = solve([make_bid("A", "1", "0.001")], SUPPLY, BAND)
        assert result.clearing_price == Decimal("0.01")
        assert result.clamped

    def test_rejects_non_positive_supply(self) -> None:
        with pytest.raises(ValueError, match="supply"):
            solve([], Decimal("0"), BAND)

    def test_band_validation(self) -> None:
        with pytest.raises(ValueError):
            PriceBand(Decimal("5"), Decimal("1"))
        with pytest.raises(ValueError):
            PriceBand(Decimal("0"), Decimal("1"))


class TestOrdering:
    def test_time_priority_within_price(self) -> None:
        bids = [
            make_bid("late", "100", "5", seconds=9),
            make_bid("early", "100", "5", seconds=1),
            make_bid("high", "100", "6", seconds=5),
        ]
        result = solve(bids, SUPPLY, BAND)
        assert [b.user for b in result.ordered_bids] == ["high", "early", "late"]

    def test_source_tx_id_breaks_full_ties(self) -> None:
        bids = [
            make_bid("X", "100", "5", tx="0xbb:0"),
            make_bid("Y", "100", "5", tx="0xaa:0"),
        ]
        result = solve(bids, SUPPLY, BAND)
        assert [b.source_tx_id for b in result.ordered_bids] == ["0xaa:0", "0xbb:0"]

    def test_deterministic_under_input_permutation(self) -> None:
        bids = [
            make_bid(f"U{i}", str(100 + i * 37), str(1 + (i % 7)), seconds=i % 3, tx=f"0x{i:02x}:0")
            for i in range(20)
        ]
        expected = solve(bids, SUPPLY, BAND)
        rng = random.Random(7)
        for _ in range(5):
            shuffled = bids[:]
            rng.shuffle(shuffled)
            assert solve(shuffled, SUPPLY, BAND) == expected


def _raised(bid, factor: Decimal, *, keep_units: bool):
    amount = bid.amount * factor if keep_units else bid.amount
    return make_bid(
        bid.user,
        str(amount),
        str(bid.limit_price * factor),
        seconds=int((bid.submitted_at - T0).total_seconds()),
    )


class TestMonotonicity:
    def test_raising_a_bid_at_fixed_units_never_lowers_price(self) -> None:
        base = [
            make_bid("A", "1000", "10", seconds=1),
            make_bid("B", "2000", "8", seconds=2),
            make_bid("C", "3000", "5", seconds=3),
            make_bid("D", "400", "2", seconds=4),
        ]
        before = solve(base, SUPPLY, BAND).clearing_price
        for i in range(len(base)):
            for factor in ("1.25", "2", "4"):
                bids = base[:]
                bids[i] = _raised(base[i], Decimal(factor), keep_units=True)
                after = solve(bids, SUPPLY, BAND).clearing_price
                assert after >= before, (base[i].user, factor)

    def test_raising_a_bid_at_fixed_notional_can_lower_price(self) -> None:
        # Demand is counted in units (amount / limit_price): doubling A's limit
        # halves the units it asks for, so B no longer fills supply alone.
        base = [
            make_bid("A", "1000", "10", seconds=1),
            make_bid("B", "500", "5", seconds=2),
            make_bid("C", "100", "1", seconds=3),
        ]
        supply = Decimal("200")
        assert solve(base, supply, BAND).clearing_price == Decimal("5")

        raised = [_raised(base[0], Decimal("2"), keep_units=False), *base[1:]]
        result = solve(raised, supply, BAND)
        assert result.clearing_price == Decimal("1")
        assert result.marginal_bid is not None
        assert result.marginal_bid.user == "C"


class TestAdditionalDemand:
    def test_adding_a_bid_never_lowers_price(self) -> None:
        base = [
            make_bid("A", "1000", "10", seconds=1),
            make_bid("B", "2000", "8", seconds=2),
            make_bid("C", "3000", "5", seconds=3),
        ]
        before = solve(base, SUPPLY, BAND).clearing_price
        for price in ("1", "5", "7", "9", "20"):
            extra = make_bid("E", "1500", price, seconds=5)
            after = solve([*base, extra], SUPPLY, BAND).clearing_price
            assert after >= before
