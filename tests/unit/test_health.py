"""Unit tests for health-factor algebra."""
from __future__ import annotations

import math

import pytest

from position_guardian.constants import YieldRates
from position_guardian.health import (
    NO_DEBT_HEALTH_FACTOR,
    calc_health_factor,
    calc_utilization,
    collateral_to_target,
    derived_health_factor,
    effective_apy,
    repay_to_target,
    round_half_up,
    total_collateral_usd,
    total_debt_usd,
)


class TestCalcHealthFactor:
    def test_basic(self) -> None:
        assert calc_health_factor(13_800, 10_000, 0.85) == pytest.approx(1.173)

    def test_no_debt(self) -> None:
        assert calc_health_factor(5_000, 0, 0.85) == NO_DEBT_HEALTH_FACTOR

    def test_derived_ignores_reported_value(self, make_position) -> None:
        position = make_position(health_factor=9.9)
        assert derived_health_factor(position) == pytest.approx(1.173)

    def test_totals(self, make_position) -> None:
        position = make_position()
        assert total_collateral_usd(position) == 13_800
        assert total_debt_usd(position) == 10_000


class TestUtilization:
    def test_ratio(self) -> None:
        assert calc_utilization(10_000, 5_000) == 0.5

    def test_zero_collateral(self) -> None:
        assert calc_utilization(0, 5_000) == 0.0


class TestTargets:
    def test_repay_reaches_target(self) -> None:
        repay = repay_to_target(13_800, 10_000, 0.85, 1.5)
        assert repay == pytest.approx(2_180)
        assert calc_health_factor(13_800, 10_000 - repay, 0.85) == pytest.approx(1.5)

    def test_repay_zero_when_already_above_target(self) -> None:
        assert repay_to_target(30_000, 5_000, 0.85, 1.5) == 0.0

    def test_repay_non_positive_target(self) -> None:
        assert repay_to_target(13_800, 10_000, 0.85, 0) == 0.0

    def test_collateral_reaches_target(self) -> None:
        add = collateral_to_target(13_800, 10_000, 0.85, 1.5)
        assert add == pytest.approx(3_847.0588, rel=1e-6)
        assert calc_health_factor(13_800 + add, 10_000, 0.85) == pytest.approx(1.5)

    def test_collateral_zero_threshold(self) -> None:
        assert collateral_to_target(13_800, 10_000, 0, 1.5) == 0.0


class TestEffectiveApy:
    def test_leveraged(self) -> None:
        rates = YieldRates(supply_apy=0.065, borrow_apy=0.085)
        # (10000*0.065 - 5000*0.085) / 5000
        assert effective_apy(10_000, 5_000, rates) == pytest.approx(0.045)

    def test_underwater_equity(self) -> None:
        rates = YieldRates(supply_apy=0.065, borrow_apy=0.085)
        assert effective_apy(5_000, 5_000, rates) == 0.0


class TestRoundHalfUp:
    def test_half_rounds_up(self) -> None:
        assert round_half_up(62.5) == 63
        assert round_half_up(2.5) == 3

    def test_digits(self) -> None:
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(2180.004, 2) == 2180.0

    def test_negative_mirrors_positive(self) -> None:
        assert round_half_up(-2.5) == -3

    def test_non_finite_passthrough(self) -> None:
        assert math.isinf(round_half_up(math.inf))
