"""Unit tests for provider payload parsing — pure functions, no I/O."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from position_guardian.models import LendingProtocol
from position_guardian.providers.parser import (
    normalize_threshold,
    parse_debt_entry,
    parse_position,
    parse_timestamp,
)


class TestNormalizeThreshold:
    def test_fraction_unchanged(self) -> None:
        assert normalize_threshold(0.85) == 0.85

    def test_percent_converted(self) -> None:
        assert normalize_threshold(85) == pytest.approx(0.85)

    def test_one_is_a_fraction(self) -> None:
        assert normalize_threshold(1) == 1.0


class TestParseTimestamp:
    def test_iso_with_z(self) -> None:
        assert parse_timestamp("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_epoch(self) -> None:
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_naive_iso_assumed_utc(self) -> None:
        assert parse_timestamp("2026-01-01T12:00:00").tzinfo is timezone.utc

    def test_missing_is_now(self) -> None:
        assert parse_timestamp(None).tzinfo is timezone.utc


class TestParseDebtEntry:
    def test_camel_case_keys(self) -> None:
        debt = parse_debt_entry(
            {"symbol": "USDC", "amount": 10, "valueUsd": 10.0, "interestRate": 0.08}
        )
        assert debt.value_usd == 10.0
        assert debt.interest_rate == 0.08
        assert debt.mint == ""


class TestParsePosition:
    def test_full_payload(self, sample_position_payload: dict) -> None:
        position = parse_position(sample_position_payload)
        assert position.protocol is LendingProtocol.KAMINO
        assert position.health_factor == 1.173
        assert position.liquidation_threshold == 0.85
        assert position.collateral[0].symbol == "SOL"
        assert position.collateral[0].mint == "So111"
        assert position.debt[0].interest_rate == 0.08
        assert position.last_updated == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_missing_health_factor_is_derived(self, sample_position_payload: dict) -> None:
        del sample_position_payload["health_factor"]
        position = parse_position(sample_position_payload)
        assert position.health_factor == pytest.approx(1.173)

    def test_percent_threshold(self, sample_position_payload: dict) -> None:
        sample_position_payload["liquidation_threshold"] = 85
        del sample_position_payload["health_factor"]
        position = parse_position(sample_position_payload)
        assert position.liquidation_threshold == pytest.approx(0.85)
        assert position.health_factor == pytest.approx(1.173)

    def test_no_debt_derives_sentinel(self, sample_position_payload: dict) -> None:
        sample_position_payload["debt"] = []
        del sample_position_payload["health_factor"]
        assert parse_position(sample_position_payload).health_factor == 999.0

    def test_defaults_from_arguments(self, sample_position_payload: dict) -> None:
        del sample_position_payload["wallet"]
        del sample_position_payload["protocol"]
        position = parse_position(sample_position_payload, wallet="w9", protocol="solend")
        assert position.wallet == "w9"
        assert position.protocol is LendingProtocol.SOLEND

    def test_unknown_protocol(self, sample_position_payload: dict) -> None:
        sample_position_payload["protocol"] = "aave"
        with pytest.raises(ValueError, match="Unknown lending protocol"):
            parse_position(sample_position_payload)

    def test_missing_threshold(self, sample_position_payload: dict) -> None:
        del sample_position_payload["liquidation_threshold"]
        with pytest.raises(ValueError, match="liquidation threshold"):
            parse_position(sample_position_payload)
