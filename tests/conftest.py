"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import datetime, timezone
from pathlib import Path

import pytest

from position_guardian.config import (
    AppConfig,
    EmailConfig,
    MonitorConfig,
    NotificationsConfig,
    ProtocolConfig,
    TelegramConfig,
    WalletConfig,
)
from position_guardian.health import calc_health_factor
from position_guardian.models import (
    AlertEvent,
    AlertType,
    CollateralAsset,
    DebtAsset,
    LendingPosition,
    LendingProtocol,
    ProtectionAction,
    ProtectionOption,
    ProtectionResult,
    RiskAssessment,
    RiskLevel,
    YieldImpact,
)

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
FIXED_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_position():
    """Factory for single-collateral / single-debt positions."""

    def _make(
        collateral_usd: float = 13_800.0,
        debt_usd: float = 10_000.0,
        liquidation_threshold: float = 0.85,
        health_factor: float | None = None,
        protocol: LendingProtocol = LendingProtocol.KAMINO,
        collateral_symbol: str = "SOL",
        debt_symbol: str = "USDC",
        wallet: str = WALLET,
        collateral: tuple[CollateralAsset, ...] | None = None,
    ) -> LendingPosition:
        if collateral is None:
            collateral = (
                (CollateralAsset(symbol=collateral_symbol, amount=1.0, value_usd=collateral_usd),)
                if collateral_usd > 0
                else ()
            )
        total_collateral = sum(c.value_usd for c in collateral)
        debt = (
            (DebtAsset(symbol=debt_symbol, amount=debt_usd, value_usd=debt_usd),)
            if debt_usd > 0
            else ()
        )
        if health_factor is None:
            health_factor = calc_health_factor(total_collateral, debt_usd, liquidation_threshold)
        return LendingPosition(
            wallet=wallet,
            protocol=protocol,
            collateral=collateral,
            debt=debt,
            health_factor=health_factor,
            liquidation_threshold=liquidation_threshold,
            last_updated=FIXED_TIME,
        )

    return _make


@pytest.fixture()
def scenario_a_position(make_position) -> LendingPosition:
    """$13,800 SOL against $10,000 USDC at 85% threshold (HF 1.173)."""
    return make_position(health_factor=1.173)


@pytest.fixture()
def make_assessment():
    """Minimal assessment carrying only what the protection engine reads."""

    def _make(position: LendingPosition, level: RiskLevel = RiskLevel.HIGH) -> RiskAssessment:
        return RiskAssessment(
            wallet=position.wallet,
            protocol=position.protocol,
            risk_level=level,
            risk_score=70,
            health_factor=position.health_factor,
            factors=(),
            recommendations=(),
            timestamp=FIXED_TIME,
        )

    return _make


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(check_interval_seconds=5),
        wallets=(
            WalletConfig(
                label="test-wallet",
                address=WALLET,
                protocols=("kamino", "marginfi"),
                auto_protect=False,
            ),
        ),
        protocols={
            "kamino": ProtocolConfig(provider="static"),
            "marginfi": ProtocolConfig(provider="static"),
        },
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      check_interval_seconds: 15
    risk:
      thresholds: {safe: 2.2, low: 1.6, medium: 1.3, high: 1.15}
      trend_window_size: 10
      trend_min_samples: 4
    protection:
      target_health_factor: 1.6
      max_protection_usd: 5000
      dry_run: false
      preferred_strategy: cost-optimized
      executor:
        enabled: true
        endpoint: "https://relayer.example.com/execute"
        timeout: 20
    collateral:
      min_safe_health_factor: 1.3
    wallets:
      - label: test-wallet
        address: "0xTEST"
        protocols: [kamino, marginfi]
        auto_protect: true
    protocols:
      kamino:
        provider: http
        endpoints: ["https://api1.example.com", "https://api2.example.com"]
        timeout: 10
        supply_apy: 0.07
      marginfi:
        provider: static
        close_factor: 0.5
        liquidation_penalty: 0.1
        positions:
          - wallet: "0xTEST"
            liquidation_threshold: 85
            collateral: [{symbol: SOL, amount: 10, value_usd: 1500}]
            debt: [{symbol: USDC, amount: 1000, value_usd: 1000}]
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Sample provider payload
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_position_payload() -> dict:
    return {
        "wallet": WALLET,
        "protocol": "kamino",
        "collateral": [
            {"symbol": "SOL", "amount": 92.0, "value_usd": 13800.0, "mint": "So111"},
        ],
        "debt": [
            {"symbol": "USDC", "amount": 10000.0, "value_usd": 10000.0, "interest_rate": 0.08},
        ],
        "health_factor": 1.173,
        "liquidation_threshold": 0.85,
        "last_updated": "2026-01-01T00:00:00Z",
    }


# ---------------------------------------------------------------------------
# Notification fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_alert_event() -> AlertEvent:
    return AlertEvent(
        type=AlertType.CRITICAL,
        wallet=WALLET,
        protocol=LendingProtocol.KAMINO,
        health_factor=1.08,
        risk_score=88,
        message="CRITICAL [score:88]: HF 1.080 on kamino — Health factor critically low",
        timestamp=FIXED_TIME,
    )


@pytest.fixture()
def sample_protection_option() -> ProtectionOption:
    return ProtectionOption(
        id="repay-kamino",
        action=ProtectionAction.REPAY,
        protocol=LendingProtocol.KAMINO,
        asset="USDC",
        amount=2180.0,
        amount_usd=2180.0,
        resulting_hf=1.5,
        resulting_debt_usd=7820.0,
        resulting_collateral_usd=13800.0,
        yield_impact=YieldImpact(
            current_apy=0.0124,
            projected_apy=0.0418,
            yield_delta_percent=237.1,
            annualized_cost_usd=-43.6,
        ),
        capital_cost_usd=2180.0,
        yield_cost_annual_usd=-43.6,
        total_score_usd=2136.4,
        viable=True,
        reason="Repay $2180.00 debt to restore HF to 1.50",
    )


@pytest.fixture()
def make_protection_result(sample_protection_option):
    def _make(**overrides) -> ProtectionResult:
        fields = dict(
            success=True,
            option=sample_protection_option,
            wallet=WALLET,
            previous_hf=1.173,
            dry_run=True,
            execution_time_ms=1.2,
            timestamp=FIXED_TIME,
            new_hf=1.5,
        )
        fields.update(overrides)
        return ProtectionResult(**fields)

    return _make
