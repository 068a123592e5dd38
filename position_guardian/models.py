"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class LendingProtocol(str, Enum):
    KAMINO = "kamino"
    MARGINFI = "marginfi"
    SOLEND = "solend"


class RiskLevel(str, Enum):
    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal position, safe == 0 … critical == 4."""
        return _RISK_ORDER.index(self)


_RISK_ORDER = (
    RiskLevel.SAFE,
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
)


class ProtectionAction(str, Enum):
    REPAY = "repay"
    ADD_COLLATERAL = "add-collateral"
    UNWIND = "unwind"
    NONE = "none"


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    SOON = "soon"
    MONITOR = "monitor"

    @property
    def rank(self) -> int:
        """Lower is more urgent."""
        return _URGENCY_ORDER.index(self)


_URGENCY_ORDER = (Urgency.IMMEDIATE, Urgency.SOON, Urgency.MONITOR)


class RankingStrategy(str, Enum):
    YIELD_OPTIMIZED = "yield-optimized"
    COST_OPTIMIZED = "cost-optimized"
    SPEED_OPTIMIZED = "speed-optimized"
    BALANCED = "balanced"


class AlertType(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    LIQUIDATED = "liquidated"


# ---------------------------------------------------------------------------
# Position snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollateralAsset:
    """Single supplied asset within a position."""

    symbol: str
    amount: float
    value_usd: float
    mint: str = ""


@dataclass(frozen=True)
class DebtAsset:
    """Single borrowed asset within a position."""

    symbol: str
    amount: float
    value_usd: float
    interest_rate: float = 0.0
    mint: str = ""


@dataclass(frozen=True)
class LendingPosition:
    """Snapshot of one wallet's position on one lending protocol.

    ``health_factor`` is the observed value reported by the provider. Any
    projected state is recomputed from collateral, debt and threshold.
    """

    wallet: str
    protocol: LendingProtocol
    collateral: tuple[CollateralAsset, ...]
    debt: tuple[DebtAsset, ...]
    health_factor: float
    liquidation_threshold: float
    last_updated: datetime


@dataclass(frozen=True)
class HealthSnapshot:
    health_factor: float
    timestamp: float


# ---------------------------------------------------------------------------
# Risk assessment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskFactor:
    name: str
    score: float
    weight: float
    detail: str


@dataclass(frozen=True)
class ProtectionRecommendation:
    action: ProtectionAction
    urgency: Urgency
    reason: str
    amount: float | None = None
    asset: str | None = None


@dataclass(frozen=True)
class RiskAssessment:
    wallet: str
    protocol: LendingProtocol
    risk_level: RiskLevel
    risk_score: int
    health_factor: float
    factors: tuple[RiskFactor, ...]
    recommendations: tuple[ProtectionRecommendation, ...]
    timestamp: datetime
    minutes_to_liquidation: float | None = None


@dataclass(frozen=True)
class WalletRiskAssessment:
    wallet: str
    overall_risk_level: RiskLevel
    overall_risk_score: int
    positions: tuple[RiskAssessment, ...]
    cross_protocol_risk: RiskFactor | None
    recommendations: tuple[ProtectionRecommendation, ...]
    timestamp: datetime


# ---------------------------------------------------------------------------
# Protection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class YieldImpact:
    current_apy: float
    projected_apy: float
    yield_delta_percent: float
    annualized_cost_usd: float


@dataclass(frozen=True)
class ProtectionOption:
    """Priced remediation candidate. Pure data; no side effects until executed."""

    id: str
    action: ProtectionAction
    protocol: LendingProtocol
    asset: str
    amount: float
    amount_usd: float
    resulting_hf: float
    resulting_debt_usd: float
    resulting_collateral_usd: float
    yield_impact: YieldImpact
    capital_cost_usd: float
    yield_cost_annual_usd: float
    total_score_usd: float
    viable: bool
    reason: str


@dataclass(frozen=True)
class ProtectionResult:
    """Outcome of one attempt to realize a ProtectionOption."""

    success: bool
    option: ProtectionOption
    wallet: str
    previous_hf: float
    dry_run: bool
    execution_time_ms: float
    timestamp: datetime
    tx_signature: str | None = None
    new_hf: float | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Collateral analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetYieldProfile:
    symbol: str
    supply_apy: float
    staking_apy: float
    effective_apy: float
    liquidation_threshold: float
    accepted: bool
    is_lst: bool
    mint: str = ""


@dataclass(frozen=True)
class HealthImpact:
    current_hf: float
    projected_hf: float
    safe: bool


@dataclass(frozen=True)
class CollateralRecommendation:
    from_asset: str
    from_apy: float
    to_asset: str
    to_apy: float
    yield_boost_percent: float
    yield_boost_absolute_percent: float
    annual_gain_usd: float
    health_impact: HealthImpact
    risk_note: str | None = None


@dataclass(frozen=True)
class CurrentYield:
    total_collateral_usd: float
    weighted_apy: float
    annual_yield_usd: float


@dataclass(frozen=True)
class OptimizedYield:
    weighted_apy: float
    annual_yield_usd: float


@dataclass(frozen=True)
class CollateralAnalysis:
    wallet: str
    protocol: LendingProtocol
    current_yield: CurrentYield
    optimized_yield: OptimizedYield
    recommendations: tuple[CollateralRecommendation, ...]
    total_boost_percent: float
    total_boost_usd: float
    timestamp: datetime


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlertEvent:
    type: AlertType
    wallet: str
    protocol: LendingProtocol
    health_factor: float
    risk_score: int
    message: str
    timestamp: datetime


@dataclass(frozen=True)
class MonitorStatus:
    is_running: bool
    watched_wallets: int
    last_check: datetime | None
    alerts_triggered: int
    protection_actions_executed: int
