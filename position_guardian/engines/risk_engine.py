"""Composite risk scoring for lending positions.

A position is scored by independent factors, each producing a 0-100 score
with a fixed weight:

    health_factor   0.45  piecewise-linear over size-scaled HF thresholds
    utilization     0.15  debt / collateral through fixed breakpoints
    concentration   0.10  Herfindahl-Hirschman index of collateral shares
    trend           0.20  HF velocity (per minute) over the history window
    protocol_risk   0.10  only present for protocols with harsher liquidations

The composite is the weight-normalized mean, then floored for positions one
step from liquidation so good trend or diversification can never dilute them.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import datetime, timezone

from ..config import HealthThresholds, RiskEngineConfig
from ..constants import DEFAULT_PROTOCOL_PARAMS, ProtocolParams
from ..health import (
    calc_utilization,
    collateral_to_target,
    repay_to_target,
    round_half_up,
    total_collateral_usd,
    total_debt_usd,
)
from ..models import (
    HealthSnapshot,
    LendingPosition,
    ProtectionAction,
    ProtectionRecommendation,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    Urgency,
    WalletRiskAssessment,
)
from .history import HealthHistoryStore

logger = logging.getLogger(__name__)

HEALTH_FACTOR_WEIGHT = 0.45
UTILIZATION_WEIGHT = 0.15
CONCENTRATION_WEIGHT = 0.10
TREND_WEIGHT = 0.20
PROTOCOL_RISK_WEIGHT = 0.10
CROSS_PROTOCOL_WEIGHT = 0.15

UNKNOWN_TREND_SCORE = 25
# Samples closer together than this (minutes) give no usable velocity.
MIN_TREND_SPAN_MINUTES = 0.1

# (collateral USD strictly above, threshold multiplier), largest first
SIZE_BANDS = (
    (1_000_000.0, 1.15),
    (100_000.0, 1.08),
    (10_000.0, 1.03),
)

# (utilization upper bound, score at lower bound, score span)
UTILIZATION_BANDS = (
    (0.30, 0.0, 15.0),
    (0.50, 15.0, 20.0),
    (0.70, 35.0, 30.0),
    (0.85, 65.0, 25.0),
)

# Cross-protocol factor shifts the wallet *level* by score * weight * this.
CROSS_PROTOCOL_LEVEL_SCALE = 10

WORST_POSITION_WEIGHT = 0.7


def score_to_level(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    if score >= 20:
        return RiskLevel.LOW
    return RiskLevel.SAFE


class RiskEngine:
    """Turns position snapshots into graded, trend-aware risk assessments."""

    def __init__(
        self,
        config: RiskEngineConfig | None = None,
        protocol_params: Mapping[str, ProtocolParams] | None = None,
        history: HealthHistoryStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RiskEngineConfig()
        self._protocol_params = dict(
            DEFAULT_PROTOCOL_PARAMS if protocol_params is None else protocol_params
        )
        self._history = history or HealthHistoryStore(self._config.trend_window_size)
        self._clock = clock

    @property
    def config(self) -> RiskEngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Main API
    # ------------------------------------------------------------------

    def assess_position(self, position: LendingPosition) -> RiskAssessment:
        now = self._clock()
        protocol = position.protocol.value
        self._history.record(position.wallet, protocol, position.health_factor, now)

        trend, minutes_to_liquidation = self._assess_trend(position)
        factors = [
            self._assess_health_factor(position),
            self._assess_utilization(position),
            self._assess_concentration(position),
            trend,
        ]
        protocol_factor = self._assess_protocol_risk(position)
        if protocol_factor is not None:
            factors.append(protocol_factor)

        total_weight = sum(f.weight for f in factors)
        weighted = sum(f.score * f.weight for f in factors) / total_weight
        risk_score = int(min(100, round_half_up(weighted)))
        risk_score = self._apply_floor(position.health_factor, risk_score)

        risk_level = score_to_level(risk_score)
        recommendations = self._generate_recommendations(position, risk_level, factors)

        logger.debug(
            "Assessed %s on %s: HF %.3f score %d (%s)",
            position.wallet, protocol, position.health_factor, risk_score, risk_level.value,
        )

        return RiskAssessment(
            wallet=position.wallet,
            protocol=position.protocol,
            risk_level=risk_level,
            risk_score=risk_score,
            health_factor=position.health_factor,
            factors=tuple(factors),
            recommendations=tuple(recommendations),
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
            minutes_to_liquidation=minutes_to_liquidation,
        )

    def assess_wallet(self, positions: Iterable[LendingPosition]) -> WalletRiskAssessment:
        """Aggregate across protocols; the worst position dominates."""
        positions = [p for p in positions or [] if isinstance(p, LendingPosition)]
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)

        if not positions:
            return WalletRiskAssessment(
                wallet="",
                overall_risk_level=RiskLevel.SAFE,
                overall_risk_score=0,
                positions=(),
                cross_protocol_risk=None,
                recommendations=(),
                timestamp=now,
            )

        assessments = [self.assess_position(p) for p in positions]
        scores = [a.risk_score for a in assessments]
        worst = max(scores)
        mean = sum(scores) / len(scores)
        overall_score = int(
            round_half_up(worst * WORST_POSITION_WEIGHT + mean * (1 - WORST_POSITION_WEIGHT))
        )

        cross = self._assess_cross_protocol_risk(positions)
        level_score = overall_score
        if cross is not None:
            level_score = min(
                100, overall_score + cross.score * cross.weight * CROSS_PROTOCOL_LEVEL_SCALE
            )

        recommendations = self._deduplicate_recommendations(
            rec for a in assessments for rec in a.recommendations
        )

        return WalletRiskAssessment(
            wallet=positions[0].wallet,
            overall_risk_level=score_to_level(level_score),
            overall_risk_score=overall_score,
            positions=tuple(assessments),
            cross_protocol_risk=cross,
            recommendations=tuple(recommendations),
            timestamp=now,
        )

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _assess_health_factor(self, position: LendingPosition) -> RiskFactor:
        hf = position.health_factor
        th = self.effective_thresholds(position)

        if hf <= 1.0:
            score = 100.0
        elif hf < th.high:
            score = 90 + (1 - (hf - 1.0) / (th.high - 1.0)) * 10
        elif hf < th.medium:
            score = 60 + (1 - (hf - th.high) / (th.medium - th.high)) * 30
        elif hf < th.low:
            score = 30 + (1 - (hf - th.medium) / (th.low - th.medium)) * 30
        elif hf < th.safe:
            score = 10 + (1 - (hf - th.low) / (th.safe - th.low)) * 20
        else:
            score = max(0.0, 10 - (hf - th.safe) * 5)

        score = max(0.0, min(100.0, round_half_up(score)))
        return RiskFactor(
            name="health_factor",
            score=score,
            weight=HEALTH_FACTOR_WEIGHT,
            detail=(
                f"Health factor {hf:.3f} "
                f"(thresholds: safe>{th.safe:.3f}, critical<{th.high:.3f})"
            ),
        )

    def _assess_utilization(self, position: LendingPosition) -> RiskFactor:
        collateral = total_collateral_usd(position)
        debt = total_debt_usd(position)

        if collateral <= 0:
            return RiskFactor(
                name="utilization",
                score=0,
                weight=UTILIZATION_WEIGHT,
                detail="No collateral — no position",
            )

        utilization = calc_utilization(collateral, debt)
        lower = 0.0
        for upper, base, span in UTILIZATION_BANDS:
            if utilization < upper:
                score = base + (utilization - lower) / (upper - lower) * span
                break
            lower = upper
        else:
            score = 90 + min(10.0, (utilization - 0.85) / 0.15 * 10)

        return RiskFactor(
            name="utilization",
            score=round_half_up(min(100.0, score)),
            weight=UTILIZATION_WEIGHT,
            detail=f"Utilization {utilization * 100:.1f}% (${debt:,.0f} / ${collateral:,.0f})",
        )

    def _assess_concentration(self, position: LendingPosition) -> RiskFactor:
        count = len(position.collateral)
        total = total_collateral_usd(position)

        if count <= 1 or total <= 0:
            if count == 0:
                detail = "No collateral"
            else:
                detail = f"Single collateral asset ({position.collateral[0].symbol})"
            return RiskFactor(
                name="concentration",
                score=40 if total > 0 else 0,
                weight=CONCENTRATION_WEIGHT,
                detail=detail,
            )

        hhi = sum((c.value_usd / total) ** 2 for c in position.collateral)
        return RiskFactor(
            name="concentration",
            score=round_half_up(hhi * 60),
            weight=CONCENTRATION_WEIGHT,
            detail=f"{count} collateral assets, HHI={hhi:.2f}",
        )

    def _assess_trend(self, position: LendingPosition) -> tuple[RiskFactor, float | None]:
        history = self._history.get(position.wallet, position.protocol.value)
        min_samples = self._config.trend_min_samples

        if len(history) < min_samples:
            return (
                RiskFactor(
                    name="trend",
                    score=UNKNOWN_TREND_SCORE,
                    weight=TREND_WEIGHT,
                    detail=f"Insufficient data ({len(history)}/{min_samples} samples)",
                ),
                None,
            )

        recent = history[-self._config.trend_window_size :]
        oldest, newest = recent[0], recent[-1]
        span_minutes = (newest.timestamp - oldest.timestamp) / 60

        if span_minutes < MIN_TREND_SPAN_MINUTES:
            return (
                RiskFactor(
                    name="trend",
                    score=UNKNOWN_TREND_SCORE,
                    weight=TREND_WEIGHT,
                    detail="Samples too close in time",
                ),
                None,
            )

        velocity = (newest.health_factor - oldest.health_factor) / span_minutes
        minutes_to_liquidation: float | None = None

        if velocity > 0.01:
            score = max(0.0, 15 - velocity * 100)
            detail = f"Improving: {velocity:+.4f}/min"
        elif velocity > -0.005:
            score = 25.0
            detail = f"Stable: {velocity:+.4f}/min"
        elif velocity > -0.02:
            score = 50.0
            detail = f"Declining: {velocity:+.4f}/min"
        elif velocity > -0.05:
            score = 75.0
            detail = f"Rapid decline: {velocity:+.4f}/min"
        else:
            score = 95.0
            detail = f"FREE FALL: {velocity:+.4f}/min"
            if position.health_factor > 1.0:
                minutes_to_liquidation = (position.health_factor - 1.0) / abs(velocity)
                detail += f" — est. {minutes_to_liquidation:.1f}min to liquidation"
                logger.warning(
                    "%s on %s in free fall: %.1f minutes to liquidation",
                    position.wallet, position.protocol.value, minutes_to_liquidation,
                )

        return (
            RiskFactor(
                name="trend",
                score=round_half_up(min(100.0, score)),
                weight=TREND_WEIGHT,
                detail=detail,
            ),
            minutes_to_liquidation,
        )

    def _assess_protocol_risk(self, position: LendingPosition) -> RiskFactor | None:
        params = self._protocol_params.get(position.protocol.value)
        if params is None:
            return None

        score = 0
        details: list[str] = []
        if params.close_factor >= 1.0:
            score += 20
            details.append("100% close factor (full liquidation possible)")
        if params.liquidation_penalty > 0.05:
            score += 15
            details.append(f"{params.liquidation_penalty * 100:.0f}% liquidation penalty")

        if score == 0:
            return None

        return RiskFactor(
            name="protocol_risk",
            score=score,
            weight=PROTOCOL_RISK_WEIGHT,
            detail=f"{position.protocol.value}: {', '.join(details)}",
        )

    @staticmethod
    def _assess_cross_protocol_risk(positions: list[LendingPosition]) -> RiskFactor | None:
        indebted = [p for p in positions if total_debt_usd(p) > 0]
        protocols = {p.protocol for p in indebted}
        if len(protocols) < 2:
            return None

        total_debt = sum(total_debt_usd(p) for p in indebted)
        return RiskFactor(
            name="cross_protocol",
            score=min(60, 20 * len(protocols)),
            weight=CROSS_PROTOCOL_WEIGHT,
            detail=(
                f"Debt across {len(protocols)} protocols (${total_debt:,.0f} total) "
                "— correlated crash risk"
            ),
        )

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _generate_recommendations(
        self,
        position: LendingPosition,
        level: RiskLevel,
        factors: list[RiskFactor],
    ) -> list[ProtectionRecommendation]:
        if level is RiskLevel.SAFE:
            return [
                ProtectionRecommendation(
                    action=ProtectionAction.NONE,
                    urgency=Urgency.MONITOR,
                    reason="Position is healthy",
                )
            ]

        if level is RiskLevel.LOW:
            return [
                ProtectionRecommendation(
                    action=ProtectionAction.NONE,
                    urgency=Urgency.MONITOR,
                    reason="Low risk — no action needed, continue monitoring",
                )
            ]

        if level is RiskLevel.MEDIUM:
            trend = next((f for f in factors if f.name == "trend"), None)
            if trend is not None and trend.score > 50:
                return [
                    ProtectionRecommendation(
                        action=ProtectionAction.REPAY,
                        urgency=Urgency.SOON,
                        reason="Health factor declining — consider partial repayment",
                    )
                ]
            return [
                ProtectionRecommendation(
                    action=ProtectionAction.NONE,
                    urgency=Urgency.MONITOR,
                    reason="Medium risk — monitor closely, prepare protection if trend worsens",
                )
            ]

        target = self._config.target_health_factor
        collateral = total_collateral_usd(position)
        debt = total_debt_usd(position)
        lt = position.liquidation_threshold
        repay = round_half_up(repay_to_target(collateral, debt, lt, target), 2)
        debt_symbol = position.debt[0].symbol if position.debt else None
        collateral_symbol = position.collateral[0].symbol if position.collateral else None

        recs: list[ProtectionRecommendation] = []
        if level is RiskLevel.HIGH:
            if repay > 0:
                recs.append(
                    ProtectionRecommendation(
                        action=ProtectionAction.REPAY,
                        urgency=Urgency.SOON,
                        amount=repay,
                        asset=debt_symbol,
                        reason=f"Repay ${repay:,.2f} to improve health factor to {target}",
                    )
                )
            return recs

        if repay > 0:
            recs.append(
                ProtectionRecommendation(
                    action=ProtectionAction.REPAY,
                    urgency=Urgency.IMMEDIATE,
                    amount=repay,
                    asset=debt_symbol,
                    reason=f"Repay ${repay:,.2f} to restore health factor to {target}",
                )
            )
        add = round_half_up(collateral_to_target(collateral, debt, lt, target), 2)
        if add > 0:
            recs.append(
                ProtectionRecommendation(
                    action=ProtectionAction.ADD_COLLATERAL,
                    urgency=Urgency.IMMEDIATE,
                    amount=add,
                    asset=collateral_symbol,
                    reason=f"Or add ${add:,.2f} collateral to restore health factor to {target}",
                )
            )
        return recs

    @staticmethod
    def _deduplicate_recommendations(
        recs: Iterable[ProtectionRecommendation],
    ) -> list[ProtectionRecommendation]:
        by_action: dict[ProtectionAction, ProtectionRecommendation] = {}
        for rec in recs:
            existing = by_action.get(rec.action)
            if existing is None or rec.urgency.rank < existing.urgency.rank:
                by_action[rec.action] = rec
        return sorted(by_action.values(), key=lambda r: r.urgency.rank)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def effective_thresholds(self, position: LendingPosition) -> HealthThresholds:
        """Thresholds widened for large positions, which need more buffer."""
        base = self._config.thresholds
        if not self._config.position_size_scaling:
            return base

        collateral = total_collateral_usd(position)
        scale = 1.0
        for floor, multiplier in SIZE_BANDS:
            if collateral > floor:
                scale = multiplier
                break

        return replace(
            base,
            safe=base.safe * scale,
            low=base.low * scale,
            medium=base.medium * scale,
            high=base.high * scale,
        )

    @staticmethod
    def _apply_floor(health_factor: float, score: int) -> int:
        if health_factor <= 1.0:
            return 100
        if health_factor < 1.05:
            return max(score, 85)
        if health_factor < 1.10:
            return max(score, 70)
        return score

    # ------------------------------------------------------------------
    # Public utilities
    # ------------------------------------------------------------------

    def get_health_history(self, wallet: str, protocol: str) -> list[HealthSnapshot]:
        return self._history.get(wallet, getattr(protocol, "value", protocol))

    def clear_history(self, wallet: str | None = None) -> None:
        self._history.clear(wallet)
