"""Protection engine — prices remediation options and runs the chosen one.

Three families of options are costed against a target health factor:

- repay: pay down debt from outside capital
- add-collateral: deposit outside capital
- unwind: repay part of the debt from the position itself, withdrawing
  slightly less collateral than is repaid

Each option carries a capital cost and an annualized yield cost so the
configured strategy can rank them.
"""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from ..config import ProtectionEngineConfig
from ..constants import DEFAULT_YIELD_RATES, FALLBACK_YIELD_PROTOCOL, YieldRates
from ..health import (
    calc_health_factor,
    collateral_to_target,
    effective_apy,
    repay_to_target,
    total_collateral_usd,
    total_debt_usd,
)
from ..interfaces.executor import ProtectionExecutor
from ..models import (
    LendingPosition,
    ProtectionAction,
    ProtectionOption,
    ProtectionResult,
    RankingStrategy,
    RiskAssessment,
    RiskLevel,
    YieldImpact,
)

logger = logging.getLogger(__name__)

# Share of the full repay amount an unwind repays.
UNWIND_REPAY_FRACTION = 0.6
# Collateral withdrawn per dollar repaid during an unwind.
UNWIND_WITHDRAW_RATIO = 0.8
# An unwind only qualifies when it reaches this share of the target HF.
UNWIND_MIN_TARGET_RATIO = 0.9

NO_OPTIONS_ERROR = "No viable protection options"

_NO_ACTION_LEVELS = (RiskLevel.SAFE, RiskLevel.LOW)


def _yield_impact(
    collateral: float,
    debt: float,
    new_collateral: float,
    new_debt: float,
    rates: YieldRates,
    annualized_cost: float,
) -> YieldImpact:
    current = effective_apy(collateral, debt, rates)
    projected = effective_apy(new_collateral, new_debt, rates)
    delta = (projected - current) / abs(current) * 100 if current != 0 else 0.0
    return YieldImpact(
        current_apy=current,
        projected_apy=projected,
        yield_delta_percent=delta,
        annualized_cost_usd=annualized_cost,
    )


class ProtectionEngine:
    def __init__(self, config: ProtectionEngineConfig | None = None) -> None:
        self._config = config or ProtectionEngineConfig()
        self._execution_log: list[ProtectionResult] = []

    # ------------------------------------------------------------------
    # Option evaluation
    # ------------------------------------------------------------------

    def evaluate_options(
        self, position: LendingPosition, assessment: RiskAssessment
    ) -> list[ProtectionOption]:
        """All viable options for the position, ranked by the configured strategy."""
        if assessment.risk_level in _NO_ACTION_LEVELS:
            return []

        collateral = total_collateral_usd(position)
        debt = total_debt_usd(position)
        lt = position.liquidation_threshold
        target = self._config.target_health_factor
        budget = self._config.max_protection_usd
        rates = self._rates_for(position.protocol.value)
        protocol = position.protocol.value

        options: list[ProtectionOption] = []

        # Repay debt
        repay = repay_to_target(collateral, debt, lt, target)
        if 0 < repay <= budget:
            new_debt = debt - repay
            new_hf = calc_health_factor(collateral, new_debt, lt)
            borrow_saved = repay * rates.borrow_apy
            opportunity = repay * rates.supply_apy
            impact = _yield_impact(
                collateral, debt, collateral, new_debt, rates, -(borrow_saved - opportunity)
            )
            options.append(
                ProtectionOption(
                    id=f"repay-{protocol}",
                    action=ProtectionAction.REPAY,
                    protocol=position.protocol,
                    asset=position.debt[0].symbol if position.debt else "DEBT",
                    amount=repay,
                    amount_usd=repay,
                    resulting_hf=new_hf,
                    resulting_debt_usd=new_debt,
                    resulting_collateral_usd=collateral,
                    yield_impact=impact,
                    capital_cost_usd=repay,
                    yield_cost_annual_usd=impact.annualized_cost_usd,
                    total_score_usd=repay + impact.annualized_cost_usd,
                    viable=True,
                    reason=f"Repay ${repay:.2f} debt to restore HF to {new_hf:.2f}",
                )
            )

        # Add collateral
        add = collateral_to_target(collateral, debt, lt, target)
        if 0 < add <= budget:
            new_collateral = collateral + add
            new_hf = calc_health_factor(new_collateral, debt, lt)
            impact = _yield_impact(
                collateral, debt, new_collateral, debt, rates, -(add * rates.supply_apy)
            )
            options.append(
                ProtectionOption(
                    id=f"add-collateral-{protocol}",
                    action=ProtectionAction.ADD_COLLATERAL,
                    protocol=position.protocol,
                    asset=position.collateral[0].symbol if position.collateral else "COLLATERAL",
                    amount=add,
                    amount_usd=add,
                    resulting_hf=new_hf,
                    resulting_debt_usd=debt,
                    resulting_collateral_usd=new_collateral,
                    yield_impact=impact,
                    capital_cost_usd=add,
                    yield_cost_annual_usd=impact.annualized_cost_usd,
                    total_score_usd=add + impact.annualized_cost_usd,
                    viable=True,
                    reason=f"Add ${add:.2f} collateral to restore HF to {new_hf:.2f}",
                )
            )

        # Partial unwind
        unwind = self._unwind_option(position, collateral, debt, repay, rates)
        if unwind is not None:
            options.append(unwind)

        ranked = self.rank_options(options)
        logger.debug(
            "%d protection option(s) for %s on %s", len(ranked), position.wallet, protocol
        )
        return ranked

    def _unwind_option(
        self,
        position: LendingPosition,
        collateral: float,
        debt: float,
        full_repay: float,
        rates: YieldRates,
    ) -> ProtectionOption | None:
        if debt <= 0 or collateral <= 0:
            return None

        unwind_repay = full_repay * UNWIND_REPAY_FRACTION
        unwind_withdraw = unwind_repay * UNWIND_WITHDRAW_RATIO
        new_debt = debt - unwind_repay
        new_collateral = collateral - unwind_withdraw

        if unwind_repay <= 0 or unwind_repay > self._config.max_protection_usd:
            return None
        if new_debt <= 0 or new_collateral <= 0:
            return None

        lt = position.liquidation_threshold
        new_hf = calc_health_factor(new_collateral, new_debt, lt)
        if new_hf < self._config.target_health_factor * UNWIND_MIN_TARGET_RATIO:
            return None

        saved_borrow = unwind_repay * rates.borrow_apy
        lost_supply = unwind_withdraw * rates.supply_apy
        impact = _yield_impact(
            collateral, debt, new_collateral, new_debt, rates, -(saved_borrow - lost_supply)
        )
        return ProtectionOption(
            id=f"unwind-{position.protocol.value}",
            action=ProtectionAction.UNWIND,
            protocol=position.protocol,
            asset="POSITION",
            amount=unwind_repay,
            amount_usd=unwind_repay,
            resulting_hf=new_hf,
            resulting_debt_usd=new_debt,
            resulting_collateral_usd=new_collateral,
            yield_impact=impact,
            capital_cost_usd=0.0,
            yield_cost_annual_usd=impact.annualized_cost_usd,
            total_score_usd=impact.annualized_cost_usd,
            viable=True,
            reason=(
                f"Unwind: repay ${unwind_repay:.2f} + withdraw ${unwind_withdraw:.2f} "
                f"to reach HF {new_hf:.2f}"
            ),
        )

    def rank_options(self, options: list[ProtectionOption]) -> list[ProtectionOption]:
        strategy = self._config.preferred_strategy
        if strategy is RankingStrategy.YIELD_OPTIMIZED:
            return sorted(options, key=lambda o: o.yield_cost_annual_usd)
        if strategy is RankingStrategy.COST_OPTIMIZED:
            return sorted(options, key=lambda o: o.capital_cost_usd)
        if strategy is RankingStrategy.SPEED_OPTIMIZED:
            return sorted(options, key=lambda o: o.resulting_hf, reverse=True)
        return sorted(options, key=lambda o: o.total_score_usd)

    @staticmethod
    def select_best_option(options: list[ProtectionOption]) -> ProtectionOption | None:
        """First viable option; ``options`` is expected to be ranked already."""
        return next((o for o in options if o.viable), None)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def protect(
        self,
        position: LendingPosition,
        assessment: RiskAssessment,
        executor: ProtectionExecutor | None = None,
    ) -> ProtectionResult:
        """Evaluate, select and (unless dry-running) execute. Never raises."""
        start = time.monotonic()
        best = self.select_best_option(self.evaluate_options(position, assessment))

        if best is None:
            return ProtectionResult(
                success=False,
                option=self._no_op_option(position),
                wallet=position.wallet,
                previous_hf=position.health_factor,
                dry_run=self._config.dry_run,
                execution_time_ms=_elapsed_ms(start),
                timestamp=datetime.now(timezone.utc),
                error=NO_OPTIONS_ERROR,
            )

        logger.info(
            "Protection selected for %s: %s on %s, $%.2f, HF %.3f -> %.3f, yield cost $%.2f/yr",
            position.wallet,
            best.action.value,
            best.protocol.value,
            best.amount_usd,
            position.health_factor,
            best.resulting_hf,
            best.yield_cost_annual_usd,
        )

        if self._config.dry_run or executor is None:
            logger.info("DRY RUN — protection for %s not sent", position.wallet)
            result = ProtectionResult(
                success=True,
                option=best,
                wallet=position.wallet,
                previous_hf=position.health_factor,
                dry_run=True,
                execution_time_ms=_elapsed_ms(start),
                timestamp=datetime.now(timezone.utc),
                new_hf=best.resulting_hf,
            )
            self._execution_log.append(result)
            return result

        try:
            signature = await executor.execute(position, best)
        except Exception as exc:
            logger.error("Protection execution failed for %s: %s", position.wallet, exc)
            result = ProtectionResult(
                success=False,
                option=best,
                wallet=position.wallet,
                previous_hf=position.health_factor,
                dry_run=False,
                execution_time_ms=_elapsed_ms(start),
                timestamp=datetime.now(timezone.utc),
                error=str(exc),
            )
        else:
            logger.info("Protection executed for %s: %s", position.wallet, signature)
            result = ProtectionResult(
                success=True,
                option=best,
                wallet=position.wallet,
                previous_hf=position.health_factor,
                dry_run=False,
                execution_time_ms=_elapsed_ms(start),
                timestamp=datetime.now(timezone.utc),
                tx_signature=signature,
                new_hf=best.resulting_hf,
            )
        self._execution_log.append(result)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rates_for(self, protocol: str) -> YieldRates:
        rates = self._config.yield_rates
        return (
            rates.get(protocol)
            or rates.get(FALLBACK_YIELD_PROTOCOL)
            or DEFAULT_YIELD_RATES[FALLBACK_YIELD_PROTOCOL]
        )

    @staticmethod
    def _no_op_option(position: LendingPosition) -> ProtectionOption:
        return ProtectionOption(
            id="no-op",
            action=ProtectionAction.NONE,
            protocol=position.protocol,
            asset="NONE",
            amount=0.0,
            amount_usd=0.0,
            resulting_hf=position.health_factor,
            resulting_debt_usd=total_debt_usd(position),
            resulting_collateral_usd=total_collateral_usd(position),
            yield_impact=YieldImpact(0.0, 0.0, 0.0, 0.0),
            capital_cost_usd=0.0,
            yield_cost_annual_usd=0.0,
            total_score_usd=0.0,
            viable=False,
            reason="No protection needed or no viable options",
        )

    def get_execution_log(self) -> list[ProtectionResult]:
        return list(self._execution_log)

    def get_config(self) -> ProtectionEngineConfig:
        return self._config

    def update_config(self, **changes: Any) -> None:
        if "preferred_strategy" in changes:
            changes["preferred_strategy"] = RankingStrategy(changes["preferred_strategy"])
        self._config = replace(self._config, **changes)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
