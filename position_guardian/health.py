"""Pure health-factor algebra — no I/O.

health_factor = (collateral_usd * liquidation_threshold) / debt_usd
"""
from __future__ import annotations

import math

from .constants import YieldRates
from .models import LendingPosition

# Stand-in health factor for positions without debt.
NO_DEBT_HEALTH_FACTOR = 999.0


def total_collateral_usd(position: LendingPosition) -> float:
    return sum(c.value_usd for c in position.collateral)


def total_debt_usd(position: LendingPosition) -> float:
    return sum(d.value_usd for d in position.debt)


def calc_health_factor(
    collateral_usd: float, debt_usd: float, liquidation_threshold: float
) -> float:
    """Calculate health factor; ``NO_DEBT_HEALTH_FACTOR`` when nothing is owed."""
    if debt_usd <= 0:
        return NO_DEBT_HEALTH_FACTOR
    return (collateral_usd * liquidation_threshold) / debt_usd


def derived_health_factor(position: LendingPosition) -> float:
    """Health factor recomputed from the snapshot, ignoring the reported field."""
    return calc_health_factor(
        total_collateral_usd(position),
        total_debt_usd(position),
        position.liquidation_threshold,
    )


def calc_utilization(collateral_usd: float, debt_usd: float) -> float:
    """Debt / collateral as a fraction (0.0 when there is no collateral)."""
    if collateral_usd <= 0:
        return 0.0
    return debt_usd / collateral_usd


def repay_to_target(
    collateral_usd: float,
    debt_usd: float,
    liquidation_threshold: float,
    target_hf: float,
) -> float:
    """Debt to repay so the position lands on ``target_hf``.

    target = (collateral * lt) / (debt - repay)
    repay  = debt - (collateral * lt) / target
    """
    if target_hf <= 0:
        return 0.0
    safe_debt = (collateral_usd * liquidation_threshold) / target_hf
    return max(0.0, debt_usd - safe_debt)


def collateral_to_target(
    collateral_usd: float,
    debt_usd: float,
    liquidation_threshold: float,
    target_hf: float,
) -> float:
    """Collateral to add so the position lands on ``target_hf``.

    target = ((collateral + add) * lt) / debt
    add    = (debt * target) / lt - collateral
    """
    if liquidation_threshold <= 0:
        return 0.0
    safe_collateral = (debt_usd * target_hf) / liquidation_threshold
    return max(0.0, safe_collateral - collateral_usd)


def effective_apy(collateral_usd: float, debt_usd: float, rates: YieldRates) -> float:
    """Net APY on equity of a leveraged lending position.

    (collateral * supply_apy - debt * borrow_apy) / (collateral - debt)
    """
    equity = collateral_usd - debt_usd
    if equity <= 0:
        return 0.0
    net_income = collateral_usd * rates.supply_apy - debt_usd * rates.borrow_apy
    return net_income / equity


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero (62.5 -> 63), unlike the builtin ``round``."""
    if math.isinf(value) or math.isnan(value):
        return value
    factor = 10**digits
    return math.copysign(math.floor(abs(value) * factor + 0.5) / factor, value)
