"""Pure parsing of provider payloads into LendingPosition — no I/O."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..health import calc_health_factor
from ..models import CollateralAsset, DebtAsset, LendingPosition, LendingProtocol


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key; payloads may use snake_case or camelCase."""
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def normalize_threshold(value: float) -> float:
    """Thresholds given as percentages (e.g. 85) become fractions (0.85)."""
    value = float(value)
    return value / 100 if value > 1 else value


def parse_timestamp(value: Any) -> datetime:
    """Accept epoch seconds, ISO-8601 strings or nothing (now, UTC)."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_collateral_entry(entry: dict[str, Any]) -> CollateralAsset:
    return CollateralAsset(
        symbol=str(entry["symbol"]),
        amount=float(_pick(entry, "amount", default=0.0)),
        value_usd=float(_pick(entry, "value_usd", "valueUsd", default=0.0)),
        mint=str(_pick(entry, "mint", default="")),
    )


def parse_debt_entry(entry: dict[str, Any]) -> DebtAsset:
    return DebtAsset(
        symbol=str(entry["symbol"]),
        amount=float(_pick(entry, "amount", default=0.0)),
        value_usd=float(_pick(entry, "value_usd", "valueUsd", default=0.0)),
        interest_rate=float(_pick(entry, "interest_rate", "interestRate", default=0.0)),
        mint=str(_pick(entry, "mint", default="")),
    )


def parse_position(
    raw: dict[str, Any],
    wallet: str | None = None,
    protocol: str | None = None,
) -> LendingPosition:
    """Build a LendingPosition from a provider payload.

    ``wallet`` / ``protocol`` fill in fields the payload leaves out. A missing
    health factor is derived from collateral, debt and threshold.

    Raises:
        ValueError: unknown protocol or missing liquidation threshold.
    """
    protocol_name = _pick(raw, "protocol", default=protocol)
    try:
        lending_protocol = LendingProtocol(protocol_name)
    except ValueError:
        raise ValueError(f"Unknown lending protocol '{protocol_name}'") from None

    threshold_raw = _pick(raw, "liquidation_threshold", "liquidationThreshold")
    if threshold_raw is None:
        raise ValueError("Position payload has no liquidation threshold")
    threshold = normalize_threshold(threshold_raw)

    collateral = tuple(parse_collateral_entry(c) for c in raw.get("collateral") or [])
    debt = tuple(parse_debt_entry(d) for d in raw.get("debt") or [])

    health_factor = _pick(raw, "health_factor", "healthFactor")
    if health_factor is None:
        health_factor = calc_health_factor(
            sum(c.value_usd for c in collateral),
            sum(d.value_usd for d in debt),
            threshold,
        )

    return LendingPosition(
        wallet=str(_pick(raw, "wallet", default=wallet or "")),
        protocol=lending_protocol,
        collateral=collateral,
        debt=debt,
        health_factor=float(health_factor),
        liquidation_threshold=threshold,
        last_updated=parse_timestamp(_pick(raw, "last_updated", "lastUpdated")),
    )
