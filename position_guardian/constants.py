"""Static lookup tables: yield rates, protocol liquidation terms, asset registry.

Values are approximations used for scoring, not verified protocol parameters.
Every table can be overridden from ``config.yaml`` and is injected into the
engines at construction.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class YieldRates:
    supply_apy: float
    borrow_apy: float


@dataclass(frozen=True)
class ProtocolParams:
    close_factor: float
    liquidation_penalty: float
    min_hf_buffer: float = 0.05


@dataclass(frozen=True)
class AssetYield:
    """Protocol-independent yield data for a collateral asset."""

    symbol: str
    mint: str
    supply_apy: float
    staking_apy: float
    is_lst: bool = False

    @property
    def effective_apy(self) -> float:
        return self.supply_apy + self.staking_apy


@dataclass(frozen=True)
class CollateralTerms:
    accepted: bool
    liquidation_threshold: float


# ---------------------------------------------------------------------------
# Protection engine
# ---------------------------------------------------------------------------

DEFAULT_YIELD_RATES: dict[str, YieldRates] = {
    "kamino": YieldRates(supply_apy=0.065, borrow_apy=0.085),
    "marginfi": YieldRates(supply_apy=0.055, borrow_apy=0.090),
    "solend": YieldRates(supply_apy=0.045, borrow_apy=0.075),
}

FALLBACK_YIELD_PROTOCOL = "kamino"

# ---------------------------------------------------------------------------
# Risk engine
# ---------------------------------------------------------------------------

DEFAULT_PROTOCOL_PARAMS: dict[str, ProtocolParams] = {
    "kamino": ProtocolParams(close_factor=0.5, liquidation_penalty=0.05, min_hf_buffer=0.05),
    "marginfi": ProtocolParams(close_factor=1.0, liquidation_penalty=0.05, min_hf_buffer=0.08),
    "solend": ProtocolParams(close_factor=0.5, liquidation_penalty=0.05, min_hf_buffer=0.05),
}

# ---------------------------------------------------------------------------
# Collateral analyzer
# ---------------------------------------------------------------------------

# APY assumed for collateral symbols missing from the registry.
FALLBACK_APY = 0.02

ASSET_REGISTRY: dict[str, AssetYield] = {
    a.symbol: a
    for a in (
        AssetYield("SOL", "So11111111111111111111111111111111111111112", 0.035, 0.0),
        AssetYield("mSOL", "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So", 0.028, 0.072, is_lst=True),
        AssetYield("JitoSOL", "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", 0.030, 0.078, is_lst=True),
        AssetYield("bSOL", "bSo13r4TkiE4KumL71LsHTPpL2euBYLFx6h9HP3piy1", 0.025, 0.068, is_lst=True),
        AssetYield("INF", "5oVNBeEEQvYi1cX3ir8Dx5n1P7pdxydbGF2X4TxVusJm", 0.032, 0.082, is_lst=True),
        AssetYield("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 0.055, 0.0),
        AssetYield("USDT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 0.048, 0.0),
        AssetYield("BONK", "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 0.015, 0.0),
        AssetYield("ETH", "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs", 0.020, 0.0),
    )
}


def _terms(**thresholds: float) -> dict[str, CollateralTerms]:
    """Build a per-asset terms table; a threshold of 0 means "not accepted"."""
    return {
        symbol: CollateralTerms(accepted=lt > 0, liquidation_threshold=lt)
        for symbol, lt in thresholds.items()
    }


PROTOCOL_COLLATERAL: dict[str, dict[str, CollateralTerms]] = {
    "kamino": _terms(
        SOL=0.85, mSOL=0.80, JitoSOL=0.80, bSOL=0.78, INF=0.75,
        USDC=0.90, USDT=0.88, BONK=0.50, ETH=0.82,
    ),
    "marginfi": _terms(
        SOL=0.90, mSOL=0.85, JitoSOL=0.85, bSOL=0.82, INF=0.0,
        USDC=0.95, USDT=0.92, BONK=0.40, ETH=0.85,
    ),
    "solend": _terms(
        SOL=0.85, mSOL=0.80, JitoSOL=0.80, bSOL=0.78, INF=0.0,
        USDC=0.90, USDT=0.88, BONK=0.0, ETH=0.82,
    ),
}
