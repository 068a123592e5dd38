"""Collateral yield analysis — suggests higher-yield swaps that keep the position safe."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from ..config import CollateralConfig
from ..constants import (
    ASSET_REGISTRY,
    FALLBACK_APY,
    PROTOCOL_COLLATERAL,
    AssetYield,
    CollateralTerms,
)
from ..health import calc_health_factor, derived_health_factor, total_collateral_usd, total_debt_usd
from ..models import (
    AssetYieldProfile,
    CollateralAnalysis,
    CollateralAsset,
    CollateralRecommendation,
    CurrentYield,
    HealthImpact,
    LendingPosition,
    OptimizedYield,
)

logger = logging.getLogger(__name__)


class CollateralAnalyzer:
    def __init__(
        self,
        config: CollateralConfig | None = None,
        registry: Mapping[str, AssetYield] | None = None,
        protocol_collateral: Mapping[str, Mapping[str, CollateralTerms]] | None = None,
    ) -> None:
        self._config = config or CollateralConfig()
        self._registry = dict(ASSET_REGISTRY if registry is None else registry)
        self._protocol_collateral = dict(
            PROTOCOL_COLLATERAL if protocol_collateral is None else protocol_collateral
        )

    def analyze_position(self, position: LendingPosition) -> CollateralAnalysis:
        current = self._current_yield(position)

        recommendations: list[CollateralRecommendation] = []
        for asset in position.collateral:
            recommendations.extend(self._find_better_alternatives(asset, position))
        recommendations.sort(key=lambda r: r.annual_gain_usd, reverse=True)

        optimized = self._optimized_yield(position, recommendations)
        if current.weighted_apy > 0:
            boost_percent = (
                (optimized.weighted_apy - current.weighted_apy) / current.weighted_apy * 100
            )
        else:
            boost_percent = 0.0

        logger.debug(
            "Collateral analysis for %s on %s: %d swap(s), +$%.2f/yr",
            position.wallet,
            position.protocol.value,
            len(recommendations),
            optimized.annual_yield_usd - current.annual_yield_usd,
        )

        return CollateralAnalysis(
            wallet=position.wallet,
            protocol=position.protocol,
            current_yield=current,
            optimized_yield=optimized,
            recommendations=tuple(recommendations),
            total_boost_percent=boost_percent,
            total_boost_usd=optimized.annual_yield_usd - current.annual_yield_usd,
            timestamp=datetime.now(timezone.utc),
        )

    def get_available_collateral(self, protocol: str) -> list[AssetYieldProfile]:
        """Every registry asset listed for ``protocol``, best effective APY first."""
        terms = self._protocol_collateral.get(getattr(protocol, "value", protocol), {})
        profiles = [
            AssetYieldProfile(
                symbol=asset.symbol,
                supply_apy=asset.supply_apy,
                staking_apy=asset.staking_apy,
                effective_apy=asset.effective_apy,
                liquidation_threshold=terms[symbol].liquidation_threshold,
                accepted=terms[symbol].accepted,
                is_lst=asset.is_lst,
                mint=asset.mint,
            )
            for symbol, asset in self._registry.items()
            if symbol in terms
        ]
        return sorted(profiles, key=lambda p: p.effective_apy, reverse=True)

    def get_yield_leaderboard(self, protocol: str) -> list[AssetYieldProfile]:
        return [p for p in self.get_available_collateral(protocol) if p.accepted]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_asset(self, symbol: str) -> AssetYield | None:
        asset = self._registry.get(symbol)
        if asset is not None:
            return asset
        upper = symbol.upper()
        for key, candidate in self._registry.items():
            if key.upper() == upper:
                return candidate
        return None

    def _apy_of(self, symbol: str) -> float:
        asset = self._resolve_asset(symbol)
        return asset.effective_apy if asset is not None else FALLBACK_APY

    def _current_yield(self, position: LendingPosition) -> CurrentYield:
        total = total_collateral_usd(position)
        if total == 0:
            return CurrentYield(total_collateral_usd=0.0, weighted_apy=0.0, annual_yield_usd=0.0)
        weighted_sum = sum(self._apy_of(c.symbol) * c.value_usd for c in position.collateral)
        return CurrentYield(
            total_collateral_usd=total,
            weighted_apy=weighted_sum / total,
            annual_yield_usd=weighted_sum,
        )

    def _find_better_alternatives(
        self, asset: CollateralAsset, position: LendingPosition
    ) -> list[CollateralRecommendation]:
        current_apy = self._apy_of(asset.symbol)
        terms = self._protocol_collateral.get(position.protocol.value, {})
        total_collateral = total_collateral_usd(position)
        total_debt = total_debt_usd(position)
        position_lt = position.liquidation_threshold
        current_hf = derived_health_factor(position)
        min_safe_hf = self._config.min_safe_health_factor

        recs: list[CollateralRecommendation] = []
        for symbol, candidate in self._registry.items():
            if symbol == asset.symbol:
                continue
            candidate_terms = terms.get(symbol)
            if candidate_terms is None or not candidate_terms.accepted:
                continue
            if candidate.effective_apy <= current_apy:
                continue

            new_lt = candidate_terms.liquidation_threshold
            if total_collateral > 0:
                other = total_collateral - asset.value_usd
                blended_lt = (other * position_lt + asset.value_usd * new_lt) / total_collateral
            else:
                blended_lt = new_lt
            projected_hf = calc_health_factor(total_collateral, total_debt, blended_lt)

            if projected_hf < min_safe_hf:
                logger.debug(
                    "Skipping %s -> %s: projected HF %.3f below %.2f",
                    asset.symbol, symbol, projected_hf, min_safe_hf,
                )
                continue

            boost = candidate.effective_apy - current_apy
            risk_note = None
            if new_lt < position_lt:
                risk_note = (
                    f"{symbol} has {(position_lt - new_lt) * 100:.0f}pp lower liquidation "
                    f"threshold ({new_lt * 100:.0f}% vs {position_lt * 100:.0f}%)"
                )

            recs.append(
                CollateralRecommendation(
                    from_asset=asset.symbol,
                    from_apy=current_apy,
                    to_asset=symbol,
                    to_apy=candidate.effective_apy,
                    yield_boost_percent=boost / current_apy * 100 if current_apy > 0 else 0.0,
                    yield_boost_absolute_percent=boost * 100,
                    annual_gain_usd=asset.value_usd * boost,
                    health_impact=HealthImpact(
                        current_hf=current_hf,
                        projected_hf=projected_hf,
                        safe=True,
                    ),
                    risk_note=risk_note,
                )
            )

        return sorted(recs, key=lambda r: r.annual_gain_usd, reverse=True)

    def _optimized_yield(
        self, position: LendingPosition, recommendations: list[CollateralRecommendation]
    ) -> OptimizedYield:
        best: dict[str, CollateralRecommendation] = {}
        for rec in recommendations:
            existing = best.get(rec.from_asset)
            if existing is None or rec.annual_gain_usd > existing.annual_gain_usd:
                best[rec.from_asset] = rec

        total = total_collateral_usd(position)
        if total == 0:
            return OptimizedYield(weighted_apy=0.0, annual_yield_usd=0.0)

        yield_sum = 0.0
        for asset in position.collateral:
            swap = best.get(asset.symbol)
            apy = swap.to_apy if swap is not None else self._apy_of(asset.symbol)
            yield_sum += apy * asset.value_usd

        return OptimizedYield(weighted_apy=yield_sum / total, annual_yield_usd=yield_sum)
