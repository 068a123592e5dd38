"""Monitoring orchestration — wallets x protocols through the decision engines."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..config import AppConfig, WalletConfig
from ..engines import CollateralAnalyzer, ProtectionEngine, RiskEngine
from ..executors import RelayerExecutor
from ..health import total_debt_usd
from ..interfaces.executor import ProtectionExecutor
from ..interfaces.notifier import Notifier
from ..interfaces.position_provider import PositionProvider
from ..models import (
    AlertEvent,
    AlertType,
    CollateralAnalysis,
    LendingPosition,
    MonitorStatus,
    ProtectionOption,
    ProtectionResult,
    RiskAssessment,
    RiskLevel,
    WalletRiskAssessment,
)
from ..notifications import EmailNotifier, TelegramNotifier
from ..providers import HttpPositionProvider, StaticPositionProvider

logger = logging.getLogger(__name__)

# Registry of position provider factories keyed by provider kind.
_PROVIDER_FACTORIES: dict[str, Any] = {
    "http": lambda name, cfg: HttpPositionProvider(name, cfg),
    "static": lambda name, cfg: StaticPositionProvider(name, cfg),
}

_PROTECT_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)

# Alerts kept in memory for get_alerts; older ones are dropped.
MAX_ALERT_HISTORY = 1000


@dataclass(frozen=True)
class WalletCheck:
    positions: tuple[LendingPosition, ...]
    assessments: tuple[RiskAssessment, ...]
    alerts: tuple[AlertEvent, ...]


class Monitor:
    """Orchestrates risk checks, alerting and auto-protection across wallets."""

    def __init__(
        self,
        config: AppConfig,
        providers: dict[str, PositionProvider] | None = None,
        notifiers: list[Notifier] | None = None,
        executor: ProtectionExecutor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._clock = clock

        if providers is None:
            providers = {}
            for proto_name, proto_cfg in config.protocols.items():
                factory = _PROVIDER_FACTORIES.get(proto_cfg.provider)
                if factory:
                    providers[proto_name] = factory(proto_name, proto_cfg)
                else:
                    logger.warning(
                        "No provider factory '%s' for protocol '%s'",
                        proto_cfg.provider, proto_name,
                    )
        self._providers = providers

        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
            if config.notifications.email.enabled:
                notifiers.append(EmailNotifier(config.notifications.email))
        self._notifiers = notifiers

        if executor is None and config.executor.enabled:
            executor = RelayerExecutor(config.executor)
        self._executor = executor

        self.risk_engine = RiskEngine(config.risk, config.protocol_params(), clock=clock)
        self.protection_engine = ProtectionEngine(config.protection)
        self.collateral_analyzer = CollateralAnalyzer(config.collateral)

        self._watchlist: dict[str, WalletConfig] = {w.address: w for w in config.wallets}
        self._alerts: deque[AlertEvent] = deque(maxlen=MAX_ALERT_HISTORY)
        self._alerts_triggered = 0
        self._protection_results: list[ProtectionResult] = []
        self._last_check: datetime | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Watchlist
    # ------------------------------------------------------------------

    def add_wallet(self, wallet: WalletConfig) -> None:
        self._watchlist[wallet.address] = wallet
        logger.info("Added wallet %s to watchlist", wallet.address)

    def remove_wallet(self, address: str) -> None:
        self._watchlist.pop(address, None)
        logger.info("Removed wallet %s from watchlist", address)

    def _protocols_for(self, wallet: str) -> list[str]:
        wallet_cfg = self._watchlist.get(wallet)
        if wallet_cfg is not None and wallet_cfg.protocols:
            return [p for p in wallet_cfg.protocols if p in self._providers]
        return list(self._providers)

    def _label(self, wallet: str) -> str:
        wallet_cfg = self._watchlist.get(wallet)
        return wallet_cfg.label if wallet_cfg is not None and wallet_cfg.label else wallet

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    async def get_position(self, wallet: str, protocol: str) -> LendingPosition | None:
        provider = self._providers.get(protocol)
        if provider is None:
            logger.warning("No provider configured for protocol '%s'", protocol)
            return None
        try:
            return await provider.fetch_position(wallet)
        except Exception as e:
            logger.error("Error fetching %s position for %s: %s", protocol, wallet, e)
            return None

    async def get_all_positions(self, wallet: str) -> list[LendingPosition]:
        """Positions with outstanding debt across the wallet's protocols."""
        positions: list[LendingPosition] = []
        for proto_name in self._protocols_for(wallet):
            try:
                position = await self._providers[proto_name].fetch_position(wallet)
            except Exception as e:
                logger.error("Error fetching %s position for %s: %s", proto_name, wallet, e)
                continue
            if position is not None and position.debt and total_debt_usd(position) > 0:
                positions.append(position)
        return positions

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _build_alert(
        self, position: LendingPosition, assessment: RiskAssessment
    ) -> AlertEvent | None:
        hf = position.health_factor
        protocol = position.protocol.value
        score = assessment.risk_score
        first_reason = (
            assessment.recommendations[0].reason if assessment.recommendations else None
        )

        if assessment.risk_level is RiskLevel.CRITICAL:
            if hf <= 1.0:
                alert_type = AlertType.LIQUIDATED
                message = f"Position liquidated on {protocol}"
            else:
                alert_type = AlertType.CRITICAL
                message = (
                    f"CRITICAL [score:{score}]: HF {hf:.3f} on {protocol} — "
                    f"{first_reason or 'immediate action needed'}"
                )
        elif assessment.risk_level is RiskLevel.HIGH:
            alert_type = AlertType.CRITICAL
            message = (
                f"HIGH RISK [score:{score}]: HF {hf:.3f} on {protocol} — "
                f"{first_reason or 'action recommended'}"
            )
        elif assessment.risk_level is RiskLevel.MEDIUM:
            alert_type = AlertType.WARNING
            message = f"WARNING [score:{score}]: HF {hf:.3f} on {protocol} — monitoring"
        else:
            return None

        return AlertEvent(
            type=alert_type,
            wallet=position.wallet,
            protocol=position.protocol,
            health_factor=hf,
            risk_score=score,
            message=message,
            timestamp=datetime.now(timezone.utc),
        )

    async def check_wallet(self, wallet: str) -> WalletCheck:
        positions = await self.get_all_positions(wallet)
        assessments: list[RiskAssessment] = []
        alerts: list[AlertEvent] = []

        for position in positions:
            assessment = self.risk_engine.assess_position(position)
            assessments.append(assessment)
            logger.info(
                "Position — %s · %s · HF %.3f · score %d (%s)",
                self._label(wallet),
                position.protocol.value,
                position.health_factor,
                assessment.risk_score,
                assessment.risk_level.value,
            )
            alert = self._build_alert(position, assessment)
            if alert is not None:
                alerts.append(alert)

        self._alerts.extend(alerts)
        self._alerts_triggered += len(alerts)
        return WalletCheck(tuple(positions), tuple(assessments), tuple(alerts))

    @staticmethod
    def _format_check(wallet_cfg: WalletConfig, check: WalletCheck) -> str:
        lines = [f"📊 {wallet_cfg.label or wallet_cfg.address}"]
        for assessment in check.assessments:
            lines.append(
                f"{assessment.protocol.value} · HF {assessment.health_factor:.3f} · "
                f"{assessment.risk_level.value} (score {assessment.risk_score})"
            )
        return "\n".join(lines)

    async def check_and_alert(self) -> None:
        """One monitoring tick over every watched wallet."""
        for address, wallet_cfg in list(self._watchlist.items()):
            try:
                check = await self.check_wallet(address)

                if check.assessments:
                    await self._send_log(self._format_check(wallet_cfg, check), silent=True)

                for alert in check.alerts:
                    logger.warning("Alert for %s: %s", wallet_cfg.label or address, alert.message)
                    await self._send_alert(alert)

                if wallet_cfg.auto_protect:
                    for position, assessment in zip(check.positions, check.assessments):
                        if assessment.risk_level not in _PROTECT_LEVELS:
                            continue
                        logger.info(
                            "Auto-protecting %s on %s...", address, position.protocol.value
                        )
                        result = await self.protection_engine.protect(
                            position, assessment, self._executor
                        )
                        self._protection_results.append(result)
                        await self._send_protection(result)
            except Exception as e:
                logger.error("Error checking %s: %s", address, e)

        self._last_check = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # On-demand operations
    # ------------------------------------------------------------------

    async def assess_risk(self, wallet: str) -> WalletRiskAssessment:
        positions = await self.get_all_positions(wallet)
        return self.risk_engine.assess_wallet(positions)

    async def evaluate_protection(
        self, wallet: str, protocol: str
    ) -> tuple[list[ProtectionOption], RiskAssessment] | None:
        """Ranked options without executing anything."""
        position = await self.get_position(wallet, protocol)
        if position is None:
            return None
        assessment = self.risk_engine.assess_position(position)
        return self.protection_engine.evaluate_options(position, assessment), assessment

    async def execute_protection(self, wallet: str, protocol: str) -> ProtectionResult | None:
        position = await self.get_position(wallet, protocol)
        if position is None:
            return None
        assessment = self.risk_engine.assess_position(position)
        result = await self.protection_engine.protect(position, assessment, self._executor)
        self._protection_results.append(result)
        return result

    async def analyze_collateral(
        self, wallet: str, protocol: str | None = None
    ) -> list[CollateralAnalysis]:
        if protocol:
            position = await self.get_position(wallet, protocol)
            if position is None:
                return []
            return [self.collateral_analyzer.analyze_position(position)]

        positions = await self.get_all_positions(wallet)
        return [self.collateral_analyzer.analyze_position(p) for p in positions]

    async def generate_daily_report(self) -> str:
        """Build the per-wallet risk and yield report and send it as a log."""
        sections: list[str] = []

        for address, wallet_cfg in self._watchlist.items():
            lines: list[str] = []
            for position in await self.get_all_positions(address):
                assessment = self.risk_engine.assess_position(position)
                analysis = self.collateral_analyzer.analyze_position(position)
                line = (
                    f"{position.protocol.value} · {assessment.risk_level.value.upper()} "
                    f"(score {assessment.risk_score})\n"
                    f"  HF: {position.health_factor:.3f}\n"
                    f"  Collateral APY: {analysis.current_yield.weighted_apy * 100:.2f}%"
                )
                if analysis.recommendations:
                    best = analysis.recommendations[0]
                    line += (
                        f"\n  Best swap: {best.from_asset} → {best.to_asset} "
                        f"(+${best.annual_gain_usd:,.2f}/yr)"
                    )
                lines.append(line)

            if lines:
                header = f"━━ {wallet_cfg.label or address} ━━"
                sections.append(header + "\n\n" + "\n\n".join(lines))

        body = "\n\n".join(sections) if sections else "No active positions found."
        report = (
            f"📋 Daily Position Guardian Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')} UTC"
        )

        await self._send_log(report, silent=False)
        logger.info("Daily report sent")
        return report

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_continuous(self, interval_seconds: int | None = None) -> None:
        interval = interval_seconds or self._config.monitor.check_interval_seconds
        logger.info("Starting continuous monitoring (checking every %d seconds)", interval)

        self._running = True
        self._stop_event = asyncio.Event()
        try:
            while self._running:
                try:
                    await self.check_and_alert()
                except Exception as e:
                    logger.error("Error in monitoring loop: %s", e)
                if not self._running:
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Monitor stopped")

    def stop(self) -> None:
        """End the loop once the in-flight cycle finishes."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> MonitorStatus:
        return MonitorStatus(
            is_running=self._running,
            watched_wallets=len(self._watchlist),
            last_check=self._last_check,
            alerts_triggered=self._alerts_triggered,
            protection_actions_executed=sum(1 for r in self._protection_results if r.success),
        )

    def get_alerts(self, wallet: str | None = None) -> list[AlertEvent]:
        if wallet:
            return [a for a in self._alerts if a.wallet == wallet]
        return list(self._alerts)

    def get_protection_log(self) -> list[ProtectionResult]:
        return list(self._protection_results)

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, event: AlertEvent) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(event)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    async def _send_protection(self, result: ProtectionResult) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_protection(result)
            except Exception as e:
                logger.error("Notifier send_protection failed: %s", e)
