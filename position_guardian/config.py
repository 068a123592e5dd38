"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import (
    DEFAULT_PROTOCOL_PARAMS,
    DEFAULT_YIELD_RATES,
    ProtocolParams,
    YieldRates,
)
from .models import LendingProtocol, RankingStrategy

logger = logging.getLogger(__name__)

PROVIDER_KINDS = ("http", "static")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthThresholds:
    """Health factor boundaries between risk bands (below ``high`` = critical)."""

    safe: float = 2.0
    low: float = 1.5
    medium: float = 1.25
    high: float = 1.1


@dataclass(frozen=True)
class RiskEngineConfig:
    thresholds: HealthThresholds = field(default_factory=HealthThresholds)
    position_size_scaling: bool = True
    trend_window_size: int = 20
    trend_min_samples: int = 3
    target_health_factor: float = 1.5


@dataclass(frozen=True)
class ProtectionEngineConfig:
    target_health_factor: float = 1.5
    max_protection_usd: float = 10_000.0
    dry_run: bool = True
    preferred_strategy: RankingStrategy = RankingStrategy.YIELD_OPTIMIZED
    yield_rates: dict[str, YieldRates] = field(
        default_factory=lambda: dict(DEFAULT_YIELD_RATES)
    )


@dataclass(frozen=True)
class CollateralConfig:
    min_safe_health_factor: float = 1.25


@dataclass(frozen=True)
class ExecutorConfig:
    enabled: bool = False
    endpoint: str = ""
    timeout: int = 60
    api_key: str = ""


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_seconds: int = 30


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    address: str = ""
    protocols: tuple[str, ...] = ()
    auto_protect: bool = False


@dataclass(frozen=True)
class ProtocolConfig:
    provider: str = "http"
    endpoints: tuple[str, ...] = ()
    timeout: int = 30
    close_factor: float | None = None
    liquidation_penalty: float | None = None
    supply_apy: float | None = None
    borrow_apy: float | None = None
    positions: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    risk: RiskEngineConfig = field(default_factory=RiskEngineConfig)
    protection: ProtectionEngineConfig = field(default_factory=ProtectionEngineConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    collateral: CollateralConfig = field(default_factory=CollateralConfig)
    wallets: tuple[WalletConfig, ...] = ()
    protocols: dict[str, ProtocolConfig] = field(default_factory=dict)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def protocol_params(self) -> dict[str, ProtocolParams]:
        """Liquidation terms per protocol, config values overriding defaults."""
        params = dict(DEFAULT_PROTOCOL_PARAMS)
        for name, proto in self.protocols.items():
            base = params.get(name, ProtocolParams(close_factor=0.5, liquidation_penalty=0.05))
            params[name] = ProtocolParams(
                close_factor=(
                    base.close_factor if proto.close_factor is None else proto.close_factor
                ),
                liquidation_penalty=(
                    base.liquidation_penalty
                    if proto.liquidation_penalty is None
                    else proto.liquidation_penalty
                ),
                min_hf_buffer=base.min_hf_buffer,
            )
        return params


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _optional_float(raw: dict[str, Any], key: str) -> float | None:
    value = raw.get(key)
    return None if value is None else float(value)


_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _as_bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    """Read a flag; unset or empty (e.g. an unset ${VAR}) keeps the default."""
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Invalid boolean for '{key}': {value!r}")


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        check_interval_seconds=int(raw.get("check_interval_seconds", 30)),
    )


def _build_risk(raw: dict[str, Any]) -> RiskEngineConfig:
    th = raw.get("thresholds", {})
    return RiskEngineConfig(
        thresholds=HealthThresholds(
            safe=float(th.get("safe", 2.0)),
            low=float(th.get("low", 1.5)),
            medium=float(th.get("medium", 1.25)),
            high=float(th.get("high", 1.1)),
        ),
        position_size_scaling=_as_bool(raw, "position_size_scaling", True),
        trend_window_size=int(raw.get("trend_window_size", 20)),
        trend_min_samples=int(raw.get("trend_min_samples", 3)),
        target_health_factor=float(raw.get("target_health_factor", 1.5)),
    )


def _build_protection(
    raw: dict[str, Any], protocols: dict[str, ProtocolConfig]
) -> ProtectionEngineConfig:
    strategy = raw.get("preferred_strategy", RankingStrategy.YIELD_OPTIMIZED.value)
    try:
        preferred = RankingStrategy(strategy)
    except ValueError:
        raise ValueError(f"Unknown protection strategy '{strategy}'") from None

    yield_rates = dict(DEFAULT_YIELD_RATES)
    for name, proto in protocols.items():
        base = yield_rates.get(name, DEFAULT_YIELD_RATES["kamino"])
        yield_rates[name] = YieldRates(
            supply_apy=base.supply_apy if proto.supply_apy is None else proto.supply_apy,
            borrow_apy=base.borrow_apy if proto.borrow_apy is None else proto.borrow_apy,
        )

    return ProtectionEngineConfig(
        target_health_factor=float(raw.get("target_health_factor", 1.5)),
        max_protection_usd=float(raw.get("max_protection_usd", 10_000.0)),
        dry_run=_as_bool(raw, "dry_run", True),
        preferred_strategy=preferred,
        yield_rates=yield_rates,
    )


def _build_executor(raw: dict[str, Any]) -> ExecutorConfig:
    return ExecutorConfig(
        enabled=_as_bool(raw, "enabled", False),
        endpoint=raw.get("endpoint", ""),
        timeout=int(raw.get("timeout", 60)),
        api_key=raw.get("api_key", ""),
    )


def _build_collateral(raw: dict[str, Any]) -> CollateralConfig:
    return CollateralConfig(
        min_safe_health_factor=float(raw.get("min_safe_health_factor", 1.25)),
    )


def _build_wallets(raw: list[dict[str, Any]]) -> tuple[WalletConfig, ...]:
    wallets: list[WalletConfig] = []
    for w in raw:
        wallets.append(
            WalletConfig(
                label=w.get("label", ""),
                address=w.get("address", ""),
                protocols=tuple(w.get("protocols", [])),
                auto_protect=_as_bool(w, "auto_protect", False),
            )
        )
    return tuple(wallets)


def _build_protocols(raw: dict[str, Any]) -> dict[str, ProtocolConfig]:
    protocols: dict[str, ProtocolConfig] = {}
    for name, cfg in raw.items():
        cfg = cfg or {}
        protocols[name] = ProtocolConfig(
            provider=cfg.get("provider", "http"),
            endpoints=tuple(cfg.get("endpoints", [])),
            timeout=int(cfg.get("timeout", 30)),
            close_factor=_optional_float(cfg, "close_factor"),
            liquidation_penalty=_optional_float(cfg, "liquidation_penalty"),
            supply_apy=_optional_float(cfg, "supply_apy"),
            borrow_apy=_optional_float(cfg, "borrow_apy"),
            positions=tuple(cfg.get("positions", [])),
        )
    return protocols


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram") or {}
    em = raw.get("email") or {}
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_as_bool(tg, "enabled", False),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=_as_bool(em, "enabled", False),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    protocols = _build_protocols(raw.get("protocols") or {})
    protection_raw = raw.get("protection") or {}
    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor") or {}),
        risk=_build_risk(raw.get("risk") or {}),
        protection=_build_protection(protection_raw, protocols),
        executor=_build_executor(protection_raw.get("executor") or {}),
        collateral=_build_collateral(raw.get("collateral") or {}),
        wallets=_build_wallets(raw.get("wallets") or []),
        protocols=protocols,
        notifications=_build_notifications(raw.get("notifications") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.wallets:
        raise ValueError("At least one wallet must be configured")

    supported = {p.value for p in LendingProtocol}
    for name, proto in cfg.protocols.items():
        if name not in supported:
            raise ValueError(
                f"Unsupported protocol '{name}' (expected one of {sorted(supported)})"
            )
        if proto.provider not in PROVIDER_KINDS:
            raise ValueError(f"Protocol '{name}' has unknown provider '{proto.provider}'")
        if proto.provider == "http" and not proto.endpoints:
            raise ValueError(f"Protocol '{name}' uses the http provider but has no endpoints")

    for wallet in cfg.wallets:
        if not wallet.address:
            raise ValueError(f"Wallet '{wallet.label}' has no address")
        for proto in wallet.protocols:
            if proto not in cfg.protocols:
                raise ValueError(
                    f"Wallet '{wallet.label}' references unknown protocol '{proto}'"
                )

    th = cfg.risk.thresholds
    if not th.safe > th.low > th.medium > th.high > 1.0:
        raise ValueError(
            "Risk thresholds must satisfy safe > low > medium > high > 1.0"
        )
    if cfg.risk.trend_window_size < cfg.risk.trend_min_samples:
        raise ValueError("trend_window_size must be >= trend_min_samples")
    if cfg.risk.trend_min_samples < 2:
        raise ValueError("trend_min_samples must be at least 2")
    if cfg.protection.target_health_factor <= 0 or cfg.risk.target_health_factor <= 0:
        raise ValueError("target_health_factor must be positive")
    if cfg.protection.max_protection_usd < 0:
        raise ValueError("max_protection_usd must not be negative")
    if cfg.executor.enabled and not cfg.executor.endpoint:
        raise ValueError("Protection executor is enabled but has no endpoint")
