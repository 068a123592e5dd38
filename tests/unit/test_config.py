"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from position_guardian.config import (
    AppConfig,
    HealthThresholds,
    ProtocolConfig,
    RiskEngineConfig,
    WalletConfig,
    _interpolate_env,
    _validate,
    load_config,
)
from position_guardian.models import RankingStrategy


def _valid_config(**overrides) -> AppConfig:
    base = dict(
        wallets=(WalletConfig(label="w", address="0xA", protocols=("kamino",)),),
        protocols={"kamino": ProtocolConfig(provider="static")},
    )
    base.update(overrides)
    return AppConfig(**base)


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "items": ["${TOK}", 3]})
        assert result == {"key": "secret", "items": ["secret", 3]}

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.monitor.check_interval_seconds == 15
        assert cfg.wallets[0].label == "test-wallet"
        assert cfg.wallets[0].auto_protect is True
        assert cfg.wallets[0].protocols == ("kamino", "marginfi")

    def test_risk_section(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.risk.thresholds == HealthThresholds(safe=2.2, low=1.6, medium=1.3, high=1.15)
        assert cfg.risk.trend_window_size == 10
        assert cfg.risk.trend_min_samples == 4
        assert cfg.risk.position_size_scaling is True

    def test_protection_section(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.protection.target_health_factor == 1.6
        assert cfg.protection.max_protection_usd == 5000
        assert cfg.protection.dry_run is False
        assert cfg.protection.preferred_strategy is RankingStrategy.COST_OPTIMIZED
        assert cfg.executor.enabled is True
        assert cfg.executor.endpoint == "https://relayer.example.com/execute"
        assert cfg.executor.timeout == 20
        assert cfg.collateral.min_safe_health_factor == 1.3

    def test_yield_rate_overrides(self, sample_yaml_path: Path) -> None:
        rates = load_config(sample_yaml_path).protection.yield_rates
        assert rates["kamino"].supply_apy == 0.07
        assert rates["kamino"].borrow_apy == 0.085
        assert rates["solend"].supply_apy == 0.045

    def test_protocol_params_overrides(self, sample_yaml_path: Path) -> None:
        params = load_config(sample_yaml_path).protocol_params()
        assert params["marginfi"].close_factor == 0.5
        assert params["marginfi"].liquidation_penalty == 0.1
        assert params["kamino"].close_factor == 0.5
        assert params["solend"].liquidation_penalty == 0.05

    def test_protocols_section(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.protocols["kamino"].endpoints == (
            "https://api1.example.com",
            "https://api2.example.com",
        )
        assert cfg.protocols["kamino"].timeout == 10
        assert cfg.protocols["marginfi"].provider == "static"
        assert len(cfg.protocols["marginfi"].positions) == 1

    def test_defaults_for_missing_sections(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "wallets:\n"
            "  - {label: w, address: '0xA', protocols: [kamino]}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        cfg = load_config(cfg_file)
        assert cfg.monitor.check_interval_seconds == 30
        assert cfg.risk == RiskEngineConfig()
        assert cfg.protection.dry_run is True
        assert cfg.protection.preferred_strategy is RankingStrategy.YIELD_OPTIMIZED
        assert cfg.executor.enabled is False
        assert cfg.notifications.telegram.enabled is False

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_ADDR", "0xABCDEF")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "wallets:\n"
            "  - {label: w1, address: '${TEST_ADDR}', protocols: [kamino]}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        assert load_config(cfg_file).wallets[0].address == "0xABCDEF"

    def test_unset_env_flag_keeps_dry_run(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("PG_DRY_RUN", raising=False)
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "protection: {dry_run: '${PG_DRY_RUN}'}\n"
            "wallets:\n"
            "  - {label: w, address: '0xA', protocols: [kamino], auto_protect: 'yes'}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        cfg = load_config(cfg_file)
        assert cfg.protection.dry_run is True
        assert cfg.wallets[0].auto_protect is True

    def test_string_flags(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PG_DRY_RUN", "False")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "protection: {dry_run: '${PG_DRY_RUN}'}\n"
            "wallets:\n"
            "  - {label: w, address: '0xA', protocols: [kamino]}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        assert load_config(cfg_file).protection.dry_run is False

    def test_invalid_flag_raises(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "protection: {dry_run: maybe}\n"
            "wallets:\n"
            "  - {label: w, address: '0xA', protocols: [kamino]}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        with pytest.raises(ValueError, match="Invalid boolean for 'dry_run'"):
            load_config(cfg_file)

    def test_unknown_strategy(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "protection: {preferred_strategy: yolo}\n"
            "wallets:\n"
            "  - {label: w, address: '0xA', protocols: [kamino]}\n"
            "protocols:\n"
            "  kamino: {provider: static}\n"
        )
        with pytest.raises(ValueError, match="Unknown protection strategy"):
            load_config(cfg_file)


class TestValidation:
    def test_valid(self) -> None:
        _validate(_valid_config())

    def test_no_wallets(self) -> None:
        with pytest.raises(ValueError, match="At least one wallet"):
            _validate(_valid_config(wallets=()))

    def test_wallet_without_address(self) -> None:
        with pytest.raises(ValueError, match="has no address"):
            _validate(_valid_config(wallets=(WalletConfig(label="w", protocols=("kamino",)),)))

    def test_wallet_unknown_protocol(self) -> None:
        wallets = (WalletConfig(label="w", address="0xA", protocols=("solend",)),)
        with pytest.raises(ValueError, match="references unknown protocol"):
            _validate(_valid_config(wallets=wallets))

    def test_unsupported_protocol(self) -> None:
        with pytest.raises(ValueError, match="Unsupported protocol"):
            _validate(_valid_config(protocols={"aave": ProtocolConfig(provider="static")}))

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="unknown provider"):
            _validate(_valid_config(protocols={"kamino": ProtocolConfig(provider="grpc")}))

    def test_http_provider_needs_endpoints(self) -> None:
        with pytest.raises(ValueError, match="no endpoints"):
            _validate(_valid_config(protocols={"kamino": ProtocolConfig(provider="http")}))

    def test_unordered_thresholds(self) -> None:
        risk = RiskEngineConfig(thresholds=HealthThresholds(safe=1.5, low=2.0))
        with pytest.raises(ValueError, match="safe > low > medium > high > 1.0"):
            _validate(_valid_config(risk=risk))

    def test_high_threshold_must_exceed_one(self) -> None:
        risk = RiskEngineConfig(thresholds=HealthThresholds(high=1.0))
        with pytest.raises(ValueError, match="safe > low"):
            _validate(_valid_config(risk=risk))

    def test_window_smaller_than_min_samples(self) -> None:
        risk = RiskEngineConfig(trend_window_size=2, trend_min_samples=3)
        with pytest.raises(ValueError, match="trend_window_size"):
            _validate(_valid_config(risk=risk))

    def test_non_positive_target(self) -> None:
        risk = RiskEngineConfig(target_health_factor=0)
        with pytest.raises(ValueError, match="target_health_factor"):
            _validate(_valid_config(risk=risk))
