"""Decision engines: risk scoring, protection pricing, collateral analysis."""
from .collateral_analyzer import CollateralAnalyzer
from .history import HealthHistoryStore
from .protection_engine import ProtectionEngine
from .risk_engine import RiskEngine

__all__ = ["CollateralAnalyzer", "HealthHistoryStore", "ProtectionEngine", "RiskEngine"]
