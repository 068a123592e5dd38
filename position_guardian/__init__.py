"""Risk scoring and protection decisions for DeFi lending positions."""

__version__ = "0.1.0"
