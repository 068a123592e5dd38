"""Service modules"""
from .monitor import Monitor, WalletCheck

__all__ = ["Monitor", "WalletCheck"]
