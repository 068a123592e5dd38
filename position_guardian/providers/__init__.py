"""Position providers."""
from .http import HttpPositionProvider
from .static import StaticPositionProvider

__all__ = ["HttpPositionProvider", "StaticPositionProvider"]
