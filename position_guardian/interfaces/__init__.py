"""Protocol interfaces for the position guardian."""
from .executor import ProtectionExecutor
from .notifier import Notifier
from .position_provider import PositionProvider

__all__ = ["Notifier", "PositionProvider", "ProtectionExecutor"]
