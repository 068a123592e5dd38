"""Notifier protocol — alert sink abstraction."""
from typing import Protocol

from ..models import AlertEvent, ProtectionResult


class Notifier(Protocol):
    """Abstract interface for delivering alerts, protection results and logs."""

    async def send_alert(self, event: AlertEvent) -> bool: ...

    async def send_protection(self, result: ProtectionResult) -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
