"""Protection executor — submits a selected protection option."""
from typing import Protocol

from ..models import LendingPosition, ProtectionOption


class ProtectionExecutor(Protocol):
    """Realizes a protection option and returns a transaction handle, or raises."""

    async def execute(self, position: LendingPosition, option: ProtectionOption) -> str: ...
