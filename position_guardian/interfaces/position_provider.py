"""Position provider — per-protocol snapshot fetching."""
from typing import Optional, Protocol

from ..models import LendingPosition


class PositionProvider(Protocol):
    """Abstract interface for fetching a wallet's position on one protocol."""

    @property
    def protocol_name(self) -> str: ...

    async def fetch_position(self, wallet: str) -> Optional[LendingPosition]: ...
