"""Static position provider — positions declared in config.yaml."""
from __future__ import annotations

import logging

from ..config import ProtocolConfig
from ..models import LendingPosition
from .parser import parse_position

logger = logging.getLogger(__name__)


class StaticPositionProvider:
    """Serve fixed snapshots, for demos and dry runs."""

    def __init__(self, protocol: str, config: ProtocolConfig) -> None:
        self._protocol = protocol
        self._positions = {
            str(raw.get("wallet", "")): parse_position(raw, protocol=protocol)
            for raw in config.positions
        }
        logger.debug("Loaded %d static %s position(s)", len(self._positions), protocol)

    @property
    def protocol_name(self) -> str:
        return self._protocol

    async def fetch_position(self, wallet: str) -> LendingPosition | None:
        return self._positions.get(wallet)
