"""HTTP position provider with endpoint fallback."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import ProtocolConfig
from ..models import LendingPosition
from .parser import parse_position

logger = logging.getLogger(__name__)


class HttpPositionProvider:
    """Fetch positions from an indexer API, rotating through endpoints on failure."""

    def __init__(self, protocol: str, config: ProtocolConfig) -> None:
        self._protocol = protocol
        self.endpoints = list(config.endpoints)
        self.timeout = config.timeout
        self.current_endpoint_index = 0

    @property
    def protocol_name(self) -> str:
        return self._protocol

    async def _get(self, path: str) -> dict[str, Any] | None:
        """GET ``path`` from the first healthy endpoint; ``None`` on 404."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            index = (self.current_endpoint_index + attempt) % len(self.endpoints)
            base_url = self.endpoints[index].rstrip("/")

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        f"{base_url}{path}",
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        if response.status == 404:
                            result = None
                        elif response.status != 200:
                            raise RuntimeError(f"HTTP {response.status}")
                        else:
                            result = await response.json()
                            if isinstance(result, dict) and "error" in result:
                                raise RuntimeError(f"API Error: {result['error']}")

                        if index != self.current_endpoint_index:
                            logger.info("Switched to endpoint: %s", base_url)
                            self.current_endpoint_index = index
                        return result
            except Exception as e:
                last_error = e
                logger.warning("Endpoint %s failed: %s", base_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RuntimeError(f"All {self._protocol} endpoints failed. Last error: {last_error}")

    async def fetch_position(self, wallet: str) -> LendingPosition | None:
        data = await self._get(f"/positions/{self._protocol}/{wallet}")
        if not data:
            return None
        if "position" in data:
            data = data["position"]
            if not data:
                return None
        return parse_position(data, wallet=wallet, protocol=self._protocol)
