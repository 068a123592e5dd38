"""Relayer executor — hands a selected protection option to a signing service."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import ExecutorConfig
from ..models import LendingPosition, ProtectionOption

logger = logging.getLogger(__name__)


class ExecutionError(RuntimeError):
    """The relayer rejected or failed to submit a protection transaction."""


def build_payload(position: LendingPosition, option: ProtectionOption) -> dict[str, Any]:
    return {
        "wallet": position.wallet,
        "protocol": option.protocol.value,
        "option": {
            "id": option.id,
            "action": option.action.value,
            "asset": option.asset,
            "amount": option.amount,
            "amount_usd": option.amount_usd,
            "resulting_hf": option.resulting_hf,
        },
    }


class RelayerExecutor:
    """POST options to a relayer that builds, signs and sends the transaction."""

    def __init__(self, config: ExecutorConfig) -> None:
        self.endpoint = config.endpoint
        self.timeout = config.timeout
        self.api_key = config.api_key

    async def execute(self, position: LendingPosition, option: ProtectionOption) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        logger.info(
            "Submitting %s for %s on %s to relayer",
            option.id, position.wallet, option.protocol.value,
        )
        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.endpoint,
                    json=build_payload(position, option),
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        raise ExecutionError(f"Relayer returned HTTP {response.status}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ExecutionError(f"Relayer request failed: {e}") from e

        if "error" in data:
            raise ExecutionError(f"Relayer error: {data['error']}")
        signature = data.get("signature")
        if not signature:
            raise ExecutionError("Relayer response has no signature")
        return str(signature)
