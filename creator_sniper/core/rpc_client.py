"""
Chain RPC Client

Thin async wrapper over web3 for the two calls the poller needs:
current head and factory logs for a block range.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from web3 import AsyncWeb3, Web3
from web3.providers.rpc import AsyncHTTPProvider

from ..exceptions import NetworkException
from ..utils.retry import CircuitBreaker

logger = logging.getLogger(__name__)


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        text = value.hex()
    else:
        text = str(value)
    if not text.startswith("0x"):
        text = "0x" + text
    return text.lower()


def normalize_log(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a web3 log (HexBytes, AttributeDict) into plain str/int fields."""
    return {
        "address": str(raw.get("address", "")).lower(),
        "blockNumber": int(raw["blockNumber"]),
        "transactionHash": _hex(raw.get("transactionHash")),
        "logIndex": int(raw.get("logIndex") or 0),
        "topics": [_hex(t) for t in raw.get("topics", [])],
        "data": _hex(raw.get("data")),
    }


class ChainRpcClient:
    """
    Usage:
        client = ChainRpcClient("https://mainnet.base.org")
        head = await client.get_block_number()
        logs = await client.get_logs(factory, head - 10, head, topics)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=30.0, name="RPC")

    async def get_block_number(self) -> int:
        return int(await self._call("eth_blockNumber", self.w3.eth.block_number))

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "address": Web3.to_checksum_address(address),
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        if topics:
            # OR-match on topic0
            params["topics"] = [list(topics)]
        raw_logs = await self._call("eth_getLogs", self.w3.eth.get_logs(params))
        return [normalize_log(dict(entry)) for entry in raw_logs]

    async def _call(self, method: str, awaitable) -> Any:
        if not self.circuit_breaker.can_execute():
            # Close the coroutine we will not await
            awaitable.close()
            raise NetworkException("RPC circuit open", method=method)
        try:
            result = await asyncio.wait_for(awaitable, timeout=self.timeout)
        except Exception as e:
            self.circuit_breaker.record_failure()
            raise NetworkException(f"{method} failed: {e}", method=method) from e
        self.circuit_breaker.record_success()
        return result

    async def close(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
