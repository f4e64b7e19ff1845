"""
Factory Event Poller

Discovers new coin-creation events on the Zora factory by polling block
ranges. Push subscriptions drop events across reconnects; a checkpointed
poll does not.

Rules:
- First poll only anchors to the current head (history before start is ignored)
- Range is (last_processed, head], capped at max_block_range
- Events older than stale_block_threshold blocks are dropped
- Output is sorted by (block, log index)
- The checkpoint only moves after a successful fetch
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from creator_sniper.constants import COIN_CREATED_TOPICS, MAX_BLOCK_RANGE, STALE_BLOCK_THRESHOLD
from creator_sniper.core.models import CreationEvent
from creator_sniper.core.state import BotState
from creator_sniper.exceptions import ValidationException

logger = logging.getLogger(__name__)


class ChainReader(Protocol):
    async def get_block_number(self) -> int: ...

    async def get_logs(
        self, address: str, from_block: int, to_block: int, topics: list[str] | None = None
    ) -> list[dict[str, Any]]: ...


def _topic_address(topic: str) -> str:
    return Web3.to_checksum_address("0x" + topic[-40:])


def decode_creation_log(log: dict[str, Any], head: int) -> CreationEvent:
    """Turn a raw factory log into a CreationEvent or raise ValidationException."""
    topics = log.get("topics") or []
    tx_hash = log.get("transactionHash", "")
    if not topics:
        raise ValidationException("Log has no topics", tx=tx_hash)

    layout = COIN_CREATED_TOPICS.get(topics[0].lower())
    if layout is None:
        raise ValidationException("Not a coin creation topic", tx=tx_hash, topic=topics[0])
    if len(topics) < 4:
        raise ValidationException(f"Expected 4 topics, got {len(topics)}", tx=tx_hash)

    try:
        data = bytes.fromhex(log["data"].removeprefix("0x"))
        fields = abi_decode(layout, data)
    except (DecodingError, ValueError, KeyError, OverflowError) as e:
        raise ValidationException(f"Undecodable event data: {e}", tx=tx_hash) from e

    # Both layouts: currency, uri, name, symbol, coin, ...
    _currency, uri, name, symbol, coin = fields[:5]
    if int(coin, 16) == 0:
        raise ValidationException("Event has zero coin address", tx=tx_hash)

    block_number = int(log["blockNumber"])
    return CreationEvent(
        contract_address=Web3.to_checksum_address(log["address"]),
        creator_address=_topic_address(topics[1]),
        payout_recipient=_topic_address(topics[2]),
        token_address=Web3.to_checksum_address(coin),
        block_number=block_number,
        transaction_hash=tx_hash,
        log_index=int(log.get("logIndex") or 0),
        block_age=head - block_number,
        name=name,
        symbol=symbol,
        uri=uri,
        topic=topics[0].lower(),
    )


class EventPoller:
    """
    Usage:
        poller = EventPoller(rpc, factory_address, state)
        events = await poller.poll_once()   # first call anchors, returns []
    """

    SEEN_CAPACITY = 5000

    def __init__(
        self,
        rpc: ChainReader,
        factory_address: str,
        state: BotState | None = None,
        stale_block_threshold: int = STALE_BLOCK_THRESHOLD,
        max_block_range: int = MAX_BLOCK_RANGE,
    ) -> None:
        self.rpc = rpc
        self.factory_address = factory_address
        self.state = state or BotState()
        self.stale_block_threshold = stale_block_threshold
        self.max_block_range = max_block_range
        self.topics = list(COIN_CREATED_TOPICS)
        self._seen: set[tuple[int, str, int]] = set()
        self._seen_order: deque[tuple[int, str, int]] = deque()

    async def poll(self, last_processed_block: int | None) -> tuple[list[CreationEvent], int]:
        """
        One poll over (last_processed_block, head].

        Returns the fresh events and the new checkpoint. Raises
        NetworkException on RPC failure; the caller keeps its old checkpoint.
        """
        head = await self.rpc.get_block_number()

        if last_processed_block is None:
            logger.info(f"Anchoring at block {head}, ignoring everything before startup")
            return [], head

        if head <= last_processed_block:
            return [], last_processed_block

        from_block = last_processed_block + 1
        to_block = min(head, from_block + self.max_block_range - 1)

        logger.debug(f"Checking blocks {from_block}-{to_block} (head {head})")
        raw_logs = await self.rpc.get_logs(self.factory_address, from_block, to_block, self.topics)

        events: list[CreationEvent] = []
        for raw in raw_logs:
            if raw["topics"] and raw["topics"][0].lower() not in COIN_CREATED_TOPICS:
                continue
            self.state.stats.events_seen += 1
            try:
                event = decode_creation_log(raw, head)
            except ValidationException as e:
                self.state.stats.events_invalid += 1
                logger.warning(f"Dropping malformed factory log: {e}")
                continue

            if event.block_age > self.stale_block_threshold:
                self.state.stats.events_stale += 1
                logger.info(
                    f"FILTERED stale event {event.label}: {event.block_age} blocks old "
                    f"(limit {self.stale_block_threshold})"
                )
                continue

            if event.key in self._seen:
                logger.debug(f"FILTERED duplicate event {event.transaction_hash}#{event.log_index}")
                continue

            events.append(event)

        events.sort(key=lambda e: (e.block_number, e.log_index))
        for event in events:
            self._remember(event.key)

        if events:
            logger.info(f"Found {len(events)} new coin(s) in blocks {from_block}-{to_block}")
        return events, to_block

    async def poll_once(self) -> list[CreationEvent]:
        """Poll from the state's checkpoint and advance it on success."""
        events, new_block = await self.poll(self.state.last_processed_block)
        self.state.last_processed_block = new_block
        return events

    def _remember(self, key: tuple[int, str, int]) -> None:
        self._seen.add(key)
        self._seen_order.append(key)
        while len(self._seen_order) > self.SEEN_CAPACITY:
            self._seen.discard(self._seen_order.popleft())
