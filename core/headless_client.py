"""
GraphQL client for a Nine Chronicles headless node.
Implements the EventSource queries used by the pull monitor.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from core.exceptions import TransientFetchError
from core.models import TransferredEvent

logger = logging.getLogger(__name__)

BLOCK_INDEX_QUERY = """
query GetBlockIndex($hash: ID) {
    chainQuery { blockQuery { block(hash: $hash) { index } } }
}
"""

BLOCK_HASH_QUERY = """
query GetBlockHash($index: ID) {
    chainQuery { blockQuery { block(index: $index) { hash } } }
}
"""

TIP_INDEX_QUERY = """
query GetTipIndex {
    nodeStatus { tip { index } }
}
"""

TRANSFERRED_EVENTS_QUERY = """
query GetTransferNCGHistories($blockHash: ByteString!, $recipient: Address!) {
    transferNCGHistories(blockHash: $blockHash, recipient: $recipient) {
        blockHash
        txId
        sender
        recipient
        amount
        memo
    }
}
"""


class BlockNotFoundError(LookupError):
    """The node does not know the requested block."""


class HeadlessGraphQLClient:
    """Thin async GraphQL client over aiohttp."""

    def __init__(self, api_endpoint: str, timeout: float = 10.0):
        self.api_endpoint = api_endpoint
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None

    async def _query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        payload = {"query": query, "variables": variables or {}}
        try:
            async with self._session.post(
                self.api_endpoint, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status != 200:
                    raise TransientFetchError(f"GraphQL endpoint returned HTTP {resp.status}")
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransientFetchError(f"GraphQL request failed: {e}") from e

        if body.get("errors"):
            raise TransientFetchError(f"GraphQL errors: {body['errors']}")
        return body.get("data") or {}

    async def get_block_index(self, block_hash: str) -> int:
        data = await self._query(BLOCK_INDEX_QUERY, {"hash": block_hash})
        block = data["chainQuery"]["blockQuery"]["block"]
        if block is None:
            raise BlockNotFoundError(f"Unknown block hash {block_hash}")
        return int(block["index"])

    async def get_tip_index(self) -> int:
        data = await self._query(TIP_INDEX_QUERY)
        return int(data["nodeStatus"]["tip"]["index"])

    async def get_block_hash(self, index: int) -> str:
        data = await self._query(BLOCK_HASH_QUERY, {"index": index})
        block = data["chainQuery"]["blockQuery"]["block"]
        if block is None:
            raise BlockNotFoundError(f"No block at index {index}")
        return block["hash"]

    async def get_transferred_events(self, block_hash: str, address: str) -> List[TransferredEvent]:
        data = await self._query(TRANSFERRED_EVENTS_QUERY, {"blockHash": block_hash, "recipient": address})
        histories = data.get("transferNCGHistories") or []
        logger.debug(f"{len(histories)} transfer(s) to {address} in {block_hash}")

        return [
            TransferredEvent(
                block_hash=history["blockHash"],
                tx_id=history["txId"],
                sender=history["sender"],
                amount=str(history["amount"]),
                memo=history.get("memo"),
            )
            for history in histories
        ]
