"""
Webhook-fed monitor.

Events pushed by the indexer land in a pending set via ingest(). A drain loop
periodically takes everything pending, groups it by block and yields one
BlockBatch per block.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import AsyncIterator, Dict, List, Optional

import aiohttp
from pydantic import TypeAdapter, ValidationError

from core.models import BlockBatch, TransactionLocation, WebhookEvent

logger = logging.getLogger(__name__)

_event_list_adapter = TypeAdapter(List[WebhookEvent])


class PushMonitor:
    """Collects webhook deliveries and emits them grouped by block."""

    def __init__(
        self,
        address: str,
        latest_location: Optional[TransactionLocation] = None,
        event_api_url: str = "http://localhost:8000/",
        drain_interval: float = 2.0,
        request_timeout: float = 10.0
    ):
        self.address = address.lower()
        self.latest_location = latest_location
        self.event_api_url = event_api_url
        self.drain_interval = drain_interval
        self.request_timeout = request_timeout

        self._pending: Dict[str, WebhookEvent] = {}
        self._lock = asyncio.Lock()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def ingest(self, event: WebhookEvent) -> bool:
        """
        Queue a pushed event if it was emitted by the watched address.

        Returns:
            True if the event was accepted by the address filter
        """
        if event.source_address.lower() != self.address:
            logger.debug(f"Ignoring event from {event.source_address} (tx {event.transaction_hash})")
            return False

        async with self._lock:
            self._pending[event.identity] = event
        return True

    async def drain(self) -> List[BlockBatch]:
        """Atomically take all pending events and group them by block."""
        return group_by_block(await self._take_pending())

    async def _take_pending(self) -> List[WebhookEvent]:
        async with self._lock:
            snapshot = list(self._pending.values())
            self._pending.clear()
        return snapshot

    async def requeue(self, batches: List[BlockBatch], events: List[WebhookEvent]):
        """Put back events whose batches were never handed out."""
        pending_hashes = {batch.block_hash for batch in batches}
        async with self._lock:
            for event in events:
                if event.block_hash in pending_hashes:
                    self._pending.setdefault(event.identity, event)

    async def produce(self) -> AsyncIterator[BlockBatch]:
        """Yield block batches forever, draining every drain_interval seconds."""
        if self.latest_location is not None:
            caught_up = await self.fetch_since(self.latest_location.block_hash)
            for event in drop_settled(caught_up, self.latest_location):
                await self.ingest(event)
            logger.info(f"Catch-up seeded {self.pending_count} pending event(s)")

        while True:
            try:
                snapshot = await self._take_pending()
                batches = group_by_block(snapshot)
                if batches:
                    logger.info(f"Draining {len(snapshot)} event(s) across {len(batches)} block(s)")

                for position, batch in enumerate(batches):
                    try:
                        yield batch
                    except BaseException:
                        await self.requeue(batches[position + 1:], snapshot)
                        raise

                await asyncio.sleep(self.drain_interval)
            except Exception as e:
                logger.error(
                    f"Ignore and continue loop without breaking though unexpected error occurred: {e}",
                    exc_info=True
                )
                await asyncio.sleep(self.drain_interval)

    async def fetch_since(self, block_hash: str) -> List[WebhookEvent]:
        """
        Fetch every event from block_hash onwards from the indexer's query endpoint.

        Failures are logged and reported as an empty list so that startup
        never depends on the indexer being reachable.
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.event_api_url,
                    json={"blockFrom": block_hash},
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout)
                ) as resp:
                    if resp.status != 200:
                        logger.error(f"Catch-up query failed with HTTP {resp.status}")
                        return []
                    data = await resp.json(content_type=None)
            return _event_list_adapter.validate_python(data)

        except ValidationError as e:
            logger.error(f"Catch-up response did not match the event schema: {e}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error fetching catch-up events since {block_hash}: {e}")
        return []


def group_by_block(events: List[WebhookEvent]) -> List[BlockBatch]:
    """Group events by block hash, blocks ordered by index and events by log index."""
    ordered = sorted(events, key=lambda event: (event.block_index, event.log_index))

    groups: "OrderedDict[str, List[WebhookEvent]]" = OrderedDict()
    for event in ordered:
        groups.setdefault(event.block_hash, []).append(event)

    return [
        BlockBatch(
            block_hash=block_hash,
            events=[event.to_transferred_event() for event in block_events]
        )
        for block_hash, block_events in groups.items()
    ]


def drop_settled(events: List[WebhookEvent], location: TransactionLocation) -> List[WebhookEvent]:
    """
    Remove catch-up events of the cursor block that were already processed.

    Events of the cursor block up to and including the cursor transaction are
    dropped. A cursor without a transaction, or one whose transaction is not
    in the block, marks the whole block as processed.
    """
    cursor_block = sorted(
        (event for event in events if event.block_hash == location.block_hash),
        key=lambda event: event.log_index
    )
    later = [event for event in events if event.block_hash != location.block_hash]
    if location.tx_id is None:
        return later

    settled = [position for position, event in enumerate(cursor_block) if event.transaction_hash == location.tx_id]
    if not settled:
        logger.warning(
            f"Transaction {location.tx_id} not found in cursor block {location.block_hash}; nothing to resume"
        )
        return later

    return cursor_block[settled[-1] + 1:] + later
