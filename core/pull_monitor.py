"""
Confirmation-depth polling monitor for NCG transfers.

Emits one BlockBatch per block once the block is buried under the configured
number of confirmations, in strictly increasing block index order.
"""
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TypeVar

from core.exceptions import CursorInconsistencyError, TransientFetchError
from core.interfaces import EventSource
from core.models import BlockBatch, TransactionLocation, TransferredEvent
from core.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PullMonitor:
    """Polls the source chain tip and yields confirmed blocks."""

    def __init__(
        self,
        latest_location: TransactionLocation,
        confirmations: int,
        event_source: EventSource,
        address: str,
        poll_interval: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None
    ):
        if confirmations < 0:
            raise ValueError(f"confirmations must be >= 0, got {confirmations}")

        self.latest_location = latest_location
        self.confirmations = confirmations
        self.event_source = event_source
        self.address = address
        self.poll_interval = poll_interval
        self.retry_policy = retry_policy or RetryPolicy()

        self._latest_index: Optional[int] = None

    @property
    def latest_index(self) -> Optional[int]:
        """Index of the last block handed to the consumer (None before startup)."""
        return self._latest_index

    async def produce(self) -> AsyncIterator[BlockBatch]:
        """Yield confirmed block batches forever."""
        self._latest_index = await self._with_retry(self._resolve_cursor_index)
        logger.info(
            f"Pull monitor starting after block #{self._latest_index} "
            f"({self.confirmations} confirmations)"
        )

        remainder = await self._with_retry(self._resume_partial_block)
        if remainder is not None:
            yield remainder

        while True:
            try:
                tip_index = await self.event_source.get_tip_index()
                safe_index = tip_index - self.confirmations

                if safe_index <= self._latest_index:
                    logger.debug(f"No confirmed blocks yet (tip #{tip_index}, cursor #{self._latest_index})")
                    self.retry_policy.reset()
                    await asyncio.sleep(self.poll_interval)
                    continue

                for index in range(self._latest_index + 1, safe_index + 1):
                    block_hash = await self.event_source.get_block_hash(index)
                    events = await self.event_source.get_transferred_events(block_hash, self.address)
                    logger.debug(f"Block #{index} {block_hash}: {len(events)} event(s)")

                    yield BlockBatch(block_hash=block_hash, events=events)

                    self._latest_index = index
                    self.latest_location = TransactionLocation(block_hash=block_hash)

                self.retry_policy.reset()

            except CursorInconsistencyError:
                raise
            except Exception as e:
                logger.error(
                    f"Pull monitor cycle failed, retrying in {self.retry_policy.current_delay}s: {e}",
                    exc_info=True
                )
                await self.retry_policy.wait()

    async def _resolve_cursor_index(self) -> int:
        """Map the stored cursor to a canonical block index or fail hard."""
        block_hash = self.latest_location.block_hash

        try:
            index = await self.event_source.get_block_index(block_hash)
        except TransientFetchError:
            raise
        except Exception as e:
            raise CursorInconsistencyError(block_hash, f"Stored cursor does not resolve: {e}") from e

        try:
            canonical_hash = await self.event_source.get_block_hash(index)
        except TransientFetchError:
            raise
        except Exception as e:
            raise CursorInconsistencyError(block_hash, f"Block #{index} has no canonical hash: {e}") from e

        if canonical_hash != block_hash:
            raise CursorInconsistencyError(
                block_hash,
                f"Block #{index} on the canonical chain is {canonical_hash}"
            )

        return index

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a startup query, backing off on transient failures."""
        while True:
            try:
                result = await operation()
            except TransientFetchError as e:
                logger.warning(f"Startup query failed, retrying in {self.retry_policy.current_delay}s: {e}")
                await self.retry_policy.wait()
                continue
            self.retry_policy.reset()
            return result

    async def _resume_partial_block(self) -> Optional[BlockBatch]:
        """Events of the cursor block that follow the last processed transaction."""
        tx_id = self.latest_location.tx_id
        if tx_id is None:
            return None

        block_hash = self.latest_location.block_hash
        events = await self.event_source.get_transferred_events(block_hash, self.address)
        remaining = _events_after(events, tx_id)
        if remaining is None:
            logger.warning(f"Transaction {tx_id} not found in cursor block {block_hash}; nothing to resume")
            return None
        if not remaining:
            return None

        logger.info(f"Resuming {len(remaining)} unprocessed event(s) in block {block_hash}")
        return BlockBatch(block_hash=block_hash, events=remaining)


def _events_after(events: List[TransferredEvent], tx_id: str) -> Optional[List[TransferredEvent]]:
    for position, event in enumerate(events):
        if event.tx_id == tx_id:
            return events[position + 1:]
    return None
