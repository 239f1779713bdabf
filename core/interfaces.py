"""
Capabilities the relay consumes. Concrete implementations are injected.
"""
from typing import AsyncIterator, List, Optional, Protocol

from core.models import (
    BlockBatch, ExchangeRecord, MintReceipt, TransactionLocation, TransferredEvent
)


class EventSource(Protocol):
    """Source chain queries needed by the pull monitor."""

    async def get_block_index(self, block_hash: str) -> int: ...

    async def get_tip_index(self) -> int: ...

    async def get_block_hash(self, index: int) -> str: ...

    async def get_transferred_events(self, block_hash: str, address: str) -> List[TransferredEvent]: ...


class BlockMonitor(Protocol):
    """Produces an endless stream of per-block event batches."""

    def produce(self) -> AsyncIterator[BlockBatch]: ...


class MonitorStateStore(Protocol):
    async def store(self, monitor_key: str, location: TransactionLocation) -> None: ...

    async def load(self, monitor_key: str) -> Optional[TransactionLocation]: ...


class ExchangeHistoryStore(Protocol):
    async def record(self, entry: ExchangeRecord) -> None: ...

    async def get(self, tx_id: str) -> Optional[ExchangeRecord]: ...


class NotificationSink(Protocol):
    async def notify(self, channel: Optional[str], text: str) -> None: ...


class WrappedNCGMinter(Protocol):
    async def mint(self, recipient: str, amount: int) -> MintReceipt: ...


class NCGTransfer(Protocol):
    async def transfer(self, recipient: str, amount: str, memo: str) -> str: ...
