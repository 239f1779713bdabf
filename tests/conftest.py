from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from core.models import (
    ExchangeRecord, LimitationPolicy, MintReceipt, TransactionLocation, TransferredEvent
)
from core.observer import NCGTransferredEventObserver

RECIPIENT = "0x5b38da6a701c568545dcfcb03fcb875f56beddc4"
OTHER_RECIPIENT = "0xab8483f64d9c6d1ecf9b849ae677dd3315835cb2"
SENDER = "0x1c2d3e4f5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d"


def make_event(tx_id, amount="1000", memo=RECIPIENT, block_hash="block-1", sender=SENDER):
    return TransferredEvent(block_hash=block_hash, tx_id=tx_id, sender=sender, amount=amount, memo=memo)


class FakeEventSource:
    """In-memory chain: block i has hash f"h{i}"."""

    def __init__(self, tip: int, events: Optional[Dict[str, List[TransferredEvent]]] = None):
        self.tip = tip
        self.events = events or {}
        self.hash_overrides: Dict[int, str] = {}
        self.hash_failures: Dict[int, Exception] = {}
        self.tip_failures = 0
        self.fetched: List[str] = []

    async def get_block_index(self, block_hash: str) -> int:
        if not block_hash.startswith("h"):
            raise LookupError(f"unknown block {block_hash}")
        return int(block_hash[1:])

    async def get_tip_index(self) -> int:
        if self.tip_failures:
            from core.exceptions import TransientFetchError
            self.tip_failures -= 1
            raise TransientFetchError("node unavailable")
        return self.tip

    async def get_block_hash(self, index: int) -> str:
        if index in self.hash_failures:
            raise self.hash_failures[index]
        return self.hash_overrides.get(index, f"h{index}")

    async def get_transferred_events(self, block_hash: str, address: str) -> List[TransferredEvent]:
        self.fetched.append(block_hash)
        return list(self.events.get(block_hash, []))


class FakeStateStore:
    def __init__(self):
        self.writes: List[TransactionLocation] = []
        self.states: Dict[str, TransactionLocation] = {}

    async def store(self, monitor_key, location):
        self.writes.append(location)
        self.states[monitor_key] = location

    async def load(self, monitor_key):
        return self.states.get(monitor_key)


class FakeHistoryStore:
    def __init__(self):
        self.records: Dict[str, ExchangeRecord] = {}

    async def record(self, entry):
        self.records.setdefault(entry.tx_id, entry)

    async def get(self, tx_id):
        return self.records.get(tx_id)


class FakeNotifier:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    async def notify(self, channel, text):
        if self.fail:
            raise RuntimeError("telegram down")
        self.messages.append((channel, text))


class FakeMinter:
    def __init__(self, failing_recipients=()):
        self.calls = []
        self.failing_recipients = {address.lower() for address in failing_recipients}

    async def mint(self, recipient, amount):
        if recipient.lower() in self.failing_recipients:
            raise RuntimeError("execution reverted")
        self.calls.append((recipient, amount))
        return MintReceipt(transaction_hash=f"0xmint{len(self.calls)}")


class FakeTransfer:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def transfer(self, recipient, amount, memo):
        if self.fail:
            raise RuntimeError("staging failed")
        self.calls.append((recipient, amount, memo))
        return f"refund-{len(self.calls)}"


@pytest.fixture
def state_store():
    return FakeStateStore()


@pytest.fixture
def history_store():
    return FakeHistoryStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def minter():
    return FakeMinter()


@pytest.fixture
def ncg_transfer():
    return FakeTransfer()


@pytest.fixture
def make_observer(state_store, history_store, notifier, minter, ncg_transfer):
    def _make(**overrides):
        kwargs = dict(
            ncg_transfer=ncg_transfer,
            minter=minter,
            notifier=notifier,
            state_store=state_store,
            history_store=history_store,
            explorer_url="https://explorer.example/9c",
            etherscan_url="https://etherscan.example",
            exchange_fee_ratio=Decimal("0.01"),
            limitation_policy=LimitationPolicy(minimum=Decimal("1"), maximum=Decimal("10000")),
            notification_channel="-100123",
        )
        kwargs.update(overrides)
        return NCGTransferredEventObserver(**kwargs)

    return _make
