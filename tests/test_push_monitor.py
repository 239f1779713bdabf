import asyncio

import pytest

from core.models import TransactionLocation, WebhookEvent
from core.observer import MONITOR_KEY
from core.push_monitor import PushMonitor, drop_settled, group_by_block

CONTRACT = "0x44C5Fe0aD3e3F3A4d1a8a9a6a0eA7cF9b5e1D2a3"


def make_webhook_event(block_index=1, log_index=0, tx="0xtx", source=CONTRACT, amount="100"):
    return WebhookEvent.model_validate({
        "timestamp": "2026-10-19T00:00:00Z",
        "blockIndex": block_index,
        "logIndex": log_index,
        "blockHash": f"0xblock{block_index}",
        "transactionHash": tx,
        "sourceAddress": source,
        "abiHash": "0xabi",
        "abiSignature": "Burn(address,bytes32,uint256)",
        "args": {
            "named": {"sender": "0xsender", "amount": amount, "recipient": "0xrecipient"},
            "ordered": ["0xsender", "0xrecipient", amount],
        },
    })


@pytest.mark.asyncio
async def test_duplicates_collapse_and_group_by_block():
    monitor = PushMonitor(address=CONTRACT)
    first = make_webhook_event(block_index=1, log_index=0, tx="0xa")
    second = make_webhook_event(block_index=1, log_index=1, tx="0xb")
    third = make_webhook_event(block_index=2, log_index=0, tx="0xc")

    for event in (second, first, third, first, first.model_copy()):
        await monitor.ingest(event)

    batches = await monitor.drain()
    assert [batch.block_hash for batch in batches] == ["0xblock1", "0xblock2"]
    assert [event.tx_id for event in batches[0].events] == ["0xa", "0xb"]
    assert [event.tx_id for event in batches[1].events] == ["0xc"]

    assert monitor.pending_count == 0
    assert await monitor.drain() == []


@pytest.mark.asyncio
async def test_address_filter_is_case_insensitive():
    monitor = PushMonitor(address=CONTRACT.lower())

    assert await monitor.ingest(make_webhook_event(source=CONTRACT.upper().replace("0X", "0x")))
    assert not await monitor.ingest(make_webhook_event(source="0x0000000000000000000000000000000000000001"))
    assert monitor.pending_count == 1


@pytest.mark.asyncio
async def test_events_differing_in_any_field_are_distinct():
    monitor = PushMonitor(address=CONTRACT)
    await monitor.ingest(make_webhook_event(amount="100"))
    await monitor.ingest(make_webhook_event(amount="200"))
    assert monitor.pending_count == 2


@pytest.mark.asyncio
async def test_concurrent_ingest_and_drain_lose_nothing():
    monitor = PushMonitor(address=CONTRACT)
    events = [make_webhook_event(block_index=i % 5, log_index=i, tx=f"0x{i}") for i in range(200)]
    drained = []

    async def producer(chunk):
        for event in chunk:
            await monitor.ingest(event)
            await monitor.ingest(event)
            await asyncio.sleep(0)

    async def consumer():
        for _ in range(50):
            for batch in await monitor.drain():
                drained.extend(batch.events)
            await asyncio.sleep(0)

    await asyncio.gather(
        producer(events[:100]), producer(events[100:]), consumer()
    )
    for batch in await monitor.drain():
        drained.extend(batch.events)

    tx_ids = [event.tx_id for event in drained]
    assert len(tx_ids) == 200
    assert set(tx_ids) == {f"0x{i}" for i in range(200)}


@pytest.mark.asyncio
async def test_produce_seeds_from_catch_up(monkeypatch):
    monitor = PushMonitor(
        address=CONTRACT,
        latest_location=TransactionLocation(block_hash="0xblock3", tx_id="0xsettled"),
        drain_interval=0.01,
    )
    requested = []

    async def fake_fetch(block_hash):
        requested.append(block_hash)
        return [
            make_webhook_event(block_index=3, log_index=0, tx="0xsettled"),
            make_webhook_event(block_index=3, log_index=1, tx="0xcaught"),
            make_webhook_event(block_index=4, tx="0xnext"),
        ]

    monkeypatch.setattr(monitor, "fetch_since", fake_fetch)

    produced = monitor.produce()
    first = await asyncio.wait_for(produced.__anext__(), timeout=1)
    second = await asyncio.wait_for(produced.__anext__(), timeout=1)
    await produced.aclose()

    assert requested == ["0xblock3"]
    assert [first.block_hash, second.block_hash] == ["0xblock3", "0xblock4"]
    assert [event.tx_id for event in first.events] == ["0xcaught"]


@pytest.mark.asyncio
async def test_catch_up_failure_is_empty_result():
    monitor = PushMonitor(address=CONTRACT, event_api_url="http://127.0.0.1:9/", request_timeout=1)
    assert await monitor.fetch_since("0xblock1") == []


@pytest.mark.asyncio
async def test_closing_mid_drain_requeues_unyielded_blocks():
    monitor = PushMonitor(address=CONTRACT, drain_interval=0.01)
    await monitor.ingest(make_webhook_event(block_index=1, tx="0xa"))
    await monitor.ingest(make_webhook_event(block_index=2, tx="0xb"))

    produced = monitor.produce()
    first = await produced.__anext__()
    await produced.aclose()

    assert first.block_hash == "0xblock1"
    remaining = await monitor.drain()
    assert [batch.block_hash for batch in remaining] == ["0xblock2"]


def test_group_by_block_maps_named_args():
    batches = group_by_block([make_webhook_event(block_index=7, tx="0xz", amount="12.5")])
    event = batches[0].events[0]
    assert event.block_hash == "0xblock7"
    assert event.block_index == 7
    assert event.sender == "0xsender"
    assert event.amount == "12.5"
    assert event.memo == "0xrecipient"


def test_drop_settled_keeps_rest_of_cursor_block():
    events = [
        make_webhook_event(block_index=5, log_index=2, tx="0xc"),
        make_webhook_event(block_index=5, log_index=0, tx="0xa"),
        make_webhook_event(block_index=5, log_index=1, tx="0xb"),
        make_webhook_event(block_index=6, log_index=0, tx="0xd"),
    ]

    kept = drop_settled(events, TransactionLocation(block_hash="0xblock5", tx_id="0xb"))

    assert [event.transaction_hash for event in kept] == ["0xc", "0xd"]


@pytest.mark.parametrize("tx_id", [None, "0xunknown"])
def test_drop_settled_skips_whole_cursor_block(tx_id):
    events = [make_webhook_event(block_index=5, tx="0xa"), make_webhook_event(block_index=6, tx="0xd")]

    kept = drop_settled(events, TransactionLocation(block_hash="0xblock5", tx_id=tx_id))

    assert [event.transaction_hash for event in kept] == ["0xd"]


@pytest.mark.asyncio
async def test_restart_does_not_resettle_processed_cursor_block(monkeypatch, make_observer, ncg_transfer, state_store):
    # The pushed recipient "0xrecipient" is not an address, so every event takes the refund path
    refunded = make_webhook_event(block_index=5, tx="0xbad")
    later = make_webhook_event(block_index=6, tx="0xlater")

    first_run = PushMonitor(address=CONTRACT)
    await first_run.ingest(refunded)
    for batch in await first_run.drain():
        await make_observer().notify(batch)

    cursor = state_store.states[MONITOR_KEY]
    assert cursor == TransactionLocation(block_hash="0xblock5", tx_id="0xbad")
    assert len(ncg_transfer.calls) == 1

    restarted = PushMonitor(address=CONTRACT, latest_location=cursor, drain_interval=0.01)

    async def fake_fetch(block_hash):
        return [refunded, later]

    monkeypatch.setattr(restarted, "fetch_since", fake_fetch)

    produced = restarted.produce()
    batch = await asyncio.wait_for(produced.__anext__(), timeout=1)
    await produced.aclose()

    assert batch.block_hash == "0xblock6"
    outcomes = await make_observer().notify(batch)

    assert [outcome.kind for outcome in outcomes] == ["refunded"]
    assert len(ncg_transfer.calls) == 2
    assert state_store.states[MONITOR_KEY].tx_id == "0xlater"
