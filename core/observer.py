"""
NCG transfer observer: turns confirmed deposits into WNCG mints or refunds.

Batches are processed one at a time and events in order. The cursor is
persisted only after an event's action succeeded, so a crash never skips an
event. A failing event is reported and the rest of the batch still runs.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from core.exchange import REFUND_MEMO, ExchangeRequest, quote, validate
from core.interfaces import (
    ExchangeHistoryStore, MonitorStateStore, NCGTransfer, NotificationSink, WrappedNCGMinter
)
from core.models import (
    BlockBatch, ExchangeOutcome, ExchangeRecord, Failed, LimitationPolicy, Minted, Refunded,
    Skipped, TransactionLocation, TransferredEvent
)
from utils.formatting import (
    format_refund_notification, format_wrapped_notification, format_wrapping_failure_notification
)

logger = logging.getLogger(__name__)
exchanges_logger = logging.getLogger('exchanges')

MONITOR_KEY = "nineChronicles"


class NCGTransferredEventObserver:
    """Consumes block batches from a monitor and settles each transfer."""

    def __init__(
        self,
        ncg_transfer: NCGTransfer,
        minter: WrappedNCGMinter,
        notifier: NotificationSink,
        state_store: MonitorStateStore,
        history_store: ExchangeHistoryStore,
        explorer_url: str,
        etherscan_url: str,
        exchange_fee_ratio: Decimal,
        limitation_policy: LimitationPolicy,
        notification_channel: Optional[str] = None,
        destination_decimals: int = 18,
        monitor_key: str = MONITOR_KEY
    ):
        self.ncg_transfer = ncg_transfer
        self.minter = minter
        self.notifier = notifier
        self.state_store = state_store
        self.history_store = history_store
        self.explorer_url = explorer_url
        self.etherscan_url = etherscan_url
        # The fee ratio required to exchange, e.g. Decimal("0.01")
        self.exchange_fee_ratio = exchange_fee_ratio
        self.limitation_policy = limitation_policy
        self.notification_channel = notification_channel
        self.destination_decimals = destination_decimals
        self.monitor_key = monitor_key

    async def notify(self, batch: BlockBatch) -> List[ExchangeOutcome]:
        """Process every event of a batch in order."""
        if not batch.events:
            await self.state_store.store(
                self.monitor_key, TransactionLocation(block_hash=batch.block_hash, tx_id=None)
            )
            return []

        outcomes: List[ExchangeOutcome] = []
        for event in batch.events:
            try:
                outcome = await self._process(event)
            except Exception as e:
                logger.error(f"Exchange of {event.tx_id} failed: {e}", exc_info=True)
                exchanges_logger.info(f"FAILED {event.tx_id} {event.sender} {event.amount}: {e}")
                await self._send(
                    format_wrapping_failure_notification(
                        self.explorer_url, event.sender, str(event.memo), event.amount, event.tx_id, str(e)
                    )
                )
                outcome = Failed(tx_id=event.tx_id, error=str(e))
            outcomes.append(outcome)

        return outcomes

    async def _process(self, event: TransferredEvent) -> ExchangeOutcome:
        previous = await self.history_store.get(event.tx_id)
        if previous is not None:
            logger.warning(
                f"Transaction {event.tx_id} was already settled ({previous.kind}) "
                f"in {previous.destination_tx_hash}; skipping"
            )
            await self._advance(event)
            return Skipped(tx_id=event.tx_id, destination_tx_hash=previous.destination_tx_hash)

        result = validate(event, self.limitation_policy, self.destination_decimals)
        if isinstance(result, str):
            return await self._refund(event, result)
        return await self._exchange(result)

    async def _refund(self, event: TransferredEvent, reason: str) -> Refunded:
        refund_tx_id = await self.ncg_transfer.transfer(event.sender, event.amount, REFUND_MEMO)
        logger.info(f"Refunded {event.amount} NCG to {event.sender} ({reason}). The transaction's id is {refund_tx_id}")
        exchanges_logger.info(f"REFUND {event.tx_id} -> {refund_tx_id} {event.sender} {event.amount}: {reason}")

        await self.history_store.record(ExchangeRecord(
            kind="refund",
            tx_id=event.tx_id,
            sender=event.sender,
            recipient=event.sender,
            amount=event.amount,
            fee=Decimal(0),
            destination_tx_hash=refund_tx_id,
        ))

        await self._advance(event)
        await self._send(
            format_refund_notification(
                self.explorer_url, event.sender, event.amount, reason, event.tx_id, refund_tx_id
            )
        )
        return Refunded(tx_id=event.tx_id, reason=reason, refund_tx_id=refund_tx_id)

    async def _exchange(self, request: ExchangeRequest) -> ExchangeOutcome:
        event = request.event

        exchange_quote = quote(request.amount, self.exchange_fee_ratio, self.destination_decimals)
        receipt = await self.minter.mint(request.recipient, exchange_quote.scaled_amount)
        logger.info(f"Receipt {receipt.transaction_hash}")
        exchanges_logger.info(
            f"MINT {event.tx_id} -> {receipt.transaction_hash} {event.sender} -> {request.recipient} "
            f"{exchange_quote.net_amount} (fee {exchange_quote.fee})"
        )

        await self.history_store.record(ExchangeRecord(
            tx_id=event.tx_id,
            sender=event.sender,
            recipient=request.recipient,
            amount=event.amount,
            fee=exchange_quote.fee,
            destination_tx_hash=receipt.transaction_hash,
        ))
        await self._advance(event)
        await self._send(
            format_wrapped_notification(
                self.explorer_url,
                self.etherscan_url,
                event.sender,
                request.recipient,
                exchange_quote.net_amount,
                exchange_quote.fee,
                event.tx_id,
                receipt.transaction_hash,
            )
        )
        return Minted(
            tx_id=event.tx_id,
            destination_tx_hash=receipt.transaction_hash,
            fee=exchange_quote.fee,
            net_amount=exchange_quote.net_amount,
        )

    async def _advance(self, event: TransferredEvent):
        await self.state_store.store(
            self.monitor_key, TransactionLocation(block_hash=event.block_hash, tx_id=event.tx_id)
        )

    async def _send(self, text: str):
        try:
            await self.notifier.notify(self.notification_channel, text)
        except Exception as e:
            logger.error(f"Notification delivery failed: {e}")
