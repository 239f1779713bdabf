"""
Pydantic models for bridge relay data structures.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class TransactionLocation(BaseModel):
    """Cursor: last processed block (and transaction within it)."""
    model_config = ConfigDict(frozen=True)

    block_hash: str
    tx_id: Optional[str] = None  # None = whole block processed / block was empty


class TransferredEvent(BaseModel):
    """NCG transfer into the watched address."""
    model_config = ConfigDict(frozen=True)

    block_hash: str
    block_index: Optional[int] = None
    tx_id: str
    sender: str
    amount: str  # exact decimal as text
    memo: Optional[str] = None  # expected to hold the destination address


class WebhookEventArgs(BaseModel):
    """Decoded ABI arguments of a pushed event."""
    named: Dict[str, Any] = Field(default_factory=dict)
    ordered: List[Any] = Field(default_factory=list)


class WebhookEvent(BaseModel):
    """Event record delivered by the indexer webhook and its catch-up endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    block_index: int = Field(alias="blockIndex")
    log_index: int = Field(alias="logIndex")
    block_hash: str = Field(alias="blockHash")
    transaction_hash: str = Field(alias="transactionHash")
    source_address: str = Field(alias="sourceAddress")
    abi_hash: str = Field(alias="abiHash")
    abi_signature: str = Field(alias="abiSignature")
    args: WebhookEventArgs = Field(default_factory=WebhookEventArgs)

    @property
    def identity(self) -> str:
        """Key covering every field, so only identical deliveries collapse."""
        return self.model_dump_json(by_alias=True)

    def to_transferred_event(self) -> TransferredEvent:
        """Map the named ABI arguments onto a transfer event."""
        named = self.args.named
        recipient = named.get("recipient", named.get("to"))
        return TransferredEvent(
            block_hash=self.block_hash,
            block_index=self.block_index,
            tx_id=self.transaction_hash,
            sender=str(named.get("sender", named.get("from", ""))),
            amount=str(named.get("amount", named.get("value", ""))),
            memo=None if recipient is None else str(recipient),
        )


class BlockBatch(BaseModel):
    """Events from one block, emitted by a monitor."""
    block_hash: str
    events: List[TransferredEvent] = Field(default_factory=list)


class LimitationPolicy(BaseModel):
    """Inclusive bounds on exchangeable amount."""
    minimum: Decimal
    maximum: Decimal


class MintReceipt(BaseModel):
    """Result of a mint on the destination chain."""
    transaction_hash: str


class Refunded(BaseModel):
    kind: Literal["refunded"] = "refunded"
    tx_id: str
    reason: str
    refund_tx_id: str


class Minted(BaseModel):
    kind: Literal["minted"] = "minted"
    tx_id: str
    destination_tx_hash: str
    fee: Decimal
    net_amount: Decimal


class Skipped(BaseModel):
    """Source transaction was already settled in an earlier run."""
    kind: Literal["skipped"] = "skipped"
    tx_id: str
    destination_tx_hash: str


class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    tx_id: str
    error: str


ExchangeOutcome = Union[Refunded, Minted, Skipped, Failed]


class ExchangeRecord(BaseModel):
    """
    Durable record of a settled source transaction, minted or refunded.
    amount keeps the transferred text as is; refunds may carry unparseable amounts.
    """
    kind: Literal["mint", "refund"] = "mint"
    tx_id: str
    sender: str
    recipient: str
    amount: str
    fee: Decimal
    destination_tx_hash: str
    created_at: Optional[datetime] = None
