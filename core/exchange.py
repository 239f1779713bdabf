"""
Exchange rules: request validation and fee arithmetic.
All amounts are Decimal; binary floats never enter the calculation.
"""
import decimal
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from core.address import EthereumAddress
from core.models import LimitationPolicy, TransferredEvent

FEE_QUANTUM = Decimal("0.01")

# Enough digits for uint256 amounts after scaling.
_PRECISION = 80

REFUND_MEMO = "I'm bridge and you should transfer with memo, valid ethereum address to receive."


@dataclass(frozen=True)
class ExchangeRequest:
    """A transfer event that passed validation."""
    event: TransferredEvent
    recipient: EthereumAddress
    amount: Decimal


@dataclass(frozen=True)
class ExchangeQuote:
    fee: Decimal
    net_amount: Decimal
    scaled_amount: int


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """Parse a decimal amount, returning None for garbage, NaN or infinities."""
    if text is None:
        return None
    try:
        amount = Decimal(text.strip())
    except (InvalidOperation, AttributeError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _fits_decimals(amount: Decimal, decimals: int) -> bool:
    with decimal.localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = amount.scaleb(decimals)
        return scaled == scaled.to_integral_value()


def validate(event: TransferredEvent, policy: LimitationPolicy, decimals: int = 18) -> Union[ExchangeRequest, str]:
    """
    Check recipient and amount of a transfer event.

    Amounts with more fractional digits than the destination token carries
    cannot be minted exactly and are rejected.

    Returns:
        ExchangeRequest if the event can be exchanged, otherwise the rejection reason
    """
    recipient = EthereumAddress.parse(event.memo)
    if recipient is None:
        return f"memo is not a valid recipient address: {event.memo!r}"

    amount = parse_amount(event.amount)
    if amount is None:
        return f"amount is not a finite decimal: {event.amount!r}"
    if amount < policy.minimum:
        return f"amount {amount} is below the minimum {policy.minimum}"
    if amount > policy.maximum:
        return f"amount {amount} is above the maximum {policy.maximum}"
    if not _fits_decimals(amount, decimals):
        return f"amount {amount} has more than {decimals} decimal places"

    return ExchangeRequest(event=event, recipient=recipient, amount=amount)


def quote(amount: Decimal, fee_ratio: Decimal, decimals: int = 18) -> ExchangeQuote:
    """
    Compute fee and minted amount.

    If fee_ratio == 0.01 (1%), only 99% of the amount is minted. The fee is
    rounded half-up to two decimal places.

    Raises:
        ValueError: if the minted amount is not a whole number of base units
    """
    with decimal.localcontext() as ctx:
        ctx.prec = _PRECISION
        fee = (amount * fee_ratio).quantize(FEE_QUANTUM, rounding=ROUND_HALF_UP)
        net_amount = amount - fee
        scaled = net_amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{net_amount} has more than {decimals} decimal places")
    return ExchangeQuote(fee=fee, net_amount=net_amount, scaled_amount=int(scaled))
