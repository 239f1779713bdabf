"""
Message formatting utilities for bridge notifications.
"""
from decimal import Decimal


def shorten_address(address: str) -> str:
    """Shorten an address to format: 0xabcd...1234"""
    if len(address) < 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_amount(amount: Decimal) -> str:
    """Render a decimal without exponent notation or trailing zeros."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _ncg_tx_url(explorer_url: str, tx_id: str) -> str:
    return f"{explorer_url.rstrip('/')}/tx/{tx_id}"


def _eth_tx_url(etherscan_url: str, tx_hash: str) -> str:
    return f"{etherscan_url.rstrip('/')}/tx/{tx_hash}"


def format_wrapped_notification(
    explorer_url: str,
    etherscan_url: str,
    sender: str,
    recipient: str,
    amount: Decimal,
    fee: Decimal,
    ncg_tx_id: str,
    eth_tx_hash: str
) -> str:
    """
    Format a successful NCG -> WNCG exchange.

    Args:
        amount: Net amount minted (after fee)
        fee: Fee retained by the bridge

    Returns:
        Plain text message
    """
    lines = [
        "✅ NCG → WNCG EXCHANGE",
        "",
        f"Sender (NCG): {sender}",
        f"Recipient (ETH): {recipient}",
        f"Amount: {format_amount(amount)} WNCG",
        f"Fee: {format_amount(fee)} NCG",
        "",
        f"NCG tx: {_ncg_tx_url(explorer_url, ncg_tx_id)}",
        f"ETH tx: {_eth_tx_url(etherscan_url, eth_tx_hash)}",
    ]
    return "\n".join(lines)


def format_wrapping_failure_notification(
    explorer_url: str,
    sender: str,
    recipient: str,
    amount: str,
    ncg_tx_id: str,
    error: str
) -> str:
    """Format an exchange that raised while refunding or minting."""
    lines = [
        "🚨 EXCHANGE FAILED",
        "",
        f"Sender (NCG): {sender}",
        f"Recipient (ETH): {recipient}",
        f"Amount: {amount} NCG",
        f"NCG tx: {_ncg_tx_url(explorer_url, ncg_tx_id)}",
        "",
        f"Error: {error}",
    ]
    return "\n".join(lines)


def format_refund_notification(
    explorer_url: str,
    sender: str,
    amount: str,
    reason: str,
    ncg_tx_id: str,
    refund_tx_id: str
) -> str:
    """Format a refund of an invalid exchange request."""
    lines = [
        "↩️ NCG REFUNDED",
        "",
        f"Sender: {shorten_address(sender)} ({sender})",
        f"Amount: {amount} NCG",
        f"Reason: {reason}",
        "",
        f"Request tx: {_ncg_tx_url(explorer_url, ncg_tx_id)}",
        f"Refund tx: {_ncg_tx_url(explorer_url, refund_tx_id)}",
    ]
    return "\n".join(lines)
