"""
Error types raised by the bridge relay.

Monitors treat TransientFetchError (and anything unexpected) as recoverable and
retry on the next cycle. CursorInconsistencyError is the only fatal one.
"""


class BridgeError(Exception):
    """Base class for relay errors."""


class TransientFetchError(BridgeError):
    """A query against the event source or indexer failed; retry later."""


class CursorInconsistencyError(BridgeError):
    """The persisted cursor does not resolve on the canonical chain."""

    def __init__(self, block_hash: str, message: str):
        super().__init__(f"{message} (block hash: {block_hash})")
        self.block_hash = block_hash


class InvalidAddressError(BridgeError, ValueError):
    """A string is not a usable destination address."""


class WebhookDecodeError(BridgeError, ValueError):
    """An inbound webhook body does not match the event schema."""
