"""
Validated Ethereum address value type.
"""
from typing import Optional

from web3 import Web3

from core.exceptions import InvalidAddressError

# See also https://ethereum.github.io/yellowpaper/paper.pdf 4.2 The Transaction section.
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class EthereumAddress(str):
    """
    A checksummed, non-zero Ethereum address.

    Construction is the only validation point: anything that is not a
    0x-prefixed address accepted by web3, or that is the zero address,
    raises InvalidAddressError.
    """

    def __new__(cls, value: object) -> "EthereumAddress":
        if not isinstance(value, str) or not value.startswith("0x"):
            raise InvalidAddressError(f"Not a 0x-prefixed address: {value!r}")
        if not Web3.is_address(value):
            raise InvalidAddressError(f"Malformed address: {value!r}")

        checksummed = Web3.to_checksum_address(value)
        if checksummed == ZERO_ADDRESS:
            raise InvalidAddressError("Zero address is not a valid recipient")

        return super().__new__(cls, checksummed)

    @classmethod
    def parse(cls, value: object) -> Optional["EthereumAddress"]:
        """Return the address, or None if the value is not valid."""
        try:
            return cls(value)
        except InvalidAddressError:
            return None
