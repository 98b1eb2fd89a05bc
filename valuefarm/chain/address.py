"""
Address Helpers

Ethereum-compatible address normalisation and contract address computation.
"""

from typing import Any, Optional

import rlp
from eth_utils import is_address, keccak, to_checksum_address

from ..constants import ZERO_ADDRESS
from ..exceptions import InvalidAddressError


def to_address(value: Any) -> str:
    """
    Normalise *value* to a checksummed ``0x`` address.

    Raises InvalidAddressError for anything that is not a 20-byte address.
    """
    if not isinstance(value, str) or not is_address(value):
        raise InvalidAddressError(f"Invalid address: {value!r}")
    return to_checksum_address(value)


def to_optional_address(value: Any) -> Optional[str]:
    """Like to_address, but None and the zero address map to None."""
    if value is None:
        return None
    address = to_address(value)
    if address == ZERO_ADDRESS:
        return None
    return address


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Deployer address
        nonce: Deployer nonce

    Returns:
        Contract address (Ethereum checksum format)
    """
    sender_bytes = bytes.fromhex(to_address(sender)[2:])
    rlp_encoded = rlp.encode([sender_bytes, nonce])
    address_bytes = keccak(rlp_encoded)[-20:]
    return to_checksum_address('0x' + address_bytes.hex())
