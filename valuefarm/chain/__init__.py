"""
Host ledger the protocol contracts run on.

Provides:
  - Chain            : block height, clock, registry, atomic snapshots
  - Contract         : base class with events and forwarded-call dispatch
  - address / ABI helpers
"""

from .abi import (
    compute_function_selector,
    decode_arguments,
    encode_arguments,
    parse_signature,
)
from .address import generate_contract_address, to_address, to_optional_address
from .chain import Chain
from .contract import Contract, ContractEvent, transaction

__all__ = [
    "Chain",
    "Contract",
    "ContractEvent",
    "transaction",
    "compute_function_selector",
    "decode_arguments",
    "encode_arguments",
    "parse_signature",
    "generate_contract_address",
    "to_address",
    "to_optional_address",
]
