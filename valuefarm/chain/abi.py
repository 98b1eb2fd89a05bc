"""
ABI Helpers

Function-signature parsing and argument encoding used by the timelock to
queue and forward calls.
"""

from typing import Any, List, Tuple

from eth_abi import decode, encode
from eth_utils import keccak

from ..exceptions import UnknownFunctionError


def canonical_signature(signature: str) -> str:
    """Strip whitespace so "set(uint256, bool)" and "set(uint256,bool)" match."""
    return "".join(signature.split())


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """
    Split a function signature into its name and argument types.

    E.g., "transfer(address,uint256)" -> ("transfer", ["address", "uint256"])
    """
    signature = canonical_signature(signature)
    if "(" not in signature or not signature.endswith(")"):
        raise UnknownFunctionError(f"Malformed function signature: {signature!r}")
    name, _, rest = signature.partition("(")
    if not name:
        raise UnknownFunctionError(f"Malformed function signature: {signature!r}")
    arg_types_str = rest[:-1]
    arg_types = [t for t in arg_types_str.split(",") if t] if arg_types_str else []
    return name, arg_types


def compute_function_selector(signature: str) -> bytes:
    """
    Compute Ethereum function selector (first 4 bytes of keccak256(sig)).
    """
    return keccak(canonical_signature(signature).encode("utf-8"))[:4]


def encode_arguments(signature: str, *args: Any) -> bytes:
    """
    ABI-encode *args* using the argument types declared in *signature*.

    The selector is not included; the timelock stores it separately as the
    signature string.
    """
    _, arg_types = parse_signature(signature)
    if len(arg_types) != len(args):
        raise UnknownFunctionError(
            f"{signature} expects {len(arg_types)} arguments, got {len(args)}"
        )
    if not arg_types:
        return b""
    return encode(arg_types, list(args))


def decode_arguments(signature: str, data: bytes) -> Tuple[Any, ...]:
    """Decode call data produced by encode_arguments."""
    _, arg_types = parse_signature(signature)
    if not arg_types:
        return ()
    return tuple(decode(arg_types, data))
