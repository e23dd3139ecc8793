"""
ABI helpers for opaque action payloads.

A payload is a 4-byte keccak selector followed by the ABI-encoded arguments,
exactly like EVM call data. Contracts mark the methods a payload may reach with
the `external` decorator.
"""

from typing import Any, Callable, List, Sequence, Tuple

from Crypto.Hash import keccak
from eth_abi import decode, encode


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split "transfer(address,uint256)" into ("transfer", ["address", "uint256"])."""
    if "(" not in signature or not signature.endswith(")"):
        raise ValueError(f"Malformed function signature: {signature}")
    name, _, rest = signature.partition("(")
    inner = rest[:-1].strip()
    input_types = [t.strip() for t in inner.split(",")] if inner else []
    return name, input_types


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256(signature)."""
    k = keccak.new(digest_bits=256)
    k.update(signature.encode())
    return k.digest()[:4]


def encode_call(signature: str, params: Sequence[Any] = ()) -> bytes:
    """
    Encode a function call as payload bytes.

    Args:
        signature: Canonical signature, e.g. "transfer(address,uint256)"
        params: Argument values in order

    Returns:
        selector + encoded arguments
    """
    _, input_types = parse_signature(signature)
    if len(params) != len(input_types):
        raise ValueError(f"{signature} takes {len(input_types)} params, got {len(params)}")
    return function_selector(signature) + encode(input_types, list(params))


def decode_args(signature: str, payload: bytes) -> Tuple[Any, ...]:
    """Decode the arguments of a payload built for `signature`."""
    _, input_types = parse_signature(signature)
    return tuple(decode(input_types, bytes(payload[4:])))


def external(signature: str) -> Callable:
    """Mark a contract method as reachable by payload with the given signature."""
    parse_signature(signature)

    def wrap(fn: Callable) -> Callable:
        fn._abi_signature = signature
        fn._abi_selector = function_selector(signature)
        return fn

    return wrap
