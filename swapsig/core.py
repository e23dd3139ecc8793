"""
Core types and helpers for swapsig.

Identity derivation, address validation, the error taxonomy shared by both
ledgers, and the notification record emitted on state transitions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Union

from web3 import Web3


# =============================================================================
# Constants
# =============================================================================

ZERO_ADDRESS = "0x" + "0" * 40

# Default capacity bounds for the action queue
MAX_SIGNERS = 20
MAX_QUEUE_LENGTH = 100

UINT256_MAX = 2**256 - 1

# Packed field layout of each identity (Solidity abi.encodePacked types)
SWAP_IDENTITY_TYPES = ["address", "address", "address", "address", "uint256", "uint256"]
ACTION_IDENTITY_TYPES = ["address", "uint256", "bytes"]


# =============================================================================
# Errors
# =============================================================================

class LedgerError(Exception):
    """Base class for every failure that aborts a ledger operation."""
    code = "LEDGER_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.reason = message or self.code

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "reason": self.reason}


class InvalidParameters(LedgerError):
    """Malformed caller input (amounts, identical assets, addresses, allowances)."""
    code = "INVALID_PARAMETERS"


class SwapNotFound(InvalidParameters):
    """No swap is recorded under the given identity."""
    code = "SWAP_NOT_FOUND"


class Unauthorized(LedgerError):
    """Caller lacks the required principal or participant status."""
    code = "UNAUTHORIZED"


class NotParticipant(Unauthorized):
    """Caller is neither initiator nor counterparty of the swap."""
    code = "NOT_PARTICIPANT"


class DuplicateSwap(LedgerError):
    code = "DUPLICATE_SWAP"


class AlreadyExecuted(LedgerError):
    code = "ALREADY_EXECUTED"


class Expired(LedgerError):
    code = "EXPIRED"


class BoundsExceeded(LedgerError):
    """Queue or signer-set capacity reached."""
    code = "BOUNDS_EXCEEDED"


class TransferFailed(LedgerError):
    """An asset contract rejected a transfer."""
    code = "TRANSFER_FAILED"


class CallFailed(LedgerError):
    """The target of a queued action reported failure."""
    code = "CALL_FAILED"


# =============================================================================
# Notifications
# =============================================================================

@dataclass
class Notification:
    """One-way state transition notice, shaped like an EVM log entry."""
    event: str
    address: str            # Emitting contract
    args: Dict[str, Any] = field(default_factory=dict)
    block_number: int = 0
    timestamp: int = 0
    log_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "address": self.address,
            "args": {k: _jsonable(v) for k, v in self.args.items()},
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "log_index": self.log_index,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# =============================================================================
# Identity Deriver
# =============================================================================

def derive_identity(abi_types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    Derive a 32-byte identifier from an ordered tuple of typed fields.

    The digest is keccak256 over the Solidity packed encoding of the fields,
    so identical values in identical order always yield the same identifier.

    Args:
        abi_types: Solidity type of each field, e.g. ["address", "uint256"]
        values: Field values in the same order

    Returns:
        32-byte digest
    """
    if len(abi_types) != len(values):
        raise ValueError(f"Expected {len(abi_types)} values, got {len(values)}")
    return bytes(Web3.solidity_keccak(list(abi_types), list(values)))


def swap_identity(initiator: str, counterparty: str, asset_x: str, asset_y: str,
                  amount_x: int, amount_y: int) -> bytes:
    """Identity of a swap proposal."""
    return derive_identity(SWAP_IDENTITY_TYPES, [
        to_address(initiator),
        to_address(counterparty),
        to_address(asset_x),
        to_address(asset_y),
        amount_x,
        amount_y,
    ])


def action_identity(target: str, value: int, payload: bytes) -> bytes:
    """Identity of a queued action; independent of its queue position."""
    return derive_identity(ACTION_IDENTITY_TYPES, [to_address(target), value, bytes(payload)])


# =============================================================================
# Validation helpers
# =============================================================================

def to_address(address: Any, allow_zero: bool = False) -> str:
    """
    Normalize an address to checksum form.

    Raises:
        InvalidParameters: malformed address, or the zero address unless allowed
    """
    if isinstance(address, (bytes, bytearray)) and len(address) == 20:
        address = "0x" + bytes(address).hex()
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidParameters(f"Invalid address: {address!r}")
    checksum = Web3.to_checksum_address(address)
    if not allow_zero and checksum == ZERO_ADDRESS:
        raise InvalidParameters("Zero address not allowed")
    return checksum


def to_bytes32(value: Union[bytes, str]) -> bytes:
    """Accept a 32-byte identifier as raw bytes or 0x-prefixed hex."""
    if isinstance(value, str):
        hex_str = value[2:] if value.startswith("0x") else value
        try:
            value = bytes.fromhex(hex_str)
        except ValueError:
            raise InvalidParameters(f"Invalid hex identifier: {value!r}")
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise InvalidParameters("Identifier must be 32 bytes")
    return bytes(value)


def require_amount(amount: Any, name: str = "amount") -> int:
    """Integer in uint256 range (zero allowed)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidParameters(f"{name} must be an integer")
    if amount < 0 or amount > UINT256_MAX:
        raise InvalidParameters(f"{name} out of range: {amount}")
    return amount


def require_positive(amount: Any, name: str = "amount") -> int:
    amount = require_amount(amount, name)
    if amount == 0:
        raise InvalidParameters(f"{name} must be positive")
    return amount


def unique_addresses(addresses: Sequence[Any]) -> List[str]:
    """Normalize a list of addresses, rejecting duplicates."""
    out: List[str] = []
    seen = set()
    for addr in addresses:
        checksum = to_address(addr)
        if checksum in seen:
            raise InvalidParameters(f"Duplicate address: {checksum}")
        seen.add(checksum)
        out.append(checksum)
    return out
