"""
swapsig - Swap Ledger and Threshold Action Queue

Two independent ledger state machines running on a serialized,
all-or-nothing execution host:
- SwapLedger: two-party atomic exchange of fungible assets
- ThresholdActionQueue: signer-gated queue of external calls

Usage:
    from swapsig import Host, ERC20Token, SwapLedger

    host = Host()
    ledger = host.deploy(deployer, SwapLedger, host.timestamp + 86400)

    # Both sides approve the ledger on their asset, then:
    swap_id = host.transact(alice, ledger.address, "initiate_swap",
                            bob, token_a.address, token_b.address, 100, 50)
    host.transact(bob, ledger.address, "execute_swap", swap_id)
"""

from .core import (
    LedgerError,
    InvalidParameters,
    SwapNotFound,
    Unauthorized,
    NotParticipant,
    DuplicateSwap,
    AlreadyExecuted,
    Expired,
    BoundsExceeded,
    TransferFailed,
    CallFailed,
    Notification,
    derive_identity,
    swap_identity,
    action_identity,
    to_address,
    ZERO_ADDRESS,
    MAX_SIGNERS,
    MAX_QUEUE_LENGTH,
)

from .chains.host import Host, Contract, CallContext, CallResult
from .chains.erc20 import ERC20Token
from .chains.abi import encode_call, function_selector, external

from .swap.ledger import SwapLedger, SwapRecord
from .multisig.queue import ThresholdActionQueue, QueuedAction, QueueConfig

__version__ = "0.1.0"
__all__ = [
    # Errors
    "LedgerError",
    "InvalidParameters",
    "SwapNotFound",
    "Unauthorized",
    "NotParticipant",
    "DuplicateSwap",
    "AlreadyExecuted",
    "Expired",
    "BoundsExceeded",
    "TransferFailed",
    "CallFailed",
    # Identity
    "derive_identity",
    "swap_identity",
    "action_identity",
    "to_address",
    "Notification",
    "ZERO_ADDRESS",
    "MAX_SIGNERS",
    "MAX_QUEUE_LENGTH",
    # Host
    "Host",
    "Contract",
    "CallContext",
    "CallResult",
    "ERC20Token",
    "encode_call",
    "function_selector",
    "external",
    # Ledgers
    "SwapLedger",
    "SwapRecord",
    "ThresholdActionQueue",
    "QueuedAction",
    "QueueConfig",
]
