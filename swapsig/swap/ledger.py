"""
Swap Ledger for swapsig.

Peer-to-peer escrow that exchanges two fungible assets between an initiator
and a counterparty without holding custody in between.

Swap Flow:
1. Both parties approve the ledger on their asset contract
2. Initiator proposes the swap (allowances are checked here)
3. Either party executes it before the ledger-wide expiry
4. Both transferFrom movements happen in the same transaction, or neither does

Revoking an allowance before step 3 is how a party walks away from a proposal.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core import (
    AlreadyExecuted, DuplicateSwap, Expired, InvalidParameters, LedgerError,
    NotParticipant, SwapNotFound, TransferFailed,
    require_positive, swap_identity, to_address, to_bytes32,
)
from ..chains.host import CallContext, Contract

log = logging.getLogger(__name__)


@dataclass
class SwapRecord:
    """A proposed two-party exchange."""
    initiator: str
    counterparty: str
    asset_x: str            # Moves initiator -> counterparty
    asset_y: str            # Moves counterparty -> initiator
    amount_x: int
    amount_y: int
    executed: bool = False

    @property
    def swap_id(self) -> bytes:
        return swap_identity(
            self.initiator, self.counterparty, self.asset_x, self.asset_y,
            self.amount_x, self.amount_y,
        )

    def is_participant(self, address: str) -> bool:
        return address in (self.initiator, self.counterparty)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "swap_id": "0x" + self.swap_id.hex(),
            "initiator": self.initiator,
            "counterparty": self.counterparty,
            "asset_x": self.asset_x,
            "asset_y": self.asset_y,
            "amount_x": self.amount_x,
            "amount_y": self.amount_y,
            "executed": self.executed,
        }


@dataclass
class SwapLedgerState:
    expiry: int = 0
    swaps: Dict[bytes, SwapRecord] = field(default_factory=dict)
    order: List[bytes] = field(default_factory=list)   # Proposal order, for listing


class SwapLedger(Contract):
    """
    Registry of swap proposals keyed by deterministic swap identity.

    All swaps share one expiry boundary fixed at construction.
    """

    def constructor(self, ctx: CallContext, expiry: int):
        if isinstance(expiry, bool) or not isinstance(expiry, int) or expiry <= 0:
            raise InvalidParameters(f"Expiry must be a positive timestamp, got {expiry!r}")
        self.state = SwapLedgerState(expiry=expiry)
        log.info(f"Swap ledger {self.address} expires at {expiry}")

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def expiry(self) -> int:
        return self.state.expiry

    def is_expired(self, timestamp: Optional[int] = None) -> bool:
        now = self.host.timestamp if timestamp is None else timestamp
        return now > self.state.expiry

    def get_swap(self, swap_id: Union[bytes, str]) -> Optional[SwapRecord]:
        return self.state.swaps.get(to_bytes32(swap_id))

    def swap_exists(self, swap_id: Union[bytes, str]) -> bool:
        return self.get_swap(swap_id) is not None

    def is_executed(self, swap_id: Union[bytes, str]) -> bool:
        record = self.get_swap(swap_id)
        return record is not None and record.executed

    def swap_count(self) -> int:
        return len(self.state.order)

    def list_swaps(self) -> List[SwapRecord]:
        return [self.state.swaps[swap_id] for swap_id in self.state.order]

    def compute_swap_id(self, initiator: str, counterparty: str, asset_x: str,
                        asset_y: str, amount_x: int, amount_y: int) -> bytes:
        return swap_identity(initiator, counterparty, asset_x, asset_y, amount_x, amount_y)

    # =========================================================================
    # Transitions
    # =========================================================================

    def initiate_swap(self, ctx: CallContext, counterparty: str, asset_x: str,
                      asset_y: str, amount_x: int, amount_y: int) -> bytes:
        """
        Propose a swap with the caller as initiator.

        Args:
            counterparty: Party receiving asset_x and paying asset_y
            asset_x: Asset contract the initiator pays with
            asset_y: Asset contract the counterparty pays with
            amount_x: Quantity of asset_x
            amount_y: Quantity of asset_y

        Returns:
            32-byte swap identity

        Raises:
            InvalidParameters: bad addresses/amounts, same asset twice,
                or a missing allowance
            DuplicateSwap: identical proposal already recorded
        """
        initiator = ctx.sender
        counterparty = to_address(counterparty)
        asset_x = to_address(asset_x)
        asset_y = to_address(asset_y)

        if asset_x == asset_y:
            raise InvalidParameters("Cannot swap an asset for itself")
        require_positive(amount_x, "amount_x")
        require_positive(amount_y, "amount_y")

        self._require_allowance(ctx, asset_x, initiator, amount_x)
        self._require_allowance(ctx, asset_y, counterparty, amount_y)

        swap_id = swap_identity(initiator, counterparty, asset_x, asset_y, amount_x, amount_y)
        if swap_id in self.state.swaps:
            raise DuplicateSwap(f"Swap 0x{swap_id.hex()} already exists")

        self.state.swaps[swap_id] = SwapRecord(
            initiator=initiator,
            counterparty=counterparty,
            asset_x=asset_x,
            asset_y=asset_y,
            amount_x=amount_x,
            amount_y=amount_y,
        )
        self.state.order.append(swap_id)

        self.emit(
            "SwapProposed",
            swap_id=swap_id,
            initiator=initiator,
            counterparty=counterparty,
            asset_x=asset_x,
            asset_y=asset_y,
            amount_x=amount_x,
            amount_y=amount_y,
        )
        log.info(f"Swap proposed: 0x{swap_id.hex()[:16]}... {initiator[:10]} <-> {counterparty[:10]}")
        return swap_id

    def execute_swap(self, ctx: CallContext, swap_id: Union[bytes, str]) -> bool:
        """
        Settle a proposed swap. Callable by either participant before expiry.

        Raises:
            SwapNotFound: no such proposal
            NotParticipant: caller is not initiator or counterparty
            Expired: ledger expiry has passed
            AlreadyExecuted: swap already settled
            TransferFailed: an asset contract rejected either movement
        """
        swap_id = to_bytes32(swap_id)
        record = self.state.swaps.get(swap_id)
        if record is None:
            raise SwapNotFound(f"Swap 0x{swap_id.hex()} does not exist")
        if not record.is_participant(ctx.sender):
            raise NotParticipant(f"{ctx.sender} is not a party to this swap")
        if self.is_expired(ctx.timestamp):
            raise Expired(f"Ledger expired at {self.state.expiry}, now {ctx.timestamp}")
        if record.executed:
            raise AlreadyExecuted(f"Swap 0x{swap_id.hex()} already executed")

        record.executed = True
        self._pull(ctx, record.asset_x, record.initiator, record.counterparty, record.amount_x)
        self._pull(ctx, record.asset_y, record.counterparty, record.initiator, record.amount_y)

        self.emit(
            "SwapExecuted",
            swap_id=swap_id,
            executor=ctx.sender,
            initiator=record.initiator,
            counterparty=record.counterparty,
        )
        log.info(f"Swap executed: 0x{swap_id.hex()[:16]}... by {ctx.sender[:10]}")
        return True

    # =========================================================================
    # Asset collaborator
    # =========================================================================

    def _require_allowance(self, ctx: CallContext, asset: str, owner: str, amount: int) -> None:
        if not ctx.host.is_contract(asset):
            raise InvalidParameters(f"No asset contract at {asset}")
        allowance = getattr(ctx.host.contract_at(asset), "allowance", None)
        if not callable(allowance):
            raise InvalidParameters(f"Contract at {asset} is not an asset")
        allowed = allowance(owner, self.address)
        if allowed < amount:
            raise InvalidParameters(f"Allowance {allowed} < {amount} for {owner} on {asset}")

    def _pull(self, ctx: CallContext, asset: str, owner: str, recipient: str, amount: int) -> None:
        try:
            ok = ctx.host.invoke(self.address, asset, "transfer_from", owner, recipient, amount)
        except LedgerError as e:
            raise TransferFailed(f"transferFrom {amount} on {asset} rejected: {e.reason}")
        if not ok:
            raise TransferFailed(f"transferFrom {amount} on {asset} returned false")
