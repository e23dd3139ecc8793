"""
Fungible asset contract with ERC20 semantics.

The swap ledger only consumes `allowance` and `transferFrom`; the rest is
what an asset needs to be funded and approved on a devnet.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from ..core import LedgerError, Unauthorized, ZERO_ADDRESS, require_amount, to_address
from .abi import external
from .host import CallContext, Contract

log = logging.getLogger(__name__)


class InsufficientBalance(LedgerError):
    code = "ERC20_INSUFFICIENT_BALANCE"


class InsufficientAllowance(LedgerError):
    code = "ERC20_INSUFFICIENT_ALLOWANCE"


@dataclass
class ERC20State:
    name: str = ""
    symbol: str = ""
    decimals: int = 18
    owner: str = ""
    total_supply: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, Dict[str, int]] = field(default_factory=dict)


class ERC20Token(Contract):
    """Mintable test asset. Only the deployer may mint."""

    def constructor(self, ctx: CallContext, name: str, symbol: str, decimals: int = 18):
        self.state = ERC20State(name=name, symbol=symbol, decimals=decimals, owner=ctx.sender)

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def symbol(self) -> str:
        return self.state.symbol

    def total_supply(self) -> int:
        return self.state.total_supply

    def balance_of(self, owner: str) -> int:
        return self.state.balances.get(to_address(owner, allow_zero=True), 0)

    def allowance(self, owner: str, spender: str) -> int:
        owner = to_address(owner, allow_zero=True)
        spender = to_address(spender, allow_zero=True)
        return self.state.allowances.get(owner, {}).get(spender, 0)

    # =========================================================================
    # Mutations
    # =========================================================================

    @external("mint(address,uint256)")
    def mint(self, ctx: CallContext, to: str, amount: int) -> bool:
        if ctx.sender != self.state.owner:
            raise Unauthorized("Only the token owner can mint")
        to = to_address(to)
        require_amount(amount)
        self.state.balances[to] = self.state.balances.get(to, 0) + amount
        self.state.total_supply += amount
        self.emit("Transfer", sender=ZERO_ADDRESS, recipient=to, amount=amount)
        log.info(f"Minted {amount} {self.state.symbol} to {to}")
        return True

    @external("approve(address,uint256)")
    def approve(self, ctx: CallContext, spender: str, amount: int) -> bool:
        spender = to_address(spender)
        require_amount(amount)
        self.state.allowances.setdefault(ctx.sender, {})[spender] = amount
        self.emit("Approval", owner=ctx.sender, spender=spender, amount=amount)
        return True

    @external("transfer(address,uint256)")
    def transfer(self, ctx: CallContext, to: str, amount: int) -> bool:
        self._move(ctx.sender, to_address(to), require_amount(amount))
        return True

    @external("transferFrom(address,address,uint256)")
    def transfer_from(self, ctx: CallContext, owner: str, recipient: str, amount: int) -> bool:
        """Move `amount` of owner's balance on the caller's allowance."""
        owner = to_address(owner)
        recipient = to_address(recipient)
        require_amount(amount)

        allowed = self.allowance(owner, ctx.sender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{self.state.symbol}: allowance {allowed} < {amount} for {ctx.sender}"
            )
        self.state.allowances.setdefault(owner, {})[ctx.sender] = allowed - amount
        self._move(owner, recipient, amount)
        return True

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        balance = self.state.balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(f"{self.state.symbol}: balance {balance} < {amount}")
        self.state.balances[sender] = balance - amount
        self.state.balances[recipient] = self.state.balances.get(recipient, 0) + amount
        self.emit("Transfer", sender=sender, recipient=recipient, amount=amount)
