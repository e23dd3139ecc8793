"""
Execution host for swapsig contracts.

Models the shared, serialized environment both ledgers run in:
- Transactions apply in a strict total order (one at a time, behind a lock)
- Each transaction commits every write or none of them
- Nested calls get their own snapshot, so a failed low-level call only
  reverts its own effects
- Notifications are buffered and only reach the log on commit; subscribers
  receive them in log order
- Block time is explicit and only moves when told to
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..core import (
    LedgerError, InvalidParameters, Notification, ZERO_ADDRESS,
    require_amount, to_address,
)
from .abi import decode_args

log = logging.getLogger(__name__)


class InsufficientFunds(LedgerError):
    """Sender cannot cover the native value attached to a call."""
    code = "INSUFFICIENT_FUNDS"


@dataclass(frozen=True)
class CallContext:
    """Who is calling, with how much value, on which host."""
    host: "Host"
    sender: str
    value: int = 0

    @property
    def timestamp(self) -> int:
        return self.host.timestamp


@dataclass
class CallResult:
    """Outcome of a low-level call."""
    success: bool
    return_value: Any = None
    error: Optional[str] = None


class Contract:
    """
    Base class for contracts living on a Host.

    All mutable state lives in `self.state` so the host can snapshot and
    restore it around every call. Methods reachable by payload are marked
    with `swapsig.chains.abi.external`.

    Names in RESERVED_METHODS belong to the host protocol and can never be
    reached by a transaction or nested call.
    """

    RESERVED_METHODS = frozenset({
        "constructor", "emit", "dispatch", "receive", "external_methods",
    })

    def __init__(self):
        self.host: Optional["Host"] = None
        self.address: str = ZERO_ADDRESS
        self.state: Any = None

    def constructor(self, ctx: CallContext, *args, **kwargs) -> None:
        pass

    def receive(self, ctx: CallContext) -> None:
        """Plain value transfer with empty payload."""
        raise LedgerError(f"{type(self).__name__} does not accept plain transfers")

    def emit(self, event: str, **args) -> None:
        self.host.emit(self.address, event, **args)

    @classmethod
    def external_methods(cls) -> Dict[bytes, Tuple[str, str]]:
        """selector -> (method name, signature)"""
        methods = {}
        for name in dir(cls):
            attr = getattr(cls, name, None)
            selector = getattr(attr, "_abi_selector", None)
            if selector is not None:
                methods[selector] = (name, attr._abi_signature)
        return methods

    def dispatch(self, ctx: CallContext, payload: bytes) -> Any:
        """Route a payload to the external method its selector names."""
        if not payload:
            return self.receive(ctx)
        if len(payload) < 4:
            raise LedgerError("Payload shorter than a selector")

        entry = self.external_methods().get(payload[:4])
        if entry is None:
            raise LedgerError(f"Unknown selector 0x{payload[:4].hex()}")
        name, signature = entry

        try:
            args = decode_args(signature, payload)
        except DecodingError as e:
            raise LedgerError(f"Malformed arguments for {signature}: {e}")

        return getattr(self, name)(ctx, *args)


class Host:
    """
    Serialized execution environment.

    Usage:
        host = Host()
        token = host.deploy(alice, ERC20Token, "Token A", "TKA")
        host.transact(alice, token.address, "approve", ledger.address, 100)
    """

    def __init__(self, timestamp: Optional[int] = None):
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        self.block_number = 0
        self.logs: List[Notification] = []

        self._contracts: Dict[str, Contract] = {}
        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._pending: List[Notification] = []
        self._subscribers: List[Tuple[Optional[str], Optional[str], Callable]] = []
        self._lock = threading.RLock()
        self._in_transaction = False

        # Subscriber delivery cursor into self.logs
        self._delivery_lock = threading.RLock()
        self._delivering = False
        self._delivered = 0

    # =========================================================================
    # Time
    # =========================================================================

    def advance_time(self, seconds: int) -> int:
        """Move block time forward."""
        if seconds < 0:
            raise ValueError("Time only moves forward")
        with self._lock:
            self.timestamp += int(seconds)
            return self.timestamp

    def set_timestamp(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self.timestamp:
                raise ValueError(f"Cannot rewind time: {timestamp} < {self.timestamp}")
            self.timestamp = int(timestamp)

    # =========================================================================
    # Accounts
    # =========================================================================

    def balance_of(self, address: str) -> int:
        """Native value balance."""
        return self._balances.get(to_address(address, allow_zero=True), 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native value out of thin air (devnet faucet)."""
        address = to_address(address)
        require_amount(amount)
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount

    def is_contract(self, address: str) -> bool:
        return to_address(address, allow_zero=True) in self._contracts

    def contract_at(self, address: str) -> Contract:
        contract = self._contracts.get(to_address(address, allow_zero=True))
        if contract is None:
            raise InvalidParameters(f"No contract at {address}")
        return contract

    def contracts(self) -> List[Contract]:
        return list(self._contracts.values())

    @staticmethod
    def compute_address(deployer: str, nonce: int) -> str:
        """Deterministic contract address for (deployer, nonce)."""
        digest = Web3.solidity_keccak(["address", "uint256"], [to_address(deployer), nonce])
        return Web3.to_checksum_address(bytes(digest)[-20:])

    # =========================================================================
    # Transactions
    # =========================================================================

    def deploy(self, deployer: str, contract_cls: type, *args, **kwargs) -> Contract:
        """Create a contract and run its constructor as one transaction."""
        deployer = to_address(deployer)

        def run():
            nonce = self._nonces.get(deployer, 0)
            contract = contract_cls()
            contract.host = self
            contract.address = self.compute_address(deployer, nonce)
            self._nonces[deployer] = nonce + 1
            self._contracts[contract.address] = contract
            contract.constructor(CallContext(self, deployer), *args, **kwargs)
            return contract

        contract = self._execute(f"deploy {contract_cls.__name__}", run)
        log.info(f"Deployed {contract_cls.__name__} at {contract.address}")
        return contract

    def transact(self, sender: str, target: str, method: str, *args,
                 value: int = 0, **kwargs) -> Any:
        """Submit a state-mutating call as a top-level transaction."""
        sender = to_address(sender)
        return self._execute(
            f"{method} on {target}",
            lambda: self.invoke(sender, target, method, *args, value=value, **kwargs),
        )

    def send_transaction(self, sender: str, to: str, value: int = 0, data: bytes = b"") -> Any:
        """Top-level transaction carrying raw payload; raises on failure."""
        sender = to_address(sender)
        to = to_address(to)

        def run():
            self._move_value(sender, to, value)
            contract = self._contracts.get(to)
            if contract is None:
                return None
            return contract.dispatch(CallContext(self, sender, value), bytes(data))

        return self._execute(f"transaction to {to}", run)

    def invoke(self, sender: str, target: str, method: str, *args,
               value: int = 0, **kwargs) -> Any:
        """
        Typed nested call. Failures revert this call's effects and propagate.
        """
        contract = self.contract_at(target)
        fn = getattr(contract, method, None)
        if (method.startswith("_") or method in Contract.RESERVED_METHODS
                or not callable(fn)):
            raise InvalidParameters(f"{type(contract).__name__} has no method {method}")

        ctx = CallContext(self, to_address(sender), value)
        with self._frame():
            self._move_value(ctx.sender, contract.address, value)
            return fn(ctx, *args, **kwargs)

    def call(self, sender: str, target: str, value: int = 0, payload: bytes = b"") -> CallResult:
        """
        Low-level call with value and opaque payload.

        A failing callee reverts only its own effects and is reported through
        the result instead of raising. Calls to plain accounts succeed.
        """
        sender = to_address(sender)
        try:
            target = to_address(target)
            with self._frame():
                self._move_value(sender, target, value)
                contract = self._contracts.get(target)
                if contract is None:
                    return CallResult(success=True)
                ret = contract.dispatch(CallContext(self, sender, value), bytes(payload))
        except LedgerError as e:
            log.info(f"Call {sender} -> {target} failed: {e.reason}")
            return CallResult(success=False, error=e.reason)
        return CallResult(success=True, return_value=ret)

    def emit(self, address: str, event: str, **args) -> None:
        if not self._in_transaction:
            raise RuntimeError("Notifications can only be emitted inside a transaction")
        self._pending.append(Notification(event=event, address=address, args=dict(args)))

    # =========================================================================
    # Notifications
    # =========================================================================

    def subscribe(self, callback: Callable[[Notification], None],
                  event: Optional[str] = None, address: Optional[str] = None) -> Callable[[], None]:
        """
        Receive committed notifications, optionally filtered.

        Returns:
            Function that removes the subscription
        """
        if address is not None:
            address = to_address(address)
        entry = (event, address, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def get_logs(self, event: Optional[str] = None, address: Optional[str] = None,
                 from_index: int = 0) -> List[Notification]:
        if address is not None:
            address = to_address(address)
        return [
            n for n in self.logs[from_index:]
            if (event is None or n.event == event)
            and (address is None or n.address == address)
        ]

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute(self, description: str, fn: Callable[[], Any]) -> Any:
        with self._lock:
            if self._in_transaction:
                raise RuntimeError("Transactions cannot nest; use invoke() or call()")
            self._in_transaction = True
            try:
                with self._frame():
                    result = fn()
            except LedgerError as e:
                log.warning(f"Reverted {description}: [{e.code}] {e.reason}")
                raise
            finally:
                self._in_transaction = False
            self._commit()

        self._deliver()
        return result

    @contextmanager
    def _frame(self):
        snapshot = self._snapshot()
        try:
            yield
        except BaseException:
            self._restore(snapshot)
            raise

    def _snapshot(self) -> tuple:
        states = {addr: copy.deepcopy(c.state) for addr, c in self._contracts.items()}
        return states, dict(self._balances), dict(self._nonces), len(self._pending)

    def _restore(self, snapshot: tuple) -> None:
        states, balances, nonces, pending_len = snapshot
        for addr in list(self._contracts):
            if addr not in states:
                del self._contracts[addr]
        for addr, state in states.items():
            self._contracts[addr].state = state
        self._balances = balances
        self._nonces = nonces
        del self._pending[pending_len:]

    def _move_value(self, sender: str, recipient: str, value: int) -> None:
        if not value:
            return
        require_amount(value, "value")
        available = self._balances.get(sender, 0)
        if available < value:
            raise InsufficientFunds(f"{sender} has {available}, needs {value}")
        self._balances[sender] = available - value
        self._balances[recipient] = self._balances.get(recipient, 0) + value

    def _commit(self) -> None:
        self.block_number += 1
        committed = self._pending
        self._pending = []
        for entry in committed:
            entry.block_number = self.block_number
            entry.timestamp = self.timestamp
            entry.log_index = len(self.logs)
            self.logs.append(entry)

    def _deliver(self) -> None:
        """
        Hand committed notifications to subscribers in log order.

        One loop drains the log at a time. Transactions submitted from a
        subscriber (or another thread) while it runs only append to the log;
        the running loop delivers their notifications after the earlier ones.
        """
        with self._delivery_lock:
            if self._delivering:
                return
            self._delivering = True
            try:
                while self._delivered < len(self.logs):
                    notification = self.logs[self._delivered]
                    self._delivered += 1
                    self._dispatch(notification)
            finally:
                self._delivering = False

    def _dispatch(self, notification: Notification) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for event, address, callback in subscribers:
            if event is not None and notification.event != event:
                continue
            if address is not None and notification.address != address:
                continue
            try:
                callback(notification)
            except Exception:
                log.exception(f"Subscriber failed on {notification.event}")
