"""
Threshold Action Queue for swapsig.

A fixed set of signers queues external calls (target, value, payload) and
executes them later. Each action runs at most once: execution is tracked by
the action's content identity, not by its position in the queue, so a second
entry with identical content cannot run again either.

The quorum is configuration only. Any current signer can execute a queued
action on their own; no approvals are counted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from ..core import (
    AlreadyExecuted, BoundsExceeded, CallFailed, InvalidParameters, Unauthorized,
    MAX_QUEUE_LENGTH, MAX_SIGNERS,
    action_identity, require_amount, to_address, to_bytes32, unique_addresses,
)
from ..chains.host import CallContext, Contract

log = logging.getLogger(__name__)


@dataclass
class QueueConfig:
    """Capacity bounds, fixed at construction."""
    max_signers: int = MAX_SIGNERS
    max_queue_length: int = MAX_QUEUE_LENGTH


@dataclass
class QueuedAction:
    """External call waiting to run."""
    target: str
    value: int
    payload: bytes = b""

    @property
    def action_id(self) -> bytes:
        return action_identity(self.target, self.value, self.payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": "0x" + self.action_id.hex(),
            "target": self.target,
            "value": self.value,
            "payload": "0x" + self.payload.hex(),
        }


@dataclass
class ActionQueueState:
    signers: List[str] = field(default_factory=list)
    is_signer: Dict[str, bool] = field(default_factory=dict)
    quorum: int = 1
    actions: List[QueuedAction] = field(default_factory=list)
    executed: Dict[bytes, bool] = field(default_factory=dict)
    max_signers: int = MAX_SIGNERS
    max_queue_length: int = MAX_QUEUE_LENGTH


class ThresholdActionQueue(Contract):
    """
    Signer-gated queue of external calls.

    Invariants:
    - signers and is_signer always describe the same set
    - 1 <= len(signers) <= max_signers
    - 1 <= quorum <= len(signers)
    - actions is append-only; executed only ever flips false -> true
    """

    def constructor(self, ctx: CallContext, signers: List[str], quorum: int,
                    config: Optional[QueueConfig] = None):
        config = config or QueueConfig()
        if config.max_signers < 1 or config.max_queue_length < 1:
            raise InvalidParameters(f"Invalid queue config: {config}")

        signers = unique_addresses(signers)
        if not signers:
            raise InvalidParameters("At least one signer is required")
        if len(signers) > config.max_signers:
            raise BoundsExceeded(f"{len(signers)} signers exceeds maximum {config.max_signers}")

        self.state = ActionQueueState(
            signers=signers,
            is_signer={s: True for s in signers},
            max_signers=config.max_signers,
            max_queue_length=config.max_queue_length,
        )
        self._validate_quorum(quorum, len(signers))
        self.state.quorum = quorum
        self.emit("QueueCreated", signers=list(signers), quorum=quorum)
        log.info(f"Action queue {self.address}: {len(signers)} signers, quorum {quorum}")

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def quorum(self) -> int:
        return self.state.quorum

    def get_signers(self) -> List[str]:
        return list(self.state.signers)

    def is_signer(self, address: str) -> bool:
        return self.state.is_signer.get(to_address(address, allow_zero=True), False)

    def action_count(self) -> int:
        return len(self.state.actions)

    def get_action(self, index: int) -> QueuedAction:
        self._require_index(index)
        return self.state.actions[index]

    def is_executed(self, action_id: Union[bytes, str]) -> bool:
        return self.state.executed.get(to_bytes32(action_id), False)

    def pending_actions(self) -> List[Tuple[int, QueuedAction]]:
        """(index, action) for every entry whose identity has not executed."""
        return [
            (i, action) for i, action in enumerate(self.state.actions)
            if not self.state.executed.get(action.action_id, False)
        ]

    # =========================================================================
    # Signer set
    # =========================================================================

    def add_signer(self, ctx: CallContext, new_signer: str) -> None:
        self._only_signer(ctx)
        new_signer = to_address(new_signer)
        if self.state.is_signer.get(new_signer):
            raise InvalidParameters(f"{new_signer} is already a signer")
        if len(self.state.signers) >= self.state.max_signers:
            raise BoundsExceeded(f"Signer set full ({self.state.max_signers})")

        self.state.signers.append(new_signer)
        self.state.is_signer[new_signer] = True
        self.emit("SignerAdded", signer=new_signer, added_by=ctx.sender)
        log.info(f"Signer added: {new_signer}")

    def remove_signer(self, ctx: CallContext, signer: str) -> None:
        """Remove a signer. Signer order is not preserved."""
        self._only_signer(ctx)
        signer = to_address(signer)
        if not self.state.is_signer.get(signer):
            raise InvalidParameters(f"{signer} is not a signer")
        remaining = len(self.state.signers) - 1
        if remaining < 1:
            raise InvalidParameters("Cannot remove the last signer")
        if remaining < self.state.quorum:
            raise InvalidParameters(
                f"Removing {signer} leaves {remaining} signers below quorum {self.state.quorum}"
            )

        signers = self.state.signers
        index = signers.index(signer)
        signers[index] = signers[-1]
        signers.pop()
        del self.state.is_signer[signer]

        self.emit("SignerRemoved", signer=signer, removed_by=ctx.sender)
        log.info(f"Signer removed: {signer}")

    def change_quorum(self, ctx: CallContext, new_quorum: int) -> None:
        self._only_signer(ctx)
        self._validate_quorum(new_quorum, len(self.state.signers))
        old = self.state.quorum
        self.state.quorum = new_quorum
        self.emit("QuorumChanged", old_quorum=old, new_quorum=new_quorum, changed_by=ctx.sender)
        log.info(f"Quorum changed: {old} -> {new_quorum}")

    # =========================================================================
    # Actions
    # =========================================================================

    def queue_action(self, ctx: CallContext, target: str, value: int = 0,
                     payload: bytes = b"") -> int:
        """
        Append an action to the queue.

        Returns:
            Index of the new entry

        Raises:
            Unauthorized: caller is not a signer
            BoundsExceeded: queue is full
            AlreadyExecuted: an action with identical content already ran
        """
        self._only_signer(ctx)
        action = QueuedAction(
            target=to_address(target),
            value=require_amount(value, "value"),
            payload=_payload_bytes(payload),
        )
        if len(self.state.actions) >= self.state.max_queue_length:
            raise BoundsExceeded(f"Queue full ({self.state.max_queue_length})")
        action_id = action.action_id
        if self.state.executed.get(action_id):
            raise AlreadyExecuted(f"Action 0x{action_id.hex()} already executed")

        self.state.actions.append(action)
        index = len(self.state.actions) - 1
        self.emit(
            "ActionQueued",
            index=index,
            action_id=action_id,
            target=action.target,
            value=action.value,
            payload=action.payload,
            queued_by=ctx.sender,
        )
        log.info(f"Action #{index} queued: {action.target[:10]} value={action.value}")
        return index

    def execute_action(self, ctx: CallContext, index: int) -> bytes:
        """
        Run the action at `index`.

        The executed flag is set before the call. If the call fails the whole
        transaction reverts, flag included.

        Returns:
            Action identity

        Raises:
            Unauthorized: caller is not a signer
            InvalidParameters: index out of range
            AlreadyExecuted: identity already executed
            CallFailed: target reported failure
        """
        self._only_signer(ctx)
        action = self.get_action(index)
        action_id = action.action_id
        if self.state.executed.get(action_id):
            raise AlreadyExecuted(f"Action 0x{action_id.hex()} already executed")

        self.state.executed[action_id] = True
        result = ctx.host.call(self.address, action.target, value=action.value, payload=action.payload)
        if not result.success:
            raise CallFailed(f"Action #{index} to {action.target} failed: {result.error}")

        self.emit(
            "ActionExecuted",
            index=index,
            action_id=action_id,
            target=action.target,
            value=action.value,
            executed_by=ctx.sender,
        )
        log.info(f"Action #{index} executed by {ctx.sender[:10]}")
        return action_id

    def receive(self, ctx: CallContext) -> None:
        """Accept native value so actions can carry it."""
        self.emit("Deposit", sender=ctx.sender, amount=ctx.value,
                  balance=ctx.host.balance_of(self.address))

    # =========================================================================
    # Guards
    # =========================================================================

    def _only_signer(self, ctx: CallContext) -> None:
        if not self.state.is_signer.get(ctx.sender):
            raise Unauthorized(f"{ctx.sender} is not a signer")

    def _require_index(self, index: Any) -> None:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidParameters(f"Index must be an integer, got {index!r}")
        if not 0 <= index < len(self.state.actions):
            raise InvalidParameters(f"Index {index} out of range ({len(self.state.actions)} queued)")

    def _validate_quorum(self, quorum: Any, signer_count: int) -> None:
        if isinstance(quorum, bool) or not isinstance(quorum, int):
            raise InvalidParameters(f"Quorum must be an integer, got {quorum!r}")
        if not 1 <= quorum <= signer_count or quorum > self.state.max_signers:
            raise InvalidParameters(f"Quorum {quorum} invalid for {signer_count} signers")


def _payload_bytes(payload: Union[bytes, str]) -> bytes:
    if isinstance(payload, str):
        hex_str = payload[2:] if payload.startswith("0x") else payload
        try:
            return bytes.fromhex(hex_str)
        except ValueError:
            raise InvalidParameters(f"Invalid hex payload: {payload!r}")
    if not isinstance(payload, (bytes, bytearray)):
        raise InvalidParameters("Payload must be bytes")
    return bytes(payload)
