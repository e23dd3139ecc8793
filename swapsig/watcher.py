"""
Ledger Watcher for swapsig.

Off-chain observer that follows committed notifications and keeps a
queryable index of:
- Swap proposals and their settlement
- Queued actions per action queue and whether they ran
- Current signer set and quorum per action queue

Nothing here feeds back into ledger state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .core import Notification
from .chains.host import Host

log = logging.getLogger(__name__)


@dataclass
class IndexedSwap:
    """Watcher's view of one swap."""
    swap_id: str
    ledger: str
    initiator: str
    counterparty: str
    asset_x: str
    asset_y: str
    amount_x: int
    amount_y: int
    executed: bool = False
    proposed_block: int = 0
    executed_block: Optional[int] = None
    executed_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class IndexedAction:
    """Watcher's view of one queue entry."""
    queue: str
    index: int
    action_id: str
    target: str
    value: int
    payload: str
    queued_by: str
    executed: bool = False
    executed_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class IndexedQueue:
    """Watcher's view of an action queue's governance state."""
    address: str
    signers: List[str] = field(default_factory=list)
    quorum: int = 0


class LedgerWatcher:
    """
    Subscribes to a Host and indexes swap and action-queue notifications.

    Callbacks:
    - on_swap_proposed(IndexedSwap)
    - on_swap_executed(IndexedSwap)
    - on_action_queued(IndexedAction)
    - on_action_executed(IndexedAction)
    """

    def __init__(self, host: Host):
        self.host = host
        self.swaps: Dict[str, IndexedSwap] = {}
        self.actions: Dict[str, List[IndexedAction]] = {}
        self.queues: Dict[str, IndexedQueue] = {}

        self.on_swap_proposed: Optional[Callable[[IndexedSwap], None]] = None
        self.on_swap_executed: Optional[Callable[[IndexedSwap], None]] = None
        self.on_action_queued: Optional[Callable[[IndexedAction], None]] = None
        self.on_action_executed: Optional[Callable[[IndexedAction], None]] = None

        self._handlers = {
            "SwapProposed": self._on_swap_proposed,
            "SwapExecuted": self._on_swap_executed,
            "ActionQueued": self._on_action_queued,
            "ActionExecuted": self._on_action_executed,
            "SignerAdded": self._on_signer_added,
            "SignerRemoved": self._on_signer_removed,
            "QueueCreated": self._on_queue_created,
            "QuorumChanged": self._on_quorum_changed,
        }
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self, replay: bool = True):
        """Subscribe; optionally index everything already in the log first."""
        if self._unsubscribe:
            return
        if replay:
            for notification in self.host.get_logs():
                self.handle(notification)
        self._unsubscribe = self.host.subscribe(self.handle)
        log.info("Ledger watcher started")

    def stop(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
            log.info("Ledger watcher stopped")

    def handle(self, notification: Notification):
        handler = self._handlers.get(notification.event)
        if handler:
            handler(notification)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_swap(self, swap_id: str) -> Optional[IndexedSwap]:
        return self.swaps.get(swap_id.lower())

    def list_swaps(self, participant: Optional[str] = None,
                   executed: Optional[bool] = None) -> List[IndexedSwap]:
        out = []
        for swap in self.swaps.values():
            if participant and participant.lower() not in (
                    swap.initiator.lower(), swap.counterparty.lower()):
                continue
            if executed is not None and swap.executed != executed:
                continue
            out.append(swap)
        return out

    def list_actions(self, queue: str, pending_only: bool = False) -> List[IndexedAction]:
        actions = self.actions.get(queue, [])
        if pending_only:
            return [a for a in actions if not a.executed]
        return list(actions)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _on_swap_proposed(self, n: Notification):
        args = n.args
        swap = IndexedSwap(
            swap_id="0x" + args["swap_id"].hex(),
            ledger=n.address,
            initiator=args["initiator"],
            counterparty=args["counterparty"],
            asset_x=args["asset_x"],
            asset_y=args["asset_y"],
            amount_x=args["amount_x"],
            amount_y=args["amount_y"],
            proposed_block=n.block_number,
        )
        self.swaps[swap.swap_id] = swap
        if self.on_swap_proposed:
            self.on_swap_proposed(swap)

    def _on_swap_executed(self, n: Notification):
        swap = self.swaps.get("0x" + n.args["swap_id"].hex())
        if swap is None:
            log.warning(f"Execution of unknown swap 0x{n.args['swap_id'].hex()}")
            return
        swap.executed = True
        swap.executed_block = n.block_number
        swap.executed_by = n.args["executor"]
        if self.on_swap_executed:
            self.on_swap_executed(swap)

    def _on_action_queued(self, n: Notification):
        args = n.args
        action = IndexedAction(
            queue=n.address,
            index=args["index"],
            action_id="0x" + args["action_id"].hex(),
            target=args["target"],
            value=args["value"],
            payload="0x" + args["payload"].hex(),
            queued_by=args["queued_by"],
        )
        self.actions.setdefault(n.address, []).append(action)
        if self.on_action_queued:
            self.on_action_queued(action)

    def _on_action_executed(self, n: Notification):
        # Execution is per identity, so every entry sharing it is settled
        action_id = "0x" + n.args["action_id"].hex()
        executed = None
        for action in self.actions.get(n.address, []):
            if action.action_id == action_id:
                action.executed = True
                if action.index == n.args["index"]:
                    action.executed_by = n.args["executed_by"]
                    executed = action
        if executed and self.on_action_executed:
            self.on_action_executed(executed)

    def _on_queue_created(self, n: Notification):
        self.queues[n.address] = IndexedQueue(
            address=n.address, signers=list(n.args["signers"]), quorum=n.args["quorum"],
        )
        self.actions.setdefault(n.address, [])

    def _on_signer_added(self, n: Notification):
        queue = self.queues.get(n.address)
        if queue and n.args["signer"] not in queue.signers:
            queue.signers.append(n.args["signer"])

    def _on_signer_removed(self, n: Notification):
        queue = self.queues.get(n.address)
        if queue and n.args["signer"] in queue.signers:
            queue.signers.remove(n.args["signer"])

    def _on_quorum_changed(self, n: Notification):
        queue = self.queues.get(n.address)
        if queue:
            queue.quorum = n.args["new_quorum"]
