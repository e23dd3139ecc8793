"""
Action queue endpoints.

Governance state and queued actions per queue address.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ..core import InvalidParameters, to_address
from ..watcher import IndexedQueue, LedgerWatcher

router = APIRouter()

# Set by server.create_app()
_watcher: Optional[LedgerWatcher] = None


def configure(watcher: LedgerWatcher):
    """Bind the routes to a watcher. Called once at startup."""
    global _watcher
    _watcher = watcher


def _get_watcher() -> LedgerWatcher:
    if _watcher is None:
        raise HTTPException(503, "Watcher not configured")
    return _watcher


def _get_queue(address: str) -> IndexedQueue:
    try:
        address = to_address(address)
    except InvalidParameters as e:
        raise HTTPException(400, e.reason)
    queue = _get_watcher().queues.get(address)
    if queue is None:
        raise HTTPException(404, "Action queue not found")
    return queue


class QueueResponse(BaseModel):
    address: str
    signers: List[str]
    quorum: int
    balance: int
    actions_total: int
    actions_pending: int


class ActionResponse(BaseModel):
    queue: str
    index: int
    action_id: str
    target: str
    value: int
    payload: str
    queued_by: str
    executed: bool
    executed_by: Optional[str] = None


@router.get("/api/multisig/{address}", response_model=QueueResponse)
async def get_queue(address: str):
    """Signer set, quorum and queue counters."""
    watcher = _get_watcher()
    queue = _get_queue(address)
    actions = watcher.list_actions(queue.address)
    return QueueResponse(
        address=queue.address,
        signers=queue.signers,
        quorum=queue.quorum,
        balance=watcher.host.balance_of(queue.address),
        actions_total=len(actions),
        actions_pending=len([a for a in actions if not a.executed]),
    )


@router.get("/api/multisig/{address}/actions", response_model=List[ActionResponse])
async def list_actions(address: str, pending: bool = Query(False, description="Only not-yet-executed")):
    """Queued actions in queue order."""
    queue = _get_queue(address)
    actions = _get_watcher().list_actions(queue.address, pending_only=pending)
    return [ActionResponse(**a.to_dict()) for a in actions]
