"""
Swap ledger endpoints.

Read-only views over the watcher's swap index.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..watcher import LedgerWatcher

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


class SwapResponse(BaseModel):
    swap_id: str
    ledger: str
    initiator: str
    counterparty: str
    asset_x: str
    asset_y: str
    amount_x: int = Field(..., description="Paid by initiator")
    amount_y: int = Field(..., description="Paid by counterparty")
    executed: bool
    proposed_block: int
    executed_block: Optional[int] = None
    executed_by: Optional[str] = None


@router.get("/api/swaps", response_model=List[SwapResponse])
async def list_swaps(
    participant: Optional[str] = Query(None, description="Initiator or counterparty address"),
    executed: Optional[bool] = Query(None),
):
    """List indexed swaps."""
    swaps = _get_watcher().list_swaps(participant=participant, executed=executed)
    return [SwapResponse(**s.to_dict()) for s in swaps]


@router.get("/api/swap/{swap_id}", response_model=SwapResponse)
async def get_swap(swap_id: str):
    """Get one swap by its 0x-prefixed identity."""
    if not swap_id.startswith("0x") or len(swap_id) != 66:
        raise HTTPException(400, "swap_id must be 0x + 64 hex chars")
    swap = _get_watcher().get_swap(swap_id)
    if swap is None:
        raise HTTPException(404, "Swap not found")
    return SwapResponse(**swap.to_dict())
