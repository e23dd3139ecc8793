"""
Two-party asset swap escrow.
"""

from .ledger import SwapLedger, SwapRecord

__all__ = ["SwapLedger", "SwapRecord"]
