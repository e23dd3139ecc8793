"""
Signer-gated queue of external calls.
"""

from .queue import ThresholdActionQueue, QueuedAction, QueueConfig

__all__ = ["ThresholdActionQueue", "QueuedAction", "QueueConfig"]
