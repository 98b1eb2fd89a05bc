"""
Governance

Provides:
  - Timelock : admin-controlled delayed executor for privileged calls
"""

from .timelock import (
    GRACE_PERIOD,
    MAXIMUM_DELAY,
    MINIMUM_DELAY,
    QueuedTransaction,
    Timelock,
    TimelockStatus,
    compute_tx_hash,
)

__all__ = [
    "Timelock",
    "TimelockStatus",
    "QueuedTransaction",
    "compute_tx_hash",
    "GRACE_PERIOD",
    "MINIMUM_DELAY",
    "MAXIMUM_DELAY",
]
