"""
Reward distribution

Provides:
  - PoolRegistry     : multi-pool reward distributor with insurance skim
  - ReferralRegistry : first-write-wins referrer records
"""

from .referral import ReferralRegistry
from .registry import PoolAccrual, PoolInfo, PoolRegistry, UserInfo

__all__ = [
    "PoolRegistry",
    "PoolInfo",
    "UserInfo",
    "PoolAccrual",
    "ReferralRegistry",
]
