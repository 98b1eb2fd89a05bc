"""
Token contracts

Provides:
  - FungibleToken    : ERC-20 style ledger (backing asset, stake tokens)
  - CollateralToken  : capped reward token backed by locked collateral
"""

from .erc20 import FungibleToken, MAX_UINT256
from .collateral import CollateralToken

__all__ = [
    "FungibleToken",
    "CollateralToken",
    "MAX_UINT256",
]
