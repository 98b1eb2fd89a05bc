"""
valuefarm Configuration

Loads protocol.toml; environment variables override TOML values.
"""

from .loader import (
    ChainConfig,
    ProtocolConfig,
    RewardsConfig,
    TimelockConfig,
    TokenConfig,
    load_config,
)

__all__ = [
    "ProtocolConfig",
    "TokenConfig",
    "RewardsConfig",
    "TimelockConfig",
    "ChainConfig",
    "load_config",
]
