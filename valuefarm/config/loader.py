"""
valuefarm TOML Configuration Loader

Loads protocol.toml with environment variable overrides.  Each [section]
maps to a dataclass with ``from_dict`` and ``apply_env``.

Environment variable mapping:
    [token] cap                      → VALUEFARM_TOKEN_CAP
    [rewards] reward_per_block       → VALUEFARM_REWARD_PER_BLOCK
    [rewards] start_block            → VALUEFARM_START_BLOCK
    [rewards] insurance_fund         → VALUEFARM_INSURANCE_FUND
    [rewards] insurance_fund_bps     → VALUEFARM_INSURANCE_FUND_BPS
    [rewards] referral_commission_bps→ VALUEFARM_REFERRAL_COMMISSION_BPS
    [timelock] delay                 → VALUEFARM_TIMELOCK_DELAY
    [timelock] admin                 → VALUEFARM_TIMELOCK_ADMIN
    [chain] block_time               → VALUEFARM_BLOCK_TIME

Token amounts may be written as integers or, since TOML integers stop at
64 bits, as decimal strings.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import (
    BLOCK_TIME,
    DEFAULT_INSURANCE_FUND_BPS,
    DEFAULT_REFERRAL_COMMISSION_BPS,
    DEFAULT_REWARD_PER_BLOCK,
    DEFAULT_TOKEN_CAP,
    MAX_BPS,
    TIMELOCK_DEFAULT_DELAY,
    TIMELOCK_MAXIMUM_DELAY,
    TIMELOCK_MINIMUM_DELAY,
    TOKEN_DECIMALS,
    TOKEN_NAME,
    TOKEN_SYMBOL,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip().replace("_", ""))
        except ValueError:
            pass
    raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().casefold() in {"true", "false"}:
        return value.strip().casefold() == "true"
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _as_optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass
class TokenConfig:
    """[token] section."""
    name: str = TOKEN_NAME
    symbol: str = TOKEN_SYMBOL
    decimals: int = TOKEN_DECIMALS
    cap: int = DEFAULT_TOKEN_CAP
    collateral: Optional[str] = None  # deploy a fresh backing asset when unset

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenConfig":
        return cls(
            name=data.get("name", TOKEN_NAME),
            symbol=data.get("symbol", TOKEN_SYMBOL),
            decimals=_as_int(data.get("decimals", TOKEN_DECIMALS), "token.decimals"),
            cap=_as_int(data.get("cap", DEFAULT_TOKEN_CAP), "token.cap"),
            collateral=_as_optional_str(data.get("collateral")),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("VALUEFARM_TOKEN_CAP"):
            self.cap = _as_int(v, "VALUEFARM_TOKEN_CAP")


@dataclass
class RewardsConfig:
    """[rewards] section."""
    reward_per_block: int = DEFAULT_REWARD_PER_BLOCK
    start_block: int = 0
    insurance_fund: Optional[str] = None  # defaults to the deployer
    insurance_fund_bps: int = DEFAULT_INSURANCE_FUND_BPS
    referral_commission_bps: int = DEFAULT_REFERRAL_COMMISSION_BPS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardsConfig":
        return cls(
            reward_per_block=_as_int(
                data.get("reward_per_block", DEFAULT_REWARD_PER_BLOCK),
                "rewards.reward_per_block",
            ),
            start_block=_as_int(data.get("start_block", 0), "rewards.start_block"),
            insurance_fund=_as_optional_str(data.get("insurance_fund")),
            insurance_fund_bps=_as_int(
                data.get("insurance_fund_bps", DEFAULT_INSURANCE_FUND_BPS),
                "rewards.insurance_fund_bps",
            ),
            referral_commission_bps=_as_int(
                data.get("referral_commission_bps", DEFAULT_REFERRAL_COMMISSION_BPS),
                "rewards.referral_commission_bps",
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("VALUEFARM_REWARD_PER_BLOCK"):
            self.reward_per_block = _as_int(v, "VALUEFARM_REWARD_PER_BLOCK")
        if v := os.environ.get("VALUEFARM_START_BLOCK"):
            self.start_block = _as_int(v, "VALUEFARM_START_BLOCK")
        if v := os.environ.get("VALUEFARM_INSURANCE_FUND"):
            self.insurance_fund = v
        if v := os.environ.get("VALUEFARM_INSURANCE_FUND_BPS"):
            self.insurance_fund_bps = _as_int(v, "VALUEFARM_INSURANCE_FUND_BPS")
        if v := os.environ.get("VALUEFARM_REFERRAL_COMMISSION_BPS"):
            self.referral_commission_bps = _as_int(v, "VALUEFARM_REFERRAL_COMMISSION_BPS")


@dataclass
class TimelockConfig:
    """[timelock] section."""
    delay: int = TIMELOCK_DEFAULT_DELAY
    admin: Optional[str] = None  # defaults to the deployer
    transfer_governance: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelockConfig":
        return cls(
            delay=_as_int(data.get("delay", TIMELOCK_DEFAULT_DELAY), "timelock.delay"),
            admin=_as_optional_str(data.get("admin")),
            transfer_governance=_as_bool(
                data.get("transfer_governance", True), "timelock.transfer_governance"
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("VALUEFARM_TIMELOCK_DELAY"):
            self.delay = _as_int(v, "VALUEFARM_TIMELOCK_DELAY")
        if v := os.environ.get("VALUEFARM_TIMELOCK_ADMIN"):
            self.admin = v


@dataclass
class ChainConfig:
    """[chain] section."""
    block_number: int = 0
    timestamp: Optional[int] = None  # wall clock when unset
    block_time: int = BLOCK_TIME

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainConfig":
        timestamp = data.get("timestamp")
        return cls(
            block_number=_as_int(data.get("block_number", 0), "chain.block_number"),
            timestamp=None if timestamp is None else _as_int(timestamp, "chain.timestamp"),
            block_time=_as_int(data.get("block_time", BLOCK_TIME), "chain.block_time"),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("VALUEFARM_BLOCK_TIME"):
            self.block_time = _as_int(v, "VALUEFARM_BLOCK_TIME")


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass
class ProtocolConfig:
    """
    Unified protocol configuration.

    Loads every section of protocol.toml and applies environment variable
    overrides.
    """
    token: TokenConfig = field(default_factory=TokenConfig)
    rewards: RewardsConfig = field(default_factory=RewardsConfig)
    timelock: TimelockConfig = field(default_factory=TimelockConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolConfig":
        """Create ProtocolConfig from a parsed TOML dict."""
        return cls(
            token=TokenConfig.from_dict(data.get("token", {})),
            rewards=RewardsConfig.from_dict(data.get("rewards", {})),
            timelock=TimelockConfig.from_dict(data.get("timelock", {})),
            chain=ChainConfig.from_dict(data.get("chain", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "ProtocolConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            cfg.validate()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        cfg.validate()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.token.apply_env()
        self.rewards.apply_env()
        self.timelock.apply_env()
        self.chain.apply_env()

    def validate(self) -> bool:
        """
        Raises:
            ConfigurationError: on invalid config
        """
        if self.token.cap < 0:
            raise ConfigurationError("token.cap cannot be negative")
        if not 0 <= self.token.decimals <= 18:
            raise ConfigurationError(f"token.decimals must be 0-18, got {self.token.decimals}")
        if self.rewards.reward_per_block < 0:
            raise ConfigurationError("rewards.reward_per_block cannot be negative")
        if self.rewards.start_block < 0:
            raise ConfigurationError("rewards.start_block cannot be negative")
        for name in ("insurance_fund_bps", "referral_commission_bps"):
            bps = getattr(self.rewards, name)
            if not 0 <= bps <= MAX_BPS:
                raise ConfigurationError(f"rewards.{name} must be within 0-{MAX_BPS}, got {bps}")
        if not TIMELOCK_MINIMUM_DELAY <= self.timelock.delay <= TIMELOCK_MAXIMUM_DELAY:
            raise ConfigurationError(
                f"timelock.delay must be within {TIMELOCK_MINIMUM_DELAY}-"
                f"{TIMELOCK_MAXIMUM_DELAY}s, got {self.timelock.delay}"
            )
        if self.chain.block_time <= 0:
            raise ConfigurationError("chain.block_time must be positive")
        if self.chain.block_number < 0:
            raise ConfigurationError("chain.block_number cannot be negative")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "token": {
                "name": self.token.name,
                "symbol": self.token.symbol,
                "decimals": self.token.decimals,
                "cap": str(self.token.cap),
                "collateral": self.token.collateral,
            },
            "rewards": {
                "reward_per_block": str(self.rewards.reward_per_block),
                "start_block": self.rewards.start_block,
                "insurance_fund": self.rewards.insurance_fund,
                "insurance_fund_bps": self.rewards.insurance_fund_bps,
                "referral_commission_bps": self.rewards.referral_commission_bps,
            },
            "timelock": {
                "delay": self.timelock.delay,
                "admin": self.timelock.admin,
                "transfer_governance": self.timelock.transfer_governance,
            },
            "chain": {
                "block_number": self.chain.block_number,
                "timestamp": self.chain.timestamp,
                "block_time": self.chain.block_time,
            },
        }


def load_config(path: Optional[str] = None) -> ProtocolConfig:
    """
    Load protocol configuration.

    Resolution order:
        1. Explicit *path* argument
        2. VALUEFARM_CONFIG env var
        3. ./protocol.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("VALUEFARM_CONFIG", "protocol.toml")

    return ProtocolConfig.from_file(path)
