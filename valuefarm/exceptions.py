"""
valuefarm Exceptions

Custom exception classes for the token, reward and timelock contracts.
Every failure is raised synchronously and the surrounding operation is
reverted by ``Chain.atomic``.
"""


class ValueFarmError(Exception):
    """Base exception for valuefarm."""
    pass


class UnauthorizedError(ValueFarmError):
    """Caller lacks the role the operation requires."""
    pass


class InvalidAddressError(ValueFarmError):
    """Invalid address format."""
    pass


class ConfigurationError(ValueFarmError):
    """Configuration error."""
    pass


# ── Supply / cap ──────────────────────────────────────────────────────

class CapExceededError(ValueFarmError):
    """Minting would push uncollateralized supply over the cap."""
    pass


class CapBelowSupplyError(ValueFarmError):
    """New cap (plus locked collateral) is below the current supply."""
    pass


class ExceedsStuckAmountError(ValueFarmError):
    """Recovery would touch collateral that backs live tokens."""
    pass


# ── Funds ─────────────────────────────────────────────────────────────

class InsufficientBalanceError(ValueFarmError):
    """Raised when an account balance is too low."""
    pass


class InsufficientAllowanceError(ValueFarmError):
    """Raised when a spender allowance is too low."""
    pass


class InsufficientStakeError(ValueFarmError):
    """Withdrawal exceeds the staked amount."""
    pass


class ExceedsLockedCollateralError(ValueFarmError):
    """Withdrawal exceeds the locked collateral."""
    pass


# ── Rewards ───────────────────────────────────────────────────────────

class SelfReferralError(ValueFarmError):
    """Depositor named themselves as referrer."""
    pass


class UnknownPoolError(ValueFarmError):
    """Pool id does not exist."""
    pass


class InvalidFeeError(ValueFarmError):
    """Basis-point value out of range."""
    pass


# ── Timelock ──────────────────────────────────────────────────────────

class TimelockError(ValueFarmError):
    """Timelock-specific errors."""
    pass


class EtaTooSoonError(TimelockError):
    """Estimated execution block must satisfy delay."""
    pass


class TimeLockNotSurpassedError(TimelockError):
    """Execution attempted before the eta."""
    pass


class StaleTransactionError(TimelockError):
    """Execution attempted after eta + grace period."""
    pass


class NotQueuedError(TimelockError):
    """Transaction hash is not queued."""
    pass


class InvalidDelayError(TimelockError):
    """Delay outside the allowed bounds."""
    pass


class UnderlyingCallRevertedError(TimelockError):
    """The forwarded call failed."""
    pass


class UnknownFunctionError(ValueFarmError):
    """Target contract does not expose the requested signature."""
    pass
