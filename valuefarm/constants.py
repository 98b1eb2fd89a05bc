"""
valuefarm Constants

This module consolidates all global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# FIXED-POINT AND BASIS-POINT SCALES
# ==================================================================================
ACC_REWARD_PRECISION = 10**12  # accRewardPerShare scale
MAX_BPS = 10_000  # 100% in basis points
MAX_DEPOSIT_FEE_BPS = MAX_BPS


# ==================================================================================
# COLLATERAL TOKEN
# ==================================================================================
TOKEN_NAME = 'Value Liquidity'
TOKEN_SYMBOL = 'VALUE'
TOKEN_DECIMALS = 18
DEFAULT_TOKEN_CAP = 2_370_000 * 10**18


# ==================================================================================
# REWARD DISTRIBUTION
# ==================================================================================
DEFAULT_REWARD_PER_BLOCK = 10**18
DEFAULT_INSURANCE_FUND_BPS = 0  # skim is opt-in; stakers get the full pool reward
DEFAULT_REFERRAL_COMMISSION_BPS = 100  # 1% of every harvested reward


# ==================================================================================
# TIMELOCK
# ==================================================================================
TIMELOCK_GRACE_PERIOD = 14 * 86400  # 14 days
TIMELOCK_MINIMUM_DELAY = 6 * 3600  # 6 hours
TIMELOCK_MAXIMUM_DELAY = 30 * 86400  # 30 days
TIMELOCK_DEFAULT_DELAY = 86400  # 1 day


# ==================================================================================
# CHAIN
# ==================================================================================
BLOCK_TIME = 13  # seconds advanced per mined block
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    # Case-insensitive membership check
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    # Parses only boolean-literals. Leaves other values untouched.
    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    # Wraps based on parsed value type.
    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        # Preserves the original raw string for ConfigString storage.
        namespace[key] = ConfigString(value_raw, default_val)
