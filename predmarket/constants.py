"""
Prediction Market Engine Constants

This module consolidates the protocol constants and environment configuration
used throughout the engine. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from decimal import Decimal
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


# WARNING: THE VALUES BELOW ARE MARKET-CRITICAL. EVERY REPLICA OF A MARKET MUST RUN WITH THE SAME
# VALUES, OTHERWISE REPLAYING THE SAME OPERATION SEQUENCE WILL PRODUCE DIVERGENT STATE.
# OVERRIDE THEM THROUGH predmarket.config FOR TESTING OR FOR A NEW DEPLOYMENT ONLY.

# ==================================================================================
# FIXED-POINT ARITHMETIC
# ==================================================================================
PRICE_DECIMALS = 18                       # prices and amounts are quantized to 1e-18
BPS_DENOMINATOR = 10_000                  # 10000 bp = 100%
SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY


# ==================================================================================
# PRICING CURVE
# ==================================================================================
MIN_PRICE = Decimal("0.001")
MAX_PRICE = Decimal("0.999")
MID_PRICE = Decimal("0.5")
CURVE_ADJUSTMENT_BPS = 500                # distortion strength at the price extremes
MIN_OUTCOMES = 2
MAX_OUTCOMES = 16


# ==================================================================================
# DYNAMIC FEES
# ==================================================================================
BASE_FEE_BPS = 30                         # 0.30 %
MAX_FEE_BPS = 100                         # 1.00 %
VOLATILITY_WINDOW = 3_600                 # 1 hour
FEE_TREASURY_SHARE_BPS = 2_000            # 20 % of every fee accrues to the protocol
FEE_REFERRAL_SHARE_BPS = 1_000            # 10 % of every fee when a referrer is present


# ==================================================================================
# TRADE GUARD
# ==================================================================================
MAX_PRICE_IMPACT_BPS = 500                # 5 %
PRICE_IMPACT_BUFFER_SIZE = 10
TWAP_OBSERVATION_CAPACITY = 24
MEV_WITHHOLD_RATE_BPS = 1_000             # 10 % of the deviation is withheld ...
MAX_MEV_WITHHOLD_BPS = 100                # ... capped at 1 % of the output


# ==================================================================================
# COMMIT-REVEAL
# ==================================================================================
MIN_REVEAL_DELAY = 60                     # seconds between commit and reveal
COMMIT_DOMAIN = b"PREDMARKET_COMMIT_V1"


# ==================================================================================
# LIQUIDITY
# ==================================================================================
IL_PROTECTION_PERIOD = 30 * SECONDS_PER_DAY
MAX_IL_PROTECTION_BPS = 5_000             # 50 % of the liquidity removed
DEFAULT_INCENTIVE_RATE_BPS = 1_000        # 10 % per year
LIQUIDITY_TIERS = (
    (Decimal("0"), 10_000),
    (Decimal("1000"), 11_000),
    (Decimal("10000"), 12_500),
    (Decimal("100000"), 15_000),
)


# ==================================================================================
# PREDICTORS
# ==================================================================================
STREAK_WINDOW = SECONDS_PER_DAY
EARLY_PREDICTOR_WINDOW = SECONDS_PER_DAY
ACCURACY_REWARD_RATE_BPS = 500            # 5 % of the winning stake
EARLY_PREDICTOR_BONUS_BPS = 2_000
STREAK_BONUS_BPS = 500                    # per streak step
MAX_STREAK_BONUS_BPS = 5_000


# ==================================================================================
# LIFECYCLE
# ==================================================================================
LOCK_WINDOW = 3_600                       # lock permitted within 1 hour of the end time


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
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
