"""
Ghost Bridge Constants

Wire-format constants, registry limits and default program identities, plus
the handful of process settings read from ``.env`` at import time.
"""
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
_env = dotenv_values(".env")


def _env_setting(key, default):
    """Value from .env or ``default``. "true"/"false" in any casing become bools."""
    raw = _env.get(key)
    value = default if raw is None else raw.strip()
    if isinstance(value, str) and value.casefold() in ("true", "false"):
        return value.casefold() == "true"
    return value


GHOST_CONFIG_PATH = _env_setting('GHOST_CONFIG_PATH', 'config.toml')
GHOST_NETWORK_NAME = _env_setting('GHOST_NETWORK_NAME', 'ghost-local')

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DEFAULT_LOG_DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'

LOG_LEVEL = _env_setting('LOG_LEVEL', 'INFO')
LOG_FORMAT = _env_setting('LOG_FORMAT', DEFAULT_LOG_FORMAT)
LOG_DATE_FORMAT = _env_setting('LOG_DATE_FORMAT', DEFAULT_LOG_DATE_FORMAT)
LOG_CONSOLE_HIGHLIGHTING = _env_setting('LOG_CONSOLE_HIGHLIGHTING', True)
LOG_FILE_OUTPUT = _env_setting('LOG_FILE_OUTPUT', False)

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW ARE PART OF THE WIRE AND STORAGE FORMAT. CHANGING THEM
# BREAKS HASH COMPATIBILITY WITH ORDERS ALREADY COMMITTED AND WITH THE DOWNSTREAM VENUE.

# ==================================================================================
# CORE PROTOCOL CONSTANTS
# ==================================================================================
ENGINE_VERSION = '0.3.0'
IDENTITY_LENGTH = 32
HASH_LENGTH = 32
SALT_LENGTH = 16
FEED_ID_LENGTH = 32


# ==================================================================================
# REGISTRY LIMITS
# ==================================================================================
MAX_ORDERS_PER_EXECUTOR = 16
MAX_AUTHORIZED_EXECUTORS = 4
MAX_ENCRYPTED_DATA_LEN = 256


# ==================================================================================
# RECORD SEED PREFIXES
# ==================================================================================
EXECUTOR_SEED_PREFIX = b"executor"
ENCRYPTED_ORDER_SEED_PREFIX = b"encrypted_order"
GHOST_ORDER_SEED_PREFIX = b"ghost_order"
GHOST_DELEGATE_SEED_PREFIX = b"ghost_delegate"
DERIVED_ADDRESS_MARKER = b"ProgramDerivedAddress"


# ==================================================================================
# COMMITMENT-REVEAL WINDOW
# ==================================================================================
# 100 slots is roughly 40 seconds at the nominal 400ms slot time
READY_WINDOW_SLOTS = 100


# ==================================================================================
# SETTLEMENT VENUE WIRE FORMAT
# ==================================================================================
# sha256("global:place_perp_order")[0:8]
PLACE_PERP_ORDER_DISCRIMINATOR = bytes.fromhex("45a15dca787e4cb9")
PLACE_PERP_ORDER_DATA_LEN = 40
SETTLEMENT_COMPUTE_UNITS = 200_000


# ==================================================================================
# DOMAIN DELEGATION
# ==================================================================================
REDELEGATE_DISCRIMINATOR = bytes.fromhex("90f67a117e8c4f00")
REDELEGATE_COMPUTE_UNITS = 50_000
REDELEGATE_REQUIRED_ACCOUNTS = 3


# ==================================================================================
# PRICE FEED FORMAT
# ==================================================================================
PRICE_FEED_MAGIC = b"PYTH"
PRICE_FEED_MAGIC_V2 = bytes([0x50, 0x32, 0x55, 0x56])
PRICE_FEED_MIN_LEN = 64
PRICE_FEED_PRICE_OFFSET = 32 + 8
LEGACY_PRICE_FEED_MIN_LEN = 32
LEGACY_PRICE_FEED_PRICE_OFFSET = 8


# ==================================================================================
# DEFAULT PROGRAM IDENTITIES (hex, overridable through config.toml / env)
# ==================================================================================
DEFAULT_ENGINE_PROGRAM_ID = '0x2d268e46c1cfea093bca2e799a802644af8fb957b89aa0593de94bc4c165ba53'
DEFAULT_CRANK_PROGRAM_ID = '0xd4b38ade013dee82bf7b838303757c8c817fa62fa76af5f944e5c0c94b7bcc74'
DEFAULT_ORACLE_PROGRAM_ID = '0x0c573dd1c1e624e4ad05bd1432250ca6864cecbda1994b1abc2e91c3be013149'
DEFAULT_SETTLEMENT_PROGRAM_ID = '0xe59e97d59f5e62c5d9ad3b34c0cedd957e18276b0b735f0192eb3e0346081b3c'
DEFAULT_DELEGATION_PROGRAM_ID = '0xdd5aee4f726fba26d87169d7ed5123811293a11017686a640af3cfcbed8d9798'
SYSTEM_PROGRAM_ID = bytes(IDENTITY_LENGTH)


# ==================================================================================
# KEEPER
# ==================================================================================
KEEPER_POLL_INTERVAL = 1.0  # seconds
KEEPER_MAX_FAILURES_PER_ORDER = 5
