"""
CCA Tracker System Constants
Fixed protocol values, table names and statistic thresholds
"""

# ============================================================================
# TOKEN / EVENT
# ============================================================================

USDC_DECIMALS = 6

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


# ============================================================================
# STORAGE
# ============================================================================

TABLE_SYNC_STATE = "cca_sync_state"
TABLE_TRANSFERS = "cca_transfers"
TABLE_WALLETS = "cca_wallets"
TABLE_STATS = "cca_stats_latest"
TABLE_SYNC_LOCK = "cca_sync_lock"

SYNC_STATE_KEY = "cca_usdc_sync"  # checkpoint singleton id
STATS_ROW_ID = "latest"  # statistics singleton id
SYNC_LOCK_ID = "cca_sync"  # lease singleton id

DB_WRITE_BATCH_SIZE = 500  # Supabase bulk upsert limit


# ============================================================================
# STATISTICS
# ============================================================================

PCT_BELOW_THRESHOLDS = (50, 100)  # USDC
TOP_SHARE_SIZES = (10, 50)  # wallets


# ============================================================================
# NAME RESOLUTION
# ============================================================================

# Stored in cca_wallets.ens_name once both tiers were tried without a result.
# NULL means "not yet checked".
ALIAS_NONE_SENTINEL = "_none"

# Basenames L2 resolver on Base mainnet
BASENAME_L2_RESOLVER = "0xC6d566A56A1aFf6508b41f6c90ff131615583BCD"
# ENSIP-11 coin type for Base: 0x80000000 | chain id 8453
BASE_REVERSE_COIN_TYPE_HEX = "80002105"
