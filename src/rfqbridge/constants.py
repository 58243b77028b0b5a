"""Protocol constants shared by the program model and the off-ledger client."""

# Seed tags (domain separators for derived addresses)
PORTFOLIO_SEED = b"Pfl"
SOL_VAULT_SEED = b"Solv"
SOL_USER_FUNDS_VAULT_SEED = b"Soufv"
SPL_VAULT_SEED = b"Splv"
SPL_USER_FUNDS_VAULT_SEED = b"Sufv"
AIRDROP_VAULT_SEED = b"Adv"
REMOTE_SEED = b"Remote"
ADMIN_SEED = b"Admin"
REBALANCER_SEED = b"Rebalancer"
BANNED_ACCOUNT_SEED = b"Banned"
TOKEN_DETAILS_SEED = b"TokenDetails"
TOKEN_LIST_SEED = b"TokenList"
COMPLETED_SWAPS_SEED = b"CompletedSwaps"
EXPIRED_SWAPS_SEED = b"ExpiredSwaps"
PENDING_SWAPS_SEED = b"PendingSwaps"
CCTRADE_ALLOWED_DEST_SEED = b"Cads"

# Ledger ids and vault limits
SOLANA_CHAIN_ID = 40168
DEFAULT_DEST_CHAIN_ID = 40267
NATIVE_VAULT_MIN_THRESHOLD = 900_000  # rent-exempt minimum of a system account
DEFAULT_AIRDROP_AMOUNT = 10_000
SOL_NATIVE_SYMBOL = b"SOL"

# Order type descriptors
ORDER_TYPE = (
    b"Order(maker_asset: Pubkey, taker_asset: Pubkey, taker: Pubkey, maker_amount: u64, "
    b"taker_amount: u64, expiry: u128, dest_trader: Pubkey, nonce: u128)"
)
CROSS_SWAP_TYPE = (
    b"XChainSwap(taker: Pubkey, dest_trader: Pubkey, maker_symbol: [u8; 32], "
    b"maker_asset: Pubkey, taker_asset: Pubkey, maker_amount: u64, taker_amount: u64, "
    b"nonce: u128, expiry: u128, dest_chaind_id: u64)"
)

NONCE_SIZE = 12
CUSTOM_DATA_SIZE = 18
SIGNATURE_SIZE = 65
ETH_ADDRESS_SIZE = 20

# XFER
XFER_SIZE = 104
XFER_OUTBOUND_SIZE = 128
AIRDROP_FLAG = 0x80

# Messaging endpoint
GAS_OPTIONS = bytes(
    [0, 3, 1, 0, 17, 1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 6, 26, 128]
)
REGISTER_OAPP = "register_oapp"
ENDPOINT_SEND = "send"
ENDPOINT_QUOTE = "quote"
ENDPOINT_CLEAR = "clear"
CLEAR_MIN_ACCOUNTS_LEN = 8
QUOTE_REMAINING_ACCOUNTS_COUNT = 18

ENDPOINT_SEED = b"Endpoint"
NONCE_SEED = b"Nonce"
PAYLOAD_HASH_SEED = b"PayloadHash"
OAPP_SEED = b"OApp"
EVENT_SEED = b"__event_authority"
SEND_LIBRARY_CONFIG_SEED = b"SendLibraryConfig"
MESSAGE_LIB_SEED = b"MessageLib"
SEND_CONFIG_SEED = b"SendConfig"
EXECUTOR_CONFIG_SEED = b"ExecutorConfig"
DVN_CONFIG_SEED = b"DvnConfig"
PRICE_FEED_SEED = b"PriceFeed"
TREASURY_SEED = b"Treasury"

# Message library versions (major, minor, endpoint_version)
SIMPLE_MESSAGE_LIB_VERSION = (0, 0, 2)
ULN_MESSAGE_LIB_VERSION = (3, 0, 2)

# Role identifiers carried by role events
ADMIN_ROLE = bytes([0] * 32)
REBALANCER_ROLE = bytes([1] * 32)

# Well-known programs
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
