from web3 import Web3

# ============================================
# ZORA FACTORY (BASE MAINNET)
# ============================================
ZORA_FACTORY_ADDRESS = "0x777777751622c0d3258f214F9DF38E35BF45baF3"
BASE_CHAIN_ID = "base"

# ============================================
# EVENT SIGNATURES
# ============================================
# Non-indexed fields of each event, in log data order.
# topics[1..3] always carry caller, payoutRecipient, platformReferrer.
COIN_CREATED_V3_SIG = (
    "CoinCreated(address,address,address,address,string,string,string,address,address,string)"
)
COIN_CREATED_V4_SIG = (
    "CoinCreatedV4(address,address,address,address,string,string,string,address,"
    "(address,address,uint24,int24,address),bytes32,string)"
)
CREATOR_COIN_CREATED_SIG = (
    "CreatorCoinCreated(address,address,address,address,string,string,string,address,"
    "(address,address,uint24,int24,address),bytes32,string)"
)

V3_DATA_TYPES = ["address", "string", "string", "string", "address", "address", "string"]
V4_DATA_TYPES = [
    "address", "string", "string", "string", "address",
    "(address,address,uint24,int24,address)", "bytes32", "string",
]


def event_topic(signature: str) -> str:
    return "0x" + Web3.keccak(text=signature).hex().removeprefix("0x")


# topic0 -> layout of the data field
COIN_CREATED_TOPICS = {
    event_topic(COIN_CREATED_V3_SIG): V3_DATA_TYPES,
    event_topic(COIN_CREATED_V4_SIG): V4_DATA_TYPES,
    event_topic(CREATOR_COIN_CREATED_SIG): V4_DATA_TYPES,
    # Observed on live factory traffic
    "0x2de436107c2096e039c98bbcc3c5a2560583738ce15c234557eecb4d3221aa81": V4_DATA_TYPES,
    "0x74b670d628e152daa36ca95dda7cb0002d6ea7a37b55afe4593db7abd1515781": V4_DATA_TYPES,
}

# ============================================
# POLLING
# ============================================
STALE_BLOCK_THRESHOLD = 100     # ~3 min at 2s blocks
MAX_BLOCK_RANGE = 500           # Most public RPCs reject wider getLogs ranges
POLL_INTERVAL_SEC = 10.0

# ============================================
# REPUTATION
# ============================================
MIN_REPUTATION_SCORE = 0
MAX_REPUTATION_SCORE = 3000

# Ethos credibility bands used for log output
RISK_BANDS = [
    (850, "LOW"),
    (750, "MEDIUM"),
    (600, "HIGH"),
]

# ============================================
# API ENDPOINTS
# ============================================
ZORA_API_BASE = "https://api-sdk.zora.engineering"
ETHOS_API_BASE = "https://api.ethos.network"
ETHOS_CLIENT_NAME = "creator-sniper@1.0.0"
DEXSCREENER_API_BASE = "https://api.dexscreener.com"

# Remaining size below this counts as fully sold
DUST_FRACTION = 1e-6
