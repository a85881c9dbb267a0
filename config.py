import os

# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
API_MAX_RETRIES = 3
API_RETRY_BACKOFF = 2          # exponential base: 2^attempt seconds
API_REQUEST_TIMEOUT = 30       # seconds

GRAPH_API_KEY = os.getenv("GRAPH_API_KEY", "")
ODDS_API_KEY  = os.getenv("ODDS_API_KEY", "")

# Polymarket
POLYMARKET_DATA_API       = "https://data-api.polymarket.com"
POLYMARKET_LEADERBOARD    = "https://data-api.polymarket.com/v1/leaderboard"
GAMMA_MARKETS_ENDPOINT    = "https://gamma-api.polymarket.com/markets"

# Azuro (v3 subgraphs per chain)
AZURO_SUBGRAPHS = {
    "polygon":  "https://thegraph.azuro.org/subgraphs/name/azuro-protocol/azuro-api-polygon-v3",
    "gnosis":   "https://thegraph.azuro.org/subgraphs/name/azuro-protocol/azuro-api-gnosis-v3",
    "arbitrum": "https://thegraph.azuro.org/subgraphs/name/azuro-protocol/azuro-api-arbitrum-one-v3",
}

SXBET_API      = "https://api.sx.bet"
MANIFOLD_API   = "https://api.manifold.markets/v0"
METACULUS_API  = "https://www.metaculus.com/api"
METACULUS_API2 = "https://www.metaculus.com/api2"
KALSHI_API     = "https://api.elections.kalshi.com/trade-api/v2"
LIMITLESS_API  = "https://api.limitless.exchange"
DRIFT_DLOB_API = "https://dlob.drift.trade"
SEER_API       = "https://api.seer.pm"
ODDS_API_BASE  = "https://api.the-odds-api.com/v4"
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
BINANCE_PRICE_URL   = "https://api.binance.com/api/v3/ticker/price"

OMEN_SUBGRAPH_ID      = "9fUVQpFwzpdWS9bq5WkAnmKbNNcoBwatMR4yZq81pbbz"
OMEN_SUBGRAPH_HOSTED  = "https://api.thegraph.com/subgraphs/name/protofire/omen-xdai"

# Decentralised-network subgraph ids, used when GRAPH_API_KEY is set
OVERTIME_SUBGRAPH_IDS = {
    "optimism": "GNVg7vqPeoaqDARvssvwCUaLfizACsrmeFFCpZd4VBDq",
    "arbitrum": "DFNKpS95y26V3kuTa9MtD2J3ws65QF6RPP7RFLRjaHFx",
}
SPEEDMARKETS_SUBGRAPH_IDS = {
    "optimism": "GADfDRePpbqyjK2Y3JkQTBPBVQj98imhgKo7oRWW7RqQ",
    "arbitrum": "FZH9ySiLCdqKrwefaospe6seSqV1ZoW4FvPQUGP7MFob",
}
PANCAKESWAP_SUBGRAPH_ID = "4kRuZVKCR9dsG2ePXhLSiKw5oaw3YMJo4nAwxZbUaqVY"

# ---------------------------------------------------------------------------
# Unified leaderboard
# ---------------------------------------------------------------------------
LEADERBOARD_CACHE_TTL     = 600    # 10 min before a background refresh kicks in
LEADERBOARD_REFRESH_WAIT  = 30     # cold GET waits this long for an in-flight refresh
PLATFORM_FETCH_TIMEOUT    = 12     # per-platform budget inside a refresh
LEADERBOARD_FETCH_LIMIT   = 100    # entries requested from each platform
LEADERBOARD_MAX_WORKERS   = 12

SXBET_MAX_BETTORS   = 30
SXBET_BATCH_SIZE    = 5
LIMITLESS_MAX_SLUGS = 20

# ---------------------------------------------------------------------------
# TruthScore
# ---------------------------------------------------------------------------
MIN_BETS_BINARY   = 30
MIN_BETS_ODDS     = 20
MIN_VOLUME_ODDS   = 1000

WILSON_Z          = 1.96
WILSON_CONFIDENCE = 0.95

MAX_EDGE_POINTS   = 500
MAX_SCORE         = 1000     # skill score ceiling
MAX_TOTAL_SCORE   = 1300     # skill + recency

CONFIDENCE_MIN    = 0.5
CONFIDENCE_SCALE  = 200      # bets for ~63% of the way to max confidence

ROI_VARIANCE_ESTIMATE = 0.25
ROI_Z_SCORE           = 1.5

RECENCY_MAX_BONUS  = 300
RECENCY_FULL_DAYS  = 7
RECENCY_DECAY_DAYS = 90

BINARY_PLATFORMS = ("pancakeswap", "speedmarkets", "thales")

# Logarithmic activity/profit score (Azuro and other volume-only sources)
LOG_MIN_BETS          = 5
LOG_FULL_SCORE_BETS   = 50
LOG_SKILL_MAX         = 500
LOG_ACTIVITY_MAX      = 500
LOG_PROFIT_MAX        = 200
LOG_ACTIVITY_FACTOR   = 65
LOG_PROFIT_FACTOR     = 50

# Tiers on the 0-1300 scale, highest first
TIERS = [
    ("Legendary", 1100),
    ("Diamond",    900),
    ("Platinum",   650),
    ("Gold",       400),
    ("Silver",     200),
    ("Bronze",       0),
]

# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------
SIM_DEFAULT_MIN_AMOUNT = 1.0
SIM_DEFAULT_MAX_AMOUNT = 100_000.0
SIM_MIN_ENTRY_PRICE    = 0.01
SIM_DEFAULT_LEADER     = "manual"
SIM_RECENT_TRADES      = 20

RESOLVE_TIME_BUDGET    = 8     # seconds per resolve run before remaining markets are skipped

SPEED_MARKET_PAYOUT = 1.9

# ---------------------------------------------------------------------------
# Scheduler / storage
# ---------------------------------------------------------------------------
LEADERBOARD_INTERVAL_MINUTES = 10
RESOLVE_INTERVAL_MINUTES     = 15

DB_PATH = os.getenv("TRUTHBOUNTY_DB", "truthbounty.db")
LOG_FILE = "truthbounty.log"
