from shared.config import settings

AGENT_NAME = "bityield"

# Oracle sync
ORACLE_SYNC_INTERVAL = 600           # Re-evaluate every 10 min
MIN_APY_CHANGE_BPS = 50              # 0.5%
MIN_TVL_CHANGE_RATIO = 0.05          # 5%
DUST_POOL_TVL_USD = 100
SATS_PER_BTC = 100_000_000

# Tracked protocol pair, in contract argument order (A, B).
# A pool qualifies when its name contains every listed token.
TRACKED_POOLS = {
    "alex": ("sBTC", "STX"),
    "velar": ("sBTC", "STX"),
}

# Scoring
TVL_FLOOR_USD = 1000
RISK_MULTIPLIERS = {
    "conservative": {"low": 1.0, "medium": 0.5, "high": 0.1},
    "moderate": {"low": 1.0, "medium": 0.8, "high": 0.5},
    "aggressive": {"low": 0.8, "medium": 1.0, "high": 1.2},
}
PREFERRED_PROTOCOL_BONUS = 1.2
LOCK_PENALTY = 0.95
MIN_FEE_PENALTY = 0.7

RISK_ORDER = ("low", "medium", "high")
ALLOWED_RISK_LEVELS = {
    "conservative": ("low",),
    "moderate": ("low", "medium"),
    "aggressive": ("low", "medium", "high"),
}

# Recommendations
MAX_ALTERNATIVES = 3
DAYS_PER_YEAR = 365
MONTHS_PER_YEAR = 12
DISCLAIMERS = [
    "DeFi yields are volatile and not guaranteed",
    "Past performance does not indicate future results",
    "Only invest what you can afford to lose",
    "This is an automated recommendation - please do your own research",
]

AI_ENABLED = settings.AI_RECOMMENDATIONS_ENABLED
AI_TIMEOUT_SECONDS = settings.AI_TIMEOUT_SECONDS
