"""
Regime Journal v1.2 — All thresholds, labels, and configuration.

Every tunable parameter lives here. No magic numbers in engine code.
"""

import os

# ============================================================
# REGIMES
# ============================================================

REGIMES = ["bull", "bear", "range", "volatile"]
DEFAULT_REGIME = "range"

# Display config per canonical regime key
REGIME_DISPLAY = {
    "bull": {
        "gradient": "linear-gradient(135deg,#2A9D8F,#3DB8A9)",
        "solid": "#2A9D8F",
        "dim": "rgba(42,157,143,0.12)",
        "label": "Bull",
        "icon": "↗",
    },
    "bear": {
        "gradient": "linear-gradient(135deg,#E76F51,#F08C70)",
        "solid": "#E76F51",
        "dim": "rgba(231,111,81,0.12)",
        "label": "Bear",
        "icon": "↘",
    },
    "range": {
        "gradient": "linear-gradient(135deg,#8B7565,#A08979)",
        "solid": "#8B7565",
        "dim": "rgba(139,117,101,0.12)",
        "label": "Range",
        "icon": "→",
    },
    "volatile": {
        "gradient": "linear-gradient(135deg,#D4A017,#E8B84B)",
        "solid": "#D4A017",
        "dim": "rgba(212,160,23,0.12)",
        "label": "Volatile",
        "icon": "↕",
    },
}

# Display label → regime key (lowercase)
REGIME_LABEL_ALIASES = {
    "bull market": "bull",
    "bear market": "bear",
    "range": "range",
    "sideways": "range",
    "high volatility": "volatile",
    "volatile": "volatile",
    "volatility": "volatile",
    "insufficient data": "range",
}

# Substring fallback, checked in order
REGIME_SUBSTRING_MATCH = [
    ("bull", "bull"),
    ("bear", "bear"),
    ("volat", "volatile"),
]

# Upstream row value → display label
REGIME_ROW_LABELS = {
    "bull": "Bull Market",
    "bear": "Bear Market",
    "range": "Sideways",
    "volatility": "High Volatility",
    "volatile": "High Volatility",
    "insufficient_data": "Insufficient Data",
}

# ============================================================
# CONFIDENCE TRAJECTORY
# ============================================================

TRAJECTORY_MIN_POINTS = 3
TRAJECTORY_SPLIT = 3          # compare end thirds
TRAJECTORY_THRESHOLD = 0.03   # ±3pp of confidence

# ============================================================
# INSIGHT ENGINE
# ============================================================

INSIGHT_MAX_DEFAULT = 4

INSIGHT_BTC_DEVIATION_PP = 3
INSIGHT_ETH_DEVIATION_PP = 5
INSIGHT_ALT_CONCENTRATION_PCT = 40
INSIGHT_ALIGNED_MISALIGNMENT_MAX = 0.10
INSIGHT_MISALIGNED_MIN = 0.20
INSIGHT_PERSISTENCE_LONG_DAYS = 7
INSIGHT_LOW_CONFIDENCE_PCT = 50
INSIGHT_STABLE_HEAVY_PCT = 30
INSIGHT_BTC_DOMINANT_PCT = 60
INSIGHT_FRESH_REGIME_MAX_DAYS = 2

CORE_ASSETS = {"BTC", "ETH"}
STABLE_ASSETS = {"USDT", "USDC", "DAI", "BUSD", "STABLE"}

# ============================================================
# FEED COMPOSER
# ============================================================

FEED_DEFAULT_NAME = "there"

# Regime narrative confidence bands (percent)
FEED_CONFIDENCE_HIGH = 70
FEED_CONFIDENCE_MODERATE = 50

# Posture score bands
POSTURE_ALIGNED_MIN = 70
POSTURE_MODERATE_MIN = 40

FEED_MAX_ALLOCATION_INSIGHTS = 2
FEED_MAX_SIGNALS = 5
FEED_MAX_LEARN = 2

FEED_MARKET_DIVIDER = "Market context"

SIGNAL_SEVERITY = {1: "info", 2: "watch", 3: "action"}

SIGNAL_BUCKET_LABELS = {
    "today": "Today",
    "yesterday": "Yesterday",
    "older": "Earlier",
}

FEED_ANON_CTA = {
    "title": "Track your own portfolio",
    "text": "Create a free account to see how your holdings line up with the current regime.",
}

FEAR_GREED_NEUTRAL = 50

# ============================================================
# PORTFOLIO MAPPING
# ============================================================

# Regime-neutral allocation targets (percent)
ALLOCATION_TARGETS = {
    "BTC": 50,
    "ETH": 25,
    "ALTS": 15,
    "STABLE": 10,
}

POSTURE_LABELS = {
    "aligned": "Aligned",
    "watch": "Watch",
    "misaligned": "Misaligned",
}

# ============================================================
# MARKET METRIC PROXIES (used when live values are missing)
# ============================================================

FG_LABEL_BANDS = [
    (75, "Extreme Greed"),
    (55, "Greed"),
    (45, "Neutral"),
    (25, "Fear"),
    (float('-inf'), "Extreme Fear"),
]

FG_PROXY_R7D_WEIGHT = 2.0
FG_PROXY_CONF_WEIGHT = 0.3
ALT_SEASON_VOL_WEIGHT = 0.5
ALT_SEASON_R7D_WEIGHT = 1.5
BTC_DOMINANCE_FALLBACK = 54.0

# ============================================================
# DATA SOURCES
# ============================================================

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

REGIME_TABLE = "market_regimes"
EXPOSURE_TABLE = "latest_exposure"
SIGNALS_TABLE = "active_signals"

REGIME_COLUMNS = [
    "timestamp", "regime", "previous_regime", "regime_changed",
    "confidence", "price_now", "r_1d", "r_7d", "vol_7d",
    "eth_price_now", "eth_r_7d", "eth_vol_7d",
]

HISTORY_WINDOWS = [7, 30, 90]
HISTORY_DEFAULT_DAYS = 30

HTTP_TIMEOUT = 15

# ============================================================
# OUTPUT
# ============================================================

STATE_DIR = "state"
FEED_OUTPUT_FILE = "state/last_feed.json"
TELEGRAM_MAX_LEN = 4096
