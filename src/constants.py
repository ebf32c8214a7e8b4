"""
Shared constants used across multiple modules.
Single source of truth for engine defaults and contract enums' wire values.
"""

# Output contract version (bumped on any breaking field change)
CONTRACT_VERSION = "1.0"

# Emotion scale
MIN_LEVEL = 1
MAX_LEVEL = 10

# Sample floors
MIN_SAMPLE = 5              # pairs needed before r is computed / tested
TIMING_MIN_SAMPLE = 3       # trades needed in a (day, hour) bucket

# Significance gate (two-tailed)
SIGNIFICANCE_ALPHA = 0.05

# Insight rule thresholds
CORRELATION_INSIGHT_THRESHOLD = 0.3
STRONG_CORRELATION_THRESHOLD = 0.5
WEAK_CORRELATION_THRESHOLD = 0.1
WARNING_WIN_RATE = 40
WARNING_MIN_COUNT = 5
TREND_DELTA = 5             # percentage points
TIMING_EDGE = 10            # percentage points over overall win rate
VOLATILITY_THRESHOLD = 2.0  # emotion std-dev (levels)
VOLATILITY_CONFIDENCE = 85

# Confidence scaling: |r|-based confidence reaches full weight at this n
CONFIDENCE_FULL_SAMPLE = 20

# Sample-size confidence tiers: (upper bound exclusive, confidence)
CONFIDENCE_TIERS = [
    (3, 30),
    (5, 50),
    (10, 70),
    (20, 85),
]
CONFIDENCE_TIER_MAX = 95

# Optimal-conditions score weights
SCORE_WEIGHT_CORRELATION = 0.40
SCORE_WEIGHT_OPTIMAL_RANGE = 0.30
SCORE_WEIGHT_TIMING = 0.30

# Binary outcome encoding used when no pnl is available
OUTCOME_ENCODING = {
    "win": 1.0,
    "loss": 0.0,
    "breakeven": 0.5,
}

DAY_NAMES = [
    "Monday", "Tuesday", "Wednesday", "Thursday",
    "Friday", "Saturday", "Sunday",
]

# Caller-side timeout for one analysis run
ANALYSIS_TIMEOUT_BASE_SEC = 5.0
ANALYSIS_TIMEOUT_PER_RECORD_SEC = 0.01
