"""Application-wide constants and configuration values.

This module centralizes the magic numbers used by the challenge engine,
making them easier to maintain and adjust.
"""

# Daily Challenge Configuration
TOTAL_ROUNDS = 10
"""Number of rounds in each day's challenge."""

EASY_ROUND_COUNT = 5
"""Rounds with an index below this value are easy (closed multiple choice)."""

OPTION_COUNT = 4
"""Number of options shown for a multiple-choice round."""

# Scoring
BASE_POINTS = 10
"""Points for an exact match before the streak multiplier."""

STREAK_BONUS_PER_CORRECT = "0.1"
"""Multiplier added per consecutive exact match (kept as a string for Decimal)."""

GROUP_CREDIT_RATIO = "0.6"
"""Share of BASE_POINTS awarded when the guess is in the same category group."""

TAG_CREDIT_RATIO = "0.3"
"""Share of BASE_POINTS awarded when the guess shares at least one tag."""

# Day sequence generator
HASH_MULTIPLIER = 31
"""Polynomial rolling hash multiplier for the day-key seed."""

LCG_MULTIPLIER = 1103515245
"""Linear congruential generator multiplier."""

LCG_INCREMENT = 12345
"""Linear congruential generator increment."""

UINT32_MASK = 0xFFFFFFFF
"""Mask for 32-bit wrap-around arithmetic."""

# Leaderboard
WEEKLY_RECORD_TTL_SECONDS = 60 * 60 * 24 * 14
"""Weekly records expire two weeks after their last write."""

DEFAULT_LEADERBOARD_SIZE = 10
"""Number of entries returned by the weekly leaderboard."""

MAX_LEADERBOARD_SIZE = 100
"""Upper bound for the top_n query parameter."""

# Store
MAX_CAS_ATTEMPTS = 5
"""Compare-and-set attempts before a concurrent update is reported."""

SESSION_KEY_PREFIX = "daily"
"""Namespace for per-user per-day session records."""

USER_WEEKLY_KEY_PREFIX = "user:weekly"
"""Namespace for per-user per-week records."""

WEEKLY_LEADERBOARD_KEY_PREFIX = "leaderboard:weekly"
"""Namespace for the per-week leaderboard index."""

DISPLAY_NAME_KEY_PREFIX = "identity:name"
"""Namespace for remembered display names."""

# Identity
FALLBACK_NAME_SUFFIX_LENGTH = 6
"""Characters of the user id kept in the fallback display name."""

# Rate Limiting
DEFAULT_RATE_LIMIT = "100/minute"
"""Default request limit per client."""

GUESS_RATE_LIMIT = "60/minute"
"""Maximum number of guesses allowed per minute per client."""

# Messages
ALREADY_COMPLETED_REASON = "already completed today"
"""Reason returned by can_play for a completed session."""
