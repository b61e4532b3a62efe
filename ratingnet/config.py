"""
Configuration module for RatingNet.

Centralizes runtime settings with environment variable support. Values are read
once at import time; components take them as constructor defaults so tests can
override them per instance.
"""

import os

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("RATINGNET_ENV", "dev")  # dev|stage|prod

# Typed-data domain for decryption grants
CHAIN_ID = int(os.getenv("RATINGNET_CHAIN_ID", "31337"))
DECRYPTION_CONTRACT = os.getenv(
    "RATINGNET_DECRYPTION_CONTRACT", "0x5ffdaad0ef6b3e5a6d2c0b8e3b4c6d7e8f901234"
)

# Grant lifetime
GRANT_DURATION_DAYS = int(os.getenv("RATINGNET_GRANT_DURATION_DAYS", "365"))
MAX_GRANT_DURATION_DAYS = int(os.getenv("RATINGNET_MAX_GRANT_DURATION_DAYS", "365"))
MAX_CLOCK_SKEW_SECONDS = int(os.getenv("RATINGNET_MAX_CLOCK_SKEW_SECONDS", "300"))

# Relayer transport
RELAYER_URL = os.getenv("RATINGNET_RELAYER_URL", "http://127.0.0.1:8080")
RELAYER_TIMEOUT = float(os.getenv("RATINGNET_RELAYER_TIMEOUT", "10"))

# Client retry policy for transient oracle failures
DECRYPT_MAX_ATTEMPTS = int(os.getenv("RATINGNET_DECRYPT_MAX_ATTEMPTS", "3"))
DECRYPT_BACKOFF_SECONDS = float(os.getenv("RATINGNET_DECRYPT_BACKOFF_SECONDS", "0.5"))

# Client-side storage
SIGNATURE_CACHE_PATH = os.getenv("RATINGNET_SIGNATURE_CACHE_PATH", "data/signature_cache.db")

# Logging
LOG_LEVEL = os.getenv("RATINGNET_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("RATINGNET_LOG_JSON", "1").lower() in ("1", "true", "yes")


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("RATINGNET_DEBUG", "").lower() in ("1", "true", "yes")
