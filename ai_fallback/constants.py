"""Configuration constants for provider calls and config storage.

Values come from the environment (a local .env file is loaded first) and
fall back to the defaults documented next to each constant.
"""

import os

import httpx
from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# Environment Variable Helpers
# =============================================================================


def _parse_int_env(name: str, default: int, min_val: int, max_val: int) -> int:
    """Parse an integer environment variable with bounds clamping.

    Returns default if env var is unset or unparseable. Clamps to [min_val, max_val].
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(min_val, min(max_val, value))


def _parse_float_env(name: str, default: float, min_val: float, max_val: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(min_val, min(max_val, value))


# =============================================================================
# Call Defaults
# =============================================================================

DEFAULT_TEXT_TEMPERATURE = 0.7
DEFAULT_VISION_TEMPERATURE = 0.1
# Why 0.1: vision calls are used for document extraction, where the output
# must follow the image content closely.

DEFAULT_MAX_TOKENS = 4000

PROBE_PROMPT = "Say 'test successful' if you can read this."
PROBE_MAX_TOKENS = 100

# =============================================================================
# Provider Endpoints
# =============================================================================

GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
)
ANTHROPIC_API_BASE = os.getenv("ANTHROPIC_API_BASE", "https://api.anthropic.com/v1")
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_API_BASE = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
LOVABLE_API_BASE = os.getenv("LOVABLE_API_BASE", "https://ai.gateway.lovable.dev/v1")

# =============================================================================
# Timeouts
# =============================================================================

PROVIDER_CONNECT_TIMEOUT = _parse_float_env(
    "AI_PROVIDER_CONNECT_TIMEOUT", default=10.0, min_val=1.0, max_val=120.0
)
PROVIDER_READ_TIMEOUT = _parse_float_env(
    "AI_PROVIDER_READ_TIMEOUT", default=120.0, min_val=5.0, max_val=600.0
)
# Why 120: long article generations at 4000 max tokens regularly take 60-90s.
# A timed-out candidate is skipped like any other failure, so the bound only
# caps how long one dead backend can hold up the chain.

PROVIDER_TIMEOUT = httpx.Timeout(
    connect=PROVIDER_CONNECT_TIMEOUT,
    read=PROVIDER_READ_TIMEOUT,
    write=PROVIDER_CONNECT_TIMEOUT,
    pool=PROVIDER_CONNECT_TIMEOUT,
)

# =============================================================================
# Config Store
# =============================================================================

AI_CONFIG_PATH = os.getenv("AI_CONFIG_PATH", "")
# When set, backend configs are read from this YAML file instead of the database.

POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = _parse_int_env("POSTGRES_PORT", default=5432, min_val=1, max_val=65535)
POSTGRES_DB = os.getenv("POSTGRES_DB", "app")
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "")

DB_POOL_SIZE = _parse_int_env("AI_DB_POOL_SIZE", default=5, min_val=1, max_val=50)


def get_database_url() -> str:
    explicit = os.getenv("AI_DATABASE_URL")
    if explicit:
        return explicit
    return f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
