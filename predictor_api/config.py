# predictor_api/config.py
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load .env from project root
load_dotenv()


def _get_env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


# -------------------------
# Room storage
# -------------------------
DATA_FILE: str = _get_env("DATA_FILE", "data.json")


# -------------------------
# Schedule feed (fixturedownload.com JSON)
# -------------------------
SCHEDULE_FEED_URL: str = _get_env(
    "SCHEDULE_FEED_URL",
    "https://fixturedownload.com/feed/json/mens-t20-world-cup-2026",
)
SCHEDULE_CACHE_TTL_SECONDS: int = _get_env_int("SCHEDULE_CACHE_TTL_SECONDS", 900)


# -------------------------
# Toss feed (Goalserve, JSON or XML) - OPTIONAL
# -------------------------
# Empty URL disables automatic toss sync
GOALSERVE_TOSS_FEED_URL: str = _get_env("GOALSERVE_TOSS_FEED_URL")

TOSS_SYNC_INTERVAL_SECONDS: int = max(15, _get_env_int("TOSS_SYNC_INTERVAL_SECONDS", 60))
TOSS_SYNC_WINDOW_MINUTES: int = max(60, _get_env_int("TOSS_SYNC_WINDOW_MINUTES", 360))
TOSS_FEED_CACHE_TTL_SECONDS: int = _get_env_int("TOSS_FEED_CACHE_TTL_SECONDS", 30)

FEED_HTTP_TIMEOUT_SECONDS: int = _get_env_int("FEED_HTTP_TIMEOUT_SECONDS", 15)


@dataclass(frozen=True)
class FeedConfig:
    """
    Everything the feed collaborators need, passed in explicitly.
    The engine and the tests never read the environment themselves.
    """
    schedule_feed_url: str = ""
    toss_feed_url: str = ""
    toss_sync_interval_seconds: int = 60
    toss_sync_window_minutes: int = 360
    http_timeout_seconds: int = 15
    schedule_cache_ttl_seconds: int = 900
    toss_cache_ttl_seconds: int = 30

    @classmethod
    def from_env(cls) -> "FeedConfig":
        return cls(
            schedule_feed_url=SCHEDULE_FEED_URL,
            toss_feed_url=GOALSERVE_TOSS_FEED_URL,
            toss_sync_interval_seconds=TOSS_SYNC_INTERVAL_SECONDS,
            toss_sync_window_minutes=TOSS_SYNC_WINDOW_MINUTES,
            http_timeout_seconds=FEED_HTTP_TIMEOUT_SECONDS,
            schedule_cache_ttl_seconds=SCHEDULE_CACHE_TTL_SECONDS,
            toss_cache_ttl_seconds=TOSS_FEED_CACHE_TTL_SECONDS,
        )


def validate_config() -> None:
    if not DATA_FILE:
        raise RuntimeError("DATA_FILE must not be empty")

    # Basic URL sanity
    if not SCHEDULE_FEED_URL.startswith("http"):
        raise RuntimeError("SCHEDULE_FEED_URL must start with http/https")

    if GOALSERVE_TOSS_FEED_URL and not GOALSERVE_TOSS_FEED_URL.startswith("http"):
        raise RuntimeError("GOALSERVE_TOSS_FEED_URL must start with http/https when set")

    if FEED_HTTP_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("FEED_HTTP_TIMEOUT_SECONDS must be positive")

    # TTL validation (0 disables caching)
    if SCHEDULE_CACHE_TTL_SECONDS < 0:
        raise RuntimeError("SCHEDULE_CACHE_TTL_SECONDS must not be negative")

    if TOSS_FEED_CACHE_TTL_SECONDS < 0:
        raise RuntimeError("TOSS_FEED_CACHE_TTL_SECONDS must not be negative")
