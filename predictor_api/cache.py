# predictor_api/cache.py
from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

# In-memory TTL cache for raw feed payloads (single-instance deploys)
# key -> (expires_at_epoch, value)
_cache: Dict[str, Tuple[float, Any]] = {}


def make_key(*parts: str) -> str:
    """
    Namespaced cache keys, e.g.
      make_key("toss-feed", url) -> "toss-feed:https://..."
    """
    key = ":".join([str(p).strip() for p in parts if str(p).strip()])
    if not key:
        raise ValueError("Cache key must be non-empty")
    return key


def get(key: str) -> Optional[Any]:
    item = _cache.get(key)
    if not item:
        return None

    expires_at, value = item
    if time.time() > expires_at:
        _cache.pop(key, None)
        return None

    return value


def set(key: str, value: Any, ttl_seconds: int = 60) -> None:
    if ttl_seconds <= 0:
        # TTL 0 disables caching for this key
        return
    _cache[key] = (time.time() + ttl_seconds, value)


def clear() -> None:
    _cache.clear()
