"""
LIFELINE Run Cache — Fast lookup for repeated simulations

Simulations are deterministic given their inputs and seed, so a completed
result can be reused. Cache keys are content hashes of the full request.

Features:
- File-based JSON cache
- TTL-based expiration (default 1 hour)
- Automatic cache cleanup
"""

import os
import json
import time
import logging
from typing import Any, Dict, Optional

from lifeline import config
from lifeline.audit import deterministic_hash

logger = logging.getLogger(__name__)


def _cache_dir() -> str:
    return config.CACHE_DIR


def _ensure_cache_dir():
    """Ensure cache directory exists."""
    os.makedirs(_cache_dir(), exist_ok=True)


def _generate_cache_key(kind: str, request: Any) -> str:
    """
    Generate a unique cache key for a run.

    Args:
        kind: Run family, e.g. "simulation" or "multiverse"
        request: Any JSON-serializable request (pydantic models included)

    Returns:
        `<kind>-h<8 hex>` key
    """
    return f"{kind}-{deterministic_hash(request)}"


def _get_cache_path(cache_key: str) -> str:
    """Get the file path for a cache key."""
    return os.path.join(_cache_dir(), f"{cache_key}.json")


def get_cached_result(
    kind: str,
    request: Any,
    ttl_seconds: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """
    Retrieve a cached run result.

    Args:
        kind: Run family
        request: The request the result was computed from
        ttl_seconds: Time-to-live for cache entries (defaults to config)

    Returns:
        Cached result dict or None if not found/expired
    """
    _ensure_cache_dir()
    ttl = config.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds

    cache_key = _generate_cache_key(kind, request)
    cache_path = _get_cache_path(cache_key)

    if not os.path.exists(cache_path):
        return None

    try:
        with open(cache_path, "r", encoding="utf-8") as f:
            cached = json.load(f)
    except (json.JSONDecodeError, IOError):
        logger.warning("unreadable cache entry %s", cache_key)
        return None

    # Check TTL
    if time.time() - cached.get("cached_at", 0) > ttl:
        os.remove(cache_path)
        return None

    logger.info("cache hit %s", cache_key)
    return cached.get("result")


def set_cached_result(kind: str, request: Any, result: Dict[str, Any]) -> str:
    """
    Store a run result in cache.

    Returns:
        Cache key
    """
    _ensure_cache_dir()

    cache_key = _generate_cache_key(kind, request)
    cache_entry = {
        "cached_at": time.time(),
        "kind": kind,
        "result": result,
    }

    with open(_get_cache_path(cache_key), "w", encoding="utf-8") as f:
        json.dump(cache_entry, f)

    return cache_key


def clear_cache(max_age_seconds: Optional[int] = None) -> int:
    """
    Clear expired cache entries.

    Args:
        max_age_seconds: Remove entries older than this (defaults to config TTL)

    Returns:
        Number of removed entries
    """
    _ensure_cache_dir()
    max_age = config.CACHE_TTL_SECONDS if max_age_seconds is None else max_age_seconds

    now = time.time()
    removed = 0

    for filename in os.listdir(_cache_dir()):
        if not filename.endswith(".json"):
            continue

        filepath = os.path.join(_cache_dir(), filename)

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                cached = json.load(f)
            expired = now - cached.get("cached_at", 0) > max_age
        except (json.JSONDecodeError, IOError):
            # Corrupt entries are removed too
            expired = True

        if expired:
            os.remove(filepath)
            removed += 1

    if removed:
        logger.info("cache cleanup removed %d entries", removed)
    return removed


def get_cache_stats() -> Dict[str, Any]:
    """Get cache statistics."""
    _ensure_cache_dir()

    total_entries = 0
    total_size = 0
    oldest_entry = None
    newest_entry = None

    now = time.time()

    for filename in os.listdir(_cache_dir()):
        if not filename.endswith(".json"):
            continue

        filepath = os.path.join(_cache_dir(), filename)
        total_entries += 1
        total_size += os.path.getsize(filepath)

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                cached_at = json.load(f).get("cached_at", 0)
        except (json.JSONDecodeError, IOError):
            continue

        if oldest_entry is None or cached_at < oldest_entry:
            oldest_entry = cached_at
        if newest_entry is None or cached_at > newest_entry:
            newest_entry = cached_at

    return {
        "total_entries": total_entries,
        "total_size_bytes": total_size,
        "oldest_entry_age_seconds": int(now - oldest_entry) if oldest_entry else None,
        "newest_entry_age_seconds": int(now - newest_entry) if newest_entry else None,
    }
