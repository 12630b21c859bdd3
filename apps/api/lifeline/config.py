"""
LIFELINE Configuration — environment-driven settings and logging

All values are read once at import time from the process environment
(optionally populated from a `.env` file). Engines receive everything else
as explicit parameters.
"""

import os
import logging

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


BUILD_ID = os.getenv("LIFELINE_BUILD_ID", "dev").strip() or "dev"
POLICY_VERSION = os.getenv("LIFELINE_POLICY_VERSION", "policy-v2").strip() or "policy-v2"
DEFAULT_SEED = _env_int("LIFELINE_DEFAULT_SEED", 42)
LOG_LEVEL = os.getenv("LIFELINE_LOG_LEVEL", "INFO").strip().upper() or "INFO"

CACHE_DIR = os.getenv(
    "LIFELINE_CACHE_DIR",
    os.path.join(os.path.dirname(__file__), "..", "..", "..", "data", "cache"),
)
CACHE_TTL_SECONDS = _env_int("LIFELINE_CACHE_TTL", 3600)  # 1 hour

# Lanes report progress every N completed runs (the final count is always sent)
PROGRESS_EVERY = max(1, _env_int("LIFELINE_PROGRESS_EVERY", 100))

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the service log format on the root logger."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    logging.getLogger("lifeline").setLevel(resolved)
