from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
PARQUET_DIR = DATA_DIR / "parquet"   # local copy of the published parquet tree

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Award Explorer"
APP_VERSION = "0.1.0"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer); using %s.", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number); using %s.", name, raw, default)
        return default


# ---------------------------------------------------------------------------
# Source files
#
# The parquet tree is published as static files:
#   <base>/agg_<entity>.parquet
#   <base>/yearly/year_<Y>/agg_<entity>.parquet
#   <base>/quarterly/year_<Y>_q<Q>/agg_<entity>.parquet
#   <base>/facts_awards_all_time.parquet (+ yearly/quarterly variants)
#
# The base may be an http(s) URL or a local directory.
# ---------------------------------------------------------------------------

PARQUET_BASE = os.getenv("AWARD_EXPLORER_PARQUET_BASE", "").strip() or str(PARQUET_DIR)

HTTP_TIMEOUT_SECONDS = _env_float("AWARD_EXPLORER_HTTP_TIMEOUT", 60.0)

# Failed downloads are surfaced to the user, who retries by re-issuing the action.
# Raise this only for deployments behind a flaky proxy.
FETCH_RETRIES = max(0, _env_int("AWARD_EXPLORER_FETCH_RETRIES", 0))

# ---------------------------------------------------------------------------
# Explorer behaviour
# ---------------------------------------------------------------------------

DEBOUNCE_SECONDS = 1.0

TABLE_PAGE_SIZE = 10       # top-level entity table
CONTRACTS_PAGE_SIZE = 20   # contracts tab of a drill; independent of the table
RELATED_LIMIT = 10         # rows per related-entity tab

DEFAULT_TABLE_SORT = ("total_contract_value", "DESC")
DEFAULT_CONTRACTS_SORT = ("award_date", "DESC")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv("AWARD_EXPLORER_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LOGGING_CONFIGURED = False


def configure_logging(level: str | None = None) -> None:
    """Apply a root logging configuration once per process."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    level = (level or LOG_LEVEL).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    _LOGGING_CONFIGURED = True
    logger.info("%s %s: logging at %s", APP_NAME, APP_VERSION, level)
