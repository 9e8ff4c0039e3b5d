from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from award_explorer.config import (
    FETCH_RETRIES,
    HTTP_TIMEOUT_SECONDS,
    PARQUET_BASE,
)
from award_explorer.core.dimensions import Dimension

logger = logging.getLogger(__name__)

GRANULARITIES = ("all_time", "yearly", "quarterly")


class FetchFailure(Exception):
    """Raised when a source file cannot be retrieved (network, status, missing file)."""


# ---------------------------------------------------------------------------
# Source locators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeRange:
    """
    Time slice of the published parquet tree.

      - all_time:  year and quarter are ignored
      - yearly:    year is required
      - quarterly: year and quarter (1..4) are required
    """
    granularity: str = "all_time"
    year: Optional[int] = None
    quarter: Optional[int] = None

    def __post_init__(self) -> None:
        if self.granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity {self.granularity!r}; expected one of {GRANULARITIES}.")
        if self.granularity in ("yearly", "quarterly") and self.year is None:
            raise ValueError(f"{self.granularity} time range requires a year.")
        if self.granularity == "quarterly" and self.quarter not in (1, 2, 3, 4):
            raise ValueError(f"quarterly time range requires quarter 1..4, got {self.quarter!r}.")

    @classmethod
    def all_time(cls) -> "TimeRange":
        return cls("all_time")

    @classmethod
    def for_year(cls, year: int) -> "TimeRange":
        return cls("yearly", year=int(year))

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> "TimeRange":
        return cls("quarterly", year=int(year), quarter=int(quarter))


def _join(base: str, relative: str) -> str:
    if _is_http(base):
        return base.rstrip("/") + "/" + relative
    return str(Path(base) / relative)


def aggregate_locator(dimension: Dimension, time_range: TimeRange, base: Optional[str] = None) -> str:
    """Locator of the pre-aggregated per-entity file for one dimension."""
    stem = dimension.file_stem
    if time_range.granularity == "yearly":
        relative = f"yearly/year_{time_range.year}/agg_{stem}.parquet"
    elif time_range.granularity == "quarterly":
        relative = f"quarterly/year_{time_range.year}_q{time_range.quarter}/agg_{stem}.parquet"
    else:
        relative = f"agg_{stem}.parquet"
    return _join(base or PARQUET_BASE, relative)


def facts_locator(time_range: TimeRange, base: Optional[str] = None) -> str:
    """Locator of the line-level facts file for a time slice."""
    if time_range.granularity == "yearly":
        relative = f"yearly/facts_awards_year_{time_range.year}.parquet"
    elif time_range.granularity == "quarterly":
        relative = f"quarterly/facts_awards_year_{time_range.year}_q{time_range.quarter}.parquet"
    else:
        relative = "facts_awards_all_time.parquet"
    return _join(base or PARQUET_BASE, relative)


# ---------------------------------------------------------------------------
# HTTP session
# ---------------------------------------------------------------------------

def _is_http(locator: str) -> bool:
    return locator.lower().startswith(("http://", "https://"))


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session for parquet downloads.

    Retries are off by default (FETCH_RETRIES=0): a failed download is
    reported to the caller and the user re-triggers the action.
    """
    session = requests.Session()

    retry = Retry(
        total=FETCH_RETRIES,
        connect=FETCH_RETRIES,
        read=FETCH_RETRIES,
        status=FETCH_RETRIES,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

def _fetch_http(url: str, timeout_seconds: float) -> bytes:
    try:
        resp = _get_session().get(
            url,
            headers={"Cache-Control": "no-store"},
            timeout=timeout_seconds,
        )
    except requests.RequestException as exc:
        raise FetchFailure(f"Failed to fetch {url}: {exc}") from exc

    if not resp.ok:
        raise FetchFailure(f"Failed to fetch {url}: {resp.status_code} {resp.reason or ''}".rstrip())

    return resp.content


def _fetch_local(path: str) -> bytes:
    p = Path(path)
    try:
        return p.read_bytes()
    except FileNotFoundError as exc:
        raise FetchFailure(f"Failed to fetch {path}: file not found") from exc
    except OSError as exc:
        raise FetchFailure(f"Failed to fetch {path}: {exc}") from exc


def fetch_source_bytes(locator: str, timeout_seconds: Optional[float] = None) -> bytes:
    """
    Download (or read) a source file in full.

    Key behavior:
      - http(s) locators go through the shared session; anything else is a local path.
      - Nothing is cached: every call retrieves the file again.
    """
    locator = (locator or "").strip()
    if not locator:
        raise FetchFailure("Empty source locator.")

    t0 = time.perf_counter()
    if _is_http(locator):
        data = _fetch_http(locator, timeout_seconds or HTTP_TIMEOUT_SECONDS)
    else:
        data = _fetch_local(locator)

    logger.info("Fetched %s (%d bytes in %.2fs)", locator, len(data), time.perf_counter() - t0)
    return data


async def fetch_source_bytes_async(locator: str, timeout_seconds: Optional[float] = None) -> bytes:
    return await asyncio.to_thread(fetch_source_bytes, locator, timeout_seconds)

