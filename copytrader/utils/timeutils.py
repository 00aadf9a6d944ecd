"""
Clock helpers.

Risk checks and order ids work on integer millisecond epochs, while
positions and journal entries carry timezone-aware `pandas.Timestamp`
values.  This module centralises both so components can accept an
injected clock in tests.
"""

from __future__ import annotations

import time
from typing import Union
import pandas as pd


def now_ms() -> int:
    """Return the current UNIX time in milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> pd.Timestamp:
    """Return the current time as a UTC `pandas.Timestamp`."""
    return pd.Timestamp.now(tz="UTC")


def to_utc(ts: Union[pd.Timestamp, str, int, float]) -> pd.Timestamp:
    """Convert a timestamp, ISO string or millisecond epoch to UTC.

    Naive timestamps are assumed to already be in UTC.
    """
    if isinstance(ts, (int, float)):
        return pd.Timestamp(int(ts), unit="ms", tz="UTC")
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")
