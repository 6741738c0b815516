import logging
from datetime import date, datetime
from typing import Any

import pandas as pd
from pandas.errors import OutOfBoundsDatetime

logger = logging.getLogger(__name__)


def parse_day(value: Any) -> pd.Timestamp:
    """Parse a stored date into a midnight Timestamp, or NaT when unparseable.

    Time of day and timezone are dropped; only the calendar day matters for
    bucketing and filtering. Days outside the nanosecond range count as
    unparseable.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return pd.NaT
    try:
        ts = pd.to_datetime(value, errors="coerce")
        if not isinstance(ts, pd.Timestamp) or pd.isna(ts):
            return pd.NaT
        if ts.tzinfo is not None:
            ts = ts.tz_localize(None)
        return ts.as_unit("ns").normalize()
    except (OutOfBoundsDatetime, OverflowError, TypeError, ValueError):
        return pd.NaT


def iso_day(value: Any) -> str | None:
    ts = parse_day(value)
    if pd.isna(ts):
        return None
    return ts.strftime("%Y-%m-%d")


def as_timestamp(now: datetime | date | str) -> pd.Timestamp:
    ts = parse_day(now)
    if pd.isna(ts):
        raise ValueError(f"Invalid reference time: {now!r}")
    return ts
