import logging
import math
from datetime import date, datetime
from typing import Any, Iterable

import pandas as pd

from budgetbuddy.config import WEEK_START
from budgetbuddy.dates import as_timestamp, parse_day
from budgetbuddy.domain import (
    Category,
    CategoryTotal,
    ExpenseRecord,
    ListSummary,
    SeriesPoint,
    Summary,
)

logger = logging.getLogger(__name__)

GRANULARITIES = {"day": "D", "month": "M"}

TIMEFRAMES = {
    "week": pd.DateOffset(days=7),
    "month": pd.DateOffset(months=1),
    "year": pd.DateOffset(years=1),
}


def as_amount(value: Any) -> float | None:
    """Return a finite float amount, or None for anything else."""
    if isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


def money(value: Any) -> float:
    return round(float(value), 2) + 0.0


def expense_frame(records: Iterable[ExpenseRecord]) -> pd.DataFrame:
    """Build the frame every aggregate works from.

    Rows with a non-numeric amount are dropped here. Rows with an unparseable
    date are kept with a NaT date so unconditional totals still see them.
    """
    rows = list(records)
    frame = pd.DataFrame({
        "id": pd.Series([r.id for r in rows], dtype="object"),
        "amount": pd.Series([as_amount(r.amount) for r in rows], dtype="float64"),
        "category": pd.Series([Category.coerce(r.category).value for r in rows], dtype="object"),
        "date": pd.Series([parse_day(r.date) for r in rows], dtype="datetime64[ns]"),
    })

    bad_amount = frame["amount"].isna()
    if bad_amount.any():
        logger.warning("Ignoring %d expense(s) with invalid amount: %s",
                       int(bad_amount.sum()), list(frame.loc[bad_amount, "id"]))
        frame = frame[~bad_amount]

    bad_date = frame["date"].isna()
    if bad_date.any():
        logger.warning("Excluding %d expense(s) with invalid date from dated totals: %s",
                       int(bad_date.sum()), list(frame.loc[bad_date, "id"]))
    return frame


def week_start_of(now: pd.Timestamp, week_start: int = WEEK_START) -> pd.Timestamp:
    return now - pd.Timedelta(days=(now.weekday() - week_start) % 7)


def summarize(
    records: Iterable[ExpenseRecord],
    now: datetime | date | str,
    week_start: int = WEEK_START,
) -> Summary:
    now_ts = as_timestamp(now)
    frame = expense_frame(records)
    month_start = now_ts.replace(day=1)
    week_boundary = week_start_of(now_ts, week_start)

    return Summary(
        total=money(frame["amount"].sum()),
        this_month=money(frame.loc[frame["date"] >= month_start, "amount"].sum()),
        this_week=money(frame.loc[frame["date"] >= week_boundary, "amount"].sum()),
    )


def by_category(records: Iterable[ExpenseRecord]) -> tuple[CategoryTotal, ...]:
    frame = expense_frame(records)
    totals = frame.groupby("category", sort=False)["amount"].sum()
    # sorted() is stable, so equal totals keep first-seen order
    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return tuple(CategoryTotal(Category(label), money(total)) for label, total in ordered)


def bucket_labels(periods: pd.PeriodIndex, granularity: str) -> list[str]:
    if granularity == "day":
        return [f"{p.strftime('%b')} {p.day}" for p in periods]
    return [p.strftime("%b %Y") for p in periods]


def trailing_series(
    records: Iterable[ExpenseRecord],
    now: datetime | date | str,
    granularity: str = "day",
    window_length: int = 7,
) -> tuple[SeriesPoint, ...]:
    """Totals for the last `window_length` days or months, oldest first.

    Every bucket is present even when nothing was spent in it; the result is
    ordered by the bucket sequence, not by grouping order.
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity: {granularity!r}")
    if window_length < 0:
        raise ValueError("window_length must not be negative")
    if window_length == 0:
        return ()

    freq = GRANULARITIES[granularity]
    now_ts = as_timestamp(now)
    periods = pd.period_range(end=pd.Period(now_ts, freq=freq), periods=window_length, freq=freq)

    frame = expense_frame(records)
    dated = frame[frame["date"].notna()]
    keys = dated["date"].dt.to_period(freq)
    totals = dated.groupby(keys)["amount"].sum().reindex(periods, fill_value=0.0)

    return tuple(
        SeriesPoint(label, money(total))
        for label, total in zip(bucket_labels(periods, granularity), totals.tolist())
    )


def period_summary(
    records: Iterable[ExpenseRecord],
    now: datetime | date | str,
    timeframe: str = "month",
) -> ListSummary:
    """Count, sum and average of expenses dated within the trailing timeframe."""
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe: {timeframe!r}")
    now_ts = as_timestamp(now)
    frame = expense_frame(records)
    window = frame.loc[frame["date"] >= now_ts - TIMEFRAMES[timeframe], "amount"]
    count = int(window.count())
    total = money(window.sum())
    return ListSummary(count=count, sum=total, average=money(total / count) if count else 0.0)
