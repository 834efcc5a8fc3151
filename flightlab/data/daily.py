"""Daily flight-count table and the calendar columns used to explain it."""
from __future__ import annotations

from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

WDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
TERM_LABELS = ["spring", "summer", "fall"]

# (month, day) cut points; a date before the first is spring, before the second summer.
TERM_BREAKS = ((6, 5), (8, 25))

US_HOLIDAYS_2013: Dict[str, str] = {
    "2013-01-01": "New Year's Day",
    "2013-01-21": "Martin Luther King Jr. Day",
    "2013-02-18": "Presidents' Day",
    "2013-05-27": "Memorial Day",
    "2013-07-04": "Independence Day",
    "2013-09-02": "Labor Day",
    "2013-10-14": "Columbus Day",
    "2013-11-11": "Veterans Day",
    "2013-11-28": "Thanksgiving Day",
    "2013-12-25": "Christmas Day",
}


def daily_counts(flights: pd.DataFrame) -> pd.DataFrame:
    """Number of flights per date, sorted by date."""
    if "date" not in flights.columns:
        raise ValueError("flights must have a 'date' column (see load_flights)")
    dates = pd.to_datetime(flights["date"]).dt.normalize()
    daily = dates.value_counts().sort_index().rename_axis("date").reset_index(name="n")
    return daily


def wday(dates: Iterable) -> pd.Categorical:
    d = pd.DatetimeIndex(pd.to_datetime(list(dates)))
    return pd.Categorical([WDAY_LABELS[i] for i in d.dayofweek], categories=WDAY_LABELS, ordered=True)


def add_wday(table: pd.DataFrame, *, column: str = "date") -> pd.DataFrame:
    out = table.copy()
    out["wday"] = wday(out[column])
    return out


def term(dates: Iterable) -> pd.Categorical:
    """School term of each date: spring until June 5, summer until August 25, then fall."""
    d = pd.DatetimeIndex(pd.to_datetime(list(dates)))
    md = d.month * 100 + d.day
    first = TERM_BREAKS[0][0] * 100 + TERM_BREAKS[0][1]
    second = TERM_BREAKS[1][0] * 100 + TERM_BREAKS[1][1]
    idx = np.where(md < first, 0, np.where(md < second, 1, 2))
    return pd.Categorical([TERM_LABELS[i] for i in idx], categories=TERM_LABELS, ordered=True)


def add_term(table: pd.DataFrame, *, column: str = "date") -> pd.DataFrame:
    out = table.copy()
    out["term"] = term(out[column])
    return out


def add_holidays(
    table: pd.DataFrame,
    holidays: Optional[Dict[str, str]] = None,
    *,
    column: str = "date",
) -> pd.DataFrame:
    """Add boolean ``holiday`` and ``holiday_name`` (empty string on ordinary days)."""
    hol = US_HOLIDAYS_2013 if holidays is None else holidays
    lookup = {pd.Timestamp(k).normalize(): v for k, v in hol.items()}

    out = table.copy()
    days = pd.to_datetime(out[column]).dt.normalize()
    names = days.map(lookup)
    out["holiday"] = names.notna().to_numpy()
    out["holiday_name"] = names.fillna("").to_numpy()
    return out


def build_daily_table(flights: pd.DataFrame, holidays: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Daily counts with ``wday``, ``term``, holiday flags and a numeric ``day`` index."""
    daily = daily_counts(flights)
    daily = add_wday(daily)
    daily = add_term(daily)
    daily = add_holidays(daily, holidays)
    # Days since the first date; a plain numeric axis for spline terms.
    daily["day"] = (daily["date"] - daily["date"].min()).dt.days.astype(float)
    return daily
