import numpy as np
import pandas as pd
import pytest

from flightlab.data.daily import build_daily_table
from flightlab.modeling.base import FittedModel


def synthetic_daily_counts(seed: int = 0) -> pd.DataFrame:
    """One year of daily counts with weekday, summer and holiday structure."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2013-01-01", "2013-12-31", freq="D")
    wday_effect = np.array([0, 1, 0, 1, 2, -15, -6])  # Mon..Sun
    n = 90 + wday_effect[dates.dayofweek]
    summer = (dates >= "2013-06-05") & (dates < "2013-08-25")
    n = n + np.where(summer, 5, 0) + np.where(summer & (dates.dayofweek == 5), 8, 0)
    n = n + rng.integers(-2, 3, size=len(dates))
    for day, drop in {"2013-07-04": -40, "2013-11-28": -45, "2013-12-25": -50}.items():
        n[dates.get_loc(pd.Timestamp(day))] += drop
    return pd.DataFrame({"date": dates, "n": n.astype(int)})


def flights_from_counts(counts: pd.DataFrame) -> pd.DataFrame:
    dates = np.repeat(counts["date"].to_numpy(), counts["n"].to_numpy())
    return pd.DataFrame({
        "year": pd.DatetimeIndex(dates).year,
        "month": pd.DatetimeIndex(dates).month,
        "day": pd.DatetimeIndex(dates).day,
        "carrier": "UA",
    })


class LookupModel(FittedModel):
    """Predicts a fixed value per level of one column."""

    kind = "lookup"

    def __init__(self, values, *, column="wday", formula="n ~ wday"):
        super().__init__(formula=formula)
        self.values = dict(values)
        self.column = column

    def predict(self, table):
        return [self.values[v] for v in table[self.column]]


@pytest.fixture
def wday_table():
    return pd.DataFrame({"wday": ["Mon", "Tue", "Wed"], "n": [12, 18, 33]})


@pytest.fixture
def wday_model():
    return LookupModel({"Mon": 10, "Tue": 20, "Wed": 30})


@pytest.fixture(scope="session")
def daily_counts_2013():
    return synthetic_daily_counts()


@pytest.fixture(scope="session")
def flights_2013(daily_counts_2013):
    return flights_from_counts(daily_counts_2013)


@pytest.fixture
def daily(flights_2013):
    flights = flights_2013.copy()
    flights["date"] = pd.to_datetime(flights[["year", "month", "day"]])
    return build_daily_table(flights)


@pytest.fixture
def make_lookup():
    return LookupModel
