from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_FLIGHTS_CSV = Path("data/raw/flights.csv")


def _default_path() -> Path:
    return Path(os.getenv("FLIGHTLAB_FLIGHTS_CSV", str(DEFAULT_FLIGHTS_CSV)))


@dataclass(frozen=True)
class FlightDataSpec:
    path: Path = field(default_factory=_default_path)
    min_rows: int = 1


def _derive_date(df: pd.DataFrame) -> pd.Series:
    """Calendar date of each flight from whichever columns the source has."""
    if "date" in df.columns:
        return pd.to_datetime(df["date"]).dt.normalize()
    if "FlightDate" in df.columns:
        return pd.to_datetime(df["FlightDate"]).dt.normalize()
    if {"year", "month", "day"} <= set(df.columns):
        return pd.to_datetime(df[["year", "month", "day"]])
    if "time_hour" in df.columns:
        return pd.to_datetime(df["time_hour"]).dt.normalize()
    raise ValueError(
        "Cannot derive a flight date: expected 'date', 'FlightDate', 'year'/'month'/'day' or 'time_hour' columns"
    )


def load_flights(spec: FlightDataSpec) -> pd.DataFrame:
    """Load raw flight records (CSV or parquet) and attach a ``date`` column."""
    path = Path(spec.path)
    if not path.exists():
        raise FileNotFoundError(
            f"Flights file not found: {path}. "
            f"Set FLIGHTLAB_FLIGHTS_CSV or pass a path (default {DEFAULT_FLIGHTS_CSV})."
        )

    if path.suffix.lower() == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path, low_memory=False)

    if len(df) < int(spec.min_rows):
        raise ValueError(f"Flights data too small: {path} has {len(df)} rows, expected >= {spec.min_rows}.")

    df = df.copy()
    df["date"] = _derive_date(df)
    logger.info("Loaded %d flights from %s (%s .. %s)", len(df), path, df["date"].min().date(), df["date"].max().date())
    return df
