from __future__ import annotations

from typing import Dict, Iterable, List, Union

import numpy as np
import pandas as pd
from scipy import stats


def _finite(values: Iterable[float]) -> np.ndarray:
    v = np.asarray(list(values), dtype=float)
    return v[np.isfinite(v)]


def rmse(resid: Iterable[float]) -> float:
    v = _finite(resid)
    if len(v) == 0:
        return float("nan")
    return float(np.sqrt(np.mean(v ** 2)))


def mae(resid: Iterable[float]) -> float:
    v = _finite(resid)
    if len(v) == 0:
        return float("nan")
    return float(np.mean(np.abs(v)))


def mad_scale(resid: Iterable[float]) -> float:
    """Median absolute deviation, scaled to be consistent with a Normal sigma."""
    v = _finite(resid)
    if len(v) == 0:
        return float("nan")
    return float(stats.median_abs_deviation(v, scale="normal"))


def residual_summary(table: pd.DataFrame, column: str) -> Dict[str, float]:
    v = _finite(table[column])
    return {
        "count": int(len(v)),
        "mean": float(np.mean(v)) if len(v) else float("nan"),
        "rmse": rmse(v),
        "mae": mae(v),
        "mad": mad_scale(v),
    }


def residuals_by_group(table: pd.DataFrame, column: str, by: Union[str, List[str]]) -> pd.DataFrame:
    """Mean residual per group.

    A model that captured a grouping well leaves group means near zero; large
    means (e.g. Saturdays in summer) point at structure it missed.
    """
    keys = [by] if isinstance(by, str) else list(by)
    grouped = table.groupby(keys, observed=True, sort=True)[column]
    out = grouped.agg(["count", "mean"]).rename(columns={"mean": "mean_resid"})
    out["rmse"] = grouped.apply(rmse)
    return out.reset_index()


def flag_outliers(table: pd.DataFrame, column: str, *, threshold: float = 3.0) -> pd.DataFrame:
    """Add ``<column>_outlier`` using a robust z-score (median / MAD)."""
    v = table[column].to_numpy(dtype=float)
    finite = v[np.isfinite(v)]
    out = table.copy()

    if len(finite) == 0:
        out[f"{column}_outlier"] = False
        return out

    center = float(np.median(finite))
    scale = float(stats.median_abs_deviation(finite, scale="normal"))
    if not np.isfinite(scale) or scale <= 0:
        # Degenerate spread: anything off the median is unusual.
        flags = np.isfinite(v) & (v != center)
    else:
        with np.errstate(invalid="ignore"):
            flags = np.abs(v - center) / scale > float(threshold)
    out[f"{column}_outlier"] = np.asarray(flags, dtype=bool)
    return out


def top_residuals(table: pd.DataFrame, column: str, *, n: int = 10) -> pd.DataFrame:
    """Rows with the largest absolute residual, largest first."""
    ranked = table.assign(_abs=table[column].abs()).sort_values("_abs", ascending=False, kind="stable")
    return ranked.drop(columns="_abs").head(int(n))
