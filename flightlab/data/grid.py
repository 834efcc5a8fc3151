from __future__ import annotations

import itertools
from typing import Iterable, List

import numpy as np
import pandas as pd


def _levels(s: pd.Series) -> List:
    if isinstance(s.dtype, pd.CategoricalDtype):
        return list(s.cat.categories)
    return sorted(s.dropna().unique().tolist())


def data_grid(table: pd.DataFrame, *columns: str) -> pd.DataFrame:
    """Every combination of the unique values of ``columns``.

    Categorical columns contribute all their categories in category order and
    keep their dtype, so a model sees the same levels it was fit on.
    """
    if not columns:
        raise ValueError("data_grid needs at least one column")
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise ValueError(f"Missing columns: {missing}")

    levels = [_levels(table[c]) for c in columns]
    grid = pd.DataFrame(list(itertools.product(*levels)), columns=list(columns))
    for c in columns:
        if isinstance(table[c].dtype, pd.CategoricalDtype):
            grid[c] = pd.Categorical(grid[c], dtype=table[c].dtype)
    return grid


def seq_range(values: Iterable[float], n: int = 20) -> np.ndarray:
    """``n`` evenly spaced points spanning the range of ``values`` (NaN ignored)."""
    v = np.asarray(list(values), dtype=float)
    v = v[np.isfinite(v)]
    if len(v) == 0:
        raise ValueError("seq_range needs at least one finite value")
    return np.linspace(float(v.min()), float(v.max()), int(n))
