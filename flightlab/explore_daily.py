"""Explore daily flight counts with a ladder of linear models.

This script:
1. Loads raw flights and aggregates them to one row per day
2. Adds weekday, school term and holiday columns
3. Fits OLS, ridge and robust (RLM) models of the daily count
4. Attaches predictions and residuals to the daily table
5. Writes the augmented table, residual summaries and a wday x term grid

Usage:
    python -m flightlab.explore_daily --flights data/raw/flights.csv --out-dir reports/daily
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from flightlab.data.daily import build_daily_table
from flightlab.data.flights import FlightDataSpec, load_flights
from flightlab.data.grid import data_grid
from flightlab.modeling.augment import add_predictions, add_residuals
from flightlab.modeling.base import FittedModel
from flightlab.modeling.diagnostics import flag_outliers, residual_summary, residuals_by_group, top_residuals
from flightlab.modeling.formula_models import RLM_NORMS, fit_ols, fit_rlm
from flightlab.modeling.sklearn_models import fit_ridge
from flightlab.modeling.store import save_models

logger = logging.getLogger(__name__)

TERM_FORMULA = "n ~ wday * term"
SPLINE_FORMULA = "n ~ wday * bs(day, df=5)"


def fit_model_ladder(
    daily: pd.DataFrame,
    *,
    norm: str = "huber",
    ridge_alpha: float = 1.0,
    spline: bool = True,
) -> Dict[str, FittedModel]:
    """Models of increasing flexibility, in the order they are usually compared."""
    models: Dict[str, FittedModel] = {
        "wday": fit_ols("n ~ wday", daily),
        "wday_term": fit_ols(TERM_FORMULA, daily),
        "wday_term_ridge": fit_ridge(TERM_FORMULA, daily, alpha=ridge_alpha),
        "wday_term_robust": fit_rlm(TERM_FORMULA, daily, norm=norm),
    }
    if spline:
        models["wday_spline"] = fit_rlm(SPLINE_FORMULA, daily, norm=norm)

    for name, m in models.items():
        logger.info("Fit %-18s %-28s nobs=%d", name, m.formula, m.nobs)
    return models


def augment_daily(daily: pd.DataFrame, models: Dict[str, FittedModel]) -> pd.DataFrame:
    out = add_predictions(daily, {f"pred_{k}": m for k, m in models.items()})
    out = add_residuals(out, {f"resid_{k}": m for k, m in models.items()})
    return out


def _term_models(models: Dict[str, FittedModel]) -> Dict[str, FittedModel]:
    # Grid only carries wday/term, so skip models that need other columns.
    return {f"pred_{k}": m for k, m in models.items() if m.formula in {"n ~ wday", TERM_FORMULA}}


def run(
    *,
    flights_path: Path,
    out_dir: Path,
    norm: str = "huber",
    ridge_alpha: float = 1.0,
    spline: bool = True,
    top: int = 10,
    save: bool = False,
) -> Dict[str, Dict[str, float]]:
    flights = load_flights(FlightDataSpec(path=flights_path))
    daily = build_daily_table(flights)
    logger.info("Daily table: %d days, %d flights", len(daily), int(daily["n"].sum()))

    models = fit_model_ladder(daily, norm=norm, ridge_alpha=ridge_alpha, spline=spline)
    augmented = augment_daily(daily, models)

    resid_cols: List[str] = [f"resid_{k}" for k in models]
    last = resid_cols[-1]
    augmented = flag_outliers(augmented, last)

    out_dir.mkdir(parents=True, exist_ok=True)
    augmented.to_csv(out_dir / "daily_augmented.csv", index=False)

    summary = {c: residual_summary(augmented, c) for c in resid_cols}
    (out_dir / "residual_summary.json").write_text(json.dumps(summary, indent=2), encoding="utf-8")

    by_group = pd.concat(
        [residuals_by_group(augmented, c, ["wday", "term"]).assign(model=c) for c in resid_cols],
        ignore_index=True,
    )
    by_group.to_csv(out_dir / "residuals_by_group.csv", index=False)

    grid = add_predictions(data_grid(daily, "wday", "term"), _term_models(models))
    grid.to_csv(out_dir / "wday_term_grid.csv", index=False)

    for c in resid_cols:
        s = summary[c]
        logger.info("%-24s rmse=%.2f mae=%.2f mad=%.2f", c, s["rmse"], s["mae"], s["mad"])

    logger.info("Largest residuals (%s):", last)
    for _, row in top_residuals(augmented, last, n=top).iterrows():
        label = f" [{row['holiday_name']}]" if row["holiday"] else ""
        logger.info("  %s %s n=%d resid=%+.1f%s", row["date"].date(), row["wday"], int(row["n"]), row[last], label)

    if save:
        save_models(models, out_dir / "models")

    return summary


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument(
        "--flights",
        type=Path,
        default=FlightDataSpec().path,
        help="Raw flights CSV or parquet (default: $FLIGHTLAB_FLIGHTS_CSV or data/raw/flights.csv)",
    )
    ap.add_argument("--out-dir", type=Path, default=Path("reports/daily"))
    ap.add_argument("--norm", default="huber", choices=sorted(RLM_NORMS), help="Robust norm for RLM fits")
    ap.add_argument("--ridge-alpha", type=float, default=1.0)
    ap.add_argument("--no-spline", action="store_true", help="Skip the wday x spline(day) model")
    ap.add_argument("--top", type=int, default=10, help="How many outlier days to log")
    ap.add_argument("--save-models", action="store_true", help="Persist fitted models with joblib")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        run(
            flights_path=args.flights,
            out_dir=args.out_dir,
            norm=args.norm,
            ridge_alpha=args.ridge_alpha,
            spline=not args.no_spline,
            top=args.top,
            save=args.save_models,
        )
    except Exception as e:
        logger.error(f"Exploration failed: {e!r}")
        raise
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
