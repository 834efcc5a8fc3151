"""Attach model predictions and residuals to tables.

Every function here returns a new DataFrame; inputs (tables and models) are
never mutated. Columns are built into a private copy which is only returned
once every model has been evaluated, so a failure never leaves a partially
augmented table behind.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import partial
from typing import Any, Iterable, List, Mapping, Tuple, Union

import numpy as np
import pandas as pd
from patsy import EvalEnvironment

from flightlab.modeling.base import evaluate_response
from flightlab.modeling.errors import AugmentationError, EvaluationError
from flightlab.modeling.formula_models import EvalEnvLike, as_fitted

logger = logging.getLogger(__name__)

# A name -> model mapping, or (name, model) pairs given as any 2-item sequence.
NamedModels = Union[Mapping[str, Any], Iterable[Sequence]]


def _named_pairs(named_models: NamedModels) -> List[Tuple[str, Any]]:
    """Mapping or (name, model) pairs -> ordered list of pairs.

    Pairs may repeat a name; the later pair then overwrites the earlier one.
    """
    if isinstance(named_models, Mapping):
        pairs = list(named_models.items())
    else:
        pairs = []
        for item in named_models:
            if isinstance(item, (str, bytes)) or not isinstance(item, Sequence) or len(item) != 2:
                raise TypeError(f"Expected (name, model) pairs, got {item!r}")
            pairs.append((item[0], item[1]))

    for name, _ in pairs:
        if not isinstance(name, str) or not name:
            raise TypeError(f"Model names must be non-empty strings, got {name!r}")
    return pairs


def _align(pred: Any, table: pd.DataFrame, name: str) -> np.ndarray:
    if isinstance(pred, pd.DataFrame):
        if pred.shape[1] != 1:
            raise EvaluationError(f"Model {name!r} returned {pred.shape[1]} prediction columns")
        pred = pred.iloc[:, 0]

    if isinstance(pred, pd.Series) and len(pred) != len(table):
        # Formula models drop rows with missing predictors; put them back as NaN.
        if table.index.is_unique and pred.index.isin(table.index).all():
            pred = pred.reindex(table.index)

    try:
        values = np.asarray(pred, dtype=float).reshape(-1)
    except (TypeError, ValueError) as e:
        raise EvaluationError(f"Model {name!r} returned non-numeric predictions: {e}") from e

    if len(values) != len(table):
        raise EvaluationError(
            f"Model {name!r} returned {len(values)} predictions for a table of {len(table)} rows"
        )
    return values


def _predictions(name: str, model: Any, table: pd.DataFrame) -> np.ndarray:
    try:
        pred = model.predict(table)
    except AugmentationError:
        raise
    except Exception as e:
        raise EvaluationError(f"Model {name!r} could not be evaluated against the table: {e}") from e
    return _align(pred, table, name)


def _residuals(name: str, model: Any, table: pd.DataFrame, caller_env: EvalEnvironment) -> np.ndarray:
    fitted = as_fitted(model)
    # The fit environment knows the names the formula used; the caller's frame
    # covers raw results fit elsewhere.
    observed = evaluate_response(fitted.response(), table, envs=[fitted.formula_env(), caller_env])
    return observed - _predictions(name, model, table)


def predictor(model: Any) -> str:
    """Response-variable specification (formula left-hand side) of a fitted model."""
    return as_fitted(model).response()


def add_predictions(table: pd.DataFrame, named_models: NamedModels) -> pd.DataFrame:
    """Return ``table`` with one prediction column per named model.

    Example:
        daily = add_predictions(daily, {"pred": fit_ols("n ~ wday", daily)})
    """
    out = table.copy()
    for name, model in _named_pairs(named_models):
        out[name] = _predictions(name, model, table)
        logger.debug("Added predictions %r (%d rows)", name, len(out))
    return out


def add_residuals(table: pd.DataFrame, named_models: NamedModels, *, eval_env: EvalEnvLike = 0) -> pd.DataFrame:
    """Return ``table`` with one residual column (observed - predicted) per named model.

    Response expressions resolve in the model's fit environment first, then in
    the caller's frame (``eval_env`` frames up).
    """
    caller_env = EvalEnvironment.capture(eval_env, reference=1)
    out = table.copy()
    for name, model in _named_pairs(named_models):
        out[name] = _residuals(name, model, table, caller_env)
        logger.debug("Added residuals %r (%d rows)", name, len(out))
    return out


def _gather(table: pd.DataFrame, named_models: NamedModels, var: str, value: str, compute) -> pd.DataFrame:
    clash = [c for c in (var, value) if c in table.columns]
    if clash:
        raise ValueError(f"Output column(s) already present in table: {clash}")

    frames = []
    for name, model in _named_pairs(named_models):
        block = table.copy()
        block.insert(0, var, name)
        block[value] = compute(name, model, table)
        frames.append(block)

    if not frames:
        empty = table.iloc[0:0].copy()
        empty.insert(0, var, pd.Series(dtype=object))
        empty[value] = pd.Series(dtype=float)
        return empty
    return pd.concat(frames, ignore_index=True)


def gather_predictions(
    table: pd.DataFrame,
    named_models: NamedModels,
    *,
    var: str = "model",
    value: str = "pred",
) -> pd.DataFrame:
    """Long format: one copy of ``table`` per model, tagged by ``var``."""
    return _gather(table, named_models, var, value, _predictions)


def gather_residuals(
    table: pd.DataFrame,
    named_models: NamedModels,
    *,
    var: str = "model",
    value: str = "resid",
    eval_env: EvalEnvLike = 0,
) -> pd.DataFrame:
    """Long format residuals; see ``gather_predictions``."""
    caller_env = EvalEnvironment.capture(eval_env, reference=1)
    return _gather(table, named_models, var, value, partial(_residuals, caller_env=caller_env))
