from __future__ import annotations

import logging
from typing import Any, Dict

import numpy as np
import pandas as pd
from patsy import EvalEnvironment, NAAction, build_design_matrices, dmatrices
from sklearn.impute import SimpleImputer
from sklearn.linear_model import Ridge
from sklearn.pipeline import Pipeline

from flightlab.modeling.base import FittedModel, formula_namespace
from flightlab.modeling.formula_models import EvalEnvLike

logger = logging.getLogger(__name__)


def _with_imputer(est):
    # Median is robust; also keeps behavior deterministic.
    return Pipeline([
        ("imputer", SimpleImputer(strategy="median")),
        ("model", est),
    ])


class RidgeFormulaModel(FittedModel):
    """Ridge regression on a patsy design matrix.

    Shrinks the many interaction coefficients of e.g. ``n ~ wday * term``
    towards zero. The design info is kept so prediction rebuilds the same
    columns (category levels, spline knots) from a new table.
    """

    kind = "ridge"

    def __init__(self, *, formula: str, alpha: float = 1.0):
        super().__init__(formula=formula)
        self.alpha = float(alpha)
        self._pipe: Pipeline | None = None
        self._design_info = None
        self._train: pd.DataFrame | None = None
        self._nobs = 0

    def fit(self, data: pd.DataFrame, *, eval_env: EvalEnvLike = 0) -> "RidgeFormulaModel":
        env = EvalEnvironment.capture(eval_env, reference=1)
        y, X = dmatrices(self.formula, data, eval_env=env, return_type="dataframe")
        pipe = _with_imputer(Ridge(alpha=self.alpha, random_state=0))
        pipe.fit(X.to_numpy(dtype=float), y.iloc[:, 0].to_numpy(dtype=float))

        self._pipe = pipe
        self._design_info = X.design_info
        self._namespace = formula_namespace(self.formula, env, exclude=data.columns)
        # Only the columns the formula can reference; enough to rebuild stateful
        # transforms (bs knots, category levels) after unpickling.
        self._train = data[[c for c in data.columns if str(c) in self.formula]].copy()
        self._nobs = int(len(X))
        return self

    # patsy design info refuses to pickle; rebuild it from the training columns.
    def __getstate__(self) -> Dict[str, Any]:
        state = dict(self.__dict__)
        state["_design_info"] = None
        return state

    def __setstate__(self, state: Dict[str, Any]) -> None:
        self.__dict__.update(state)
        if self._pipe is not None:
            _, X = dmatrices(self.formula, self._train, eval_env=self.formula_env(), return_type="dataframe")
            self._design_info = X.design_info

    def predict(self, table: pd.DataFrame) -> pd.Series:
        if self._pipe is None:
            raise RuntimeError("Model not fit")
        # Keep NaN predictors; the imputer fills them instead of dropping rows.
        (X,) = build_design_matrices(
            [self._design_info],
            table,
            NA_action=NAAction(NA_types=[]),
            return_type="dataframe",
        )
        return pd.Series(self._pipe.predict(X.to_numpy(dtype=float)), index=X.index)

    @property
    def nobs(self) -> int:
        return self._nobs

    def diagnostics(self) -> Dict[str, Any]:
        d = super().diagnostics()
        d["alpha"] = self.alpha
        if self._pipe is not None:
            names = list(self._design_info.column_names)
            coef = np.asarray(self._pipe.named_steps["model"].coef_, dtype=float)
            d["params"] = {n: float(c) for n, c in zip(names, coef)}
            d["intercept"] = float(self._pipe.named_steps["model"].intercept_)
        return d


def fit_ridge(formula: str, data: pd.DataFrame, *, alpha: float = 1.0, eval_env: EvalEnvLike = 0) -> RidgeFormulaModel:
    env = EvalEnvironment.capture(eval_env, reference=1)
    try:
        model = RidgeFormulaModel(formula=formula, alpha=alpha).fit(data, eval_env=env)
    except Exception as e:
        raise ValueError(f"Could not fit ridge model {formula!r}: {e}") from e
    logger.debug("Fit ridge(alpha=%s) %s on %d rows", alpha, formula, model.nobs)
    return model
