from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import EvalEnvironment

from flightlab.modeling.base import FittedModel, formula_namespace
from flightlab.modeling.errors import SpecificationError

logger = logging.getLogger(__name__)

EvalEnvLike = Union[int, EvalEnvironment]

# Robust norms for RLM (IRLS M-estimation).
RLM_NORMS = {
    "huber": sm.robust.norms.HuberT,
    "tukey": sm.robust.norms.TukeyBiweight,
    "hampel": sm.robust.norms.Hampel,
    "andrew": sm.robust.norms.AndrewWave,
}


def _design_env(results: Any) -> Optional[EvalEnvironment]:
    # patsy keeps the (subset) environment each factor was evaluated in.
    design_info = getattr(getattr(getattr(results, "model", None), "data", None), "design_info", None)
    if design_info is None:
        return None
    for info in design_info.factor_infos.values():
        env = (getattr(info, "state", None) or {}).get("eval_env")
        if env is not None:
            return env
    return None


class FormulaModel(FittedModel):
    """Wraps a fitted statsmodels formula results object (OLS, RLM, ...)."""

    def __init__(
        self,
        results: Any,
        *,
        kind: str | None = None,
        formula: str | None = None,
        namespace: Dict[str, Any] | None = None,
    ):
        formula = formula or getattr(getattr(results, "model", None), "formula", None)
        if not formula:
            raise SpecificationError(
                f"{type(results).__name__} was not fit through a formula; no response variable available"
            )
        super().__init__(formula=formula, namespace=namespace)
        self.results = results
        self.kind = kind or type(results.model).__name__.lower()

    def formula_env(self) -> Optional[EvalEnvironment]:
        env = super().formula_env()
        return env if env is not None else _design_env(self.results)

    def predict(self, table: pd.DataFrame) -> pd.Series:
        # Rows patsy drops for missing predictors come back absent from the index.
        return self.results.predict(table)

    @property
    def nobs(self) -> int:
        return int(self.results.nobs)

    @property
    def params(self) -> pd.Series:
        return self.results.params

    def diagnostics(self) -> Dict[str, Any]:
        d = super().diagnostics()
        d["params"] = {str(k): float(v) for k, v in self.results.params.items()}
        if self.kind == "ols":
            d["rsquared"] = float(self.results.rsquared)
        else:
            d["scale"] = float(self.results.scale)
        return d


def fit_ols(formula: str, data: pd.DataFrame, *, eval_env: EvalEnvLike = 0) -> FormulaModel:
    """Ordinary least squares through ``statsmodels.formula.api.ols``.

    Names in the formula (``np.log(n)``, helper functions) resolve in the
    caller's frame; ``eval_env`` counts extra frames up, as in patsy.
    """
    env = EvalEnvironment.capture(eval_env, reference=1)
    try:
        results = smf.ols(formula=formula, data=data, eval_env=env).fit()
    except Exception as e:
        raise ValueError(f"Could not fit OLS model {formula!r}: {e}") from e
    logger.debug("Fit OLS %s on %d rows", formula, int(results.nobs))
    return FormulaModel(
        results, kind="ols", formula=formula, namespace=formula_namespace(formula, env, exclude=data.columns)
    )


def fit_rlm(
    formula: str,
    data: pd.DataFrame,
    *,
    norm: str = "huber",
    maxiter: int = 50,
    eval_env: EvalEnvLike = 0,
) -> FormulaModel:
    """Robust linear model (IRLS M-estimation), resistant to outlier days."""
    norm_key = str(norm or "huber").strip().lower()
    if norm_key not in RLM_NORMS:
        raise ValueError(f"norm must be one of: {', '.join(sorted(RLM_NORMS))}")

    env = EvalEnvironment.capture(eval_env, reference=1)
    try:
        results = smf.rlm(formula=formula, data=data, M=RLM_NORMS[norm_key](), eval_env=env).fit(
            maxiter=int(maxiter)
        )
    except Exception as e:
        raise ValueError(f"Could not fit RLM model {formula!r}: {e}") from e
    logger.debug("Fit RLM(%s) %s on %d rows", norm_key, formula, int(results.nobs))
    return FormulaModel(
        results, kind="rlm", formula=formula, namespace=formula_namespace(formula, env, exclude=data.columns)
    )


def as_fitted(model: Any) -> FittedModel:
    """Accept either a ``FittedModel`` or a raw statsmodels formula results object."""
    if isinstance(model, FittedModel):
        return model
    if hasattr(model, "predict") and getattr(getattr(model, "model", None), "formula", None):
        return FormulaModel(model)
    raise SpecificationError(f"{type(model).__name__} exposes no response-variable specification")
