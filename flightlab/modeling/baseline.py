from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
from patsy import EvalEnvironment

from flightlab.modeling.base import FittedModel, evaluate_response, formula_namespace
from flightlab.modeling.errors import EvaluationError
from flightlab.modeling.formula_models import EvalEnvLike


class GroupMeansModel(FittedModel):
    """Predicts the mean response of each level combination of the RHS columns.

    Only plain column names joined by ``+`` are supported on the right-hand
    side (``n ~ wday + term``). Equivalent to a saturated OLS fit of the
    interaction, without any formula machinery.
    """

    kind = "group_means"

    def __init__(self, *, formula: str):
        super().__init__(formula=formula)
        self.by: List[str] = [c.strip() for c in self._rhs.split("+") if c.strip()]
        if not self.by or any(not c.isidentifier() for c in self.by):
            raise ValueError(f"Group means need plain column names on the right-hand side: {formula!r}")
        self._means: pd.DataFrame | None = None
        self._nobs = 0

    def fit(self, data: pd.DataFrame, *, eval_env: EvalEnvLike = 0) -> "GroupMeansModel":
        env = EvalEnvironment.capture(eval_env, reference=1)
        missing = [c for c in self.by if c not in data.columns]
        if missing:
            raise ValueError(f"Missing grouping columns: {missing}")

        frame = data[self.by].astype(object).copy()
        frame["_y"] = evaluate_response(self.response(), data, envs=[env])
        self._namespace = formula_namespace(self.formula, env, exclude=data.columns)
        frame = frame.dropna()

        self._means = frame.groupby(self.by, sort=True)["_y"].mean().rename("_pred").reset_index()
        self._nobs = int(len(frame))
        return self

    def predict(self, table: pd.DataFrame) -> pd.Series:
        if self._means is None:
            raise RuntimeError("Model not fit")
        keys = table[self.by].astype(object)
        merged = keys.merge(self._means, on=self.by, how="left")

        unseen = merged["_pred"].isna() & keys.notna().all(axis=1).to_numpy()
        if unseen.any():
            levels = merged.loc[unseen, self.by].drop_duplicates().to_dict("records")
            raise EvaluationError(f"No fitted mean for level(s): {levels[:5]}")
        return pd.Series(merged["_pred"].to_numpy(dtype=float), index=table.index)

    @property
    def nobs(self) -> int:
        return self._nobs

    def diagnostics(self) -> Dict[str, Any]:
        d = super().diagnostics()
        d["groups"] = 0 if self._means is None else int(len(self._means))
        return d


def fit_group_means(formula: str, data: pd.DataFrame, *, eval_env: EvalEnvLike = 0) -> GroupMeansModel:
    return GroupMeansModel(formula=formula).fit(data, eval_env=EvalEnvironment.capture(eval_env, reference=1))
