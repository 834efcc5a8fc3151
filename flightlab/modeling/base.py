from __future__ import annotations

import importlib
import re
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from patsy import EvalEnvironment, NAAction, dmatrix

from flightlab.modeling.errors import SpecificationError

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def split_formula(formula: str) -> Tuple[str, str]:
    """Split ``"lhs ~ rhs"`` into its two sides.

    A one-sided formula (``"~ x"``) has no response and is rejected.
    """
    if not isinstance(formula, str) or "~" not in formula:
        raise SpecificationError(f"Not a two-sided formula: {formula!r}")
    lhs, rhs = formula.split("~", 1)
    lhs, rhs = lhs.strip(), rhs.strip()
    if not lhs:
        raise SpecificationError(f"Formula has no response variable: {formula!r}")
    return lhs, rhs


@dataclass(frozen=True)
class _ModuleRef:
    name: str


def formula_namespace(formula: str, eval_env: EvalEnvironment, *, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Names a formula takes from ``eval_env``, in a form that pickles.

    Modules (``np``) are stored by import name; data columns in ``exclude``
    are skipped since patsy reads those from the table.
    """
    ns = eval_env.namespace
    skip = {str(c) for c in exclude}
    out: Dict[str, Any] = {}
    for name in sorted(set(_NAME_RE.findall(formula)) - skip):
        try:
            value = ns[name]
        except KeyError:
            continue
        out[name] = _ModuleRef(value.__name__) if isinstance(value, types.ModuleType) else value
    return out


def namespace_env(namespace: Dict[str, Any]) -> EvalEnvironment:
    resolved = {
        k: importlib.import_module(v.name) if isinstance(v, _ModuleRef) else v
        for k, v in namespace.items()
    }
    return EvalEnvironment([resolved])


def evaluate_response(
    lhs: str,
    table: pd.DataFrame,
    *,
    envs: Sequence[Optional[EvalEnvironment]] = (),
) -> np.ndarray:
    """Observed values of a response specification, one per row of ``table``.

    Plain column names are read directly; anything else (``np.log(n)``) is
    evaluated as a patsy term in the first of ``envs`` that can resolve it,
    or in the caller's frame when none are given. Missing values are kept so
    rows stay aligned.
    """
    if lhs in table.columns:
        try:
            return table[lhs].to_numpy(dtype=float)
        except (TypeError, ValueError) as e:
            raise SpecificationError(f"Response {lhs!r} is not numeric: {e}") from e

    candidates: List[EvalEnvironment] = [e for e in envs if e is not None]
    if not candidates:
        candidates = [EvalEnvironment.capture(1)]

    mat = None
    errors: List[Exception] = []
    for env in candidates:
        try:
            mat = dmatrix(
                f"{lhs} - 1",
                table,
                NA_action=NAAction(NA_types=[]),
                return_type="dataframe",
                eval_env=env,
            )
            break
        except Exception as e:
            errors.append(e)
    if mat is None:
        raise SpecificationError(f"Cannot evaluate response {lhs!r}: {errors[-1]}") from errors[-1]

    if mat.shape[1] != 1:
        raise SpecificationError(
            f"Response {lhs!r} expands to {mat.shape[1]} columns; expected a single numeric column"
        )
    return mat.iloc[:, 0].to_numpy(dtype=float)


class FittedModel(ABC):
    """A fitted model that knows what it predicts.

    Two capabilities matter to the rest of the package:
      - ``response()``: the left-hand side of the formula it was trained on
      - ``predict(table)``: one prediction per row of ``table``

    Fitting happens elsewhere (see ``fit_ols`` / ``fit_rlm`` / ``fit_ridge``);
    instances are treated as read-only. ``namespace`` holds the names the
    formula took from the environment it was fit in (see ``formula_namespace``).
    """

    kind: str = "model"

    def __init__(self, *, formula: str, namespace: Optional[Dict[str, Any]] = None):
        self.formula = formula
        # Validate eagerly so a model without a response fails at construction.
        self._lhs, self._rhs = split_formula(formula)
        self._namespace = namespace

    def response(self) -> str:
        return self._lhs

    def formula_env(self) -> Optional[EvalEnvironment]:
        """Environment the formula was fit in, if known."""
        if self._namespace is None:
            return None
        return namespace_env(self._namespace)

    @abstractmethod
    def predict(self, table: pd.DataFrame) -> Any:
        """Returns predictions for ``table`` (array-like or Series aligned to its index)."""
        raise NotImplementedError

    @property
    def nobs(self) -> int:
        return 0

    def diagnostics(self) -> Dict[str, Any]:
        return {"kind": self.kind, "formula": self.formula, "nobs": int(self.nobs)}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.formula!r})"
