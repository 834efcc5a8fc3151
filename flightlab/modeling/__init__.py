"""Modeling package.

- Fitted models share one small interface: ``response()`` + ``predict(table)``
- OLS and robust (RLM / IRLS) fits come from statsmodels formulas
- Ridge (scikit-learn) and group means are available as comparisons
- ``add_predictions`` / ``add_residuals`` attach model output to a table
"""
from flightlab.modeling.augment import (
    add_predictions,
    add_residuals,
    gather_predictions,
    gather_residuals,
    predictor,
)
from flightlab.modeling.base import FittedModel
from flightlab.modeling.baseline import GroupMeansModel, fit_group_means
from flightlab.modeling.errors import AugmentationError, EvaluationError, SpecificationError
from flightlab.modeling.formula_models import FormulaModel, as_fitted, fit_ols, fit_rlm
from flightlab.modeling.sklearn_models import RidgeFormulaModel, fit_ridge

__all__ = [
    "AugmentationError",
    "EvaluationError",
    "FittedModel",
    "FormulaModel",
    "GroupMeansModel",
    "RidgeFormulaModel",
    "SpecificationError",
    "add_predictions",
    "add_residuals",
    "as_fitted",
    "fit_group_means",
    "fit_ols",
    "fit_ridge",
    "fit_rlm",
    "gather_predictions",
    "gather_residuals",
    "predictor",
]
