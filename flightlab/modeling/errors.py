from __future__ import annotations


class AugmentationError(RuntimeError):
    """Base class for failures while attaching model output to a table."""


class EvaluationError(AugmentationError):
    """A model's predictions could not be evaluated against a table."""


class SpecificationError(AugmentationError):
    """A model's response variable could not be determined or evaluated."""
