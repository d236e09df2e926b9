"""
Stacking Meta-Model.

The stacking strategy feeds every model's output at step t into a
meta-model and uses its prediction as the combined value. The meta-model is
fitted offline on historical (model outputs → realized value) pairs; the
combiner only needs `predict`.
"""

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

import numpy as np
import structlog

from ensemblecast.errors import InsufficientDataError, ValidationError
from ensemblecast.forecast.schemas import ModelKind

logger = structlog.get_logger(__name__)


@runtime_checkable
class MetaModel(Protocol):
    """Anything that maps one row of model outputs to a single value."""

    @property
    def models(self) -> tuple[ModelKind, ...]:
        """Feature order expected by `predict`."""
        ...

    def predict(self, features: Sequence[float]) -> float:
        ...


@dataclass(frozen=True)
class LinearMetaModel:
    """
    Linear regression over model outputs.

    prediction = intercept + Σ coefficient_i × feature_i
    """
    models: tuple[ModelKind, ...]
    coefficients: tuple[float, ...]
    intercept: float = 0.0

    def __post_init__(self):
        if len(self.models) != len(self.coefficients):
            raise ValidationError(
                f"{len(self.coefficients)} coefficients for {len(self.models)} models",
                field="coefficients",
            )

    @classmethod
    def fit(
        cls,
        models: Sequence[ModelKind],
        features: Sequence[Sequence[float]],
        targets: Sequence[float],
    ) -> "LinearMetaModel":
        """
        Ordinary least squares on historical model outputs.

        Args:
            models: Feature order (one column per model)
            features: Rows of model outputs
            targets: Realized value for each row
        """
        models = tuple(ModelKind(m) for m in models)
        if len(features) == 0:
            raise InsufficientDataError("Meta-model fit needs at least one historical row")
        if len(features) != len(targets):
            raise ValidationError(
                f"{len(features)} feature rows but {len(targets)} targets",
                field="targets",
            )
        x = np.asarray(features, dtype=float)
        if x.ndim != 2 or x.shape[1] != len(models):
            raise ValidationError(
                f"Feature rows must have {len(models)} columns",
                field="features",
            )
        y = np.asarray(targets, dtype=float)

        design = np.column_stack([np.ones(len(x)), x])
        solution, *_ = np.linalg.lstsq(design, y, rcond=None)

        model = cls(
            models=models,
            coefficients=tuple(float(c) for c in solution[1:]),
            intercept=float(solution[0]),
        )
        logger.info(
            "meta_model_fitted",
            n_rows=len(x),
            intercept=round(model.intercept, 6),
            coefficients=[round(c, 6) for c in model.coefficients],
        )
        return model

    def predict(self, features: Sequence[float]) -> float:
        if len(features) != len(self.coefficients):
            raise ValidationError(
                f"Expected {len(self.coefficients)} features, got {len(features)}",
                field="features",
            )
        return self.intercept + sum(c * f for c, f in zip(self.coefficients, features))
