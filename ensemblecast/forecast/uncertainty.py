"""
Ensemble Uncertainty Quantifier.

Attaches one non-negative scalar to a combined forecast:
- variance: mean of each model's own forecast-sequence variance
- bootstrap: std of combined means over B resamples of the records
- conformal: (1-α) quantile of historical absolute residuals

The conformal calibration set is an immutable snapshot; recording an outcome
returns a new one.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Sequence

import numpy as np
import structlog

from ensemblecast.errors import (
    EmptyCalibrationSetError,
    coerce_choice,
    RangeError,
    ValidationError,
)
from ensemblecast.forecast.schemas import ForecastRecord

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_BOOTSTRAP_SAMPLES: int = 200
DEFAULT_BOOTSTRAP_SEED: int = 42
DEFAULT_CONFORMAL_ALPHA: float = 0.1
DEFAULT_CALIBRATION_CAPACITY: int = 500


class UncertaintyMethod(StrEnum):
    VARIANCE = "variance"
    BOOTSTRAP = "bootstrap"
    CONFORMAL = "conformal"


@dataclass(frozen=True)
class CalibrationSet:
    """
    Rolling set of |combined forecast - realized value| residuals.

    Oldest residuals fall off once `capacity` is reached.
    """
    residuals: tuple[float, ...] = ()
    capacity: int = DEFAULT_CALIBRATION_CAPACITY
    version: int = 0

    def __post_init__(self):
        if self.capacity <= 0:
            raise ValidationError("Calibration capacity must be positive", field="capacity")

    def __len__(self) -> int:
        return len(self.residuals)

    @property
    def is_empty(self) -> bool:
        return not self.residuals

    def with_observations(
        self,
        predicted: Sequence[float],
        realized: Sequence[float],
    ) -> "CalibrationSet":
        """Return a new snapshot with the residuals of one realized forecast."""
        if len(predicted) != len(realized):
            raise ValidationError(
                f"predicted ({len(predicted)}) and realized ({len(realized)}) lengths differ",
                field="realized",
            )
        fresh = []
        for p, a in zip(predicted, realized):
            residual = abs(p - a)
            if not math.isfinite(residual):
                raise RangeError("Calibration residuals must be finite", field="realized")
            fresh.append(residual)
        residuals = (self.residuals + tuple(fresh))[-self.capacity:]
        return CalibrationSet(
            residuals=residuals,
            capacity=self.capacity,
            version=self.version + 1,
        )


CombineFn = Callable[[Sequence[ForecastRecord]], Sequence[float]]


class UncertaintyQuantifier:
    """Compute ensemble uncertainty by one of three interchangeable methods."""

    def __init__(
        self,
        method: UncertaintyMethod = UncertaintyMethod.VARIANCE,
        bootstrap_samples: int = DEFAULT_BOOTSTRAP_SAMPLES,
        bootstrap_seed: int = DEFAULT_BOOTSTRAP_SEED,
        conformal_alpha: float = DEFAULT_CONFORMAL_ALPHA,
    ):
        self.method = coerce_choice(UncertaintyMethod, method, "uncertainty_method")
        if bootstrap_samples <= 0:
            raise ValidationError("bootstrap_samples must be positive", field="bootstrap_samples")
        if not 0.0 < conformal_alpha < 1.0:
            raise ValidationError("conformal_alpha must be in (0, 1)", field="conformal_alpha")
        self.bootstrap_samples = bootstrap_samples
        self.bootstrap_seed = bootstrap_seed
        self.conformal_alpha = conformal_alpha

    def quantify(
        self,
        records: Sequence[ForecastRecord],
        combine_fn: CombineFn | None = None,
        calibration: CalibrationSet | None = None,
    ) -> float:
        """
        Uncertainty under the configured method.

        Raises:
            EmptyCalibrationSetError: conformal with no history; the caller
                falls back to variance
        """
        if self.method == UncertaintyMethod.VARIANCE:
            return self.variance(records)
        if self.method == UncertaintyMethod.BOOTSTRAP:
            if combine_fn is None:
                raise ValidationError("Bootstrap uncertainty needs a combine function", field="combine_fn")
            return self.bootstrap(records, combine_fn)
        return self.conformal(calibration or CalibrationSet())

    def variance(self, records: Sequence[ForecastRecord]) -> float:
        """Mean of the per-model population variance of its own sequence."""
        if not records:
            raise ValidationError("At least one forecast record is required", field="records")
        variances = [float(np.var(np.asarray(r.values, dtype=float))) for r in records]
        return self._checked(math.fsum(variances) / len(variances))

    def bootstrap(self, records: Sequence[ForecastRecord], combine_fn: CombineFn) -> float:
        """
        Std of combined means over resamples of the record set.

        The generator is seeded, so repeated calls agree.
        """
        if not records:
            raise ValidationError("At least one forecast record is required", field="records")
        rng = np.random.default_rng(self.bootstrap_seed)
        n = len(records)
        means = np.empty(self.bootstrap_samples)
        for b in range(self.bootstrap_samples):
            sample = [records[i] for i in rng.integers(0, n, size=n)]
            means[b] = float(np.mean(combine_fn(sample)))
        return self._checked(float(np.std(means)))

    def conformal(self, calibration: CalibrationSet) -> float:
        """Finite-sample conformal quantile of absolute residuals."""
        if calibration.is_empty:
            raise EmptyCalibrationSetError()
        n = len(calibration)
        level = min(1.0, math.ceil((n + 1) * (1.0 - self.conformal_alpha)) / n)
        width = float(np.quantile(np.asarray(calibration.residuals), level, method="higher"))
        return self._checked(width)

    @staticmethod
    def _checked(value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise RangeError(f"Uncertainty {value} is not a finite non-negative number", field="uncertainty")
        return value
