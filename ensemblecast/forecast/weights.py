"""
Ensemble Weight Adapter.

Maintains the per-model weight vector. Weights move toward a target derived
from rolling performance (70%) and individual diversity (30%), one
adaptation-rate step per cycle, and always remain a probability distribution
inside [min_weight, max_weight].

State is never mutated in place: every update returns a new EnsembleWeights
snapshot with an incremented version.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from ensemblecast.errors import InvalidWeightConfigError, ValidationError
from ensemblecast.forecast.diversity import DiversityAnalyzer
from ensemblecast.forecast.schemas import ForecastRecord, ModelAccuracy, ModelKind

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_MIN_WEIGHT: float = 0.05
DEFAULT_MAX_WEIGHT: float = 0.60
DEFAULT_ADAPTATION_RATE: float = 0.1
DEFAULT_PERFORMANCE_WINDOW: int = 20
WEIGHT_SUM_TOLERANCE: float = 1e-3    # Accepted drift at construction

# Performance blend (each component clamped to [0, 1] first)
DIRECTIONAL_WEIGHT: float = 0.4
R2_WEIGHT: float = 0.3
MAPE_WEIGHT: float = 0.2
RMSE_WEIGHT: float = 0.1

# Target blend
PERFORMANCE_SHARE: float = 0.7
DIVERSITY_SHARE: float = 0.3


def _clamp01(x: float) -> float:
    return min(1.0, max(0.0, x))


def performance_score(accuracy: ModelAccuracy) -> float:
    """
    Blend an accuracy report into one score in [0, 1].

    0.4·directional + 0.3·r2 + 0.2·(1 - mape) + 0.1·(1 - rmse)
    """
    return (
        DIRECTIONAL_WEIGHT * _clamp01(accuracy.directional_accuracy)
        + R2_WEIGHT * _clamp01(accuracy.r2)
        + MAPE_WEIGHT * _clamp01(1.0 - accuracy.mape)
        + RMSE_WEIGHT * _clamp01(1.0 - accuracy.rmse)
    )


def bounded_normalize(values: Sequence[float], lo: float, hi: float) -> list[float]:
    """
    Project a non-negative vector onto {w : Σw = 1, lo ≤ w_i ≤ hi}.

    Entries above the ceiling are pinned first, then entries below the
    floor; the remaining mass is spread proportionally over free entries.
    """
    n = len(values)
    raw = [max(0.0, v) for v in values]
    pinned: list[Optional[float]] = [None] * n
    result = list(raw)

    for _ in range(n + 1):
        free = [i for i in range(n) if pinned[i] is None]
        if not free:
            break
        remaining = 1.0 - math.fsum(p for p in pinned if p is not None)
        free_total = math.fsum(raw[i] for i in free)
        if free_total > 0:
            scaled = {i: raw[i] * remaining / free_total for i in free}
        else:
            scaled = {i: remaining / len(free) for i in free}

        over = [i for i in free if scaled[i] > hi]
        under = [i for i in free if scaled[i] < lo]
        if over:
            for i in over:
                pinned[i] = hi
        elif under:
            for i in under:
                pinned[i] = lo
        else:
            for i in free:
                result[i] = scaled[i]
            break

    for i in range(n):
        if pinned[i] is not None:
            result[i] = pinned[i]

    # Everything pinned: spread the residual over entries with slack
    residual = 1.0 - math.fsum(result)
    if abs(residual) > 1e-12:
        if residual > 0:
            slack = [hi - w for w in result]
        else:
            slack = [w - lo for w in result]
        total_slack = math.fsum(slack)
        if total_slack > 0:
            result = [
                w + residual * s / total_slack for w, s in zip(result, slack)
            ]
    return result


@dataclass(frozen=True)
class EnsembleWeights:
    """
    Immutable snapshot of the ensemble weight vector.

    `version` counts adaptations; `performance_history` keeps the rolling
    window of performance scores per model, aligned with `models`.
    """
    models: tuple[ModelKind, ...]
    values: tuple[float, ...]
    min_weight: float = DEFAULT_MIN_WEIGHT
    max_weight: float = DEFAULT_MAX_WEIGHT
    version: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    performance_history: tuple[tuple[float, ...], ...] = ()

    @classmethod
    def create(
        cls,
        models: Sequence[ModelKind],
        values: Sequence[float],
        min_weight: float = DEFAULT_MIN_WEIGHT,
        max_weight: float = DEFAULT_MAX_WEIGHT,
    ) -> "EnsembleWeights":
        """
        Build a validated initial snapshot.

        Raises:
            InvalidWeightConfigError: length mismatch, sum not ~1.0, bounds
                infeasible, or a weight outside [min_weight, max_weight]
        """
        models = tuple(ModelKind(m) for m in models)
        values = tuple(float(v) for v in values)

        if not models:
            raise InvalidWeightConfigError("At least one model must be specified for the ensemble")
        if len(models) != len(values):
            raise InvalidWeightConfigError(
                f"Number of weights ({len(values)}) must match number of models ({len(models)})",
                details={"n_models": len(models), "n_weights": len(values)},
            )
        if len(set(models)) != len(models):
            raise InvalidWeightConfigError("Models must be unique")
        if not 0.0 <= min_weight <= max_weight <= 1.0:
            raise InvalidWeightConfigError(
                f"Invalid bounds [{min_weight}, {max_weight}]",
                details={"min_weight": min_weight, "max_weight": max_weight},
            )
        n = len(models)
        if n * min_weight > 1.0 + 1e-12 or n * max_weight < 1.0 - 1e-12:
            raise InvalidWeightConfigError(
                f"Bounds [{min_weight}, {max_weight}] cannot hold {n} weights summing to 1.0",
                details={"n_models": n},
            )
        if any(not math.isfinite(v) for v in values):
            raise InvalidWeightConfigError("Weights must be finite")
        total = math.fsum(values)
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise InvalidWeightConfigError(
                f"Ensemble weights must sum to 1.0, got {total:.6f}",
                details={"sum": total},
            )
        for m, v in zip(models, values):
            if v < min_weight - 1e-12 or v > max_weight + 1e-12:
                raise InvalidWeightConfigError(
                    f"Weight for {m.value} ({v}) outside [{min_weight}, {max_weight}]",
                    details={"model": m.value, "weight": v},
                )

        # Absorb construction drift so the invariant is exact from version 0
        values = tuple(v / total for v in values)
        return cls(
            models=models,
            values=values,
            min_weight=min_weight,
            max_weight=max_weight,
            performance_history=tuple(() for _ in models),
        )

    @classmethod
    def uniform(
        cls,
        models: Sequence[ModelKind],
        min_weight: float = DEFAULT_MIN_WEIGHT,
        max_weight: float = DEFAULT_MAX_WEIGHT,
    ) -> "EnsembleWeights":
        """Equal weights for every model."""
        n = len(models)
        return cls.create(models, [1.0 / n] * n if n else [], min_weight, max_weight)

    def weight_for(self, model: ModelKind) -> float:
        return self.values[self.models.index(model)]

    def history_for(self, model: ModelKind) -> tuple[float, ...]:
        if not self.performance_history:
            return ()
        return self.performance_history[self.models.index(model)]

    def as_dict(self) -> dict[str, float]:
        return {m.value: w for m, w in zip(self.models, self.values)}


class WeightAdapter:
    """
    Performance- and diversity-driven weight adaptation.

    Each update moves every present model's weight by
    adaptation_rate × (target - current), then projects back onto the
    bounded simplex.

    While no weight hits min_weight or max_weight, no model moves by more
    than adaptation_rate × |target - current| in one cycle. Pinning a weight
    at a bound redistributes the clamped mass over the free models, which
    can move them further than that.
    """

    def __init__(
        self,
        adaptation_rate: float = DEFAULT_ADAPTATION_RATE,
        performance_window: int = DEFAULT_PERFORMANCE_WINDOW,
        diversity_analyzer: Optional[DiversityAnalyzer] = None,
    ):
        if not 0.0 < adaptation_rate <= 1.0:
            raise InvalidWeightConfigError(
                f"Adaptation rate must be in (0, 1], got {adaptation_rate}",
                details={"adaptation_rate": adaptation_rate},
            )
        if performance_window <= 0:
            raise InvalidWeightConfigError(
                f"Performance window must be positive, got {performance_window}",
                details={"performance_window": performance_window},
            )
        self.adaptation_rate = adaptation_rate
        self.performance_window = performance_window
        self.diversity = diversity_analyzer or DiversityAnalyzer()

    def target_weights(
        self,
        records: Sequence[ForecastRecord],
        current: EnsembleWeights,
    ) -> tuple[dict[ModelKind, float], tuple[tuple[float, ...], ...]]:
        """
        Compute the target weight of each present model and the new history.

        Models absent from `records` keep their share; present models split
        the remaining mass by combined score.
        """
        for record in records:
            if record.model not in current.models:
                raise ValidationError(
                    f"Model {record.model.value} has no weight in the ensemble",
                    field="records",
                    details={"model": record.model.value},
                )

        report = self.diversity.analyze(records)

        history = list(current.performance_history or tuple(() for _ in current.models))
        combined: dict[ModelKind, float] = {}
        for record in records:
            idx = current.models.index(record.model)
            window = (history[idx] + (performance_score(record.accuracy),))[-self.performance_window:]
            history[idx] = window
            rolling = math.fsum(window) / len(window)
            combined[record.model] = (
                PERFORMANCE_SHARE * rolling
                + DIVERSITY_SHARE * report.individual[record.model]
            )

        present_mass = math.fsum(current.weight_for(m) for m in combined)
        total = math.fsum(combined.values())
        if total > 0:
            targets = {m: present_mass * s / total for m, s in combined.items()}
        else:
            targets = {m: present_mass / len(combined) for m in combined}
        return targets, tuple(history)

    def update(
        self,
        records: Sequence[ForecastRecord],
        current: EnsembleWeights,
    ) -> EnsembleWeights:
        """
        Adapt weights from this cycle's records.

        Returns:
            New snapshot; `current` is untouched.
        """
        targets, history = self.target_weights(records, current)

        adapted = []
        for model, weight in zip(current.models, current.values):
            if model in targets:
                weight = weight + self.adaptation_rate * (targets[model] - weight)
            adapted.append(weight)

        values = bounded_normalize(adapted, current.min_weight, current.max_weight)

        updated = replace(
            current,
            values=tuple(values),
            version=current.version + 1,
            updated_at=datetime.now(timezone.utc),
            performance_history=history,
        )

        logger.info(
            "ensemble_weights_updated",
            version=updated.version,
            weights={k: round(v, 4) for k, v in updated.as_dict().items()},
        )
        return updated
