"""
Ensemble Combiner.

Turns several aligned forecasts into one value sequence:
- weighted: Σ w_i × v_i[t] / Σ w_i over the models present in the call
- majority: direction vote per step, mean of the winning models' values
- stacking: a fitted meta-model maps all model outputs at t to one value

Confidence intervals come from the weighted dispersion of the per-model
values around the combined value: centre ± 1.96 × sqrt(weighted variance).

The combiner only READS the weight snapshot; adaptation is a separate step.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Sequence

import structlog

from ensemblecast.errors import (
    MetaModelNotFittedError,
    RangeError,
    ValidationError,
    coerce_choice,
)
from ensemblecast.forecast.schemas import (
    ConfidenceInterval,
    ForecastRecord,
    ModelKind,
    check_aligned,
)
from ensemblecast.forecast.stacking import MetaModel
from ensemblecast.forecast.weights import EnsembleWeights

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_SIDEWAYS_EPSILON: float = 1e-6
INTERVAL_Z: float = 1.96          # 95% two-sided normal quantile
INTERVAL_LEVEL: float = 0.95


class CombinationStrategy(StrEnum):
    WEIGHTED = "weighted"
    MAJORITY = "majority"
    STACKING = "stacking"


class Direction(StrEnum):
    UP = "up"
    DOWN = "down"
    SIDEWAYS = "sideways"


# Final tie-break order when votes and weight are both tied
DIRECTION_PRECEDENCE: tuple[Direction, ...] = (Direction.UP, Direction.DOWN, Direction.SIDEWAYS)


@dataclass(frozen=True)
class CombinationResult:
    """Combined sequence plus its intervals."""
    strategy: CombinationStrategy
    values: tuple[float, ...]
    confidence_intervals: tuple[ConfidenceInterval, ...]
    models: tuple[ModelKind, ...]
    weights_used: dict[ModelKind, float]    # Renormalized over present models


class EnsembleCombiner:
    """Combine aligned forecast records under one strategy."""

    def __init__(
        self,
        strategy: CombinationStrategy = CombinationStrategy.WEIGHTED,
        sideways_epsilon: float = DEFAULT_SIDEWAYS_EPSILON,
    ):
        self.strategy = coerce_choice(CombinationStrategy, strategy, "strategy")
        if sideways_epsilon < 0:
            raise ValidationError("sideways_epsilon must be non-negative", field="sideways_epsilon")
        self.sideways_epsilon = sideways_epsilon

    def combine(
        self,
        records: Sequence[ForecastRecord],
        weights: EnsembleWeights,
        meta_model: Optional[MetaModel] = None,
    ) -> CombinationResult:
        """
        Combine records with the configured strategy.

        Raises:
            ValidationError: no records, duplicates, or a model without weight
            HorizonMismatchError: records disagree on horizon or timestamps
            MetaModelNotFittedError: stacking without a meta-model
        """
        if not records:
            raise ValidationError("At least one forecast record is required", field="records")
        check_aligned(records)
        normalized = self._present_weights(records, weights)

        if self.strategy == CombinationStrategy.WEIGHTED:
            values = self._weighted(records, normalized)
        elif self.strategy == CombinationStrategy.MAJORITY:
            values = self._majority(records, normalized)
        else:
            values = self._stacked(records, meta_model)

        intervals = self._intervals(records, normalized, values)

        logger.debug(
            "forecasts_combined",
            strategy=self.strategy.value,
            n_models=len(records),
            horizon=len(values),
        )

        return CombinationResult(
            strategy=self.strategy,
            values=tuple(values),
            confidence_intervals=tuple(intervals),
            models=tuple(r.model for r in records),
            weights_used={r.model: w for r, w in zip(records, normalized)},
        )

    def combine_resample(
        self,
        records: Sequence[ForecastRecord],
        weights: EnsembleWeights,
    ) -> list[float]:
        """
        Recombine a resampled record set (duplicates allowed).

        Stacking needs one column per model, so resamples fall back to the
        weighted rule under that strategy.
        """
        normalized = self._present_weights(records, weights)
        if self.strategy == CombinationStrategy.MAJORITY:
            return self._majority(records, normalized)
        return self._weighted(records, normalized)

    # ── Strategies ───────────────────────────────────────────────────────

    def _weighted(self, records: Sequence[ForecastRecord], weights: list[float]) -> list[float]:
        horizon = records[0].horizon
        combined = []
        for t in range(horizon):
            at_t = [r.values[t] for r in records]
            value = math.fsum(w * v for w, v in zip(weights, at_t))
            # Convex combination: pin float drift back inside the hull
            combined.append(min(max(value, min(at_t)), max(at_t)))
        return combined

    def _majority(self, records: Sequence[ForecastRecord], weights: list[float]) -> list[float]:
        horizon = records[0].horizon
        combined = []
        for t in range(horizon):
            votes: dict[Direction, list[int]] = {d: [] for d in DIRECTION_PRECEDENCE}
            for i, record in enumerate(records):
                votes[self._direction(record.values, t)].append(i)

            winner = max(
                (d for d in DIRECTION_PRECEDENCE if votes[d]),
                key=lambda d: (
                    len(votes[d]),
                    math.fsum(weights[i] for i in votes[d]),
                    -DIRECTION_PRECEDENCE.index(d),
                ),
            )
            winners = votes[winner]
            combined.append(math.fsum(records[i].values[t] for i in winners) / len(winners))
        return combined

    def _direction(self, values: Sequence[float], t: int) -> Direction:
        delta = values[t] - values[t - 1] if t > 0 else 0.0
        if abs(delta) <= self.sideways_epsilon:
            return Direction.SIDEWAYS
        return Direction.UP if delta > 0 else Direction.DOWN

    def _stacked(
        self,
        records: Sequence[ForecastRecord],
        meta_model: Optional[MetaModel],
    ) -> list[float]:
        if meta_model is None:
            raise MetaModelNotFittedError()
        by_model = {r.model: r for r in records}
        missing = [m.value for m in meta_model.models if m not in by_model]
        if missing:
            raise ValidationError(
                f"Meta-model expects forecasts from {missing}",
                field="records",
                details={"missing_models": missing},
            )
        ordered = [by_model[m] for m in meta_model.models]

        combined = []
        for t in range(records[0].horizon):
            value = float(meta_model.predict([r.values[t] for r in ordered]))
            if not math.isfinite(value):
                raise RangeError(
                    f"Meta-model produced non-finite value at step {t}",
                    field="values",
                )
            combined.append(value)
        return combined

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _present_weights(
        records: Sequence[ForecastRecord],
        weights: EnsembleWeights,
    ) -> list[float]:
        """Weights of the records' models, renormalized to sum to 1."""
        raw = []
        for record in records:
            if record.model not in weights.models:
                raise ValidationError(
                    f"Model {record.model.value} has no weight in the ensemble",
                    field="records",
                    details={"model": record.model.value},
                )
            raw.append(weights.weight_for(record.model))
        total = math.fsum(raw)
        if total <= 0:
            return [1.0 / len(raw)] * len(raw)
        return [w / total for w in raw]

    @staticmethod
    def _intervals(
        records: Sequence[ForecastRecord],
        weights: list[float],
        centres: Sequence[float],
    ) -> list[ConfidenceInterval]:
        intervals = []
        for t, centre in enumerate(centres):
            deviations = [r.values[t] - centre for r in records]
            variance = math.fsum(w * d * d for w, d in zip(weights, deviations))
            margin = INTERVAL_Z * math.sqrt(variance)
            if not math.isfinite(margin):
                raise RangeError(
                    f"Interval at step {t} overflows; forecast values too far apart",
                    field="confidence_intervals",
                )
            intervals.append(ConfidenceInterval(
                lower=centre - margin,
                upper=centre + margin,
                confidence_level=INTERVAL_LEVEL,
            ))
        return intervals
