"""
Ensemble Engine: one full combination cycle.

Orchestrates: Selection → Diversity → Combination → Uncertainty → Contributions,
then (optionally) adapts the weights for the next cycle.

Weights and calibration residuals come in as snapshots and go out as new
snapshots. The combination always reads the incoming weights; adaptation runs
afterwards, so a cycle never sees a half-updated vector.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from ensemblecast.config import Settings
from ensemblecast.errors import EmptyCalibrationSetError, EnsembleCastError
from ensemblecast.forecast.combiner import (
    CombinationStrategy,
    EnsembleCombiner,
)
from ensemblecast.forecast.diversity import DiversityAnalyzer, DiversityReport
from ensemblecast.forecast.schemas import (
    CombinedForecast,
    ForecastRecord,
    ModelContribution,
    ModelKind,
)
from ensemblecast.forecast.stacking import MetaModel
from ensemblecast.forecast.uncertainty import (
    DEFAULT_CALIBRATION_CAPACITY,
    CalibrationSet,
    UncertaintyMethod,
    UncertaintyQuantifier,
)
from ensemblecast.forecast.weights import (
    DEFAULT_MAX_WEIGHT,
    DEFAULT_MIN_WEIGHT,
    EnsembleWeights,
    WeightAdapter,
    performance_score,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_CONFIDENCE_THRESHOLD: float = 0.5
HIGH_DISAGREEMENT_THRESHOLD: float = 0.25   # Aggregate diversity worth a warning
MIN_SELECTED_MODELS: int = 2


@dataclass(frozen=True)
class EnsembleCycle:
    """Result of one cycle: the forecast and the weights for the next cycle."""
    forecast: CombinedForecast
    weights: EnsembleWeights
    weights_adapted: bool


class EnsembleEngine:
    """
    Production ensemble combination.

    Combiner, quantifier and adapter are injectable; defaults follow the
    module-level configuration.
    """

    def __init__(
        self,
        combiner: Optional[EnsembleCombiner] = None,
        quantifier: Optional[UncertaintyQuantifier] = None,
        adapter: Optional[WeightAdapter] = None,
        diversity: Optional[DiversityAnalyzer] = None,
        use_dynamic_weights: bool = True,
        use_model_selection: bool = False,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        high_disagreement_threshold: float = HIGH_DISAGREEMENT_THRESHOLD,
        min_weight: float = DEFAULT_MIN_WEIGHT,
        max_weight: float = DEFAULT_MAX_WEIGHT,
        calibration_capacity: int = DEFAULT_CALIBRATION_CAPACITY,
    ):
        self.combiner = combiner or EnsembleCombiner()
        self.quantifier = quantifier or UncertaintyQuantifier()
        self.adapter = adapter or WeightAdapter()
        self.diversity = diversity or DiversityAnalyzer()
        self.use_dynamic_weights = use_dynamic_weights
        self.use_model_selection = use_model_selection
        self.confidence_threshold = confidence_threshold
        self.high_disagreement_threshold = high_disagreement_threshold
        self.min_weight = min_weight
        self.max_weight = max_weight
        self.calibration_capacity = calibration_capacity

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnsembleEngine":
        """Build an engine from environment settings."""
        return cls(
            combiner=EnsembleCombiner(
                strategy=settings.ensemble_strategy,
                sideways_epsilon=settings.sideways_epsilon,
            ),
            quantifier=UncertaintyQuantifier(
                method=settings.uncertainty_method,
                bootstrap_samples=settings.bootstrap_samples,
                bootstrap_seed=settings.bootstrap_seed,
                conformal_alpha=settings.conformal_alpha,
            ),
            adapter=WeightAdapter(
                adaptation_rate=settings.adaptation_rate,
                performance_window=settings.performance_window,
            ),
            use_dynamic_weights=settings.use_dynamic_weights,
            use_model_selection=settings.use_model_selection,
            confidence_threshold=settings.confidence_threshold,
            high_disagreement_threshold=settings.high_disagreement_threshold,
            min_weight=settings.min_weight,
            max_weight=settings.max_weight,
            calibration_capacity=settings.calibration_capacity,
        )

    @property
    def strategy(self) -> CombinationStrategy:
        return self.combiner.strategy

    def initial_weights(self, models: Sequence[ModelKind]) -> EnsembleWeights:
        """Uniform starting snapshot within this engine's weight bounds."""
        return EnsembleWeights.uniform(models, self.min_weight, self.max_weight)

    def empty_calibration(self) -> CalibrationSet:
        return CalibrationSet(capacity=self.calibration_capacity)

    def combine(
        self,
        records: Sequence[ForecastRecord],
        weights: EnsembleWeights,
        calibration: Optional[CalibrationSet] = None,
        meta_model: Optional[MetaModel] = None,
    ) -> CombinedForecast:
        """
        Combine one cycle's forecasts into a CombinedForecast.

        Does not touch `weights`; see `run_cycle` for adaptation.

        Raises:
            InsufficientModelsError: fewer than two records remain after
                model selection; diversity needs a pair
        """
        selected = self.select_models(records)
        report = self.diversity.analyze(selected)
        result = self.combiner.combine(selected, weights, meta_model=meta_model)

        method = self.quantifier.method
        try:
            uncertainty = self.quantifier.quantify(
                selected,
                combine_fn=lambda sample: self.combiner.combine_resample(sample, weights),
                calibration=calibration,
            )
        except EmptyCalibrationSetError:
            logger.warning("conformal_calibration_empty", fallback=UncertaintyMethod.VARIANCE.value)
            method = UncertaintyMethod.VARIANCE
            uncertainty = self.quantifier.variance(selected)

        contributions = self._contributions(selected, result.weights_used, report)

        if report.aggregate >= self.high_disagreement_threshold:
            logger.warning(
                "ensemble_high_disagreement",
                aggregate_diversity=round(report.aggregate, 4),
                models=[m.value for m in report.models],
            )

        forecast = CombinedForecast(
            strategy=result.strategy.value,
            values=result.values,
            timestamps=selected[0].timestamps,
            confidence_intervals=result.confidence_intervals,
            weights=weights,
            uncertainty=uncertainty,
            uncertainty_method=method.value,
            model_contributions=contributions,
            aggregate_diversity=report.aggregate,
            models_used=result.models,
        )

        logger.info(
            "ensemble_combined",
            strategy=forecast.strategy,
            horizon=forecast.horizon,
            mean=round(forecast.mean, 6),
            n_models=len(selected),
            uncertainty=round(uncertainty, 6),
            uncertainty_method=forecast.uncertainty_method,
            top_contributor=forecast.top_contributor.value if forecast.top_contributor else None,
        )
        return forecast

    def run_cycle(
        self,
        records: Sequence[ForecastRecord],
        weights: EnsembleWeights,
        calibration: Optional[CalibrationSet] = None,
        meta_model: Optional[MetaModel] = None,
    ) -> EnsembleCycle:
        """
        Combine, then adapt weights for the next cycle.

        A failed adaptation never fails the cycle: the forecast is returned
        with the incoming weights.
        """
        forecast = self.combine(records, weights, calibration=calibration, meta_model=meta_model)

        if not self.use_dynamic_weights:
            return EnsembleCycle(forecast=forecast, weights=weights, weights_adapted=False)

        try:
            new_weights = self.adapter.update(records, weights)
        except EnsembleCastError as e:
            logger.warning(
                "ensemble_weight_update_failed",
                error=e.message,
                code=e.code.value,
                version=weights.version,
            )
            return EnsembleCycle(forecast=forecast, weights=weights, weights_adapted=False)

        return EnsembleCycle(forecast=forecast, weights=new_weights, weights_adapted=True)

    def record_outcome(
        self,
        calibration: CalibrationSet,
        forecast: CombinedForecast,
        realized: Sequence[float],
    ) -> CalibrationSet:
        """Feed realized values back into the conformal calibration set."""
        updated = calibration.with_observations(forecast.values, realized)
        logger.info(
            "calibration_updated",
            n_residuals=len(updated),
            version=updated.version,
        )
        return updated

    def select_models(self, records: Sequence[ForecastRecord]) -> list[ForecastRecord]:
        """
        Drop low-confidence forecasts when model selection is enabled.

        Never drops below two records; if too few pass, the best two by
        confidence are kept.
        """
        records = list(records)
        if not self.use_model_selection or len(records) <= MIN_SELECTED_MODELS:
            return records

        scored = [(performance_score(r.accuracy), r) for r in records]
        passing = [r for s, r in scored if s >= self.confidence_threshold]
        if len(passing) >= MIN_SELECTED_MODELS:
            selected = passing
        else:
            best = sorted(scored, key=lambda sr: sr[0], reverse=True)[:MIN_SELECTED_MODELS]
            keep = {id(r) for _, r in best}
            selected = [r for r in records if id(r) in keep]

        kept = {r.model for r in selected}
        dropped = [r.model.value for r in records if r.model not in kept]
        if dropped:
            logger.info("ensemble_models_deselected", dropped=dropped, threshold=self.confidence_threshold)
        return selected

    @staticmethod
    def _contributions(
        records: Sequence[ForecastRecord],
        weights_used: dict,
        report: DiversityReport,
    ) -> tuple[ModelContribution, ...]:
        contributions = []
        for record in records:
            weight = weights_used[record.model]
            accuracy = record.accuracy.directional_accuracy
            diversity = report.individual[record.model]
            contributions.append(ModelContribution(
                model=record.model,
                weight=weight,
                accuracy=accuracy,
                diversity=diversity,
                contribution=weight * accuracy * (1.0 + diversity),
            ))
        contributions.sort(key=lambda c: c.contribution, reverse=True)
        return tuple(contributions)
