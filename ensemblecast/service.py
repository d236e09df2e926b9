"""
Public entry points.

Thin functional wrappers over the engines for collaborators that want a
single call per operation:
- combine(records, weights, strategy) → CombinedForecast
- update_weights(records, current_weights, adaptation_rate) → EnsembleWeights
- aggregate_risk(category_scores, policy_weights) → RiskReport
"""

from typing import Mapping, Optional, Sequence

from ensemblecast.forecast.combiner import CombinationStrategy, EnsembleCombiner
from ensemblecast.forecast.ensemble import EnsembleEngine
from ensemblecast.forecast.schemas import CombinedForecast, ForecastRecord
from ensemblecast.forecast.stacking import MetaModel
from ensemblecast.forecast.uncertainty import (
    CalibrationSet,
    UncertaintyMethod,
    UncertaintyQuantifier,
)
from ensemblecast.forecast.weights import (
    DEFAULT_PERFORMANCE_WINDOW,
    EnsembleWeights,
    WeightAdapter,
)
from ensemblecast.risk.aggregator import RiskAggregator
from ensemblecast.risk.correlation import (
    DEFAULT_CORRELATION_ADJUSTMENT,
    CorrelationAdjuster,
)
from ensemblecast.risk.schemas import RiskCategoryScore, RiskReport


def combine(
    records: Sequence[ForecastRecord],
    weights: EnsembleWeights,
    strategy: CombinationStrategy | str = CombinationStrategy.WEIGHTED,
    *,
    meta_model: Optional[MetaModel] = None,
    uncertainty_method: UncertaintyMethod | str = UncertaintyMethod.VARIANCE,
    calibration: Optional[CalibrationSet] = None,
) -> CombinedForecast:
    """
    Combine one cycle of forecasts. `weights` is read, never modified.

    Needs at least two records, since diversity is measured between models.
    Use EnsembleCombiner directly to combine a single record.

    Raises:
        ValidationError: unknown strategy or uncertainty method, malformed records
        InsufficientModelsError: fewer than two records
    """
    engine = EnsembleEngine(
        combiner=EnsembleCombiner(strategy=strategy),
        quantifier=UncertaintyQuantifier(method=uncertainty_method),
        use_dynamic_weights=False,
    )
    return engine.combine(records, weights, calibration=calibration, meta_model=meta_model)


def update_weights(
    records: Sequence[ForecastRecord],
    current_weights: EnsembleWeights,
    adaptation_rate: float,
    *,
    performance_window: int = DEFAULT_PERFORMANCE_WINDOW,
) -> EnsembleWeights:
    """Return the adapted weight snapshot for the next cycle."""
    adapter = WeightAdapter(adaptation_rate=adaptation_rate, performance_window=performance_window)
    return adapter.update(records, current_weights)


def aggregate_risk(
    category_scores: Sequence[RiskCategoryScore],
    policy_weights: Optional[Mapping] = None,
    *,
    correlation_adjustment: float = DEFAULT_CORRELATION_ADJUSTMENT,
    correlation_matrix: Optional[Sequence[Sequence[float]]] = None,
    previous: Optional[RiskReport] = None,
) -> RiskReport:
    """Aggregate one score per category into a RiskReport."""
    aggregator = RiskAggregator(
        policy_weights=policy_weights,
        correlation=CorrelationAdjuster(constant=correlation_adjustment, matrix=correlation_matrix),
    )
    return aggregator.aggregate(category_scores, previous=previous)
