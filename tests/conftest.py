"""
Test fixtures for EnsembleCast.

Provides:
- ForecastRecord factory with aligned timestamps and synthetic intervals
- The three-model reference scenario (up / down / steep up)
- Raw risk input bundles (calm and stressed)
- Category score factory for aggregator tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from ensemblecast.forecast.schemas import (
    ConfidenceInterval,
    ForecastRecord,
    ModelAccuracy,
    ModelKind,
)
from ensemblecast.forecast.weights import EnsembleWeights
from ensemblecast.risk.calculators import DEFAULT_POLICY_WEIGHTS
from ensemblecast.risk.schemas import (
    CreditRiskMetrics,
    LiquidityRiskMetrics,
    MarketRiskMetrics,
    OperationalRiskMetrics,
    RiskCategory,
    RiskCategoryScore,
    RiskInputs,
    SystemicRiskMetrics,
)

START = datetime(2026, 1, 5, tzinfo=timezone.utc)


def build_record(
    model: ModelKind,
    values,
    directional_accuracy: float = 0.6,
    mape: float = 0.05,
    r2: float = 0.5,
    start: datetime = START,
) -> ForecastRecord:
    values = tuple(float(v) for v in values)
    return ForecastRecord(
        model=model,
        values=values,
        timestamps=tuple(start + timedelta(days=i) for i in range(len(values))),
        confidence_intervals=tuple(
            ConfidenceInterval(lower=v - 1.0, upper=v + 1.0) for v in values
        ),
        accuracy=ModelAccuracy(
            mae=1.0, mse=1.0, rmse=1.0, mape=mape, r2=r2,
            directional_accuracy=directional_accuracy,
        ),
    )


@pytest.fixture(scope="session")
def make_record():
    """Factory: make_record(ModelKind.ARIMA, [1, 2, 3], directional_accuracy=0.7)."""
    return build_record


@pytest.fixture
def three_records() -> list[ForecastRecord]:
    return [
        build_record(ModelKind.ARIMA, [100, 101, 102, 103]),
        build_record(ModelKind.PROPHET, [100, 99, 98, 97]),
        build_record(ModelKind.LSTM, [100, 102, 104, 106]),
    ]


@pytest.fixture
def equal_weights() -> EnsembleWeights:
    return EnsembleWeights.uniform(list(ModelKind))


@pytest.fixture
def calm_inputs() -> RiskInputs:
    return RiskInputs(
        market=MarketRiskMetrics(var=0.02, expected_shortfall=0.03, volatility=0.1),
        liquidity=LiquidityRiskMetrics(bid_ask_spread=0.001, market_depth=9.0, slippage=0.001),
        credit=CreditRiskMetrics(
            counterparty_risk=0.05, settlement_risk=0.02,
            default_probability=0.01, recovery_rate=0.6,
        ),
        operational=OperationalRiskMetrics(
            system_risk=0.1, human_risk=0.1, process_risk=0.1, external_risk=0.1,
        ),
        systemic=SystemicRiskMetrics(
            contagion_risk=0.1, liquidity_spiral=0.1, fire_sales=0.1, network_risk=0.1,
        ),
    )


@pytest.fixture
def stressed_inputs() -> RiskInputs:
    return RiskInputs(
        market=MarketRiskMetrics(var=0.9, expected_shortfall=1.2, volatility=0.8),
        liquidity=LiquidityRiskMetrics(bid_ask_spread=0.05, market_depth=0.1, slippage=0.02),
        credit=CreditRiskMetrics(
            counterparty_risk=0.9, settlement_risk=0.5,
            default_probability=0.2, recovery_rate=0.2,
        ),
        operational=OperationalRiskMetrics(
            system_risk=0.9, human_risk=0.8, process_risk=0.9, external_risk=0.8,
        ),
        systemic=SystemicRiskMetrics(
            contagion_risk=0.9, liquidity_spiral=0.8, fire_sales=0.9, network_risk=0.9,
        ),
    )


def build_scores(values: dict) -> list[RiskCategoryScore]:
    scores = []
    for category in RiskCategory:
        score = float(values[category.value])
        weight = DEFAULT_POLICY_WEIGHTS[category]
        scores.append(RiskCategoryScore(
            category=category,
            normalized_score=score,
            weight=weight,
            contribution=score * weight,
        ))
    return scores


@pytest.fixture(scope="session")
def make_scores():
    """Factory: make_scores({"market": 0.8, "liquidity": 0.2, ...})."""
    return build_scores
