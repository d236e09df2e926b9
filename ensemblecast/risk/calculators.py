"""
Risk Category Calculators.

Each calculator maps one category's raw metrics to a normalized score in
[0, 1]:
- market: VaR fraction, clamped
- liquidity: mean of min(1, spread × 100) and min(1, 1 / (1 + depth))
- credit: mean of min(1, default probability × 10) and counterparty risk
- operational: mean of system/human/process/external sub-scores
- systemic: 0.4 contagion + 0.3 liquidity spiral + 0.2 fire sales + 0.1 network

Calculators are pure. Inputs are validated before any arithmetic:
a negative metric, a non-finite metric, or a probability above 1 is rejected.
"""

import math
from typing import Any, ClassVar, Optional

import structlog

from ensemblecast.errors import OutOfRangeMetricError
from ensemblecast.risk.schemas import (
    CreditRiskMetrics,
    LiquidityRiskMetrics,
    MarketRiskMetrics,
    OperationalRiskMetrics,
    RiskCategory,
    RiskCategoryScore,
    SystemicRiskMetrics,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_POLICY_WEIGHTS: dict[RiskCategory, float] = {
    RiskCategory.MARKET: 0.35,
    RiskCategory.LIQUIDITY: 0.25,
    RiskCategory.CREDIT: 0.20,
    RiskCategory.OPERATIONAL: 0.15,
    RiskCategory.SYSTEMIC: 0.05,
}

SPREAD_SCALE: float = 100.0           # Spread fraction → 0-1 score
DEFAULT_PROBABILITY_SCALE: float = 10.0

SYSTEMIC_WEIGHTS: dict[str, float] = {
    "contagion_risk": 0.4,
    "liquidity_spiral": 0.3,
    "fire_sales": 0.2,
    "network_risk": 0.1,
}


def _clamp01(x: float) -> float:
    return min(1.0, max(0.0, x))


class RiskCalculator:
    """
    Base calculator: validate, normalize, weight.

    Subclasses set `category`, `probability_metrics` and implement `normalize`.
    """

    category: ClassVar[RiskCategory]
    probability_metrics: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, weight: Optional[float] = None):
        self.weight = DEFAULT_POLICY_WEIGHTS[self.category] if weight is None else weight

    def compute(self, metrics: Any) -> RiskCategoryScore:
        raw = metrics.as_dict()
        self.validate(raw)
        score = _clamp01(self.normalize(metrics))
        logger.debug(
            "risk_category_scored",
            category=self.category.value,
            score=round(score, 4),
        )
        return RiskCategoryScore(
            category=self.category,
            raw_metrics=raw,
            normalized_score=score,
            weight=self.weight,
            contribution=score * self.weight,
        )

    def validate(self, raw: dict[str, float]) -> None:
        for name, value in raw.items():
            if not math.isfinite(value):
                raise OutOfRangeMetricError(name, value, "finite")
            if value < 0:
                raise OutOfRangeMetricError(name, value, ">= 0")
            if name in self.probability_metrics and value > 1.0:
                raise OutOfRangeMetricError(name, value, "<= 1")

    def normalize(self, metrics: Any) -> float:
        raise NotImplementedError


class MarketRiskCalculator(RiskCalculator):
    category = RiskCategory.MARKET

    def normalize(self, metrics: MarketRiskMetrics) -> float:
        return _clamp01(metrics.var)


class LiquidityRiskCalculator(RiskCalculator):
    category = RiskCategory.LIQUIDITY

    def normalize(self, metrics: LiquidityRiskMetrics) -> float:
        spread_score = min(1.0, metrics.bid_ask_spread * SPREAD_SCALE)
        depth_score = min(1.0, 1.0 / (1.0 + metrics.market_depth))
        return (spread_score + depth_score) / 2


class CreditRiskCalculator(RiskCalculator):
    category = RiskCategory.CREDIT
    probability_metrics = frozenset({
        "counterparty_risk", "settlement_risk", "default_probability", "recovery_rate",
    })

    def normalize(self, metrics: CreditRiskMetrics) -> float:
        default_score = min(1.0, metrics.default_probability * DEFAULT_PROBABILITY_SCALE)
        return (default_score + metrics.counterparty_risk) / 2


class OperationalRiskCalculator(RiskCalculator):
    category = RiskCategory.OPERATIONAL
    probability_metrics = frozenset({
        "system_risk", "human_risk", "process_risk", "external_risk",
    })

    def normalize(self, metrics: OperationalRiskMetrics) -> float:
        return math.fsum((
            metrics.system_risk,
            metrics.human_risk,
            metrics.process_risk,
            metrics.external_risk,
        )) / 4


class SystemicRiskCalculator(RiskCalculator):
    category = RiskCategory.SYSTEMIC
    probability_metrics = frozenset(SYSTEMIC_WEIGHTS)

    def normalize(self, metrics: SystemicRiskMetrics) -> float:
        raw = metrics.as_dict()
        return math.fsum(w * raw[name] for name, w in SYSTEMIC_WEIGHTS.items())


CALCULATORS: dict[RiskCategory, type[RiskCalculator]] = {
    RiskCategory.MARKET: MarketRiskCalculator,
    RiskCategory.LIQUIDITY: LiquidityRiskCalculator,
    RiskCategory.CREDIT: CreditRiskCalculator,
    RiskCategory.OPERATIONAL: OperationalRiskCalculator,
    RiskCategory.SYSTEMIC: SystemicRiskCalculator,
}


def build_calculators(
    policy_weights: Optional[dict[RiskCategory, float]] = None,
) -> dict[RiskCategory, RiskCalculator]:
    """One calculator per category, weighted by the given policy."""
    weights = policy_weights or DEFAULT_POLICY_WEIGHTS
    return {category: cls(weights[category]) for category, cls in CALCULATORS.items()}
