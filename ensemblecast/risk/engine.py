"""
Risk Engine: raw metrics in, RiskReport out.

Orchestrates: Calculators (five categories) → Aggregator → Mitigations

The async path runs the five calculators concurrently and joins them before
aggregating. Calculators read disjoint inputs and return immutable scores.
"""

import asyncio
from typing import Optional

import structlog

from ensemblecast.config import Settings
from ensemblecast.risk.aggregator import RiskAggregator
from ensemblecast.risk.calculators import RiskCalculator, build_calculators
from ensemblecast.risk.correlation import CorrelationAdjuster
from ensemblecast.risk.schemas import (
    RiskCategory,
    RiskCategoryScore,
    RiskInputs,
    RiskReport,
)

logger = structlog.get_logger(__name__)


class RiskEngine:
    """
    Production risk assessment engine.

    Orchestrates: Calculators → Correlation adjustment → Aggregation → Mitigation
    """

    def __init__(self, aggregator: Optional[RiskAggregator] = None):
        self.aggregator = aggregator or RiskAggregator()
        self.calculators: dict[RiskCategory, RiskCalculator] = build_calculators(
            self.aggregator.policy_weights
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskEngine":
        """Build an engine from environment settings."""
        return cls(
            aggregator=RiskAggregator(
                policy_weights=settings.policy_weights,
                correlation=CorrelationAdjuster(
                    constant=settings.correlation_adjustment,
                    cap=settings.correlation_cap,
                ),
                severity_thresholds=settings.severity_thresholds,
            )
        )

    def score(self, inputs: RiskInputs) -> list[RiskCategoryScore]:
        return [
            self.calculators[category].compute(getattr(inputs, category.value))
            for category in RiskCategory
        ]

    def assess(
        self,
        inputs: RiskInputs,
        previous: Optional[RiskReport] = None,
    ) -> RiskReport:
        """Score all categories and aggregate them."""
        return self.aggregator.aggregate(self.score(inputs), previous=previous)

    async def assess_async(
        self,
        inputs: RiskInputs,
        previous: Optional[RiskReport] = None,
    ) -> RiskReport:
        """Same as `assess`, with the five calculators run as parallel tasks."""
        scores = await asyncio.gather(*(
            asyncio.to_thread(
                self.calculators[category].compute,
                getattr(inputs, category.value),
            )
            for category in RiskCategory
        ))
        logger.debug("risk_categories_joined", n_categories=len(scores))
        return self.aggregator.aggregate(list(scores), previous=previous)
