"""
Mitigation Strategy Generator.

A rule fires when its category's trigger value exceeds the threshold. The
trigger value is a named raw metric when the rule names one, otherwise the
normalized score. Fired mitigations are ordered by priority (critical first),
then effectiveness (highest first).
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from ensemblecast.risk.schemas import (
    LEVEL_ORDER,
    Mitigation,
    RiskCategory,
    RiskCategoryScore,
    RiskLevel,
    Timeframe,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MitigationRule:
    """Category + trigger → mitigation template."""
    category: RiskCategory
    threshold: float
    strategy: str
    priority: RiskLevel
    effectiveness: float
    cost: float
    timeframe: Timeframe
    description: str
    metric: Optional[str] = None     # None → compare the normalized score

    def trigger_value(self, score: RiskCategoryScore) -> Optional[float]:
        if self.metric is None:
            return score.normalized_score
        return score.raw_metrics.get(self.metric)

    def fires(self, score: RiskCategoryScore) -> bool:
        value = self.trigger_value(score)
        return value is not None and value > self.threshold

    def build(self) -> Mitigation:
        return Mitigation(
            strategy=self.strategy,
            category=self.category,
            priority=self.priority,
            effectiveness=self.effectiveness,
            cost=self.cost,
            timeframe=self.timeframe,
            description=self.description,
        )


DEFAULT_RULES: tuple[MitigationRule, ...] = (
    MitigationRule(
        category=RiskCategory.MARKET,
        metric="var",
        threshold=0.1,
        strategy="Diversification",
        priority=RiskLevel.HIGH,
        effectiveness=0.8,
        cost=0.2,
        timeframe=Timeframe.MEDIUM_TERM,
        description="Diversify portfolio across uncorrelated assets",
    ),
    MitigationRule(
        category=RiskCategory.LIQUIDITY,
        metric="bid_ask_spread",
        threshold=0.01,
        strategy="Liquidity Buffer",
        priority=RiskLevel.MEDIUM,
        effectiveness=0.7,
        cost=0.3,
        timeframe=Timeframe.SHORT_TERM,
        description="Maintain higher cash reserves and trade in liquid instruments",
    ),
    MitigationRule(
        category=RiskCategory.CREDIT,
        metric="default_probability",
        threshold=0.05,
        strategy="Collateral Management",
        priority=RiskLevel.HIGH,
        effectiveness=0.9,
        cost=0.4,
        timeframe=Timeframe.SHORT_TERM,
        description="Require additional collateral from high-risk counterparties",
    ),
    MitigationRule(
        category=RiskCategory.OPERATIONAL,
        metric="system_risk",
        threshold=0.3,
        strategy="System Redundancy",
        priority=RiskLevel.MEDIUM,
        effectiveness=0.85,
        cost=0.5,
        timeframe=Timeframe.LONG_TERM,
        description="Add redundant systems and failover procedures",
    ),
    MitigationRule(
        category=RiskCategory.SYSTEMIC,
        metric="contagion_risk",
        threshold=0.2,
        strategy="Contagion Monitoring",
        priority=RiskLevel.LOW,
        effectiveness=0.6,
        cost=0.1,
        timeframe=Timeframe.CONTINUOUS,
        description="Monitor interconnected exposures for early contagion signals",
    ),
)


class MitigationGenerator:
    """Evaluate the rule table against category scores."""

    def __init__(self, rules: Optional[Sequence[MitigationRule]] = None):
        self.rules = tuple(DEFAULT_RULES if rules is None else rules)

    def generate(self, scores: Sequence[RiskCategoryScore]) -> list[Mitigation]:
        by_category = {s.category: s for s in scores}
        fired = [
            rule.build()
            for rule in self.rules
            if rule.category in by_category and rule.fires(by_category[rule.category])
        ]
        fired.sort(key=lambda m: (LEVEL_ORDER.index(m.priority), -m.effectiveness))

        if fired:
            logger.info(
                "mitigations_generated",
                n_mitigations=len(fired),
                strategies=[m.strategy for m in fired],
            )
        return fired
