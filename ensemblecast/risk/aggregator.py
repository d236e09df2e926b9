"""
Risk Aggregator.

Combines the five category scores into one report:
1. weighted_score = Σ score_c × weight_c under the policy weights
2. correlation adjustment (constant or matrix-derived)
3. overall_score = min(1, weighted_score × (1 + adjustment))
4. breakdowns by category, severity bucket and timeframe
5. rule-based mitigations

Policy weights are validated once at construction; every aggregate call
validates its scores before computing anything.
"""

import math
import statistics
from typing import Mapping, Optional, Sequence

import structlog

from ensemblecast.errors import RangeError, ValidationError
from ensemblecast.risk.calculators import DEFAULT_POLICY_WEIGHTS
from ensemblecast.risk.correlation import CorrelationAdjuster
from ensemblecast.risk.mitigation import MitigationGenerator
from ensemblecast.risk.schemas import (
    DEFAULT_SEVERITY_THRESHOLDS,
    RiskCategory,
    RiskCategoryScore,
    RiskLevel,
    RiskReport,
    SeverityBucket,
    Timeframe,
    TimeframeRisk,
    severity_for,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

POLICY_SUM_TOLERANCE: float = 1e-6

TIMEFRAME_CATEGORIES: dict[Timeframe, tuple[RiskCategory, ...]] = {
    Timeframe.SHORT_TERM: (RiskCategory.MARKET, RiskCategory.LIQUIDITY),
    Timeframe.MEDIUM_TERM: (RiskCategory.CREDIT, RiskCategory.OPERATIONAL),
    Timeframe.LONG_TERM: (RiskCategory.SYSTEMIC,),
}


def validate_policy_weights(weights: Mapping) -> dict[RiskCategory, float]:
    """
    Coerce keys to RiskCategory and enforce the policy invariants.

    Raises:
        ValidationError: unknown or missing category, negative weight,
            or weights not summing to 1
    """
    try:
        coerced = {RiskCategory(k): float(v) for k, v in weights.items()}
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid policy weights: {e}", field="policy_weights") from e

    missing = [c.value for c in RiskCategory if c not in coerced]
    if missing:
        raise ValidationError(
            f"Policy weights missing categories {missing}",
            field="policy_weights",
            details={"missing": missing},
        )
    for category, w in coerced.items():
        if not math.isfinite(w) or w < 0 or w > 1:
            raise ValidationError(
                f"Policy weight for {category.value} must be in [0, 1], got {w}",
                field="policy_weights",
            )
    total = math.fsum(coerced.values())
    if abs(total - 1.0) > POLICY_SUM_TOLERANCE:
        raise ValidationError(
            f"Policy weights must sum to 1.0, got {total:.6f}",
            field="policy_weights",
            details={"sum": total},
        )
    return coerced


class RiskAggregator:
    """Weighted, correlation-adjusted multi-category risk aggregation."""

    def __init__(
        self,
        policy_weights: Optional[Mapping] = None,
        correlation: Optional[CorrelationAdjuster] = None,
        mitigations: Optional[MitigationGenerator] = None,
        severity_thresholds: Sequence[float] = DEFAULT_SEVERITY_THRESHOLDS,
    ):
        self.policy_weights = validate_policy_weights(
            DEFAULT_POLICY_WEIGHTS if policy_weights is None else policy_weights
        )
        self.correlation = correlation or CorrelationAdjuster()
        self.mitigations = mitigations or MitigationGenerator()
        self.severity_thresholds = self._validated_thresholds(severity_thresholds)

    def aggregate(
        self,
        scores: Sequence[RiskCategoryScore],
        previous: Optional[RiskReport] = None,
    ) -> RiskReport:
        """
        Aggregate one score per category into a RiskReport.

        Raises:
            ValidationError: a category missing or repeated
            RangeError: a normalized score outside [0, 1]
        """
        by_category = self._validated_scores(scores)

        weighted = [
            score.model_copy(update={
                "weight": self.policy_weights[category],
                "contribution": score.normalized_score * self.policy_weights[category],
            })
            for category, score in by_category.items()
        ]

        weighted_score = min(1.0, max(0.0, math.fsum(s.contribution for s in weighted)))
        adjustment = self.correlation.adjustment(self.policy_weights)
        overall = min(1.0, weighted_score * (1.0 + adjustment))
        severity = severity_for(overall, self.severity_thresholds)

        report = RiskReport(
            overall_score=overall,
            weighted_score=weighted_score,
            correlation_adjustment=adjustment,
            severity=severity,
            by_category=sorted(weighted, key=lambda s: s.contribution, reverse=True),
            by_timeframe=self._timeframes(by_category, previous),
            by_severity=self._buckets(weighted),
            mitigations=self.mitigations.generate(weighted),
        )

        logger.info(
            "risk_aggregated",
            overall_score=round(overall, 4),
            weighted_score=round(weighted_score, 4),
            correlation_adjustment=round(adjustment, 4),
            correlation_mode=self.correlation.mode,
            severity=severity.value,
            n_mitigations=len(report.mitigations),
        )
        if severity == RiskLevel.CRITICAL:
            logger.warning(
                "risk_critical",
                overall_score=round(overall, 4),
                top_category=report.by_category[0].category.value,
            )
        return report

    # ── Breakdowns ───────────────────────────────────────────────────────

    def _buckets(self, scores: Sequence[RiskCategoryScore]) -> list[SeverityBucket]:
        grouped: dict[RiskLevel, list[RiskCategoryScore]] = {level: [] for level in RiskLevel}
        for score in scores:
            grouped[severity_for(score.normalized_score, self.severity_thresholds)].append(score)
        return [
            SeverityBucket(
                severity=level,
                count=len(members),
                categories=[s.category for s in members],
                contribution=math.fsum(s.contribution for s in members),
            )
            for level, members in grouped.items()
        ]

    def _timeframes(
        self,
        by_category: dict[RiskCategory, RiskCategoryScore],
        previous: Optional[RiskReport],
    ) -> list[TimeframeRisk]:
        result = []
        for timeframe, members in TIMEFRAME_CATEGORIES.items():
            values = [by_category[c].normalized_score for c in members]
            weights = [self.policy_weights[c] for c in members]
            total = math.fsum(weights)
            if total > 0:
                score = math.fsum(w * v for w, v in zip(weights, values)) / total
            else:
                score = statistics.fmean(values)

            trend = 0.0
            if previous is not None:
                try:
                    trend = score - previous.timeframe(timeframe).score
                except KeyError:
                    trend = 0.0

            result.append(TimeframeRisk(
                timeframe=timeframe,
                categories=list(members),
                score=score,
                trend=trend,
                volatility=statistics.pstdev(values),
            ))
        return result

    # ── Validation ───────────────────────────────────────────────────────

    @staticmethod
    def _validated_scores(
        scores: Sequence[RiskCategoryScore],
    ) -> dict[RiskCategory, RiskCategoryScore]:
        by_category: dict[RiskCategory, RiskCategoryScore] = {}
        for score in scores:
            if score.category in by_category:
                raise ValidationError(
                    f"Duplicate score for category {score.category.value}",
                    field="scores",
                    details={"category": score.category.value},
                )
            if not math.isfinite(score.normalized_score) or not 0.0 <= score.normalized_score <= 1.0:
                raise RangeError(
                    f"Score for {score.category.value} must be in [0, 1], got {score.normalized_score}",
                    field="normalized_score",
                    details={"category": score.category.value},
                )
            by_category[score.category] = score

        missing = [c.value for c in RiskCategory if c not in by_category]
        if missing:
            raise ValidationError(
                f"Missing scores for categories {missing}",
                field="scores",
                details={"missing": missing},
            )
        # Fixed category order from here on
        return {c: by_category[c] for c in RiskCategory}

    @staticmethod
    def _validated_thresholds(thresholds: Sequence[float]) -> tuple[float, float, float]:
        if len(thresholds) != 3:
            raise ValidationError("Severity thresholds need exactly three values", field="severity_thresholds")
        medium, high, critical = (float(t) for t in thresholds)
        if not 0.0 < medium < high < critical <= 1.0:
            raise ValidationError(
                "Severity thresholds must be strictly increasing within (0, 1]",
                field="severity_thresholds",
                details={"thresholds": [medium, high, critical]},
            )
        return medium, high, critical
