"""
Risk Schemas: raw inputs, per-category scores and the aggregated report.

Raw metric bundles are plain frozen dataclasses supplied by the metrics
pipeline. Everything the engine produces is a frozen pydantic model.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field


class RiskCategory(StrEnum):
    MARKET = "market"
    LIQUIDITY = "liquidity"
    CREDIT = "credit"
    OPERATIONAL = "operational"
    SYSTEMIC = "systemic"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Highest first; mitigation ordering and bucket listing rely on it
LEVEL_ORDER: tuple[RiskLevel, ...] = (
    RiskLevel.CRITICAL,
    RiskLevel.HIGH,
    RiskLevel.MEDIUM,
    RiskLevel.LOW,
)

DEFAULT_SEVERITY_THRESHOLDS: tuple[float, float, float] = (0.30, 0.60, 0.85)


def severity_for(
    score: float,
    thresholds: Sequence[float] = DEFAULT_SEVERITY_THRESHOLDS,
) -> RiskLevel:
    """Bucket a normalized score: <medium LOW, <high MEDIUM, <critical HIGH, else CRITICAL."""
    medium, high, critical = thresholds
    if score >= critical:
        return RiskLevel.CRITICAL
    if score >= high:
        return RiskLevel.HIGH
    if score >= medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class Timeframe(StrEnum):
    SHORT_TERM = "short-term"
    MEDIUM_TERM = "medium-term"
    LONG_TERM = "long-term"
    CONTINUOUS = "continuous"


# ── Raw inputs ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MarketRiskMetrics:
    var: float                    # Value-at-risk as a fraction of exposure
    expected_shortfall: float
    volatility: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class LiquidityRiskMetrics:
    bid_ask_spread: float         # Fraction of mid price
    market_depth: float           # Normalized depth, higher is deeper
    slippage: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class CreditRiskMetrics:
    counterparty_risk: float      # 0-1
    settlement_risk: float        # 0-1
    default_probability: float    # 0-1
    recovery_rate: float          # 0-1

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class OperationalRiskMetrics:
    system_risk: float
    human_risk: float
    process_risk: float
    external_risk: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SystemicRiskMetrics:
    contagion_risk: float
    liquidity_spiral: float
    fire_sales: float
    network_risk: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class RiskInputs:
    """One cycle of raw metrics for all five categories."""
    market: MarketRiskMetrics
    liquidity: LiquidityRiskMetrics
    credit: CreditRiskMetrics
    operational: OperationalRiskMetrics
    systemic: SystemicRiskMetrics


# ── Outputs ──────────────────────────────────────────────────────────────


class RiskCategoryScore(BaseModel):
    """Normalized score of one category plus its policy weight."""

    model_config = ConfigDict(frozen=True)

    category: RiskCategory
    raw_metrics: dict[str, float] = Field(default_factory=dict)
    normalized_score: float       # Range-checked by the aggregator
    weight: float = Field(ge=0.0, le=1.0)
    contribution: float           # normalized_score × weight


class TimeframeRisk(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeframe: Timeframe
    categories: list[RiskCategory]
    score: float
    trend: float = 0.0            # Change vs the previous report, 0 without one
    volatility: float = 0.0       # Population std of member scores


class SeverityBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: RiskLevel
    count: int = 0
    categories: list[RiskCategory] = Field(default_factory=list)
    contribution: float = 0.0


class Mitigation(BaseModel):
    """A suggested response to an elevated category."""

    model_config = ConfigDict(frozen=True)

    strategy: str
    category: RiskCategory
    priority: RiskLevel
    effectiveness: float = Field(ge=0.0, le=1.0)
    cost: float = Field(ge=0.0, le=1.0)          # Relative, 0-1
    timeframe: Timeframe
    description: str


class RiskReport(BaseModel):
    """
    Aggregated risk for one cycle.

    overall_score = min(1, weighted_score × (1 + correlation_adjustment)).
    """

    model_config = ConfigDict(frozen=True)

    overall_score: float = Field(ge=0.0, le=1.0)
    weighted_score: float = Field(ge=0.0, le=1.0)
    correlation_adjustment: float = Field(ge=0.0)
    severity: RiskLevel
    by_category: list[RiskCategoryScore]
    by_timeframe: list[TimeframeRisk]
    by_severity: list[SeverityBucket]
    mitigations: list[Mitigation] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def category(self, category: RiskCategory) -> RiskCategoryScore:
        for score in self.by_category:
            if score.category == category:
                return score
        raise KeyError(category)

    def timeframe(self, timeframe: Timeframe) -> TimeframeRisk:
        for risk in self.by_timeframe:
            if risk.timeframe == timeframe:
                return risk
        raise KeyError(timeframe)

    def bucket(self, severity: RiskLevel) -> SeverityBucket:
        for bucket in self.by_severity:
            if bucket.severity == severity:
                return bucket
        raise KeyError(severity)
