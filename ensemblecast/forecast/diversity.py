"""
Model Diversity Analyzer.

Measures how much forecasters disagree. A diverse ensemble is worth more
than three copies of the same opinion, so diversity feeds both weight
adaptation and contribution scoring.

- Pairwise: normalized mean absolute difference between two value sequences
- Aggregate: mean over all unordered pairs
- Individual: normalized variance of one model's own sequence
"""

import math
from dataclasses import dataclass
from typing import Sequence

import structlog

from ensemblecast.errors import InsufficientModelsError
from ensemblecast.forecast.schemas import ForecastRecord, ModelKind, check_aligned

logger = structlog.get_logger(__name__)

MIN_MODELS: int = 2


@dataclass(frozen=True)
class DiversityReport:
    """Disagreement between the forecasters of one cycle."""
    models: tuple[ModelKind, ...]
    aggregate: float                              # Mean pairwise diversity (0-1)
    matrix: tuple[tuple[float, ...], ...]         # Symmetric, zero diagonal
    individual: dict[ModelKind, float]            # Per-model normalized variance (0-1)

    def pair(self, a: ModelKind, b: ModelKind) -> float:
        """Diversity between two models of this report."""
        return self.matrix[self.models.index(a)][self.models.index(b)]


def pairwise_diversity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Normalized mean absolute difference between two sequences.

    mean|a_t - b_t| / ((max|a| + max|b|) / 2), clamped to [0, 1].
    """
    mean_abs_diff = math.fsum(abs(x - y) for x, y in zip(a, b)) / len(a)
    scale = (max(abs(x) for x in a) + max(abs(y) for y in b)) / 2
    if scale <= 0:
        return 0.0
    return min(1.0, max(0.0, mean_abs_diff / scale))


def individual_diversity(values: Sequence[float]) -> float:
    """Variance over squared mean, clamped to [0, 1]."""
    n = len(values)
    mean = math.fsum(values) / n
    if mean == 0:
        return 0.0 if all(v == 0 for v in values) else 1.0
    # Scale by the mean before squaring so large values cannot overflow
    ratios = [(v - mean) / mean for v in values]
    return min(1.0, math.fsum(r * r for r in ratios) / n)


class DiversityAnalyzer:
    """Pure diversity computations over one set of aligned forecasts."""

    def __init__(self, min_models: int = MIN_MODELS):
        self.min_models = min_models

    def analyze(self, records: Sequence[ForecastRecord]) -> DiversityReport:
        """
        Compute pairwise, aggregate and individual diversity.

        Raises:
            InsufficientModelsError: fewer than two records
            HorizonMismatchError: records disagree on horizon or timestamps
        """
        if len(records) < self.min_models:
            raise InsufficientModelsError(len(records), self.min_models)
        check_aligned(records)

        n = len(records)
        matrix = [[0.0] * n for _ in range(n)]
        total = 0.0
        pairs = 0
        for i in range(n):
            for j in range(i + 1, n):
                d = pairwise_diversity(records[i].values, records[j].values)
                matrix[i][j] = d
                matrix[j][i] = d
                total += d
                pairs += 1

        aggregate = total / pairs
        individual = {r.model: individual_diversity(r.values) for r in records}

        logger.debug(
            "diversity_analyzed",
            n_models=n,
            aggregate=round(aggregate, 4),
        )

        return DiversityReport(
            models=tuple(r.model for r in records),
            aggregate=aggregate,
            matrix=tuple(tuple(row) for row in matrix),
            individual=individual,
        )
