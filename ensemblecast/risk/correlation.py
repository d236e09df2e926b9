"""
Category Correlation Adjustment.

Non-diversifiable co-movement between risk categories inflates the weighted
score: overall = min(1, weighted × (1 + adjustment)).

Two modes:
- constant: a configured scalar (default 0.05)
- matrix: cap × Σ_{i<j} w_i w_j max(ρ_ij, 0) / Σ_{i<j} w_i w_j
  over a 5×5 category correlation matrix ordered as RiskCategory

The adjustment depends on policy weights and correlations only, never on the
category scores, so a higher score can never lower the overall score.
"""

from typing import Optional, Sequence

import numpy as np
import structlog

from ensemblecast.errors import RangeError, ValidationError
from ensemblecast.risk.schemas import RiskCategory

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_CORRELATION_ADJUSTMENT: float = 0.05
DEFAULT_CORRELATION_CAP: float = 0.10
MATRIX_TOLERANCE: float = 1e-9

CATEGORY_ORDER: tuple[RiskCategory, ...] = tuple(RiskCategory)


class CorrelationAdjuster:
    """Derive the correlation adjustment from a constant or a category matrix."""

    def __init__(
        self,
        constant: float = DEFAULT_CORRELATION_ADJUSTMENT,
        matrix: Optional[Sequence[Sequence[float]]] = None,
        cap: float = DEFAULT_CORRELATION_CAP,
    ):
        if not np.isfinite(constant) or constant < 0:
            raise RangeError(
                f"Correlation adjustment must be a non-negative number, got {constant}",
                field="correlation_adjustment",
            )
        if not np.isfinite(cap) or cap < 0:
            raise RangeError(
                f"Correlation cap must be a non-negative number, got {cap}",
                field="correlation_cap",
            )
        self.constant = constant
        self.cap = cap
        self.matrix = self._validated(matrix) if matrix is not None else None

    @property
    def mode(self) -> str:
        return "constant" if self.matrix is None else "matrix"

    def adjustment(self, weights: dict[RiskCategory, float]) -> float:
        if self.matrix is None:
            return self.constant

        w = np.array([weights.get(c, 0.0) for c in CATEGORY_ORDER], dtype=float)
        pair_weights = np.triu(np.outer(w, w), k=1)
        total = float(pair_weights.sum())
        if total <= 0:
            return 0.0
        positive = np.clip(self.matrix, 0.0, None)
        return self.cap * float((pair_weights * positive).sum()) / total

    @staticmethod
    def _validated(matrix: Sequence[Sequence[float]]) -> np.ndarray:
        n = len(CATEGORY_ORDER)
        try:
            arr = np.asarray(matrix, dtype=float)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Correlation matrix is not numeric: {e}",
                field="correlation_matrix",
            ) from e

        if arr.shape != (n, n):
            raise ValidationError(
                f"Correlation matrix must be {n}x{n}, got {arr.shape}",
                field="correlation_matrix",
                details={"shape": list(arr.shape)},
            )
        if not np.all(np.isfinite(arr)):
            raise ValidationError("Correlation matrix has non-finite entries", field="correlation_matrix")
        if np.any(arr < -1.0 - MATRIX_TOLERANCE) or np.any(arr > 1.0 + MATRIX_TOLERANCE):
            raise ValidationError("Correlation entries must lie in [-1, 1]", field="correlation_matrix")
        if not np.allclose(arr, arr.T, atol=MATRIX_TOLERANCE):
            raise ValidationError("Correlation matrix must be symmetric", field="correlation_matrix")
        if not np.allclose(np.diag(arr), 1.0, atol=MATRIX_TOLERANCE):
            raise ValidationError("Correlation matrix must have a unit diagonal", field="correlation_matrix")

        logger.debug("correlation_matrix_loaded", categories=[c.value for c in CATEGORY_ORDER])
        return arr
