"""
Accuracy Calculator: forecast vs. realized values.

Produces the ModelAccuracy report every ForecastRecord carries, so that
forecasters can score their own backtests the same way:
- MAE / MSE / RMSE
- MAPE (fraction, over non-zero realized values)
- R² (coefficient of determination)
- Directional accuracy (same sign of step-to-step move)
"""

import math
from typing import Sequence

from ensemblecast.errors import ValidationError
from ensemblecast.forecast.schemas import ModelAccuracy


def evaluate_accuracy(
    predicted: Sequence[float],
    realized: Sequence[float],
) -> ModelAccuracy:
    """
    Score a forecast against what actually happened.

    Args:
        predicted: Point forecasts, one per step
        realized: Realized values for the same steps
    """
    n = len(predicted)
    if n == 0 or n != len(realized):
        raise ValidationError(
            f"predicted ({n}) and realized ({len(realized)}) must be non-empty and equal length",
            field="realized",
        )

    errors = [p - a for p, a in zip(predicted, realized)]
    mae = math.fsum(abs(e) for e in errors) / n
    mse = math.fsum(e * e for e in errors) / n
    rmse = math.sqrt(mse)

    pct_errors = [abs(e) / abs(a) for e, a in zip(errors, realized) if a != 0]
    mape = math.fsum(pct_errors) / len(pct_errors) if pct_errors else 0.0

    mean_realized = math.fsum(realized) / n
    deviations = [a - mean_realized for a in realized]
    ss_tot = math.fsum(d * d for d in deviations)
    ss_res = math.fsum(e * e for e in errors)
    r2 = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    directional = _directional_accuracy(predicted, realized)

    return ModelAccuracy(
        mae=mae,
        mse=mse,
        rmse=rmse,
        mape=mape,
        r2=min(1.0, r2),
        directional_accuracy=directional,
    )


def _directional_accuracy(predicted: Sequence[float], realized: Sequence[float]) -> float:
    if len(predicted) < 2:
        return 1.0
    hits = 0
    steps = len(predicted) - 1
    for t in range(1, len(predicted)):
        pred_move = _sign(predicted[t] - predicted[t - 1])
        real_move = _sign(realized[t] - realized[t - 1])
        if pred_move == real_move:
            hits += 1
    return hits / steps


def _sign(x: float) -> int:
    if x > 0:
        return 1
    if x < 0:
        return -1
    return 0
