"""
Forecast Schemas: the contract every forecaster satisfies.

A ForecastRecord is produced once per model per analysis cycle and is never
mutated. Combination outputs are frozen dataclasses snapshotting the weights
they were computed with.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ensemblecast.errors import HorizonMismatchError, ValidationError

if TYPE_CHECKING:
    from ensemblecast.forecast.weights import EnsembleWeights

FiniteFloat = Annotated[float, Field(allow_inf_nan=False)]


class ModelKind(StrEnum):
    """Closed set of forecaster variants that may feed the ensemble."""
    ARIMA = "arima"
    PROPHET = "prophet"
    LSTM = "lstm"


class ModelAccuracy(BaseModel):
    """Backtest accuracy report attached to a forecast."""

    model_config = ConfigDict(frozen=True)

    mae: float = Field(ge=0.0, allow_inf_nan=False)
    mse: float = Field(ge=0.0, allow_inf_nan=False)
    rmse: float = Field(ge=0.0, allow_inf_nan=False)
    mape: float = Field(ge=0.0, allow_inf_nan=False, description="Fraction, not percent")
    r2: float = Field(le=1.0)
    directional_accuracy: float = Field(ge=0.0, le=1.0)


class ConfidenceInterval(BaseModel):
    """Interval around a single point forecast."""

    model_config = ConfigDict(frozen=True)

    lower: FiniteFloat
    upper: FiniteFloat
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)

    @model_validator(mode="after")
    def validate_ordered(self) -> "ConfidenceInterval":
        if self.lower > self.upper:
            raise ValidationError(
                f"lower {self.lower} exceeds upper {self.upper}",
                field="confidence_intervals",
            )
        return self

    @property
    def width(self) -> float:
        return self.upper - self.lower


class ForecastRecord(BaseModel):
    """
    Output of a single forecasting model for one cycle.

    values, timestamps and confidence_intervals share the horizon length H.
    """

    model_config = ConfigDict(frozen=True)

    model: ModelKind
    values: tuple[FiniteFloat, ...] = Field(min_length=1)
    timestamps: tuple[datetime, ...] = Field(min_length=1)
    confidence_intervals: tuple[ConfidenceInterval, ...] = Field(min_length=1)
    accuracy: ModelAccuracy

    @model_validator(mode="after")
    def validate_horizon(self) -> "ForecastRecord":
        h = len(self.values)
        if len(self.timestamps) != h or len(self.confidence_intervals) != h:
            raise HorizonMismatchError(
                f"values ({h}), timestamps ({len(self.timestamps)}) and "
                f"confidence_intervals ({len(self.confidence_intervals)}) must share one horizon"
            )
        for prev, cur in zip(self.timestamps, self.timestamps[1:]):
            if cur <= prev:
                raise ValidationError("timestamps must be strictly increasing", field="timestamps")
        return self

    @property
    def horizon(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class ModelContribution:
    """How much one model contributed to a combined forecast."""
    model: ModelKind
    weight: float
    accuracy: float          # Directional accuracy
    diversity: float         # Individual diversity (0-1)
    contribution: float      # weight × accuracy × (1 + diversity)


@dataclass(frozen=True)
class CombinedForecast:
    """
    Output of one ensemble combination.

    Immutable once produced; `weights` is the snapshot that was read.
    """
    strategy: str
    values: tuple[float, ...]
    timestamps: tuple[datetime, ...]
    confidence_intervals: tuple[ConfidenceInterval, ...]
    weights: "EnsembleWeights"
    uncertainty: float
    uncertainty_method: str
    model_contributions: tuple[ModelContribution, ...] = field(default_factory=tuple)
    aggregate_diversity: float = 0.0
    models_used: tuple[ModelKind, ...] = field(default_factory=tuple)

    @property
    def horizon(self) -> int:
        return len(self.values)

    @property
    def mean(self) -> float:
        return math.fsum(self.values) / len(self.values)

    @property
    def top_contributor(self) -> ModelKind | None:
        if not self.model_contributions:
            return None
        return self.model_contributions[0].model


def check_aligned(records: "list[ForecastRecord] | tuple[ForecastRecord, ...]") -> None:
    """
    Enforce the cross-record invariants of one ensemble call.

    All records share identical horizon and timestamps; each model appears once.
    """
    if not records:
        return
    reference = records[0]
    seen: set[ModelKind] = set()
    for record in records:
        if record.model in seen:
            raise ValidationError(
                f"Duplicate forecast record for model {record.model.value}",
                field="records",
                details={"model": record.model.value},
            )
        seen.add(record.model)
        if record.horizon != reference.horizon:
            raise HorizonMismatchError(
                f"Model {record.model.value} horizon {record.horizon} "
                f"differs from {reference.model.value} horizon {reference.horizon}",
                details={"model": record.model.value, "horizon": record.horizon},
            )
        if record.timestamps != reference.timestamps:
            raise HorizonMismatchError(
                f"Model {record.model.value} timestamps differ from {reference.model.value}",
                details={"model": record.model.value},
            )
