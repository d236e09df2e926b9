"""
Error taxonomy.

Three families, all detected synchronously at the start of an operation:
- ValidationError: malformed or inconsistent input shapes
- InsufficientDataError: not enough models / history to compute
- RangeError: a metric or score escapes its documented bound

Nothing here is retried; retry policy belongs to the caller.
"""

from enum import Enum
from typing import Any, Dict, Optional, TypeVar

from pydantic import BaseModel

E = TypeVar("E", bound=Enum)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Stable error codes for callers that branch on failures."""

    # Validation errors (1xxx)
    VALIDATION_ERROR = "E1001"
    INVALID_WEIGHT_CONFIG = "E1002"
    HORIZON_MISMATCH = "E1003"

    # Data sufficiency errors (2xxx)
    INSUFFICIENT_DATA = "E2000"
    INSUFFICIENT_MODELS = "E2001"
    EMPTY_CALIBRATION_SET = "E2002"
    META_MODEL_NOT_FITTED = "E2003"

    # Range errors (3xxx)
    RANGE_ERROR = "E3000"
    OUT_OF_RANGE_METRIC = "E3001"


class ErrorDetail(BaseModel):
    """Serializable error information."""

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class EnsembleCastError(Exception):
    """Base exception for the ensemble and risk cores."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        """Convert to a serializable detail object."""
        return ErrorDetail(
            code=self.code.value,
            message=self.message,
            field=self.field,
            details=self.details,
        )


# ============================================================================
# VALIDATION
# ============================================================================


class ValidationError(EnsembleCastError):
    """Malformed or inconsistent input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(message=message, code=code, details=details, field=field)


class InvalidWeightConfigError(ValidationError):
    """Weight vector or adapter configuration is invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            field="weights",
            details=details,
            code=ErrorCode.INVALID_WEIGHT_CONFIG,
        )


class HorizonMismatchError(ValidationError):
    """Forecast records in one call disagree on horizon or timestamps."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            field="records",
            details=details,
            code=ErrorCode.HORIZON_MISMATCH,
        )


def coerce_choice(choices: type[E], value: Any, field: str) -> E:
    """Parse `value` into a member of the enum `choices`, or raise ValidationError."""
    try:
        return choices(value)
    except ValueError:
        allowed = [c.value for c in choices]
        raise ValidationError(
            f"Unknown {field} {value!r}; expected one of {allowed}",
            field=field,
            details={"value": str(value), "allowed": allowed},
        ) from None


# ============================================================================
# DATA SUFFICIENCY
# ============================================================================


class InsufficientDataError(EnsembleCastError):
    """Not enough input to compute a result."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.INSUFFICIENT_DATA,
    ):
        super().__init__(message=message, code=code, details=details)


class InsufficientModelsError(InsufficientDataError):
    """Fewer forecast records than the operation needs."""

    def __init__(self, n_models: int, required: int = 2):
        super().__init__(
            message=f"At least {required} forecast records required, got {n_models}",
            details={"n_models": n_models, "required": required},
            code=ErrorCode.INSUFFICIENT_MODELS,
        )


class EmptyCalibrationSetError(InsufficientDataError):
    """Conformal uncertainty requested before any residual was recorded."""

    def __init__(self):
        super().__init__(
            message="Calibration set is empty; record outcomes or use variance uncertainty",
            code=ErrorCode.EMPTY_CALIBRATION_SET,
        )


class MetaModelNotFittedError(InsufficientDataError):
    """Stacking requested without a fitted meta-model."""

    def __init__(self):
        super().__init__(
            message="Stacking combination requires a fitted meta-model",
            code=ErrorCode.META_MODEL_NOT_FITTED,
        )


# ============================================================================
# RANGE
# ============================================================================


class RangeError(EnsembleCastError):
    """A value escaped its documented bound."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.RANGE_ERROR,
    ):
        super().__init__(message=message, code=code, details=details, field=field)


class OutOfRangeMetricError(RangeError):
    """A raw risk metric is negative, or a probability exceeds 1."""

    def __init__(self, metric: str, value: float, bound: str):
        super().__init__(
            message=f"Metric {metric}={value} violates bound {bound}",
            field=metric,
            details={"metric": metric, "value": value, "bound": bound},
            code=ErrorCode.OUT_OF_RANGE_METRIC,
        )
