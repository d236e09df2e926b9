"""
Forecast Schema Tests.

Malformed records surface as the package's own error classes.
"""

import pytest

from ensemblecast.errors import ErrorCode, HorizonMismatchError, ValidationError
from ensemblecast.forecast.schemas import (
    ConfidenceInterval,
    ForecastRecord,
    ModelAccuracy,
    ModelKind,
)


def _accuracy() -> ModelAccuracy:
    return ModelAccuracy(mae=1.0, mse=1.0, rmse=1.0, mape=0.05, r2=0.5, directional_accuracy=0.6)


class TestForecastRecord:
    @pytest.fixture
    def good(self, make_record):
        return make_record(ModelKind.ARIMA, [1.0, 2.0, 3.0])

    def test_horizon(self, good):
        assert good.horizon == 3

    def test_short_timestamps(self, good):
        with pytest.raises(HorizonMismatchError) as exc:
            ForecastRecord(
                model=ModelKind.ARIMA,
                values=good.values,
                timestamps=good.timestamps[:2],
                confidence_intervals=good.confidence_intervals,
                accuracy=_accuracy(),
            )
        assert exc.value.code == ErrorCode.HORIZON_MISMATCH
        assert exc.value.field == "records"

    def test_short_intervals(self, good):
        with pytest.raises(HorizonMismatchError):
            ForecastRecord(
                model=ModelKind.ARIMA,
                values=good.values,
                timestamps=good.timestamps,
                confidence_intervals=good.confidence_intervals[:1],
                accuracy=_accuracy(),
            )

    def test_unordered_timestamps(self, good):
        with pytest.raises(ValidationError) as exc:
            ForecastRecord(
                model=ModelKind.ARIMA,
                values=(1.0, 2.0),
                timestamps=(good.timestamps[0], good.timestamps[0]),
                confidence_intervals=good.confidence_intervals[:2],
                accuracy=_accuracy(),
            )
        assert exc.value.field == "timestamps"


class TestConfidenceInterval:
    def test_width(self):
        assert ConfidenceInterval(lower=1.0, upper=3.5).width == 2.5

    def test_inverted(self):
        with pytest.raises(ValidationError) as exc:
            ConfidenceInterval(lower=2.0, upper=1.0)
        assert exc.value.field == "confidence_intervals"
