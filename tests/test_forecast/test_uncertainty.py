"""
Uncertainty Quantifier Tests.
"""

import pytest

from ensemblecast.errors import EmptyCalibrationSetError, ValidationError
from ensemblecast.forecast.combiner import CombinationStrategy, EnsembleCombiner
from ensemblecast.forecast.schemas import ModelKind
from ensemblecast.forecast.uncertainty import (
    CalibrationSet,
    UncertaintyMethod,
    UncertaintyQuantifier,
)


class TestVarianceUncertainty:
    def test_mean_of_model_variances(self, make_record):
        q = UncertaintyQuantifier(UncertaintyMethod.VARIANCE)
        records = [
            make_record(ModelKind.ARIMA, [1.0, 2.0, 3.0]),
            make_record(ModelKind.PROPHET, [2.0, 2.0, 2.0]),
        ]
        assert q.quantify(records) == pytest.approx((2 / 3) / 2)

    def test_flat_forecasts(self, make_record):
        q = UncertaintyQuantifier()
        records = [
            make_record(ModelKind.ARIMA, [5.0, 5.0]),
            make_record(ModelKind.LSTM, [7.0, 7.0]),
        ]
        assert q.quantify(records) == 0.0


class TestBootstrapUncertainty:
    def setup_method(self):
        self.quantifier = UncertaintyQuantifier(UncertaintyMethod.BOOTSTRAP, bootstrap_samples=100)

    def _combine_fn(self, weights):
        combiner = EnsembleCombiner(CombinationStrategy.WEIGHTED)
        return lambda sample: combiner.combine_resample(sample, weights)

    def test_deterministic(self, three_records, equal_weights):
        fn = self._combine_fn(equal_weights)
        first = self.quantifier.quantify(three_records, combine_fn=fn)
        second = self.quantifier.quantify(three_records, combine_fn=fn)
        assert first == second
        assert first > 0.0

    def test_identical_models_zero(self, make_record, equal_weights):
        records = [
            make_record(ModelKind.ARIMA, [1.0, 2.0, 3.0]),
            make_record(ModelKind.LSTM, [1.0, 2.0, 3.0]),
        ]
        result = self.quantifier.quantify(records, combine_fn=self._combine_fn(equal_weights))
        assert result == pytest.approx(0.0)

    def test_requires_combine_fn(self, three_records):
        with pytest.raises(ValidationError):
            self.quantifier.quantify(three_records)


class TestConformalUncertainty:
    def test_empty_calibration(self, three_records):
        q = UncertaintyQuantifier(UncertaintyMethod.CONFORMAL)
        with pytest.raises(EmptyCalibrationSetError):
            q.quantify(three_records, calibration=CalibrationSet())

    def test_small_set_uses_max_residual(self):
        """n=10, α=0.1 → ceil(11 × 0.9)/10 = 1.0 → largest residual."""
        calibration = CalibrationSet(residuals=tuple(float(i) for i in range(1, 11)))
        q = UncertaintyQuantifier(UncertaintyMethod.CONFORMAL, conformal_alpha=0.1)
        assert q.conformal(calibration) == 10.0

    def test_quantile_level(self):
        calibration = CalibrationSet(residuals=tuple(float(i) for i in range(1, 11)))
        q = UncertaintyQuantifier(UncertaintyMethod.CONFORMAL, conformal_alpha=0.5)
        assert q.conformal(calibration) == 7.0

    @pytest.mark.parametrize("alpha", [0.0, 1.0, -0.2])
    def test_invalid_alpha(self, alpha):
        with pytest.raises(ValidationError):
            UncertaintyQuantifier(UncertaintyMethod.CONFORMAL, conformal_alpha=alpha)


class TestCalibrationSet:
    def test_with_observations_is_new_snapshot(self):
        base = CalibrationSet()
        updated = base.with_observations([1.0, 2.0], [1.5, 1.0])
        assert updated.residuals == (0.5, 1.0)
        assert updated.version == 1
        assert base.is_empty

    def test_capacity_evicts_oldest(self):
        calibration = CalibrationSet(capacity=3)
        calibration = calibration.with_observations([0, 0, 0, 0, 0], [1, 2, 3, 4, 5])
        assert calibration.residuals == (3.0, 4.0, 5.0)
        assert len(calibration) == 3

    def test_length_mismatch(self):
        with pytest.raises(ValidationError):
            CalibrationSet().with_observations([1.0], [1.0, 2.0])

    def test_invalid_capacity(self):
        with pytest.raises(ValidationError):
            CalibrationSet(capacity=0)
