"""
Ensemble Engine Tests: one full combination cycle.
"""

import pytest
from structlog.testing import capture_logs

from ensemblecast.config import Settings
from ensemblecast.errors import InsufficientModelsError, InvalidWeightConfigError
from ensemblecast.forecast.combiner import CombinationStrategy, EnsembleCombiner
from ensemblecast.forecast.ensemble import EnsembleEngine
from ensemblecast.forecast.schemas import ModelKind
from ensemblecast.forecast.uncertainty import (
    CalibrationSet,
    UncertaintyMethod,
    UncertaintyQuantifier,
)
from ensemblecast.forecast.weights import WeightAdapter


class FailingAdapter(WeightAdapter):
    def update(self, records, current):
        raise InvalidWeightConfigError("adaptation unavailable")


class TestEnsembleCombine:
    def setup_method(self):
        self.engine = EnsembleEngine()

    def test_combined_forecast(self, three_records, equal_weights):
        forecast = self.engine.combine(three_records, equal_weights)
        assert forecast.strategy == "weighted"
        assert forecast.horizon == 4
        assert forecast.values == pytest.approx((100.0, 100.6667, 101.3333, 102.0), abs=1e-4)
        assert forecast.timestamps == three_records[0].timestamps
        assert forecast.weights is equal_weights
        assert forecast.models_used == (ModelKind.ARIMA, ModelKind.PROPHET, ModelKind.LSTM)
        assert forecast.uncertainty >= 0.0
        assert forecast.uncertainty_method == "variance"

    def test_contributions_sorted(self, make_record, equal_weights):
        records = [
            make_record(ModelKind.ARIMA, [10.0, 11.0, 12.0], directional_accuracy=0.9),
            make_record(ModelKind.PROPHET, [10.0, 10.5, 11.0], directional_accuracy=0.2),
            make_record(ModelKind.LSTM, [10.0, 11.5, 12.5], directional_accuracy=0.5),
        ]
        forecast = self.engine.combine(records, equal_weights)
        contributions = [c.contribution for c in forecast.model_contributions]
        assert contributions == sorted(contributions, reverse=True)
        assert forecast.top_contributor == ModelKind.ARIMA

    def test_contribution_formula(self, three_records, equal_weights):
        forecast = self.engine.combine(three_records, equal_weights)
        for c in forecast.model_contributions:
            assert c.contribution == pytest.approx(c.weight * c.accuracy * (1 + c.diversity))

    def test_single_record_rejected(self, three_records, equal_weights):
        with pytest.raises(InsufficientModelsError):
            self.engine.combine(three_records[:1], equal_weights)

    def test_inputs_untouched(self, three_records, equal_weights):
        before = equal_weights.values
        self.engine.combine(three_records, equal_weights)
        assert equal_weights.values == before
        assert equal_weights.version == 0

    def test_high_disagreement_logged(self, make_record, equal_weights):
        engine = EnsembleEngine(high_disagreement_threshold=0.1)
        records = [
            make_record(ModelKind.ARIMA, [1.0, 2.0]),
            make_record(ModelKind.LSTM, [5.0, 9.0]),
        ]
        with capture_logs() as logs:
            engine.combine(records, equal_weights)
        assert any(e["event"] == "ensemble_high_disagreement" for e in logs)


class TestUncertaintyFallback:
    def test_conformal_without_history_uses_variance(self, three_records, equal_weights):
        engine = EnsembleEngine(quantifier=UncertaintyQuantifier(UncertaintyMethod.CONFORMAL))
        with capture_logs() as logs:
            forecast = engine.combine(three_records, equal_weights)
        assert forecast.uncertainty_method == "variance"
        assert any(e["event"] == "conformal_calibration_empty" for e in logs)

    def test_conformal_with_history(self, three_records, equal_weights):
        engine = EnsembleEngine(quantifier=UncertaintyQuantifier(UncertaintyMethod.CONFORMAL))
        calibration = CalibrationSet(residuals=(0.5, 1.0, 1.5))
        forecast = engine.combine(three_records, equal_weights, calibration=calibration)
        assert forecast.uncertainty_method == "conformal"
        assert forecast.uncertainty == 1.5

    def test_bootstrap(self, three_records, equal_weights):
        engine = EnsembleEngine(quantifier=UncertaintyQuantifier(UncertaintyMethod.BOOTSTRAP, bootstrap_samples=50))
        forecast = engine.combine(three_records, equal_weights)
        assert forecast.uncertainty_method == "bootstrap"
        assert forecast.uncertainty > 0.0


class TestModelSelection:
    def test_low_confidence_dropped(self, make_record, equal_weights):
        engine = EnsembleEngine(use_model_selection=True, confidence_threshold=0.5)
        records = [
            make_record(ModelKind.ARIMA, [1.0, 2.0], directional_accuracy=0.9),
            make_record(ModelKind.PROPHET, [1.0, 0.5], directional_accuracy=0.1, r2=0.0),
            make_record(ModelKind.LSTM, [1.0, 1.5], directional_accuracy=0.6),
        ]
        forecast = engine.combine(records, equal_weights)
        assert forecast.models_used == (ModelKind.ARIMA, ModelKind.LSTM)

    def test_never_below_two(self, make_record, equal_weights):
        engine = EnsembleEngine(use_model_selection=True, confidence_threshold=0.99)
        records = [
            make_record(ModelKind.ARIMA, [1.0, 2.0], directional_accuracy=0.9),
            make_record(ModelKind.PROPHET, [1.0, 0.5], directional_accuracy=0.1, r2=0.0),
            make_record(ModelKind.LSTM, [1.0, 1.5], directional_accuracy=0.6),
        ]
        selected = engine.select_models(records)
        assert [r.model for r in selected] == [ModelKind.ARIMA, ModelKind.LSTM]

    def test_disabled_keeps_all(self, three_records):
        engine = EnsembleEngine(use_model_selection=False, confidence_threshold=0.99)
        assert len(engine.select_models(three_records)) == 3


class TestRunCycle:
    def test_weights_adapted_after_combination(self, three_records, equal_weights):
        engine = EnsembleEngine()
        cycle = engine.run_cycle(three_records, equal_weights)
        assert cycle.weights_adapted
        assert cycle.weights.version == 1
        assert cycle.forecast.weights is equal_weights
        assert sum(cycle.weights.values) == pytest.approx(1.0)

    def test_adaptation_failure_absorbed(self, three_records, equal_weights):
        engine = EnsembleEngine(adapter=FailingAdapter())
        with capture_logs() as logs:
            cycle = engine.run_cycle(three_records, equal_weights)
        assert not cycle.weights_adapted
        assert cycle.weights is equal_weights
        assert cycle.forecast.values
        failures = [e for e in logs if e["event"] == "ensemble_weight_update_failed"]
        assert failures and failures[0]["log_level"] == "warning"

    def test_static_weights(self, three_records, equal_weights):
        engine = EnsembleEngine(use_dynamic_weights=False)
        cycle = engine.run_cycle(three_records, equal_weights)
        assert cycle.weights is equal_weights
        assert not cycle.weights_adapted


class TestRecordOutcome:
    def test_calibration_grows(self, three_records, equal_weights):
        engine = EnsembleEngine()
        forecast = engine.combine(three_records, equal_weights)
        calibration = engine.record_outcome(CalibrationSet(), forecast, [100.0, 101.0, 101.0, 103.0])
        assert len(calibration) == forecast.horizon
        assert calibration.version == 1


class TestFromSettings:
    def test_strategy_and_method(self):
        s = Settings(ENSEMBLE_STRATEGY="majority", UNCERTAINTY_METHOD="bootstrap", ENSEMBLE_ADAPTATION_RATE=0.3)
        engine = EnsembleEngine.from_settings(s)
        assert engine.strategy == CombinationStrategy.MAJORITY
        assert engine.quantifier.method == UncertaintyMethod.BOOTSTRAP
        assert engine.adapter.adaptation_rate == 0.3

    def test_injected_combiner(self):
        engine = EnsembleEngine(combiner=EnsembleCombiner(CombinationStrategy.STACKING))
        assert engine.strategy == CombinationStrategy.STACKING

    def test_starting_state_from_settings(self):
        s = Settings(ENSEMBLE_MIN_WEIGHT=0.1, ENSEMBLE_MAX_WEIGHT=0.5, UNCERTAINTY_CALIBRATION_CAPACITY=10)
        engine = EnsembleEngine.from_settings(s)
        weights = engine.initial_weights([ModelKind.ARIMA, ModelKind.PROPHET, ModelKind.LSTM])
        assert (weights.min_weight, weights.max_weight) == (0.1, 0.5)
        assert weights.version == 0
        assert engine.empty_calibration().capacity == 10
