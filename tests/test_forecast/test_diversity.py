"""
Diversity Analyzer Tests.
"""

import pytest

from ensemblecast.errors import HorizonMismatchError, InsufficientModelsError, ValidationError
from ensemblecast.forecast.diversity import (
    DiversityAnalyzer,
    individual_diversity,
    pairwise_diversity,
)
from ensemblecast.forecast.schemas import ModelKind


class TestPairwiseDiversity:
    def test_identical_sequences(self):
        assert pairwise_diversity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == 0.0

    def test_diverging_sequences(self):
        """mean|a-b| / ((max|a| + max|b|) / 2)."""
        d = pairwise_diversity([100, 101, 102, 103], [100, 99, 98, 97])
        assert d == pytest.approx(3.0 / 101.5)

    def test_symmetric(self):
        a, b = [1.0, 5.0, 2.0], [3.0, 1.0, 4.0]
        assert pairwise_diversity(a, b) == pairwise_diversity(b, a)

    def test_zero_scale(self):
        assert pairwise_diversity([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_clamped_to_one(self):
        assert pairwise_diversity([10.0, -10.0], [-10.0, 10.0]) == 1.0


class TestIndividualDiversity:
    def test_constant_sequence(self):
        assert individual_diversity([5.0, 5.0, 5.0]) == 0.0

    def test_zero_mean_with_spread(self):
        assert individual_diversity([-1.0, 1.0]) == 1.0

    def test_normalized_variance(self):
        # var = 1.0, mean = 2.0 → 0.25
        assert individual_diversity([1.0, 3.0]) == pytest.approx(0.25)

    def test_large_values_do_not_overflow(self):
        assert individual_diversity([1e200, -1e200]) == 1.0
        assert individual_diversity([1e200, 3e200]) == pytest.approx(0.25)


class TestDiversityAnalyzer:
    def setup_method(self):
        self.analyzer = DiversityAnalyzer()

    def test_single_record_rejected(self, make_record):
        with pytest.raises(InsufficientModelsError) as exc:
            self.analyzer.analyze([make_record(ModelKind.ARIMA, [1, 2, 3])])
        assert exc.value.details["n_models"] == 1

    def test_empty_rejected(self):
        with pytest.raises(InsufficientModelsError):
            self.analyzer.analyze([])

    def test_matrix_shape(self, three_records):
        report = self.analyzer.analyze(three_records)
        assert len(report.matrix) == 3
        for i in range(3):
            assert report.matrix[i][i] == 0.0
            for j in range(3):
                assert report.matrix[i][j] == report.matrix[j][i]

    def test_aggregate_is_mean_of_pairs(self, three_records):
        report = self.analyzer.analyze(three_records)
        pairs = [report.matrix[0][1], report.matrix[0][2], report.matrix[1][2]]
        assert report.aggregate == pytest.approx(sum(pairs) / 3)

    def test_pair_lookup(self, three_records):
        report = self.analyzer.analyze(three_records)
        assert report.pair(ModelKind.ARIMA, ModelKind.PROPHET) == report.matrix[0][1]

    def test_individual_per_model(self, three_records):
        report = self.analyzer.analyze(three_records)
        assert set(report.individual) == {ModelKind.ARIMA, ModelKind.PROPHET, ModelKind.LSTM}
        assert all(0.0 <= v <= 1.0 for v in report.individual.values())

    def test_large_values(self, make_record):
        report = self.analyzer.analyze([
            make_record(ModelKind.ARIMA, [1e200, -1e200]),
            make_record(ModelKind.LSTM, [1e200, -1e200]),
        ])
        assert report.aggregate == 0.0
        assert report.individual[ModelKind.ARIMA] == 1.0

    def test_horizon_mismatch(self, make_record):
        with pytest.raises(HorizonMismatchError):
            self.analyzer.analyze([
                make_record(ModelKind.ARIMA, [1, 2, 3]),
                make_record(ModelKind.PROPHET, [1, 2]),
            ])

    def test_duplicate_model(self, make_record):
        with pytest.raises(ValidationError):
            self.analyzer.analyze([
                make_record(ModelKind.ARIMA, [1, 2, 3]),
                make_record(ModelKind.ARIMA, [1, 2, 4]),
            ])
