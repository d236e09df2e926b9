"""
EnsembleCast: forecast ensemble combination and risk aggregation.

Architecture:
    ensemblecast/
    ├── forecast/        # Ensemble core (diversity, weights, combiner, uncertainty)
    ├── risk/            # Risk core (category calculators, aggregator, mitigations)
    ├── service.py       # Public entry points: combine / update_weights / aggregate_risk
    ├── config.py        # Environment-driven settings
    ├── errors.py        # Error taxonomy
    └── logging_config.py

Module Boundaries:
    - Forecasters are EXTERNAL: they hand us ForecastRecords and we never fit them
    - Metrics pipelines are EXTERNAL: they hand us raw risk metrics
    - Shared state (weights, calibration residuals) is passed in and returned
      as immutable snapshots; nothing here is a singleton

Data Flow:
    ForecastRecords → Diversity → Weights → Combiner → Uncertainty → CombinedForecast
    Raw metrics → Category calculators → Aggregator → Mitigations → RiskReport

Version: 1.0.0
"""

__version__ = "1.0.0"
