"""
Forecast Ensemble Core.

Components:
- schemas: ForecastRecord contract and combined-forecast output types
- accuracy: accuracy report from predicted vs. realized values
- diversity: pairwise and individual disagreement between forecasters
- weights: EnsembleWeights snapshots and the performance-driven Weight Adapter
- stacking: meta-model interface for stacked combination
- combiner: weighted, majority-direction and stacking combination
- uncertainty: variance, bootstrap and conformal uncertainty
- ensemble: one full combination cycle
"""
