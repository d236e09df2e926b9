"""
Risk Aggregation Engine.

Five category calculators (market, liquidity, credit, operational, systemic)
normalize raw metrics to scores in [0, 1]. The aggregator combines them under
policy weights with a correlation adjustment, buckets them by severity and
timeframe, and attaches rule-based mitigation strategies.
"""
