"""
Monitoring Module

Metrics, logging setup and trend prediction for the intelligence engine.
"""

from .logging_setup import configure_logging
from .metrics import MetricConfig, MetricsManager
from .trend_analyzer import (
    CongestionPrediction, CostForecast, OptimalWindow, Predictions,
    TrendForecast, TrendPredictor, TrendResult, VolatilityStats,
    calculate_volatility, detect_trend, linear_prediction, predict_next_value
)

__all__ = [
    'configure_logging',
    'MetricsManager', 'MetricConfig',
    'TrendPredictor', 'TrendResult', 'TrendForecast', 'VolatilityStats',
    'CostForecast', 'CongestionPrediction', 'OptimalWindow', 'Predictions',
    'detect_trend', 'linear_prediction', 'predict_next_value', 'calculate_volatility'
]
