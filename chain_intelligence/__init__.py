"""
Chain Intelligence

Routing and decision support across interchangeable execution lanes:
lane performance scoring, route optimization, load balancing, cost
comparison, arbitrage detection and trend forecasting.
"""

from .analysis import (
    ArbitrageDetector, ArbitrageScan, CostAnalysis, CostAnalyzer, LoadBalancer,
    LoadBalancingPlan, Operation, PerformanceAnalysis, PerformanceAnalyzer,
    RouteOptimization, RouteOptimizer
)
from .config import IntelligenceSettings, load_lane_set
from .core import (
    FleetSnapshot, HistoricalSample, InsufficientLanesError, IntelligenceError,
    LaneId, MetricsProvider, MetricsSnapshot, MissingMetricError,
    NoLanesConfiguredError, PriceProvider, Recommendation, RouteKind,
    StaticMetricsProvider, UnknownLaneError, lane_id
)
from .engine import ChainIntelligence, IntelligenceReport, IntelligenceService
from .monitoring import Predictions, TrendPredictor, configure_logging

__version__ = "1.0.0"

__all__ = [
    'ChainIntelligence', 'IntelligenceService', 'IntelligenceReport',
    'IntelligenceSettings', 'load_lane_set', 'configure_logging',
    'PerformanceAnalyzer', 'PerformanceAnalysis',
    'CostAnalyzer', 'CostAnalysis',
    'RouteOptimizer', 'RouteOptimization', 'Operation', 'RouteKind',
    'LoadBalancer', 'LoadBalancingPlan',
    'ArbitrageDetector', 'ArbitrageScan',
    'TrendPredictor', 'Predictions',
    'LaneId', 'lane_id', 'MetricsSnapshot', 'FleetSnapshot', 'HistoricalSample',
    'Recommendation', 'MetricsProvider', 'PriceProvider', 'StaticMetricsProvider',
    'IntelligenceError', 'NoLanesConfiguredError', 'InsufficientLanesError',
    'MissingMetricError', 'UnknownLaneError'
]
