"""
Core types, interfaces and error handling for the intelligence engine
"""

from .error_handling import (
    DegenerateSeriesError, ErrorContext, ErrorHandler, ErrorSeverity,
    InsufficientLanesError, IntelligenceError, InvalidMetricError,
    MissingMetricError, NoLanesConfiguredError, UnknownLaneError
)
from .interfaces import MetricsProvider, PriceProvider, StaticMetricsProvider
from .types import (
    CompetitivenessRating, Complexity, FleetSnapshot, HealthRating,
    HistoricalSample, LaneId, LaneSample, LaneStatus, MetricsSnapshot,
    Priority, RebalanceDirection, Recommendation, RecommendationType,
    RiskLevel, RouteKind, TrendDirection, VolatilityLevel, WindowRating,
    lane_id
)

__all__ = [
    # Errors
    'IntelligenceError', 'NoLanesConfiguredError', 'InsufficientLanesError',
    'MissingMetricError', 'InvalidMetricError', 'DegenerateSeriesError',
    'UnknownLaneError', 'ErrorHandler', 'ErrorContext', 'ErrorSeverity',

    # Providers
    'MetricsProvider', 'PriceProvider', 'StaticMetricsProvider',

    # Types
    'LaneId', 'lane_id', 'MetricsSnapshot', 'FleetSnapshot', 'LaneSample',
    'HistoricalSample', 'Recommendation', 'LaneStatus', 'Priority',
    'RiskLevel', 'Complexity', 'RouteKind', 'TrendDirection',
    'RebalanceDirection', 'CompetitivenessRating', 'VolatilityLevel',
    'HealthRating', 'WindowRating', 'RecommendationType'
]
