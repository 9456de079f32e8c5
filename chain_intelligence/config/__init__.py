"""
Configuration Management

Settings, environment loading and input validation for the engine.
"""

from .environment import EnvironmentManager
from .settings import (
    ArbitrageSettings, CostSettings, IntelligenceSettings,
    LoadBalancingSettings, PerformanceSettings, ReportSettings,
    RoutingSettings, TrendSettings
)
from .validators import (
    load_lane_set, parse_snapshot_document, validate_lane_set,
    validate_price_document, validate_snapshot_document
)

__all__ = [
    'EnvironmentManager',
    'IntelligenceSettings', 'PerformanceSettings', 'CostSettings',
    'RoutingSettings', 'LoadBalancingSettings', 'ArbitrageSettings',
    'TrendSettings', 'ReportSettings',
    'validate_lane_set', 'validate_snapshot_document',
    'validate_price_document', 'parse_snapshot_document', 'load_lane_set'
]
