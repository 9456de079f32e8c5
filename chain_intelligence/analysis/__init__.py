"""
Analysis Module

Performance scoring, cost comparison, route optimization, load
balancing and arbitrage detection over a fleet snapshot.
"""

from .arbitrage import ArbitrageDetector, ArbitrageOpportunity, ArbitrageScan, MarketConditions
from .costs import CostAnalysis, CostAnalyzer, CostPatterns, LaneCosts, SavingsSummary
from .load_balancing import LoadBalancer, LoadBalancingPlan, RebalanceAction
from .performance import LaneScore, PerformanceAnalysis, PerformanceAnalyzer
from .routing import Operation, Route, RouteOptimization, RouteOptimizer, ScoredRoute

__all__ = [
    'PerformanceAnalyzer', 'PerformanceAnalysis', 'LaneScore',
    'CostAnalyzer', 'CostAnalysis', 'LaneCosts', 'CostPatterns', 'SavingsSummary',
    'RouteOptimizer', 'RouteOptimization', 'Route', 'ScoredRoute', 'Operation',
    'LoadBalancer', 'LoadBalancingPlan', 'RebalanceAction',
    'ArbitrageDetector', 'ArbitrageScan', 'ArbitrageOpportunity', 'MarketConditions'
]
