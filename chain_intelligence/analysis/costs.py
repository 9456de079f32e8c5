"""
Cost Analysis Module

Comparative gas cost analysis across lanes:
- Per-operation cost estimates
- Competitiveness against the fleet average
- Price spread, volatility and trend
- Potential savings from routing through the cheapest lane
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import structlog

from ..config.settings import CostSettings, TrendSettings
from ..core.error_handling import InsufficientLanesError
from ..core.types import (
    CompetitivenessRating, FleetSnapshot, LaneId, Priority, Recommendation,
    RecommendationType
)
from ..monitoring.metrics import MetricsManager
from ..monitoring.trend_analyzer import (
    TrendResult, VolatilityStats, calculate_volatility, detect_trend, round_half_up
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Competitiveness:
    score: int
    raw_score: float
    rating: CompetitivenessRating

    def to_dict(self) -> Dict[str, object]:
        return {"score": self.score, "rating": self.rating.value}


@dataclass(frozen=True)
class LaneCosts:
    lane_id: LaneId
    gas_price: float
    avg_transaction_cost: float
    deployment_cost: float
    token_transfer_cost: float
    contract_call_cost: float
    competitiveness: Competitiveness

    def to_dict(self) -> Dict[str, object]:
        return {
            "gasPrice": self.gas_price,
            "avgTransactionCost": self.avg_transaction_cost,
            "deploymentCost": self.deployment_cost,
            "tokenTransferCost": self.token_transfer_cost,
            "contractCallCost": self.contract_call_cost,
            "competitiveness": self.competitiveness.to_dict(),
        }


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float
    spread_percent: float

    def to_dict(self) -> Dict[str, object]:
        return {"min": self.min, "max": self.max, "spreadPercent": self.spread_percent}


@dataclass(frozen=True)
class CostPatterns:
    price_range: PriceRange
    volatility: VolatilityStats
    trend: TrendResult

    def to_dict(self) -> Dict[str, object]:
        return {
            "priceRange": self.price_range.to_dict(),
            "volatility": self.volatility.to_dict(),
            "trend": self.trend.to_dict(),
        }


@dataclass
class SavingsSummary:
    potential: float
    cheapest_lane: LaneId
    reduction_percent: float
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "potential": self.potential,
            "cheapestLane": self.cheapest_lane,
            "reductionPercent": self.reduction_percent,
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


@dataclass
class CostAnalysis:
    timestamp: datetime
    lanes: Dict[LaneId, LaneCosts]
    patterns: CostPatterns
    savings: SavingsSummary

    @property
    def recommendations(self) -> List[Recommendation]:
        return self.savings.recommendations

    def to_dict(self) -> Dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "lanes": {lane: costs.to_dict() for lane, costs in self.lanes.items()},
            "patterns": self.patterns.to_dict(),
            "savings": self.savings.to_dict(),
        }


class CostAnalyzer:
    """Gas cost comparison across lanes"""

    def __init__(
        self,
        settings: Optional[CostSettings] = None,
        trend_settings: Optional[TrendSettings] = None,
        metrics: Optional[MetricsManager] = None
    ):
        self.settings = settings or CostSettings()
        self.trend_settings = trend_settings or TrendSettings()
        self.metrics = metrics

    def rate_competitiveness(self, gas_price: float, average: float) -> Competitiveness:
        """Percentage below the fleet average gas price; positive is cheaper"""
        raw = (average - gas_price) / average * 100
        # Identical prices leave float residue around zero
        if np.isclose(raw, 0.0):
            raw = 0.0

        if raw > self.settings.excellent_above:
            rating = CompetitivenessRating.EXCELLENT
        elif raw > self.settings.good_above:
            rating = CompetitivenessRating.GOOD
        elif raw > self.settings.average_above:
            rating = CompetitivenessRating.AVERAGE
        else:
            rating = CompetitivenessRating.EXPENSIVE

        return Competitiveness(score=round_half_up(raw), raw_score=raw, rating=rating)

    def estimate_lane_costs(self, lane: LaneId, gas_price: float, average: float) -> LaneCosts:
        return LaneCosts(
            lane_id=lane,
            gas_price=gas_price,
            avg_transaction_cost=gas_price * self.settings.transaction_gas,
            deployment_cost=gas_price * self.settings.deployment_gas,
            token_transfer_cost=gas_price * self.settings.token_transfer_gas,
            contract_call_cost=gas_price * self.settings.contract_call_gas,
            competitiveness=self.rate_competitiveness(gas_price, average)
        )

    def analyze(self, snapshot: FleetSnapshot) -> CostAnalysis:
        """Analyze gas costs for every lane with complete metrics

        Raises:
            InsufficientLanesError: if no lane has complete metrics
        """
        lanes = snapshot.scored_lanes
        if not lanes:
            raise InsufficientLanesError("cost analysis", 1, 0)

        prices = [snapshot.metrics[lane].gas_price for lane in lanes]
        average = sum(prices) / len(prices)

        lane_costs: Dict[LaneId, LaneCosts] = {}
        for lane, price in zip(lanes, prices):
            lane_costs[lane] = self.estimate_lane_costs(lane, price, average)
            if self.metrics is not None:
                self.metrics.set_gauge("lane_gas_price", price, lane=lane)

        analysis = CostAnalysis(
            timestamp=snapshot.captured_at,
            lanes=lane_costs,
            patterns=self.analyze_cost_patterns(prices),
            savings=self.calculate_potential_savings(lane_costs)
        )

        logger.info(
            "costs_analyzed",
            lanes=len(lane_costs),
            cheapest=analysis.savings.cheapest_lane,
            potential_savings=analysis.savings.potential,
            volatility=analysis.patterns.volatility.level.value
        )
        return analysis

    def analyze_cost_patterns(self, prices: List[float]) -> CostPatterns:
        cheapest = min(prices)
        most_expensive = max(prices)

        return CostPatterns(
            price_range=PriceRange(
                min=cheapest,
                max=most_expensive,
                spread_percent=round((most_expensive - cheapest) / cheapest * 100, 2)
            ),
            volatility=calculate_volatility(
                prices,
                self.trend_settings.volatility_medium,
                self.trend_settings.volatility_high
            ),
            trend=detect_trend(prices, self.trend_settings.change_threshold_pct)
        )

    def calculate_potential_savings(self, lane_costs: Dict[LaneId, LaneCosts]) -> SavingsSummary:
        """Savings per transaction if every lane's traffic used the cheapest lane"""
        costs = list(lane_costs.values())
        # min() keeps the first lane on ties
        cheapest = min(costs, key=lambda c: c.gas_price)

        total = sum(
            max(0.0, c.avg_transaction_cost - cheapest.avg_transaction_cost)
            for c in costs if c.lane_id != cheapest.lane_id
        )
        reference = costs[0].avg_transaction_cost
        reduction = total / reference * 100 if reference else 0.0
        unit = self.settings.cost_unit

        recommendation = Recommendation(
            type=RecommendationType.COST,
            priority=Priority.MEDIUM,
            title="Cost Optimization",
            description=f"Chain {cheapest.lane_id} has the lowest gas price ({cheapest.gas_price:.8g})",
            action=f"Route transactions through Chain {cheapest.lane_id}",
            impact=f"Save {total:.6f} {unit} per transaction, up to {reduction:.1f}% cost reduction"
        )

        return SavingsSummary(
            potential=total,
            cheapest_lane=cheapest.lane_id,
            reduction_percent=round(reduction, 1),
            recommendations=[recommendation]
        )
