"""
Route Optimization Module

Enumerates candidate routes for an operation, scores them and picks a
recommendation plus alternatives. Ranking is deterministic: equal
composite scores keep enumeration order.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from ..config.settings import RoutingSettings
from ..core.error_handling import InsufficientLanesError, NoLanesConfiguredError, UnknownLaneError
from ..core.types import Complexity, LaneId, RiskLevel, RouteKind, lane_id
from ..monitoring.trend_analyzer import round_half_up

logger = structlog.get_logger(__name__)

EFFICIENCY_PENALTY = {Complexity.LOW: 0.0, Complexity.MEDIUM: 10.0, Complexity.HIGH: 25.0}
TIME_MULTIPLIER = {Complexity.LOW: 1.0, Complexity.MEDIUM: 1.5, Complexity.HIGH: 2.0}
COST_MULTIPLIER = {Complexity.LOW: 1.0, Complexity.MEDIUM: 1.8, Complexity.HIGH: 2.5}
RISK_PENALTY = {RiskLevel.LOW: 0.0, RiskLevel.MEDIUM: 15.0, RiskLevel.HIGH: 30.0}


@dataclass(frozen=True)
class Operation:
    """Operation descriptor; parameters are passed through untouched"""
    kind: RouteKind = RouteKind.DIRECT
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Operation":
        kind = data.get("kind", data.get("type", RouteKind.DIRECT))
        parameters = {k: v for k, v in data.items() if k not in ("kind", "type")}
        return cls(kind=RouteKind.parse(kind), parameters=parameters)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, **self.parameters}


def route_complexity(kind: RouteKind, hops: int) -> Complexity:
    if kind == RouteKind.DIRECT and hops == 1:
        return Complexity.LOW
    if hops <= 2:
        return Complexity.MEDIUM
    return Complexity.HIGH


@dataclass(frozen=True)
class Route:
    lanes: Tuple[LaneId, ...]
    kind: RouteKind
    complexity: Complexity

    def __post_init__(self):
        if not self.lanes:
            raise ValueError("a route needs at least one lane")

    @classmethod
    def build(cls, lanes: Sequence[LaneId], kind: RouteKind) -> "Route":
        lanes = tuple(lanes)
        return cls(lanes=lanes, kind=kind, complexity=route_complexity(kind, len(lanes)))

    @property
    def hops(self) -> int:
        return len(self.lanes)


@dataclass(frozen=True)
class ScoredRoute:
    route: Route
    efficiency: float
    estimated_time_sec: int
    estimated_cost: float
    risk_level: RiskLevel
    composite_score: float

    @property
    def score(self) -> float:
        """Composite score as reported (never negative)"""
        return max(0.0, self.composite_score)

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.route.kind.value,
            "chains": list(self.route.lanes),
            "hops": self.route.hops,
            "complexity": self.route.complexity.value,
            "efficiency": self.efficiency,
            "estimatedTimeSec": self.estimated_time_sec,
            "estimatedCost": f"{self.estimated_cost:.6f}",
            "riskLevel": self.risk_level.value,
            "compositeScore": self.score,
        }


@dataclass
class RouteOptimization:
    operation: Operation
    routes: List[ScoredRoute]
    recommendation: ScoredRoute
    alternatives: List[ScoredRoute]
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "operation": self.operation.to_dict(),
            "routes": [r.to_dict() for r in self.routes],
            "recommendation": self.recommendation.to_dict(),
            "alternatives": [r.to_dict() for r in self.alternatives],
            "message": self.message,
        }


class RouteOptimizer:
    """Smart routing over the configured lane set"""

    def __init__(
        self,
        lanes: Sequence[LaneId],
        settings: Optional[RoutingSettings] = None
    ):
        if not lanes:
            raise NoLanesConfiguredError()
        self.lanes: Tuple[LaneId, ...] = tuple(lanes)
        self.settings = settings or RoutingSettings()

    def _resolve_lanes(self, available: Optional[Sequence[Any]]) -> Tuple[LaneId, ...]:
        if available is None:
            return self.lanes
        requested = {lane_id(lane) for lane in available}
        for lane in requested:
            if lane not in self.lanes:
                raise UnknownLaneError(lane)
        # Configuration order keeps enumeration deterministic
        return tuple(lane for lane in self.lanes if lane in requested)

    def enumerate_routes(self, operation: Operation, lanes: Sequence[LaneId]) -> List[Route]:
        routes = [Route.build((lane,), RouteKind.DIRECT) for lane in lanes]

        if operation.kind == RouteKind.CROSS_LANE and len(lanes) >= 2:
            # Ordered pairs: source and destination matter to the caller
            for source in lanes:
                for destination in lanes:
                    if source != destination:
                        routes.append(Route.build((source, destination), RouteKind.CROSS_LANE))

        return routes

    def calculate_efficiency(self, route: Route) -> float:
        hop_penalty = (route.hops - 1) * self.settings.hop_efficiency_penalty
        efficiency = 100.0 - hop_penalty - EFFICIENCY_PENALTY[route.complexity]
        return max(self.settings.min_efficiency, efficiency)

    def estimate_time(self, route: Route) -> int:
        hop_multiplier = route.hops * self.settings.hop_time_factor
        return round_half_up(self.settings.base_time_sec * hop_multiplier * TIME_MULTIPLIER[route.complexity])

    def estimate_cost(self, route: Route) -> float:
        return round(self.settings.base_cost * route.hops * COST_MULTIPLIER[route.complexity], 6)

    def assess_risk(self, route: Route) -> RiskLevel:
        risk = RiskLevel.LOW

        def escalate(current: RiskLevel, level: RiskLevel) -> RiskLevel:
            return level if level.rank > current.rank else current

        if route.hops > 2:
            risk = escalate(risk, RiskLevel.MEDIUM)
        if route.complexity == Complexity.HIGH:
            risk = escalate(risk, RiskLevel.HIGH)
        if len(route.lanes) > 3:
            risk = escalate(risk, RiskLevel.HIGH)
        return risk

    def score_route(self, route: Route) -> ScoredRoute:
        efficiency = self.calculate_efficiency(route)
        estimated_time = self.estimate_time(route)
        estimated_cost = self.estimate_cost(route)
        risk = self.assess_risk(route)

        composite = (
            efficiency
            - estimated_time * self.settings.time_penalty_per_sec
            - estimated_cost * self.settings.cost_penalty_factor
            - RISK_PENALTY[risk]
        )

        return ScoredRoute(
            route=route,
            efficiency=efficiency,
            estimated_time_sec=estimated_time,
            estimated_cost=estimated_cost,
            risk_level=risk,
            composite_score=composite
        )

    def optimize(
        self,
        operation: Operation,
        available_lanes: Optional[Sequence[Any]] = None
    ) -> RouteOptimization:
        """Rank every candidate route for an operation

        Args:
            operation: Operation descriptor
            available_lanes: Restrict routing to these configured lanes

        Raises:
            UnknownLaneError: if ``available_lanes`` names an unconfigured lane
            InsufficientLanesError: if no lanes remain to route through
        """
        lanes = self._resolve_lanes(available_lanes)
        if not lanes:
            raise InsufficientLanesError("route optimization", 1, 0)

        message = None
        if operation.kind == RouteKind.CROSS_LANE and len(lanes) < 2:
            message = (
                f"Cross-chain routing needs at least 2 chains, {len(lanes)} available; "
                "only direct routes were considered"
            )
            logger.warning("insufficient_lanes_for_cross_lane", available=len(lanes))

        routes = self.enumerate_routes(operation, lanes)
        # sorted() is stable, so ties keep enumeration order
        ranked = sorted(
            (self.score_route(route) for route in routes),
            key=lambda scored: scored.composite_score,
            reverse=True
        )

        result = RouteOptimization(
            operation=operation,
            routes=ranked,
            recommendation=ranked[0],
            alternatives=ranked[1:1 + self.settings.max_alternatives],
            message=message
        )

        logger.info(
            "route_optimized",
            kind=operation.kind.value,
            candidates=len(ranked),
            recommended=list(result.recommendation.route.lanes),
            score=result.recommendation.score
        )
        return result
