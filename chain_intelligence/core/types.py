"""
Chain intelligence type definitions

Value types shared by the analyzers, the route optimizer and the report
builder:
- Lane identifiers and per-tick metrics snapshots
- Closed enumerations for status, priority, risk and trend direction
- Historical samples consumed by the trend predictor
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, NewType, Optional, Tuple

from .error_handling import InvalidMetricError, MissingMetricError

LaneId = NewType("LaneId", str)


def lane_id(value: Any) -> LaneId:
    """Normalize a provider lane identifier (chain numbers included)"""
    return LaneId(str(value))


class LaneStatus(str, Enum):
    """Health status of a single lane"""
    OPTIMAL = "optimal"
    SLOW = "slow"
    CONGESTED = "congested"
    DEGRADED = "degraded"


class Priority(str, Enum):
    """Recommendation and rebalance priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RouteKind(str, Enum):
    """Operation / route kind"""
    DIRECT = "direct"
    CROSS_LANE = "cross-lane"

    @classmethod
    def parse(cls, value: Any) -> "RouteKind":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "direct":
            return cls.DIRECT
        # Dashboards send "cross-chain"
        if text in ("cross-lane", "cross-chain", "cross_lane", "cross_chain"):
            return cls.CROSS_LANE
        raise ValueError(f"Unknown route kind: {value!r}")


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RebalanceDirection(str, Enum):
    INCREASE = "increase"
    REDUCE = "reduce"


class CompetitivenessRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    EXPENSIVE = "expensive"


class VolatilityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HealthRating(str, Enum):
    """Overall fleet health label"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class WindowRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"


class RecommendationType(str, Enum):
    PERFORMANCE = "performance"
    LOAD_BALANCING = "load-balancing"
    COST = "cost"
    DATA_QUALITY = "data-quality"
    DEGRADED_ANALYSIS = "degraded-analysis"


# Provider payloads use camelCase names; both spellings are accepted
METRIC_FIELDS: Dict[str, Tuple[str, ...]] = {
    "response_time_ms": ("response_time_ms", "responseTimeMs", "responseTime"),
    "throughput_ops_per_sec": ("throughput_ops_per_sec", "throughputOpsPerSec", "throughput"),
    "gas_price": ("gas_price", "gasPrice"),
    "load_pct": ("load_pct", "loadPct", "load"),
    "uptime_pct": ("uptime_pct", "uptimePct", "uptime"),
}


def _extract_fields(
    data: Mapping[str, Any],
    names: Iterable[str]
) -> Tuple[Dict[str, float], Tuple[str, ...]]:
    values: Dict[str, float] = {}
    missing = []
    for name in names:
        raw = None
        for alias in METRIC_FIELDS[name]:
            if data.get(alias) is not None:
                raw = data[alias]
                break
        if raw is None:
            missing.append(name)
            continue
        try:
            values[name] = float(raw)
        except (TypeError, ValueError):
            missing.append(name)
    return values, tuple(missing)


def _check_range(lane: LaneId, name: str, value: float, low: float, high: Optional[float],
                 low_inclusive: bool = True) -> None:
    if math.isnan(value):
        raise InvalidMetricError(lane, name, value)
    too_low = value < low if low_inclusive else value <= low
    if too_low or (high is not None and value > high):
        raise InvalidMetricError(lane, name, value)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Metrics for one lane captured at one sampling tick"""
    lane_id: LaneId
    response_time_ms: float
    throughput_ops_per_sec: float
    gas_price: float
    load_pct: float
    uptime_pct: float

    def __post_init__(self):
        _check_range(self.lane_id, "response_time_ms", self.response_time_ms, 0, None)
        _check_range(self.lane_id, "throughput_ops_per_sec", self.throughput_ops_per_sec, 0, None)
        _check_range(self.lane_id, "gas_price", self.gas_price, 0, None, low_inclusive=False)
        _check_range(self.lane_id, "load_pct", self.load_pct, 0, 100)
        _check_range(self.lane_id, "uptime_pct", self.uptime_pct, 0, 100)

    @classmethod
    def from_dict(cls, lane: Any, data: Mapping[str, Any]) -> "MetricsSnapshot":
        """Build a snapshot from a provider payload

        Raises:
            MissingMetricError: if any required metric is absent
            InvalidMetricError: if a metric is outside its valid range
        """
        lane = lane_id(data.get("laneId", lane))
        values, missing = _extract_fields(data, METRIC_FIELDS)
        if missing:
            raise MissingMetricError(lane, missing)
        return cls(lane_id=lane, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "laneId": self.lane_id,
            "responseTimeMs": self.response_time_ms,
            "throughputOpsPerSec": self.throughput_ops_per_sec,
            "gasPrice": self.gas_price,
            "loadPct": self.load_pct,
            "uptimePct": self.uptime_pct,
        }


@dataclass(frozen=True)
class FleetSnapshot:
    """Immutable view of every configured lane at one tick.

    Lanes whose payload could not be turned into a MetricsSnapshot are
    kept in ``excluded`` with the names of the offending fields.
    """
    lanes: Tuple[LaneId, ...]
    metrics: Mapping[LaneId, MetricsSnapshot]
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    prices: Mapping[LaneId, Mapping[str, float]] = field(default_factory=dict)
    excluded: Mapping[LaneId, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze caller mappings so sub-analyses can share one instance
        object.__setattr__(self, "lanes", tuple(self.lanes))
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))
        object.__setattr__(self, "prices", MappingProxyType({
            lane: MappingProxyType(dict(tokens)) for lane, tokens in self.prices.items()
        }))
        object.__setattr__(self, "excluded", MappingProxyType(dict(self.excluded)))

    @property
    def scored_lanes(self) -> Tuple[LaneId, ...]:
        """Configured lanes with complete metrics, in configuration order"""
        return tuple(lane for lane in self.lanes if lane in self.metrics)


@dataclass(frozen=True)
class LaneSample:
    """Historical values for one lane at one timestamp"""
    response_time_ms: float
    throughput_ops_per_sec: float
    gas_price: float
    load_pct: float

    @classmethod
    def from_snapshot(cls, snapshot: MetricsSnapshot) -> "LaneSample":
        return cls(
            response_time_ms=snapshot.response_time_ms,
            throughput_ops_per_sec=snapshot.throughput_ops_per_sec,
            gas_price=snapshot.gas_price,
            load_pct=snapshot.load_pct,
        )

    @classmethod
    def from_dict(cls, lane: Any, data: Mapping[str, Any]) -> "LaneSample":
        values, missing = _extract_fields(
            data,
            ("response_time_ms", "throughput_ops_per_sec", "gas_price", "load_pct")
        )
        if missing:
            raise MissingMetricError(lane_id(lane), missing)
        return cls(**values)


@dataclass(frozen=True)
class HistoricalSample:
    """One point of the historical window, oldest first when in a sequence"""
    timestamp: datetime
    lanes: Mapping[LaneId, LaneSample]

    @classmethod
    def from_fleet(cls, snapshot: FleetSnapshot) -> "HistoricalSample":
        return cls(
            timestamp=snapshot.captured_at,
            lanes=MappingProxyType({
                lane: LaneSample.from_snapshot(metrics)
                for lane, metrics in snapshot.metrics.items()
            })
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoricalSample":
        """Parse ``{"timestamp": ..., "chains": {lane: {...}}}``

        Timestamps may be datetimes, ISO strings or epoch milliseconds.
        Lanes with incomplete data are left out of the sample.
        """
        raw_ts = data["timestamp"]
        if isinstance(raw_ts, datetime):
            timestamp = raw_ts
        elif isinstance(raw_ts, (int, float)):
            timestamp = datetime.fromtimestamp(raw_ts / 1000.0, tz=timezone.utc)
        else:
            timestamp = datetime.fromisoformat(str(raw_ts))

        lanes: Dict[LaneId, LaneSample] = {}
        for raw_lane, values in (data.get("chains") or data.get("lanes") or {}).items():
            try:
                lanes[lane_id(raw_lane)] = LaneSample.from_dict(raw_lane, values)
            except MissingMetricError:
                continue
        return cls(timestamp=timestamp, lanes=MappingProxyType(lanes))


@dataclass(frozen=True)
class Recommendation:
    """A suggested action produced by one of the analyzers"""
    type: RecommendationType
    priority: Priority
    title: str
    description: str
    action: str
    impact: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.type.value,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "impact": self.impact,
        }


def format_lanes(lanes: Iterable[LaneId], capitalize: bool = False) -> str:
    """Render 'chain A' / 'chains A, B' for recommendation text"""
    lanes = list(lanes)
    word = "Chain" if capitalize else "chain"
    return f"{word}{'s' if len(lanes) > 1 else ''} {', '.join(lanes)}"
