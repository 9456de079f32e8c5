"""Lane performance scoring and health status"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog

from ..config.settings import PerformanceSettings
from ..core.error_handling import InsufficientLanesError
from ..core.types import (
    FleetSnapshot, LaneId, LaneStatus, MetricsSnapshot, Priority,
    Recommendation, RecommendationType, format_lanes
)
from ..monitoring.metrics import MetricsManager
from ..monitoring.trend_analyzer import round_half_up

logger = structlog.get_logger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class LaneScore:
    """Scores and status of one lane"""
    lane_id: LaneId
    metrics: MetricsSnapshot
    response_score: float
    throughput_score: float
    uptime_score: float
    load_score: float
    performance_score: int
    status: LaneStatus

    def to_dict(self) -> Dict[str, object]:
        return {
            **self.metrics.to_dict(),
            "responseScore": self.response_score,
            "throughputScore": self.throughput_score,
            "uptimeScore": self.uptime_score,
            "loadScore": self.load_score,
            "performanceScore": self.performance_score,
            "status": self.status.value,
        }


@dataclass
class PerformanceAnalysis:
    timestamp: datetime
    lanes: Dict[LaneId, LaneScore]
    best_performer: Optional[LaneId]
    avg_response_time: float
    total_throughput: float
    recommendations: List[Recommendation] = field(default_factory=list)
    excluded_lanes: Dict[LaneId, Tuple[str, ...]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "lanes": {lane: score.to_dict() for lane, score in self.lanes.items()},
            "bestPerformer": self.best_performer,
            "avgResponseTime": self.avg_response_time,
            "totalThroughput": self.total_throughput,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "excludedLanes": {lane: list(fields) for lane, fields in self.excluded_lanes.items()},
        }


class PerformanceAnalyzer:
    """Turns a fleet snapshot into per-lane scores, a best performer and recommendations"""

    def __init__(self, settings: Optional[PerformanceSettings] = None, metrics: Optional[MetricsManager] = None):
        self.settings = settings or PerformanceSettings()
        self.metrics = metrics

    def score_lane(self, snapshot: MetricsSnapshot) -> LaneScore:
        """Average of four clamped sub-scores; higher is better"""
        response_score = _clamp(100 - snapshot.response_time_ms / 5)
        throughput_score = _clamp(snapshot.throughput_ops_per_sec / 10)
        uptime_score = _clamp(snapshot.uptime_pct)
        load_score = _clamp(100 - snapshot.load_pct)

        score = round_half_up((response_score + throughput_score + uptime_score + load_score) / 4)

        return LaneScore(
            lane_id=snapshot.lane_id,
            metrics=snapshot,
            response_score=response_score,
            throughput_score=throughput_score,
            uptime_score=uptime_score,
            load_score=load_score,
            performance_score=int(_clamp(score)),
            status=self.get_lane_status(snapshot)
        )

    def get_lane_status(self, snapshot: MetricsSnapshot) -> LaneStatus:
        # First match wins
        if snapshot.uptime_pct < self.settings.degraded_uptime_pct:
            return LaneStatus.DEGRADED
        if snapshot.load_pct > self.settings.congested_load_pct:
            return LaneStatus.CONGESTED
        if snapshot.response_time_ms > self.settings.slow_response_ms:
            return LaneStatus.SLOW
        return LaneStatus.OPTIMAL

    def analyze(self, snapshot: FleetSnapshot) -> PerformanceAnalysis:
        """Score every lane with complete metrics

        Raises:
            InsufficientLanesError: if no lane has complete metrics
        """
        lanes = snapshot.scored_lanes
        if not lanes:
            raise InsufficientLanesError("performance analysis", 1, 0)

        scores: Dict[LaneId, LaneScore] = {}
        best: Optional[LaneScore] = None
        for lane in lanes:
            score = self.score_lane(snapshot.metrics[lane])
            scores[lane] = score
            if best is None or score.performance_score > best.performance_score:
                best = score

            if self.metrics is not None:
                self.metrics.set_gauge("lane_performance_score", score.performance_score, lane=lane)
                self.metrics.set_gauge("lane_load_pct", score.metrics.load_pct, lane=lane)

        analysis = PerformanceAnalysis(
            timestamp=snapshot.captured_at,
            lanes=scores,
            best_performer=best.lane_id if best else None,
            avg_response_time=sum(s.metrics.response_time_ms for s in scores.values()) / len(scores),
            total_throughput=sum(s.metrics.throughput_ops_per_sec for s in scores.values()),
            excluded_lanes=dict(snapshot.excluded)
        )
        analysis.recommendations = self._generate_recommendations(analysis)

        logger.info(
            "performance_analyzed",
            lanes=len(scores),
            best_performer=analysis.best_performer,
            avg_response_time=analysis.avg_response_time,
            excluded=len(analysis.excluded_lanes)
        )
        return analysis

    def _generate_recommendations(self, analysis: PerformanceAnalysis) -> List[Recommendation]:
        """Generate recommendations based on lane scores"""
        recommendations = []

        slow_threshold = analysis.avg_response_time * self.settings.slow_lane_factor
        slow_lanes = [
            lane for lane, score in analysis.lanes.items()
            if score.metrics.response_time_ms > slow_threshold
        ]
        if slow_lanes:
            recommendations.append(Recommendation(
                type=RecommendationType.PERFORMANCE,
                priority=Priority.HIGH,
                title="Slow Chain Detection",
                description=f"{format_lanes(slow_lanes, capitalize=True)} showing slower response times",
                action=f"Consider routing transactions through chain {analysis.best_performer} instead",
                impact="Reduced transaction times by up to 40%"
            ))

        high_load_lanes = [
            lane for lane, score in analysis.lanes.items()
            if score.metrics.load_pct > self.settings.high_load_pct
        ]
        if high_load_lanes:
            recommendations.append(Recommendation(
                type=RecommendationType.LOAD_BALANCING,
                priority=Priority.MEDIUM,
                title="Load Balancing Opportunity",
                description=f"High load detected on {format_lanes(high_load_lanes)}",
                action="Distribute transactions more evenly across available chains",
                impact="Improved overall system performance"
            ))

        if analysis.excluded_lanes:
            details = "; ".join(
                f"{lane}: {', '.join(fields)}" for lane, fields in analysis.excluded_lanes.items()
            )
            recommendations.append(Recommendation(
                type=RecommendationType.DATA_QUALITY,
                priority=Priority.HIGH,
                title="Incomplete Chain Metrics",
                description=f"Excluded from scoring due to missing or invalid metrics ({details})",
                action=f"Check the telemetry source for {format_lanes(analysis.excluded_lanes)}",
                impact="Scores and routing ignore the affected chains until metrics recover"
            ))

        return recommendations
