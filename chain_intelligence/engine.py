"""
Chain Intelligence Engine

Orchestrates the analyzers over one immutable fleet snapshot:
- Performance, cost, load and arbitrage analysis run concurrently
- Trend prediction runs over the caller's historical window
- Route optimization is served per operation, outside the report
- A failing section is isolated and the report marks it degraded
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog
from prometheus_client import CollectorRegistry

from .analysis.arbitrage import ArbitrageDetector, ArbitrageScan
from .analysis.costs import CostAnalysis, CostAnalyzer
from .analysis.load_balancing import LoadBalancer, LoadBalancingPlan
from .analysis.performance import PerformanceAnalysis, PerformanceAnalyzer
from .analysis.routing import Operation, RouteOptimization, RouteOptimizer
from .config.settings import IntelligenceSettings
from .config.validators import parse_snapshot_document, validate_price_document, validate_snapshot_document
from .core.error_handling import ErrorHandler, NoLanesConfiguredError, UnknownLaneError
from .core.interfaces import MetricsProvider, PriceProvider
from .core.types import (
    METRIC_FIELDS, FleetSnapshot, HealthRating, HistoricalSample, LaneId,
    Priority, Recommendation, RecommendationType, lane_id
)
from .monitoring.logging_setup import configure_logging
from .monitoring.metrics import MetricsManager
from .monitoring.trend_analyzer import Predictions, TrendPredictor, round_half_up

logger = structlog.get_logger(__name__)

HistoryItem = Union[HistoricalSample, FleetSnapshot, Mapping[str, Any]]


@dataclass(frozen=True)
class OverallHealth:
    score: int
    status: HealthRating
    performance: int
    costs: int
    load_balance: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "score": self.score,
            "status": self.status.value,
            "areas": {
                "performance": self.performance,
                "costs": self.costs,
                "loadBalance": self.load_balance,
            },
        }


@dataclass
class ReportSummary:
    total_chains: int
    overall_health: OverallHealth
    top_recommendations: List[Recommendation] = field(default_factory=list)

    @property
    def health_score(self) -> int:
        return self.overall_health.score

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalChains": self.total_chains,
            "healthScore": self.health_score,
            "overallHealth": self.overall_health.to_dict(),
            "topRecommendations": [r.to_dict() for r in self.top_recommendations],
        }


@dataclass(frozen=True)
class ReportMetadata:
    report_version: str
    confidence: str
    next_update: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "reportVersion": self.report_version,
            "confidence": self.confidence,
            "nextUpdate": self.next_update.isoformat(),
        }


@dataclass
class IntelligenceReport:
    """Consolidated report; sections that failed are None"""
    timestamp: datetime
    summary: ReportSummary
    metadata: ReportMetadata
    performance: Optional[PerformanceAnalysis] = None
    costs: Optional[CostAnalysis] = None
    load_balancing: Optional[LoadBalancingPlan] = None
    arbitrage: Optional[ArbitrageScan] = None
    predictions: Optional[Predictions] = None
    degraded_sections: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_sections)

    def to_dict(self) -> Dict[str, object]:
        def section(value):
            return value.to_dict() if value is not None else None

        return {
            "timestamp": self.timestamp.isoformat(),
            "summary": self.summary.to_dict(),
            "performance": section(self.performance),
            "costs": section(self.costs),
            "loadBalancing": section(self.load_balancing),
            "arbitrage": section(self.arbitrage),
            "predictions": section(self.predictions),
            "metadata": self.metadata.to_dict(),
            "degradedSections": list(self.degraded_sections),
        }


def to_historical_sample(item: HistoryItem) -> HistoricalSample:
    if isinstance(item, HistoricalSample):
        return item
    if isinstance(item, FleetSnapshot):
        return HistoricalSample.from_fleet(item)
    return HistoricalSample.from_dict(item)


class ChainIntelligence:
    """Decision-support engine for one immutable lane set.

    Instances share no state, so several engines (per tenant, per test)
    can coexist in one process. Every analysis is a pure function of the
    snapshot it is given; the only side effects are logs and metrics.
    """

    def __init__(
        self,
        lanes: Iterable[Any],
        settings: Optional[IntelligenceSettings] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        """Initialize engine

        Args:
            lanes: Configured lane identifiers, in routing order
            settings: Engine settings (loaded from the environment if omitted)
            registry: Prometheus registry; each engine gets a private one by default

        Raises:
            NoLanesConfiguredError: if ``lanes`` is empty or has duplicates
        """
        configured = tuple(lane_id(lane) for lane in (lanes or ()))
        if not configured:
            raise NoLanesConfiguredError()
        if len(set(configured)) != len(configured):
            raise NoLanesConfiguredError(f"Lane identifiers must be unique: {list(configured)}")

        self.lanes = configured
        self.settings = settings or IntelligenceSettings()
        self.metrics = MetricsManager(registry)
        self.error_handler = ErrorHandler(registry=self.metrics.registry)

        self.performance_analyzer = PerformanceAnalyzer(self.settings.performance, self.metrics)
        self.cost_analyzer = CostAnalyzer(self.settings.costs, self.settings.trends, self.metrics)
        self.route_optimizer = RouteOptimizer(self.lanes, self.settings.routing)
        self.load_balancer = LoadBalancer(self.settings.load_balancing, self.metrics)
        self.arbitrage_detector = ArbitrageDetector(self.settings.arbitrage, self.settings.trends, self.metrics)
        self.trend_predictor = TrendPredictor(self.settings.trends, self.metrics)

        logger.info("engine_initialized", lanes=list(self.lanes), environment=self.settings.environment)

    @classmethod
    def from_settings(
        cls,
        settings: IntelligenceSettings,
        registry: Optional[CollectorRegistry] = None,
        configure_logs: bool = True
    ) -> "ChainIntelligence":
        """Build an engine from the lane set declared in settings.

        Unless ``configure_logs`` is False, process-wide logging is set up
        from ``log_level`` and ``log_json`` first.
        """
        if configure_logs:
            configure_logging(settings.log_level, json_output=settings.log_json)
        return cls(settings.lanes, settings=settings, registry=registry)

    def capture(
        self,
        raw_metrics: Mapping[Any, Mapping[str, Any]],
        prices: Optional[Mapping[Any, Mapping[str, float]]] = None,
        timestamp: Optional[datetime] = None,
        strict: bool = False
    ) -> FleetSnapshot:
        """Turn provider payloads into an immutable fleet snapshot.

        Configured lanes that are absent or incomplete are excluded from
        scoring. Payloads for unconfigured lanes are dropped, or rejected
        when ``strict`` is set.

        Raises:
            UnknownLaneError: in strict mode, for a lane outside the lane set
        """
        schema_errors = validate_snapshot_document(dict(raw_metrics))
        if prices is not None:
            schema_errors += validate_price_document(dict(prices))
        if schema_errors:
            logger.warning("payload_validation_errors", errors=schema_errors)

        snapshots, excluded = parse_snapshot_document(raw_metrics)

        unknown = [lane for lane in list(snapshots) + list(excluded) if lane not in self.lanes]
        if unknown:
            if strict:
                raise UnknownLaneError(unknown[0])
            logger.warning("unknown_lanes_dropped", lanes=unknown)

        metrics = {lane: snapshots[lane] for lane in self.lanes if lane in snapshots}
        excluded_lanes = {lane: excluded[lane] for lane in self.lanes if lane in excluded}
        for lane in self.lanes:
            if lane not in metrics and lane not in excluded_lanes:
                excluded_lanes[lane] = tuple(METRIC_FIELDS)

        lane_prices: Dict[LaneId, Dict[str, float]] = {}
        for raw_lane, tokens in (prices or {}).items():
            lane = lane_id(raw_lane)
            if lane not in self.lanes:
                if strict:
                    raise UnknownLaneError(lane)
                continue
            lane_prices[lane] = {str(token): float(price) for token, price in tokens.items()}

        return FleetSnapshot(
            lanes=self.lanes,
            metrics=metrics,
            captured_at=timestamp or datetime.now(timezone.utc),
            prices=lane_prices,
            excluded=excluded_lanes
        )

    def analyze_performance(self, snapshot: FleetSnapshot) -> PerformanceAnalysis:
        with self.metrics.timer("performance"):
            return self.performance_analyzer.analyze(snapshot)

    def analyze_costs(self, snapshot: FleetSnapshot) -> CostAnalysis:
        with self.metrics.timer("costs"):
            return self.cost_analyzer.analyze(snapshot)

    def suggest_load_balancing(self, snapshot: FleetSnapshot) -> LoadBalancingPlan:
        with self.metrics.timer("load_balancing"):
            return self.load_balancer.suggest(snapshot)

    def detect_arbitrage(self, snapshot: FleetSnapshot) -> ArbitrageScan:
        with self.metrics.timer("arbitrage"):
            return self.arbitrage_detector.detect(snapshot)

    def generate_predictions(self, history: Sequence[HistoryItem]) -> Predictions:
        """Forecast every configured lane from an oldest-first window"""
        samples = [to_historical_sample(item) for item in history]
        with self.metrics.timer("predictions"):
            return self.trend_predictor.generate_predictions(self.lanes, samples)

    def optimize_route(
        self,
        operation: Union[Operation, Mapping[str, Any]],
        snapshot: Optional[FleetSnapshot] = None,
        available_lanes: Optional[Sequence[Any]] = None
    ) -> RouteOptimization:
        """Rank routes for one operation.

        With a snapshot, only lanes that have complete metrics are routed
        through.
        """
        if not isinstance(operation, Operation):
            operation = Operation.from_dict(operation)
        if available_lanes is None and snapshot is not None:
            available_lanes = snapshot.scored_lanes

        with self.metrics.timer("routing"):
            return self.route_optimizer.optimize(operation, available_lanes)

    def calculate_overall_health(
        self,
        performance: Optional[PerformanceAnalysis],
        costs: Optional[CostAnalysis],
        load_balancing: Optional[LoadBalancingPlan]
    ) -> OverallHealth:
        """Average of three coarse area scores; a missing section scores low"""
        perf_score = 80 if performance is not None and performance.best_performer else 60
        cost_score = 90 if costs is not None and costs.savings.potential < 0.001 else 70
        load_score = 95 if load_balancing is not None and not load_balancing.rebalance_actions else 75

        overall = (perf_score + cost_score + load_score) / 3
        if overall > 85:
            status = HealthRating.EXCELLENT
        elif overall > 70:
            status = HealthRating.GOOD
        elif overall > 50:
            status = HealthRating.FAIR
        else:
            status = HealthRating.POOR

        return OverallHealth(
            score=round_half_up(overall),
            status=status,
            performance=perf_score,
            costs=cost_score,
            load_balance=load_score
        )

    def get_top_recommendations(
        self,
        performance: Optional[PerformanceAnalysis],
        costs: Optional[CostAnalysis],
        load_balancing: Optional[LoadBalancingPlan],
        extra: Sequence[Recommendation] = ()
    ) -> List[Recommendation]:
        recommendations: List[Recommendation] = []
        if performance is not None:
            recommendations.extend(performance.recommendations)
        if costs is not None:
            recommendations.extend(costs.recommendations)
        if load_balancing is not None:
            limit = self.settings.report.rebalance_recommendations
            recommendations.extend(
                action.to_recommendation() for action in load_balancing.rebalance_actions[:limit]
            )
        recommendations.extend(extra)

        # sorted() is stable, so equal priorities keep their input order
        ranked = sorted(recommendations, key=lambda r: r.priority.rank, reverse=True)
        return ranked[:self.settings.report.top_recommendations]

    async def generate_report(
        self,
        snapshot: FleetSnapshot,
        history: Sequence[HistoryItem] = ()
    ) -> IntelligenceReport:
        """Build the consolidated report for one snapshot.

        Sub-analyses run concurrently in worker threads. A section that
        raises is recorded, left as None and listed in
        ``degraded_sections``; the rest of the report is still produced.
        """
        sections: Dict[str, Callable[[], Any]] = {
            "performance": lambda: self.analyze_performance(snapshot),
            "costs": lambda: self.analyze_costs(snapshot),
            "loadBalancing": lambda: self.suggest_load_balancing(snapshot),
            "arbitrage": lambda: self.detect_arbitrage(snapshot),
            "predictions": lambda: self.generate_predictions(history),
        }

        with self.metrics.timer("report"):
            results = await asyncio.gather(
                *(asyncio.to_thread(run) for run in sections.values()),
                return_exceptions=True
            )

        outcome: Dict[str, Any] = {}
        degraded: List[str] = []
        degraded_recommendations: List[Recommendation] = []
        for name, result in zip(sections, results):
            if isinstance(result, Exception):
                self.error_handler.record_error(
                    result,
                    component=name,
                    operation="generate_report",
                    captured_at=snapshot.captured_at.isoformat()
                )
                outcome[name] = None
                degraded.append(name)
                degraded_recommendations.append(Recommendation(
                    type=RecommendationType.DEGRADED_ANALYSIS,
                    priority=Priority.HIGH,
                    title="Degraded Analysis",
                    description=f"The {name} section could not be computed: {result}",
                    action="Check the metrics feed for the affected chains",
                    impact="This report is missing the affected section"
                ))
                continue
            outcome[name] = result

        performance = outcome["performance"]
        costs = outcome["costs"]
        load_balancing = outcome["loadBalancing"]

        health = self.calculate_overall_health(performance, costs, load_balancing)
        top = self.get_top_recommendations(performance, costs, load_balancing, degraded_recommendations)

        report = IntelligenceReport(
            timestamp=snapshot.captured_at,
            summary=ReportSummary(
                total_chains=len(self.lanes),
                overall_health=health,
                top_recommendations=top
            ),
            metadata=ReportMetadata(
                report_version=self.settings.report.report_version,
                confidence="medium",
                next_update=snapshot.captured_at + timedelta(seconds=self.settings.report.refresh_interval_sec)
            ),
            performance=performance,
            costs=costs,
            load_balancing=load_balancing,
            arbitrage=outcome["arbitrage"],
            predictions=outcome["predictions"],
            degraded_sections=degraded
        )

        self.metrics.set_gauge("fleet_health_score", health.score)
        for recommendation in top:
            self.metrics.inc_counter("recommendations_total", priority=recommendation.priority.value)

        logger.info(
            "report_generated",
            health_score=health.score,
            status=health.status.value,
            recommendations=len(top),
            degraded=degraded or None
        )
        return report


class IntelligenceService:
    """Periodic sampler around one engine.

    Each tick fetches fresh metrics, replaces the shared snapshot
    reference, extends the rolling history and builds a report from that
    tick's snapshot. Ticks never overlap.
    """

    def __init__(
        self,
        engine: ChainIntelligence,
        metrics_provider: MetricsProvider,
        price_provider: Optional[PriceProvider] = None,
        interval: Optional[float] = None
    ):
        self.engine = engine
        self.metrics_provider = metrics_provider
        self.price_provider = price_provider
        self.interval = interval if interval is not None else engine.settings.sampling_interval_sec

        self.history: Deque[HistoricalSample] = deque(maxlen=engine.settings.trends.history_size)
        self.latest_snapshot: Optional[FleetSnapshot] = None
        self.latest_report: Optional[IntelligenceReport] = None

        self.running = False
        self._tick_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> IntelligenceReport:
        """Sample every lane once and report on that sample"""
        async with self._tick_lock:
            raw_metrics = await self.metrics_provider.fetch_metrics(self.engine.lanes)
            prices = None
            if self.price_provider is not None:
                prices = await self.price_provider.fetch_prices(self.engine.lanes)

            snapshot = self.engine.capture(raw_metrics, prices)
            self.latest_snapshot = snapshot
            self.history.append(HistoricalSample.from_fleet(snapshot))

            report = await self.engine.generate_report(snapshot, list(self.history))
            self.latest_report = report
            return report

    async def _run_loop(self) -> None:
        try:
            while self.running:
                try:
                    await self.run_once()
                except Exception as e:
                    self.engine.error_handler.record_error(e, component="service", operation="run_once")
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("sampling_loop_cancelled")
            raise
        finally:
            self.running = False

    def start(self) -> asyncio.Task:
        """Start sampling on the running event loop"""
        if self._task is not None and not self._task.done():
            return self._task
        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("sampling_started", interval=self.interval, lanes=list(self.engine.lanes))
        return self._task

    async def stop(self) -> None:
        """Stop sampling; an in-flight tick is discarded"""
        self.running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sampling_stopped", samples=len(self.history))
