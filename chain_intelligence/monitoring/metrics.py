"""
Metrics Module

Prometheus metrics for the intelligence engine. Every engine owns its
own registry so several engines can live in one process.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
import structlog

logger = structlog.get_logger(__name__)

Metric = Union[Counter, Gauge, Histogram]

PREFIX = "chain_intelligence"


@dataclass
class MetricConfig:
    """Configuration for a metric"""
    name: str
    description: str
    type: str = "gauge"  # gauge, counter, histogram
    labels: List[str] = field(default_factory=list)
    buckets: Optional[List[float]] = None


DEFAULT_METRICS = [
    MetricConfig("lane_performance_score", "Composite lane performance score (0-100)", "gauge", ["lane"]),
    MetricConfig("lane_load_pct", "Current lane load percentage", "gauge", ["lane"]),
    MetricConfig("lane_gas_price", "Current lane gas price", "gauge", ["lane"]),
    MetricConfig("fleet_health_score", "Overall fleet health score (0-100)", "gauge"),
    MetricConfig("arbitrage_opportunities", "Profitable arbitrage opportunities in the last scan", "gauge"),
    MetricConfig("rebalance_actions", "Rebalance actions proposed in the last report", "gauge"),
    MetricConfig("trend_magnitude_pct", "Half-over-half change of a lane series", "gauge", ["lane", "series"]),
    MetricConfig("forecast_value", "One-step-ahead forecast of a lane series", "gauge", ["lane", "series"]),
    MetricConfig("recommendations_total", "Recommendations emitted", "counter", ["priority"]),
    MetricConfig(
        "analysis_duration_seconds",
        "Time spent in one analysis",
        "histogram",
        ["analysis"],
        [0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
    ),
]


class MetricsManager:
    """
    Centralized metrics management with type-safe metric access
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics manager

        Args:
            registry: Optional registry; a private one is created if omitted
        """
        self._metrics: Dict[str, Metric] = {}
        self.registry = registry if registry is not None else CollectorRegistry()
        for config in DEFAULT_METRICS:
            self._add_metric(config)

    def _add_metric(self, config: MetricConfig) -> None:
        """Add a new metric"""
        name = f"{PREFIX}_{config.name}"

        if config.type == "gauge":
            metric: Metric = Gauge(name, config.description, config.labels, registry=self.registry)
        elif config.type == "counter":
            metric = Counter(name, config.description, config.labels, registry=self.registry)
        elif config.type == "histogram":
            metric = Histogram(
                name,
                config.description,
                config.labels,
                buckets=config.buckets or Histogram.DEFAULT_BUCKETS,
                registry=self.registry
            )
        else:
            raise ValueError(f"Unsupported metric type: {config.type}")

        self._metrics[config.name] = metric

    def get(self, name: str) -> Metric:
        return self._metrics[name]

    def set_gauge(self, name: str, value: float, **labels: str) -> None:
        gauge = self._metrics[name]
        if labels:
            gauge.labels(**labels).set(value)
        else:
            gauge.set(value)

    def inc_counter(self, name: str, amount: float = 1, **labels: str) -> None:
        counter = self._metrics[name]
        if labels:
            counter.labels(**labels).inc(amount)
        else:
            counter.inc(amount)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read back a sample, e.g. ``get_sample_value('fleet_health_score')``"""
        return self.registry.get_sample_value(f"{PREFIX}_{name}", labels or {})

    @contextmanager
    def timer(self, analysis: str):
        """Context manager for timing one analysis.

        Example:
            with metrics.timer("performance"):
                ...
        """
        start = time.monotonic()
        try:
            yield
        finally:
            duration = time.monotonic() - start
            self._metrics["analysis_duration_seconds"].labels(analysis=analysis).observe(duration)
            logger.debug("analysis_timed", analysis=analysis, duration=duration)
