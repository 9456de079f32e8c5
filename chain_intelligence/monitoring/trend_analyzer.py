"""
Trend prediction over historical lane samples

- Half-over-half trend direction
- Ordinary least squares one-step forecast
- Coefficient-of-variation volatility (shared with the cost analyzer)
- Low-load hour-of-day windows
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from ..config.settings import TrendSettings
from ..core.error_handling import DegenerateSeriesError
from ..core.types import (
    HistoricalSample, LaneId, RiskLevel, TrendDirection, VolatilityLevel, WindowRating
)
from .metrics import MetricsManager

logger = structlog.get_logger(__name__)

# Load a window is compared against when estimating the speed-up
CONGESTED_REFERENCE_LOAD = 80.0


def round_half_up(value: float) -> int:
    """Round .5 towards positive infinity"""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class TrendResult:
    direction: TrendDirection
    magnitude_percent: float
    change_percent: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "direction": self.direction.value,
            "magnitudePercent": self.magnitude_percent,
        }


@dataclass(frozen=True)
class VolatilityStats:
    standard_deviation: float
    coefficient_of_variation: float  # percent, 2 decimals
    level: VolatilityLevel

    def to_dict(self) -> Dict[str, object]:
        return {
            "standardDeviation": self.standard_deviation,
            "coefficientOfVariation": self.coefficient_of_variation,
            "level": self.level.value,
        }


@dataclass(frozen=True)
class TrendForecast:
    series_name: str
    direction: TrendDirection
    magnitude_percent: float
    predicted_next_value: Optional[float]

    def to_dict(self) -> Dict[str, object]:
        return {
            "seriesName": self.series_name,
            "direction": self.direction.value,
            "magnitudePercent": self.magnitude_percent,
            "predictedNextValue": self.predicted_next_value,
        }


@dataclass(frozen=True)
class CostForecast:
    current_price: float
    predicted_price: Optional[float]
    trend: TrendResult
    confidence: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "currentPrice": self.current_price,
            "predictedPrice": self.predicted_price,
            "trend": self.trend.to_dict(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CongestionPrediction:
    current_load: float
    average_load: float
    trend: TrendResult
    congestion_risk: RiskLevel
    recommendation: str
    predicted_load: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "currentLoad": self.current_load,
            "averageLoad": self.average_load,
            "trend": self.trend.to_dict(),
            "congestionRisk": self.congestion_risk.value,
            "recommendation": self.recommendation,
            "predictedLoad": self.predicted_load,
        }


@dataclass(frozen=True)
class OptimalWindow:
    hour: int
    average_load: int
    rating: WindowRating
    savings: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "hour": self.hour,
            "averageLoad": self.average_load,
            "rating": self.rating.value,
            "savings": self.savings,
        }


@dataclass
class Predictions:
    performance_trends: Dict[LaneId, Dict[str, TrendForecast]] = field(default_factory=dict)
    cost_forecasts: Dict[LaneId, CostForecast] = field(default_factory=dict)
    congestion_predictions: Dict[LaneId, CongestionPrediction] = field(default_factory=dict)
    optimal_windows: List[OptimalWindow] = field(default_factory=list)
    sample_count: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "performanceTrends": {
                lane: {name: f.to_dict() for name, f in series.items()}
                for lane, series in self.performance_trends.items()
            },
            "costForecasts": {lane: f.to_dict() for lane, f in self.cost_forecasts.items()},
            "congestionPredictions": {
                lane: p.to_dict() for lane, p in self.congestion_predictions.items()
            },
            "optimalWindows": [w.to_dict() for w in self.optimal_windows],
            "sampleCount": self.sample_count,
        }


def detect_trend(values: Sequence[float], threshold_pct: float = 5.0) -> TrendResult:
    """Compare the mean of the second half of a series with the first half.

    Series shorter than two points are reported as stable.
    """
    if len(values) < 2:
        return TrendResult(TrendDirection.STABLE, 0.0)

    middle = len(values) // 2
    first_avg = float(np.mean(values[:middle]))
    second_avg = float(np.mean(values[middle:]))

    if first_avg == 0:
        change = 0.0 if second_avg == 0 else math.copysign(100.0, second_avg)
    else:
        change = (second_avg - first_avg) / first_avg * 100

    if change > threshold_pct:
        direction = TrendDirection.INCREASING
    elif change < -threshold_pct:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE

    return TrendResult(direction, round(abs(change), 2), change)


def linear_prediction(values: Sequence[float], series_name: str = "series") -> float:
    """Least squares fit of value against index, evaluated at the next index.

    Raises:
        DegenerateSeriesError: for fewer than two points
    """
    n = len(values)
    if n < 2:
        raise DegenerateSeriesError(series_name, n)

    x = np.arange(n, dtype=float)
    y = np.asarray(values, dtype=float)
    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_x2 = (x * x).sum()

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    return float(slope * n + intercept)


def predict_next_value(values: Sequence[float], series_name: str = "series") -> int:
    """Integer one-step forecast"""
    return round_half_up(linear_prediction(values, series_name))


def calculate_volatility(
    values: Sequence[float],
    medium: float = 0.10,
    high: float = 0.20
) -> VolatilityStats:
    """Population standard deviation relative to the mean"""
    if len(values) < 2:
        return VolatilityStats(0.0, 0.0, VolatilityLevel.LOW)

    array = np.asarray(values, dtype=float)
    mean = float(array.mean())
    std = float(array.std())
    ratio = std / mean if mean else 0.0

    if ratio < medium:
        level = VolatilityLevel.LOW
    elif ratio < high:
        level = VolatilityLevel.MEDIUM
    else:
        level = VolatilityLevel.HIGH

    return VolatilityStats(std, round(ratio * 100, 2), level)


class TrendPredictor:
    """Forecasts lane metrics from a rolling historical window"""

    def __init__(self, settings: Optional[TrendSettings] = None, metrics: Optional[MetricsManager] = None):
        self.settings = settings or TrendSettings()
        self.metrics = metrics

    def detect_trend(self, values: Sequence[float]) -> TrendResult:
        return detect_trend(values, self.settings.change_threshold_pct)

    def calculate_volatility(self, values: Sequence[float]) -> VolatilityStats:
        return calculate_volatility(values, self.settings.volatility_medium, self.settings.volatility_high)

    def forecast(
        self,
        series_name: str,
        values: Sequence[float],
        integral: bool = True,
        lane: Optional[LaneId] = None
    ) -> TrendForecast:
        """Trend plus one-step prediction; degenerate series get no prediction"""
        trend = self.detect_trend(values)
        try:
            predicted: Optional[float] = linear_prediction(values, series_name)
        except DegenerateSeriesError as e:
            logger.debug("degenerate_series", series=series_name, lane=lane, length=e.length)
            predicted = None
        else:
            if integral:
                predicted = float(round_half_up(predicted))

        if self.metrics is not None and lane is not None:
            self.metrics.set_gauge("trend_magnitude_pct", trend.magnitude_percent, lane=lane, series=series_name)
            if predicted is not None:
                self.metrics.set_gauge("forecast_value", predicted, lane=lane, series=series_name)

        return TrendForecast(series_name, trend.direction, trend.magnitude_percent, predicted)

    def identify_optimal_windows(self, history: Sequence[HistoricalSample]) -> List[OptimalWindow]:
        """Lowest-load hours of the day, returned in hour order"""
        per_hour: Dict[int, List[float]] = {}
        for sample in history:
            loads = [lane_sample.load_pct for lane_sample in sample.lanes.values()]
            if not loads:
                continue
            per_hour.setdefault(sample.timestamp.hour, []).append(sum(loads) / len(loads))

        hourly_averages = [
            (hour, sum(per_hour[hour]) / len(per_hour[hour]))
            for hour in sorted(per_hour)
        ]
        lowest = sorted(hourly_averages, key=lambda item: item[1])[:self.settings.optimal_window_count]

        windows = []
        for hour, load in lowest:
            if load < 30:
                rating = WindowRating.EXCELLENT
            elif load < 50:
                rating = WindowRating.GOOD
            else:
                rating = WindowRating.FAIR
            speedup = round_half_up((CONGESTED_REFERENCE_LOAD - load) / 2)
            windows.append(OptimalWindow(
                hour=hour,
                average_load=round_half_up(load),
                rating=rating,
                savings=f"{speedup}% faster transactions"
            ))

        return sorted(windows, key=lambda w: w.hour)

    def generate_predictions(
        self,
        lanes: Sequence[LaneId],
        history: Sequence[HistoricalSample]
    ) -> Predictions:
        """Per-lane forecasts for response time, throughput, gas price and load"""
        predictions = Predictions(sample_count=len(history))

        for lane in lanes:
            samples = [sample.lanes[lane] for sample in history if lane in sample.lanes]
            if not samples:
                logger.debug("no_history_for_lane", lane=lane)
                continue

            response_times = [s.response_time_ms for s in samples]
            throughputs = [s.throughput_ops_per_sec for s in samples]
            gas_prices = [s.gas_price for s in samples]
            loads = [s.load_pct for s in samples]

            load_forecast = self.forecast("load", loads, lane=lane)
            predictions.performance_trends[lane] = {
                "responseTime": self.forecast("responseTime", response_times, lane=lane),
                "throughput": self.forecast("throughput", throughputs, lane=lane),
                "load": load_forecast,
            }

            # Gas prices are fractional; rounding would erase them
            gas_forecast = self.forecast("gasPrice", gas_prices, integral=False, lane=lane)
            gas_trend = self.detect_trend(gas_prices)
            predictions.cost_forecasts[lane] = CostForecast(
                current_price=gas_prices[-1],
                predicted_price=gas_forecast.predicted_next_value,
                trend=gas_trend,
                confidence="high" if gas_trend.direction == TrendDirection.STABLE else "medium"
            )

            average_load = sum(loads) / len(loads)
            if average_load > 70:
                risk = RiskLevel.HIGH
            elif average_load > 50:
                risk = RiskLevel.MEDIUM
            else:
                risk = RiskLevel.LOW
            predictions.congestion_predictions[lane] = CongestionPrediction(
                current_load=loads[-1],
                average_load=average_load,
                trend=self.detect_trend(loads),
                congestion_risk=risk,
                recommendation="Consider load balancing" if average_load > 80 else "Normal operation",
                predicted_load=load_forecast.predicted_next_value
            )

        predictions.optimal_windows = self.identify_optimal_windows(history)
        logger.debug(
            "predictions_generated",
            lanes=len(predictions.performance_trends),
            samples=len(history),
            windows=len(predictions.optimal_windows)
        )
        return predictions
