"""Abstract interfaces for external telemetry sources"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from .types import LaneId


class MetricsProvider(ABC):
    @abstractmethod
    async def fetch_metrics(self, lanes: Sequence[LaneId]) -> Mapping[LaneId, Mapping[str, Any]]:
        """Get the current metrics payload for each lane"""
        pass


class PriceProvider(ABC):
    @abstractmethod
    async def fetch_prices(self, lanes: Sequence[LaneId]) -> Mapping[LaneId, Mapping[str, float]]:
        """Get spot prices per token for each lane"""
        pass


class StaticMetricsProvider(MetricsProvider, PriceProvider):
    """Serves fixed payloads; used for replays and tests"""

    def __init__(
        self,
        metrics: Mapping[Any, Mapping[str, Any]],
        prices: Optional[Mapping[Any, Mapping[str, float]]] = None
    ):
        self.metrics = {str(lane): dict(values) for lane, values in metrics.items()}
        self.prices = {str(lane): dict(values) for lane, values in (prices or {}).items()}

    def update(self, lane: Any, **values: Any) -> None:
        self.metrics.setdefault(str(lane), {}).update(values)

    async def fetch_metrics(self, lanes: Sequence[LaneId]) -> Dict[LaneId, Dict[str, Any]]:
        return {lane: dict(self.metrics[lane]) for lane in lanes if lane in self.metrics}

    async def fetch_prices(self, lanes: Sequence[LaneId]) -> Dict[LaneId, Dict[str, float]]:
        return {lane: dict(self.prices[lane]) for lane in lanes if lane in self.prices}
