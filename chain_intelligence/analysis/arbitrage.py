"""
Arbitrage Detection Module

Compares token spot prices between every pair of lanes and reports
discrepancies that clear the configured fee allowance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional

import structlog

from ..config.settings import ArbitrageSettings, TrendSettings
from ..core.types import FleetSnapshot, LaneId, RiskLevel, VolatilityLevel
from ..monitoring.metrics import MetricsManager
from ..monitoring.trend_analyzer import calculate_volatility

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ArbitrageOpportunity:
    token: str
    buy_lane: LaneId
    sell_lane: LaneId
    buy_price: float
    sell_price: float
    profit_percent: float
    profitable: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "token": self.token,
            "buyChain": self.buy_lane,
            "sellChain": self.sell_lane,
            "buyPrice": self.buy_price,
            "sellPrice": self.sell_price,
            "profitPercent": self.profit_percent,
            "profitable": self.profitable,
        }


@dataclass(frozen=True)
class MarketConditions:
    volatility: VolatilityLevel
    arbitrage_activity: str
    risk_level: RiskLevel

    def to_dict(self) -> Dict[str, str]:
        return {
            "volatility": self.volatility.value,
            "arbitrageActivity": self.arbitrage_activity,
            "riskLevel": self.risk_level.value,
        }


@dataclass
class ArbitrageScan:
    timestamp: datetime
    opportunities: List[ArbitrageOpportunity] = field(default_factory=list)
    pairs_scanned: int = 0
    market_conditions: Optional[MarketConditions] = None
    message: Optional[str] = None

    @property
    def total_opportunities(self) -> int:
        return len(self.opportunities)

    @property
    def best_opportunity(self) -> Optional[ArbitrageOpportunity]:
        return self.opportunities[0] if self.opportunities else None

    def to_dict(self) -> Dict[str, object]:
        best = self.best_opportunity
        return {
            "timestamp": self.timestamp.isoformat(),
            "opportunities": [o.to_dict() for o in self.opportunities],
            "totalOpportunities": self.total_opportunities,
            "bestOpportunity": best.to_dict() if best else None,
            "pairsScanned": self.pairs_scanned,
            "marketConditions": self.market_conditions.to_dict() if self.market_conditions else None,
            "message": self.message,
        }


class ArbitrageDetector:
    """Pairwise cross-lane price comparison"""

    def __init__(
        self,
        settings: Optional[ArbitrageSettings] = None,
        trend_settings: Optional[TrendSettings] = None,
        metrics: Optional[MetricsManager] = None
    ):
        self.settings = settings or ArbitrageSettings()
        self.trend_settings = trend_settings or TrendSettings()
        self.metrics = metrics

    def compare_pair(
        self,
        prices_a: Mapping[str, float],
        prices_b: Mapping[str, float],
        lane_a: LaneId,
        lane_b: LaneId
    ) -> Optional[ArbitrageOpportunity]:
        """Best token opportunity between two lanes, if any clears the minimum spread"""
        best: Optional[ArbitrageOpportunity] = None

        for token, price_a in prices_a.items():
            price_b = prices_b.get(token)
            if price_b is None:
                continue
            if price_a <= 0 or price_b <= 0:
                logger.warning("invalid_token_price", token=token, lane_a=lane_a, lane_b=lane_b)
                continue

            price_diff = price_b - price_a
            profit_percent = abs(price_diff) / price_a * 100
            if profit_percent <= self.settings.min_spread_pct:
                continue

            # Buy on the cheaper lane, sell on the dearer one
            if price_diff > 0:
                buy_lane, sell_lane, buy_price, sell_price = lane_a, lane_b, price_a, price_b
            else:
                buy_lane, sell_lane, buy_price, sell_price = lane_b, lane_a, price_b, price_a

            candidate = ArbitrageOpportunity(
                token=token,
                buy_lane=buy_lane,
                sell_lane=sell_lane,
                buy_price=buy_price,
                sell_price=sell_price,
                profit_percent=profit_percent,
                profitable=profit_percent > self.settings.fee_threshold_pct
            )
            if best is None or candidate.profit_percent > best.profit_percent:
                best = candidate

        return best

    def assess_market_conditions(
        self,
        lanes: List[LaneId],
        prices: Mapping[LaneId, Mapping[str, float]]
    ) -> Optional[MarketConditions]:
        """Cross-lane price dispersion averaged over the first lane's tokens"""
        tokens = list(prices[lanes[0]].keys())
        variations = []
        for token in tokens:
            token_prices = [prices[lane][token] for lane in lanes if prices[lane].get(token)]
            variations.append(calculate_volatility(
                token_prices,
                self.trend_settings.volatility_medium,
                self.trend_settings.volatility_high
            ).coefficient_of_variation)

        if not variations:
            return None

        avg_variation = sum(variations) / len(variations)
        if avg_variation > 5:
            volatility = VolatilityLevel.HIGH
        elif avg_variation > 2:
            volatility = VolatilityLevel.MEDIUM
        else:
            volatility = VolatilityLevel.LOW

        if avg_variation > 10:
            risk = RiskLevel.HIGH
        elif avg_variation > 5:
            risk = RiskLevel.MEDIUM
        else:
            risk = RiskLevel.LOW

        return MarketConditions(
            volatility=volatility,
            arbitrage_activity="active" if avg_variation > 3 else "quiet",
            risk_level=risk
        )

    def detect(self, snapshot: FleetSnapshot) -> ArbitrageScan:
        """Scan every unordered lane pair for price discrepancies"""
        scan = ArbitrageScan(timestamp=snapshot.captured_at)

        if len(snapshot.lanes) < 2:
            scan.message = "Need at least 2 chains for arbitrage detection"
            logger.info("arbitrage_skipped", reason="insufficient_lanes", lanes=len(snapshot.lanes))
            return scan

        lanes = [lane for lane in snapshot.lanes if snapshot.prices.get(lane)]
        if len(lanes) < 2:
            scan.message = "Price data is available for fewer than 2 chains"
            logger.info("arbitrage_skipped", reason="insufficient_prices", lanes=len(lanes))
            return scan

        opportunities = []
        for i in range(len(lanes)):
            for j in range(i + 1, len(lanes)):
                scan.pairs_scanned += 1
                opportunity = self.compare_pair(
                    snapshot.prices[lanes[i]],
                    snapshot.prices[lanes[j]],
                    lanes[i],
                    lanes[j]
                )
                if opportunity is not None and opportunity.profitable:
                    opportunities.append(opportunity)

        scan.opportunities = sorted(opportunities, key=lambda o: o.profit_percent, reverse=True)
        scan.market_conditions = self.assess_market_conditions(lanes, snapshot.prices)

        if self.metrics is not None:
            self.metrics.set_gauge("arbitrage_opportunities", scan.total_opportunities)

        logger.info(
            "arbitrage_scanned",
            pairs=scan.pairs_scanned,
            opportunities=scan.total_opportunities,
            best_profit=scan.best_opportunity.profit_percent if scan.best_opportunity else None
        )
        return scan
