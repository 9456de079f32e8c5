"""Tests for cross-lane arbitrage detection"""

import pytest

from chain_intelligence.analysis.arbitrage import ArbitrageDetector
from chain_intelligence.config.settings import ArbitrageSettings
from chain_intelligence.core.types import RiskLevel, VolatilityLevel
from tests.utils.test_utils import create_metrics_payload, create_snapshot


@pytest.fixture
def detector(metrics_manager):
    return ArbitrageDetector(ArbitrageSettings(), metrics=metrics_manager)


def snapshot_with_prices(prices):
    return create_snapshot({lane: create_metrics_payload() for lane in prices}, prices=prices)


def test_two_percent_spread(detector, metrics_manager):
    """Test a 2% gap is profitable, bought low and sold high"""
    scan = detector.detect(snapshot_with_prices({'A': {'KDA': 1.00}, 'B': {'KDA': 1.02}}))

    assert scan.total_opportunities == 1
    best = scan.best_opportunity
    assert best.token == 'KDA'
    assert best.profit_percent == pytest.approx(2.0)
    assert best.profitable is True
    assert best.buy_lane == 'A'
    assert best.sell_lane == 'B'
    assert best.buy_price == 1.00
    assert best.sell_price == 1.02
    assert scan.pairs_scanned == 1
    assert metrics_manager.get_sample_value('arbitrage_opportunities') == 1


def test_reverse_direction(detector):
    """Test buying happens on the cheaper lane whichever comes first"""
    scan = detector.detect(snapshot_with_prices({'A': {'KDA': 1.05}, 'B': {'KDA': 1.00}}))

    assert scan.best_opportunity.buy_lane == 'B'
    assert scan.best_opportunity.sell_lane == 'A'


def test_identical_prices(detector):
    """Test identical price sets produce no opportunities"""
    prices = {'KDA': 1.0, 'USDC': 1.0, 'ETH': 3000.0}
    scan = detector.detect(snapshot_with_prices({'A': dict(prices), 'B': dict(prices)}))

    assert scan.opportunities == []
    assert scan.best_opportunity is None
    assert scan.market_conditions.volatility == VolatilityLevel.LOW
    assert scan.market_conditions.arbitrage_activity == "quiet"


def test_unprofitable_gap_dropped(detector):
    """Test gaps between the candidate and fee thresholds are not reported"""
    scan = detector.detect(snapshot_with_prices({'A': {'KDA': 1.000}, 'B': {'KDA': 1.003}}))

    assert scan.total_opportunities == 0
    assert scan.pairs_scanned == 1


def test_candidate_marked_unprofitable(detector):
    """Test the pair comparison flags gaps under the fee threshold"""
    opportunity = detector.compare_pair({'KDA': 1.0}, {'KDA': 1.003}, 'A', 'B')

    assert opportunity is not None
    assert opportunity.profitable is False


def test_best_token_per_pair(detector):
    """Test only the widest token gap is kept for a pair"""
    scan = detector.detect(snapshot_with_prices({
        'A': {'KDA': 1.00, 'USDC': 1.00},
        'B': {'KDA': 1.02, 'USDC': 1.05}
    }))

    assert scan.total_opportunities == 1
    assert scan.best_opportunity.token == 'USDC'


def test_opportunities_sorted(detector):
    """Test opportunities from all pairs are ranked by profit"""
    scan = detector.detect(snapshot_with_prices({
        'A': {'KDA': 1.00},
        'B': {'KDA': 1.02},
        'C': {'KDA': 1.10}
    }))

    assert scan.pairs_scanned == 3
    profits = [o.profit_percent for o in scan.opportunities]
    assert profits == sorted(profits, reverse=True)
    assert (scan.best_opportunity.buy_lane, scan.best_opportunity.sell_lane) == ('A', 'C')
    assert scan.market_conditions.volatility == VolatilityLevel.MEDIUM
    assert scan.market_conditions.arbitrage_activity == "active"
    assert scan.market_conditions.risk_level == RiskLevel.LOW


def test_single_lane(detector):
    """Test arbitrage needs two lanes"""
    scan = detector.detect(snapshot_with_prices({'A': {'KDA': 1.0}}))

    assert scan.opportunities == []
    assert scan.message == "Need at least 2 chains for arbitrage detection"
    assert scan.to_dict()['bestOpportunity'] is None


def test_missing_prices(detector):
    """Test lanes without price data are skipped"""
    snapshot = create_snapshot(
        {'A': create_metrics_payload(), 'B': create_metrics_payload()},
        prices={'A': {'KDA': 1.0}}
    )
    scan = detector.detect(snapshot)

    assert scan.opportunities == []
    assert scan.message is not None
