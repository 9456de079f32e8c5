"""Tests for snapshot and sample value types"""

import pytest
from datetime import datetime, timezone

from chain_intelligence.core.error_handling import InvalidMetricError, MissingMetricError
from chain_intelligence.core.interfaces import StaticMetricsProvider
from chain_intelligence.core.types import (
    FleetSnapshot, HistoricalSample, MetricsSnapshot, Priority, RiskLevel,
    RouteKind, format_lanes, lane_id
)
from tests.utils.test_utils import create_metrics_payload, create_snapshot


def test_snapshot_from_camel_case():
    """Test provider payloads in camelCase"""
    snapshot = MetricsSnapshot.from_dict(1, create_metrics_payload(load=45))

    assert snapshot.lane_id == '1'
    assert snapshot.load_pct == 45
    assert snapshot.to_dict()['loadPct'] == 45


def test_snapshot_from_snake_case():
    """Test payloads with snake_case field names"""
    snapshot = MetricsSnapshot.from_dict('A', {
        'response_time_ms': 120,
        'throughput_ops_per_sec': 300,
        'gas_price': 0.0001,
        'load_pct': 10,
        'uptime_pct': 99.5
    })

    assert snapshot.response_time_ms == 120
    assert snapshot.uptime_pct == 99.5


def test_missing_metric():
    """Test absent fields are named in the error"""
    payload = create_metrics_payload()
    del payload['gasPrice']
    del payload['uptimePct']

    with pytest.raises(MissingMetricError) as exc_info:
        MetricsSnapshot.from_dict('A', payload)

    assert exc_info.value.lane_id == 'A'
    assert exc_info.value.fields == ('gas_price', 'uptime_pct')


@pytest.mark.parametrize("field,value", [
    ('loadPct', 120),
    ('uptimePct', -1),
    ('gasPrice', 0),
    ('responseTimeMs', -5),
    ('throughputOpsPerSec', float('nan')),
])
def test_invalid_metric(field, value):
    """Test out-of-range values are rejected"""
    payload = create_metrics_payload()
    payload[field] = value

    with pytest.raises(InvalidMetricError):
        MetricsSnapshot.from_dict('A', payload)


def test_fleet_snapshot_is_immutable():
    """Test snapshot mappings cannot be mutated after capture"""
    snapshot = create_snapshot({'A': create_metrics_payload()}, prices={'A': {'KDA': 1.0}})

    with pytest.raises(TypeError):
        snapshot.metrics['B'] = snapshot.metrics['A']
    with pytest.raises(TypeError):
        snapshot.prices['A']['KDA'] = 2.0
    with pytest.raises(AttributeError):
        snapshot.lanes = ('B',)


def test_scored_lanes_follow_configuration():
    """Test scored lanes keep configuration order and skip missing metrics"""
    base = create_snapshot({'A': create_metrics_payload(), 'C': create_metrics_payload()})
    snapshot = FleetSnapshot(
        lanes=(lane_id('C'), lane_id('B'), lane_id('A')),
        metrics=base.metrics
    )

    assert snapshot.scored_lanes == ('C', 'A')
    assert snapshot.captured_at.tzinfo is not None


def test_historical_sample_from_epoch_millis():
    """Test history timestamps given as epoch milliseconds"""
    sample = HistoricalSample.from_dict({
        'timestamp': 1714521600000,
        'chains': {
            '1': {'responseTime': 100, 'throughput': 500, 'gasPrice': 0.00001, 'load': 40},
            '2': {'responseTime': 100}
        }
    })

    assert sample.timestamp == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert list(sample.lanes) == ['1']
    assert sample.lanes['1'].load_pct == 40


def test_historical_sample_from_iso_string():
    """Test history timestamps given as ISO strings"""
    sample = HistoricalSample.from_dict({'timestamp': '2024-05-01T13:00:00+00:00', 'lanes': {}})

    assert sample.timestamp.hour == 13
    assert dict(sample.lanes) == {}


def test_historical_sample_from_fleet(scenario_snapshot):
    """Test a fleet snapshot becomes one history point"""
    sample = HistoricalSample.from_fleet(scenario_snapshot)

    assert sample.timestamp == scenario_snapshot.captured_at
    assert sample.lanes['B'].load_pct == 85


def test_enum_ranks_and_parsing():
    """Test ranks and operation kind aliases"""
    assert Priority.HIGH.rank > Priority.MEDIUM.rank > Priority.LOW.rank
    assert RiskLevel.HIGH.rank > RiskLevel.MEDIUM.rank > RiskLevel.LOW.rank
    assert RouteKind.parse('cross-chain') == RouteKind.CROSS_LANE
    assert RouteKind.parse('Cross_Lane') == RouteKind.CROSS_LANE
    assert RouteKind.parse(' Direct ') == RouteKind.DIRECT
    assert RouteKind.parse(RouteKind.DIRECT) == RouteKind.DIRECT


@pytest.mark.parametrize("value", ['transfer', 'cross chain', '', None])
def test_unknown_route_kind_rejected(value):
    """Test unrecognised operation kinds raise instead of routing directly"""
    with pytest.raises(ValueError, match="Unknown route kind"):
        RouteKind.parse(value)


def test_format_lanes():
    """Test lane lists in recommendation text"""
    assert format_lanes(['B']) == "chain B"
    assert format_lanes(['B', 'C'], capitalize=True) == "Chains B, C"


@pytest.mark.asyncio
async def test_static_provider():
    """Test the static provider serves copies for configured lanes"""
    provider = StaticMetricsProvider(
        {1: create_metrics_payload(load=10)},
        prices={1: {'KDA': 1.0}}
    )
    provider.update(1, loadPct=70)

    metrics = await provider.fetch_metrics([lane_id(1), lane_id(2)])
    prices = await provider.fetch_prices([lane_id(1)])

    assert list(metrics) == ['1']
    assert metrics['1']['loadPct'] == 70
    assert prices == {'1': {'KDA': 1.0}}

    metrics['1']['loadPct'] = 0
    assert provider.metrics['1']['loadPct'] == 70
