"""Integration tests for the intelligence engine, report builder and sampler"""

import asyncio
import json
import pytest
import structlog
from datetime import timedelta
from prometheus_client import CollectorRegistry

from chain_intelligence.config.settings import IntelligenceSettings, TrendSettings
from chain_intelligence.core.error_handling import (
    InsufficientLanesError, NoLanesConfiguredError, UnknownLaneError
)
from chain_intelligence.core.interfaces import StaticMetricsProvider
from chain_intelligence.core.types import HealthRating, Priority, RecommendationType, RouteKind
from chain_intelligence.engine import ChainIntelligence, IntelligenceService
from tests.utils.test_utils import BASE_TIME, create_hourly_history, create_metrics_payload


def test_zero_lanes_fail_fast(settings):
    """Test an empty lane set is the one fatal error"""
    with pytest.raises(NoLanesConfiguredError):
        ChainIntelligence([], settings=settings)


def test_duplicate_lanes_rejected(settings):
    """Test duplicated lane identifiers are rejected"""
    with pytest.raises(NoLanesConfiguredError):
        ChainIntelligence(['A', 'B', 'A'], settings=settings)


def test_from_settings(registry):
    """Test engines built from the configured lane set"""
    settings = IntelligenceSettings(_env_file=None, lanes=['0', '1'])
    engine = ChainIntelligence.from_settings(settings, registry=registry, configure_logs=False)

    assert engine.lanes == ('0', '1')

    with pytest.raises(NoLanesConfiguredError):
        ChainIntelligence.from_settings(
            IntelligenceSettings(_env_file=None), registry=CollectorRegistry(), configure_logs=False
        )


def test_from_settings_configures_logging(registry, capsys):
    """Test log level and JSON rendering come from settings"""
    settings = IntelligenceSettings(_env_file=None, lanes=['A'], log_level="warning", log_json=True)
    try:
        ChainIntelligence.from_settings(settings, registry=registry)
        logger = structlog.get_logger("test")
        logger.info("hidden_event")
        logger.warning("visible_event", lane="A")

        lines = capsys.readouterr().err.strip().splitlines()
        assert not any("engine_initialized" in line or "hidden_event" in line for line in lines)
        event = json.loads(lines[-1])
        assert event['event'] == "visible_event"
        assert event['level'] == "warning"
    finally:
        structlog.reset_defaults()


def test_engines_coexist(settings):
    """Test engines own independent registries"""
    first = ChainIntelligence(['A'], settings=settings)
    second = ChainIntelligence(['A', 'B'], settings=settings)

    assert first.metrics.registry is not second.metrics.registry


def test_capture(engine, scenario_payloads):
    """Test capture keys by configured lane and excludes the rest"""
    payloads = dict(scenario_payloads)
    payloads['Z'] = create_metrics_payload()
    del payloads['B']['gasPrice']

    snapshot = engine.capture(payloads, prices={'A': {'KDA': 1}, 'Z': {'KDA': 2}}, timestamp=BASE_TIME)

    assert snapshot.lanes == ('A', 'B')
    assert snapshot.scored_lanes == ('A',)
    assert snapshot.excluded == {'B': ('gas_price',)}
    assert dict(snapshot.prices) == {'A': {'KDA': 1.0}}
    assert snapshot.captured_at == BASE_TIME


def test_capture_absent_lane(engine, scenario_payloads):
    """Test a configured lane missing from the payload is excluded"""
    snapshot = engine.capture({'A': scenario_payloads['A']})

    assert snapshot.scored_lanes == ('A',)
    assert 'B' in snapshot.excluded


def test_capture_strict(engine, scenario_payloads):
    """Test strict capture rejects unconfigured lanes"""
    payloads = dict(scenario_payloads, Z=create_metrics_payload())

    with pytest.raises(UnknownLaneError):
        engine.capture(payloads, strict=True)


def test_capture_reports_schema_violations(engine, scenario_payloads):
    """Test out-of-range metrics and prices are logged as validation errors"""
    payloads = dict(scenario_payloads)
    payloads['A'] = dict(payloads['A'], loadPct=150)

    with structlog.testing.capture_logs() as events:
        snapshot = engine.capture(payloads, prices={'A': {'KDA': -1}})

    failures = [e for e in events if e['event'] == "payload_validation_errors"]
    assert len(failures) == 1
    assert any(error.startswith("Snapshot validation error at A/loadPct") for error in failures[0]['errors'])
    assert any(error.startswith("Prices validation error at A/KDA") for error in failures[0]['errors'])
    assert failures[0]['log_level'] == "warning"
    assert snapshot.lanes == ('A', 'B')


def test_capture_valid_payload_logs_no_errors(engine, scenario_payloads):
    """Test well-formed payloads pass validation silently"""
    with structlog.testing.capture_logs() as events:
        engine.capture(scenario_payloads, prices={'A': {'KDA': 1.0}})

    assert not [e for e in events if e['event'] == "payload_validation_errors"]


def test_optimize_route_uses_healthy_lanes(engine, scenario_payloads):
    """Test routing over a snapshot skips lanes without metrics"""
    snapshot = engine.capture({'A': scenario_payloads['A']})

    result = engine.optimize_route({'type': 'cross-chain'}, snapshot=snapshot)

    assert result.recommendation.route.lanes == ('A',)
    assert result.message is not None
    assert result.to_dict()['operation'] == {'kind': 'cross-lane'}


def test_optimize_route_all_lanes(engine):
    """Test routing without a snapshot covers the whole lane set"""
    result = engine.optimize_route({'kind': RouteKind.CROSS_LANE})

    assert len(result.routes) == 4
    assert engine.metrics.get_sample_value('analysis_duration_seconds_count', {'analysis': 'routing'}) == 1


async def test_report_scenario(engine, scenario_snapshot):
    """Test the consolidated report for the two-lane scenario"""
    report = await engine.generate_report(scenario_snapshot)

    assert report.degraded_sections == []
    assert report.performance.best_performer == 'A'
    assert report.costs.savings.cheapest_lane == 'A'
    assert len(report.load_balancing.rebalance_actions) == 2
    assert report.arbitrage.total_opportunities == 0
    assert report.predictions.sample_count == 0

    health = report.summary.overall_health
    assert (health.performance, health.costs, health.load_balance) == (80, 70, 75)
    assert health.score == 75
    assert health.status == HealthRating.GOOD
    assert report.summary.total_chains == 2

    titles = [r.title for r in report.summary.top_recommendations]
    assert titles == [
        "Slow Chain Detection",
        "Reduce load on Chain B",
        "Load Balancing Opportunity",
        "Cost Optimization",
        "Increase load on Chain A",
    ]

    assert report.metadata.report_version == "1.0"
    assert report.metadata.next_update == scenario_snapshot.captured_at + timedelta(seconds=300)
    assert engine.metrics.get_sample_value('fleet_health_score') == 75
    assert engine.metrics.get_sample_value('recommendations_total', {'priority': 'high'}) == 2


async def test_report_recommendations_sorted_and_truncated(engine, scenario_snapshot):
    """Test top recommendations are ordered by priority and capped"""
    engine.settings.report.top_recommendations = 3
    report = await engine.generate_report(scenario_snapshot)

    priorities = [r.priority.rank for r in report.summary.top_recommendations]
    assert len(priorities) == 3
    assert priorities == sorted(priorities, reverse=True)


async def test_report_serialization(engine, scenario_snapshot):
    """Test the report renders to camelCase dictionaries"""
    history = create_hourly_history([40, 50, 60])
    report = (await engine.generate_report(scenario_snapshot, history)).to_dict()

    assert set(report) == {
        'timestamp', 'summary', 'performance', 'costs', 'loadBalancing',
        'arbitrage', 'predictions', 'metadata', 'degradedSections'
    }
    assert report['summary']['healthScore'] == 75
    assert report['performance']['lanes']['B']['status'] == 'congested'
    assert report['predictions']['sampleCount'] == 3
    assert report['metadata']['confidence'] == 'medium'


async def test_report_with_history(engine, scenario_snapshot):
    """Test history may mix samples, snapshots and raw documents"""
    history = [
        scenario_snapshot,
        {
            'timestamp': (BASE_TIME + timedelta(hours=1)).isoformat(),
            'chains': {'A': {'responseTime': 110, 'throughput': 900, 'gasPrice': 0.00001, 'load': 22}}
        },
    ] + create_hourly_history([30, 30])

    report = await engine.generate_report(scenario_snapshot, history)

    assert report.predictions.sample_count == 4
    assert report.predictions.performance_trends['A']['responseTime'].predicted_next_value is not None


async def test_report_isolates_failed_section(engine, scenario_snapshot, monkeypatch):
    """Test one failing sub-analysis leaves the rest of the report intact"""
    def broken(snapshot):
        raise RuntimeError("price feed unavailable")

    monkeypatch.setattr(engine, 'detect_arbitrage', broken)

    report = await engine.generate_report(scenario_snapshot)

    assert report.arbitrage is None
    assert report.degraded_sections == ['arbitrage']
    assert report.performance is not None
    assert report.costs is not None

    top = report.summary.top_recommendations
    degraded = [r for r in top if r.type == RecommendationType.DEGRADED_ANALYSIS]
    assert len(degraded) == 1
    assert degraded[0].priority == Priority.HIGH
    assert 'price feed unavailable' in degraded[0].description
    assert engine.error_handler.get_error_summary('arbitrage')['total_errors'] == 1


async def test_report_without_metrics(engine):
    """Test a snapshot with no usable lanes degrades instead of failing"""
    snapshot = engine.capture({'A': {'loadPct': 10}}, timestamp=BASE_TIME)

    report = await engine.generate_report(snapshot)

    assert report.degraded_sections == ['performance', 'costs', 'loadBalancing']
    assert report.performance is None
    assert report.arbitrage is not None
    assert report.summary.overall_health.score == 68
    assert report.summary.overall_health.status == HealthRating.FAIR
    assert all(r.priority == Priority.HIGH for r in report.summary.top_recommendations)

    with pytest.raises(InsufficientLanesError):
        engine.analyze_performance(snapshot)


async def test_concurrent_route_and_report(engine, scenario_snapshot):
    """Test route optimization can run alongside a report"""
    report, route = await asyncio.gather(
        engine.generate_report(scenario_snapshot),
        asyncio.to_thread(engine.optimize_route, {'kind': 'direct'}, scenario_snapshot)
    )

    assert report.performance.best_performer == 'A'
    assert route.recommendation.route.lanes == ('A',)


@pytest.fixture
def provider(scenario_payloads):
    return StaticMetricsProvider(scenario_payloads, prices={'A': {'KDA': 1.00}, 'B': {'KDA': 1.02}})


async def test_service_run_once(engine, provider):
    """Test one sampling tick produces a report and a history point"""
    service = IntelligenceService(engine, provider, provider, interval=60)

    report = await service.run_once()

    assert service.latest_report is report
    assert service.latest_snapshot.scored_lanes == ('A', 'B')
    assert len(service.history) == 1
    assert report.arbitrage.best_opportunity.sell_lane == 'B'
    assert report.predictions.sample_count == 1


async def test_service_history_is_bounded(registry, provider):
    """Test the rolling window keeps the newest samples"""
    settings = IntelligenceSettings(_env_file=None, trends=TrendSettings(history_size=2))
    engine = ChainIntelligence(['A', 'B'], settings=settings, registry=registry)
    service = IntelligenceService(engine, provider)

    await service.run_once()
    first_snapshot = service.latest_snapshot
    provider.update('B', loadPct=50)
    await service.run_once()
    await service.run_once()

    assert len(service.history) == 2
    assert service.latest_snapshot is not first_snapshot
    assert first_snapshot.metrics['B'].load_pct == 85
    assert service.latest_snapshot.metrics['B'].load_pct == 50
    assert service.latest_report.arbitrage.total_opportunities == 0


async def test_service_start_stop(engine, provider):
    """Test the periodic loop samples until stopped"""
    service = IntelligenceService(engine, provider, interval=0.01)

    service.start()
    for _ in range(100):
        if len(service.history) >= 2:
            break
        await asyncio.sleep(0.01)
    await service.stop()

    assert len(service.history) >= 2
    assert service.latest_report is not None
    assert service.running is False


async def test_service_survives_provider_failure(engine):
    """Test a failing tick is recorded and the loop keeps running"""
    class FailingProvider(StaticMetricsProvider):
        async def fetch_metrics(self, lanes):
            raise ConnectionError("telemetry offline")

    service = IntelligenceService(engine, FailingProvider({}), interval=0.01)

    service.start()
    for _ in range(100):
        if engine.error_handler.get_error_summary('service')['total_errors'] >= 2:
            break
        await asyncio.sleep(0.01)
    await service.stop()

    assert engine.error_handler.get_error_summary('service')['total_errors'] >= 2
    assert service.latest_report is None
