"""Shared test fixtures that don't affect live code"""

import pytest
from typing import Any, Dict
from prometheus_client import CollectorRegistry

from chain_intelligence.config.settings import IntelligenceSettings
from chain_intelligence.core.types import FleetSnapshot
from chain_intelligence.engine import ChainIntelligence
from chain_intelligence.monitoring.metrics import MetricsManager
from tests.utils.test_utils import create_metrics_payload, create_snapshot


@pytest.fixture
def registry() -> CollectorRegistry:
    """Fresh Prometheus registry per test"""
    return CollectorRegistry()


@pytest.fixture
def settings() -> IntelligenceSettings:
    """Default settings, independent of any local .env file"""
    return IntelligenceSettings(_env_file=None)


@pytest.fixture
def metrics_manager(registry) -> MetricsManager:
    """Metrics manager bound to the test registry"""
    return MetricsManager(registry)


@pytest.fixture
def scenario_payloads() -> Dict[str, Dict[str, Any]]:
    """A healthy lane next to a slow, congested one"""
    return {
        'A': create_metrics_payload(response_time=100, throughput=900, gas_price=0.00001, load=20, uptime=99.9),
        'B': create_metrics_payload(response_time=400, throughput=400, gas_price=0.00002, load=85, uptime=99)
    }


@pytest.fixture
def scenario_snapshot(scenario_payloads) -> FleetSnapshot:
    """Snapshot of the two-lane scenario"""
    return create_snapshot(scenario_payloads)


@pytest.fixture
def engine(settings, registry) -> ChainIntelligence:
    """Two-lane engine"""
    return ChainIntelligence(['A', 'B'], settings=settings, registry=registry)
