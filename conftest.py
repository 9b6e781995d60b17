"""
Shared pytest fixtures for the Authorization Service.
"""

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry

from service_authorization.app.persistence.sql import SQLRuleStore
from service_authorization.app.service import AuthorizationService
from shared.metrics import MetricsCollector


SCENARIO_POLICY = """p,alice,tenant1,doc1,read
g,alice,editors,tenant1
p,editors,tenant1,doc1,write
"""


@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def database_url(tmp_path):
    """SQLite database file standing in for Postgres."""
    return f"sqlite:///{tmp_path / 'rules.db'}"


@pytest.fixture
def store(database_url):
    """Create a started rule store."""
    store = SQLRuleStore.from_url(database_url)
    store.start()
    yield store
    store.close()


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    """Tracer recording finished spans in memory."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("authorization-tests")


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MetricsCollector("authorization", registry)


@pytest.fixture
def service(store, tracer, metrics):
    """Create AuthorizationService instance."""
    return AuthorizationService(store, tracer=tracer, metrics=metrics)


@pytest.fixture
def scenario_policy():
    return SCENARIO_POLICY
