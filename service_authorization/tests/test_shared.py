"""
Unit tests for the shared logging, tracing, metrics and error helpers.
"""

import pytest
from opentelemetry.trace import StatusCode

from shared.config import AuthorizationSettings
from shared.errors import AccessDeniedError, ParseError, StoreConnectError
from shared.logging import ServiceContext, add_trace_context
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation


class TestErrors:
    """Test cases for the error taxonomy."""

    def test_error_response(self):
        """Errors render the standard response body."""
        error = ParseError("unknown policy type: x", 3, "x", ["x", "a"])

        response = error.to_response()

        assert response.code == "PARSE_ERROR"
        assert response.message == "unknown policy type: x"
        assert response.details == {"row": 3, "ptype": "x", "record": ["x", "a"]}
        assert response.trace_id is None

    def test_error_response_carries_trace_id(self, tracer):
        """Errors raised inside a span report its trace id."""
        error = StoreConnectError()

        with tracer.start_as_current_span("op") as span:
            response = error.to_response()

        assert response.trace_id == f"{span.get_span_context().trace_id:032x}"

    def test_status_codes(self):
        assert AccessDeniedError("a", "b", "c", "d").status_code == 403
        assert ParseError("bad", 1).status_code == 400
        assert StoreConnectError().status_code == 503


class TestLogging:
    """Test cases for the structlog processors."""

    def test_service_context(self):
        event = ServiceContext("authorization")(None, "info", {"event": "Enforce"})

        assert event["service"] == "authorization"

    def test_trace_context_outside_span(self):
        """No ids are added without an active span."""
        assert add_trace_context(None, "info", {"event": "Enforce"}) == {"event": "Enforce"}

    def test_trace_context_inside_span(self, tracer):
        with tracer.start_as_current_span("CheckAccess") as span:
            event = add_trace_context(None, "info", {"event": "Enforce"})

        context = span.get_span_context()
        assert event["trace_id"] == f"{context.trace_id:032x}"
        assert event["span_id"] == f"{context.span_id:016x}"


class TestTraceOperation:
    """Test cases for trace_operation."""

    def test_attributes(self, tracer, span_exporter):
        with trace_operation(tracer, "AddPolicy", **{"authorization.rules": 2}):
            pass

        span = span_exporter.get_finished_spans()[0]
        assert span.name == "AddPolicy"
        assert span.attributes["authorization.rules"] == 2
        assert span.status.status_code == StatusCode.UNSET

    def test_error_marks_span(self, tracer, span_exporter):
        """Errors propagate and mark the span failed with their message."""
        with pytest.raises(ValueError):
            with trace_operation(tracer, "LoadFromText"):
                raise ValueError("bad row")

        span = span_exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "bad row"
        assert span.attributes["error.message"] == "bad row"


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_decisions(self, registry):
        metrics = MetricsCollector("authorization", registry)

        metrics.record_decision(True, 0.0001)
        metrics.record_decision(False)

        assert registry.get_sample_value("authorization_checks_total", {"decision": "allow"}) == 1.0
        assert registry.get_sample_value("authorization_checks_total", {"decision": "deny"}) == 1.0
        assert registry.get_sample_value("authorization_check_duration_seconds_count") == 1.0

    def test_rules_added_skips_zero(self, registry):
        metrics = MetricsCollector("authorization", registry)

        metrics.record_rules_added("p", 0)

        assert registry.get_sample_value("authorization_rules_added_total", {"ptype": "p"}) is None

    def test_service_info(self, registry):
        MetricsCollector("authorization", registry)

        assert registry.get_sample_value(
            "service_info", {"service": "authorization", "version": "1.0.0"}
        ) == 1.0

    def test_errors(self, registry):
        metrics = MetricsCollector("authorization", registry)

        metrics.record_error("EVALUATION_ERROR")

        assert registry.get_sample_value(
            "errors_total", {"error_type": "EVALUATION_ERROR", "service": "authorization"}
        ) == 1.0


class TestSettings:
    """Test cases for AuthorizationSettings."""

    def test_defaults(self):
        settings = AuthorizationSettings()

        assert settings.service_name == "authorization"
        assert settings.rules_table == "authorization_rules"
        assert settings.policy_file is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_DATABASE_URL", "sqlite://")
        monkeypatch.setenv("AUTHZ_PORT", "9000")

        settings = AuthorizationSettings()

        assert settings.database_url == "sqlite://"
        assert settings.port == 9000
