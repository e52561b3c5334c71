import logging

import pytest
from prometheus_client import REGISTRY

from gateway.models import HealthCheckResult, HealthStatus
from gateway.observability import GatewayObserver


@pytest.fixture
def observer():
    return GatewayObserver(logger=logging.getLogger("test.gateway"))


def test_forwarded_logs_structured_fields(observer, caplog):
    with caplog.at_level(logging.INFO, logger="test.gateway"):
        observer.forwarded(
            "EHR",
            "GET",
            "/api/ehr/patients",
            "http://ehr.test/patients",
            200,
            0.0421,
            origin="http://localhost:5173",
        )

    record = caplog.records[-1]
    assert record.service == "EHR"
    assert record.method == "GET"
    assert record.path == "/api/ehr/patients"
    assert record.origin == "http://localhost:5173"
    assert record.status == 200
    assert record.duration_ms == 42.1


def test_forward_failed_counts_by_kind(observer, caplog):
    labels = {"service": "AUTH", "kind": "timeout"}
    before = REGISTRY.get_sample_value("gateway_upstream_failures_total", labels) or 0

    with caplog.at_level(logging.ERROR, logger="test.gateway"):
        observer.forward_failed("AUTH", "POST", "/api/auth/login", "timeout", "ReadTimeout", 10.0)

    assert REGISTRY.get_sample_value("gateway_upstream_failures_total", labels) == before + 1
    assert caplog.records[-1].error_kind == "timeout"


def test_probe_outcome_level(observer, caplog):
    down = HealthCheckResult(
        service="AI", status=HealthStatus.DOWN, url="http://ai.test", error="refused"
    )
    up = HealthCheckResult(service="AUTH", status=HealthStatus.UP, url="http://auth.test")

    with caplog.at_level(logging.INFO, logger="test.gateway"):
        observer.probed(up, 0.01)
        observer.probed(down, 0.01)

    assert caplog.records[0].levelno == logging.INFO
    assert caplog.records[1].levelno == logging.WARNING
    assert "error=refused" in caplog.records[1].getMessage()


def test_span_skips_empty_attributes(observer):
    with observer.span("proxy_request", {"proxy.method": "GET", "http.origin": None}) as span:
        span.set_attribute("proxy.status_code", 200)
