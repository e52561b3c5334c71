import pytest
from fastapi.testclient import TestClient

from gateway.app_proxy import RequestForwarder
from gateway.cors import CorsPolicy
from gateway.health import HealthProber
from gateway.routing import RouteTable
from gateway.utils_tests.backends import FakeBackends

TEST_ORIGIN = "http://localhost:5173"
TEST_BACKENDS = [
    ("AUTH", "/api/auth", "http://auth.test"),
    ("EHR", "/api/ehr", "http://ehr.test"),
    ("AI", "/api/ai", "http://ai.test"),
]


@pytest.fixture
def route_table():
    return RouteTable.from_backends(TEST_BACKENDS)


@pytest.fixture
def backends():
    return FakeBackends()


@pytest.fixture
def make_app(route_table, backends):
    """Build a gateway app whose backends are served by ``backends``."""
    from gateway.server import create_app

    def _make(
        policy=None,
        forward_timeout=1.0,
        probe_timeout=0.5,
        retry_enabled=False,
    ):
        transport = backends.transport
        return create_app(
            route_table=route_table,
            cors_policy=policy or CorsPolicy([TEST_ORIGIN]),
            prober=HealthProber(route_table, timeout=probe_timeout, transport=transport),
            forwarder=RequestForwarder(
                timeout=forward_timeout,
                retry_enabled=retry_enabled,
                retry_delay=0.01,
                transport=transport,
            ),
        )

    return _make


@pytest.fixture
def client(make_app):
    return TestClient(make_app())
