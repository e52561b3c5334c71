import logging

import httpx
from fastapi.testclient import TestClient

from gateway.cors import CorsMode, CorsPolicy

TEST_ORIGIN = "http://localhost:5173"
UNLISTED = "https://evil.example.com"


def test_preflight_from_listed_origin_echoes_origin(client, backends):
    response = client.options(
        "/api/auth/login",
        headers={"Origin": TEST_ORIGIN, "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == TEST_ORIGIN
    assert "POST" in response.headers["access-control-allow-methods"]
    assert backends.requests == []


def test_preflight_from_unlisted_origin_is_denied(client, backends):
    response = client.options(
        "/api/auth/login",
        headers={"Origin": UNLISTED, "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 204
    assert "access-control-allow-origin" not in response.headers
    assert "access-control-allow-methods" not in response.headers
    assert backends.requests == []


def test_options_on_any_path_is_answered_by_gateway(client):
    response = client.options("/whatever/else")

    assert response.status_code == 204
    assert response.content == b""


def test_error_responses_carry_cors_headers(client):
    response = client.get("/unknown/path", headers={"Origin": TEST_ORIGIN})

    assert response.status_code == 404
    assert response.headers["access-control-allow-origin"] == TEST_ORIGIN


def test_backend_cors_headers_are_replaced(client, backends):
    backends.on(
        "ehr.test",
        lambda request: httpx.Response(
            200,
            json=[],
            headers={"Access-Control-Allow-Origin": "*", "Vary": "Accept-Encoding"},
        ),
    )

    response = client.get("/api/ehr/patients", headers={"Origin": TEST_ORIGIN})

    assert response.headers.get_list("access-control-allow-origin") == [TEST_ORIGIN]
    assert "Origin" in response.headers["vary"]
    assert "Accept-Encoding" in response.headers["vary"]


def test_denied_origin_strips_backend_wildcard(client, backends):
    backends.on(
        "ehr.test",
        lambda request: httpx.Response(
            200, json=[], headers={"Access-Control-Allow-Origin": "*"}
        ),
    )

    response = client.get("/api/ehr/patients", headers={"Origin": UNLISTED})

    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def test_permissive_mode_echoes_and_warns(make_app, backends, caplog):
    backends.on("ehr.test", lambda request: httpx.Response(200, json=[]))
    client = TestClient(make_app(policy=CorsPolicy([TEST_ORIGIN], CorsMode.PERMISSIVE)))

    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        response = client.get("/api/ehr/patients", headers={"Origin": UNLISTED})

    assert response.headers["access-control-allow-origin"] == UNLISTED
    assert any("Permissive mode" in r.getMessage() for r in caplog.records)
