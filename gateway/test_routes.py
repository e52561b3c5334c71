import httpx
from fastapi.testclient import TestClient


def _up(request):
    return httpx.Response(200, json={"status": "OK"})


class TestHealthEndpoints:
    def test_health_reports_config_and_probes(self, client, backends):
        backends.on("auth.test", _up)
        backends.on("ehr.test", _up)

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "API Gateway is running"
        assert body["services"] == {
            "auth": "http://auth.test",
            "ehr": "http://ehr.test",
            "ai": "http://ai.test",
        }
        statuses = {r["service"]: r["status"] for r in body["serviceHealth"]}
        assert statuses == {"AUTH": "UP", "EHR": "UP", "AI": "DOWN"}
        assert body["timestamp"].endswith("Z")

    def test_health_is_200_when_everything_is_down(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert all(r["status"] == "DOWN" for r in response.json()["serviceHealth"])

    def test_health_is_200_when_a_probe_raises(self, client, backends):
        def explode(request):
            raise RuntimeError("unexpected")

        backends.on("ehr.test", explode)

        response = client.get("/health")

        assert response.status_code == 200
        statuses = {r["service"]: r["status"] for r in response.json()["serviceHealth"]}
        assert statuses["EHR"] == "DOWN"

    def test_status_endpoint(self, client, backends):
        backends.on("ai.test", _up)

        response = client.get("/api/status")

        assert response.status_code == 200
        body = response.json()
        assert body["gateway"] == "UP"
        assert [s["service"] for s in body["services"]] == ["AUTH", "EHR", "AI"]
        assert body["services"][2]["statusCode"] == 200


class TestDirectory:
    def test_lists_routes_without_calling_backends(self, client, backends):
        response = client.get("/api")

        assert response.status_code == 200
        body = response.json()
        assert set(body["endpoints"]) == {"auth", "ehr", "ai"}
        assert body["debug"]["status"] == "GET /api/status"
        assert backends.requests == []


class TestNotFound:
    def test_unknown_path(self, client):
        response = client.get("/unknown/path")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Route not found"
        assert body["path"] == "/unknown/path"
        assert body["method"] == "GET"
        assert body["message"] == "The requested endpoint does not exist"

    def test_unknown_api_prefix(self, client, backends):
        response = client.post("/api/billing/invoices", json={})

        assert response.status_code == 404
        assert response.json()["path"] == "/api/billing/invoices"
        assert response.json()["method"] == "POST"
        assert backends.requests == []

    def test_query_string_is_reported(self, client):
        response = client.get("/nope?x=1")

        assert response.json()["path"] == "/nope?x=1"

    def test_wrong_method_on_gateway_endpoint(self, client):
        response = client.delete("/health")

        assert response.status_code == 404
        assert response.json()["method"] == "DELETE"

    def test_non_get_on_status_is_not_forwarded(self, client, backends):
        response = client.post("/api/status")

        assert response.status_code == 404
        assert backends.requests == []


def test_identity_backend_down_yields_bad_gateway_with_cors(make_app):
    client = TestClient(make_app())

    response = client.post(
        "/api/auth/login",
        json={"email": "a@b.com", "password": "x"},
        headers={"Origin": "http://localhost:5173"},
    )

    assert response.status_code == 502
    assert response.json()["service"] == "AUTH"
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
