"""
Tests for api/app.py — create_app() factory, middleware, health, reference
data, and the recovery endpoints.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from api.app import create_app
from conftest import make_config


def _payload(email):
    return {
        "agree_to_terms": True, "full_name": "Awa Jallow", "email": email,
        "date_of_birth": "2001-04-12", "gender": "female", "organization": "",
        "region": "Banjul", "constituency": "Banjul North",
        "identification_type": "passport_number", "identification_number": "1234567",
    }


class TestAppFactory:
    def test_routes_registered(self, client):
        paths = {r.path for r in client.app.routes}
        for path in ("/health", "/api/v1/registrations", "/api/v1/voters",
                     "/api/v1/download", "/api/v1/aggregations", "/api/v1/admin/login",
                     "/api/v1/recovery", "/api/v1/reference/regions"):
            assert path in paths

    def test_builds_services_from_config(self, tmp_path):
        config = make_config(storage_path=tmp_path / "local.sqlite", store_url="")
        app = create_app(config=config, start_monitor=False)
        with TestClient(app) as c:
            assert c.get("/health").json()["status"] == "ok"
        assert app.state.services is None

    def test_health(self, client, services):
        services.ledger.record_pending("s1", _payload("a@example.com"))
        services.monitor.refresh_pending()
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["pending_backups"] == 1

    def test_health_degraded_when_storage_fails(self, client, storage):
        storage.close()
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"


class TestMiddleware:
    def test_security_and_request_id_headers(self, client):
        resp = client.get("/api/v1/reference/regions")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert len(resp.headers["X-Request-ID"]) == 8

    def test_admin_responses_not_cached(self, client, auth_headers):
        resp = client.get("/api/v1/voters", headers=auth_headers)
        assert resp.headers["Cache-Control"] == "private, no-store"

    def test_rate_limit(self, services):
        app = create_app(services, start_monitor=False,
                         config=make_config(rate_limit_default=2))
        with TestClient(app) as c:
            for _ in range(2):
                assert c.get("/api/v1/reference/id-types").status_code == 200
            resp = c.get("/api/v1/reference/id-types")
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"

    def test_submit_has_its_own_limit(self, services):
        app = create_app(services, start_monitor=False,
                         config=make_config(rate_limit_submit=1))
        with TestClient(app) as c:
            assert c.post("/api/v1/registrations", json=_payload("a@example.com")).status_code == 201
            assert c.post("/api/v1/registrations", json=_payload("b@example.com")).status_code == 429
            assert c.get("/api/v1/reference/regions").status_code == 200

    def test_health_not_rate_limited(self, services):
        app = create_app(services, start_monitor=False,
                         config=make_config(rate_limit_default=1))
        with TestClient(app) as c:
            for _ in range(3):
                assert c.get("/health").status_code == 200


class TestReference:
    def test_regions(self, client):
        resp = client.get("/api/v1/reference/regions")
        body = resp.json()
        assert len(body) == 7
        assert body[0]["name"] == "Banjul"
        assert resp.headers["Cache-Control"] == "max-age=3600"

    def test_constituencies(self, client):
        body = client.get("/api/v1/reference/regions/Kanifing/constituencies").json()
        assert "Bakau" in body

    def test_unknown_region(self, client):
        resp = client.get("/api/v1/reference/regions/Atlantis/constituencies")
        assert resp.status_code == 404

    def test_id_types(self, client):
        body = client.get("/api/v1/reference/id-types").json()
        assert {"value": "passport_number", "label": "Passport"} in body


class TestRecoveryEndpoints:
    def test_status_hides_payload(self, client, services):
        services.ledger.record_pending("s1", _payload("a@example.com"))
        services.storage.set_item("voter_submission_bad", "oops")
        body = client.get("/api/v1/recovery").json()
        assert body["pending"] == 1
        assert body["malformed"] == ["voter_submission_bad"]
        assert "payload" not in body["entries"][0]
        assert body["is_recovering"] is False

    def test_run_recovers(self, client, services, fake_store):
        services.ledger.record_pending("s1", _payload("a@example.com"))
        body = client.post("/api/v1/recovery/run").json()
        assert body["status"] == "completed"
        assert body["recovered"] == 1
        assert len(fake_store.tables["voters"]) == 1
        status = client.get("/api/v1/recovery").json()
        assert status["pending"] == 0
        assert status["last_report"]["recovered"] == 1
        assert status["notices"][-1]["kind"] == "recovered"

    def test_run_with_nothing_pending(self, client):
        assert client.post("/api/v1/recovery/run").json()["status"] == "nothing_pending"

    def test_online_schedules_scan(self, client, services):
        services.ledger.record_pending("s1", _payload("a@example.com"))
        resp = client.post("/api/v1/recovery/online")
        assert resp.status_code == 202
        assert resp.json()["status"] == "scheduled"
        services.monitor._online_timer.join(timeout=2)
        assert services.monitor.pending == 1

    def test_saved_submission_recovered_later(self, client, services, fake_store):
        fake_store.always_fail = True
        assert client.post("/api/v1/registrations", json=_payload("a@example.com")).status_code == 202
        fake_store.always_fail = False
        assert client.post("/api/v1/recovery/run").json()["recovered"] == 1
        assert fake_store.tables["voters"][0]["email"] == "a@example.com"
