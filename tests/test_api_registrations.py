"""
Tests for api/routes/registrations.py — public submission endpoints

201 on delivery, 202 when the payload was kept locally, 400 on
validation failure, 409 on a duplicate email, and per-step gate checks.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from api.routes.registrations import SAVED_LOCALLY_MESSAGE

URL = "/api/v1/registrations"


class TestSubmit:
    def test_delivered(self, client, valid_form, fake_store, ledger):
        resp = client.post(URL, json=valid_form)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "registered"
        assert body["attempts"] == 1
        assert body["record"]["email"] == "awa@example.com"
        assert len(fake_store.tables["voters"]) == 1
        assert ledger.keys() == []

    def test_saved_locally_when_store_down(self, client, valid_form, fake_store, services):
        fake_store.always_fail = True
        resp = client.post(URL, json=valid_form)
        assert resp.status_code == 202
        body = resp.json()
        assert body["status"] == "saved_locally"
        assert body["message"] == SAVED_LOCALLY_MESSAGE
        assert body["backup_key"].startswith("voter_submission_")
        assert services.monitor.pending == 1
        assert services.ledger.get(body["backup_key"]).error == "connection refused"

    def test_validation_failure(self, client, valid_form, fake_store):
        resp = client.post(URL, json={**valid_form, "date_of_birth": ""})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Validation failed"
        assert body["detail"] == ["Date of birth is required"]
        assert fake_store.insert_calls == 0

    def test_duplicate_email(self, client, valid_form, fake_store):
        fake_store.add_voter(email="awa@example.com", full_name="Awa Jallow")
        resp = client.post(URL, json=valid_form)
        assert resp.status_code == 409
        assert resp.json()["status_code"] == 409

    def test_non_object_body_rejected(self, client):
        resp = client.post(URL, json=["not", "an", "object"])
        assert resp.status_code == 400


class TestStepCheck:
    def test_failing_gate_stays_on_step(self, client):
        resp = client.post(f"{URL}/steps/personal", json={"full_name": "Awa"})
        body = resp.json()
        assert resp.status_code == 200
        assert body["valid"] is False
        assert body["next_step"] == "personal"
        assert body["errors"] == ["Please complete all fields before continuing"]

    def test_passing_gate_advances(self, client):
        resp = client.post(f"{URL}/steps/declaration", json={"agree_to_terms": True})
        assert resp.json() == {
            "step": "declaration", "valid": True, "errors": [], "next_step": "personal",
        }

    def test_unknown_step(self, client):
        assert client.post(f"{URL}/steps/payment", json={}).status_code == 400
