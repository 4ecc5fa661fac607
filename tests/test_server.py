"""HTTP API tests — FastAPI TestClient against the in-memory queue.

Workers are disabled so submitted jobs stay PENDING and every response is
deterministic.  The lifespan runs inside the ``with TestClient(...)`` block.
"""

import pytest
from fastapi.testclient import TestClient

from packet_server.app import create_app
from packet_server.config import ServerSettings

from conftest import CATALOG_DIR
from test_intake_service import VALID_NUTRITION

ADMIN = {"X-Admin-Key": "secret"}
CLIENT = {"X-User-ID": "client-42"}


@pytest.fixture
def client():
    settings = ServerSettings(
        catalog_dir=str(CATALOG_DIR),
        run_workers=False,
        admin_api_key="secret",
    )
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def open_client():
    """Server without an admin key configured."""
    settings = ServerSettings(catalog_dir=str(CATALOG_DIR), run_workers=False)
    with TestClient(create_app(settings)) as c:
        yield c


def _submit(client, responses=None, headers=CLIENT):
    return client.post(
        "/api/v1/intake/NUTRITION_ONLY/submit",
        json={"responses": responses if responses is not None else VALID_NUTRITION},
        headers=headers,
    )


# =====================================================================
# Health and catalog
# =====================================================================


class TestCatalogEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "queue": "healthy"}

    def test_list_paths(self, client):
        paths = client.get("/api/v1/intake/paths").json()
        assert len(paths) == 7
        assert "NUTRITION_ONLY" in {p["client_type"] for p in paths}

    def test_path_detail(self, client):
        body = client.get("/api/v1/intake/paths/NUTRITION_ONLY").json()
        assert body["path"]["client_type"] == "NUTRITION_ONLY"
        assert body["blocks"][0]["id"] == "basic-demographics"

    def test_unknown_client_type(self, client):
        resp = client.get("/api/v1/intake/paths/HOROSCOPE")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Resource not found"}


# =====================================================================
# Visibility and validation
# =====================================================================


class TestIntakeEndpoints:

    def test_visibility_hides_conditional_question(self, client):
        resp = client.post(
            "/api/v1/intake/NUTRITION_ONLY/visibility",
            json={"responses": {"primary-goal": "general-fitness"}},
        )
        assert resp.status_code == 200
        visible = resp.json()["visible"]
        assert "target-weight" not in visible["general-goals"]
        assert "primary-goal" in visible["general-goals"]

    def test_visibility_shows_conditional_question(self, client):
        resp = client.post(
            "/api/v1/intake/NUTRITION_ONLY/visibility",
            json={"responses": {"primary-goal": "lose-weight"}},
        )
        assert "target-weight" in resp.json()["visible"]["general-goals"]

    def test_validate_block(self, client):
        resp = client.post(
            "/api/v1/intake/NUTRITION_ONLY/validate",
            json={"responses": {"full-name": "J"}, "block_id": "basic-demographics"},
        )
        body = resp.json()
        assert body["valid"] is False
        assert body["errors"]["full-name"] == "Name must be at least 2 characters"
        assert body["first_error_block_id"] == "basic-demographics"

    def test_validate_block_not_on_path(self, client):
        resp = client.post(
            "/api/v1/intake/NUTRITION_ONLY/validate",
            json={"responses": {}, "block_id": "youth-profile"},
        )
        assert resp.status_code == 404

    def test_validate_whole_intake(self, client):
        resp = client.post(
            "/api/v1/intake/NUTRITION_ONLY/validate",
            json={"responses": VALID_NUTRITION},
        )
        assert resp.json() == {"valid": True, "errors": {}, "first_error_block_id": None}


# =====================================================================
# Submission
# =====================================================================


class TestSubmit:

    def test_submit_queues_jobs(self, client):
        resp = _submit(client)
        assert resp.status_code == 202
        body = resp.json()
        assert body["client_id"] == "client-42"
        assert list(body["job_ids"]) == ["NUTRITION"]

    def test_resubmit_returns_same_job(self, client):
        first = _submit(client).json()
        second = _submit(client).json()
        assert first["job_ids"] == second["job_ids"]

    def test_submit_requires_user(self, client):
        assert _submit(client, headers={}).status_code == 401

    def test_submit_invalid_answers(self, client):
        resp = _submit(client, {**VALID_NUTRITION, "weight-lbs": 20})
        assert resp.status_code == 422
        body = resp.json()
        assert body["detail"] == "Intake validation failed"
        assert "weight-lbs" in body["errors"]
        assert body["first_error_block_id"] == "basic-demographics"


# =====================================================================
# Jobs
# =====================================================================


class TestJobs:

    def _enqueue_body(self, client_id="client-42"):
        return {
            "client_id": client_id,
            "packet_type": "NUTRITION",
            "client_type": "NUTRITION_ONLY",
            "answers": VALID_NUTRITION,
        }

    def test_enqueue_as_client(self, client):
        resp = client.post("/api/v1/jobs", json=self._enqueue_body(), headers=CLIENT)
        assert resp.status_code == 202
        job_id = resp.json()["job_id"]

        job = client.get(f"/api/v1/jobs/{job_id}", headers=CLIENT).json()
        assert job["state"] == "pending"
        assert job["attempts"] == 0
        assert "snapshot" not in job

    def test_enqueue_for_other_client_forbidden(self, client):
        resp = client.post("/api/v1/jobs", json=self._enqueue_body("someone-else"), headers=CLIENT)
        assert resp.status_code == 403

    def test_enqueue_as_admin(self, client):
        resp = client.post("/api/v1/jobs", json=self._enqueue_body("someone-else"), headers=ADMIN)
        assert resp.status_code == 202

    def test_enqueue_without_identity(self, client):
        assert client.post("/api/v1/jobs", json=self._enqueue_body()).status_code == 401

    def test_other_client_cannot_read_job(self, client):
        job_id = client.post("/api/v1/jobs", json=self._enqueue_body(), headers=CLIENT).json()["job_id"]
        resp = client.get(f"/api/v1/jobs/{job_id}", headers={"X-User-ID": "intruder"})
        assert resp.status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/api/v1/jobs/nope", headers=ADMIN).status_code == 404

    def test_list_jobs_admin_only(self, client):
        client.post("/api/v1/jobs", json=self._enqueue_body(), headers=CLIENT)
        assert client.get("/api/v1/jobs").status_code == 401
        jobs = client.get("/api/v1/jobs", params={"state": "pending"}, headers=ADMIN).json()
        assert [j["packet_type"] for j in jobs] == ["NUTRITION"]

    def test_retry_in_flight_job_conflicts(self, client):
        job_id = client.post("/api/v1/jobs", json=self._enqueue_body(), headers=CLIENT).json()["job_id"]
        resp = client.post(f"/api/v1/jobs/{job_id}/retry", headers=ADMIN)
        assert resp.status_code == 409

    def test_enqueue_shares_job_with_submission(self, client):
        submitted = _submit(client).json()["job_ids"]["NUTRITION"]
        resp = client.post("/api/v1/jobs", json=self._enqueue_body(), headers=CLIENT)
        assert resp.json()["job_id"] == submitted

    def test_enqueue_rejects_invalid_answers(self, client):
        body = {**self._enqueue_body(), "answers": {**VALID_NUTRITION, "weight-lbs": 20}}
        resp = client.post("/api/v1/jobs", json=body, headers=CLIENT)
        assert resp.status_code == 422
        assert "weight-lbs" in resp.json()["errors"]

    def test_enqueue_rejects_incomplete_answers(self, client):
        body = {**self._enqueue_body(), "answers": {"age": "ten"}}
        resp = client.post("/api/v1/jobs", json=body, headers=CLIENT)
        assert resp.status_code == 422
        assert resp.json()["first_error_block_id"] == "basic-demographics"

    def test_enqueue_unknown_packet_type(self, client):
        body = {**self._enqueue_body(), "packet_type": "NOPE"}
        resp = client.post("/api/v1/jobs", json=body, headers=CLIENT)
        assert resp.status_code == 400

    def test_enqueue_unknown_client_type(self, client):
        body = {**self._enqueue_body(), "client_type": "WHATEVER"}
        resp = client.post("/api/v1/jobs", json=body, headers=CLIENT)
        assert resp.status_code == 404

    def test_rejected_enqueue_queues_nothing(self, client):
        bad = {
            "client_id": "client-42",
            "packet_type": "NOPE",
            "client_type": "WHATEVER",
            "answers": {"age": "ten"},
        }
        assert client.post("/api/v1/jobs", json=bad, headers=CLIENT).status_code == 404
        assert client.get("/api/v1/jobs", headers=ADMIN).json() == []


# =====================================================================
# Admin
# =====================================================================


class TestAdmin:

    def test_missing_key(self, client):
        assert client.get("/api/v1/admin/queue/stats").status_code == 401

    def test_wrong_key(self, client):
        resp = client.get("/api/v1/admin/queue/stats", headers={"X-Admin-Key": "guess"})
        assert resp.status_code == 403

    def test_admin_disabled_without_key(self, open_client):
        resp = open_client.get("/api/v1/admin/queue/stats", headers={"X-Admin-Key": "secret"})
        assert resp.status_code == 403

    def test_stats(self, client):
        _submit(client)
        stats = client.get("/api/v1/admin/queue/stats", headers=ADMIN).json()
        assert stats["pending"] == 1
        assert stats["completed"] == 0

    def test_health_report(self, client):
        body = client.get("/api/v1/admin/queue/health", headers=ADMIN).json()
        assert body["report"]["status"] == "healthy"
        assert body["summary"] == "Queue is operating normally"

    def test_archive_keeps_in_flight_jobs(self, client):
        _submit(client)
        resp = client.post("/api/v1/admin/archive", params={"older_than_days": 0}, headers=ADMIN)
        assert resp.json() == {"affected_rows": 0, "older_than_days": 0}
        assert client.get("/api/v1/admin/queue/stats", headers=ADMIN).json()["pending"] == 1
