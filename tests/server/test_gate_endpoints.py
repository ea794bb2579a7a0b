"""Tests for the privacy gate REST endpoints."""

from __future__ import annotations

import csv
import io

from murmur.privacy.audit import KeyRotationEventType

API = "/api/v1"


def _submit(client, identity: str, text: str = "Releases slip every sprint", unit_id: str = "thread-1", **extra):
    body = {"org_id": "org-1", "identity": identity, "text": text, "unit_id": unit_id, **extra}
    return client.post(f"{API}/submissions", json=body)


class TestSubmitFeedback:
    """Tests for POST /api/v1/submissions."""

    def test_created(self, client):
        response = _submit(client, "U1", "ping me at a@b.com")
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["submission"]["text"] == "ping me at [email]"
        assert data["submission"]["handle"].startswith("anon-")
        assert data["submission"]["render_state"] == "suppressed"
        assert "U1" not in response.text

    def test_missing_field(self, client):
        response = client.post(f"{API}/submissions", json={"org_id": "org-1", "identity": "U1", "text": "x"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_MISSING_FIELD"
        assert "unit_id" in response.json()["error"]["message"]

    def test_invalid_json(self, client):
        response = client.post(
            f"{API}/submissions", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_INVALID_JSON"

    def test_invalid_kind(self, client):
        response = _submit(client, "U1", kind="essay")
        assert response.status_code == 400
        assert "Invalid kind" in response.json()["error"]["message"]

    def test_unknown_org(self, client):
        body = {"org_id": "nope", "identity": "U1", "text": "x", "unit_id": "t"}
        response = client.post(f"{API}/submissions", json=body)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND_RESOURCE"

    def test_missing_salt_is_config_error(self, client, gate):
        body = {"org_id": "org-nosalt", "identity": "U1", "text": "x", "unit_id": "t"}
        response = client.post(f"{API}/submissions", json=body)
        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "CONFIG_ERROR"
        assert "salt" not in error["message"].lower()
        assert gate.store.list_units() == []

    def test_strict_org_rejection(self, client, registry):
        registry.register("org-strict", salt="s", k_threshold=3, strict_submissions=True)
        body = {"org_id": "org-strict", "identity": "U1", "text": "@sam again", "unit_id": "t"}
        response = client.post(f"{API}/submissions", json=body)
        assert response.status_code == 400
        assert "anonymity" in response.json()["error"]["message"]


class TestGetUnit:
    """Tests for GET /api/v1/units/{id}."""

    def test_suppressed_has_banner(self, client):
        for i in range(3):
            _submit(client, f"U{i}")
        response = client.get(f"{API}/units/thread-1", params={"org_id": "org-1"})
        assert response.status_code == 200
        unit = response.json()["unit"]
        assert unit["render_state"] == "suppressed"
        assert unit["k_safety_banner"]["k_threshold"] == 5
        assert "items" not in unit

    def test_visible_has_items(self, client):
        for i in range(5):
            _submit(client, f"U{i}")
        unit = client.get(f"{API}/units/thread-1", params={"org_id": "org-1"}).json()["unit"]
        assert unit["render_state"] == "visible"
        assert len(unit["items"]) == 5
        assert unit["k_safety_banner"] is None

    def test_org_required(self, client):
        assert client.get(f"{API}/units/thread-1").status_code == 400

    def test_not_found(self, client):
        response = client.get(f"{API}/units/nope", params={"org_id": "org-1"})
        assert response.status_code == 404


class TestExport:
    """Tests for GET /api/v1/export."""

    def test_csv_download(self, client):
        for i in range(5):
            _submit(client, f"U{i}")
        response = client.get(f"{API}/export", params={"org_id": "org-1"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="murmur-export.csv"' in response.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(response.text)))
        assert len(rows) == 5

    def test_json(self, client):
        _submit(client, "U1")
        response = client.get(f"{API}/export", params={"org_id": "org-1", "format": "json"})
        rows = response.json()["rows"]
        assert len(rows) == 1
        assert rows[0]["text"] is None

    def test_unit_ids_filter(self, client):
        _submit(client, "U1", unit_id="a")
        _submit(client, "U1", unit_id="b")
        response = client.get(f"{API}/export", params={"org_id": "org-1", "format": "json", "unit_ids": "b"})
        assert [row["unit_id"] for row in response.json()["rows"]] == ["b"]

    def test_bad_format(self, client):
        response = client.get(f"{API}/export", params={"org_id": "org-1", "format": "xml"})
        assert response.status_code == 400

    def test_org_required(self, client):
        assert client.get(f"{API}/export").status_code == 400


class TestDigest:
    """Tests for GET /api/v1/digest."""

    def test_digest(self, client):
        for i in range(5):
            _submit(client, f"U{i}", topic="Process")
        _submit(client, "U1", unit_id="quiet")
        data = client.get(f"{API}/digest", params={"org_id": "org-1", "org_name": "Acme"}).json()
        assert data["digest"]["total_threads"] == 1
        assert data["digest"]["suppressed_count"] == 1
        assert data["text"].startswith("*Weekly Feedback Digest for Acme*")

    def test_empty_digest_has_no_text(self, client):
        data = client.get(f"{API}/digest", params={"org_id": "org-1"}).json()
        assert data["text"] is None


class TestThemes:
    """Tests for POST /api/v1/themes."""

    def test_insufficient_data(self, client):
        _submit(client, "U1")
        data = client.post(f"{API}/themes", json={"org_id": "org-1"}).json()
        assert data["success"] is True
        assert data["status"] == "insufficient_data"

    def test_org_required(self, client):
        assert client.post(f"{API}/themes", json={}).status_code == 400


class TestKeyRotations:
    """Tests for GET /api/v1/admin/key-rotations."""

    def test_events_and_stats(self, client, audit_trail):
        audit_trail.log_event(KeyRotationEventType.INITIATED, "org-1", user_id="admin-1")
        audit_trail.log_event(KeyRotationEventType.SUCCESS, "org-1", user_id="admin-1")
        audit_trail.log_event(KeyRotationEventType.INITIATED, "org-2")

        data = client.get(f"{API}/admin/key-rotations", params={"org_id": "org-1"}).json()
        assert [event["type"] for event in data["events"]] == ["initiated", "success"]
        assert data["stats"]["successful_rotations"] == 1
        assert data["rotation_due"] is False
        assert data["policy"]["master_key_rotation_days"] == 90

    def test_all_orgs(self, client, audit_trail):
        audit_trail.log_event(KeyRotationEventType.ACCESS, "org-1")
        audit_trail.log_event(KeyRotationEventType.ACCESS, "org-2")
        data = client.get(f"{API}/admin/key-rotations").json()
        assert len(data["events"]) == 2
        assert "rotation_due" not in data
