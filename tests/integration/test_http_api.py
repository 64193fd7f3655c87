"""
Integration tests for the HTTP API.

Tests cover:
- Full create/fetch/list/delete flow over HTTP
- Error kinds mapped to status codes
- Startup provisioning and degraded startup
"""

import logging
import os
import tempfile
import uuid

import pytest
from fastapi.testclient import TestClient

from logsvc.logvault_server.api import create_app
from logsvc.logvault_server.config import Settings


class TestHttpApi:
    """Tests for the LogVault HTTP API."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def settings(self, data_dir):
        return Settings(
            db_path=os.path.join(data_dir, "logvault.db"),
            wal_mode=False,
            max_page_size=20,
        )

    @pytest.fixture
    def client(self, settings):
        with TestClient(create_app(settings)) as client:
            yield client

    def _create(self, client, message, flag=None):
        body = {"message": message}
        if flag is not None:
            body["flag"] = flag
        response = client.post("/api/create", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200

    @pytest.mark.parametrize("method", ["GET", "POST", "DELETE"])
    def test_health(self, client, method):
        response = client.request(method, "/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["healthy"] is True
        assert body["schema"]["provisioned"] is True

    def test_create(self, client):
        log = self._create(client, "disk almost full", flag=" Warn ")

        assert log["flag"] == "warn"
        assert log["message"] == "disk almost full"
        uuid.UUID(log["id"])
        assert log["timestamp"]

    def test_create_defaults_to_info(self, client):
        assert self._create(client, "no flag")["flag"] == "info"
        assert self._create(client, "empty flag", flag="")["flag"] == "info"

    def test_create_empty_message(self, client):
        response = client.post("/api/create", json={"flag": "info", "message": ""})

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert client.get("/api/list").json() == []

    def test_create_invalid_flag(self, client):
        response = client.post("/api/create", json={"flag": "fatal", "message": "x"})
        assert response.status_code == 400

    def test_create_malformed_body(self, client):
        response = client.post(
            "/api/create",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_fetch_by_id(self, client):
        created = self._create(client, "hello", flag="debug")

        response = client.get(f"/api/fetch/i/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_fetch_by_id_errors(self, client):
        assert client.get("/api/fetch/i/not-a-uuid").status_code == 400
        assert client.get(f"/api/fetch/i/{uuid.uuid4()}").status_code == 404

    def test_fetch_by_timestamp(self, client):
        created = self._create(client, "stamped")

        latest = client.get("/api/fetch/t/2999-01-01T00:00:00Z")
        too_early = client.get("/api/fetch/t/2000-01-01T00:00:00.000001Z")
        garbage = client.get("/api/fetch/t/yesterday")

        assert latest.status_code == 200
        assert latest.json()["id"] == created["id"]
        assert too_early.status_code == 404
        assert garbage.status_code == 400

    def test_fetch_by_flag(self, client):
        self._create(client, "w1", flag="warn")
        self._create(client, "e1", flag="error")

        response = client.get("/api/fetch/f/WARN")

        assert response.status_code == 200
        assert [log["message"] for log in response.json()] == ["w1"]
        assert client.get("/api/fetch/f/trace").json() == []
        assert client.get("/api/fetch/f/loud").status_code == 400

    def test_list(self, client):
        for i in range(3):
            self._create(client, f"m{i}")

        assert len(client.get("/api/list").json()) == 3
        assert len(client.get("/api/list", params={"limit": 2}).json()) == 2
        assert client.get("/api/list", params={"limit": 21}).status_code == 400
        assert client.get("/api/list", params={"limit": "many"}).status_code == 400

    def test_delete_allowed(self, client):
        created = self._create(client, "temporary", flag="warn")

        response = client.delete(f"/api/delete/{created['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert client.get(f"/api/fetch/i/{created['id']}").status_code == 404

    @pytest.mark.parametrize("flag", ["error", "trace"])
    def test_delete_forbidden(self, client, flag):
        created = self._create(client, "protected", flag=flag)

        response = client.delete(f"/api/delete/{created['id']}")

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"
        assert client.get(f"/api/fetch/i/{created['id']}").status_code == 200

    def test_delete_errors(self, client):
        assert client.delete("/api/delete/bad-id").status_code == 400
        assert client.delete(f"/api/delete/{uuid.uuid4()}").status_code == 404

    def test_security_headers(self, client):
        for response in (client.get("/"), client.get(f"/api/fetch/i/{uuid.uuid4()}")):
            assert response.headers["X-Content-Type-Options"] == "nosniff"
            assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
            assert response.headers["X-XSS-Protection"] == "1; mode=block"

    def test_requests_are_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="logsvc.logvault_server.api.app"):
            client.get("/api/list")
            client.get("/api/fetch/i/bad-id")

        records = [r for r in caplog.records if hasattr(r, "duration_ms")]
        assert [(r.method, r.path, r.status) for r in records] == [
            ("GET", "/api/list", 200),
            ("GET", "/api/fetch/i/bad-id", 400),
        ]
        assert all(r.duration_ms >= 0 for r in records)

    def test_restart_keeps_data(self, settings, client):
        """Provisioning again at the next startup keeps existing logs."""
        created = self._create(client, "survivor", flag="error")

        with TestClient(create_app(settings)) as second:
            response = second.get(f"/api/fetch/i/{created['id']}")

        assert response.status_code == 200


class TestDegradedStartup:
    """Tests for startup when provisioning fails."""

    def test_starts_degraded(self, caplog):
        with tempfile.TemporaryDirectory() as tmpdir:
            # A directory cannot be opened as a database file
            settings = Settings(db_path=tmpdir, wal_mode=False)

            with caplog.at_level(logging.ERROR):
                with TestClient(create_app(settings)) as client:
                    health = client.get("/api/health")
                    create = client.post("/api/create", json={"message": "x"})

        assert "Schema provisioning failed" in caplog.text
        assert health.status_code == 503
        assert health.json()["healthy"] is False
        assert create.status_code == 500
        assert create.json()["error_code"] == "STORAGE_ERROR"

    def test_skip_provisioning(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = Settings(
                db_path=os.path.join(tmpdir, "logvault.db"),
                wal_mode=False,
                provision_on_startup=False,
            )

            with TestClient(create_app(settings)) as client:
                health = client.get("/api/health")

        assert health.status_code == 503
        assert health.json()["schema"]["provisioned"] is False
