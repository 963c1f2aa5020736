"""Tests for CLI commands"""

import json
from unittest.mock import Mock, patch

import httpx
import pytest
from typer.testing import CliRunner

from outboxctl.client.base import APIClient, OutboxError
from outboxctl.main import app
from outboxctl.utils.config_manager import ConfigManager


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Mock API client"""
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


@pytest.fixture
def temp_config(tmp_path):
    manager = ConfigManager(config_dir=tmp_path / "outboxctl")
    with patch("outboxctl.commands.config.config", manager):
        yield manager


class TestMainCommands:
    """Test main CLI commands"""

    def test_version_flag(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Outbox CLI v1.0.0" in result.stdout

    def test_quickstart(self, runner):
        """Test quickstart command"""
        result = runner.invoke(app, ["quickstart"])
        assert result.exit_code == 0
        assert "Quick Start Guide" in result.stdout
        assert "outboxctl status" in result.stdout

    @patch("outboxctl.main.OutboxClient")
    def test_status_success(self, mock_client_class, runner, mock_client):
        """Test status command with successful connection"""
        mock_client.health_check.return_value = {
            "ok": True,
            "version": "1.0.0",
            "environment": "development",
            "database": {"connected": True, "response_time_ms": 1.2},
            "queue": {"queue_depth": 4, "expired_leases": 0},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.stdout

    @patch("outboxctl.main.OutboxClient")
    def test_status_failure(self, mock_client_class, runner, mock_client):
        """Test status command with connection failure"""
        mock_client.health_check.side_effect = OutboxError("Connection failed")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout

    @patch("outboxctl.main.OutboxClient")
    def test_status_unhealthy_database(self, mock_client_class, runner, mock_client):
        mock_client.health_check.return_value = {
            "ok": False,
            "database": {"connected": False, "error": "refused"},
            "queue": None,
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "unavailable" in result.stdout


class TestJobsCommands:
    """Test jobs commands"""

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_list_empty(self, mock_client_class, runner, mock_client):
        mock_client.list_jobs.return_value = {"jobs": [], "total": 0}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "list", "--status", "failed"])
        assert result.exit_code == 0
        assert "No jobs found" in result.stdout
        mock_client.list_jobs.assert_called_once_with(
            status=["failed"], job_type=None, limit=50, offset=0
        )

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_list_with_jobs(self, mock_client_class, runner, mock_client):
        mock_client.list_jobs.return_value = {
            "jobs": [
                {
                    "job_id": "0b7c4f0e-1111-4c4c-9d9d-123456789abc",
                    "job_type": "send_offer_email",
                    "status": "failed",
                    "attempts": 3,
                    "max_attempts": 3,
                    "scheduled_for": "2026-10-14T09:00:00Z",
                    "created_at": "2026-10-14T09:00:00Z",
                    "last_error": "RetryableJobError: email provider returned 503",
                }
            ],
            "total": 1,
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "list"])
        assert result.exit_code == 0
        assert "Showing 1 of 1 jobs" in result.stdout

    def test_list_rejects_unknown_status(self, runner):
        result = runner.invoke(app, ["jobs", "list", "--status", "stuck"])
        assert result.exit_code == 1
        assert "Unknown status" in result.stdout

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_stats(self, mock_client_class, runner, mock_client):
        mock_client.job_stats.return_value = {
            "total_jobs": 7,
            "by_status": {"pending": 2, "processing": 1, "completed": 3, "failed": 1},
            "by_type": {"send_offer_email": 7},
            "queue_depth": 3,
            "failed_last_hour": 1,
            "expired_leases": 0,
            "oldest_pending_age_seconds": 42,
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "stats"])
        assert result.exit_code == 0
        assert "Queue Statistics" in result.stdout
        assert "42s" in result.stdout

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_retry_success(self, mock_client_class, runner, mock_client):
        mock_client.retry_job.return_value = {"success": True, "job_id": "abc"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "retry", "abc"])
        assert result.exit_code == 0
        assert "Job abc re-queued" in result.stdout
        mock_client.retry_job.assert_called_once_with("abc")

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_retry_not_failed(self, mock_client_class, runner, mock_client):
        mock_client.retry_job.side_effect = OutboxError("API Error 409", status_code=409)
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "retry", "abc"])
        assert result.exit_code == 1
        assert "is not failed" in result.stdout

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_enqueue(self, mock_client_class, runner, mock_client):
        mock_client.enqueue_job.return_value = {
            "job_id": "abc",
            "status": "pending",
            "deduplicated": False,
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app,
            [
                "jobs",
                "enqueue",
                "inbound_lead_alert",
                "--payload",
                '{"email": "lead@example.com"}',
                "--key",
                "lead:1",
            ],
        )
        assert result.exit_code == 0
        assert "Job enqueued: abc" in result.stdout
        mock_client.enqueue_job.assert_called_once_with(
            "inbound_lead_alert",
            {"email": "lead@example.com"},
            max_attempts=None,
            idempotency_key="lead:1",
        )

    @patch("outboxctl.commands.jobs.OutboxClient")
    def test_enqueue_deduplicated(self, mock_client_class, runner, mock_client):
        mock_client.enqueue_job.return_value = {
            "job_id": "abc",
            "status": "completed",
            "deduplicated": True,
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["jobs", "enqueue", "noop", "--key", "k"])
        assert result.exit_code == 0
        assert "Existing job returned" in result.stdout

    def test_enqueue_invalid_payload(self, runner):
        result = runner.invoke(app, ["jobs", "enqueue", "noop", "--payload", "{not json"])
        assert result.exit_code == 1
        assert "not valid JSON" in result.stdout


class TestConfigCommands:
    """Test config commands"""

    def test_set_and_get(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "api.base_url", "http://outbox:9000"])
        assert result.exit_code == 0
        assert temp_config.get("api.base_url") == "http://outbox:9000"

        result = runner.invoke(app, ["config", "get", "api.base_url"])
        assert result.exit_code == 0
        assert "http://outbox:9000" in result.stdout

    def test_set_rejects_bad_url(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "api.base_url", "outbox:9000"])
        assert result.exit_code == 1
        assert not temp_config.config_file.exists()

    def test_set_timeout_is_numeric(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "api.timeout", "soon"])
        assert result.exit_code == 1

        result = runner.invoke(app, ["config", "set", "api.timeout", "60"])
        assert result.exit_code == 0
        assert temp_config.get("api.timeout") == 60

    def test_token_is_stored_and_masked(self, runner, temp_config):
        result = runner.invoke(app, ["config", "token", "s3cret"])
        assert result.exit_code == 0
        assert temp_config.get("api.headers.X-Admin-Token") == "s3cret"

        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "s3cret" not in result.stdout
        assert "********" in result.stdout

    def test_reset(self, runner, temp_config):
        temp_config.set("api.timeout", 5)

        result = runner.invoke(app, ["config", "reset", "--yes"])
        assert result.exit_code == 0
        assert temp_config.get("api.timeout") == 30


class TestAPIClient:
    """Test the HTTP client envelope handling"""

    def _client(self, handler) -> APIClient:
        return APIClient("http://api.test", transport=httpx.MockTransport(handler))

    def test_unwraps_success_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/jobs/stats/overview"
            return httpx.Response(200, json={"ok": True, "data": {"total_jobs": 3}})

        with self._client(handler) as client:
            assert client.get("/jobs/stats/overview") == {"total_jobs": 3}

    def test_error_envelope_raises_with_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                409,
                json={
                    "ok": False,
                    "error": {"message": "Only failed jobs can be retried", "code": "CONFLICT"},
                },
            )

        with self._client(handler) as client:
            with pytest.raises(OutboxError) as exc_info:
                client.post("/jobs/abc/retry")

        assert exc_info.value.status_code == 409
        assert "Only failed jobs can be retried" in str(exc_info.value)

    def test_validation_detail_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"detail": [{"msg": "field required"}]})

        with self._client(handler) as client:
            with pytest.raises(OutboxError, match="field required"):
                client.post("/jobs", {"payload": {}})

    def test_sends_default_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "data": {"job_id": "abc"}})

        client = APIClient(
            "http://api.test",
            headers={"X-Admin-Token": "s3cret"},
            transport=httpx.MockTransport(handler),
        )
        with client:
            client.post("/jobs", {"job_type": "noop", "payload": {}})

        assert seen["x-admin-token"] == "s3cret"
        assert seen["body"] == {"job_type": "noop", "payload": {}}

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self._client(handler) as client:
            with pytest.raises(OutboxError, match="Connection failed"):
                client.get("/healthz")
