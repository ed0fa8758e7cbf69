"""Tests for core/client.py: the blocking HTTP client and its async facade."""

import json
from unittest.mock import patch

import pytest
import requests
from conftest import SleepRecorder

from journey_sync.config import Config
from journey_sync.core.async_utils import run_sync
from journey_sync.core.client import WorkflowAPI, WorkflowClient
from journey_sync.errors import RateLimitError, RemoteAPIError
from journey_sync.sync.models import RemoteEntity
from journey_sync.sync.rate_limiter import RequestThrottle

REQUEST = "journey_sync.core.client.requests.Session.request"


def _response(status=200, body=None, headers=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = b"" if body is None else json.dumps(body).encode()
    response.headers.update(headers or {})
    response.encoding = "utf-8"
    return response


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def test_session_headers(mock_config):
    """Bearer auth, API version and JSON headers are set on the session."""
    session = WorkflowClient(mock_config).session
    assert session.headers["Authorization"] == "Bearer test-key"
    assert session.headers["Version"] == mock_config.api_version
    assert session.headers["Content-Type"] == "application/json"
    assert session.verify


def test_session_insecure():
    config = Config(api_key="k", location_id="l", insecure=True)
    assert not WorkflowClient(config).session.verify


def test_session_reused_per_thread(mock_config):
    client = WorkflowClient(mock_config)
    assert client.session is client.session


async def test_session_per_worker_thread(mock_config):
    client = WorkflowClient(mock_config)
    other = await run_sync(lambda: client.session)
    assert other is not client.session


# ---------------------------------------------------------------------------
# Requests and error mapping
# ---------------------------------------------------------------------------


class TestWorkflowClient:
    @patch(REQUEST)
    def test_get_workflow_unwraps(self, mock_request, mock_config):
        mock_request.return_value = _response(
            body={"workflow": {"id": "wf_1", "name": "Journey"}}
        )

        data = WorkflowClient(mock_config).get_workflow("wf_1")

        assert data == {"id": "wf_1", "name": "Journey"}
        method, url = mock_request.call_args[0]
        assert method == "GET"
        assert url == "https://api.example.com/workflows/wf_1"
        assert mock_request.call_args[1]["timeout"] == 5

    @patch(REQUEST)
    def test_get_missing_workflow(self, mock_request, mock_config):
        mock_request.return_value = _response(404, {"message": "not found"})
        assert WorkflowClient(mock_config).get_workflow("wf_x") is None

    @patch(REQUEST)
    def test_rate_limited(self, mock_request, mock_config):
        mock_request.return_value = _response(429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as excinfo:
            WorkflowClient(mock_config).get_workflow("wf_1")

        assert excinfo.value.retry_after == 7
        assert excinfo.value.status_code == 429

    @patch(REQUEST)
    def test_http_error(self, mock_request, mock_config):
        mock_request.return_value = _response(422, {"message": "bad step"})

        with pytest.raises(RemoteAPIError, match="HTTP 422") as excinfo:
            WorkflowClient(mock_config).update_workflow("wf_1", {"name": "x"})

        assert excinfo.value.status_code == 422
        assert not isinstance(excinfo.value, RateLimitError)

    @patch(REQUEST)
    def test_create_workflow(self, mock_request, mock_config):
        mock_request.return_value = _response(201, {"workflow": {"id": 123}})
        payload = {"name": "Journey"}

        workflow_id = WorkflowClient(mock_config).create_workflow(payload)

        assert workflow_id == "123"
        method, url = mock_request.call_args[0]
        assert method == "POST"
        assert url == "https://api.example.com/locations/loc_1/workflows"
        assert mock_request.call_args[1]["json"] == payload

    @patch(REQUEST)
    def test_create_without_id(self, mock_request, mock_config):
        mock_request.return_value = _response(200, {"workflow": {}})
        with pytest.raises(RemoteAPIError, match="did not include an id"):
            WorkflowClient(mock_config).create_workflow({"name": "x"})

    @patch(REQUEST)
    def test_delete_empty_body(self, mock_request, mock_config):
        mock_request.return_value = _response(204)
        WorkflowClient(mock_config).delete_workflow("wf_1")
        assert mock_request.call_args[0][0] == "DELETE"

    @patch(REQUEST)
    def test_delete_already_gone(self, mock_request, mock_config):
        mock_request.return_value = _response(404)
        WorkflowClient(mock_config).delete_workflow("wf_1")  # no raise

    @patch(REQUEST)
    def test_validate_connection(self, mock_request, mock_config):
        mock_request.return_value = _response(body={"location": {"id": "loc_1"}})
        assert WorkflowClient(mock_config).validate_connection() == {
            "location": {"id": "loc_1"}
        }
        assert mock_request.call_args[0][1].endswith("/locations/loc_1")


# ---------------------------------------------------------------------------
# Async facade
# ---------------------------------------------------------------------------


def _api(mock_config) -> tuple[WorkflowAPI, SleepRecorder]:
    sleep = SleepRecorder()
    throttle = RequestThrottle(250, clock=lambda: 0.0, sleep=sleep)
    return WorkflowAPI(WorkflowClient(mock_config), throttle), sleep


class TestWorkflowAPI:
    @patch(REQUEST)
    async def test_fetch_entity(self, mock_request, mock_config):
        mock_request.return_value = _response(
            body={
                "workflow": {
                    "id": "wf_1",
                    "name": "Journey",
                    "updatedAt": "2026-03-01T12:00:00Z",
                    "steps": [{"id": "step_s1", "order": 0, "type": "email", "data": {}}],
                    "settings": {"recordId": "rec_1", "recordVersion": 2},
                }
            }
        )
        api, _ = _api(mock_config)

        entity = await api.fetch_entity("wf_1")

        assert isinstance(entity, RemoteEntity)
        assert entity.echoed_version == 2
        assert entity.updated_at.year == 2026
        assert entity.steps[0].type == "email"

    @patch(REQUEST)
    async def test_fetch_missing_entity(self, mock_request, mock_config):
        mock_request.return_value = _response(404)
        api, _ = _api(mock_config)
        assert await api.fetch_entity("wf_1") is None

    @patch(REQUEST)
    async def test_calls_are_throttled(self, mock_request, mock_config):
        """With a frozen clock every call after the first waits a full interval."""
        mock_request.return_value = _response(200, {"workflow": {"id": "wf_9"}})
        api, sleep = _api(mock_config)

        assert await api.create_entity({"name": "x"}) == "wf_9"
        await api.update_entity("wf_9", {"name": "x"})
        await api.delete_entity("wf_9")

        assert sleep.delays == [250, 250]

    def test_from_config(self, mock_config):
        api = WorkflowAPI.from_config(mock_config)
        assert api.throttle.interval_ms == mock_config.rate_limit.request_interval_ms
        assert api.client.base_url == "https://api.example.com"


# ---------------------------------------------------------------------------
# run_sync
# ---------------------------------------------------------------------------


async def test_run_sync_passes_args():
    def _kw_func(a: int, *, name: str) -> str:
        return f"{name}:{a}"

    assert await run_sync(_kw_func, 3, name="n") == "n:3"
