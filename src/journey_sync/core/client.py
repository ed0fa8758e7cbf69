import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import RateLimitError, RemoteAPIError
from ..sync.models import RemoteEntity
from ..sync.rate_limiter import RequestThrottle, parse_retry_after
from .async_utils import run_sync

logger = logging.getLogger(__name__)


class WorkflowClient:
    """Blocking HTTP client for the remote workflow engine.

    Non-2xx responses raise ``RemoteAPIError``; HTTP 429 raises
    ``RateLimitError`` carrying the ``Retry-After`` hint so the rate
    limiter can honour it.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_key}",
                "Version": self.config.api_version,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any] | None:
        """
        Send one request and decode the JSON body.

        Returns ``None`` for a 404 when *allow_not_found* is set, and an
        empty dict for an empty body.
        """
        url = f"{self.base_url}{path}"
        response = self._get_session().request(
            method,
            url,
            json=payload,
            timeout=self.config.timeout_seconds,
        )

        if response.status_code == 404 and allow_not_found:
            return None

        if response.status_code == 429:
            raise RateLimitError(
                f"Rate limited (429) on {method} {path}",
                retry_after=parse_retry_after(
                    response.headers.get("Retry-After")
                ),
            )

        if not response.ok:
            logger.debug(
                "%s %s failed: %d %s", method, path, response.status_code, response.text
            )
            raise RemoteAPIError(
                f"{method} {path} failed with HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        return response.json()

    def validate_connection(self) -> dict[str, Any]:
        """
        Fetch the configured location to check credentials.
        """
        return self._request("GET", f"/locations/{self.config.location_id}") or {}

    def get_workflow(self, workflow_id: str) -> dict[str, Any] | None:
        """
        Get a workflow by id, or ``None`` if it does not exist.
        """
        data = self._request(
            "GET", f"/workflows/{workflow_id}", allow_not_found=True
        )
        if data is None:
            return None
        return data.get("workflow", data)

    def create_workflow(self, payload: dict[str, Any]) -> str:
        """
        Create a workflow under the configured location.

        Returns:
            The new workflow id.

        Raises:
            RemoteAPIError: If the request fails or the response has no id.
        """
        data = self._request(
            "POST", f"/locations/{self.config.location_id}/workflows", payload
        ) or {}
        workflow = data.get("workflow", data)
        workflow_id = workflow.get("id")
        if not workflow_id:
            raise RemoteAPIError("Create workflow response did not include an id")
        logger.info("Created workflow %s (%s)", workflow_id, payload.get("name"))
        return str(workflow_id)

    def update_workflow(self, workflow_id: str, payload: dict[str, Any]) -> None:
        self._request("PUT", f"/workflows/{workflow_id}", payload)
        logger.info("Updated workflow %s", workflow_id)

    def delete_workflow(self, workflow_id: str) -> None:
        """
        Delete a workflow.  Deleting one that is already gone is a no-op.
        """
        data = self._request(
            "DELETE", f"/workflows/{workflow_id}", allow_not_found=True
        )
        if data is None:
            logger.info("Workflow %s already deleted", workflow_id)
        else:
            logger.info("Deleted workflow %s", workflow_id)


class WorkflowAPI:
    """Async facade over ``WorkflowClient`` used by the orchestrator.

    Every call waits on a shared ``RequestThrottle`` first and then runs
    the blocking request in a worker thread.

    Args:
        client: The blocking client.
        throttle: Minimum-interval gate; defaults to 250 ms spacing.
    """

    def __init__(
        self, client: WorkflowClient, throttle: RequestThrottle | None = None
    ):
        self.client = client
        self.throttle = throttle or RequestThrottle()

    @classmethod
    def from_config(cls, config: Config) -> "WorkflowAPI":
        return cls(
            WorkflowClient(config),
            RequestThrottle(config.rate_limit.request_interval_ms),
        )

    async def fetch_entity(self, remote_id: str) -> RemoteEntity | None:
        await self.throttle.wait()
        data = await run_sync(self.client.get_workflow, remote_id)
        if data is None:
            return None
        return RemoteEntity.model_validate(data)

    async def create_entity(self, payload: dict[str, Any]) -> str:
        await self.throttle.wait()
        return await run_sync(self.client.create_workflow, payload)

    async def update_entity(self, remote_id: str, payload: dict[str, Any]) -> None:
        await self.throttle.wait()
        await run_sync(self.client.update_workflow, remote_id, payload)

    async def delete_entity(self, remote_id: str) -> None:
        await self.throttle.wait()
        await run_sync(self.client.delete_workflow, remote_id)
