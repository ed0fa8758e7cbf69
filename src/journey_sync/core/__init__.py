"""Remote workflow API access shared between the CLI and the orchestrator."""

from .async_utils import run_sync
from .client import WorkflowAPI, WorkflowClient

__all__ = ["WorkflowAPI", "WorkflowClient", "run_sync"]
