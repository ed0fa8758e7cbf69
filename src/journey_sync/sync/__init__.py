"""Journey reconciliation engine.

Public API for pushing locally authored journeys (Records) to a remote
workflow engine while detecting when the remote side has diverged.

Modules:

- ``engine``       -- ``SyncOrchestrator``: drives Records through one pass.
- ``conflict``     -- ``ConflictDetector``: divergence classification and
  the conflict registry.
- ``rate_limiter`` -- ``RateLimiter``: retry with exponential backoff on
  HTTP 429; ``RequestThrottle``: minimum request spacing.
- ``diff``         -- token-level LCS diff of text, steps and step lists.
- ``mapper``       -- ``WorkflowMapper``: Record <-> remote payload.
- ``store``        -- ``JsonRecordStore``: file-backed record store.
- ``ports``        -- collaborator Protocols.
- ``models``       -- Pydantic data contracts.
- ``reporter``     -- human-readable and JSON run reports.

Usage example
-------------
::

    from journey_sync.core.client import WorkflowAPI
    from journey_sync.sync import (
        JsonRecordStore,
        SyncOptions,
        SyncOrchestrator,
        format_run_report,
    )

    orchestrator = SyncOrchestrator(
        store=JsonRecordStore(".journey_sync/records.json"),
        remote=WorkflowAPI.from_config(config),
    )

    preview = await orchestrator.run(SyncOptions(dry_run=True))
    print(format_run_report(preview))

    result = await orchestrator.run(SyncOptions(owner_id="acme"))
    print(format_run_report(result))
"""

from .conflict import ConflictDetector
from .diff import compare, compare_collections, compare_structured, render_unified
from .engine import SyncOrchestrator
from .mapper import WorkflowMapper
from .models import (
    Conflict,
    DiffResult,
    Record,
    RemoteEntity,
    RunResult,
    Step,
    SyncHistoryEntry,
    SyncOptions,
    SyncStats,
)
from .rate_limiter import RateLimiter, RequestThrottle
from .reporter import format_conflicts, format_run_report, run_result_to_json
from .store import JsonRecordStore

__all__ = [
    "Conflict",
    "ConflictDetector",
    "DiffResult",
    "JsonRecordStore",
    "RateLimiter",
    "Record",
    "RemoteEntity",
    "RequestThrottle",
    "RunResult",
    "Step",
    "SyncHistoryEntry",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncStats",
    "WorkflowMapper",
    "compare",
    "compare_collections",
    "compare_structured",
    "format_conflicts",
    "format_run_report",
    "render_unified",
    "run_result_to_json",
]
