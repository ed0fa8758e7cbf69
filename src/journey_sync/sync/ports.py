"""Collaborator interfaces used by the sync orchestrator.

- ``RecordStore``: source of Records and sink for status changes and
  history entries.
- ``RemoteWorkflowAPI``: the remote workflow engine.  Every method is a
  coroutine; calls may raise a rate-limit signal (see
  ``rate_limiter.is_rate_limit_error``).
- ``PayloadMapper``: deterministic Record -> remote payload transformation.

``sync.store.JsonRecordStore``, ``core.client.WorkflowAPI`` and
``sync.mapper.WorkflowMapper`` are the bundled implementations.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import (
    Record,
    RemoteEntity,
    RemoteStep,
    Step,
    SyncHistoryEntry,
    SyncStatus,
)


class RecordStore(Protocol):
    """Protocol that all record stores must satisfy."""

    def fetch_pending_records(self, owner_id: str | None = None) -> list[Record]:
        """Return every Published record, optionally per owner."""
        ...  # pragma: no cover

    def fetch_record(self, record_id: str) -> Record | None:
        ...  # pragma: no cover

    def update_sync_status(
        self, record_id: str, status: SyncStatus, **fields: Any
    ) -> None:
        """Set ``sync_status`` plus any extra fields (``remote_id``,
        ``last_sync``) on a record."""
        ...  # pragma: no cover

    def append_history(self, entry: SyncHistoryEntry) -> None:
        ...  # pragma: no cover

    def fetch_history(
        self, record_id: str | None = None
    ) -> list[SyncHistoryEntry]:
        ...  # pragma: no cover


class RemoteWorkflowAPI(Protocol):
    """Protocol for the remote workflow engine."""

    async def fetch_entity(self, remote_id: str) -> RemoteEntity | None:
        """Return the entity, or ``None`` when it does not exist."""
        ...  # pragma: no cover

    async def create_entity(self, payload: dict[str, Any]) -> str:
        """Create an entity and return its remote id."""
        ...  # pragma: no cover

    async def update_entity(
        self, remote_id: str, payload: dict[str, Any]
    ) -> None:
        ...  # pragma: no cover

    async def delete_entity(self, remote_id: str) -> None:
        ...  # pragma: no cover


class PayloadMapper(Protocol):
    def to_remote_payload(self, record: Record) -> dict[str, Any]:
        ...  # pragma: no cover

    def remote_steps_to_steps(self, remote_steps: list[RemoteStep]) -> list[Step]:
        """Rebuild local Steps from a remote entity, for diffing."""
        ...  # pragma: no cover
