"""Shared pytest fixtures for journey-sync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from dotenv import load_dotenv

from journey_sync.config import Config
from journey_sync.sync.mapper import WorkflowMapper
from journey_sync.sync.models import (
    DelayPayload,
    DelayUnit,
    JourneyStatus,
    MessagePayload,
    Record,
    RemoteEntity,
    Step,
    SyncHistoryEntry,
    SyncStatus,
)

load_dotenv()

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live workflow API",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live workflow API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def default_steps() -> list[Step]:
    return [
        Step(
            id="s1",
            order=1,
            name="Welcome email",
            payload=MessagePayload(subject="Welcome!", body="Hello world"),
        ),
        Step(
            id="s2",
            order=2,
            name="Wait a day",
            payload=DelayPayload(),
            delay=1,
            delay_unit=DelayUnit.DAYS,
        ),
    ]


def make_record(record_id: str = "rec_1", **overrides: Any) -> Record:
    """Build a Published record; any field can be overridden."""
    fields: dict[str, Any] = {
        "id": record_id,
        "name": f"Journey {record_id}",
        "owner_id": "acme",
        "steps": default_steps(),
        "status": JourneyStatus.PUBLISHED,
        "version": 1,
        "last_modified": T0 - HOUR,
    }
    fields.update(overrides)
    return Record(**fields)


def remote_for(record: Record, remote_id: str = "wf_1", **overrides: Any) -> RemoteEntity:
    """Build the RemoteEntity a previous push of *record* would have left."""
    payload = WorkflowMapper().to_remote_payload(record)
    fields: dict[str, Any] = {
        "id": remote_id,
        "name": payload["name"],
        "steps": payload["steps"],
        "settings": payload["settings"],
    }
    fields.update(overrides)
    return RemoteEntity(**fields)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRecordStore:
    """In-memory RecordStore with the same selection rules as the JSON store."""

    def __init__(self, records: list[Record] | None = None) -> None:
        self.records: dict[str, Record] = {r.id: r for r in records or []}
        self.history: list[SyncHistoryEntry] = []
        self.status_calls: list[tuple[str, SyncStatus]] = []
        self.unavailable = False

    def fetch_pending_records(self, owner_id: str | None = None) -> list[Record]:
        if self.unavailable:
            raise ConnectionError("record store unavailable")
        return [
            r
            for r in self.records.values()
            if r.is_published
            and (owner_id is None or r.owner_id == owner_id)
        ]

    def fetch_record(self, record_id: str) -> Record | None:
        if self.unavailable:
            raise ConnectionError("record store unavailable")
        return self.records.get(record_id)

    def update_sync_status(self, record_id: str, status: SyncStatus, **fields: Any) -> None:
        self.status_calls.append((record_id, status))
        self.records[record_id] = self.records[record_id].model_copy(
            update={"sync_status": status, **fields}
        )

    def append_history(self, entry: SyncHistoryEntry) -> None:
        self.history.append(entry)

    def fetch_history(self, record_id: str | None = None) -> list[SyncHistoryEntry]:
        return [h for h in self.history if record_id is None or h.record_id == record_id]


class FakeRemoteAPI:
    """In-memory remote workflow engine.

    ``fail(op, *excs)`` queues exceptions raised by the next calls of
    ``op`` (``"fetch"``, ``"create"``, ``"update"``, ``"delete"``).
    ``reject[record_id]`` makes every create/update for that record fail.
    """

    def __init__(self, entities: list[RemoteEntity] | None = None) -> None:
        self.entities: dict[str, RemoteEntity] = {e.id: e for e in entities or []}
        self.calls: list[tuple[str, str | None]] = []
        self.created: list[dict] = []
        self.updated: list[tuple[str, dict]] = []
        self.deleted: list[str] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.reject: dict[str, BaseException] = {}
        self._next_id = 100

    def fail(self, op: str, *excs: BaseException) -> None:
        self.failures.setdefault(op, []).extend(excs)

    def _check(self, op: str, payload: dict | None = None) -> None:
        queue = self.failures.get(op)
        if queue:
            raise queue.pop(0)
        if payload is not None:
            record_id = payload["settings"]["recordId"]
            if record_id in self.reject:
                raise self.reject[record_id]

    async def fetch_entity(self, remote_id: str) -> RemoteEntity | None:
        self.calls.append(("fetch", remote_id))
        self._check("fetch")
        return self.entities.get(remote_id)

    async def create_entity(self, payload: dict) -> str:
        self.calls.append(("create", None))
        self._check("create", payload)
        remote_id = f"wf_{self._next_id}"
        self._next_id += 1
        self.created.append(payload)
        self.entities[remote_id] = RemoteEntity(
            id=remote_id,
            name=payload["name"],
            steps=payload["steps"],
            settings=payload["settings"],
        )
        return remote_id

    async def update_entity(self, remote_id: str, payload: dict) -> None:
        self.calls.append(("update", remote_id))
        self._check("update", payload)
        self.updated.append((remote_id, payload))

    async def delete_entity(self, remote_id: str) -> None:
        self.calls.append(("delete", remote_id))
        self._check("delete")
        self.deleted.append(remote_id)
        self.entities.pop(remote_id, None)


class SleepRecorder:
    """No-op async sleep that remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay_ms: float) -> None:
        self.delays.append(delay_ms)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    """Fixed clock returning T0."""
    return lambda: T0


@pytest.fixture
def no_sleep():
    return SleepRecorder()


@pytest.fixture
def mock_config():
    """Create a Config instance pointing at a fake API for testing."""
    return Config(
        api_url="https://api.example.com",
        api_key="test-key",
        location_id="loc_1",
        timeout_seconds=5,
    )
