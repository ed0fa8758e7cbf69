"""Pydantic models for the journey reconciliation engine.

Defines the core data contracts used across all sync modules:

- ``Record`` / ``Step``: a locally authored journey and its ordered steps.
  Step payloads are a closed tagged union discriminated on ``kind``.
- ``RemoteEntity``: the remote workflow engine's copy of a Record.
- ``Conflict``: a detected divergence between a Record and its remote copy.
- ``SyncHistoryEntry``: immutable audit entry for one sync attempt.
- ``DiffResult`` and friends: output of the version-diff engine.
- ``SyncStats``, ``SyncOptions``, ``RunResult``: orchestrator run contracts.

Everything except ``Conflict`` (mutated by explicit resolution) and
``SyncStats`` (running counters) is frozen.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def _ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class JourneyStatus(str, Enum):
    """Editorial status of a Record."""

    DRAFT = "Draft"
    IN_REVIEW = "InReview"
    APPROVED = "Approved"
    PUBLISHED = "Published"
    ARCHIVED = "Archived"


class SyncStatus(str, Enum):
    """Reconciliation status of a Record."""

    PENDING = "Pending"
    SYNCING = "Syncing"
    SYNCED = "Synced"
    FAILED = "Failed"
    CONFLICT = "Conflict"
    SKIPPED = "Skipped"


class StepKind(str, Enum):
    MESSAGE = "message"
    TASK = "task"
    DELAY = "delay"
    CONDITION = "condition"
    TRIGGER = "trigger"
    NOTE = "note"
    CALL = "call"


class MessageChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class DelayUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


_MINUTES_PER_UNIT = {
    DelayUnit.MINUTES: 1,
    DelayUnit.HOURS: 60,
    DelayUnit.DAYS: 1440,
    DelayUnit.WEEKS: 10080,
}


class ConflictType(str, Enum):
    EXTERNAL_MODIFICATION = "external_modification"
    VERSION_MISMATCH = "version_mismatch"
    CONCURRENT_EDIT = "concurrent_edit"
    MISSING_REMOTE = "missing_remote"
    MISSING_LOCAL = "missing_local"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResolutionPolicy(str, Enum):
    """How a Conflict is (or may be) resolved.

    Only ``MANUAL`` blocks automatic sync of the affected Record.
    """

    AUTO_CREATE = "auto-create"
    AUTO_OVERWRITE = "auto-overwrite"
    MERGE = "merge"
    MANUAL = "manual"


class SyncOperation(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    SKIP = "Skip"
    ROLLBACK = "Rollback"


class SyncOutcome(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


class DiffKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


# ---------------------------------------------------------------------------
# Step payloads (closed tagged union)
# ---------------------------------------------------------------------------


class MessagePayload(BaseModel):
    """Email or SMS send."""

    kind: Literal["message"] = "message"
    channel: MessageChannel = MessageChannel.EMAIL
    subject: str = ""
    body: str = ""
    preview_text: str = ""
    template_id: str | None = None

    model_config = {"frozen": True}


class TaskPayload(BaseModel):
    kind: Literal["task"] = "task"
    description: str = ""
    assignee: str = ""
    due_in_hours: int = 24
    priority: str = "normal"

    model_config = {"frozen": True}


class DelayPayload(BaseModel):
    """Pure wait; the duration lives on the Step itself."""

    kind: Literal["delay"] = "delay"

    model_config = {"frozen": True}


class ConditionPayload(BaseModel):
    kind: Literal["condition"] = "condition"
    condition: str = ""

    model_config = {"frozen": True}


class TriggerPayload(BaseModel):
    kind: Literal["trigger"] = "trigger"
    trigger_type: str = "manual"
    trigger_data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class NotePayload(BaseModel):
    kind: Literal["note"] = "note"
    content: str = ""

    model_config = {"frozen": True}


class CallPayload(BaseModel):
    kind: Literal["call"] = "call"
    description: str = ""
    assignee: str = ""
    duration_minutes: int = 30

    model_config = {"frozen": True}


StepPayload = Annotated[
    Union[
        MessagePayload,
        TaskPayload,
        DelayPayload,
        ConditionPayload,
        TriggerPayload,
        NotePayload,
        CallPayload,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Step(BaseModel):
    """One timed action within a Record.

    Attributes:
        id: Step identity, stable across edits.
        order: Execution position, unique within a Record.
        name: Display name.
        payload: Kind-specific payload.
        delay: Offset from the previous step, in ``delay_unit``.
        delay_unit: Unit for ``delay``.
    """

    id: str
    order: int
    name: str = ""
    payload: StepPayload
    delay: int = Field(default=0, ge=0)
    delay_unit: DelayUnit = DelayUnit.HOURS

    model_config = {"frozen": True}

    @property
    def kind(self) -> StepKind:
        return StepKind(self.payload.kind)

    def delay_in_minutes(self) -> int:
        """Return the step offset converted to minutes."""
        return self.delay * _MINUTES_PER_UNIT[self.delay_unit]


class Record(BaseModel):
    """A locally authored journey.

    Attributes:
        id: Record identity.
        name: Display name.
        owner_id: Tenant / client namespace the record belongs to.
        description: Free-form description pushed with the workflow.
        steps: Steps in ascending ``order``.
        status: Editorial status; only ``Published`` records are synced.
        version: Monotonically increasing edit counter.
        last_modified: Time of the last local edit.
        last_sync: Time of the last successful reconciliation.
        remote_id: Identity of the remote counterpart, ``None`` until the
            record has been created remotely.
        sync_status: Reconciliation status.
    """

    id: str
    name: str
    owner_id: str | None = None
    description: str = ""
    steps: list[Step] = Field(default_factory=list)
    status: JourneyStatus = JourneyStatus.DRAFT
    version: int = Field(default=1, ge=1)
    last_modified: UtcDatetime | None = None
    last_sync: UtcDatetime | None = None
    remote_id: str | None = None
    sync_status: SyncStatus = SyncStatus.PENDING

    model_config = {"frozen": True}

    @field_validator("steps")
    @classmethod
    def _sorted_unique_order(cls, steps: list[Step]) -> list[Step]:
        seen: set[int] = set()
        for step in steps:
            if step.order in seen:
                raise ValueError(
                    f"duplicate step order {step.order} (step '{step.id}')"
                )
            seen.add(step.order)
        return sorted(steps, key=lambda s: s.order)

    @property
    def is_published(self) -> bool:
        return self.status == JourneyStatus.PUBLISHED

    @property
    def has_remote(self) -> bool:
        return self.remote_id is not None


# ---------------------------------------------------------------------------
# Remote side
# ---------------------------------------------------------------------------


class RemoteStep(BaseModel):
    """A step as the remote workflow engine represents it."""

    id: str | None = None
    order: int | None = None
    type: str = ""
    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="ignore")


class RemoteSettings(BaseModel):
    record_id: str | None = Field(default=None, alias="recordId")
    record_version: int | None = Field(default=None, alias="recordVersion")

    model_config = ConfigDict(
        frozen=True, extra="allow", populate_by_name=True
    )


class RemoteEntity(BaseModel):
    """The remote counterpart of a Record.

    Attributes:
        id: Remote identity.
        name: Remote workflow name.
        updated_at: Last modification time reported by the remote side.
        steps: Remote step representation.
        settings: Remote settings; ``record_version`` echoes the Record
            version at the last push.
    """

    id: str
    name: str = ""
    updated_at: UtcDatetime | None = Field(default=None, alias="updatedAt")
    steps: list[RemoteStep] = Field(default_factory=list)
    settings: RemoteSettings = Field(default_factory=RemoteSettings)

    model_config = ConfigDict(
        frozen=True, extra="ignore", populate_by_name=True
    )

    @property
    def echoed_version(self) -> int | None:
        return self.settings.record_version


# ---------------------------------------------------------------------------
# Conflicts and history
# ---------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


class Conflict(BaseModel):
    """A detected divergence between a Record and its RemoteEntity.

    Mutated only through ``ConflictDetector.resolve()``, which sets
    ``resolved_at`` and replaces ``resolution_policy``.
    """

    id: str = Field(default_factory=_new_id)
    type: ConflictType
    severity: Severity
    resolution_policy: ResolutionPolicy
    record_id: str
    record_name: str = ""
    remote_id: str | None = None
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    detected_at: UtcDatetime = Field(default_factory=utc_now)
    resolved_at: UtcDatetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    @property
    def is_blocking(self) -> bool:
        return (
            not self.is_resolved
            and self.resolution_policy == ResolutionPolicy.MANUAL
        )


class SyncHistoryEntry(BaseModel):
    """Write-once audit record of one sync attempt.

    Attributes:
        record_id: Record that was processed.
        record_name: Record name at the time of the attempt.
        operation: What was attempted.
        outcome: Whether it succeeded.
        remote_id: Remote identity involved, if any.
        error: Failure or skip reason.
        duration_ms: Wall-clock time spent on the record.
        created_at: When the entry was written.
    """

    record_id: str
    record_name: str = ""
    operation: SyncOperation
    outcome: SyncOutcome
    remote_id: str | None = None
    error: str | None = None
    duration_ms: int = 0
    created_at: UtcDatetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Diff results
# ---------------------------------------------------------------------------


class DiffChange(BaseModel):
    """One run of tokens sharing the same change kind."""

    kind: DiffKind
    value: str

    model_config = {"frozen": True}


class DiffSummary(BaseModel):
    """Word-level counts derived from a list of changes."""

    added: int = 0
    removed: int = 0
    changed: int = 0
    total_changes: int = 0

    model_config = {"frozen": True}


class DiffResult(BaseModel):
    """Token-level comparison of two text snapshots."""

    kind: DiffKind
    changes: list[DiffChange] = Field(default_factory=list)
    summary: DiffSummary = Field(default_factory=DiffSummary)

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return self.kind != DiffKind.UNCHANGED

    def old_text(self) -> str:
        """Reassemble the old side from Removed and Unchanged spans."""
        return "".join(
            c.value for c in self.changes if c.kind != DiffKind.ADDED
        )

    def new_text(self) -> str:
        """Reassemble the new side from Added and Unchanged spans."""
        return "".join(
            c.value for c in self.changes if c.kind != DiffKind.REMOVED
        )


class StepComparison(BaseModel):
    """Per-field diff of two versions of the same Step."""

    step_id: str
    field_diffs: dict[str, DiffResult]
    has_changes: bool

    model_config = {"frozen": True}


class CollectionSummary(BaseModel):
    modified: int = 0
    added: int = 0
    removed: int = 0
    total: int = 0

    model_config = {"frozen": True}


class CollectionDiff(BaseModel):
    """Identity-partitioned diff of two step lists.

    Steps present on both sides without changes are not reported.
    """

    added: list[Step] = Field(default_factory=list)
    removed: list[Step] = Field(default_factory=list)
    modified: list[StepComparison] = Field(default_factory=list)
    summary: CollectionSummary = Field(default_factory=CollectionSummary)

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


# ---------------------------------------------------------------------------
# Run contracts
# ---------------------------------------------------------------------------


class SyncStats(BaseModel):
    """Running counters for one orchestrator run."""

    synced: int = 0
    conflicts: int = 0
    failed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0


class SyncOptions(BaseModel):
    """Selection for one orchestrator run.

    Attributes:
        record_id: Sync only this record.
        owner_id: Restrict the worklist to one tenant / namespace.
        dry_run: Evaluate everything but make no remote writes.
    """

    record_id: str | None = None
    owner_id: str | None = None
    dry_run: bool = False

    model_config = {"frozen": True}


class RunResult(BaseModel):
    """Outcome of one orchestrator run.

    Attributes:
        success: ``False`` only when the run itself could not complete.
        stats: Aggregate counters.
        duration_ms: Wall-clock duration of the run.
        history: History entries produced this run, in processing order.
        conflicts: Unresolved conflicts known after the run.
        dry_run: Whether remote writes were suppressed.
        error: Run-level failure message.
    """

    success: bool
    stats: SyncStats
    duration_ms: int
    history: list[SyncHistoryEntry] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    dry_run: bool = False
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def blocking_conflicts(self) -> list[Conflict]:
        return [c for c in self.conflicts if c.is_blocking]


class RollbackResult(BaseModel):
    success: bool
    error: str | None = None

    model_config = {"frozen": True}
