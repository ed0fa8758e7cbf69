"""Sync orchestrator that drives Records through a reconciliation pass.

``SyncOrchestrator.run()``:

1. Fetches the worklist from the record store (a single record when
   ``record_id`` is given).
2. For each record, in order: marks it ``Syncing``, fetches its remote
   counterpart, runs conflict detection and registers the results.
3. Skips records with a blocking (unresolved manual) conflict and marks
   them ``Conflict``.
4. In dry-run mode marks the rest ``Synced`` without remote writes.
5. Otherwise creates or updates the remote entity through the rate
   limiter, persists the remote id and marks the record ``Synced``.
6. Writes one history entry per record and returns a ``RunResult``.

Error handling is per-record: a failure while processing one record marks
it ``Failed`` and the run moves on.  Only a failure to build the worklist
ends the run early (``success=False``).
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

from .conflict import ConflictDetector
from .diff import compare_collections
from .mapper import WorkflowMapper
from .models import (
    CollectionDiff,
    Conflict,
    Record,
    RemoteEntity,
    RollbackResult,
    RunResult,
    SyncHistoryEntry,
    SyncOperation,
    SyncOptions,
    SyncOutcome,
    SyncStats,
    SyncStatus,
    utc_now,
)
from .ports import PayloadMapper, RecordStore, RemoteWorkflowAPI
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

BLOCKED_REASON = "unresolved conflicts"
DRY_RUN_REASON = "dry run"


class SyncOrchestrator:
    """Reconcile local Records against the remote workflow engine.

    One instance owns one conflict registry; conflicts detected in earlier
    runs of the same instance keep blocking their records until resolved.

    Args:
        store: Record store.
        remote: Remote workflow API.
        mapper: Record -> payload mapper.  Defaults to ``WorkflowMapper``.
        detector: Conflict detector / registry.
        rate_limiter: Retry policy wrapped around every remote call.
        clock: Source of timestamps written to records and history.
        timer: Monotonic clock (seconds) used for durations.
    """

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteWorkflowAPI,
        mapper: PayloadMapper | None = None,
        detector: ConflictDetector | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.remote = remote
        self.mapper = mapper or WorkflowMapper()
        self.detector = detector or ConflictDetector(clock=clock)
        self.rate_limiter = rate_limiter or RateLimiter()
        self._clock = clock
        self._timer = timer

        self._options = SyncOptions()
        self._stats = SyncStats()
        self._history: list[SyncHistoryEntry] = []

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(self, options: SyncOptions | None = None) -> RunResult:
        """Execute one reconciliation pass.

        Args:
            options: Record / owner selection and dry-run flag.

        Returns:
            A ``RunResult`` with stats, this run's history entries and the
            unresolved conflicts left in the registry.
        """
        options = options or SyncOptions()
        self._options = options
        self._stats = SyncStats()
        self._history = []
        started = self._timer()

        try:
            records = self._fetch_worklist(options)
        except Exception as exc:
            logger.error("Sync run aborted, cannot fetch records: %s", exc)
            return self._build_result(started, success=False, error=str(exc))

        logger.info(
            "Syncing %d record(s)%s",
            len(records),
            " (dry run)" if options.dry_run else "",
        )

        for record in records:
            await self._sync_record(record, options.dry_run)

        result = self._build_result(started, success=True)
        logger.info(
            "Sync complete in %dms: synced=%d created=%d updated=%d "
            "skipped=%d failed=%d conflicts=%d",
            result.duration_ms,
            self._stats.synced,
            self._stats.created,
            self._stats.updated,
            self._stats.skipped,
            self._stats.failed,
            self._stats.conflicts,
        )
        return result

    def _fetch_worklist(self, options: SyncOptions) -> list[Record]:
        if options.record_id is None:
            return self.store.fetch_pending_records(options.owner_id)

        record = self.store.fetch_record(options.record_id)
        if record is None:
            logger.warning("Record %s not found", options.record_id)
            return []
        if not record.is_published:
            logger.info(
                "Record %s is %s, only Published records are synced",
                record.id,
                record.status.value,
            )
            return []
        return [record]

    def _build_result(
        self, started: float, success: bool, error: str | None = None
    ) -> RunResult:
        return RunResult(
            success=success,
            stats=self._stats.model_copy(),
            duration_ms=self._elapsed_ms(started),
            history=list(self._history),
            conflicts=self.detector.unresolved(),
            dry_run=self._options.dry_run,
            error=error,
        )

    # ------------------------------------------------------------------
    # Per-record sync
    # ------------------------------------------------------------------

    async def _sync_record(self, record: Record, dry_run: bool) -> None:
        """Drive one record to a terminal status for this pass."""
        started = self._timer()
        operation = SyncOperation.SKIP
        remote_id = record.remote_id

        try:
            self._set_status(record.id, SyncStatus.SYNCING)

            remote = await self._fetch_remote(record)
            conflicts = self.detector.detect(record, remote)
            for conflict in conflicts:
                self.detector.register(record.id, conflict)
            self._stats.conflicts += len(conflicts)
            if remote is not None and conflicts:
                self._attach_step_diff(record, remote, conflicts)

            if self.detector.is_blocking(record.id):
                logger.warning(
                    "Record %s blocked by unresolved conflicts", record.id
                )
                self._set_status(record.id, SyncStatus.CONFLICT)
                self._stats.skipped += 1
                self._write_history(
                    record,
                    SyncOperation.SKIP,
                    SyncOutcome.FAILED,
                    started,
                    remote_id,
                    BLOCKED_REASON,
                )
                return

            if dry_run:
                logger.info("Dry run: record %s would be synced", record.id)
                self._set_status(record.id, SyncStatus.SYNCED)
                self._stats.synced += 1
                self._write_history(
                    record,
                    SyncOperation.SKIP,
                    SyncOutcome.SUCCESS,
                    started,
                    remote_id,
                    DRY_RUN_REASON,
                )
                return

            if remote is not None:
                operation = SyncOperation.UPDATE
                remote_id = remote.id
                payload = self.mapper.to_remote_payload(record)
                await self.rate_limiter.execute(
                    lambda: self.remote.update_entity(remote.id, payload),
                    context="update_entity",
                )
            else:
                operation = SyncOperation.CREATE
                payload = self.mapper.to_remote_payload(record)
                remote_id = await self.rate_limiter.execute(
                    lambda: self.remote.create_entity(payload),
                    context="create_entity",
                )
        except Exception as exc:
            logger.error("Failed to sync record %s: %s", record.id, exc)
            self._set_status(record.id, SyncStatus.FAILED)
            self._stats.failed += 1
            self._write_history(
                record,
                operation,
                SyncOutcome.FAILED,
                started,
                remote_id,
                str(exc),
            )
            return

        self._set_status(
            record.id,
            SyncStatus.SYNCED,
            remote_id=remote_id,
            last_sync=self._clock(),
        )
        self._resolve_applied(record.id)
        self._stats.synced += 1
        if operation == SyncOperation.CREATE:
            self._stats.created += 1
        else:
            self._stats.updated += 1
        logger.info(
            "Record %s synced (%s, remote id %s)",
            record.id,
            operation.value,
            remote_id,
        )
        self._write_history(
            record, operation, SyncOutcome.SUCCESS, started, remote_id
        )

    async def _fetch_remote(self, record: Record) -> RemoteEntity | None:
        if record.remote_id is None:
            return None
        remote_id = record.remote_id
        return await self.rate_limiter.execute(
            lambda: self.remote.fetch_entity(remote_id),
            context="fetch_entity",
        )

    def _attach_step_diff(
        self, record: Record, remote: RemoteEntity, conflicts: list[Conflict]
    ) -> None:
        """Add a step-level diff summary to each conflict's details."""
        try:
            diff = self._step_diff(record, remote)
        except ValueError as exc:
            logger.warning(
                "Cannot diff remote steps of record %s: %s", record.id, exc
            )
            return
        summary = diff.summary.model_dump()
        for conflict in conflicts:
            conflict.details["step_diff"] = summary

    def _step_diff(self, record: Record, remote: RemoteEntity) -> CollectionDiff:
        remote_steps = self.mapper.remote_steps_to_steps(remote.steps)
        return compare_collections(remote_steps, record.steps)

    def _resolve_applied(self, record_id: str) -> None:
        """Close the non-blocking conflicts a successful write just applied."""
        for conflict in self.detector.list_for(record_id):
            if not conflict.is_resolved and not conflict.is_blocking:
                self.detector.resolve(conflict.id, conflict.resolution_policy)

    # ------------------------------------------------------------------
    # Store writes (never abort the batch)
    # ------------------------------------------------------------------

    def _set_status(
        self, record_id: str, status: SyncStatus, **fields: Any
    ) -> None:
        try:
            self.store.update_sync_status(record_id, status, **fields)
        except Exception as exc:
            logger.error(
                "Cannot set record %s to %s: %s", record_id, status.value, exc
            )

    def _write_history(
        self,
        record: Record,
        operation: SyncOperation,
        outcome: SyncOutcome,
        started: float,
        remote_id: str | None = None,
        error: str | None = None,
    ) -> SyncHistoryEntry:
        entry = SyncHistoryEntry(
            record_id=record.id,
            record_name=record.name,
            operation=operation,
            outcome=outcome,
            remote_id=remote_id,
            error=error,
            duration_ms=self._elapsed_ms(started),
            created_at=self._clock(),
        )
        self._history.append(entry)
        try:
            self.store.append_history(entry)
        except Exception as exc:
            logger.error(
                "Cannot write history for record %s: %s", record.id, exc
            )
        return entry

    def _elapsed_ms(self, started: float) -> int:
        return max(0, round((self._timer() - started) * 1000))

    # ------------------------------------------------------------------
    # Manual operations and queries
    # ------------------------------------------------------------------

    async def rollback(
        self, record_id: str, remote_id: str | None = None
    ) -> RollbackResult:
        """Delete a record's remote counterpart and mark it ``Failed``.

        Args:
            record_id: Record to roll back.
            remote_id: Remote entity to delete; defaults to the record's
                own ``remote_id``.

        Returns:
            ``RollbackResult``; failures are reported, never raised.
        """
        started = self._timer()
        try:
            record = self.store.fetch_record(record_id)
        except Exception as exc:
            logger.error("Rollback of %s failed: %s", record_id, exc)
            return RollbackResult(success=False, error=str(exc))
        if record is None:
            return RollbackResult(
                success=False, error=f"Record {record_id} not found"
            )

        target = remote_id or record.remote_id
        if target is None:
            return RollbackResult(
                success=False,
                error=f"Record {record_id} has no remote counterpart",
            )

        logger.warning("Rolling back record %s (remote %s)", record_id, target)
        try:
            await self.rate_limiter.execute(
                lambda: self.remote.delete_entity(target),
                context="delete_entity",
            )
        except Exception as exc:
            logger.error("Rollback of %s failed: %s", record_id, exc)
            self._write_history(
                record,
                SyncOperation.ROLLBACK,
                SyncOutcome.FAILED,
                started,
                target,
                str(exc),
            )
            return RollbackResult(success=False, error=str(exc))

        self._set_status(record_id, SyncStatus.FAILED)
        self._write_history(
            record, SyncOperation.ROLLBACK, SyncOutcome.SUCCESS, started, target
        )
        return RollbackResult(success=True)

    async def diff_remote(self, record_id: str) -> CollectionDiff:
        """Step-level diff from the remote copy of a record to the local one.

        Raises:
            LookupError: If the record or its remote counterpart is missing.
        """
        record = self.store.fetch_record(record_id)
        if record is None:
            raise LookupError(f"Record {record_id} not found")
        remote = await self._fetch_remote(record)
        if remote is None:
            raise LookupError(f"Record {record_id} has no remote counterpart")
        return self._step_diff(record, remote)

    def get_history(
        self, record_id: str | None = None
    ) -> list[SyncHistoryEntry]:
        """Stored history for *record_id*, or this run's entries if omitted."""
        if record_id is not None:
            return self.store.fetch_history(record_id)
        return list(self._history)

    def status(self) -> dict[str, Any]:
        """Snapshot of the current options, stats and open conflicts."""
        return {
            "options": self._options,
            "stats": self._stats.model_copy(),
            "conflicts": self.detector.unresolved(),
        }
