"""Conflict detection between a Record and its remote counterpart.

``ConflictDetector.detect()`` re-evaluates divergence from scratch on every
call:

1. No remote entity -> one ``MISSING_REMOTE`` conflict (low, auto-create)
   and nothing else; there is nothing to compare against.
2. Remote modified after both the last sync and the last local edit ->
   ``EXTERNAL_MODIFICATION`` (high, manual).
3. Remote echoes a newer record version than the local one ->
   ``VERSION_MISMATCH`` (medium, merge).
4. Step counts differ -> ``CONCURRENT_EDIT`` (low, auto-overwrite).

Checks 2-4 are independent and all of them run.

The detector also owns the conflict registry for one orchestrator
instance: conflicts are registered per record, mutated only by
``resolve()``, and never dropped.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Callable

from .models import (
    EPOCH,
    Conflict,
    ConflictType,
    Record,
    RemoteEntity,
    ResolutionPolicy,
    Severity,
    utc_now,
)

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Classify Record/RemoteEntity divergence and track the results.

    Args:
        clock: Source of "now" for detection and resolution timestamps.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._conflicts: dict[str, list[Conflict]] = {}

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(
        self, record: Record, remote: RemoteEntity | None
    ) -> list[Conflict]:
        """Return every conflict that applies to *record* right now.

        Args:
            record: The local record.
            remote: Its remote counterpart, or ``None`` if there is none.

        Returns:
            Freshly created (unregistered) conflicts; empty if in sync.
        """
        if remote is None:
            logger.info("Record %s has no remote counterpart", record.id)
            return [
                self._new_conflict(
                    record,
                    None,
                    ConflictType.MISSING_REMOTE,
                    Severity.LOW,
                    ResolutionPolicy.AUTO_CREATE,
                    "Record exists locally but not in the remote workflow engine",
                )
            ]

        conflicts = [
            c
            for c in (
                self._check_external_modification(record, remote),
                self._check_version_mismatch(record, remote),
                self._check_step_count(record, remote),
            )
            if c is not None
        ]
        if conflicts:
            logger.warning(
                "Detected %d conflict(s) for record %s",
                len(conflicts),
                record.id,
            )
        return conflicts

    def _check_external_modification(
        self, record: Record, remote: RemoteEntity
    ) -> Conflict | None:
        remote_modified = remote.updated_at or EPOCH
        last_sync = record.last_sync or EPOCH
        local_modified = record.last_modified or EPOCH

        if remote_modified > last_sync and remote_modified > local_modified:
            logger.warning(
                "External modification of %s (remote=%s, local=%s, last sync=%s)",
                record.id,
                remote_modified.isoformat(),
                local_modified.isoformat(),
                last_sync.isoformat(),
            )
            return self._new_conflict(
                record,
                remote,
                ConflictType.EXTERNAL_MODIFICATION,
                Severity.HIGH,
                ResolutionPolicy.MANUAL,
                "Remote workflow was modified outside this system",
                {
                    "remote_modified": _iso(remote.updated_at),
                    "local_modified": _iso(record.last_modified),
                    "last_sync": _iso(record.last_sync),
                },
            )
        return None

    def _check_version_mismatch(
        self, record: Record, remote: RemoteEntity
    ) -> Conflict | None:
        remote_version = remote.echoed_version
        if remote_version is None or remote_version <= record.version:
            return None

        logger.warning(
            "Version mismatch for %s: local=%d remote=%d",
            record.id,
            record.version,
            remote_version,
        )
        return self._new_conflict(
            record,
            remote,
            ConflictType.VERSION_MISMATCH,
            Severity.MEDIUM,
            ResolutionPolicy.MERGE,
            "Remote workflow version is ahead of the local record",
            {"local_version": record.version, "remote_version": remote_version},
        )

    def _check_step_count(
        self, record: Record, remote: RemoteEntity
    ) -> Conflict | None:
        local_steps = len(record.steps)
        remote_steps = len(remote.steps)
        if local_steps == remote_steps:
            return None

        logger.info(
            "Step count differs for %s: local=%d remote=%d",
            record.id,
            local_steps,
            remote_steps,
        )
        return self._new_conflict(
            record,
            remote,
            ConflictType.CONCURRENT_EDIT,
            Severity.LOW,
            ResolutionPolicy.AUTO_OVERWRITE,
            f"Step count mismatch: local has {local_steps} steps, "
            f"remote has {remote_steps} steps",
            {"local_steps": local_steps, "remote_steps": remote_steps},
        )

    def _new_conflict(
        self,
        record: Record,
        remote: RemoteEntity | None,
        conflict_type: ConflictType,
        severity: Severity,
        policy: ResolutionPolicy,
        message: str,
        details: dict | None = None,
    ) -> Conflict:
        return Conflict(
            type=conflict_type,
            severity=severity,
            resolution_policy=policy,
            record_id=record.id,
            record_name=record.name,
            remote_id=remote.id if remote is not None else record.remote_id,
            message=message,
            details=details or {},
            detected_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, record_id: str, conflict: Conflict) -> Conflict:
        """Track *conflict* under *record_id* and return it."""
        self._conflicts.setdefault(record_id, []).append(conflict)
        return conflict

    def list_for(self, record_id: str) -> list[Conflict]:
        """All conflicts ever registered for *record_id*, oldest first."""
        return list(self._conflicts.get(record_id, []))

    def all_conflicts(self) -> list[Conflict]:
        return [c for group in self._conflicts.values() for c in group]

    def unresolved(self) -> list[Conflict]:
        return [c for c in self.all_conflicts() if not c.is_resolved]

    def resolve(
        self, conflict_id: str, resolution: ResolutionPolicy | str
    ) -> Conflict | None:
        """Mark a conflict resolved with the chosen policy.

        Args:
            conflict_id: Identity of a registered conflict.
            resolution: The policy that was applied.

        Returns:
            The updated conflict, or ``None`` if *conflict_id* is unknown.
        """
        policy = ResolutionPolicy(resolution)
        for record_id, conflicts in self._conflicts.items():
            for conflict in conflicts:
                if conflict.id == conflict_id:
                    conflict.resolution_policy = policy
                    conflict.resolved_at = self._clock()
                    logger.info(
                        "Conflict %s on record %s resolved (%s)",
                        conflict_id,
                        record_id,
                        policy.value,
                    )
                    return conflict
        logger.warning("Cannot resolve unknown conflict %s", conflict_id)
        return None

    def is_blocking(self, record_id: str) -> bool:
        """``True`` if *record_id* has an unresolved manual conflict."""
        return any(c.is_blocking for c in self._conflicts.get(record_id, []))

    def report(self) -> dict:
        """Summarise the registry by type, severity and resolution state."""
        conflicts = self.all_conflicts()
        resolved = sum(1 for c in conflicts if c.is_resolved)
        return {
            "total": len(conflicts),
            "by_type": dict(Counter(c.type.value for c in conflicts)),
            "by_severity": dict(Counter(c.severity.value for c in conflicts)),
            "resolved": resolved,
            "unresolved": len(conflicts) - resolved,
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
