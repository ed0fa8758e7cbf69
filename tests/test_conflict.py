"""Tests for sync/conflict.py: detection rules and the conflict registry."""

from __future__ import annotations

from datetime import timedelta

from conftest import HOUR, T0, make_record, remote_for

from journey_sync.sync.conflict import ConflictDetector
from journey_sync.sync.models import (
    Conflict,
    ConflictType,
    ResolutionPolicy,
    Severity,
)


def _detector() -> ConflictDetector:
    return ConflictDetector(clock=lambda: T0)


def _types(conflicts: list[Conflict]) -> list[ConflictType]:
    return [c.type for c in conflicts]


class TestDetect:
    def test_missing_remote_short_circuits(self):
        """No remote -> exactly one low/auto-create MissingRemote conflict."""
        conflicts = _detector().detect(make_record(version=9), None)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.type == ConflictType.MISSING_REMOTE
        assert conflict.severity == Severity.LOW
        assert conflict.resolution_policy == ResolutionPolicy.AUTO_CREATE
        assert conflict.record_name == "Journey rec_1"
        assert conflict.detected_at == T0

    def test_in_sync_remote(self):
        """Remote older than the last sync and last edit -> no conflicts."""
        record = make_record(
            version=3, last_modified=T0, last_sync=T0 - HOUR
        )
        remote = remote_for(record, updated_at=T0 - 2 * HOUR)

        assert _detector().detect(record, remote) == []

    def test_external_modification(self):
        """Remote touched after last sync and last local edit -> high/manual."""
        last_sync = T0 - HOUR
        record = make_record(last_modified=last_sync, last_sync=last_sync)
        remote = remote_for(
            record, updated_at=last_sync + timedelta(minutes=30)
        )

        conflicts = _detector().detect(record, remote)

        assert _types(conflicts) == [ConflictType.EXTERNAL_MODIFICATION]
        conflict = conflicts[0]
        assert conflict.severity == Severity.HIGH
        assert conflict.resolution_policy == ResolutionPolicy.MANUAL
        assert conflict.remote_id == "wf_1"
        assert conflict.details["last_sync"] == last_sync.isoformat()

    def test_never_synced_uses_epoch(self):
        """A record never synced compares against the epoch."""
        record = make_record(last_modified=None, last_sync=None)
        remote = remote_for(record, updated_at=T0)

        conflicts = _detector().detect(record, remote)
        assert _types(conflicts) == [ConflictType.EXTERNAL_MODIFICATION]

    def test_remote_without_timestamp(self):
        """No updated_at on the remote side never signals modification."""
        record = make_record(last_modified=None, last_sync=None)
        assert _detector().detect(record, remote_for(record)) == []

    def test_version_mismatch(self):
        record = make_record(version=2)
        remote = remote_for(record)
        remote = remote.model_copy(
            update={
                "settings": remote.settings.model_copy(
                    update={"record_version": 5}
                )
            }
        )

        conflicts = _detector().detect(record, remote)

        assert _types(conflicts) == [ConflictType.VERSION_MISMATCH]
        assert conflicts[0].severity == Severity.MEDIUM
        assert conflicts[0].resolution_policy == ResolutionPolicy.MERGE
        assert conflicts[0].details == {"local_version": 2, "remote_version": 5}

    def test_older_echoed_version_is_fine(self):
        record = make_record(version=4)
        remote = remote_for(make_record(version=3))
        assert _detector().detect(record, remote) == []

    def test_step_count_mismatch(self):
        record = make_record()
        remote = remote_for(record)
        remote = remote.model_copy(update={"steps": remote.steps[:1]})

        conflicts = _detector().detect(record, remote)

        assert _types(conflicts) == [ConflictType.CONCURRENT_EDIT]
        assert conflicts[0].severity == Severity.LOW
        assert conflicts[0].resolution_policy == ResolutionPolicy.AUTO_OVERWRITE
        assert "local has 2 steps, remote has 1" in conflicts[0].message

    def test_all_checks_run(self):
        """Independent checks all report."""
        record = make_record(version=1, last_modified=None, last_sync=None)
        remote = remote_for(make_record(version=7), updated_at=T0)
        remote = remote.model_copy(update={"steps": []})

        conflicts = _detector().detect(record, remote)

        assert _types(conflicts) == [
            ConflictType.EXTERNAL_MODIFICATION,
            ConflictType.VERSION_MISMATCH,
            ConflictType.CONCURRENT_EDIT,
        ]

    def test_detection_is_repeatable(self):
        """Same inputs give the same types/severities with fresh identities."""
        detector = _detector()
        record = make_record(last_modified=None, last_sync=None)
        remote = remote_for(record, updated_at=T0)

        first = detector.detect(record, remote)
        second = detector.detect(record, remote)

        assert [(c.type, c.severity) for c in first] == [
            (c.type, c.severity) for c in second
        ]
        assert {c.id for c in first}.isdisjoint(c.id for c in second)

    def test_detect_does_not_register(self):
        detector = _detector()
        detector.detect(make_record(), None)
        assert detector.all_conflicts() == []


class TestRegistry:
    def _blocking(self, detector: ConflictDetector, record_id: str = "rec_1") -> Conflict:
        record = make_record(record_id, last_modified=None, last_sync=None)
        conflict = detector.detect(record, remote_for(record, updated_at=T0))[0]
        return detector.register(record_id, conflict)

    def test_register_and_list(self):
        detector = _detector()
        conflict = self._blocking(detector)

        assert detector.list_for("rec_1") == [conflict]
        assert detector.list_for("other") == []

    def test_manual_conflict_blocks(self):
        detector = _detector()
        self._blocking(detector)
        assert detector.is_blocking("rec_1")
        assert not detector.is_blocking("rec_2")

    def test_non_manual_does_not_block(self):
        detector = _detector()
        conflict = detector.detect(make_record(), None)[0]
        detector.register("rec_1", conflict)
        assert not detector.is_blocking("rec_1")

    def test_resolve_unblocks_and_keeps_history(self):
        resolved_at = T0 + HOUR
        detector = ConflictDetector(clock=lambda: resolved_at)
        conflict = self._blocking(detector)

        result = detector.resolve(conflict.id, ResolutionPolicy.AUTO_OVERWRITE)

        assert result is conflict
        assert conflict.resolved_at == resolved_at
        assert conflict.resolution_policy == ResolutionPolicy.AUTO_OVERWRITE
        assert not detector.is_blocking("rec_1")
        assert detector.list_for("rec_1") == [conflict]

    def test_resolve_accepts_policy_string(self):
        detector = _detector()
        conflict = self._blocking(detector)
        detector.resolve(conflict.id, "merge")
        assert conflict.resolution_policy == ResolutionPolicy.MERGE

    def test_resolve_unknown(self):
        assert _detector().resolve("missing", ResolutionPolicy.MANUAL) is None

    def test_instances_are_isolated(self):
        first, second = _detector(), _detector()
        self._blocking(first)
        assert first.is_blocking("rec_1")
        assert not second.is_blocking("rec_1")

    def test_unresolved_and_report(self):
        detector = _detector()
        blocking = self._blocking(detector, "rec_1")
        detector.register("rec_2", detector.detect(make_record("rec_2"), None)[0])
        detector.resolve(blocking.id, ResolutionPolicy.MANUAL)

        assert [c.record_id for c in detector.unresolved()] == ["rec_2"]
        assert detector.report() == {
            "total": 2,
            "by_type": {"external_modification": 1, "missing_remote": 1},
            "by_severity": {"high": 1, "low": 1},
            "resolved": 1,
            "unresolved": 1,
        }
