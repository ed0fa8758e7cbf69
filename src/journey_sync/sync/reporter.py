"""Run report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_run_report`` -- post-run summary with every outcome count.
- ``format_conflicts`` -- unresolved-conflict triage listing.
- ``format_history`` -- history entries, one per line.
- ``format_collection_diff`` -- step-level diff between remote and local.
- ``run_result_to_json`` -- JSON-serialisable dict of a ``RunResult``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        CollectionDiff,
        Conflict,
        RunResult,
        SyncHistoryEntry,
    )

from .diff import render_unified
from .models import SyncOutcome

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_run_report(result: RunResult) -> str:
    """Format a completed run as human-readable text.

    The count line is always present; failure and conflict sections are
    only included when they contain something.

    Args:
        result: The completed run.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Sync run"
    if result.dry_run:
        header += " (DRY RUN)"
    header += " completed" if result.success else " FAILED"
    lines.append(f"{header} in {result.duration_ms}ms")
    if result.error:
        lines.append(f"Error: {result.error}")
    lines.append("")

    stats = result.stats
    lines.append(
        f"{stats.synced} synced ({stats.created} created, "
        f"{stats.updated} updated), {stats.skipped} skipped, "
        f"{stats.failed} failed, {stats.conflicts} conflicts detected"
    )
    lines.append("")

    failed = [h for h in result.history if h.outcome == SyncOutcome.FAILED]
    if failed:
        lines.append("Not synced:")
        for h in failed:
            lines.append(f"  {h.record_id} ({h.record_name}): {h.error}")
        lines.append("")

    if result.conflicts:
        lines.append(format_conflicts(result.conflicts))
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflicts(conflicts: list[Conflict]) -> str:
    """List conflicts with enough context for manual triage.

    Blocking conflicts are flagged; they stop the record from syncing
    until resolved.
    """
    if not conflicts:
        return "No unresolved conflicts."

    lines = [f"Unresolved conflicts ({len(conflicts)}):"]
    for c in conflicts:
        flag = " [BLOCKING]" if c.is_blocking else ""
        lines.append(
            f"  {c.record_id} ({c.record_name}): {c.type.value}, "
            f"severity {c.severity.value}, policy "
            f"{c.resolution_policy.value}{flag}"
        )
        if c.message:
            lines.append(f"    {c.message}")
        lines.append(f"    conflict id: {c.id}")
    return "\n".join(lines)


def format_history(entries: list[SyncHistoryEntry]) -> str:
    if not entries:
        return "No history."
    lines = []
    for e in entries:
        line = (
            f"{e.created_at.isoformat()}  {e.record_id:<20} "
            f"{e.operation.value:<8} {e.outcome.value:<7} "
            f"{e.duration_ms}ms"
        )
        if e.remote_id:
            line += f"  remote={e.remote_id}"
        if e.error:
            line += f"  ({e.error})"
        lines.append(line)
    return "\n".join(lines)


# ------------------------------------------------------------------
# Step diff
# ------------------------------------------------------------------


def format_collection_diff(diff: CollectionDiff, record_id: str) -> str:
    """Format a remote -> local step diff for review.

    Args:
        diff: Result of ``compare_collections(remote_steps, local_steps)``.
        record_id: Record the diff belongs to (used in the header).

    Returns:
        Multi-line formatted string.
    """
    if not diff.has_changes:
        return f"Record {record_id}: remote and local steps match."

    summary = diff.summary
    lines = [
        f"Record {record_id}: {summary.modified} modified, "
        f"{summary.added} added, {summary.removed} removed "
        f"({summary.total} local steps)",
        "",
    ]

    for step in diff.added:
        lines.append(f"+ step {step.id} ({step.kind.value}): {step.name}")
    for step in diff.removed:
        lines.append(f"- step {step.id} ({step.kind.value}): {step.name}")
    if diff.added or diff.removed:
        lines.append("")

    for comparison in diff.modified:
        lines.append(f"~ step {comparison.step_id}")
        for field, field_diff in comparison.field_diffs.items():
            if not field_diff.has_changes:
                continue
            rendered = render_unified(
                field_diff,
                label_old=f"remote {field}",
                label_new=f"local {field}",
            )
            for line in rendered.splitlines():
                lines.append(f"    {line}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def run_result_to_json(result: RunResult) -> dict:
    """Convert a run result to a structured dict for JSON serialisation.

    Args:
        result: The run result.

    Returns:
        Dict with success flag, stats, duration, history and unresolved
        conflicts.
    """
    history = []
    for h in result.history:
        entry: dict = {
            "recordId": h.record_id,
            "recordName": h.record_name,
            "operation": h.operation.value,
            "outcome": h.outcome.value,
            "remoteId": h.remote_id,
            "durationMs": h.duration_ms,
            "createdAt": h.created_at.isoformat(),
        }
        if h.error:
            entry["error"] = h.error
        history.append(entry)

    data: dict = {
        "success": result.success,
        "dryRun": result.dry_run,
        "stats": result.stats.model_dump(),
        "durationMs": result.duration_ms,
        "history": history,
        "conflicts": [
            {
                "id": c.id,
                "recordId": c.record_id,
                "recordName": c.record_name,
                "type": c.type.value,
                "severity": c.severity.value,
                "resolutionPolicy": c.resolution_policy.value,
                "blocking": c.is_blocking,
                "message": c.message,
                "detectedAt": c.detected_at.isoformat(),
            }
            for c in result.conflicts
        ],
    }
    if result.error:
        data["error"] = result.error
    return data
