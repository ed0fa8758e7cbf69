"""Token-level version diff for journey content.

Text is split into whitespace, word and punctuation tokens that keep every
original character, so concatenating the spans of a ``DiffResult`` always
reproduces the inputs exactly.  The edit script comes from an O(m*n)
longest-common-subsequence table walked front to back; runs of the same
change kind are merged into single spans.

- ``compare`` -- diff two strings.
- ``compare_structured`` -- per-field diff of two versions of one Step.
- ``compare_collections`` -- identity-partitioned diff of two step lists.
- ``render_unified`` -- ``+``/``-`` prefixed text for terminal display.

All functions are pure; identical inputs give identical results.
"""

from __future__ import annotations

import re
from typing import Iterable

from .models import (
    CollectionDiff,
    CollectionSummary,
    DiffChange,
    DiffKind,
    DiffResult,
    DiffSummary,
    MessagePayload,
    Step,
    StepComparison,
)

_TOKEN_PATTERN = re.compile(r"\s+|\w+|[^\s\w]")

STRUCTURED_FIELDS = ("name", "kind", "subject", "body", "delay", "delay_unit")


def tokenize(text: str) -> list[str]:
    """Split *text* into whitespace runs, word runs and single symbols."""
    return _TOKEN_PATTERN.findall(text)


# ------------------------------------------------------------------
# Text diff
# ------------------------------------------------------------------


def compare(old_text: str | None, new_text: str | None) -> DiffResult:
    """Compare two text snapshots.

    ``None`` is treated as empty text.

    Returns:
        ``UNCHANGED`` with no changes when both sides are empty, a single
        ``ADDED``/``REMOVED`` span when only one side is, otherwise
        ``CHANGED`` or ``UNCHANGED`` with the merged edit script.
    """
    old_text = old_text or ""
    new_text = new_text or ""

    if not old_text and not new_text:
        return DiffResult(kind=DiffKind.UNCHANGED)

    if not old_text:
        changes = [DiffChange(kind=DiffKind.ADDED, value=new_text)]
        return DiffResult(
            kind=DiffKind.ADDED, changes=changes, summary=_summarize(changes)
        )

    if not new_text:
        changes = [DiffChange(kind=DiffKind.REMOVED, value=old_text)]
        return DiffResult(
            kind=DiffKind.REMOVED,
            changes=changes,
            summary=_summarize(changes),
        )

    changes = _edit_script(tokenize(old_text), tokenize(new_text))
    has_changes = any(c.kind != DiffKind.UNCHANGED for c in changes)
    return DiffResult(
        kind=DiffKind.CHANGED if has_changes else DiffKind.UNCHANGED,
        changes=changes,
        summary=_summarize(changes),
    )


def _edit_script(old: list[str], new: list[str]) -> list[DiffChange]:
    """Minimal Unchanged/Removed/Added script turning *old* into *new*."""
    m, n = len(old), len(new)

    # lcs[i][j] = LCS length of old[i:] and new[j:]
    lcs = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m - 1, -1, -1):
        row, below = lcs[i], lcs[i + 1]
        for j in range(n - 1, -1, -1):
            if old[i] == new[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = max(below[j], row[j + 1])

    runs: list[tuple[DiffKind, list[str]]] = []

    def emit(kind: DiffKind, token: str) -> None:
        if runs and runs[-1][0] == kind:
            runs[-1][1].append(token)
        else:
            runs.append((kind, [token]))

    i = j = 0
    while i < m or j < n:
        if i < m and j < n and old[i] == new[j]:
            emit(DiffKind.UNCHANGED, old[i])
            i += 1
            j += 1
        elif j >= n or (i < m and lcs[i + 1][j] >= lcs[i][j + 1]):
            emit(DiffKind.REMOVED, old[i])
            i += 1
        else:
            emit(DiffKind.ADDED, new[j])
            j += 1

    return [
        DiffChange(kind=kind, value="".join(tokens)) for kind, tokens in runs
    ]


def _word_count(text: str) -> int:
    return len(text.split())


def _summarize(changes: Iterable[DiffChange]) -> DiffSummary:
    added = removed = total = 0
    for change in changes:
        if change.kind == DiffKind.ADDED:
            added += _word_count(change.value)
            total += 1
        elif change.kind == DiffKind.REMOVED:
            removed += _word_count(change.value)
            total += 1
    return DiffSummary(
        added=added,
        removed=removed,
        changed=min(added, removed),
        total_changes=total,
    )


# ------------------------------------------------------------------
# Structured diff
# ------------------------------------------------------------------


def _project(step: Step) -> dict[str, str]:
    """Fixed field projection of a Step used for comparison."""
    payload = step.payload
    is_message = isinstance(payload, MessagePayload)
    return {
        "name": step.name,
        "kind": step.kind.value,
        "subject": payload.subject if is_message else "",
        "body": payload.body if is_message else "",
        "delay": str(step.delay),
        "delay_unit": step.delay_unit.value,
    }


def compare_structured(old_step: Step, new_step: Step) -> StepComparison:
    """Diff two versions of a step field by field.

    Args:
        old_step: Previous version.
        new_step: Current version.

    Returns:
        A ``StepComparison`` with one ``DiffResult`` per projected field;
        ``has_changes`` is true if any field changed.
    """
    old_fields = _project(old_step)
    new_fields = _project(new_step)
    field_diffs = {
        name: compare(old_fields[name], new_fields[name])
        for name in STRUCTURED_FIELDS
    }
    return StepComparison(
        step_id=new_step.id or old_step.id,
        field_diffs=field_diffs,
        has_changes=any(d.has_changes for d in field_diffs.values()),
    )


def compare_collections(
    old_steps: list[Step], new_steps: list[Step]
) -> CollectionDiff:
    """Partition two step lists by step id.

    Steps only in *new_steps* are added, steps only in *old_steps* are
    removed, steps in both are compared with ``compare_structured`` and
    reported only when something changed.
    """
    old_by_id = {step.id: step for step in old_steps}
    new_ids = {step.id for step in new_steps}

    added: list[Step] = []
    modified: list[StepComparison] = []
    for new_step in new_steps:
        old_step = old_by_id.get(new_step.id)
        if old_step is None:
            added.append(new_step)
            continue
        comparison = compare_structured(old_step, new_step)
        if comparison.has_changes:
            modified.append(comparison)

    removed = [step for step in old_steps if step.id not in new_ids]

    return CollectionDiff(
        added=added,
        removed=removed,
        modified=modified,
        summary=CollectionSummary(
            modified=len(modified),
            added=len(added),
            removed=len(removed),
            total=len(new_steps),
        ),
    )


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------

_PREFIX = {
    DiffKind.ADDED: "+",
    DiffKind.REMOVED: "-",
    DiffKind.UNCHANGED: " ",
}


def render_unified(
    diff: DiffResult, label_old: str = "old", label_new: str = "new"
) -> str:
    """Render a ``DiffResult`` as prefixed lines.

    Returns:
        ``"No changes."`` for an unchanged diff, otherwise a ``---``/``+++``
        header followed by each span's lines prefixed with ``-``, ``+`` or
        a space.
    """
    if not diff.has_changes:
        return "No changes."

    lines = [f"--- {label_old}", f"+++ {label_new}"]
    for change in diff.changes:
        prefix = _PREFIX.get(change.kind, " ")
        for line in change.value.split("\n"):
            lines.append(f"{prefix}{line}")
    return "\n".join(lines)
