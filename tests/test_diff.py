"""Tests for sync/diff.py: token diff, structured diff, collection diff."""

from __future__ import annotations

import pytest

from journey_sync.sync.diff import (
    compare,
    compare_collections,
    compare_structured,
    render_unified,
    tokenize,
)
from journey_sync.sync.models import (
    DelayPayload,
    DelayUnit,
    DiffKind,
    MessagePayload,
    NotePayload,
    Step,
)


def _spans(result):
    return [(c.kind, c.value) for c in result.changes]


def _email(step_id="s1", subject="Hi", body="Hello world", **kwargs) -> Step:
    return Step(
        id=step_id,
        order=kwargs.pop("order", 1),
        name=kwargs.pop("name", "Email"),
        payload=MessagePayload(subject=subject, body=body),
        **kwargs,
    )


class TestTokenize:
    def test_lossless(self):
        text = "Hi,  there!\nSee snake_case & 42 items."
        assert "".join(tokenize(text)) == text

    def test_token_classes(self):
        assert tokenize("Hi, you") == ["Hi", ",", " ", "you"]

    def test_underscore_kept_in_word(self):
        assert tokenize("first_name") == ["first_name"]


class TestCompare:
    def test_inserted_word(self):
        """'Hello world' -> 'Hello brave world' inserts one span."""
        result = compare("Hello world", "Hello brave world")
        assert result.kind == DiffKind.CHANGED
        assert _spans(result) == [
            (DiffKind.UNCHANGED, "Hello "),
            (DiffKind.ADDED, "brave "),
            (DiffKind.UNCHANGED, "world"),
        ]

    def test_identical(self):
        result = compare("Same text.", "Same text.")
        assert result.kind == DiffKind.UNCHANGED
        assert _spans(result) == [(DiffKind.UNCHANGED, "Same text.")]
        assert not result.has_changes

    def test_both_empty(self):
        result = compare("", "")
        assert result.kind == DiffKind.UNCHANGED
        assert result.changes == []

    def test_none_treated_as_empty(self):
        assert compare(None, None).kind == DiffKind.UNCHANGED
        assert compare(None, "new").kind == DiffKind.ADDED

    def test_only_new(self):
        result = compare("", "Fresh copy")
        assert result.kind == DiffKind.ADDED
        assert _spans(result) == [(DiffKind.ADDED, "Fresh copy")]
        assert result.summary.added == 2

    def test_only_old(self):
        result = compare("Old copy", "")
        assert result.kind == DiffKind.REMOVED
        assert _spans(result) == [(DiffKind.REMOVED, "Old copy")]
        assert result.summary.removed == 2

    def test_replacement(self):
        result = compare("Buy now", "Shop now")
        assert _spans(result) == [
            (DiffKind.REMOVED, "Buy"),
            (DiffKind.ADDED, "Shop"),
            (DiffKind.UNCHANGED, " now"),
        ]
        assert result.summary.added == 1
        assert result.summary.removed == 1
        assert result.summary.changed == 1
        assert result.summary.total_changes == 2

    def test_runs_merged(self):
        """No two adjacent spans share a kind."""
        result = compare("a b c d e", "a x y d z")
        kinds = [c.kind for c in result.changes]
        assert all(k1 != k2 for k1, k2 in zip(kinds, kinds[1:]))

    @pytest.mark.parametrize(
        "old,new",
        [
            ("Hello world", "Hello brave world"),
            ("The quick brown fox", "A quick red fox jumps"),
            ("one, two; three.", "three. two, one;"),
            ("line one\nline two\n", "line one\nline 2\nline three\n"),
            ("abc", "xyz"),
        ],
    )
    def test_sides_reconstruct(self, old, new):
        """Removed+Unchanged rebuild old; Added+Unchanged rebuild new."""
        result = compare(old, new)
        assert result.old_text() == old
        assert result.new_text() == new

    @pytest.mark.parametrize("text", ["", "x", "Hello,   world!\n\tBye."])
    def test_self_compare_round_trip(self, text):
        result = compare(text, text)
        assert "".join(c.value for c in result.changes) == text
        assert result.kind == DiffKind.UNCHANGED

    def test_deterministic(self):
        assert compare("a b c", "a c d") == compare("a b c", "a c d")


class TestCompareStructured:
    def test_unchanged_step(self):
        comparison = compare_structured(_email(), _email())
        assert comparison.step_id == "s1"
        assert not comparison.has_changes
        assert set(comparison.field_diffs) == {
            "name",
            "kind",
            "subject",
            "body",
            "delay",
            "delay_unit",
        }

    def test_body_change(self):
        comparison = compare_structured(
            _email(body="Hello world"), _email(body="Hello brave world")
        )
        assert comparison.has_changes
        assert comparison.field_diffs["body"].kind == DiffKind.CHANGED
        assert not comparison.field_diffs["subject"].has_changes

    def test_delay_change(self):
        old = _email(delay=1, delay_unit=DelayUnit.DAYS)
        new = _email(delay=2, delay_unit=DelayUnit.HOURS)
        comparison = compare_structured(old, new)
        assert comparison.field_diffs["delay"].has_changes
        assert comparison.field_diffs["delay_unit"].has_changes

    def test_kind_change_clears_message_fields(self):
        """Non-message steps project empty subject and body."""
        new = Step(id="s1", order=1, name="Email", payload=NotePayload(content="x"))
        comparison = compare_structured(_email(), new)
        assert comparison.field_diffs["kind"].has_changes
        assert comparison.field_diffs["body"].kind == DiffKind.REMOVED


class TestCompareCollections:
    def test_partition(self):
        old = [
            _email("a", order=1),
            _email("b", order=2),
            _email("c", order=3),
        ]
        new = [
            _email("a", order=1),
            _email("b", order=2, body="Changed body"),
            Step(id="d", order=3, name="Wait", payload=DelayPayload(), delay=2),
        ]

        diff = compare_collections(old, new)

        assert [s.id for s in diff.added] == ["d"]
        assert [s.id for s in diff.removed] == ["c"]
        assert [m.step_id for m in diff.modified] == ["b"]
        assert diff.summary.total == 3
        assert diff.has_changes

    def test_identical_lists_report_nothing(self):
        steps = [_email("a"), _email("b", order=2)]
        diff = compare_collections(steps, steps)
        assert not diff.has_changes
        assert diff.summary.modified == 0


class TestRenderUnified:
    def test_no_changes(self):
        assert render_unified(compare("same", "same")) == "No changes."

    def test_prefixed_lines(self):
        rendered = render_unified(
            compare("Buy now", "Shop now"), label_old="remote", label_new="local"
        )
        assert rendered.splitlines() == [
            "--- remote",
            "+++ local",
            "-Buy",
            "+Shop",
            "  now",
        ]
