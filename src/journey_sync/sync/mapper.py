"""Record <-> remote workflow payload mapping.

Forward mapping (``to_remote_payload``) is what the orchestrator pushes on
create and update:

1. **Name** -- sanitised to letters, digits, spaces, ``-`` and ``_``,
   trimmed, at most 100 characters.  A name with nothing left is a
   ``RecordDataError``.
2. **Steps** -- emitted in ascending ``order``; the remote ``order`` is the
   list index and the remote id is ``step_<step id>``.
3. **Step data** -- chosen by matching on the payload class; every payload
   kind has its own branch.
4. **Settings** -- carry the record id and version so the remote side
   echoes the version back for conflict detection.

Reverse mapping (``remote_steps_to_steps``) rebuilds Steps from a remote
entity so the two sides can be diffed.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from journey_sync.errors import RecordDataError

from .models import (
    CallPayload,
    ConditionPayload,
    DelayPayload,
    DelayUnit,
    MessageChannel,
    MessagePayload,
    NotePayload,
    Record,
    RemoteStep,
    Step,
    StepPayload,
    TaskPayload,
    TriggerPayload,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
STEP_ID_PREFIX = "step_"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9\s\-_]")

_DELAY_UNIT_ALIASES = {
    "minutes": DelayUnit.MINUTES,
    "minute": DelayUnit.MINUTES,
    "min": DelayUnit.MINUTES,
    "hours": DelayUnit.HOURS,
    "hour": DelayUnit.HOURS,
    "hr": DelayUnit.HOURS,
    "days": DelayUnit.DAYS,
    "day": DelayUnit.DAYS,
    "d": DelayUnit.DAYS,
    "weeks": DelayUnit.WEEKS,
    "week": DelayUnit.WEEKS,
    "w": DelayUnit.WEEKS,
}


def sanitize_workflow_name(name: str) -> str:
    """Strip characters the remote engine rejects and cap the length."""
    return _UNSAFE_NAME_CHARS.sub("", name).strip()[:MAX_NAME_LENGTH]


def normalize_delay_unit(unit: str | None) -> DelayUnit:
    """Map a loose unit spelling (``"hr"``, ``"Day"``...) to ``DelayUnit``.

    Unknown or missing units fall back to hours.
    """
    if not unit:
        return DelayUnit.HOURS
    return _DELAY_UNIT_ALIASES.get(unit.strip().lower(), DelayUnit.HOURS)


class WorkflowMapper:
    """Translate Records into remote workflow payloads and back."""

    # ------------------------------------------------------------------
    # Record -> remote
    # ------------------------------------------------------------------

    def to_remote_payload(self, record: Record) -> dict[str, Any]:
        """Build the create/update payload for *record*.

        Args:
            record: The record to push.

        Returns:
            A JSON-serialisable workflow payload.

        Raises:
            RecordDataError: If the record name is empty after sanitising.
        """
        name = sanitize_workflow_name(record.name)
        if not name:
            raise RecordDataError(
                f"Record {record.id} has no usable name ({record.name!r})"
            )

        payload = {
            "name": name,
            "description": record.description,
            "status": "active",
            "steps": [
                self.step_to_remote(step, index)
                for index, step in enumerate(record.steps)
            ],
            "settings": {
                "triggerType": "manual",
                "recordId": record.id,
                "recordVersion": record.version,
            },
        }
        logger.debug(
            "Mapped record %s to workflow payload (%d steps)",
            record.id,
            len(payload["steps"]),
        )
        return payload

    def step_to_remote(self, step: Step, index: int) -> dict[str, Any]:
        remote_type, data = self._step_data(step)
        if step.delay and not isinstance(step.payload, DelayPayload):
            data["offset"] = {
                "amount": step.delay,
                "unit": step.delay_unit.value,
            }
        return {
            "id": f"{STEP_ID_PREFIX}{step.id}",
            "order": index,
            "type": remote_type,
            "name": step.name,
            "data": data,
        }

    def _step_data(self, step: Step) -> tuple[str, dict[str, Any]]:
        payload = step.payload
        match payload:
            case MessagePayload(channel=MessageChannel.EMAIL):
                return "email", {
                    "subject": payload.subject,
                    "body": payload.body,
                    "previewText": payload.preview_text,
                    "templateId": payload.template_id,
                }
            case MessagePayload(channel=MessageChannel.SMS):
                return "sms", {
                    "body": payload.body,
                    "templateId": payload.template_id,
                }
            case TaskPayload():
                return "task", {
                    "title": step.name,
                    "description": payload.description,
                    "assignee": payload.assignee,
                    "dueIn": payload.due_in_hours,
                    "priority": payload.priority,
                    "status": "pending",
                }
            case DelayPayload():
                return "delay", {
                    "amount": step.delay or 1,
                    "unit": step.delay_unit.value,
                }
            case ConditionPayload():
                return "conditional", {
                    "condition": payload.condition,
                    "ifTrue": {"action": "continue"},
                    "ifFalse": {"action": "end"},
                }
            case TriggerPayload():
                return "trigger", {
                    "triggerType": payload.trigger_type,
                    "triggerData": dict(payload.trigger_data),
                }
            case NotePayload():
                return "note", {"content": payload.content}
            case CallPayload():
                return "call", {
                    "title": step.name,
                    "description": payload.description,
                    "assignee": payload.assignee,
                    "duration": payload.duration_minutes,
                }
            case _:
                raise RecordDataError(
                    f"Step {step.id} has unsupported payload "
                    f"{type(payload).__name__}"
                )

    # ------------------------------------------------------------------
    # Remote -> Record
    # ------------------------------------------------------------------

    def remote_steps_to_steps(self, remote_steps: list[RemoteStep]) -> list[Step]:
        """Rebuild local Steps from remote steps, preserving their order."""
        return [
            self.remote_step_to_step(remote_step, index)
            for index, remote_step in enumerate(remote_steps)
        ]

    def remote_step_to_step(self, remote_step: RemoteStep, index: int) -> Step:
        data = remote_step.data
        if remote_step.id:
            step_id = remote_step.id.removeprefix(STEP_ID_PREFIX)
        else:
            step_id = f"remote_{index}"

        delay, delay_unit = 0, DelayUnit.HOURS
        if remote_step.type == "delay":
            delay = int(data.get("amount") or 0)
            delay_unit = normalize_delay_unit(data.get("unit"))
        elif isinstance(data.get("offset"), dict):
            delay = int(data["offset"].get("amount") or 0)
            delay_unit = normalize_delay_unit(data["offset"].get("unit"))

        return Step(
            id=step_id,
            order=remote_step.order if remote_step.order is not None else index,
            name=remote_step.name or f"Step {index + 1}",
            payload=self._payload_from_remote(remote_step),
            delay=delay,
            delay_unit=delay_unit,
        )

    @staticmethod
    def _payload_from_remote(remote_step: RemoteStep) -> StepPayload:
        data = remote_step.data
        match remote_step.type:
            case "email":
                return MessagePayload(
                    channel=MessageChannel.EMAIL,
                    subject=data.get("subject") or "",
                    body=data.get("body") or "",
                    preview_text=data.get("previewText") or "",
                    template_id=data.get("templateId"),
                )
            case "sms":
                return MessagePayload(
                    channel=MessageChannel.SMS,
                    body=data.get("body") or "",
                    template_id=data.get("templateId"),
                )
            case "task":
                return TaskPayload(
                    description=data.get("description") or "",
                    assignee=data.get("assignee") or "",
                    due_in_hours=data.get("dueIn") or 24,
                    priority=data.get("priority") or "normal",
                )
            case "delay":
                return DelayPayload()
            case "conditional":
                return ConditionPayload(condition=data.get("condition") or "")
            case "trigger":
                return TriggerPayload(
                    trigger_type=data.get("triggerType") or "manual",
                    trigger_data=data.get("triggerData") or {},
                )
            case "call":
                return CallPayload(
                    description=data.get("description") or "",
                    assignee=data.get("assignee") or "",
                    duration_minutes=data.get("duration") or 30,
                )
            case _:
                # note, and anything the remote engine added since
                return NotePayload(
                    content=data.get("content")
                    or data.get("body")
                    or data.get("description")
                    or ""
                )
