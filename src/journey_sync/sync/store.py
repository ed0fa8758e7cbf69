"""File-backed Record Store.

Keeps every Record and the full sync history in a single JSON document
(default ``.journey_sync/records.json``)::

    {
      "version": 1,
      "records": {"<record id>": {...Record...}},
      "history": [{...SyncHistoryEntry...}, ...]
    }

Key design choices:

* **Atomic writes** -- every mutation rewrites the document through a temp
  file and ``os.replace()`` so readers never see partial data and a crash
  mid-run leaves the last completed record's state on disk.
* **Lazy validation** -- records are kept as plain dicts and validated on
  read, so one malformed record does not make the whole store unreadable.
* **Append-only history** -- entries are only ever appended.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from journey_sync.errors import RecordDataError

from .models import Record, SyncHistoryEntry, SyncStatus

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class JsonRecordStore:
    """Load, query and update Records persisted in one JSON file.

    Args:
        path: Location of the store document.  Missing parent directories
            are created on first write.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._data: dict | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict:
        if self._data is None:
            if self._path.exists():
                with open(self._path, encoding="utf-8") as fh:
                    self._data = json.load(fh)
            else:
                self._data = {
                    "version": STORE_FORMAT_VERSION,
                    "records": {},
                    "history": [],
                }
            self._data.setdefault("records", {})
            self._data.setdefault("history", [])
        return self._data

    def _save(self) -> None:
        """Persist the document atomically."""
        data = self._load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def reload(self) -> None:
        """Drop the cached document so the next read goes to disk."""
        self._data = None

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def save_record(self, record: Record) -> None:
        """Insert or replace *record*."""
        self._load()["records"][record.id] = record.model_dump(mode="json")
        self._save()

    def fetch_record(self, record_id: str) -> Record | None:
        raw = self._load()["records"].get(record_id)
        if raw is None:
            return None
        return Record.model_validate(raw)

    def list_records(self) -> list[Record]:
        """Every readable record; malformed ones are logged and left out."""
        records = []
        for record_id, raw in self._load()["records"].items():
            try:
                records.append(Record.model_validate(raw))
            except ValidationError as exc:
                logger.error(
                    "Skipping malformed record %s in %s: %s",
                    record_id,
                    self._path,
                    exc,
                )
        return records

    def fetch_pending_records(
        self, owner_id: str | None = None
    ) -> list[Record]:
        """Every Published record, Synced ones included, so each run re-pushes.

        Args:
            owner_id: Only return records belonging to this owner.
        """
        return [
            record
            for record in self.list_records()
            if record.is_published
            and (owner_id is None or record.owner_id == owner_id)
        ]

    def update_sync_status(
        self, record_id: str, status: SyncStatus, **fields: Any
    ) -> None:
        """Set ``sync_status`` and any extra fields on a stored record.

        Raises:
            RecordDataError: If *record_id* is not in the store.
        """
        records = self._load()["records"]
        raw = records.get(record_id)
        if raw is None:
            raise RecordDataError(f"Unknown record {record_id}")

        updates = {"sync_status": status, **fields}
        record = Record.model_validate(raw).model_copy(update=updates)
        records[record_id] = record.model_dump(mode="json")
        self._save()
        logger.debug("Record %s -> %s", record_id, status.value)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_history(self, entry: SyncHistoryEntry) -> None:
        self._load()["history"].append(entry.model_dump(mode="json"))
        self._save()

    def fetch_history(
        self, record_id: str | None = None
    ) -> list[SyncHistoryEntry]:
        """History entries in write order, optionally for one record."""
        return [
            SyncHistoryEntry.model_validate(raw)
            for raw in self._load()["history"]
            if record_id is None or raw.get("record_id") == record_id
        ]
