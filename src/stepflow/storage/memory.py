"""List-backed state stores.

`InMemoryStateStore` keeps records in process memory; it is useful for tests or
when no database is configured. `JsonFileStateStore` persists the same list to
a single JSON document so history survives restarts.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from stepflow.exceptions import StateStoreCorruptedError
from stepflow.workflow.records import StateRecord, Violation, WorkflowModel
from stepflow.workflow.store import UNCHECKED, Expected, data_snapshot, ensure_expected, utc_now

logger = logging.getLogger(__name__)


class InMemoryStateStore:
    """Store model states in local memory.

    Data is not persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: list[StateRecord] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Backing list, always accessed under the lock
    def _load_unlocked(self) -> list[StateRecord]:
        return list(self._records)

    def _save_unlocked(self, records: list[StateRecord]) -> None:
        self._records = records

    @staticmethod
    def _current_in(
        records: list[StateRecord], workflow_identifier: str, process_name: str
    ) -> StateRecord | None:
        for record in reversed(records):
            if (
                record.workflow_identifier == workflow_identifier
                and record.process_name == process_name
            ):
                return record
        return None

    def _append(
        self,
        model: WorkflowModel,
        process_name: str,
        step_name: str,
        *,
        successful: bool,
        violations: Sequence[Violation],
        previous: StateRecord | None,
        expected: Expected,
    ) -> StateRecord:
        identifier = model.workflow_identifier
        with self._lock:
            records = self._load_unlocked()
            ensure_expected(
                self._current_in(records, identifier, process_name),
                expected,
                process_name=process_name,
                workflow_identifier=identifier,
            )
            record = StateRecord(
                id=records[-1].id + 1 if records else 1,
                workflow_identifier=identifier,
                process_name=process_name,
                step_name=step_name,
                successful=successful,
                created_at=utc_now(),
                data=data_snapshot(model),
                errors=list(violations),
                previous_id=previous.id if previous is not None else None,
            )
            records.append(record)
            self._save_unlocked(records)
            return record

    # ------------------------------------------------------------------
    # Store API
    def find_current_state(self, model: WorkflowModel, process_name: str) -> StateRecord | None:
        with self._lock:
            return self._current_in(
                self._load_unlocked(), model.workflow_identifier, process_name
            )

    def append_success(
        self,
        model: WorkflowModel,
        process_name: str,
        step_name: str,
        previous: StateRecord | None,
        *,
        expected: Expected = UNCHECKED,
    ) -> StateRecord:
        return self._append(
            model,
            process_name,
            step_name,
            successful=True,
            violations=(),
            previous=previous,
            expected=expected,
        )

    def append_error(
        self,
        model: WorkflowModel,
        process_name: str,
        step_name: str,
        violations: Sequence[Violation],
        previous: StateRecord | None,
        *,
        expected: Expected = UNCHECKED,
    ) -> StateRecord:
        return self._append(
            model,
            process_name,
            step_name,
            successful=False,
            violations=violations,
            previous=previous,
            expected=expected,
        )

    def find_all_states(
        self, model: WorkflowModel, process_name: str, success_only: bool = True
    ) -> list[StateRecord]:
        with self._lock:
            records = self._load_unlocked()
        return [
            r
            for r in reversed(records)
            if r.workflow_identifier == model.workflow_identifier
            and r.process_name == process_name
            and (r.successful or not success_only)
        ]

    def get_state(self, record_id: int) -> StateRecord | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.id == record_id:
                    return record
            return None


class JsonFileStateStore(InMemoryStateStore):
    """JSON-file backed store; the whole list is rewritten on every append.

    An unreadable file raises `StateStoreCorruptedError` on every access.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> list[StateRecord]:
        # A damaged file is never treated as empty: the next save would erase
        # the history it still holds on disk.
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise self._corrupted(f"not valid JSON ({e.msg})") from e
        if not isinstance(raw, list):
            raise self._corrupted("expected a list of records")
        try:
            return [StateRecord.model_validate(item) for item in raw]
        except ValidationError as e:
            raise self._corrupted(f"invalid record ({e.error_count()} errors)") from e

    def _save_unlocked(self, records: list[StateRecord]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        # Write a sibling file then rename over the target so readers never
        # observe a half-written document.
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )
        os.replace(tmp_path, self._path)

    def _corrupted(self, reason: str) -> StateStoreCorruptedError:
        logger.error(
            "Model state file is unreadable",
            extra={"path": str(self._path), "reason": reason},
        )
        return StateStoreCorruptedError(str(self._path), reason)
