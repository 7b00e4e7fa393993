"""SQLite implementation of the state store."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from stepflow.workflow.records import StateRecord, Violation, WorkflowModel
from stepflow.workflow.store import UNCHECKED, Expected, data_snapshot, ensure_expected, utc_now

_COLUMNS = (
    "id, workflow_identifier, process_name, step_name, successful, created_at, "
    "data, errors, previous_id"
)


class SQLiteStateStore:
    """Persist model states as append-only rows in a `model_state` table.

    Each row may reference the previous row of the same run; deleting a row
    nulls the links pointing at it.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode; appends open their own IMMEDIATE transaction.
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS model_state (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_identifier TEXT NOT NULL,
                process_name TEXT NOT NULL,
                step_name TEXT NOT NULL,
                successful INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                data TEXT,
                errors TEXT,
                previous_id INTEGER REFERENCES model_state (id) ON DELETE SET NULL
            )
            """
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_model_state_workflow_identifier "
            "ON model_state (workflow_identifier)"
        )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    @staticmethod
    def _to_record(row: sqlite3.Row) -> StateRecord:
        errors = json.loads(row["errors"]) if row["errors"] else []
        return StateRecord(
            id=row["id"],
            workflow_identifier=row["workflow_identifier"],
            process_name=row["process_name"],
            step_name=row["step_name"],
            successful=bool(row["successful"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            data=json.loads(row["data"]) if row["data"] else None,
            errors=[Violation.model_validate(e) for e in errors],
            previous_id=row["previous_id"],
        )

    def _fetch_current(self, workflow_identifier: str, process_name: str) -> StateRecord | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM model_state "
            "WHERE workflow_identifier = ? AND process_name = ? ORDER BY id DESC LIMIT 1",
            (workflow_identifier, process_name),
        ).fetchone()
        return self._to_record(row) if row else None

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
        # Validate and serialise before touching the table; the id is assigned
        # by the insert.
        draft = StateRecord(
            id=0,
            workflow_identifier=identifier,
            process_name=process_name,
            step_name=step_name,
            successful=successful,
            created_at=utc_now(),
            data=data_snapshot(model),
            errors=list(violations),
            previous_id=previous.id if previous is not None else None,
        )
        dumped = draft.model_dump(mode="json")
        params: tuple[Any, ...] = (
            identifier,
            process_name,
            step_name,
            int(successful),
            dumped["created_at"],
            json.dumps(dumped["data"]) if dumped["data"] is not None else None,
            json.dumps(dumped["errors"]) if dumped["errors"] else None,
            draft.previous_id,
        )
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                ensure_expected(
                    self._fetch_current(identifier, process_name),
                    expected,
                    process_name=process_name,
                    workflow_identifier=identifier,
                )
                cur = self._conn.execute(
                    "INSERT INTO model_state (workflow_identifier, process_name, step_name, "
                    "successful, created_at, data, errors, previous_id) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    params,
                )
                row = self._conn.execute(
                    f"SELECT {_COLUMNS} FROM model_state WHERE id = ?", (cur.lastrowid,)
                ).fetchone()
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return self._to_record(row)

    # ------------------------------------------------------------------
    # Store API
    def find_current_state(self, model: WorkflowModel, process_name: str) -> StateRecord | None:
        with self._lock:
            return self._fetch_current(model.workflow_identifier, process_name)

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
        query = (
            f"SELECT {_COLUMNS} FROM model_state "
            "WHERE workflow_identifier = ? AND process_name = ?"
        )
        if success_only:
            query += " AND successful = 1"
        query += " ORDER BY id DESC"
        with self._lock:
            rows = self._conn.execute(query, (model.workflow_identifier, process_name)).fetchall()
        return [self._to_record(r) for r in rows]

    def get_state(self, record_id: int) -> StateRecord | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM model_state WHERE id = ?", (record_id,)
            ).fetchone()
        return self._to_record(row) if row else None
