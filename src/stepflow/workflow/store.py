"""State store contract consumed by the engine.

A store persists `StateRecord`s append-only. "Current state" for a
(model, process) pair is the record with the highest id.

Appends are atomic. Passing `expected` turns an append into a
compare-and-append: the store checks, inside the same critical section as the
insert, that its current record for the pair is still `expected` and raises
`ConcurrentModificationError` otherwise.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from stepflow.exceptions import ConcurrentModificationError

from .records import StateRecord, Violation, WorkflowModel


class _Unchecked(Enum):
    UNCHECKED = "unchecked"


UNCHECKED = _Unchecked.UNCHECKED

Expected = StateRecord | None | _Unchecked


class StateStore(Protocol):
    """Protocol for model state persistence backends."""

    def find_current_state(self, model: WorkflowModel, process_name: str) -> StateRecord | None:
        """Return the most recently appended record for the pair, if any."""

    def append_success(
        self,
        model: WorkflowModel,
        process_name: str,
        step_name: str,
        previous: StateRecord | None,
        *,
        expected: Expected = UNCHECKED,
    ) -> StateRecord:
        """Persist a successful arrival chained to `previous`."""

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
        """Persist a failed arrival carrying `violations`, chained to `previous`."""

    def find_all_states(
        self, model: WorkflowModel, process_name: str, success_only: bool = True
    ) -> list[StateRecord]:
        """Return the pair's records, newest first."""

    def get_state(self, record_id: int) -> StateRecord | None:
        """Return a record by id."""


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def data_snapshot(model: WorkflowModel) -> dict[str, Any] | None:
    data = model.workflow_data()
    return dict(data) if data else None


def ensure_expected(
    current: StateRecord | None,
    expected: Expected,
    *,
    process_name: str,
    workflow_identifier: str,
) -> None:
    """Raise `ConcurrentModificationError` when `current` is not `expected`."""

    if expected is UNCHECKED:
        return
    current_id = current.id if current is not None else None
    expected_id = expected.id if expected is not None else None
    if current_id != expected_id:
        raise ConcurrentModificationError(
            process_name, workflow_identifier, expected_id=expected_id, actual_id=current_id
        )
