"""Persisted history entries.

A `StateRecord` is one arrival (successful or not) of a model at a step. Records
are immutable and form a backward chain per (model, process) through
`previous_id`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stepflow.exceptions import AccessDeniedError, ValidationFailure

ViolationCode = Literal["validation", "access_denied"]


class WorkflowModel(Protocol):
    """An entity driven through a process.

    `workflow_identifier` is the opaque key tying state records to this model.
    """

    @property
    def workflow_identifier(self) -> str: ...

    def workflow_data(self) -> dict[str, Any]: ...


class Violation(BaseModel):
    """A structured validation or authorization failure."""

    model_config = ConfigDict(frozen=True)

    code: ViolationCode
    message: str
    step: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_failure(cls, failure: ValidationFailure, *, step: str | None = None) -> Violation:
        return cls(code="validation", message=failure.message, step=step, details=failure.details)

    @classmethod
    def from_access_denied(cls, error: AccessDeniedError) -> Violation:
        return cls(code="access_denied", message=str(error), step=error.step_name)


class StateRecord(BaseModel):
    """Minimal persisted representation of one step arrival."""

    model_config = ConfigDict(frozen=True)

    id: int
    workflow_identifier: str
    process_name: str
    step_name: str
    successful: bool
    created_at: datetime
    data: dict[str, Any] | None = None
    errors: list[Violation] = Field(default_factory=list)
    previous_id: int | None = None

    @model_validator(mode="after")
    def _failed_states_carry_violations(self) -> StateRecord:
        if not self.successful and not self.errors:
            raise ValueError("A failed state must carry at least one violation")
        return self
