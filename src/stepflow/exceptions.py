"""Errors raised by the workflow engine.

Configuration errors (unknown process, step or transition) and usage
preconditions (already started, not started) are raised to the caller.

Access denial and validation failure are business outcomes: the engine
records them as a failed state instead of raising them.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error raised by stepflow."""


class AlreadyStartedError(WorkflowError):
    def __init__(self, process_name: str, workflow_identifier: str) -> None:
        super().__init__(
            f'The given model has already started the "{process_name}" process.'
        )
        self.process_name = process_name
        self.workflow_identifier = workflow_identifier


class NotStartedError(WorkflowError):
    def __init__(self, process_name: str, workflow_identifier: str) -> None:
        super().__init__(f'The given model has not started the "{process_name}" process.')
        self.process_name = process_name
        self.workflow_identifier = workflow_identifier


class UnknownProcessError(WorkflowError):
    def __init__(self, process_name: str) -> None:
        super().__init__(f'Unknown process "{process_name}".')
        self.process_name = process_name


class UnknownStepError(WorkflowError):
    def __init__(self, step_name: str, process_name: str) -> None:
        super().__init__(f'Can\'t find step named "{step_name}" in process "{process_name}".')
        self.step_name = step_name
        self.process_name = process_name


class UnknownTransitionError(WorkflowError):
    def __init__(self, step_name: str, state_name: str) -> None:
        super().__init__(
            f'The step "{step_name}" does not contain any next state named "{state_name}".'
        )
        self.step_name = step_name
        self.state_name = state_name


class NoSuchTransitionError(UnknownTransitionError):
    """Raised by ``advance`` when the current step has no such outgoing state."""


class AccessDeniedError(WorkflowError):
    """The authorization check refused the roles required by a step."""

    def __init__(self, step_name: str) -> None:
        super().__init__(f'Access denied to step "{step_name}".')
        self.step_name = step_name


class ValidationFailure(WorkflowError):
    """Raised by a validation callable to reject a model.

    Keyword arguments are kept as structured details on the recorded violation.
    """

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConcurrentModificationError(WorkflowError):
    """The store's current state moved between the engine's read and its append."""

    def __init__(
        self,
        process_name: str,
        workflow_identifier: str,
        expected_id: int | None,
        actual_id: int | None,
    ) -> None:
        super().__init__(
            f'Concurrent modification of "{process_name}" for model {workflow_identifier!r}: '
            f"expected current state {expected_id}, found {actual_id}."
        )
        self.process_name = process_name
        self.workflow_identifier = workflow_identifier
        self.expected_id = expected_id
        self.actual_id = actual_id


class StateStoreCorruptedError(WorkflowError):
    """A persisted history could not be read back; the store refuses to overwrite it."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"State store at {path!r} is unreadable: {reason}.")
        self.path = path
        self.reason = reason
