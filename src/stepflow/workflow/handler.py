"""Transition engine for a single process.

`ProcessHandler` decides whether a model may reach a step and records every
attempt as an immutable `StateRecord`. Reaching a step runs, in order:

1. authorization against the step's required roles
2. every validation declared on the step (failures are accumulated)
3. commit of a success or error record through the state store
4. notification through the event sink

Access denial and validation failure are returned as failed records; only
configuration and usage errors are raised.

The handler holds no mutable state. Serialising "read current, then append"
for one (model, process) pair is the store's job; with `compare_and_append`
enabled the handler asks the store to reject appends whose expected current
record has moved.
"""

from __future__ import annotations

import logging
from typing import Any

from stepflow.exceptions import (
    AccessDeniedError,
    AlreadyStartedError,
    NoSuchTransitionError,
    NotStartedError,
)

from .events import (
    PRE_VALIDATION_FAIL,
    REACHED,
    VALIDATION_FAIL,
    EventSink,
    StepEvent,
    event_name,
)
from .graph import Process, Step
from .records import StateRecord, Violation, WorkflowModel
from .security import AuthorizationChecker
from .store import UNCHECKED, Expected, StateStore
from .validation import run_validations

logger = logging.getLogger(__name__)


class ProcessHandler:
    """Drive models through one process."""

    def __init__(
        self,
        process: Process,
        storage: StateStore,
        dispatcher: EventSink,
        authorization: AuthorizationChecker,
        *,
        compare_and_append: bool = True,
    ) -> None:
        self._process = process
        self._storage = storage
        self._dispatcher = dispatcher
        self._authorization = authorization
        self._compare_and_append = compare_and_append

    @property
    def process(self) -> Process:
        return self._process

    def start(self, model: WorkflowModel) -> StateRecord:
        """Reach the process's start step.

        Raises:
            AlreadyStartedError: The model already has a state in this process.
        """

        current = self._storage.find_current_state(model, self._process.name)
        if current is not None:
            raise AlreadyStartedError(self._process.name, model.workflow_identifier)

        logger.info(
            "Starting process",
            extra={"process_name": self._process.name, "model": model.workflow_identifier},
        )
        step = self._process.get_step(self._process.start_step)
        return self._reach_step(model, step, previous=None, head=None)

    def advance(self, model: WorkflowModel, state_name: str) -> StateRecord:
        """Take the transition named `state_name` out of the model's current step.

        Pre-validations of the transition run first; if any fails, an error
        record is stored for the target step and the target step's own
        pipeline is not entered.

        Raises:
            NotStartedError: The model has no state in this process.
            NoSuchTransitionError: The current step has no such transition.
        """

        current = self._storage.find_current_state(model, self._process.name)
        if current is None:
            raise NotStartedError(self._process.name, model.workflow_identifier)

        current_step = self._process.get_step(current.step_name)
        if not current_step.has_transition(state_name):
            raise NoSuchTransitionError(current_step.name, state_name)

        transition = current_step.get_transition(state_name)
        step = self._process.get_step(transition.target)

        logger.info(
            "Advancing",
            extra={
                "process_name": self._process.name,
                "model": model.workflow_identifier,
                "from_step": current_step.name,
                "state": state_name,
                "to_step": step.name,
            },
        )

        failures = run_validations(model, transition.validations)
        if not failures:
            return self._reach_step(model, step, previous=current, head=current)

        state = self._storage.append_error(
            model,
            self._process.name,
            step.name,
            [Violation.from_failure(f, step=step.name) for f in failures],
            current,
            expected=self._expected(current),
        )
        logger.info(
            "Pre-validation failed",
            extra={
                "process_name": self._process.name,
                "model": model.workflow_identifier,
                "step": step.name,
                "violations": len(failures),
            },
        )
        self._dispatch(step, PRE_VALIDATION_FAIL, model, state)
        return state

    def get_current_state(self, model: WorkflowModel) -> StateRecord | None:
        return self._storage.find_current_state(model, self._process.name)

    def is_complete(self, model: WorkflowModel) -> bool:
        """True iff the current state is successful and sits on an end step.

        Raises:
            NotStartedError: The model has no state in this process.
        """

        state = self.get_current_state(model)
        if state is None:
            raise NotStartedError(self._process.name, model.workflow_identifier)
        return state.successful and self._process.is_end_step(state.step_name)

    def get_all_states(self, model: WorkflowModel, success_only: bool = True) -> list[StateRecord]:
        """Return the model's records in this process, newest first."""

        return self._storage.find_all_states(model, self._process.name, success_only)

    # ------------------------------------------------------------------
    def _reach_step(
        self,
        model: WorkflowModel,
        step: Step,
        *,
        previous: StateRecord | None,
        head: StateRecord | None,
    ) -> StateRecord:
        # `previous` is the chain link written on the new record; `head` is the
        # store's current record as last seen by this call.
        if step.has_roles() and not self._authorization.is_granted(step.get_roles()):
            logger.warning(
                "Access denied",
                extra={
                    "process_name": self._process.name,
                    "model": model.workflow_identifier,
                    "step": step.name,
                    "roles": sorted(step.get_roles()),
                },
            )
            return self._storage.append_error(
                model,
                self._process.name,
                step.name,
                [Violation.from_access_denied(AccessDeniedError(step.name))],
                previous,
                expected=self._expected(head),
            )

        failures = run_validations(model, step.validations)

        if not failures:
            state = self._storage.append_success(
                model, self._process.name, step.name, previous, expected=self._expected(head)
            )
            if step.model_status is not None:
                step.model_status.apply(model)
            logger.info(
                "Step reached",
                extra={
                    "process_name": self._process.name,
                    "model": model.workflow_identifier,
                    "step": step.name,
                    "state_id": state.id,
                },
            )
            self._dispatch(step, REACHED, model, state)
            return state

        state = self._storage.append_error(
            model,
            self._process.name,
            step.name,
            [Violation.from_failure(f, step=step.name) for f in failures],
            previous,
            expected=self._expected(head),
        )
        logger.info(
            "Validation failed",
            extra={
                "process_name": self._process.name,
                "model": model.workflow_identifier,
                "step": step.name,
                "violations": len(failures),
            },
        )
        self._dispatch(step, VALIDATION_FAIL, model, state)

        if step.on_invalid is None:
            return state

        # The fallback record chains to the same predecessor as the failed
        # attempt, not to the error record just written.
        fallback = self._process.get_step(step.on_invalid)
        logger.info(
            "Routing to fallback step",
            extra={
                "process_name": self._process.name,
                "model": model.workflow_identifier,
                "step": step.name,
                "fallback": fallback.name,
            },
        )
        return self._reach_step(model, fallback, previous=previous, head=state)

    def _expected(self, head: StateRecord | None) -> Expected:
        return head if self._compare_and_append else UNCHECKED

    def _dispatch(self, step: Step, suffix: str, model: Any, state: StateRecord) -> None:
        self._dispatcher.dispatch(
            event_name(self._process.name, step.name, suffix),
            StepEvent(step=step, model=model, state=state),
        )
