"""Lifecycle notifications published by the engine.

Event names have the form `<process>.<step>.<suffix>` where the suffix is one
of `reached`, `validation_fail` or `pre_validation_fail`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .graph import Step
    from .records import StateRecord

logger = logging.getLogger(__name__)

REACHED = "reached"
VALIDATION_FAIL = "validation_fail"
PRE_VALIDATION_FAIL = "pre_validation_fail"


def event_name(process_name: str, step_name: str, suffix: str) -> str:
    return f"{process_name}.{step_name}.{suffix}"


@dataclass(frozen=True, slots=True, eq=False)
class StepEvent:
    """Payload of a step notification.

    Compared and hashed by identity: it carries the live, mutable model.
    """

    step: Step
    model: Any
    state: StateRecord


Listener = Callable[[StepEvent], None]


class EventSink(Protocol):
    """Receives step notifications. Dispatch is fire-and-forget for the engine."""

    def dispatch(self, event_name: str, event: StepEvent) -> None: ...


class EventDispatcher:
    """In-process sink calling listeners registered per event name, in order."""

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)

    def add_listener(self, event_name: str, listener: Listener) -> None:
        self._listeners[event_name].append(listener)

    def remove_listener(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name, [])
        if listener in listeners:
            listeners.remove(listener)

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    def dispatch(self, event_name: str, event: StepEvent) -> None:
        listeners = list(self._listeners.get(event_name, []))
        logger.debug(
            "Dispatching event",
            extra={"event": event_name, "state_id": event.state.id, "listeners": len(listeners)},
        )
        for listener in listeners:
            listener(event)
