"""Workflow domain concepts.

This package introduces first-class types for:
- the static process graph (processes, steps, transitions)
- validations and authorization checks guarding steps
- immutable state records forming each model's history, and the store contract
- step notifications
- the transition engine driving models through a process
"""

from .records import StateRecord, Violation, WorkflowModel
from .graph import Process, SetModelStatus, StatusMutation, Step, Transition
from .validation import Validation, predicate, require_attribute
from .security import AllowAll, AuthorizationChecker, GrantedRoles
from .events import EventDispatcher, EventSink, StepEvent
from .handler import ProcessHandler
from .registry import ProcessRegistry
from .store import UNCHECKED, StateStore

__all__ = [
    "UNCHECKED",
    "AllowAll",
    "AuthorizationChecker",
    "EventDispatcher",
    "EventSink",
    "GrantedRoles",
    "Process",
    "ProcessHandler",
    "ProcessRegistry",
    "SetModelStatus",
    "StateRecord",
    "StateStore",
    "StatusMutation",
    "Step",
    "StepEvent",
    "Transition",
    "Validation",
    "Violation",
    "WorkflowModel",
    "predicate",
    "require_attribute",
]
