"""Persistence backends for model state history."""

from __future__ import annotations

from stepflow.config import StepflowSettings
from stepflow.workflow.store import UNCHECKED, Expected, StateStore

from .memory import InMemoryStateStore, JsonFileStateStore
from .sqlite import SQLiteStateStore


def create_state_store(settings: StepflowSettings | None = None) -> StateStore:
    """Build the state store selected by ``settings.state_store``.

    ``memory`` keeps history in the current process only; ``json`` and
    ``sqlite`` persist it below ``settings.state_path``.
    """

    settings = settings or StepflowSettings()

    if settings.state_store == "memory":
        return InMemoryStateStore()
    if settings.state_store == "json":
        return JsonFileStateStore(settings.json_state_file)
    if settings.state_store == "sqlite":
        return SQLiteStateStore(settings.sqlite_database)
    raise ValueError(f"Unsupported state store backend: {settings.state_store}")


__all__ = [
    "UNCHECKED",
    "Expected",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "SQLiteStateStore",
    "StateStore",
    "create_state_store",
]
