"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from stepflow.storage import InMemoryStateStore, JsonFileStateStore, SQLiteStateStore
from stepflow.workflow import (
    AllowAll,
    Process,
    ProcessHandler,
    Step,
    Transition,
    require_attribute,
)
from stepflow.workflow.store import StateStore

from tests.support import RecordingSink


@pytest.fixture(params=["memory", "json", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[StateStore]:
    """Provide each state store backend in turn."""
    if request.param == "memory":
        yield InMemoryStateStore()
    elif request.param == "json":
        yield JsonFileStateStore(tmp_path / "state" / "model_states.json")
    else:
        sqlite_store = SQLiteStateStore(tmp_path / "state" / "model_states.sqlite3")
        yield sqlite_store
        sqlite_store.close()


@pytest.fixture
def memory_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def onboarding() -> Process:
    """Provide the "onboarding" process: signup --finish--> complete."""
    return Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps={"complete"},
        steps=[
            Step(
                name="signup",
                transitions={"finish": Transition(target="complete")},
                validations=(require_attribute("name", "Name is required."),),
            ),
            Step(name="complete"),
        ],
    )


@pytest.fixture
def handler(onboarding: Process, store: StateStore, sink: RecordingSink) -> ProcessHandler:
    return ProcessHandler(onboarding, store, sink, AllowAll())
