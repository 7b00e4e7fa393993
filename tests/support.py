"""Models and sinks shared by the unit tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stepflow.workflow import StepEvent


@dataclass
class Applicant:
    """A minimal model driven through test processes."""

    id: str
    name: str = ""
    age: int = 0
    status: str = "new"

    @property
    def workflow_identifier(self) -> str:
        return f"applicant-{self.id}"

    def workflow_data(self) -> dict[str, Any]:
        return {"name": self.name, "age": self.age}


class RecordingSink:
    """Event sink remembering every dispatched event, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, StepEvent]] = []

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def dispatch(self, event_name: str, event: StepEvent) -> None:
        self.events.append((event_name, event))
