#!/usr/bin/env python3
"""Programmatic onboarding example.

This demonstrates using the engine directly:

* load settings from `.env`
* build a small process graph in code
* drive a model through it and persist each step to the configured store

The applicant's name is passed as an argument.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, Sequence

from stepflow.config import StepflowSettings
from stepflow.logging import configure_logging
from stepflow.storage import create_state_store
from stepflow.workflow import (
    EventDispatcher,
    GrantedRoles,
    Process,
    ProcessHandler,
    SetModelStatus,
    Step,
    StepEvent,
    Transition,
    require_attribute,
)


@dataclass
class Applicant:
    id: str
    name: str
    status: str = "new"

    @property
    def workflow_identifier(self) -> str:
        return f"applicant-{self.id}"

    def workflow_data(self) -> dict[str, Any]:
        return {"name": self.name}


ONBOARDING = Process.from_steps(
    "onboarding",
    start_step="signup",
    end_steps={"complete"},
    steps=[
        Step(
            name="signup",
            transitions={"finish": Transition(target="complete")},
            validations=(require_attribute("name", "Name is required."),),
        ),
        Step(
            name="complete",
            roles=frozenset({"ROLE_USER"}),
            model_status=SetModelStatus("status", "active"),
        ),
    ],
)


def _print_event(event: StepEvent) -> None:
    print(f"Reached {event.step.name} (state #{event.state.id})")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Onboard an applicant (programmatic example).")
    parser.add_argument("--id", required=True, help="Applicant identifier")
    parser.add_argument("--name", default="", help="Applicant name")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = StepflowSettings()
    configure_logging(settings.log_level)

    dispatcher = EventDispatcher()
    dispatcher.add_listener("onboarding.signup.reached", _print_event)
    dispatcher.add_listener(
        "onboarding.complete.reached",
        lambda event: print(f"Welcome aboard, {event.model.name}!"),
    )

    handler = ProcessHandler(
        ONBOARDING,
        create_state_store(settings),
        dispatcher,
        GrantedRoles(frozenset({"ROLE_USER"})),
        compare_and_append=settings.compare_and_append,
    )

    applicant = Applicant(id=args.id, name=args.name)
    state = handler.get_current_state(applicant) or handler.start(applicant)
    if state.successful and state.step_name == "signup":
        state = handler.advance(applicant, "finish")

    for violation in state.errors:
        print(f"[{state.step_name}] {violation.message}")

    print(f"Current step: {state.step_name} (successful={state.successful})")
    print(f"Complete: {handler.is_complete(applicant)}")
    return 0 if state.successful else 1


if __name__ == "__main__":
    raise SystemExit(main())
