"""Static workflow topology: processes, steps and transitions.

The graph is materialised in memory by the application and never mutated
afterwards. Transition targets and fallback steps are referenced by name so a
process may contain cycles.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from stepflow.exceptions import UnknownStepError, UnknownTransitionError

from .validation import Validation


class StatusMutation(Protocol):
    """Applied to the model when it successfully reaches a step."""

    def apply(self, model: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class SetModelStatus:
    """Set `attribute` on the model to `value`."""

    attribute: str
    value: object

    def apply(self, model: Any) -> None:
        setattr(model, self.attribute, self.value)


@dataclass(frozen=True, slots=True)
class Transition:
    """A named edge towards `target`, guarded by its own pre-validations."""

    target: str
    validations: tuple[Validation, ...] = ()


@dataclass(frozen=True, slots=True)
class Step:
    name: str
    transitions: Mapping[str, Transition] = field(default_factory=dict, hash=False)
    validations: tuple[Validation, ...] = ()
    roles: frozenset[str] = frozenset()
    on_invalid: str | None = None
    model_status: StatusMutation | None = None

    def __post_init__(self) -> None:
        # Freeze the caller's mapping; insertion order is kept.
        object.__setattr__(self, "transitions", MappingProxyType(dict(self.transitions)))
        object.__setattr__(self, "validations", tuple(self.validations))
        object.__setattr__(self, "roles", frozenset(self.roles))

    def has_transition(self, name: str) -> bool:
        return name in self.transitions

    def get_transition(self, name: str) -> Transition:
        try:
            return self.transitions[name]
        except KeyError:
            raise UnknownTransitionError(self.name, name) from None

    def has_roles(self) -> bool:
        return bool(self.roles)

    def get_roles(self) -> frozenset[str]:
        return self.roles

    def has_model_status(self) -> bool:
        return self.model_status is not None


@dataclass(frozen=True, slots=True)
class Process:
    """A named workflow definition.

    Construction fails with `UnknownStepError` when the start step, an end
    step, a transition target or a fallback step is not part of `steps`.
    """

    name: str
    start_step: str
    end_steps: frozenset[str]
    steps: Mapping[str, Step] = field(hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", MappingProxyType(dict(self.steps)))
        object.__setattr__(self, "end_steps", frozenset(self.end_steps))

        referenced = [self.start_step, *sorted(self.end_steps)]
        for step in self.steps.values():
            referenced.extend(t.target for t in step.transitions.values())
            if step.on_invalid is not None:
                referenced.append(step.on_invalid)
        for step_name in referenced:
            self.get_step(step_name)

    @classmethod
    def from_steps(
        cls, name: str, *, start_step: str, end_steps: set[str] | frozenset[str], steps: list[Step]
    ) -> Process:
        """Build a process from a list of steps keyed by their own names."""

        return cls(
            name=name,
            start_step=start_step,
            end_steps=frozenset(end_steps),
            steps={step.name: step for step in steps},
        )

    def has_step(self, name: str) -> bool:
        return name in self.steps

    def get_step(self, name: str) -> Step:
        try:
            return self.steps[name]
        except KeyError:
            raise UnknownStepError(name, self.name) from None

    def is_end_step(self, name: str) -> bool:
        return name in self.end_steps
