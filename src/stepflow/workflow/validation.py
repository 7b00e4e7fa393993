"""Validation callables attached to steps and transitions.

A validation is any callable taking the model. It rejects the model by raising
`ValidationFailure`; returning normally means the check passed. The engine
never interprets a validation, it only collects failures.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from stepflow.exceptions import ValidationFailure

logger = logging.getLogger(__name__)

Validation = Callable[[Any], None]


def run_validations(model: Any, validations: Iterable[Validation]) -> list[ValidationFailure]:
    """Run every validation and return all failures, in declaration order.

    A failing validation does not stop later ones from running. Exceptions
    other than `ValidationFailure` propagate.
    """

    failures: list[ValidationFailure] = []
    for validation in validations:
        try:
            validation(model)
        except ValidationFailure as e:
            logger.debug(
                "Validation failed",
                extra={
                    "validation": getattr(validation, "__name__", repr(validation)),
                    "reason": e.message,
                },
            )
            failures.append(e)
    return failures


def require_attribute(name: str, message: str | None = None) -> Validation:
    """Fail when the model's `name` attribute is missing or falsy."""

    def _require(model: Any) -> None:
        if not getattr(model, name, None):
            raise ValidationFailure(message or f'"{name}" must not be empty.', attribute=name)

    _require.__name__ = f"require_{name}"
    return _require


def predicate(check: Callable[[Any], bool], message: str, **details: object) -> Validation:
    """Wrap a boolean check; a false result becomes a `ValidationFailure`."""

    def _check(model: Any) -> None:
        if not check(model):
            raise ValidationFailure(message, **details)

    _check.__name__ = getattr(check, "__name__", "predicate")
    return _check
