"""CLI entrypoint for inspecting persisted workflow history.

Workflow graphs live in application code, so the CLI only reads the state
store configured through settings.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from stepflow import __version__
from stepflow.config import StepflowSettings
from stepflow.logging import configure_logging
from stepflow.storage import create_state_store
from stepflow.workflow.records import StateRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _ModelRef:
    """Stand-in model addressing the store by identifier only."""

    workflow_identifier: str

    def workflow_data(self) -> dict[str, Any]:
        return {}


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--process", required=True, help="Process name")
    parser.add_argument(
        "--model-id",
        dest="model_id",
        required=True,
        help="Workflow identifier of the model",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepflow",
        description="Inspect persisted workflow state history",
    )
    parser.add_argument("--version", action="version", version=f"stepflow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    current = subparsers.add_parser("current", help="Print the model's current state")
    _add_target_arguments(current)

    history = subparsers.add_parser("history", help="Print the model's states, newest first")
    _add_target_arguments(history)
    history.add_argument(
        "--all",
        dest="include_failed",
        action="store_true",
        help="Include failed states (only successful states are listed by default)",
    )

    return parser


def _print_state(state: StateRecord) -> None:
    print(state.model_dump_json())


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = StepflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        store = create_state_store(settings)
        model = _ModelRef(workflow_identifier=args.model_id)

        if args.command == "current":
            state = store.find_current_state(model, args.process)
            if state is None:
                print(
                    f'Model {args.model_id!r} has not started the "{args.process}" process.',
                    file=sys.stderr,
                )
                return 1
            _print_state(state)
            return 0

        if args.command == "history":
            states = store.find_all_states(
                model, args.process, success_only=not args.include_failed
            )
            for state in states:
                _print_state(state)
            logger.debug(
                "History listed",
                extra={"process_name": args.process, "model": args.model_id, "count": len(states)},
            )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
