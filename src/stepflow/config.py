"""Settings for stepflow.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Only the state store wiring and logging are configurable; workflow graphs are
built in code by the application.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

StateStoreBackend = Literal["memory", "json", "sqlite"]


class StepflowSettings(BaseSettings):
    """Settings for the workflow engine.

    Environment variables:
    - LOG_LEVEL                    (optional)
    - STEPFLOW_STATE_STORE         (optional) memory | json | sqlite
    - STEPFLOW_STATE_PATH          (optional)
    - STEPFLOW_COMPARE_AND_APPEND  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `StepflowSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    state_store: StateStoreBackend = Field(
        default="sqlite",
        validation_alias="STEPFLOW_STATE_STORE",
        description="Backend used to persist model states",
    )

    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="STEPFLOW_STATE_PATH",
        description="Directory where model states are persisted",
    )

    compare_and_append: bool = Field(
        default=True,
        validation_alias="STEPFLOW_COMPARE_AND_APPEND",
        description=(
            "Reject an append when the stored current state is no longer the one the "
            "engine read, instead of silently forking the history chain"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def json_state_file(self) -> Path:
        """Path of the JSON document used by the ``json`` backend."""

        return self.state_path / "model_states.json"

    @property
    def sqlite_database(self) -> Path:
        """Path of the database file used by the ``sqlite`` backend."""

        return self.state_path / "model_states.sqlite3"
