"""stepflow.

A finite-state workflow engine:
- processes described as in-memory graphs of steps and transitions
- per-step authorization and validation, with fallback routing
- append-only state history behind a pluggable store
- configuration loaded from `.env` and structured logging
"""

__version__ = "0.1.0"

from stepflow.config import StepflowSettings
from stepflow.workflow import Process, ProcessHandler, ProcessRegistry, Step, Transition

__all__ = [
    "__version__",
    "Process",
    "ProcessHandler",
    "ProcessRegistry",
    "Step",
    "StepflowSettings",
    "Transition",
]
