from __future__ import annotations

from stepflow.exceptions import UnknownProcessError

from .events import EventSink
from .graph import Process
from .handler import ProcessHandler
from .security import AuthorizationChecker
from .store import StateStore


class ProcessRegistry:
    """Look up one `ProcessHandler` per process name.

    Every handler shares the registry's store, event sink and authorization
    check.
    """

    def __init__(
        self,
        storage: StateStore,
        dispatcher: EventSink,
        authorization: AuthorizationChecker,
        *,
        compare_and_append: bool = True,
    ) -> None:
        self._storage = storage
        self._dispatcher = dispatcher
        self._authorization = authorization
        self._compare_and_append = compare_and_append
        self._handlers: dict[str, ProcessHandler] = {}

    def register(self, process: Process) -> ProcessHandler:
        if process.name in self._handlers:
            raise ValueError(f'Process "{process.name}" is already registered')
        handler = ProcessHandler(
            process,
            self._storage,
            self._dispatcher,
            self._authorization,
            compare_and_append=self._compare_and_append,
        )
        self._handlers[process.name] = handler
        return handler

    def get_handler(self, name: str) -> ProcessHandler:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownProcessError(name) from None

    def get_process(self, name: str) -> Process:
        return self.get_handler(name).process

    def names(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers
