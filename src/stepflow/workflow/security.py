from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class AuthorizationChecker(Protocol):
    """Decides whether the acting user may reach a step requiring `roles`."""

    def is_granted(self, roles: frozenset[str]) -> bool: ...


@dataclass(frozen=True, slots=True)
class GrantedRoles:
    """Grant access when any of the required roles is held (affirmative strategy)."""

    roles: frozenset[str]

    def is_granted(self, roles: frozenset[str]) -> bool:
        return not roles.isdisjoint(self.roles)


class AllowAll:
    def is_granted(self, roles: frozenset[str]) -> bool:
        return True
