from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller identity as forwarded by the gateway.

    user_id: the learner/instructor id (X-User-ID)
    roles:   platform roles (X-User-Roles), e.g. learner, instructor, admin, service
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles
