from __future__ import annotations

from threading import Lock
from typing import Protocol

from app.platform.security.context import AuthContext
from app.platform.security.permissions import role_permissions


class PolicyBackend(Protocol):
    """Pluggable policy backend interface for capability checks."""

    def is_allowed(self, permission: str, ctx: AuthContext) -> bool:
        ...

    def role_allows(self, role: str, permission: str) -> bool:
        ...


class InMemoryPolicyBackend:
    """Role + direct-permission policy backend with wildcard support."""

    def __init__(self, role_permissions: dict[str, set[str]] | None = None, *, default_allow: bool = False) -> None:
        self._role_permissions = role_permissions or {}
        self._default_allow = default_allow

    def is_allowed(self, permission: str, ctx: AuthContext) -> bool:
        if self._default_allow or ctx.is_super_admin:
            return True
        return self._has_permission(permission, ctx)

    def role_allows(self, role: str, permission: str) -> bool:
        grants = self._role_permissions.get(role, set())
        return any(self._matches(grant, permission) for grant in grants)

    def _has_permission(self, required: str, ctx: AuthContext) -> bool:
        grants = set(ctx.permissions)
        for role in ctx.roles:
            grants.update(self._role_permissions.get(role, set()))

        return any(self._matches(grant, required) for grant in grants)

    @staticmethod
    def _matches(grant: str, required: str) -> bool:
        if grant in {"*", required}:
            return True

        if grant.endswith(".*"):
            return required.startswith(grant[:-1])

        return False


def build_default_policy_backend(*, default_allow: bool = False) -> InMemoryPolicyBackend:
    return InMemoryPolicyBackend(role_permissions(), default_allow=default_allow)


_POLICY_BACKEND: PolicyBackend = build_default_policy_backend()
_POLICY_LOCK = Lock()


def get_policy_backend() -> PolicyBackend:
    """Get the active policy backend instance."""

    return _POLICY_BACKEND


def set_policy_backend(backend: PolicyBackend) -> None:
    """Set the active policy backend instance."""

    global _POLICY_BACKEND
    with _POLICY_LOCK:
        _POLICY_BACKEND = backend
