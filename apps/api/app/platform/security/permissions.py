from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    TEAM_ADMIN = "team_admin"
    MANAGER = "manager"
    USER = "user"


QUOTES_CREATE = "billing.quotes.create"
QUOTES_EDIT_ALL = "billing.quotes.edit_all"
QUOTES_EDIT_OWN = "billing.quotes.edit_own"
QUOTES_DELETE = "billing.quotes.delete"
QUOTES_VIEW_ALL = "billing.quotes.view_all"
QUOTES_VIEW_OWN = "billing.quotes.view_own"
QUOTES_EXPIRE = "billing.quotes.expire"


# Billing & quotes slice of the role matrix. Loaded once; never mutated at runtime.
ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRole.SUPER_ADMIN: frozenset({"billing.quotes.*"}),
    UserRole.ADMIN: frozenset(
        {
            QUOTES_CREATE,
            QUOTES_EDIT_ALL,
            QUOTES_EDIT_OWN,
            QUOTES_DELETE,
            QUOTES_VIEW_ALL,
            QUOTES_VIEW_OWN,
            QUOTES_EXPIRE,
        }
    ),
    UserRole.TEAM_ADMIN: frozenset(
        {
            QUOTES_CREATE,
            QUOTES_EDIT_ALL,
            QUOTES_EDIT_OWN,
            QUOTES_DELETE,
            QUOTES_VIEW_ALL,
            QUOTES_VIEW_OWN,
            QUOTES_EXPIRE,
        }
    ),
    UserRole.MANAGER: frozenset(
        {
            QUOTES_CREATE,
            QUOTES_EDIT_OWN,
            QUOTES_VIEW_ALL,
            QUOTES_VIEW_OWN,
        }
    ),
    UserRole.USER: frozenset(
        {
            QUOTES_CREATE,
            QUOTES_EDIT_OWN,
            QUOTES_VIEW_OWN,
        }
    ),
}


def role_permissions() -> dict[str, set[str]]:
    return {str(role): set(grants) for role, grants in ROLE_PERMISSIONS.items()}
