from app.platform.security.context import AuthContext
from app.platform.security.permissions import ROLE_PERMISSIONS, UserRole
from app.platform.security.policies import (
    InMemoryPolicyBackend,
    PolicyBackend,
    build_default_policy_backend,
    get_policy_backend,
    set_policy_backend,
)

__all__ = [
    "AuthContext",
    "ROLE_PERMISSIONS",
    "UserRole",
    "PolicyBackend",
    "InMemoryPolicyBackend",
    "build_default_policy_backend",
    "set_policy_backend",
    "get_policy_backend",
]
