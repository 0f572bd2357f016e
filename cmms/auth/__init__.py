"""All authentication and authorization modules and routes."""

from .auth_routes import configure_auth_router
from .guard import (
    UNRESTRICTED,
    Scope,
    authorize,
    authorize_record,
    check_visible,
    is_allowed,
    owns,
    visibility_scope,
)
from .permissions import (
    DEFAULT_GRIDS,
    apply_overrides,
    change_role,
    effective_permissions,
    has_permission,
    parse_overrides,
)
from .queries import UserQueries
from .security_manager import SecurityManager
from .validation import Validate

__all__ = [
    "DEFAULT_GRIDS",
    "UNRESTRICTED",
    "Scope",
    "SecurityManager",
    "UserQueries",
    "Validate",
    "apply_overrides",
    "authorize",
    "authorize_record",
    "change_role",
    "check_visible",
    "configure_auth_router",
    "effective_permissions",
    "has_permission",
    "is_allowed",
    "owns",
    "parse_overrides",
    "visibility_scope",
]
