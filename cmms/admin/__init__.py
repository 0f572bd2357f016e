"""Account administration and dashboard."""

from .routes import configure_admin_router
from .service import AdminService

__all__ = ["AdminService", "configure_admin_router"]
