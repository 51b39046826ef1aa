"""FastAPI dependencies shared by the routers."""

from .auth import AuthContext, require_admin, require_principal, require_writer

__all__ = ["AuthContext", "require_admin", "require_principal", "require_writer"]
