"""User roles and the permissions they gate."""

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_STAFF = "STAFF"
ROLE_CLIENT = "CLIENT"

ROLE_CHOICES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF, ROLE_CLIENT)

# Client-portal users may look but never create, delete or see the next code.
WRITE_ROLES = frozenset({ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF})
# Destroying rows and touching counters is reserved for administrators.
ADMIN_ROLES = frozenset({ROLE_ADMIN})


def normalize_role(value: str | None) -> str:
    """Return an upper-case role, defaulting to the least privileged one."""

    role = (value or ROLE_CLIENT).strip().upper()
    return role if role in ROLE_CHOICES else ROLE_CLIENT


__all__ = [
    "ADMIN_ROLES",
    "ROLE_ADMIN",
    "ROLE_CHOICES",
    "ROLE_CLIENT",
    "ROLE_MANAGER",
    "ROLE_STAFF",
    "WRITE_ROLES",
    "normalize_role",
]
