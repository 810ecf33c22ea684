"""
H10CM - Permission Catalog

Default permissions and route patterns per role. This is the baseline before
any per-user override; entries are read-only.
"""

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from h10cm.access.models import Action, Permission, Resource, Role
from h10cm.exceptions import CatalogError


_ALL_ACTIONS = (Action.READ, Action.WRITE, Action.DELETE, Action.APPROVE)


def _entry(*pairs) -> Tuple[Permission, ...]:
    return tuple(Permission(resource, tuple(actions)) for resource, actions in pairs)


# ============================================================
# Role Permission Mappings
# ============================================================


ROLE_PERMISSIONS: Mapping[Role, Tuple[Permission, ...]] = MappingProxyType({
    Role.ADMIN: _entry(
        *((resource, _ALL_ACTIONS) for resource in Resource)
    ),

    Role.PROJECT_MANAGER: _entry(
        (Resource.PRODUCTION, (Action.READ, Action.WRITE, Action.APPROVE)),
        (Resource.INVENTORY, (Action.READ, Action.WRITE)),
        (Resource.PROJECTS, (Action.READ, Action.WRITE, Action.APPROVE)),
        (Resource.TASKS, (Action.READ, Action.WRITE, Action.APPROVE)),
        (Resource.USERS, (Action.READ,)),
        (Resource.REPORTS, (Action.READ, Action.WRITE)),
        (Resource.SETTINGS, (Action.READ,)),
    ),

    Role.TECHNICIAN: _entry(
        (Resource.PRODUCTION, (Action.READ, Action.WRITE)),
        (Resource.INVENTORY, (Action.READ, Action.WRITE)),
        (Resource.PROJECTS, (Action.READ,)),
        (Resource.TASKS, (Action.READ, Action.WRITE)),
        (Resource.USERS, ()),
        (Resource.REPORTS, (Action.READ,)),
        (Resource.SETTINGS, ()),
    ),

    Role.VISITOR: _entry(
        (Resource.PRODUCTION, (Action.READ,)),
        (Resource.INVENTORY, (Action.READ,)),
        (Resource.PROJECTS, (Action.READ,)),
        (Resource.TASKS, ()),
        (Resource.USERS, ()),
        (Resource.REPORTS, ()),
        (Resource.SETTINGS, ()),
    ),
})


ROLE_ROUTES: Mapping[Role, Tuple[str, ...]] = MappingProxyType({
    Role.ADMIN: ("*",),
    Role.PROJECT_MANAGER: (
        "/dashboard",
        "/projects/*",
        "/production/*",
        "/inventory/*",
        "/tasks/*",
        "/reports/*",
    ),
    Role.TECHNICIAN: (
        "/dashboard",
        "/production/*",
        "/inventory/*",
        "/tasks/my-tasks",
    ),
    Role.VISITOR: (
        "/dashboard",
        "/production/view",
        "/inventory/view",
    ),
})


# Every role must have exactly one entry in each table.
for _table in (ROLE_PERMISSIONS, ROLE_ROUTES):
    _missing = set(Role) - set(_table)
    if _missing:
        raise CatalogError(f"Catalog missing roles: {sorted(r.value for r in _missing)}")


# ============================================================
# Lookups
# ============================================================


def default_permissions(role: Role) -> Tuple[Permission, ...]:
    """Get the catalog permissions for a role."""
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except (KeyError, ValueError):
        raise CatalogError(f"No catalog entry for role {role!r}", code="NO_CATALOG_ENTRY") from None


def effective_permissions(
    role: Role,
    overrides: Optional[Iterable[Permission]] = None,
) -> Tuple[Permission, ...]:
    """
    Catalog permissions for a role with per-resource overrides applied.

    An override replaces the catalog entry for its resource; resources the
    catalog does not list are appended. The catalog itself is left untouched.
    """
    merged = {p.resource: p for p in default_permissions(role)}
    for permission in overrides or ():
        merged[permission.resource] = permission
    return tuple(merged.values())


def can_access_route(role: Role, route: str) -> bool:
    """Check a route path against the role's route patterns."""
    for pattern in ROLE_ROUTES.get(Role(role), ()):
        if pattern == "*" or pattern == route:
            return True
        if pattern.endswith("/*"):
            prefix = pattern[:-2]
            if route == prefix or route.startswith(prefix + "/"):
                return True
    return False
