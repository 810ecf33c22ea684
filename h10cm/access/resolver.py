"""
H10CM - Access Resolver
=======================

Pure decision functions over a ``UserProfile``.

Two independent questions are answered here:
- Role permissions (the catalog) decide what kinds of operation a role may
  perform on a resource.
- Program/project grants decide on which tenants and projects.

Program- and project-scoped requests are decided by grants alone and never
consult the catalog. Denial is a return value, never an exception.
"""

from types import MappingProxyType
from typing import FrozenSet, Iterable, List, Mapping, Optional, Tuple

from h10cm.access.catalog import can_access_route as _route_allowed
from h10cm.access.models import (
    AccessRequest,
    AccessResult,
    AccessScope,
    Action,
    ProgramAccessLevel,
    ProjectAccessLevel,
    RequestAction,
    Resource,
    ResourceType,
    Role,
    UserProfile,
)
from h10cm.exceptions import InvalidAccessRequestError


# ============================================================
# Generic fallback tables
# ============================================================


RESOURCE_TYPE_RESOURCES: Mapping[ResourceType, Resource] = MappingProxyType({
    ResourceType.PROGRAM: Resource.PROJECTS,
    ResourceType.PROJECT: Resource.PROJECTS,
    ResourceType.TASK: Resource.TASKS,
    ResourceType.USER: Resource.USERS,
    ResourceType.SYSTEM: Resource.SETTINGS,
})

# Every listed catalog action must be allowed.
REQUEST_ACTION_ACTIONS: Mapping[RequestAction, Tuple[Action, ...]] = MappingProxyType({
    RequestAction.READ: (Action.READ,),
    RequestAction.WRITE: (Action.WRITE,),
    RequestAction.DELETE: (Action.DELETE,),
    RequestAction.MANAGE: (Action.APPROVE,),
    RequestAction.ADMIN: (Action.READ, Action.WRITE, Action.DELETE, Action.APPROVE),
})

if set(RESOURCE_TYPE_RESOURCES) != set(ResourceType):
    raise RuntimeError("RESOURCE_TYPE_RESOURCES must cover every ResourceType")
if set(REQUEST_ACTION_ACTIONS) != set(RequestAction):
    raise RuntimeError("REQUEST_ACTION_ACTIONS must cover every RequestAction")


DENY_NOT_AUTHENTICATED = "Not authenticated"
DENY_PROGRAM_PRIVILEGES = "Insufficient program privileges"
DENY_NO_PROGRAM_ACCESS = "No program access"
DENY_PROJECT_PRIVILEGES = "Insufficient project privileges"
DENY_NO_PROJECT_ACCESS = "No project access"
DENY_PERMISSIONS = "Insufficient permissions"


# ============================================================
# Role & permission checks
# ============================================================


def has_permission(user: UserProfile, resource: Resource, action: Action) -> bool:
    """Check if any permission entry for the resource allows the action."""
    resource = Resource(resource)
    action = Action(action)
    return any(
        permission.resource == resource and permission.allows(action)
        for permission in user.permissions
    )


def has_role(user: UserProfile, role: Role) -> bool:
    """Check if the user holds exactly this role."""
    return user.role == role


def has_any_role(user: UserProfile, roles: Iterable[Role]) -> bool:
    """Check if the user's role is one of the given roles."""
    return user.role in set(roles)


def is_admin(user: UserProfile) -> bool:
    return user.role == Role.ADMIN


def can_manage_users(user: UserProfile) -> bool:
    return has_permission(user, Resource.USERS, Action.WRITE)


def can_access_route(user: UserProfile, route: str) -> bool:
    return _route_allowed(user.role, route)


# ============================================================
# Program / project visibility
# ============================================================


def has_access_to_program(user: UserProfile, program_id: str) -> bool:
    """Check if the user can see a program."""
    if user.can_see_all_programs:
        return True
    return program_id in user.accessible_programs


def has_access_to_project(
    user: UserProfile,
    project_id: str,
    program_id: Optional[str] = None,
) -> bool:
    """
    Check if the user can see a project.

    With ``program_id`` only that program's grant is consulted: a program-wide
    grant sees every project, a limited grant only its listed projects, and no
    grant for the program means no access. An Admin-level program grant counts
    as program-wide. The flattened ``accessible_projects`` set is only used
    when no program is given, so a project id can never match across programs.
    """
    if user.can_see_all_programs:
        return True

    if program_id is not None:
        grant = user.find_program_access(program_id)
        if grant is None:
            return False
        if grant.is_program_wide:
            return True
        return grant.find_project(project_id) is not None

    return project_id in user.accessible_projects


def can_manage_program(user: UserProfile, program_id: str) -> bool:
    """Check if the user may administer a program."""
    if user.role == Role.ADMIN:
        return True
    grant = user.find_program_access(program_id)
    return grant is not None and grant.access_level == ProgramAccessLevel.ADMIN


def owning_program(
    user: UserProfile,
    project_id: str,
) -> Optional[str]:
    """Program owning a project, from the registry or the user's own grants."""
    owner = user.project_owners.get(project_id)
    if owner is not None:
        return owner
    for grant in user.program_access:
        if grant.find_project(project_id) is not None:
            return grant.program_id
    return None


def can_manage_project(
    user: UserProfile,
    project_id: str,
    program_id: Optional[str] = None,
) -> bool:
    """
    Check if the user may administer a project.

    True for system admins, for a program-level Admin grant on the project's
    owning program (no per-project grant needed), or for a project-level
    Admin grant on the project itself.
    """
    if user.role == Role.ADMIN:
        return True

    owner = program_id if program_id is not None else owning_program(user, project_id)

    for grant in user.program_access:
        if program_id is not None and grant.program_id != program_id:
            continue
        if grant.access_level == ProgramAccessLevel.ADMIN and grant.program_id == owner:
            return True
        project = grant.find_project(project_id)
        if project is not None and project.access_level == ProjectAccessLevel.ADMIN:
            return True
    return False


def get_accessible_programs(user: UserProfile) -> List[str]:
    """
    Program ids the user holds a grant on.

    Admins see every program without a grant; listing those needs the
    registry, see ``AccessSession.get_accessible_programs``.
    """
    return sorted(user.accessible_programs)


def get_accessible_projects(
    user: UserProfile,
    program_id: Optional[str] = None,
) -> List[str]:
    """
    Project ids the user can see, optionally within one program.

    For system admins this lists every project known to the registry.
    """
    if user.can_see_all_programs:
        return sorted(
            pid for pid, owner in user.project_owners.items()
            if program_id is None or owner == program_id
        )

    if program_id is None:
        return sorted(user.accessible_projects)

    grant = user.find_program_access(program_id)
    if grant is None:
        return []
    if grant.is_program_wide:
        listed: FrozenSet[str] = frozenset(
            pid for pid, owner in user.project_owners.items() if owner == program_id
        )
        return sorted(listed | set(grant.project_ids))
    return sorted(set(grant.project_ids))


# ============================================================
# Top-level decision
# ============================================================


def _catalog_check(user: UserProfile, request: AccessRequest) -> AccessResult:
    try:
        resource = RESOURCE_TYPE_RESOURCES[request.resource_type]
        actions = REQUEST_ACTION_ACTIONS[request.action]
    except KeyError:
        raise InvalidAccessRequestError(
            f"Unsupported access request: {request.resource_type!r}/{request.action!r}"
        ) from None

    if all(has_permission(user, resource, action) for action in actions):
        return AccessResult.allow(AccessScope.LIMITED)
    return AccessResult.deny(DENY_PERMISSIONS, scope=AccessScope.LIMITED)


def check_access(user: Optional[UserProfile], request: AccessRequest) -> AccessResult:
    """
    Decide an access request.

    1. System admins are granted with System scope, whatever the request.
    2. Program requests with a program context are decided by program grants.
    3. Project requests with a project context are decided by project grants.
    4. Anything else falls back to the role's catalog permissions.
    """
    if user is None:
        return AccessResult.deny(DENY_NOT_AUTHENTICATED)

    if user.role == Role.ADMIN:
        return AccessResult.allow(AccessScope.SYSTEM)

    if request.resource_type == ResourceType.PROGRAM and request.program_id:
        has_access = has_access_to_program(user, request.program_id)
        can_manage = can_manage_program(user, request.program_id)

        if request.action == RequestAction.ADMIN and not can_manage:
            return AccessResult.deny(DENY_PROGRAM_PRIVILEGES)

        scope = AccessScope.PROGRAM if can_manage else AccessScope.LIMITED
        if has_access:
            return AccessResult.allow(scope)
        return AccessResult.deny(DENY_NO_PROGRAM_ACCESS, scope=scope)

    if request.resource_type == ResourceType.PROJECT and request.project_id:
        has_access = has_access_to_project(user, request.project_id, request.program_id)
        can_manage = can_manage_project(user, request.project_id, request.program_id)

        if request.action == RequestAction.ADMIN and not can_manage:
            return AccessResult.deny(DENY_PROJECT_PRIVILEGES)

        scope = AccessScope.PROJECT if can_manage else AccessScope.LIMITED
        if has_access:
            return AccessResult.allow(scope)
        return AccessResult.deny(DENY_NO_PROJECT_ACCESS, scope=scope)

    return _catalog_check(user, request)
