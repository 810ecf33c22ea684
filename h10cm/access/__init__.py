"""
H10CM - Access & Authority Module

Multi-tenant role-based access control for programs and projects.

Components:
- models.py: Roles, permissions, grants, user profile, access requests
- catalog.py: Default permissions and routes per role
- profile.py: Profile construction with full recompute of derived fields
- resolver.py: Pure access decisions
- session.py: Current user/program context and grant administration
- guards.py: FastAPI dependencies and feature checks
- audit.py: Audit logging and compliance reports

Usage:
    from h10cm.access import (
        AccessSession,
        AccessRequest,
        ResourceType,
        RequestAction,
        check_access,
    )
"""

from h10cm.access.models import (
    AccessContext,
    AccessRequest,
    AccessResult,
    AccessScope,
    Action,
    GrantScope,
    Permission,
    Program,
    ProgramAccess,
    ProgramAccessLevel,
    ProgramSettings,
    ProgramStatus,
    Project,
    ProjectAccess,
    ProjectAccessLevel,
    RequestAction,
    Resource,
    ResourceType,
    Role,
    UserProfile,
    UserStatus,
)

from h10cm.access.catalog import (
    ROLE_PERMISSIONS,
    ROLE_ROUTES,
    default_permissions,
    effective_permissions,
)

from h10cm.access.profile import build_user_profile

from h10cm.access.resolver import (
    can_access_route,
    can_manage_program,
    can_manage_project,
    can_manage_users,
    check_access,
    get_accessible_programs,
    get_accessible_projects,
    has_access_to_program,
    has_access_to_project,
    has_any_role,
    has_permission,
    has_role,
    is_admin,
)

from h10cm.access.session import AccessSession, SessionState

from h10cm.access.audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    AuditResult,
    generate_access_report,
)

__all__ = [
    # Model
    "AccessContext",
    "AccessRequest",
    "AccessResult",
    "AccessScope",
    "Action",
    "GrantScope",
    "Permission",
    "Program",
    "ProgramAccess",
    "ProgramAccessLevel",
    "ProgramSettings",
    "ProgramStatus",
    "Project",
    "ProjectAccess",
    "ProjectAccessLevel",
    "RequestAction",
    "Resource",
    "ResourceType",
    "Role",
    "UserProfile",
    "UserStatus",

    # Catalog
    "ROLE_PERMISSIONS",
    "ROLE_ROUTES",
    "default_permissions",
    "effective_permissions",

    # Profile
    "build_user_profile",

    # Resolver
    "can_access_route",
    "can_manage_program",
    "can_manage_project",
    "can_manage_users",
    "check_access",
    "get_accessible_programs",
    "get_accessible_projects",
    "has_access_to_program",
    "has_access_to_project",
    "has_any_role",
    "has_permission",
    "has_role",
    "is_admin",

    # Session
    "AccessSession",
    "SessionState",

    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "AuditResult",
    "generate_access_report",
]
