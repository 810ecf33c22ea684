"""
H10CM - Access Model

Roles, permissions, program/project grants and the resolved user profile.
Every type here is immutable: a grant change produces a new profile through
``h10cm.access.profile.build_user_profile``, never an in-place patch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from h10cm.exceptions import InvalidAccessRequestError


# ============================================================
# Roles & Permissions
# ============================================================


class Role(str, Enum):
    """Global user roles. Enumeration order implies no privilege order."""

    ADMIN = "Admin"
    PROJECT_MANAGER = "ProjectManager"
    TECHNICIAN = "Technician"
    VISITOR = "Visitor"


class Resource(str, Enum):
    """Resources covered by the permission catalog."""

    PRODUCTION = "production"
    INVENTORY = "inventory"
    PROJECTS = "projects"
    TASKS = "tasks"
    USERS = "users"
    REPORTS = "reports"
    SETTINGS = "settings"


class Action(str, Enum):
    """Actions a permission may allow on a resource."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    APPROVE = "approve"


@dataclass(frozen=True)
class Permission:
    """Allowed actions on one resource. No actions means no access."""

    resource: Resource
    actions: Tuple[Action, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "resource", Resource(self.resource))
        actions = tuple(Action(a) for a in self.actions)
        if len(set(actions)) != len(actions):
            raise ValueError(f"Duplicate actions for resource {self.resource.value}")
        object.__setattr__(self, "actions", actions)

    def allows(self, action: Action) -> bool:
        return action in self.actions


# ============================================================
# Programs & Projects
# ============================================================


class ProgramStatus(str, Enum):
    """Program lifecycle. Programs are archived, never deleted."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ARCHIVED = "Archived"


@dataclass(frozen=True)
class ProgramSettings:
    """Per-program configuration."""

    allow_cross_project_visibility: bool = False
    require_project_assignment: bool = True
    default_project_role: Optional[Role] = None


@dataclass(frozen=True)
class Program:
    """A tenant boundary owning projects."""

    program_id: str
    name: str
    code: str
    status: ProgramStatus = ProgramStatus.ACTIVE
    settings: ProgramSettings = field(default_factory=ProgramSettings)
    description: Optional[str] = None

    @property
    def is_archived(self) -> bool:
        return self.status == ProgramStatus.ARCHIVED


@dataclass(frozen=True)
class Project:
    """Registry entry tying a project to its owning program."""

    project_id: str
    program_id: str
    name: Optional[str] = None


# ============================================================
# Grants
# ============================================================


class ProgramAccessLevel(str, Enum):
    """Breadth of a program grant."""

    LIMITED = "Limited"  # Listed projects only
    PROGRAM = "Program"  # Every project in the program
    ADMIN = "Admin"      # Every project, plus program management


class ProjectAccessLevel(str, Enum):
    """Breadth of a project grant."""

    READ = "Read"
    WRITE = "Write"
    MANAGE = "Manage"
    ADMIN = "Admin"


class GrantScope(str, Enum):
    """Target kind of a grant-store write."""

    PROGRAM = "Program"
    PROJECT = "Project"


def _expired(expires_at: Optional[datetime], now: datetime) -> bool:
    if expires_at is None:
        return False
    # Naive timestamps from the store are UTC
    if expires_at.tzinfo is None and now.tzinfo is not None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    elif now.tzinfo is None and expires_at.tzinfo is not None:
        now = now.replace(tzinfo=timezone.utc)
    return expires_at <= now


@dataclass(frozen=True)
class ProjectAccess:
    """A user's grant on one project."""

    project_id: str
    role: Role
    access_level: ProjectAccessLevel
    granted_at: datetime
    granted_by: str
    expires_at: Optional[datetime] = None
    project_name: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return _expired(self.expires_at, now)


@dataclass(frozen=True)
class ProgramAccess:
    """A user's grant on one program, with its project grants."""

    program_id: str
    role: Role
    access_level: ProgramAccessLevel
    granted_at: datetime
    granted_by: str
    expires_at: Optional[datetime] = None
    projects: Tuple[ProjectAccess, ...] = ()
    program_name: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return _expired(self.expires_at, now)

    @property
    def is_program_wide(self) -> bool:
        """Program and Admin levels see every project in the program."""
        return self.access_level in (ProgramAccessLevel.PROGRAM, ProgramAccessLevel.ADMIN)

    @property
    def project_ids(self) -> Tuple[str, ...]:
        return tuple(p.project_id for p in self.projects)

    def find_project(self, project_id: str) -> Optional[ProjectAccess]:
        for project in self.projects:
            if project.project_id == project_id:
                return project
        return None


# ============================================================
# User Profile
# ============================================================


class UserStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING_APPROVAL = "PendingApproval"
    SUSPENDED = "Suspended"


@dataclass(frozen=True)
class UserProfile:
    """
    Resolved identity and authorization snapshot for one user.

    A cache of the grant store, held for one session. ``accessible_programs``
    and ``accessible_projects`` are derived from ``program_access`` and must
    only be produced by a full recompute.
    """

    user_id: str
    display_name: str
    email: str
    role: Role
    status: UserStatus = UserStatus.ACTIVE
    permissions: Tuple[Permission, ...] = ()
    program_access: Tuple[ProgramAccess, ...] = ()
    accessible_programs: FrozenSet[str] = frozenset()
    accessible_projects: FrozenSet[str] = frozenset()
    can_see_all_programs: bool = False
    can_create_programs: bool = False
    project_owners: Mapping[str, str] = field(default_factory=dict)
    default_program: Optional[str] = None

    def __post_init__(self):
        if self.role == Role.ADMIN and not (self.can_see_all_programs and self.can_create_programs):
            raise ValueError("Admin profiles must see all programs and create programs")

    def find_program_access(self, program_id: str) -> Optional[ProgramAccess]:
        for access in self.program_access:
            if access.program_id == program_id:
                return access
        return None


# ============================================================
# Access Requests & Results
# ============================================================


class ResourceType(str, Enum):
    """Kinds of resource an access request may target."""

    PROGRAM = "Program"
    PROJECT = "Project"
    TASK = "Task"
    USER = "User"
    SYSTEM = "System"


class RequestAction(str, Enum):
    """Actions an access request may ask for."""

    READ = "Read"
    WRITE = "Write"
    DELETE = "Delete"
    MANAGE = "Manage"
    ADMIN = "Admin"


class AccessScope(str, Enum):
    """Breadth of the authority that produced an allow."""

    SYSTEM = "System"
    PROGRAM = "Program"
    PROJECT = "Project"
    LIMITED = "Limited"


@dataclass(frozen=True)
class AccessContext:
    program_id: Optional[str] = None
    project_id: Optional[str] = None


@dataclass(frozen=True)
class AccessRequest:
    """Input to ``check_access``."""

    resource_type: ResourceType
    action: RequestAction
    resource_id: Optional[str] = None
    context: Optional[AccessContext] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "resource_type", ResourceType(self.resource_type))
        except ValueError:
            raise InvalidAccessRequestError(
                f"Unknown resource type: {self.resource_type!r}",
                code="UNKNOWN_RESOURCE_TYPE",
            ) from None
        try:
            object.__setattr__(self, "action", RequestAction(self.action))
        except ValueError:
            raise InvalidAccessRequestError(
                f"Unknown action: {self.action!r}",
                code="UNKNOWN_ACTION",
            ) from None
        if isinstance(self.context, dict):
            object.__setattr__(self, "context", AccessContext(**self.context))

    @property
    def program_id(self) -> Optional[str]:
        return self.context.program_id if self.context else None

    @property
    def project_id(self) -> Optional[str]:
        return self.context.project_id if self.context else None


@dataclass(frozen=True)
class AccessResult:
    """Output of ``check_access``. Denials always carry a reason."""

    granted: bool
    reason: Optional[str] = None
    scope: Optional[AccessScope] = None

    def __post_init__(self):
        if self.granted and self.reason is not None:
            raise ValueError("Granted results carry no reason")
        if not self.granted and not self.reason:
            raise ValueError("Denied results require a reason")

    @classmethod
    def allow(cls, scope: AccessScope) -> "AccessResult":
        return cls(granted=True, scope=scope)

    @classmethod
    def deny(cls, reason: str, scope: Optional[AccessScope] = None) -> "AccessResult":
        return cls(granted=False, reason=reason, scope=scope)

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary for API responses."""
        return {
            "granted": self.granted,
            "reason": self.reason,
            "scope": self.scope.value if self.scope else None,
        }
