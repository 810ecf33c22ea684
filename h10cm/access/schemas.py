"""
Access Schemas

Pydantic models for records exchanged with the identity provider, grant
store and program registry. Field aliases accept the names used by the
H10CM REST backend; ``to_model()`` converts to the immutable access model.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from h10cm.access.models import (
    Action,
    Permission,
    Program,
    ProgramAccess,
    ProgramAccessLevel,
    ProgramSettings,
    ProgramStatus,
    Project,
    ProjectAccess,
    ProjectAccessLevel,
    Resource,
    Role,
    UserStatus,
)


# ==================== Grants ====================


class ProjectGrantRecord(BaseModel):
    """A project grant as returned by the grant store."""

    project_id: str
    project_name: Optional[str] = None
    role: Role = Field(validation_alias="user_role")
    access_level: ProjectAccessLevel
    granted_at: datetime = Field(validation_alias="granted_date")
    granted_by: str
    expires_at: Optional[datetime] = Field(None, validation_alias="expires_date")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_model(self) -> ProjectAccess:
        return ProjectAccess(
            project_id=self.project_id,
            role=self.role,
            access_level=self.access_level,
            granted_at=self.granted_at,
            granted_by=self.granted_by,
            expires_at=self.expires_at,
            project_name=self.project_name,
        )


class ProgramGrantRecord(BaseModel):
    """A program grant with its nested project grants."""

    program_id: str
    program_name: Optional[str] = None
    role: Role = Field(validation_alias="user_role")
    access_level: ProgramAccessLevel
    granted_at: datetime = Field(validation_alias="granted_date")
    granted_by: str
    expires_at: Optional[datetime] = Field(None, validation_alias="expires_date")
    projects: List[ProjectGrantRecord] = Field(
        default_factory=list, validation_alias="project_assignments"
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_model(self) -> ProgramAccess:
        return ProgramAccess(
            program_id=self.program_id,
            role=self.role,
            access_level=self.access_level,
            granted_at=self.granted_at,
            granted_by=self.granted_by,
            expires_at=self.expires_at,
            projects=tuple(p.to_model() for p in self.projects),
            program_name=self.program_name,
        )


class PermissionRecord(BaseModel):
    """A custom per-user permission override."""

    resource: Resource
    actions: List[Action] = []

    def to_model(self) -> Permission:
        return Permission(self.resource, tuple(self.actions))


# ==================== Identity ====================


class IdentityRecord(BaseModel):
    """
    An authenticated user with their grants.

    Returned by the identity provider for the current user and by the grant
    store for any user. ``role`` is the store's role of record and is
    optional; without it the profile builder falls back to ``is_system_admin``.
    """

    user_id: str
    display_name: str = Field("", validation_alias="displayName")
    email: str = ""
    is_system_admin: bool = False
    role: Optional[Role] = None
    status: UserStatus = UserStatus.ACTIVE
    program_access: List[ProgramGrantRecord] = []
    accessible_programs: List[str] = []
    custom_permissions: List[PermissionRecord] = []
    default_program: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


# ==================== Programs ====================


class ProgramSettingsRecord(BaseModel):
    allow_cross_project_visibility: bool = False
    require_project_assignment: bool = True
    default_project_role: Optional[Role] = None


class ProgramRecord(BaseModel):
    """A program as listed by the program registry."""

    program_id: str
    name: str = Field(validation_alias="program_name")
    code: str = Field(validation_alias="program_code")
    description: Optional[str] = None
    status: ProgramStatus = ProgramStatus.ACTIVE
    settings: ProgramSettingsRecord = Field(default_factory=ProgramSettingsRecord)

    model_config = ConfigDict(populate_by_name=True)

    def to_model(self) -> Program:
        return Program(
            program_id=self.program_id,
            name=self.name,
            code=self.code,
            status=self.status,
            settings=ProgramSettings(**self.settings.model_dump()),
            description=self.description,
        )


class ProjectRecord(BaseModel):
    """A project as listed by the program registry."""

    project_id: str
    program_id: str
    name: Optional[str] = Field(None, validation_alias="project_name")

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    def to_model(self) -> Project:
        return Project(project_id=self.project_id, program_id=self.program_id, name=self.name)


# ==================== Access Requests ====================


class AccessRequestRecord(BaseModel):
    """A pending request from a new user for access."""

    request_id: str
    user_id: str
    email: str
    full_name: str
    requested_role: Role
    requested_at: datetime = Field(validation_alias="requested_date")
    justification: Optional[str] = None
    status: str = Field("pending", pattern="^(pending|approved|denied)$")
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
