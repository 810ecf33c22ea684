"""
H10CM - Access Session
======================

Holds the current user and program context for one client session and
mediates every grant mutation.

Lifecycle:
    Unauthenticated -> Loading -> Authenticated
    Unauthenticated -> Loading -> AccessDenied
    any -> Disposed

The session is constructed once by the host application and injected into
its consumers. It is the only writer of the UserProfile cache; profiles are
replaced by a full rebuild from the grant store after every mutation, never
patched locally.

Example:
    session = AccessSession(identity_provider, grant_store, program_registry)
    await session.initialize()

    if session.has_access_to_program("tf-main"):
        session.switch_program("tf-main")

    result = session.check_access(AccessRequest(
        resource_type=ResourceType.PROJECT,
        action=RequestAction.WRITE,
        context=AccessContext(program_id="tf-main", project_id="proj-001"),
    ))
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from h10cm.access import resolver
from h10cm.access.audit import (
    ANONYMOUS_ACTOR,
    AuditActor,
    AuditEventType,
    AuditLogger,
    AuditResult,
)
from h10cm.access.interfaces import (
    GrantStore,
    IdentityProvider,
    PreferenceStore,
    ProgramRegistry,
)
from h10cm.access.models import (
    AccessRequest,
    AccessResult,
    Action,
    GrantScope,
    Permission,
    Program,
    ProgramAccessLevel,
    Project,
    ProjectAccessLevel,
    Resource,
    Role,
    UserProfile,
    UserStatus,
)
from h10cm.access.preferences import JsonPreferenceStore, MemoryPreferenceStore
from h10cm.access.profile import build_user_profile
from h10cm.access.schemas import AccessRequestRecord, IdentityRecord
from h10cm.config import Settings, get_settings
from h10cm.exceptions import (
    AuthenticationError,
    InvalidGrantError,
    PermissionDeniedError,
    SessionStateError,
)

logger = logging.getLogger("H10CM_AccessSession")


class SessionState(str, Enum):
    """Access session states."""

    UNAUTHENTICATED = "Unauthenticated"
    LOADING = "Loading"
    AUTHENTICATED = "Authenticated"
    ACCESS_DENIED = "AccessDenied"
    DISPOSED = "Disposed"


ADMIN_ROLES: Tuple[Role, ...] = (Role.ADMIN,)
PROJECT_ADMIN_ROLES: Tuple[Role, ...] = (Role.ADMIN, Role.PROJECT_MANAGER)

STATUS_DENIAL_REASONS: Dict[UserStatus, str] = {
    UserStatus.INACTIVE: "Account is inactive",
    UserStatus.PENDING_APPROVAL: "Account is pending approval",
    UserStatus.SUSPENDED: "Account is suspended",
}


class AccessSession:
    """
    Current user and program context with decision and admin APIs.

    Decisions are delegated to ``h10cm.access.resolver`` and are always
    answered from the cached profile. ``check_access`` results are memoized
    until the profile is replaced.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        grant_store: GrantStore,
        program_registry: ProgramRegistry,
        *,
        preference_store: Optional[PreferenceStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._settings = settings or get_settings()
        self._identity_provider = identity_provider
        self._grant_store = grant_store
        self._program_registry = program_registry
        self._audit = audit_logger or AuditLogger(self._settings.AUDIT_BUFFER_SIZE)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._default_role = Role(self._settings.DEFAULT_ROLE)

        if preference_store is None and self._settings.PERSIST_PROGRAM_SELECTION:
            if self._settings.PROGRAM_PREFERENCE_FILE:
                preference_store = JsonPreferenceStore(self._settings.PROGRAM_PREFERENCE_FILE)
            else:
                preference_store = MemoryPreferenceStore()
        self._preferences = preference_store

        self._state = SessionState.UNAUTHENTICATED
        self._current_user: Optional[UserProfile] = None
        self._current_program: Optional[str] = None
        self._denial_reason: Optional[str] = None
        self._programs: Tuple[Program, ...] = ()
        self._projects: Tuple[Project, ...] = ()
        self._profiles: Dict[str, UserProfile] = {}
        self._decisions: "OrderedDict[AccessRequest, AccessResult]" = OrderedDict()

        # Bumped by initialize() and logout(); loads from older generations
        # are discarded.
        self._generation = 0
        self._load_task: Optional["asyncio.Future[SessionState]"] = None
        self._reload_seq: Dict[str, int] = {}

    # ==================== State ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_user(self) -> Optional[UserProfile]:
        return self._current_user

    @property
    def current_program(self) -> Optional[str]:
        return self._current_program

    @property
    def available_programs(self) -> Tuple[Program, ...]:
        """Non-archived programs the current user can see."""
        user = self._current_user
        if user is None:
            return ()
        return tuple(
            p for p in self._programs
            if not p.is_archived and resolver.has_access_to_program(user, p.program_id)
        )

    @property
    def denial_reason(self) -> Optional[str]:
        return self._denial_reason

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED and self._current_user is not None

    @property
    def is_loading(self) -> bool:
        return self._state == SessionState.LOADING

    @property
    def user_permissions(self) -> Tuple[Permission, ...]:
        return self._current_user.permissions if self._current_user else ()

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    def profile_for(self, user_id: str) -> Optional[UserProfile]:
        """Cached profile of a user loaded by this session."""
        return self._profiles.get(user_id)

    # ==================== Lifecycle ====================

    async def initialize(self) -> SessionState:
        """
        Resolve the current identity and build its profile.

        Concurrent callers share one in-flight load. A load superseded by
        ``logout()`` is discarded when it completes.

        Returns:
            The resulting session state

        Raises:
            StoreError: identity provider or program registry failure
            SessionStateError: session was disposed
        """
        if self._state == SessionState.DISPOSED:
            raise SessionStateError("Session has been disposed")

        if self._load_task is not None and not self._load_task.done():
            return await asyncio.shield(self._load_task)

        self._generation += 1
        self._state = SessionState.LOADING
        self._load_task = asyncio.ensure_future(self._load(self._generation))
        return await asyncio.shield(self._load_task)

    def logout(self) -> None:
        """
        Clear the user and program context.

        Server-side session state is the host's responsibility.
        """
        user = self._current_user
        self._generation += 1
        self._load_task = None
        self._current_user = None
        self._current_program = None
        self._denial_reason = None
        self._profiles.clear()
        self._reload_seq.clear()
        self._decisions.clear()
        if self._state != SessionState.DISPOSED:
            self._state = SessionState.UNAUTHENTICATED

        if user is not None:
            logger.info(f"User {user.user_id} logged out")
            self._audit.log(
                AuditEventType.AUTH_LOGOUT, self._actor(user), "session", user.user_id
            )

    def dispose(self) -> None:
        """Log out and refuse any further initialization."""
        self.logout()
        self._state = SessionState.DISPOSED
        logger.info("AccessSession disposed")

    async def _load(self, generation: int) -> SessionState:
        try:
            identity = await self._identity_provider.get_current_identity()
            if identity is None:
                raise AuthenticationError("No authenticated user found")
        except AuthenticationError as e:
            return self._finish_denied(generation, e.message, ANONYMOUS_ACTOR)
        except BaseException:
            self._abort_load(generation)
            raise

        if identity.status != UserStatus.ACTIVE:
            actor = AuditActor(user_id=identity.user_id, email=identity.email)
            return self._finish_denied(
                generation, STATUS_DENIAL_REASONS[identity.status], actor
            )

        try:
            programs, projects = await self._fetch_registry()
        except BaseException:
            self._abort_load(generation)
            raise

        if generation != self._generation:
            logger.debug("Discarding superseded identity load")
            return self._state

        self._programs = programs
        self._projects = projects
        profile = self._build_profile(identity)
        restored = self._restore_program(profile)
        self._profiles[profile.user_id] = profile
        self._set_current_user(profile)
        self._current_program = restored
        self._denial_reason = None
        self._state = SessionState.AUTHENTICATED

        logger.info(f"User {profile.user_id} authenticated as {profile.role.value}")
        self._audit.log(
            AuditEventType.AUTH_LOGIN_SUCCESS,
            self._actor(profile),
            "session",
            profile.user_id,
            details={"program": self._current_program},
        )
        return self._state

    def _finish_denied(self, generation: int, reason: str, actor: AuditActor) -> SessionState:
        if generation != self._generation:
            return self._state
        self._current_user = None
        self._current_program = None
        self._decisions.clear()
        self._denial_reason = reason
        self._state = SessionState.ACCESS_DENIED
        logger.info(f"Access denied: {reason}")
        self._audit.log(
            AuditEventType.AUTH_LOGIN_FAILURE,
            actor,
            "session",
            actor.user_id,
            result=AuditResult.DENIED,
            error_message=reason,
        )
        return self._state

    def _abort_load(self, generation: int) -> None:
        if generation == self._generation:
            self._current_user = None
            self._current_program = None
            self._decisions.clear()
            self._state = SessionState.UNAUTHENTICATED

    async def _fetch_registry(self) -> Tuple[Tuple[Program, ...], Tuple[Project, ...]]:
        program_records, project_records = await asyncio.gather(
            self._program_registry.list_programs(),
            self._program_registry.list_projects(),
        )
        return (
            tuple(r.to_model() for r in program_records),
            tuple(r.to_model() for r in project_records),
        )

    def _build_profile(self, record: IdentityRecord) -> UserProfile:
        return build_user_profile(
            record,
            projects=self._projects,
            now=self._clock(),
            enforce_expiry=self._settings.ENFORCE_GRANT_EXPIRY,
            default_role=self._default_role,
        )

    def _set_current_user(self, profile: UserProfile) -> None:
        self._current_user = profile
        self._decisions.clear()
        if self._current_program and not resolver.has_access_to_program(
            profile, self._current_program
        ):
            logger.info(f"Program {self._current_program} no longer accessible; clearing")
            self._current_program = None

    def _restore_program(self, profile: UserProfile) -> Optional[str]:
        saved = None
        if self._preferences is not None:
            try:
                saved = self._preferences.load_program(profile.user_id)
            except Exception as e:
                logger.warning(f"Could not load program selection for {profile.user_id}: {e}")
        for candidate in (saved, profile.default_program):
            if candidate and resolver.has_access_to_program(profile, candidate):
                return candidate
        return None

    # ==================== Program Context ====================

    def switch_program(self, program_id: str) -> bool:
        """
        Make a program the current context.

        A program the user cannot access is refused with a warning; this never
        raises so callers may invoke it speculatively.

        Returns:
            True if the program is now current
        """
        user = self._current_user
        if user is None or not resolver.has_access_to_program(user, program_id):
            logger.warning(f"Access denied to program {program_id}")
            self._audit.log(
                AuditEventType.PROGRAM_SWITCH_DENIED,
                self._actor(user),
                "program",
                program_id,
                result=AuditResult.DENIED,
            )
            return False

        self._current_program = program_id
        if self._preferences is not None:
            try:
                self._preferences.save_program(user.user_id, program_id)
            except Exception as e:
                logger.warning(f"Could not persist program selection {program_id}: {e}")

        self._audit.log(AuditEventType.PROGRAM_SWITCHED, self._actor(user), "program", program_id)
        return True

    # ==================== Decisions ====================

    def has_permission(self, resource: Union[Resource, str], action: Union[Action, str]) -> bool:
        user = self._current_user
        return user is not None and resolver.has_permission(user, resource, action)

    def has_role(self, role: Role) -> bool:
        user = self._current_user
        return user is not None and resolver.has_role(user, role)

    def has_any_role(self, roles: Iterable[Role]) -> bool:
        user = self._current_user
        return user is not None and resolver.has_any_role(user, roles)

    def has_access_to_program(self, program_id: str) -> bool:
        user = self._current_user
        return user is not None and resolver.has_access_to_program(user, program_id)

    def has_access_to_project(self, project_id: str, program_id: Optional[str] = None) -> bool:
        user = self._current_user
        return user is not None and resolver.has_access_to_project(user, project_id, program_id)

    def can_manage_program(self, program_id: str) -> bool:
        user = self._current_user
        return user is not None and resolver.can_manage_program(user, program_id)

    def can_manage_project(self, project_id: str, program_id: Optional[str] = None) -> bool:
        user = self._current_user
        return user is not None and resolver.can_manage_project(user, project_id, program_id)

    def can_access_route(self, route: str) -> bool:
        user = self._current_user
        return user is not None and resolver.can_access_route(user, route)

    def get_accessible_programs(self) -> List[str]:
        user = self._current_user
        if user is None:
            return []
        if user.can_see_all_programs:
            return sorted(p.program_id for p in self._programs)
        return resolver.get_accessible_programs(user)

    def get_accessible_projects(self, program_id: Optional[str] = None) -> List[str]:
        user = self._current_user
        if user is None:
            return []
        return resolver.get_accessible_projects(user, program_id)

    def check_access(self, request: AccessRequest) -> AccessResult:
        """Decide an access request for the current user (memoized per profile)."""
        user = self._current_user
        if user is None:
            return resolver.check_access(None, request)

        cached = self._decisions.get(request)
        if cached is not None:
            self._decisions.move_to_end(request)
            return cached

        result = resolver.check_access(user, request)
        self._decisions[request] = result
        if len(self._decisions) > self._settings.DECISION_CACHE_SIZE:
            self._decisions.popitem(last=False)
        return result

    # ==================== Administration: reads ====================

    async def list_users(self) -> List[UserProfile]:
        """Get every user's profile (Admin only)."""
        actor = self._require_roles(ADMIN_ROLES, AuditEventType.USERS_LISTED, "user", None)
        generation = self._generation
        records = await self._grant_store.list_users()
        profiles = [self._build_profile(r) for r in records]
        if generation == self._generation:
            for profile in profiles:
                self._profiles[profile.user_id] = profile
        self._audit.log(
            AuditEventType.USERS_LISTED, actor, "user", details={"count": len(profiles)}
        )
        return profiles

    async def list_pending_access_requests(self) -> List[AccessRequestRecord]:
        """Get access requests awaiting review (Admin only)."""
        actor = self._require_roles(
            ADMIN_ROLES, AuditEventType.ACCESS_REQUESTS_LISTED, "access_request", None
        )
        requests = await self._grant_store.list_pending_access_requests()
        self._audit.log(
            AuditEventType.ACCESS_REQUESTS_LISTED,
            actor,
            "access_request",
            details={"count": len(requests)},
        )
        return list(requests)

    async def list_programs(self) -> List[Program]:
        """Get every program, archived included (Admin only)."""
        self._require_roles(ADMIN_ROLES, None, "program", None)
        generation = self._generation
        programs, projects = await self._fetch_registry()
        if generation == self._generation:
            self._programs = programs
            self._projects = projects
        return list(programs)

    # ==================== Administration: grants ====================

    async def assign_user_to_program(
        self,
        user_id: str,
        program_id: str,
        role: Union[Role, str],
        access_level: Union[ProgramAccessLevel, str],
    ) -> Optional[UserProfile]:
        """
        Grant a user access to a program (Admin only).

        Returns:
            The user's rebuilt profile, or None if the store no longer knows
            the user

        Raises:
            PermissionDeniedError: caller is not an Admin
            InvalidGrantError: unknown role or access level
            StoreError: grant store failure (nothing changed locally)
        """
        event = AuditEventType.PROGRAM_GRANT_ASSIGNED
        actor = self._require_roles(ADMIN_ROLES, event, "program", program_id)
        role = _coerce(Role, role, "role")
        level = _coerce(ProgramAccessLevel, access_level, "program access level")

        return await self._mutate(
            event,
            actor,
            "program",
            program_id,
            user_id,
            lambda: self._grant_store.create_grant(
                user_id, GrantScope.PROGRAM, program_id, role, level,
                granted_by=actor.user_id,
            ),
            {"user_id": user_id, "role": role, "access_level": level},
        )

    async def assign_user_to_project(
        self,
        user_id: str,
        project_id: str,
        role: Optional[Union[Role, str]] = None,
        access_level: Union[ProjectAccessLevel, str] = ProjectAccessLevel.READ,
    ) -> Optional[UserProfile]:
        """
        Grant a user access to a project (Admin or ProjectManager).

        Without ``role`` the owning program's default project role is used.
        """
        event = AuditEventType.PROJECT_GRANT_ASSIGNED
        actor = self._require_roles(PROJECT_ADMIN_ROLES, event, "project", project_id)
        if role is None:
            role = self._default_project_role(project_id)
        role = _coerce(Role, role, "role")
        level = _coerce(ProjectAccessLevel, access_level, "project access level")

        return await self._mutate(
            event,
            actor,
            "project",
            project_id,
            user_id,
            lambda: self._grant_store.create_grant(
                user_id, GrantScope.PROJECT, project_id, role, level,
                granted_by=actor.user_id,
            ),
            {"user_id": user_id, "role": role, "access_level": level},
        )

    async def remove_user_from_program(self, user_id: str, program_id: str) -> Optional[UserProfile]:
        """Revoke a user's program grant (Admin only)."""
        event = AuditEventType.PROGRAM_GRANT_REVOKED
        actor = self._require_roles(ADMIN_ROLES, event, "program", program_id)
        return await self._mutate(
            event,
            actor,
            "program",
            program_id,
            user_id,
            lambda: self._grant_store.delete_grant(user_id, GrantScope.PROGRAM, program_id),
            {"user_id": user_id},
        )

    async def remove_user_from_project(self, user_id: str, project_id: str) -> Optional[UserProfile]:
        """Revoke a user's project grant (Admin or ProjectManager)."""
        event = AuditEventType.PROJECT_GRANT_REVOKED
        actor = self._require_roles(PROJECT_ADMIN_ROLES, event, "project", project_id)
        return await self._mutate(
            event,
            actor,
            "project",
            project_id,
            user_id,
            lambda: self._grant_store.delete_grant(user_id, GrantScope.PROJECT, project_id),
            {"user_id": user_id},
        )

    async def approve_user_access(
        self,
        user_id: str,
        role: Union[Role, str],
        notes: Optional[str] = None,
    ) -> Optional[UserProfile]:
        """Approve a pending access request with a role (Admin only)."""
        event = AuditEventType.ACCESS_REQUEST_APPROVED
        actor = self._require_roles(ADMIN_ROLES, event, "user", user_id)
        role = _coerce(Role, role, "role")
        return await self._mutate(
            event,
            actor,
            "user",
            user_id,
            user_id,
            lambda: self._grant_store.approve_access_request(user_id, role, notes),
            {"role": role, "notes": notes},
        )

    async def deny_user_access(self, user_id: str, notes: Optional[str] = None) -> Optional[UserProfile]:
        """Deny a pending access request (Admin only)."""
        event = AuditEventType.ACCESS_REQUEST_DENIED
        actor = self._require_roles(ADMIN_ROLES, event, "user", user_id)
        return await self._mutate(
            event,
            actor,
            "user",
            user_id,
            user_id,
            lambda: self._grant_store.deny_access_request(user_id, notes),
            {"notes": notes},
        )

    # ==================== Administration: helpers ====================

    def _require_roles(
        self,
        roles: Sequence[Role],
        event_type: Optional[AuditEventType],
        resource_type: str,
        resource_id: Optional[str],
    ) -> AuditActor:
        user = self._current_user
        if user is not None and resolver.has_any_role(user, roles):
            return self._actor(user)

        message = f"Access denied: {' or '.join(r.value for r in roles)} role required"
        logger.warning(
            f"{message} (user={user.user_id if user else None}, {resource_type}={resource_id})"
        )
        if event_type is not None:
            self._audit.log(
                event_type,
                self._actor(user),
                resource_type,
                resource_id,
                result=AuditResult.DENIED,
                error_message=message,
            )
        raise PermissionDeniedError(message, required_roles=roles, code="ROLE_REQUIRED")

    async def _mutate(
        self,
        event_type: AuditEventType,
        actor: AuditActor,
        resource_type: str,
        resource_id: str,
        user_id: str,
        write: Callable[[], Awaitable[Any]],
        details: Dict[str, Any],
    ) -> Optional[UserProfile]:
        try:
            await write()
        except Exception as e:
            self._audit.log(
                event_type,
                actor,
                resource_type,
                resource_id,
                result=AuditResult.ERROR,
                details=details,
                error_message=str(e),
            )
            raise

        logger.info(f"{event_type.value}: user={user_id} {resource_type}={resource_id}")
        self._audit.log(event_type, actor, resource_type, resource_id, details=details)
        return await self._reload_user(user_id)

    async def _reload_user(self, user_id: str) -> Optional[UserProfile]:
        """Rebuild a user's profile from the grant store and registry."""
        generation = self._generation
        seq = self._reload_seq.get(user_id, 0) + 1
        self._reload_seq[user_id] = seq

        try:
            record = await self._grant_store.get_user(user_id)
            projects = await self._program_registry.list_projects()
        except BaseException:
            if generation == self._generation and self._reload_seq.get(user_id) == seq:
                self._evict(user_id)
            raise

        if generation != self._generation or self._reload_seq.get(user_id) != seq:
            logger.debug(f"Discarding superseded reload of user {user_id}")
            return self._profiles.get(user_id)

        self._projects = tuple(r.to_model() for r in projects)
        if record is None:
            self._evict(user_id)
            return None

        profile = self._build_profile(record)
        self._profiles[user_id] = profile
        if self._current_user is not None and self._current_user.user_id == user_id:
            self._set_current_user(profile)
        return profile

    def _evict(self, user_id: str) -> None:
        self._profiles.pop(user_id, None)
        if self._current_user is not None and self._current_user.user_id == user_id:
            # Keep the session usable; decisions re-run against the old
            # profile until initialize() succeeds again.
            logger.warning(f"Profile of current user {user_id} may be stale")
            self._decisions.clear()

    def _default_project_role(self, project_id: str) -> Role:
        owner = next((p.program_id for p in self._projects if p.project_id == project_id), None)
        program = next((p for p in self._programs if p.program_id == owner), None)
        if program is not None and program.settings.default_project_role is not None:
            return program.settings.default_project_role
        raise InvalidGrantError(
            f"No role given and no default project role for project {project_id}",
            code="ROLE_REQUIRED",
        )

    @staticmethod
    def _actor(user: Optional[UserProfile]) -> AuditActor:
        if user is None:
            return ANONYMOUS_ACTOR
        return AuditActor(user_id=user.user_id, email=user.email, role=user.role.value)


def _coerce(enum_type, value, label: str):
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidGrantError(f"Invalid {label}: {value!r}", code="INVALID_GRANT") from None
