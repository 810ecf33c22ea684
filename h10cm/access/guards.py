"""
Access Guards

Thin consumers of the AccessSession for gating UI features and API handlers.

Usage:
    app.state.access_session = session

    @router.get("/programs/{program_id}", dependencies=[
        Depends(require_access(ResourceType.PROGRAM, RequestAction.READ)),
    ])
    async def get_program(program_id: str): ...
"""

from typing import Iterable, Optional, Tuple, Union

from fastapi import Depends, HTTPException, Request, status

from h10cm.access.models import (
    AccessContext,
    AccessRequest,
    Action,
    RequestAction,
    Resource,
    ResourceType,
    Role,
)
from h10cm.access.session import AccessSession


# ==================== Feature checks ====================


def allows(
    session: AccessSession,
    *,
    required_role: Optional[Role] = None,
    required_roles: Optional[Iterable[Role]] = None,
    required_permission: Optional[Tuple[Union[Resource, str], Union[Action, str]]] = None,
) -> bool:
    """
    Check whether a protected view or control should be shown.

    Every given requirement must hold. Callers render their fallback when
    this returns False.
    """
    if not session.is_authenticated:
        return False
    if required_role is not None and not session.has_role(required_role):
        return False
    if required_roles is not None and not session.has_any_role(required_roles):
        return False
    if required_permission is not None and not session.has_permission(*required_permission):
        return False
    return True


# ==================== FastAPI dependencies ====================


def get_access_session(request: Request) -> AccessSession:
    """Get the AccessSession installed on the application."""
    session = getattr(request.app.state, "access_session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Access control not initialized",
        )
    return session


async def require_authenticated(
    session: AccessSession = Depends(get_access_session),
) -> AccessSession:
    """
    Require an authenticated session.

    Raises:
        HTTPException: 401 if no user is authenticated
    """
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=session.denial_reason or "Authentication required",
        )
    return session


def require_role(role: Role):
    """Dependency requiring a specific role."""
    async def dependency(
        session: AccessSession = Depends(require_authenticated),
    ) -> AccessSession:
        if not session.has_role(role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role required: {role.value}",
            )
        return session
    return dependency


def require_any_role(*roles: Role):
    """Dependency requiring one of the given roles."""
    async def dependency(
        session: AccessSession = Depends(require_authenticated),
    ) -> AccessSession:
        if not session.has_any_role(roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient roles",
            )
        return session
    return dependency


def require_permission(resource: Resource, action: Action):
    """Dependency requiring a catalog permission."""
    async def dependency(
        session: AccessSession = Depends(require_authenticated),
    ) -> AccessSession:
        if not session.has_permission(resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {Resource(resource).value}:{Action(action).value}",
            )
        return session
    return dependency


def require_access(
    resource_type: ResourceType,
    action: RequestAction,
    program_param: str = "program_id",
    project_param: str = "project_id",
):
    """
    Dependency running ``check_access`` for the request.

    Program and project ids are read from path parameters, falling back to
    query parameters.
    """
    async def dependency(
        request: Request,
        session: AccessSession = Depends(require_authenticated),
    ) -> AccessSession:
        def param(name: str) -> Optional[str]:
            return request.path_params.get(name) or request.query_params.get(name)

        result = session.check_access(AccessRequest(
            resource_type=resource_type,
            action=action,
            context=AccessContext(
                program_id=param(program_param),
                project_id=param(project_param),
            ),
        ))
        if not result.granted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=result.reason,
            )
        return session
    return dependency
