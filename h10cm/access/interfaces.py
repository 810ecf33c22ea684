"""
H10CM - Collaborator Interfaces

Abstract interfaces for the services the access session depends on. The
host application implements them over its REST backend and database; the
access core never talks to a transport directly.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from h10cm.access.models import GrantScope, Role
from h10cm.access.schemas import (
    AccessRequestRecord,
    IdentityRecord,
    ProgramRecord,
    ProjectRecord,
)


class IdentityProvider(ABC):
    """Resolves the already-authenticated identity of the current user."""

    @abstractmethod
    async def get_current_identity(self) -> Optional[IdentityRecord]:
        """
        Get the current user's identity with program grants.

        Returns:
            The identity, or None when no user is authenticated

        Raises:
            AuthenticationError: credentials missing or expired
            StoreError: backend failure
        """


class GrantStore(ABC):
    """
    User and grant records.

    Every write is atomic at the store level. Concurrent writes to the same
    grant are last-write-wins.
    """

    @abstractmethod
    async def list_users(self) -> List[IdentityRecord]:
        """List every user with grants."""

    @abstractmethod
    async def list_pending_access_requests(self) -> List[AccessRequestRecord]:
        """List access requests awaiting review."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[IdentityRecord]:
        """Get one user with grants, or None if unknown."""

    @abstractmethod
    async def create_grant(
        self,
        user_id: str,
        scope: GrantScope,
        scope_id: str,
        role: Role,
        access_level: str,
        *,
        granted_by: Optional[str] = None,
    ) -> None:
        """Create or replace the user's grant on a program or project."""

    @abstractmethod
    async def delete_grant(self, user_id: str, scope: GrantScope, scope_id: str) -> None:
        """Remove the user's grant on a program or project."""

    @abstractmethod
    async def approve_access_request(
        self, user_id: str, role: Role, notes: Optional[str] = None
    ) -> None:
        """Approve a pending request, activating the user with a role."""

    @abstractmethod
    async def deny_access_request(self, user_id: str, notes: Optional[str] = None) -> None:
        """Deny a pending request."""


class ProgramRegistry(ABC):
    """Read-only program and project listings."""

    @abstractmethod
    async def list_programs(self) -> List[ProgramRecord]:
        """List all programs, including archived ones."""

    @abstractmethod
    async def list_projects(self) -> List[ProjectRecord]:
        """List all projects with their owning program."""


class PreferenceStore(ABC):
    """Persists the user's selected program for session restoration."""

    @abstractmethod
    def load_program(self, user_id: str) -> Optional[str]:
        """Get the saved program id for a user."""

    @abstractmethod
    def save_program(self, user_id: str, program_id: Optional[str]) -> None:
        """Save (or clear, with None) the program id for a user."""
