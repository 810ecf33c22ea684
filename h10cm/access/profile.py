"""
H10CM - Profile Builder
=======================

Builds a ``UserProfile`` from an identity record, recomputing every derived
field (role, effective permissions, accessible programs and projects) from
the grant records. Profiles are never patched incrementally; any grant change
goes back through ``build_user_profile``.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from h10cm.access.catalog import effective_permissions
from h10cm.access.models import ProgramAccess, Project, Role, UserProfile
from h10cm.access.schemas import IdentityRecord

logger = logging.getLogger("H10CM_ProfileBuilder")


def resolve_role(record: IdentityRecord, default_role: Role = Role.TECHNICIAN) -> Role:
    """
    Determine the global role for an identity record.

    The system-admin flag always wins. Otherwise the store's role of record is
    used when present, else ``default_role``.
    """
    if record.is_system_admin:
        return Role.ADMIN
    if record.role is not None:
        return record.role
    return default_role


def active_grants(
    grants: Iterable[ProgramAccess],
    now: datetime,
) -> List[ProgramAccess]:
    """Drop expired program grants and expired project grants within them."""
    active = []
    for grant in grants:
        if grant.is_expired(now):
            logger.debug(f"Dropping expired program grant {grant.program_id}")
            continue
        projects = tuple(p for p in grant.projects if not p.is_expired(now))
        if len(projects) != len(grant.projects):
            logger.debug(
                f"Dropped {len(grant.projects) - len(projects)} expired project "
                f"grant(s) in program {grant.program_id}"
            )
            grant = ProgramAccess(
                program_id=grant.program_id,
                role=grant.role,
                access_level=grant.access_level,
                granted_at=grant.granted_at,
                granted_by=grant.granted_by,
                expires_at=grant.expires_at,
                projects=projects,
                program_name=grant.program_name,
            )
        active.append(grant)
    return active


def build_user_profile(
    record: IdentityRecord,
    *,
    projects: Iterable[Project] = (),
    now: Optional[datetime] = None,
    enforce_expiry: bool = True,
    default_role: Role = Role.TECHNICIAN,
) -> UserProfile:
    """
    Build a user profile with all derived fields recomputed.

    Args:
        record: Identity and grants from the identity provider or grant store
        projects: Registry projects, used to expand program-wide grants and to
            know each project's owning program
        now: Reference time for grant expiry (defaults to current UTC time)
        enforce_expiry: Drop expired grants when True
        default_role: Role used when the record carries neither a role nor
            the system-admin flag

    Returns:
        A new immutable UserProfile
    """
    now = now or datetime.now(timezone.utc)
    role = resolve_role(record, default_role)
    is_admin = role == Role.ADMIN

    grants = [g.to_model() for g in record.program_access]
    if enforce_expiry:
        grants = active_grants(grants, now)

    project_owners: Dict[str, str] = {p.project_id: p.program_id for p in projects}
    projects_by_program: Dict[str, Set[str]] = {}
    for project_id, program_id in project_owners.items():
        projects_by_program.setdefault(program_id, set()).add(project_id)

    accessible_programs: Set[str] = set()
    accessible_projects: Set[str] = set()
    for grant in grants:
        accessible_programs.add(grant.program_id)
        accessible_projects.update(grant.project_ids)
        if grant.is_program_wide:
            accessible_projects.update(projects_by_program.get(grant.program_id, ()))

    unbacked = set(record.accessible_programs) - accessible_programs
    if unbacked and not is_admin:
        logger.warning(
            f"Ignoring programs without an active grant for user {record.user_id}: "
            f"{sorted(unbacked)}"
        )

    default_program = record.default_program
    if default_program and not is_admin and default_program not in accessible_programs:
        default_program = None

    return UserProfile(
        user_id=record.user_id,
        display_name=record.display_name,
        email=record.email,
        role=role,
        status=record.status,
        permissions=effective_permissions(
            role, [p.to_model() for p in record.custom_permissions]
        ),
        program_access=tuple(grants),
        accessible_programs=frozenset(accessible_programs),
        accessible_projects=frozenset(accessible_projects),
        can_see_all_programs=is_admin,
        can_create_programs=is_admin,
        project_owners=project_owners,
        default_program=default_program,
    )
