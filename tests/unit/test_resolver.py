"""
Tests for the Access Resolver
=============================

Decision functions over resolved user profiles: role permissions, program
and project visibility, management rights and ``check_access``.
"""

import pytest

from h10cm.access import resolver
from h10cm.access.models import (
    AccessRequest,
    AccessScope,
    Action,
    Permission,
    RequestAction,
    Resource,
    ResourceType,
    Role,
    UserProfile,
)
from h10cm.exceptions import InvalidAccessRequestError

from tests.factories import identity, program_grant, project_grant


def request(resource_type, action, program_id=None, project_id=None):
    context = None
    if program_id or project_id:
        context = {"program_id": program_id, "project_id": project_id}
    return AccessRequest(resource_type, action, context=context)


@pytest.fixture
def admin(make_profile, admin_record):
    return make_profile(admin_record)


@pytest.fixture
def pm(make_profile, pm_record):
    return make_profile(pm_record)


@pytest.fixture
def tech(make_profile, tech_record):
    return make_profile(tech_record)


@pytest.fixture
def visitor(make_profile, visitor_record):
    return make_profile(visitor_record)


@pytest.fixture
def program_admin(make_profile):
    """Program-level Admin on tf-main without any project grants."""
    return make_profile(identity(
        "padmin-001",
        role=Role.PROJECT_MANAGER,
        grants=[program_grant("tf-main", "Admin", role=Role.PROJECT_MANAGER)],
    ))


class TestPermissions:
    """Tests for role and catalog checks."""

    def test_has_permission_synthetic_profile(self):
        """Permission checks read only the profile's permission list."""
        user = UserProfile(
            user_id="u1",
            display_name="U",
            email="u@x",
            role=Role.VISITOR,
            permissions=(
                Permission(Resource.REPORTS, (Action.READ, Action.WRITE)),
                Permission(Resource.USERS, ()),
            ),
        )
        assert resolver.has_permission(user, Resource.REPORTS, Action.WRITE)
        assert not resolver.has_permission(user, Resource.REPORTS, Action.DELETE)
        assert not resolver.has_permission(user, Resource.USERS, Action.READ)
        assert not resolver.has_permission(user, Resource.TASKS, Action.READ)

    def test_has_permission_accepts_strings(self, tech):
        assert resolver.has_permission(tech, "inventory", "write")

    def test_visitor_cannot_write_projects(self, visitor):
        assert not resolver.has_permission(visitor, Resource.PROJECTS, Action.WRITE)

    def test_roles(self, pm):
        assert resolver.has_role(pm, Role.PROJECT_MANAGER)
        assert not resolver.has_role(pm, Role.ADMIN)
        assert resolver.has_any_role(pm, [Role.ADMIN, Role.PROJECT_MANAGER])
        assert not resolver.has_any_role(pm, [])

    def test_can_manage_users(self, admin, pm):
        assert resolver.can_manage_users(admin)
        assert not resolver.can_manage_users(pm)

    def test_custom_permission_grants_user_management(self, make_profile):
        user = make_profile(identity(
            "tech-002",
            role=Role.TECHNICIAN,
            custom_permissions=[{"resource": "users", "actions": ["read", "write"]}],
        ))
        assert resolver.can_manage_users(user)

    def test_route_check(self, admin, visitor):
        assert resolver.can_access_route(admin, "/anything")
        assert not resolver.can_access_route(visitor, "/reports/summary")


class TestProgramVisibility:
    """Tests for program access and management."""

    def test_admin_sees_all_programs(self, admin):
        assert resolver.has_access_to_program(admin, "aero")
        assert resolver.has_access_to_program(admin, "unknown")
        assert resolver.can_manage_program(admin, "aero")

    def test_grant_required(self, tech):
        assert resolver.has_access_to_program(tech, "tf-main")
        assert not resolver.has_access_to_program(tech, "aero")

    def test_program_admin_manages_program(self, program_admin, pm):
        assert resolver.can_manage_program(program_admin, "tf-main")
        assert not resolver.can_manage_program(program_admin, "aero")
        assert not resolver.can_manage_program(pm, "tf-main")

    def test_accessible_programs_sorted(self, make_profile):
        user = make_profile(identity(
            "multi-001",
            grants=[program_grant("tf-main"), program_grant("aero")],
        ))
        assert resolver.get_accessible_programs(user) == ["aero", "tf-main"]


class TestProjectVisibility:
    """Tests for project access across program boundaries."""

    def test_limited_grant_lists_projects(self, tech):
        assert resolver.has_access_to_project(tech, "proj-001", "tf-main")
        assert not resolver.has_access_to_project(tech, "proj-002", "tf-main")

    def test_program_level_grant_without_project_grants(self, pm):
        """A Program-level grant sees every project in its program."""
        assert resolver.has_access_to_project(pm, "proj-001", "tf-main")
        assert resolver.has_access_to_project(pm, "proj-002", "tf-main")
        assert resolver.has_access_to_project(pm, "proj-002")
        assert not resolver.has_access_to_project(pm, "proj-100", "aero")

    def test_admin_level_grant_is_program_wide(self, program_admin):
        assert resolver.has_access_to_project(program_admin, "proj-001", "tf-main")
        assert resolver.has_access_to_project(program_admin, "proj-002", "tf-main")
        assert not resolver.has_access_to_project(program_admin, "proj-100", "aero")

    def test_project_id_does_not_leak_across_programs(self, make_profile):
        """Holding proj-001 under aero says nothing about proj-001 under tf-main."""
        user = make_profile(identity(
            "tech-003",
            grants=[program_grant("aero", "Limited", [project_grant("proj-001")])],
        ))
        assert resolver.has_access_to_project(user, "proj-001", "aero")
        assert not resolver.has_access_to_project(user, "proj-001", "tf-main")

    def test_no_program_grant_means_no_project(self, tech):
        assert not resolver.has_access_to_project(tech, "proj-100", "aero")

    def test_accessible_projects(self, tech, pm):
        assert resolver.get_accessible_projects(tech) == ["proj-001"]
        assert resolver.get_accessible_projects(pm, "tf-main") == ["proj-001", "proj-002"]
        assert resolver.get_accessible_projects(pm, "aero") == []

    def test_admin_accessible_projects_from_registry(self, admin):
        assert resolver.get_accessible_projects(admin) == ["proj-001", "proj-002", "proj-100"]
        assert resolver.get_accessible_projects(admin, "aero") == ["proj-100"]


class TestProjectManagement:
    """Tests for can_manage_project."""

    def test_program_admin_manages_unassigned_project(self, program_admin):
        """No per-project grant is needed under a program Admin grant."""
        assert resolver.can_manage_project(program_admin, "proj-002")
        assert resolver.can_manage_project(program_admin, "proj-002", "tf-main")

    def test_program_admin_does_not_manage_other_program(self, program_admin):
        assert not resolver.can_manage_project(program_admin, "proj-100")
        assert not resolver.can_manage_project(program_admin, "proj-100", "aero")

    def test_project_admin_grant(self, make_profile):
        user = make_profile(identity(
            "lead-001",
            grants=[program_grant("tf-main", "Limited", [project_grant("proj-001", "Admin")])],
        ))
        assert resolver.can_manage_project(user, "proj-001")
        assert not resolver.can_manage_project(user, "proj-002")

    def test_write_grant_does_not_manage(self, tech):
        assert not resolver.can_manage_project(tech, "proj-001")

    def test_owner_from_grant_when_registry_unaware(self, make_profile):
        user = make_profile(
            identity(
                "padmin-002",
                grants=[program_grant("tf-main", "Admin", [project_grant("proj-new")])],
            ),
            projects=[],
        )
        assert resolver.owning_program(user, "proj-new") == "tf-main"
        assert resolver.can_manage_project(user, "proj-new")


class TestCheckAccess:
    """Tests for the top-level decision."""

    def test_unauthenticated(self):
        result = resolver.check_access(None, request(ResourceType.TASK, RequestAction.READ))
        assert not result.granted
        assert result.reason == "Not authenticated"

    @pytest.mark.parametrize("resource_type", list(ResourceType))
    @pytest.mark.parametrize("action", list(RequestAction))
    def test_admin_granted_everything(self, admin, resource_type, action):
        result = resolver.check_access(admin, request(resource_type, action))
        assert result.granted
        assert result.scope == AccessScope.SYSTEM

    def test_program_read_granted(self, tech):
        result = resolver.check_access(
            tech, request(ResourceType.PROGRAM, RequestAction.READ, program_id="tf-main")
        )
        assert result.granted
        assert result.scope == AccessScope.LIMITED

    def test_program_without_grant(self, tech):
        result = resolver.check_access(
            tech, request(ResourceType.PROGRAM, RequestAction.READ, program_id="aero")
        )
        assert not result.granted
        assert result.reason == "No program access"
        assert result.scope == AccessScope.LIMITED

    def test_program_admin_action_requires_management(self, pm, program_admin):
        denied = resolver.check_access(
            pm, request(ResourceType.PROGRAM, RequestAction.ADMIN, program_id="tf-main")
        )
        assert not denied.granted
        assert denied.reason == "Insufficient program privileges"

        granted = resolver.check_access(
            program_admin, request(ResourceType.PROGRAM, RequestAction.ADMIN, program_id="tf-main")
        )
        assert granted.granted
        assert granted.scope == AccessScope.PROGRAM

    def test_project_read_under_program_level_grant(self, pm):
        result = resolver.check_access(
            pm,
            request(ResourceType.PROJECT, RequestAction.READ, "tf-main", "proj-002"),
        )
        assert result.granted
        assert result.scope == AccessScope.LIMITED

    def test_project_without_grant(self, tech):
        result = resolver.check_access(
            tech,
            request(ResourceType.PROJECT, RequestAction.WRITE, "tf-main", "proj-002"),
        )
        assert not result.granted
        assert result.reason == "No project access"

    def test_project_admin_under_program_admin(self, program_admin):
        result = resolver.check_access(
            program_admin,
            request(ResourceType.PROJECT, RequestAction.ADMIN, "tf-main", "proj-002"),
        )
        assert result.granted
        assert result.scope == AccessScope.PROJECT

    def test_project_admin_action_denied(self, tech):
        result = resolver.check_access(
            tech,
            request(ResourceType.PROJECT, RequestAction.ADMIN, "tf-main", "proj-001"),
        )
        assert not result.granted
        assert result.reason == "Insufficient project privileges"

    def test_fallback_uses_catalog(self, tech, visitor):
        assert resolver.check_access(tech, request(ResourceType.TASK, RequestAction.WRITE)).granted

        result = resolver.check_access(visitor, request(ResourceType.TASK, RequestAction.READ))
        assert not result.granted
        assert result.reason == "Insufficient permissions"

    def test_program_request_without_context_falls_back(self, visitor):
        """Program requests without a program id are decided by the catalog."""
        assert resolver.check_access(visitor, request(ResourceType.PROGRAM, RequestAction.READ)).granted
        assert not resolver.check_access(
            visitor, request(ResourceType.PROGRAM, RequestAction.WRITE)
        ).granted

    def test_manage_maps_to_approve(self, pm, tech):
        assert resolver.check_access(pm, request(ResourceType.TASK, RequestAction.MANAGE)).granted
        assert not resolver.check_access(tech, request(ResourceType.TASK, RequestAction.MANAGE)).granted

    def test_generic_admin_needs_every_action(self, pm):
        assert not resolver.check_access(pm, request(ResourceType.SYSTEM, RequestAction.ADMIN)).granted

    def test_denials_always_have_reason(self, tech, visitor, pm):
        for user in (tech, visitor, pm):
            for resource_type in ResourceType:
                for action in RequestAction:
                    result = resolver.check_access(
                        user, request(resource_type, action, "aero", "proj-100")
                    )
                    assert result.granted or result.reason

    def test_idempotent(self, tech):
        req = request(ResourceType.PROJECT, RequestAction.WRITE, "tf-main", "proj-001")
        assert resolver.check_access(tech, req) == resolver.check_access(tech, req)

    def test_unknown_resource_type_rejected(self):
        with pytest.raises(InvalidAccessRequestError):
            request("Widget", RequestAction.READ)
