"""
Tests for the Permission Catalog
================================

Default role permissions, overrides and route patterns.
"""

import pytest

from h10cm.access.catalog import (
    ROLE_PERMISSIONS,
    can_access_route,
    default_permissions,
    effective_permissions,
)
from h10cm.access.models import Action, Permission, Resource, Role
from h10cm.exceptions import CatalogError


class TestDefaultPermissions:
    """Tests for catalog entries."""

    @pytest.mark.parametrize("role", list(Role))
    def test_every_role_has_non_empty_entry(self, role):
        """Each role should map to a non-empty permission list."""
        assert len(default_permissions(role)) > 0

    @pytest.mark.parametrize("role", list(Role))
    def test_each_resource_listed_once(self, role):
        """No resource should appear twice for a role."""
        resources = [p.resource for p in default_permissions(role)]
        assert len(resources) == len(set(resources))

    @pytest.mark.parametrize("role", list(Role))
    def test_actions_have_no_duplicates(self, role):
        for permission in default_permissions(role):
            assert len(permission.actions) == len(set(permission.actions))

    def test_admin_has_every_action_on_every_resource(self):
        permissions = {p.resource: set(p.actions) for p in default_permissions(Role.ADMIN)}
        assert set(permissions) == set(Resource)
        for actions in permissions.values():
            assert actions == set(Action)

    def test_visitor_reads_projects_only(self):
        projects = next(
            p for p in default_permissions(Role.VISITOR) if p.resource == Resource.PROJECTS
        )
        assert projects.actions == (Action.READ,)

    def test_technician_has_no_user_access(self):
        users = next(
            p for p in default_permissions(Role.TECHNICIAN) if p.resource == Resource.USERS
        )
        assert users.actions == ()

    def test_accepts_role_value_string(self):
        assert default_permissions("ProjectManager") == ROLE_PERMISSIONS[Role.PROJECT_MANAGER]

    def test_unknown_role_fails_fast(self):
        with pytest.raises(CatalogError):
            default_permissions("SuperUser")

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            ROLE_PERMISSIONS[Role.VISITOR] = ()


class TestEffectivePermissions:
    """Tests for copy-and-override of catalog entries."""

    def test_no_overrides_returns_catalog(self):
        assert effective_permissions(Role.TECHNICIAN) == default_permissions(Role.TECHNICIAN)

    def test_override_replaces_resource_entry(self):
        override = Permission(Resource.USERS, (Action.READ,))
        permissions = effective_permissions(Role.TECHNICIAN, [override])

        users = [p for p in permissions if p.resource == Resource.USERS]
        assert users == [override]
        assert len(permissions) == len(default_permissions(Role.TECHNICIAN))

    def test_override_does_not_mutate_catalog(self):
        before = default_permissions(Role.VISITOR)
        effective_permissions(Role.VISITOR, [Permission(Resource.TASKS, (Action.READ,))])
        assert default_permissions(Role.VISITOR) == before
        tasks = next(p for p in before if p.resource == Resource.TASKS)
        assert tasks.actions == ()


class TestRoutes:
    """Tests for role route patterns."""

    def test_admin_wildcard(self):
        assert can_access_route(Role.ADMIN, "/admin/users")

    def test_prefix_wildcard(self):
        assert can_access_route(Role.PROJECT_MANAGER, "/projects/42/steps")
        assert can_access_route(Role.PROJECT_MANAGER, "/projects")

    def test_prefix_does_not_match_sibling(self):
        assert not can_access_route(Role.PROJECT_MANAGER, "/projectsarchive")

    def test_exact_route(self):
        assert can_access_route(Role.TECHNICIAN, "/tasks/my-tasks")
        assert not can_access_route(Role.TECHNICIAN, "/tasks/all")

    def test_visitor_is_view_only(self):
        assert can_access_route(Role.VISITOR, "/inventory/view")
        assert not can_access_route(Role.VISITOR, "/inventory/edit")
