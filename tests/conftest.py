"""
H10CM Test Configuration
========================

Fixtures for access-control tests: identity records, in-memory
collaborators and session factories.
"""

from typing import Optional

import pytest

from h10cm.access.models import Role
from h10cm.access.preferences import MemoryPreferenceStore
from h10cm.access.profile import build_user_profile
from h10cm.access.schemas import AccessRequestRecord, IdentityRecord
from h10cm.access.session import AccessSession
from h10cm.config import Settings

from tests.factories import (
    GRANTED_AT,
    NOW,
    PROJECTS,
    InMemoryGrantStore,
    InMemoryProgramRegistry,
    StubIdentityProvider,
    identity,
    program_grant,
    project_grant,
)


# ==================== Identity Fixtures ====================


@pytest.fixture
def admin_record():
    """System administrator with no explicit grants."""
    return identity("admin-001", is_system_admin=True, display_name="System Administrator")


@pytest.fixture
def pm_record():
    """Project manager with program-wide access to tf-main."""
    return identity(
        "pm-001",
        role=Role.PROJECT_MANAGER,
        grants=[program_grant("tf-main", "Program", role=Role.PROJECT_MANAGER)],
    )


@pytest.fixture
def tech_record():
    """Technician limited to proj-001 in tf-main."""
    return identity(
        "tech-001",
        role=Role.TECHNICIAN,
        grants=[program_grant("tf-main", "Limited", [project_grant("proj-001")])],
    )


@pytest.fixture
def visitor_record():
    return identity("visitor-001", role=Role.VISITOR)


@pytest.fixture
def pending_request():
    return AccessRequestRecord(
        request_id="req-001",
        user_id="pending-001",
        email="newuser@tfproject.com",
        full_name="New User",
        requested_role=Role.TECHNICIAN,
        requested_at=GRANTED_AT,
        justification="Quality control work",
    )


# ==================== Profile & Session Fixtures ====================


@pytest.fixture
def make_profile():
    """Build a profile from an identity record against the test registry."""
    def _make(record: IdentityRecord, **kwargs):
        kwargs.setdefault("projects", [p.to_model() for p in PROJECTS])
        kwargs.setdefault("now", NOW)
        return build_user_profile(record, **kwargs)
    return _make


@pytest.fixture
def settings():
    return Settings(_env_file=None, PROGRAM_PREFERENCE_FILE=None)


@pytest.fixture
def registry():
    return InMemoryProgramRegistry()


@pytest.fixture
def make_session(settings, registry, admin_record, pm_record, tech_record, visitor_record, pending_request):
    """
    Build an AccessSession whose current identity is ``record``.

    Returns (session, identity_provider, grant_store).
    """
    def _make(record: Optional[IdentityRecord], **kwargs):
        provider = kwargs.pop("identity_provider", None) or StubIdentityProvider(record)
        store = kwargs.pop("grant_store", None) or InMemoryGrantStore(
            users=[admin_record, pm_record, tech_record, visitor_record],
            pending=[pending_request],
        )
        kwargs.setdefault("preference_store", MemoryPreferenceStore())
        kwargs.setdefault("clock", lambda: NOW)
        session = AccessSession(
            provider,
            store,
            kwargs.pop("program_registry", registry),
            settings=kwargs.pop("settings", settings),
            **kwargs,
        )
        return session, provider, store
    return _make
