"""
Tests for the permission engine and the default access policies.

Pure unit tests: users, memberships and subjects are plain namespaces.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.core.hierarchy import HierarchyError, hierarchy
from app.permissions.engine import (
    ALL_ACTIONS,
    Action,
    EntityContext,
    PermissionEngine,
    configure_access_policies,
)
from app.permissions.policies import build_permission_engine

NOW = datetime.now(timezone.utc)


def make_user(role: str = "user"):
    return SimpleNamespace(id=uuid.uuid4(), role=role)


def membership(context_type: str, context_id: uuid.UUID, role: str, active: bool = True):
    return SimpleNamespace(
        context_type=context_type,
        context_id=context_id,
        role=role,
        activated_at=NOW if active else None,
    )


@pytest.fixture
def engine() -> PermissionEngine:
    return build_permission_engine()


@pytest.fixture
def org():
    return SimpleNamespace(entity_type="organization", id=uuid.uuid4())


@pytest.fixture
def project(org):
    return SimpleNamespace(entity_type="project", id=uuid.uuid4(), organization_id=org.id)


@pytest.fixture
def task(org, project):
    return SimpleNamespace(entity_type="task", id=uuid.uuid4(), organization_id=org.id, project_id=project.id)


class TestSystemAdmin:
    @pytest.mark.parametrize("action", [Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE])
    def test_always_allowed(self, engine, org, project, task, action):
        admin = make_user("admin")
        for subject in (org, project, task, EntityContext("project")):
            assert engine.is_allowed(admin, [], action, subject)

    def test_decision_marks_system_level(self, engine, org):
        decision = engine.decide(make_user("admin"), [], org)
        assert decision.system_admin
        assert decision.membership is None
        assert all(decision.can.values())


class TestFailClosed:
    def test_no_membership_denies(self, engine, org, project, task):
        user = make_user()
        for subject in (org, project, task):
            for action in (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE):
                assert not engine.is_allowed(user, [], action, subject)

    def test_membership_elsewhere_denies(self, engine, project):
        user = make_user()
        other = [membership("organization", uuid.uuid4(), "admin")]
        assert not engine.is_allowed(user, other, Action.READ, project)

    def test_pending_membership_is_ignored(self, engine, org):
        user = make_user()
        pending = [membership("organization", org.id, "admin", active=False)]
        assert not engine.is_allowed(user, pending, Action.READ, org)

    def test_empty_context_denies(self, engine):
        user = make_user()
        ms = [membership("organization", uuid.uuid4(), "admin")]
        assert not engine.is_allowed(user, ms, Action.CREATE, EntityContext("project"))

    def test_missing_policy_denies(self, org):
        engine = PermissionEngine(hierarchy, configure_access_policies(hierarchy, lambda subject, grant: None))
        user = make_user()
        ms = [membership("organization", org.id, "admin")]
        decision = engine.decide(user, ms, org)
        assert decision.membership is ms[0]
        assert not decision.allows(Action.READ)


class TestResolutionOrder:
    def test_org_admin_manages_project(self, engine, org, project):
        user = make_user()
        ms = [membership("organization", org.id, "admin")]
        decision = engine.decide(user, ms, project)
        assert decision.context_type == "organization"
        assert decision.allows(ALL_ACTIONS)

    def test_org_member_reads_project(self, engine, org, project):
        user = make_user()
        ms = [membership("organization", org.id, "member")]
        assert engine.is_allowed(user, ms, Action.READ, project)
        assert not engine.is_allowed(user, ms, Action.UPDATE, project)

    def test_direct_membership_wins_over_ancestor(self, engine, org, project):
        """Org admin who is a plain project member is judged by the project membership."""
        user = make_user()
        ms = [
            membership("organization", org.id, "admin"),
            membership("project", project.id, "member"),
        ]
        decision = engine.decide(user, ms, project)
        assert decision.context_type == "project"
        assert decision.allows(Action.READ)
        assert not decision.allows(Action.UPDATE)

    def test_product_uses_nearest_context(self, engine, org, project, task):
        user = make_user()
        ms = [membership("project", project.id, "member")]
        decision = engine.decide(user, ms, task)
        assert decision.context_type == "project"
        assert decision.allows(Action.UPDATE | Action.DELETE)

    def test_create_under_ancestor_context(self, engine, org, project):
        user = make_user()
        ms = [membership("organization", org.id, "member")]
        new_project = EntityContext("project", {"organization": org.id})
        assert engine.is_allowed(user, ms, Action.CREATE, new_project)

        new_task = EntityContext("task", {"project": project.id, "organization": org.id})
        assert not engine.is_allowed(user, ms, Action.CREATE, new_task)

    def test_label_member_cannot_delete(self, engine, org, project):
        user = make_user()
        ms = [membership("project", project.id, "member")]
        label = SimpleNamespace(entity_type="label", id=uuid.uuid4(), organization_id=org.id, project_id=project.id)
        assert engine.is_allowed(user, ms, Action.UPDATE, label)
        assert not engine.is_allowed(user, ms, Action.DELETE, label)


class TestSplitByPermission:
    def test_partitions_subjects(self, engine):
        user = make_user()
        mine = SimpleNamespace(entity_type="organization", id=uuid.uuid4())
        theirs = SimpleNamespace(entity_type="organization", id=uuid.uuid4())
        ms = [membership("organization", mine.id, "admin")]
        allowed, disallowed = engine.split_by_permission(user, ms, Action.DELETE, [mine, theirs])
        assert allowed == [mine]
        assert disallowed == [theirs]


class TestPolicyConfiguration:
    def test_rejects_unknown_role(self):
        def configure(subject, grant):
            grant("organization", "owner", Action.READ)

        with pytest.raises(HierarchyError, match="Unknown role"):
            configure_access_policies(hierarchy, configure)

    def test_rejects_context_outside_chain(self):
        def configure(subject, grant):
            if subject == "task":
                grant("workspace", "admin", Action.READ)

        with pytest.raises(HierarchyError):
            configure_access_policies(hierarchy, configure)


class TestEntityContext:
    def test_id_attributes_read_from_ids(self):
        org_id = uuid.uuid4()
        ctx = EntityContext("project", {"organization": org_id})
        assert ctx.organization_id == org_id
        assert ctx.project_id is None
        assert ctx.id is None
        assert not ctx.is_empty

    def test_other_attributes_raise(self):
        with pytest.raises(AttributeError):
            EntityContext("project").name
