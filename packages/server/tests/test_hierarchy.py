"""
Tests for the static entity hierarchy registry.
"""

from __future__ import annotations

import uuid

import pytest

from app.core.hierarchy import (
    ContextRef,
    EntityConfig,
    EntityHierarchy,
    HierarchyError,
    context_ids,
    context_ref_for,
    hierarchy,
)
from app.models.organization import Organization
from app.models.project import Project
from app.models.task import Task
from app.models.user import User


class TestRegistry:
    def test_ancestors_nearest_first(self):
        assert hierarchy.ancestors("task") == ["project", "organization"]
        assert hierarchy.ancestors("project") == ["organization"]
        assert hierarchy.ancestors("organization") == []

    def test_ordered_contexts(self):
        assert hierarchy.ordered_contexts("project") == ["project", "organization"]
        assert hierarchy.ordered_contexts("task") == ["project", "organization"]
        assert hierarchy.ordered_contexts("organization") == ["organization"]

    def test_kinds(self):
        assert hierarchy.is_context("workspace")
        assert not hierarchy.is_context("task")
        assert hierarchy.is_product("label")
        assert not hierarchy.is_product("user")
        assert hierarchy.context_types == ["organization", "workspace", "project"]

    def test_roles_and_id_field(self):
        assert hierarchy.roles_for("organization") == ("admin", "member")
        assert hierarchy.id_field("project") == "project_id"

    def test_unknown_type_raises(self):
        with pytest.raises(HierarchyError):
            hierarchy.get("galaxy")


class TestBuildValidation:
    def test_rejects_duplicates(self):
        with pytest.raises(HierarchyError, match="Duplicate"):
            EntityHierarchy.build(
                EntityConfig("organization", "context", Organization, roles=("admin",)),
                EntityConfig("organization", "context", Organization, roles=("admin",)),
            )

    def test_requires_organization(self):
        with pytest.raises(HierarchyError):
            EntityHierarchy.build(EntityConfig("user", "user", User))

    def test_rejects_unknown_parent(self):
        with pytest.raises(HierarchyError, match="unknown parent"):
            EntityHierarchy.build(
                EntityConfig("organization", "context", Organization, roles=("admin",)),
                EntityConfig("project", "context", Project, parent="team", roles=("admin",)),
            )

    def test_rejects_product_parent(self):
        with pytest.raises(HierarchyError, match="not a context"):
            EntityHierarchy.build(
                EntityConfig("organization", "context", Organization, roles=("admin",)),
                EntityConfig("project", "context", Project, parent="organization", roles=("admin",)),
                EntityConfig("task", "product", Task, parent="project", has_slug=False),
                EntityConfig("subtask", "product", Task, parent="task", has_slug=False),
            )


class TestContextRefs:
    def test_context_ref_for_context_row(self):
        org = Organization(name="Acme", slug="acme")
        assert context_ref_for(org) == ContextRef("organization", org.id)

    def test_context_ref_rejects_products(self):
        task = Task(organization_id=uuid.uuid4(), project_id=uuid.uuid4(), summary="x")
        with pytest.raises(HierarchyError):
            context_ref_for(task)

    def test_context_ids_walks_ancestors(self):
        org_id = uuid.uuid4()
        project = Project(name="Apollo", slug="apollo", organization_id=org_id)
        assert context_ids(project) == {"project": project.id, "organization": org_id}

        task = Task(organization_id=org_id, project_id=project.id, summary="x")
        assert context_ids(task) == {"project": project.id, "organization": org_id}
