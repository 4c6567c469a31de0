"""Tests for entity resolution, ancestor context building and cascading deletes."""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from app.core.errors import AppError
from app.models.membership import Membership
from app.models.task import Task
from app.services import entities
from app.services import tasks as task_service


class TestResolveEntity:
    async def test_id_and_slug_resolve_to_same_row(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner, slug="acme")

        by_id = await entities.resolve_entity(session, "organization", str(org.id))
        by_slug = await entities.resolve_entity(session, "organization", "acme")
        assert by_id is not None
        assert by_id.id == by_slug.id == org.id

    async def test_slug_is_case_insensitive(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner, slug="acme")
        found = await entities.resolve_entity(session, "organization", "ACME")
        assert found.id == org.id

    async def test_unknown_identifier_returns_none(self, session):
        assert await entities.resolve_entity(session, "organization", "nope") is None
        assert await entities.resolve_entity(session, "organization", str(uuid.uuid4())) is None

    async def test_slugless_type_needs_uuid(self, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)
        task = await task_service.create_task(session, project, {"summary": "Write docs"}, owner)
        await session.commit()

        assert (await entities.resolve_entity(session, "task", str(task.id))).id == task.id
        assert await entities.resolve_entity(session, "task", "write-docs") is None

    async def test_resolve_many_leaves_out_missing(self, session, make_user, make_org):
        owner = await make_user()
        first = await make_org(owner, slug="first")
        second = await make_org(owner, slug="second")

        found = await entities.resolve_many(session, "organization", [str(first.id), "second", "ghost"])
        assert {e.id for e in found} == {first.id, second.id}


class TestBuildContext:
    async def test_from_body(self, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)

        ctx = await entities.build_context(session, "task", {}, {}, {"projectId": str(project.id)})
        assert ctx is not None
        assert ctx.project_id == project.id
        assert ctx.organization_id == org.id
        assert ctx.entities["project"].id == project.id

    async def test_from_query_by_slug(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner, slug="acme")

        ctx = await entities.build_context(session, "project", {}, {"organizationId": "acme"}, None)
        assert ctx.organization_id == org.id

    async def test_path_takes_precedence(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner, slug="acme")
        await make_org(owner, slug="other")

        ctx = await entities.build_context(
            session, "project", {"organization": "acme"}, {"organization": "other"}, None
        )
        assert ctx.organization_id == org.id

    async def test_unresolved_identifier_returns_none(self, session):
        ctx = await entities.build_context(session, "project", {}, {}, {"organizationId": "ghost"})
        assert ctx is None

    async def test_no_identifier_gives_empty_context(self, session):
        ctx = await entities.build_context(session, "project", {}, {}, {"name": "Apollo"})
        assert ctx is not None
        assert ctx.is_empty

    async def test_load_ancestors(self, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)
        task = await task_service.create_task(session, project, {"summary": "One"}, owner)

        ancestors = await entities.load_ancestors(session, task)
        assert ancestors["project"].id == project.id
        assert ancestors["organization"].id == org.id


class TestMutations:
    async def test_duplicate_slug_conflicts(self, session, make_user, make_org):
        owner = await make_user()
        await make_org(owner, slug="acme")
        with pytest.raises(AppError) as exc_info:
            await entities.ensure_slug_available(session, "organization", "acme")
        assert exc_info.value.status == 409
        assert exc_info.value.type == "slug_exists"

    async def test_update_stamps_modifier(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        updated = await entities.update_entity(session, org, {"name": "Acme Corp"}, owner.id)
        assert updated.name == "Acme Corp"
        assert updated.modified_by == owner.id
        assert updated.modified_at is not None

    async def test_delete_organization_cascades(self, session_factory, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)
        parent = await task_service.create_task(session, project, {"summary": "Parent"}, owner)
        await task_service.create_task(session, project, {"summary": "Child"}, owner, parent_id=parent.id)
        await session.commit()

        affected = await entities.delete_entities(session, "organization", [org.id])
        await session.commit()
        assert affected == [owner.id]

        async with session_factory() as fresh:
            assert (await fresh.execute(select(Membership))).scalars().all() == []
            assert (await fresh.execute(select(Task))).scalars().all() == []
            assert await entities.resolve_entity(fresh, "project", str(project.id)) is None

    async def test_delete_task_removes_subtasks(self, session_factory, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)
        parent = await task_service.create_task(session, project, {"summary": "Parent"}, owner)
        await task_service.create_task(session, project, {"summary": "Child"}, owner, parent_id=parent.id)
        await session.commit()

        await entities.delete_entities(session, "task", [parent.id])
        await session.commit()

        async with session_factory() as fresh:
            assert (await fresh.execute(select(Task))).scalars().all() == []
