"""Tests for the membership store."""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from app.core.errors import AppError
from app.core.hierarchy import ContextRef
from app.models.membership import Membership
from app.services import memberships as membership_store


def ref(entity) -> ContextRef:
    return ContextRef(entity.entity_type, entity.id)


class TestCreate:
    async def test_creator_is_admin(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)

        membership = await membership_store.find(session, owner.id, ref(org))
        assert membership is not None
        assert membership.role == "admin"
        assert membership.is_active
        assert membership.organization_id == org.id

    async def test_existing_membership_is_returned(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)

        membership, created = await membership_store.create(session, owner.id, org, "member")
        assert not created
        assert membership.role == "admin"

        result = await session.execute(select(Membership).where(Membership.user_id == owner.id))
        assert len(result.scalars().all()) == 1

    async def test_unknown_role_rejected(self, session, make_user, make_org):
        owner = await make_user()
        other = await make_user()
        org = await make_org(owner)
        with pytest.raises(AppError) as exc_info:
            await membership_store.create(session, other.id, org, "owner")
        assert exc_info.value.status == 400

    async def test_project_membership_carries_ancestors(self, session, make_user, make_org, make_project):
        owner = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)

        membership = await membership_store.find(session, owner.id, ref(project))
        assert membership.organization_id == org.id
        assert membership.project_id == project.id
        assert membership.context_id == project.id

    async def test_order_follows_last_membership(self, session, make_user, make_org):
        owner = await make_user()
        first = await make_org(owner, slug="first")
        second = await make_org(owner, slug="second")

        a = await membership_store.find(session, owner.id, ref(first))
        b = await membership_store.find(session, owner.id, ref(second))
        assert b.order == a.order + 10


class TestCounts:
    async def test_new_organization(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        assert await membership_store.counts(session, ref(org)) == {"admins": 1, "members": 1, "pending": 0}

    async def test_pending_memberships_not_counted(self, session, make_user, make_org):
        owner = await make_user()
        invitee = await make_user()
        org = await make_org(owner)
        await membership_store.create(session, invitee.id, org, "member", active=False)

        counts = await membership_store.counts(session, ref(org))
        assert counts["members"] == 1
        assert await membership_store.list_for_user(session, invitee.id) == []
        assert len(await membership_store.list_for_user(session, invitee.id, active_only=False)) == 1


class TestUpdate:
    async def test_last_admin_cannot_be_demoted(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        membership = await membership_store.find(session, owner.id, ref(org))

        with pytest.raises(AppError) as exc_info:
            await membership_store.update(session, membership, {"role": "member"}, owner.id)
        assert exc_info.value.status == 409
        assert exc_info.value.type == "last_admin"

    async def test_demote_with_second_admin(self, session, make_user, make_org):
        owner = await make_user()
        other = await make_user()
        org = await make_org(owner)
        await membership_store.create(session, other.id, org, "admin")

        membership = await membership_store.find(session, owner.id, ref(org))
        updated = await membership_store.update(session, membership, {"role": "member"}, owner.id)
        assert updated.role == "member"
        assert updated.modified_by == owner.id

    async def test_archive_moves_to_end_of_archived(self, session, make_user, make_org):
        owner = await make_user()
        first = await make_org(owner, slug="first")
        await make_org(owner, slug="second")

        membership = await membership_store.find(session, owner.id, ref(first))
        updated = await membership_store.update(session, membership, {"archived": True}, owner.id)
        assert updated.archived
        assert updated.order == 10

    async def test_mute_and_order(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        membership = await membership_store.find(session, owner.id, ref(org))

        updated = await membership_store.update(session, membership, {"muted": True, "order": 3.5}, owner.id)
        assert updated.muted
        assert updated.order == 3.5


class TestDelete:
    async def test_delete_reports_missing(self, session, make_user, make_org):
        owner = await make_user()
        member = await make_user()
        org = await make_org(owner)
        await membership_store.create(session, member.id, org, "member")

        stranger = uuid.uuid4()
        deleted, missing = await membership_store.delete_for_context(session, ref(org), [member.id, stranger])
        assert [m.user_id for m in deleted] == [member.id]
        assert missing == [stranger]
        assert await membership_store.find(session, member.id, ref(org)) is None

    async def test_last_admin_cannot_leave(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        with pytest.raises(AppError) as exc_info:
            await membership_store.delete_for_context(session, ref(org), [owner.id])
        assert exc_info.value.type == "last_admin"

    async def test_leaving_organization_ends_child_memberships(
        self, session, make_user, make_org, make_project
    ):
        owner = await make_user()
        member = await make_user()
        org = await make_org(owner)
        project = await make_project(owner, org)
        await membership_store.create(session, member.id, org, "member")
        await membership_store.create(session, member.id, project, "member")

        await membership_store.delete_for_context(session, ref(org), [member.id])
        assert await membership_store.list_for_user(session, member.id, active_only=False) == []
        # the owner keeps both
        assert len(await membership_store.list_for_user(session, owner.id)) == 2

    async def test_leaving_organization_keeps_child_admin(self, session, make_user, make_org, make_project):
        owner = await make_user()
        member = await make_user()
        org = await make_org(owner)
        await membership_store.create(session, member.id, org, "member")
        project = await make_project(member, org)

        with pytest.raises(AppError) as exc_info:
            await membership_store.delete_for_context(session, ref(org), [member.id])
        assert exc_info.value.status == 409
        assert exc_info.value.type == "last_admin"
        assert exc_info.value.entity_type == "project"
        assert (await membership_store.counts(session, ref(project)))["admins"] == 1

    async def test_leaving_organization_with_co_admin_on_child(
        self, session, make_user, make_org, make_project
    ):
        owner = await make_user()
        member = await make_user()
        org = await make_org(owner)
        await membership_store.create(session, member.id, org, "member")
        project = await make_project(member, org)
        await membership_store.create(session, owner.id, project, "admin")

        await membership_store.delete_for_context(session, ref(org), [member.id])
        assert await membership_store.find(session, member.id, ref(project)) is None
        assert (await membership_store.counts(session, ref(project)))["admins"] == 1
