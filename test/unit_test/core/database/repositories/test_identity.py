"""Unit tests for the user and membership repositories."""

from __future__ import annotations

import pytest

from edify_ai.core.database.entities import OrgMember, User
from edify_ai.core.database.repositories import OrgMemberRepository, UserRepository

pytestmark = pytest.mark.asyncio


class TestUserRepository:
    """Tests for user lookups."""

    async def test_lookups(self, in_memory_session):
        repository = UserRepository(in_memory_session)
        await repository.create(User(id="u1", email="a@school.test"))
        await repository.create(User(id="u2", email="b@school.test"))

        assert (await repository.get_by_email("b@school.test")).id == "u2"
        assert await repository.get_by_email("nobody@school.test") is None

    async def test_get_many(self, in_memory_session):
        repository = UserRepository(in_memory_session)
        await repository.create(User(id="u1"))
        await repository.create(User(id="u2"))

        users = await repository.get_many(["u1", "u1", "missing"])

        assert list(users) == ["u1"]
        assert await repository.get_many([]) == {}

    async def test_delete(self, in_memory_session):
        repository = UserRepository(in_memory_session)
        await repository.create(User(id="u1"))

        assert await repository.delete("u1") is True
        assert await repository.delete("u1") is False


class TestOrgMemberRepository:
    """Tests for membership queries."""

    async def test_member_ids(self, in_memory_session):
        repository = OrgMemberRepository(in_memory_session)
        await repository.create(OrgMember(org_id="org_1", user_id="u1"))
        await repository.create(OrgMember(org_id="org_1", user_id="u2"))
        await repository.create(OrgMember(org_id="org_2", user_id="u3"))

        assert sorted(await repository.member_ids("org_1")) == ["u1", "u2"]

    async def test_upsert_membership_changes_role(self, in_memory_session):
        repository = OrgMemberRepository(in_memory_session)

        await repository.upsert_membership("org_1", "u1", "org:educator")
        member = await repository.upsert_membership("org_1", "u1", "org:moderator")

        assert member.role == "org:moderator"
        assert await repository.count() == 1

    async def test_list_with_filters(self, in_memory_session):
        repository = OrgMemberRepository(in_memory_session)
        await repository.create(OrgMember(org_id="org_1", user_id="u1", role="org:admin"))
        await repository.create(OrgMember(org_id="org_1", user_id="u2"))

        admins = await repository.list(filters={"org_id": "org_1", "role": "org:admin", "unknown": "x"})

        assert [m.user_id for m in admins] == ["u1"]
