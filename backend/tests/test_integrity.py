"""Membership reconciliation and ownership continuity.

Users are deleted behind the registry's back; every group read must repair
the dangling references before anything else happens.
"""
import asyncio

import pytest

from groupwork.errors import ForbiddenError, NotFoundError
from groupwork.jobs import reconcile_groups
from groupwork.models.group import Group
from groupwork.models.message import GroupMessage
from groupwork.models.user import User
from groupwork.services import integrity, membership_service, message_service
from groupwork.services.integrity import (
    load_reconciled_group,
    reconcile_all_groups,
    reconcile_group,
)
from tests.conftest import create_test_group, create_test_user, make_user


def _delete_user(db, user_id):
    db.query(User).filter(User.user_id == user_id).delete()
    db.commit()


def _set_members(db, group_id, members):
    group = db.query(Group).filter(Group.group_id == group_id).one()
    group.members = members
    db.commit()


def _entry(user_id, role):
    return {"user_id": user_id, "role": role, "joined_at": "2026-01-01T00:00:00+00:00"}


class TestReconciliation:
    def test_deleted_creator_hands_ownership_to_remaining_member(self, db):
        """Members [U1 admin, U2 member]; U1 deleted -> U2 is the only member, admin and creator."""
        u1, u2 = make_user(db, "U One"), make_user(db, "U Two")
        u1_id, u2_id = u1.user_id, u2.user_id
        group = membership_service.create_group(db, "G", u1_id)
        membership_service.add_member(db, group.group_id, u1_id, u2.email)

        _delete_user(db, u1_id)
        group = load_reconciled_group(db, group.group_id)

        assert [(m["user_id"], m["role"]) for m in group.members] == [(u2_id, "admin")]
        assert group.creator_id == u2_id
        assert group.is_admin(u2_id)

    def test_first_admin_preferred_as_heir(self, db):
        creator, plain, deputy = make_user(db, "Creator"), make_user(db, "Plain"), make_user(db, "Deputy")
        group = membership_service.create_group(db, "G", creator.user_id)
        _set_members(db, group.group_id, [
            _entry(creator.user_id, "admin"),
            _entry(plain.user_id, "member"),
            _entry(deputy.user_id, "admin"),
        ])
        plain_id, deputy_id = plain.user_id, deputy.user_id

        _delete_user(db, creator.user_id)
        group = load_reconciled_group(db, group.group_id)

        assert group.creator_id == deputy_id
        assert {m["user_id"]: m["role"] for m in group.members} == {plain_id: "member", deputy_id: "admin"}

    def test_creator_without_admin_role_is_promoted(self, db):
        creator, member = make_user(db, "Creator"), make_user(db, "Member")
        group = membership_service.create_group(db, "G", creator.user_id)
        _set_members(db, group.group_id, [_entry(creator.user_id, "member"), _entry(member.user_id, "member")])

        group = db.query(Group).filter(Group.group_id == group.group_id).one()
        result = reconcile_group(db, group)
        db.commit()

        assert result.ownership_transferred is True
        assert result.members_removed == 0
        assert group.creator_id == creator.user_id
        assert group.is_admin(creator.user_id)

    def test_dangling_requests_and_duplicates_dropped(self, db):
        creator, member, gone = make_user(db, "Creator"), make_user(db, "Member"), make_user(db, "Gone")
        group = membership_service.create_group(db, "G", creator.user_id)
        membership_service.request_join(db, group.group_id, gone.user_id)
        row = db.query(Group).filter(Group.group_id == group.group_id).one()
        row.members = [*row.members, _entry(member.user_id, "member"), _entry(member.user_id, "member")]
        row.join_requests = [
            *row.join_requests,
            {"user_id": member.user_id, "message": "", "requested_at": "2026-01-01T00:00:00+00:00"},
        ]
        db.commit()
        _delete_user(db, gone.user_id)

        row = db.query(Group).filter(Group.group_id == group.group_id).one()
        result = reconcile_group(db, row)
        db.commit()

        assert result.members_removed == 1
        assert result.requests_removed == 2
        assert [m["user_id"] for m in row.members] == [creator.user_id, member.user_id]
        assert row.join_requests == []

    def test_group_with_no_valid_members_is_deleted(self, db):
        creator, other = make_user(db, "Creator"), make_user(db, "Other")
        group = membership_service.create_group(db, "Doomed", creator.user_id)
        group_id = group.group_id
        message_service.send_message(db, group_id, creator.user_id, "bye")
        other_id = other.user_id

        _delete_user(db, creator.user_id)
        with pytest.raises(NotFoundError):
            load_reconciled_group(db, group_id)

        assert db.query(Group).filter(Group.group_id == group_id).first() is None
        assert db.query(GroupMessage).filter(GroupMessage.group_id == group_id).count() == 0
        with pytest.raises(NotFoundError):
            membership_service.request_join(db, group_id, other_id)

    def test_group_that_gains_a_member_mid_repair_survives(self, db, session_factory, monkeypatch):
        """The empty-group delete is versioned: a member added meanwhile keeps the group alive."""
        owner, newcomer = make_user(db, "Owner"), make_user(db, "Newcomer")
        owner_id, newcomer_id = owner.user_id, newcomer.user_id
        group = membership_service.create_group(db, "Phoenix", owner_id)
        group_id = group.group_id
        message_service.send_message(db, group_id, owner_id, "hello")
        _delete_user(db, owner_id)

        real_lookup = integrity.existing_user_ids
        calls = []

        def _lookup_then_join(session, user_ids):
            found = real_lookup(session, user_ids)
            if not calls:
                with session_factory() as other:
                    row = other.query(Group).filter(Group.group_id == group_id).one()
                    row.members = [*row.members, _entry(newcomer_id, "member")]
                    other.commit()
            calls.append(user_ids)
            return found

        monkeypatch.setattr(integrity, "existing_user_ids", _lookup_then_join)

        group = load_reconciled_group(db, group_id)

        assert len(calls) == 2
        assert [(m["user_id"], m["role"]) for m in group.members] == [(newcomer_id, "admin")]
        assert group.creator_id == newcomer_id
        assert db.query(GroupMessage).filter(GroupMessage.group_id == group_id).count() == 1

    def test_reconciliation_is_idempotent(self, db):
        u1, u2 = make_user(db, "U One"), make_user(db, "U Two")
        group = membership_service.create_group(db, "G", u1.user_id)
        membership_service.add_member(db, group.group_id, u1.user_id, u2.email)
        _delete_user(db, u1.user_id)

        first = load_reconciled_group(db, group.group_id)
        members, creator_id, version = list(first.members), first.creator_id, first.version

        group = db.query(Group).filter(Group.group_id == group.group_id).one()
        result = reconcile_group(db, group)
        assert result.changed is False
        assert not db.dirty
        db.commit()

        again = load_reconciled_group(db, group.group_id)
        assert again.members == members
        assert again.creator_id == creator_id
        assert again.version == version

    def test_stale_member_grants_no_access(self, db):
        """Authorization runs on the reconciled member list."""
        owner, ghost = make_user(db, "Owner"), make_user(db, "Ghost")
        group = membership_service.create_group(db, "G", owner.user_id)
        membership_service.add_member(db, group.group_id, owner.user_id, ghost.email)
        ghost_id = ghost.user_id
        _delete_user(db, ghost_id)

        with pytest.raises(ForbiddenError):
            membership_service.get_group_details(db, group.group_id, ghost_id)
        assert not load_reconciled_group(db, group.group_id).is_member(ghost_id)


class TestSweep:
    def _populate(self, db):
        keeper, leaver, loner = make_user(db, "Keeper"), make_user(db, "Leaver"), make_user(db, "Loner")
        clean = membership_service.create_group(db, "Clean", keeper.user_id)
        shared = membership_service.create_group(db, "Shared", leaver.user_id)
        membership_service.add_member(db, shared.group_id, leaver.user_id, keeper.email)
        lonely = membership_service.create_group(db, "Lonely", loner.user_id)
        ids = {"clean": clean.group_id, "shared": shared.group_id, "lonely": lonely.group_id, "keeper": keeper.user_id}
        _delete_user(db, leaver.user_id)
        _delete_user(db, loner.user_id)
        return ids

    def test_sweep_summary(self, db):
        ids = self._populate(db)

        summary = reconcile_all_groups(db)

        assert summary["groups_checked"] == 3
        assert summary["groups_updated"] == 1
        assert summary["groups_deleted"] == 1
        assert summary["members_removed"] == 2
        assert summary["ownership_transfers"] == 1
        assert summary["groups_failed"] == 0
        shared = db.query(Group).filter(Group.group_id == ids["shared"]).one()
        assert shared.creator_id == ids["keeper"]
        assert db.query(Group).filter(Group.group_id == ids["lonely"]).first() is None

        # A second sweep finds nothing to do
        summary = reconcile_all_groups(db)
        assert summary["groups_checked"] == 2
        assert summary["groups_updated"] == 0
        assert summary["groups_deleted"] == 0

    def test_reconcile_once_uses_fresh_session(self, db, session_factory, monkeypatch):
        self._populate(db)
        monkeypatch.setattr(reconcile_groups, "SessionLocal", session_factory)

        summary = reconcile_groups.reconcile_once()

        assert summary["groups_deleted"] == 1
        assert summary["groups_updated"] == 1

    def test_periodic_sweep_task_is_retained(self, monkeypatch):
        monkeypatch.setattr(reconcile_groups, "_sweep_task", None)

        async def _start_twice():
            reconcile_groups.start_reconcile_loop()
            task = reconcile_groups._sweep_task
            assert task is not None
            assert not task.done()
            reconcile_groups.start_reconcile_loop()
            assert reconcile_groups._sweep_task is task
            task.cancel()

        asyncio.run(_start_twice())

    def test_periodic_sweep_needs_running_loop(self, monkeypatch):
        monkeypatch.setattr(reconcile_groups, "_sweep_task", None)
        reconcile_groups.start_reconcile_loop()
        assert reconcile_groups._sweep_task is None


class TestReconciliationViaApi:
    def test_deleted_user_disappears_from_group(self, client):
        owner = create_test_user(client, name="Owner")
        member = create_test_user(client, name="Member")
        group = create_test_group(client, creator_id=owner["user_id"])
        client.post(
            f"/api/groups/{group['group_id']}/members",
            params={"actor_id": owner["user_id"]},
            json={"email_or_student_id": member["email"]},
        )

        assert client.delete(f"/api/users/{owner['user_id']}").status_code == 204

        resp = client.get(f"/api/groups/{group['group_id']}", params={"actor_id": member["user_id"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["creator_id"] == member["user_id"]
        assert body["creator_name"] == "Member"
        assert [(m["user_id"], m["role"]) for m in body["members"]] == [(member["user_id"], "admin")]
