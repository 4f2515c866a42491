"""Optimistic concurrency on the group and submission aggregates.

A competing write is injected from a second session right before the first
session flushes, so the first session's versioned UPDATE (or INSERT) always
loses the race and has to re-run on fresh state.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import event

from groupwork.errors import CapacityExceededError, ConflictError
from groupwork.models.assignment import Assignment
from groupwork.models.group import Group
from groupwork.models.submission import Submission
from groupwork.services import membership_service, submission_service
from groupwork.services.concurrency import run_optimistic
from tests.conftest import make_user, stored_files, upload


def _compete_on_next_flush(session, competing_write):
    @event.listens_for(session, "before_flush", once=True)
    def _race(session, flush_context, instances):
        competing_write()


def _fresh_group(session_factory, group_id):
    with session_factory() as s:
        group = s.query(Group).filter(Group.group_id == group_id).one()
        return {
            "members": {m["user_id"]: m["role"] for m in group.members},
            "requests": [r["user_id"] for r in group.join_requests],
            "version": group.version,
        }


class TestGroupRaces:
    def test_approve_and_add_race_for_last_seat(self, db, session_factory):
        """Capacity 2, one member, one queued request: approve and add race; exactly one wins."""
        admin, queued, direct = make_user(db, "Admin"), make_user(db, "Queued"), make_user(db, "Direct")
        admin_id, queued_id, direct_email, direct_id = admin.user_id, queued.user_id, direct.email, direct.user_id
        group = membership_service.create_group(db, "Tight", admin_id, max_members=2)
        group_id = group.group_id
        membership_service.request_join(db, group_id, queued_id)

        other = session_factory()
        _compete_on_next_flush(db, lambda: membership_service.add_member(other, group_id, admin_id, direct_email))

        with pytest.raises(CapacityExceededError):
            membership_service.approve_join_request(db, group_id, admin_id, queued_id)
        other.close()

        state = _fresh_group(session_factory, group_id)
        assert state["members"] == {admin_id: "admin", direct_id: "member"}
        assert state["requests"] == [queued_id]

    def test_concurrent_approvals_do_not_lose_updates(self, db, session_factory):
        admin, first, second = make_user(db, "Admin"), make_user(db, "First"), make_user(db, "Second")
        admin_id, first_id, second_id = admin.user_id, first.user_id, second.user_id
        group = membership_service.create_group(db, "Roomy", admin_id, max_members=5)
        group_id = group.group_id
        membership_service.request_join(db, group_id, first_id)
        membership_service.request_join(db, group_id, second_id)

        other = session_factory()
        _compete_on_next_flush(
            db, lambda: membership_service.approve_join_request(other, group_id, admin_id, second_id)
        )

        membership_service.approve_join_request(db, group_id, admin_id, first_id)
        other.close()

        state = _fresh_group(session_factory, group_id)
        assert state["members"] == {admin_id: "admin", first_id: "member", second_id: "member"}
        assert state["requests"] == []

    def test_retries_exhausted_become_conflict(self, db, session_factory, monkeypatch):
        monkeypatch.setattr("groupwork.services.concurrency.settings.OPTIMISTIC_RETRIES", 2)
        admin = make_user(db, "Admin")
        admin_id = admin.user_id
        group = membership_service.create_group(db, "Busy", admin_id)
        group_id = group.group_id
        others = []

        def _touch_elsewhere():
            other = session_factory()
            others.append(other)
            row = other.query(Group).filter(Group.group_id == group_id).one()
            row.description = f"edit {len(others)}"
            other.commit()

        def _edit():
            # Re-arm the competitor for every attempt
            _compete_on_next_flush(db, _touch_elsewhere)
            row = db.query(Group).filter(Group.group_id == group_id).one()
            row.name = "Renamed"
            return row

        with pytest.raises(ConflictError):
            run_optimistic(db, _edit)
        for other in others:
            other.close()
        assert len(others) == 2


class TestSubmissionRaces:
    def test_concurrent_first_submissions_create_one_row(self, db, session_factory, storage):
        student = make_user(db, "Student")
        student_id = student.user_id
        group = membership_service.create_group(db, "Team", student_id)
        group_id = group.group_id
        assignment = Assignment(
            title="Lab 1", due_date=datetime.now(timezone.utc), created_by=student_id, is_for_all=True
        )
        db.add(assignment)
        db.commit()
        assignment_id = assignment.assignment_id

        other = session_factory()
        _compete_on_next_flush(
            db,
            lambda: submission_service.submit(
                other, storage, assignment_id, group_id, student_id, [upload("theirs.pdf")], "theirs"
            ),
        )

        submission, created = submission_service.submit(
            db, storage, assignment_id, group_id, student_id, [upload("mine.pdf")], "mine"
        )
        other.close()

        assert created is False
        assert db.query(Submission).filter(Submission.assignment_id == assignment_id).count() == 1
        assert submission.submission_notes == "mine"
        assert [f["original_name"] for f in submission.files] == ["mine.pdf"]
        # The losing insert's files were replaced by the update and released
        assert [p.name for p in stored_files(storage)] == [submission.files[0]["filename"]]
