# Overview: Pytest coverage for internal messages and leave requests.

from datetime import date

import pytest
from backoffice.extensions import db
from backoffice.models import Message
from backoffice.services import correspondence_service as cs
from backoffice.services.correspondence_service import CorrespondenceError, CorrespondenceNotFoundError


class TestMessages:

    def test_direct_message_folders(self, db_session, manager_a, employee_a):
        [msg] = cs.send_message(sender=manager_a, subject="Shift", content="Cover Friday?",
                                receiver_ids=[employee_a.id])

        assert [m.id for m in cs.inbox(employee_a)] == [msg.id]
        assert [m.id for m in cs.sent(manager_a)] == [msg.id]
        assert cs.inbox(manager_a) == []

    def test_one_row_per_recipient(self, db_session, manager_a, employee_a, supervisor_a):
        created = cs.send_message(sender=manager_a, subject="Hi", content="Team",
                                  receiver_ids=[employee_a.id, supervisor_a.id, employee_a.id])
        assert len(created) == 2

    def test_role_and_broadcast_addressing(self, db_session, admin, employee_a, employee_b, supervisor_a):
        cs.send_message(sender=admin, subject="Employees", content="x", receiver_role="employee")
        cs.send_message(sender=admin, subject="Everyone", content="y", is_broadcast=True)
        cs.send_message(sender=admin, subject="All roles", content="z", receiver_role="all")

        assert {m.subject for m in cs.inbox(employee_b)} == {"Employees", "Everyone", "All roles"}
        assert {m.subject for m in cs.inbox(supervisor_a)} == {"Everyone", "All roles"}
        assert cs.inbox(admin) == []

    @pytest.mark.parametrize("kwargs", [
        {"subject": "", "content": "x", "receiver_role": "all"},
        {"subject": "x", "content": "x"},
        {"subject": "x", "content": "x", "receiver_role": "wizard"},
    ])
    def test_invalid_messages(self, db_session, admin, kwargs):
        with pytest.raises(CorrespondenceError):
            cs.send_message(sender=admin, **kwargs)

    def test_archive_trash_restore_purge(self, db_session, manager_a, employee_a):
        [msg] = cs.send_message(sender=manager_a, subject="S", content="C", receiver_ids=[employee_a.id])

        cs.set_archived(employee_a, msg.id, True)
        assert cs.inbox(employee_a) == []
        assert [m.id for m in cs.archived(employee_a)] == [msg.id]

        with pytest.raises(CorrespondenceError):
            cs.purge(employee_a, msg.id)

        cs.move_to_trash(employee_a, msg.id)
        assert [m.id for m in cs.trash(employee_a)] == [msg.id]
        cs.restore(employee_a, msg.id)
        assert cs.trash(employee_a) == []

        cs.move_to_trash(employee_a, msg.id)
        cs.purge(employee_a, msg.id)
        assert db.session.get(Message, msg.id) is None

    def test_empty_trash(self, db_session, manager_a, employee_a):
        for i in range(3):
            [msg] = cs.send_message(sender=manager_a, subject=f"S{i}", content="C", receiver_ids=[employee_a.id])
            cs.move_to_trash(employee_a, msg.id)
        assert cs.empty_trash(employee_a) == 3
        assert cs.trash(employee_a) == []

    def test_strangers_cannot_touch_message(self, db_session, manager_a, employee_a, employee_b):
        [msg] = cs.send_message(sender=manager_a, subject="S", content="C", receiver_ids=[employee_a.id])
        with pytest.raises(CorrespondenceNotFoundError):
            cs.move_to_trash(employee_b, msg.id)
        with pytest.raises(CorrespondenceNotFoundError):
            cs.mark_read(employee_b, msg.id)

    def test_mark_read(self, db_session, manager_a, employee_a):
        [msg] = cs.send_message(sender=manager_a, subject="S", content="C", receiver_ids=[employee_a.id])
        assert cs.mark_read(employee_a, msg.id).is_read is True


class TestLeaveRequests:

    def _submit(self, user, **overrides):
        data = dict(
            user=user,
            leave_type="sick",
            start_date=date(2024, 6, 1),
            end_date=date(2024, 6, 3),
            reason="Flu",
        )
        data.update(overrides)
        return cs.submit_leave(**data)

    def test_routed_to_senior_same_branch(self, db_session, employee_a, supervisor_a, manager_a, manager_b, admin):
        req = self._submit(employee_a)

        assert [r.id for r in cs.incoming_leave_requests(supervisor_a)] == [req.id]
        assert [r.id for r in cs.incoming_leave_requests(manager_a)] == [req.id]
        assert [r.id for r in cs.incoming_leave_requests(admin)] == [req.id]
        assert cs.incoming_leave_requests(manager_b) == []
        assert cs.incoming_leave_requests(employee_a) == []

    def test_target_role_narrows_routing(self, db_session, employee_a, supervisor_a, manager_a):
        req = self._submit(employee_a, target_role="branch_manager")
        assert cs.incoming_leave_requests(supervisor_a) == []
        assert [r.id for r in cs.incoming_leave_requests(manager_a)] == [req.id]

    def test_peer_cannot_decide(self, db_session, supervisor_a, branch_a):
        from conftest import make_user
        peer = make_user("supervisor_a2", "supervisor", branch_a.id)
        req = self._submit(supervisor_a)
        with pytest.raises(CorrespondenceNotFoundError):
            cs.decide_leave(manager=peer, request_id=req.id, status="approved")

    def test_approve(self, db_session, employee_a, manager_a):
        req = self._submit(employee_a)
        decided = cs.decide_leave(manager=manager_a, request_id=req.id, status="approved")
        assert decided.status == "approved"
        assert decided.decided_by_user_id == manager_a.id
        assert cs.incoming_leave_requests(manager_a) == []

    def test_reject_requires_note_and_notifies(self, db_session, employee_a, manager_a):
        req = self._submit(employee_a)
        with pytest.raises(CorrespondenceError):
            cs.decide_leave(manager=manager_a, request_id=req.id, status="rejected")

        cs.decide_leave(manager=manager_a, request_id=req.id, status="rejected", rejection_note="Stocktake week")

        inbox = cs.inbox(employee_a)
        assert len(inbox) == 1
        assert "Stocktake week" in inbox[0].content

    @pytest.mark.parametrize("overrides", [
        {"leave_type": "vacation"},
        {"end_date": date(2024, 5, 1)},
        {"reason": " "},
        {"start_date": None},
        {"target_role": "captain"},
    ])
    def test_invalid_submissions(self, db_session, employee_a, overrides):
        with pytest.raises(CorrespondenceError):
            self._submit(employee_a, **overrides)

    def test_own_requests_archive_and_trash(self, db_session, employee_a, employee_b):
        req = self._submit(employee_a)
        assert [r.id for r in cs.my_leave_requests(employee_a)] == [req.id]

        with pytest.raises(CorrespondenceNotFoundError):
            cs.trash_leave(employee_b, req.id)

        cs.set_leave_archived(employee_a, req.id, True)
        cs.trash_leave(employee_a, req.id)
        assert cs.my_leave_requests(employee_a) == []
