# Overview: Pytest coverage for staff accounts, staff payments and branches.

import random

import pytest
from backoffice.extensions import db
from backoffice.models import SessionToken, TreasuryLog
from backoffice.services import branch_service, staff_service, session_service
from backoffice.services.auth_service import authenticate, InvalidCredentialsError
from backoffice.services.branch_service import BranchError, BranchInUseError, BranchNotFoundError
from backoffice.services.staff_service import StaffError, StaffNotFoundError
from backoffice.validation import ValidationError


class TestUsernames:

    @pytest.mark.parametrize("role,prefix", [
        ("admin", "A-"),
        ("general_manager", "A-"),
        ("it_support", "A-"),
        ("branch_manager", "S-"),
        ("supervisor", "S-"),
        ("employee", "E-"),
    ])
    def test_prefix_by_role(self, role, prefix):
        assert staff_service.username_prefix(role) == prefix

    def test_generated_username_format(self, db_session):
        username = staff_service.generate_username("employee", random.Random(7))
        assert username.startswith("E-")
        assert len(username) == 8 and username[2:].isdigit()


class TestStaffAccounts:

    def test_create_returns_working_temporary_password(self, db_session, admin, branch_a):
        user, temporary = staff_service.create_user(
            role="supervisor", full_name="Sara Haddad", branch_id=branch_a.id, salary_cents=250_000, actor=admin
        )
        assert user.username.startswith("S-")
        assert user.password_hash != temporary
        assert authenticate(user.username, temporary).id == user.id

    def test_cannot_assign_more_senior_role(self, db_session, manager_a):
        with pytest.raises(StaffError):
            staff_service.create_user(role="admin", full_name="Sneaky", actor=manager_a)

    def test_unknown_role_and_branch(self, db_session, admin):
        with pytest.raises(StaffError):
            staff_service.create_user(role="janitor", full_name="X", actor=admin)
        with pytest.raises(StaffError):
            staff_service.create_user(role="employee", full_name="X", branch_id=987654, actor=admin)

    def test_blank_name_rejected(self, db_session, admin):
        with pytest.raises(ValidationError):
            staff_service.create_user(role="employee", full_name="  ", actor=admin)

    def test_list_staff_scoped_to_branch(self, db_session, admin, manager_a, employee_a, employee_b):
        assert {u.id for u in staff_service.list_staff(manager_a)} == {manager_a.id, employee_a.id}
        assert {u.id for u in staff_service.list_staff(admin)} >= {manager_a.id, employee_a.id, employee_b.id}

    def test_role_change(self, db_session, admin, employee_a):
        staff_service.update_role(employee_a.id, "supervisor", actor=admin)
        assert employee_a.role == "supervisor"

    def test_cannot_change_own_role(self, db_session, admin):
        with pytest.raises(StaffError):
            staff_service.update_role(admin.id, "employee", actor=admin)

    def test_update_profile_allowlist(self, db_session, admin, employee_a):
        staff_service.update_profile(employee_a.id, {"phone_number": "0500", "salary_cents": 1000}, actor=admin)
        assert employee_a.phone_number == "0500"
        with pytest.raises(ValidationError):
            staff_service.update_profile(employee_a.id, {"role": "admin"}, actor=admin)

    def test_transfer(self, db_session, admin, employee_a, branch_b):
        staff_service.transfer(employee_a.id, branch_b.id, actor=admin)
        assert employee_a.branch_id == branch_b.id

    def test_delete_revokes_sessions_and_blocks_login(self, db_session, admin, employee_a):
        _, token = session_service.create_session(employee_a.id)

        staff_service.delete_user(employee_a.id, "left the company", actor=admin)

        assert session_service.validate_session(token) is None
        assert db.session.query(SessionToken).filter_by(user_id=employee_a.id, revoked_at=None).count() == 0
        with pytest.raises(InvalidCredentialsError):
            authenticate(employee_a.username, "Password123!")

    def test_cannot_delete_self(self, db_session, admin):
        with pytest.raises(StaffError):
            staff_service.delete_user(admin.id, "bye", actor=admin)

    def test_reset_password(self, db_session, admin, employee_a):
        _, token = session_service.create_session(employee_a.id)
        user, temporary = staff_service.reset_password(employee_a.id, actor=admin)

        assert session_service.validate_session(token) is None
        assert authenticate(user.username, temporary).id == employee_a.id


class TestStaffPayments:

    def test_salary_paid_from_staff_branch(self, db_session, manager_a, employee_a):
        payment = staff_service.record_staff_payment(
            staff_id=employee_a.id, amount_cents=150_000, payment_type="salary", actor=manager_a
        )
        log = db.session.query(TreasuryLog).filter_by(source="staff_payment").one()
        assert (log.type, log.amount_cents, log.branch_id) == ("out", 150_000, employee_a.branch_id)
        assert log.reference_id == str(payment.id)

    def test_deduction_moves_no_cash(self, db_session, manager_a, employee_a):
        staff_service.record_staff_payment(
            staff_id=employee_a.id, amount_cents=5_000, payment_type="deduction", actor=manager_a
        )
        assert db.session.query(TreasuryLog).count() == 0

    def test_invalid_type_and_amount(self, db_session, manager_a, employee_a):
        with pytest.raises(ValidationError):
            staff_service.record_staff_payment(
                staff_id=employee_a.id, amount_cents=100, payment_type="gift", actor=manager_a
            )
        with pytest.raises(ValidationError):
            staff_service.record_staff_payment(
                staff_id=employee_a.id, amount_cents=0, payment_type="bonus", actor=manager_a
            )

    def test_cannot_pay_other_branch_staff(self, db_session, manager_a, employee_b):
        with pytest.raises(StaffNotFoundError):
            staff_service.record_staff_payment(
                staff_id=employee_b.id, amount_cents=100, payment_type="bonus", actor=manager_a
            )

    def test_list_is_branch_filtered(self, db_session, admin, manager_a, manager_b, employee_a, employee_b):
        staff_service.record_staff_payment(staff_id=employee_a.id, amount_cents=100, payment_type="bonus", actor=admin)
        staff_service.record_staff_payment(staff_id=employee_b.id, amount_cents=200, payment_type="bonus", actor=admin)

        assert [p.amount_cents for p in staff_service.list_staff_payments(manager_a)] == [100]
        assert [p.amount_cents for p in staff_service.list_staff_payments(manager_b)] == [200]
        assert len(staff_service.list_staff_payments(admin)) == 2


class TestBranches:

    def test_create_and_duplicate_name(self, db_session, admin):
        branch = branch_service.create_branch("Harbour", location="Pier 3", actor=admin)
        assert branch.status == "active"
        with pytest.raises(BranchError):
            branch_service.create_branch("Harbour", actor=admin)

    def test_blank_name_rejected(self, db_session, admin):
        with pytest.raises(BranchError):
            branch_service.create_branch("   ", actor=admin)

    def test_update_and_status(self, db_session, admin, branch_a):
        branch_service.update_branch(branch_a.id, {"phone": "011-222"}, actor=admin)
        branch_service.set_branch_status(branch_a.id, "closed_temp", actor=admin)
        assert branch_a.phone == "011-222"
        assert branch_a.status == "closed_temp"

        with pytest.raises(BranchError):
            branch_service.set_branch_status(branch_a.id, "demolished", actor=admin)

    def test_delete_refused_while_staffed(self, db_session, admin, branch_a, employee_a):
        with pytest.raises(BranchInUseError):
            branch_service.delete_branch(branch_a.id, "closing", actor=admin)

    def test_delete_empty_branch(self, db_session, admin, branch_b):
        archived = branch_service.delete_branch(branch_b.id, "lease ended", actor=admin)
        assert archived.is_deleted is True
        assert branch_b.id not in [b.id for b in branch_service.list_branches(admin)]
        with pytest.raises(BranchNotFoundError):
            branch_service.delete_branch(branch_b.id, "again", actor=admin)

    def test_list_scoped_for_branch_users(self, db_session, manager_a, branch_a, branch_b):
        assert [b.id for b in branch_service.list_branches(manager_a)] == [branch_a.id]
