# Overview: Staff accounts and staff payments.

"""
Staff Service

Accounts are created by managers, never self-registered. Usernames are
generated as PREFIX-NNNNNN:

- "A-" head-office roles (admin, general_manager, it_support)
- "S-" branch_manager and supervisor
- "E-" everyone else

A random temporary password is returned exactly once, on creation or reset.

Staff payments (salary, bonus, advance) are paid from the staff member's
branch treasury. Deductions are recorded but move no cash.
"""

from __future__ import annotations

import logging
import random

from ..extensions import db
from ..models import User, Branch, StaffPayment
from ..models.auth import ROLE_SENIORITY
from ..models.staff import STAFF_PAYMENT_TYPES, PAYMENT_TYPE_DEDUCTION
from ..validation import ValidationError, enforce_money, require_text
from .audit_service import append_audit_event
from .auth_service import hash_password, generate_temporary_password
from .session_service import revoke_all_user_sessions
from .treasury_service import add_entry
from .visibility import scope_query, is_head_office, visible
from backoffice.time_utils import utcnow


logger = logging.getLogger(__name__)

HEAD_OFFICE_PREFIX_ROLES = ("admin", "general_manager", "it_support")
SENIOR_BRANCH_ROLES = ("branch_manager", "supervisor")
USERNAME_ATTEMPTS = 10


class StaffError(Exception):
    """Raised when a staff operation is invalid."""
    pass


class StaffNotFoundError(StaffError):
    pass


def username_prefix(role: str) -> str:
    if role in HEAD_OFFICE_PREFIX_ROLES:
        return "A-"
    if role in SENIOR_BRANCH_ROLES:
        return "S-"
    return "E-"


def generate_username(role: str, rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    prefix = username_prefix(role)
    for _ in range(USERNAME_ATTEMPTS):
        candidate = f"{prefix}{rng.randint(100000, 999999)}"
        if not db.session.query(User.id).filter(User.username == candidate).first():
            return candidate
    raise StaffError("Could not allocate a unique username; try again")


def _validate_role(role: str, actor: User | None) -> None:
    if role not in ROLE_SENIORITY:
        raise StaffError(f"Unknown role: {role}")
    if actor is not None and ROLE_SENIORITY[role] > actor.seniority:
        raise StaffError("Cannot assign a role more senior than your own")


def _validate_branch(branch_id: int | None) -> None:
    if branch_id is None:
        return
    branch = db.session.get(Branch, branch_id)
    if branch is None or branch.is_deleted:
        raise StaffError(f"Branch {branch_id} not found")


def get_staff(user_id: int, viewer: User | None = None) -> User:
    user = db.session.get(User, user_id)
    if user is None or (viewer is not None and not visible(viewer, user)):
        raise StaffNotFoundError(f"User {user_id} not found")
    return user


def list_staff(viewer: User, *, include_deleted: bool = False, branch_id: int | None = None) -> list[User]:
    q = scope_query(db.session.query(User), User, viewer)
    if not include_deleted:
        q = q.filter(User.is_deleted.is_(False))
    if branch_id is not None and is_head_office(viewer):
        q = q.filter(User.branch_id == branch_id)
    return q.order_by(User.full_name.asc(), User.id.asc()).all()


def create_user(
    *,
    role: str,
    full_name: str,
    phone_number: str | None = None,
    salary_cents: int = 0,
    branch_id: int | None = None,
    actor: User | None = None,
) -> tuple[User, str]:
    """
    Create a staff account.

    Returns (user, temporary_password). The password is not retrievable
    afterwards.
    """
    full_name = require_text("full_name", full_name)
    enforce_money("salary_cents", salary_cents)
    _validate_role(role, actor)
    _validate_branch(branch_id)

    temporary_password = generate_temporary_password()
    user = User(
        username=generate_username(role),
        full_name=full_name,
        phone_number=phone_number,
        role=role,
        branch_id=branch_id,
        salary_cents=salary_cents,
        password_hash=hash_password(temporary_password),
    )
    db.session.add(user)
    db.session.flush()

    append_audit_event(
        event_type="STAFF_CREATED",
        entity_type="user",
        entity_id=user.id,
        branch_id=branch_id,
        actor_user_id=actor.id if actor else None,
        occurred_at=utcnow(),
        note=f"{user.username} role={role}",
    )
    db.session.commit()
    logger.info("Created staff account %s role=%s branch=%s", user.username, role, branch_id)
    return user, temporary_password


def update_role(user_id: int, role: str, *, actor: User) -> User:
    user = get_staff(user_id)
    if user.is_deleted:
        raise StaffError("Cannot change the role of an archived user")
    if user.id == actor.id:
        raise StaffError("You cannot change your own role")
    _validate_role(role, actor)

    previous = user.role
    user.role = role
    append_audit_event(
        event_type="STAFF_ROLE_CHANGED",
        entity_type="user",
        entity_id=user.id,
        branch_id=user.branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
        note=f"{previous} -> {role}",
    )
    db.session.commit()
    return user


def update_profile(user_id: int, patch: dict, *, actor: User) -> User:
    user = get_staff(user_id)
    if user.is_deleted:
        raise StaffError("Cannot update an archived user")

    for key, value in patch.items():
        if key == "full_name":
            if not value or not str(value).strip():
                raise ValidationError("full_name cannot be blank")
            user.full_name = str(value).strip()
        elif key == "phone_number":
            user.phone_number = value
        elif key == "salary_cents":
            user.salary_cents = enforce_money("salary_cents", value)
        else:
            raise ValidationError(f"Field not allowed: {key}")

    append_audit_event(
        event_type="STAFF_UPDATED",
        entity_type="user",
        entity_id=user.id,
        branch_id=user.branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
        note=f"Updated fields: {', '.join(sorted(patch.keys()))}",
    )
    db.session.commit()
    return user


def transfer(user_id: int, branch_id: int | None, *, actor: User) -> User:
    """Move a user to another branch (None = head office, no branch)."""
    user = get_staff(user_id)
    if user.is_deleted:
        raise StaffError("Cannot transfer an archived user")
    _validate_branch(branch_id)

    previous = user.branch_id
    user.branch_id = branch_id
    append_audit_event(
        event_type="STAFF_TRANSFERRED",
        entity_type="user",
        entity_id=user.id,
        branch_id=branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
        note=f"branch {previous} -> {branch_id}",
    )
    db.session.commit()
    return user


def delete_user(user_id: int, reason: str, *, actor: User) -> User:
    reason = require_text("reason", reason)
    user = get_staff(user_id)
    if user.id == actor.id:
        raise StaffError("You cannot delete your own account")
    if user.is_deleted:
        raise StaffError("User is already archived")

    user.is_deleted = True
    user.deletion_reason = reason
    user.deleted_at = utcnow()
    revoke_all_user_sessions(user.id)

    append_audit_event(
        event_type="STAFF_ARCHIVED",
        entity_type="user",
        entity_id=user.id,
        branch_id=user.branch_id,
        actor_user_id=actor.id,
        occurred_at=user.deleted_at,
        note=user.deletion_reason,
    )
    db.session.commit()
    return user


def reset_password(user_id: int, *, actor: User) -> tuple[User, str]:
    """Issue a new temporary password and revoke the user's sessions."""
    user = get_staff(user_id)
    if user.is_deleted:
        raise StaffError("Cannot reset the password of an archived user")

    temporary_password = generate_temporary_password()
    user.password_hash = hash_password(temporary_password)
    revoke_all_user_sessions(user.id)

    append_audit_event(
        event_type="STAFF_PASSWORD_RESET",
        entity_type="user",
        entity_id=user.id,
        branch_id=user.branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
    )
    db.session.commit()
    return user, temporary_password


# =============================================================================
# STAFF PAYMENTS
# =============================================================================

def record_staff_payment(
    *,
    staff_id: int,
    amount_cents: int,
    payment_type: str,
    notes: str | None = None,
    actor: User,
) -> StaffPayment:
    """
    Record a salary, bonus, advance or deduction.

    Non-deduction payments write a treasury "out" entry (source
    "staff_payment") on the staff member's branch, in the same transaction.
    """
    if payment_type not in STAFF_PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(STAFF_PAYMENT_TYPES)}")
    enforce_money("amount_cents", amount_cents, allow_zero=False)

    staff = get_staff(staff_id, actor)
    if staff.is_deleted:
        raise StaffError("Cannot pay an archived user")

    try:
        payment = StaffPayment(
            staff_id=staff.id,
            branch_id=staff.branch_id,
            payment_type=payment_type,
            amount_cents=amount_cents,
            notes=notes,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        if payment_type != PAYMENT_TYPE_DEDUCTION:
            add_entry(
                branch_id=staff.branch_id,
                entry_type="out",
                source="staff_payment",
                amount_cents=amount_cents,
                reference_id=payment.id,
                notes=f"{payment_type} for {staff.full_name}",
                created_by_user_id=actor.id,
            )

        append_audit_event(
            event_type="STAFF_PAYMENT_RECORDED",
            entity_type="staff_payment",
            entity_id=payment.id,
            branch_id=staff.branch_id,
            actor_user_id=actor.id,
            amount_cents=amount_cents,
            occurred_at=payment.occurred_at,
            note=payment_type,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Staff payment %s: staff=%s type=%s cents=%s",
        payment.id, staff.id, payment_type, amount_cents,
    )
    return payment


def list_staff_payments(viewer: User, *, staff_id: int | None = None) -> list[StaffPayment]:
    q = scope_query(db.session.query(StaffPayment), StaffPayment, viewer)
    if staff_id is not None:
        q = q.filter(StaffPayment.staff_id == staff_id)
    return q.order_by(StaffPayment.occurred_at.desc(), StaffPayment.id.desc()).all()
