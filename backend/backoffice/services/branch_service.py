from __future__ import annotations

import logging

from ..extensions import db
from ..models import Branch, User
from ..models.branches import BRANCH_STATUS_ACTIVE, BRANCH_STATUS_CLOSED_TEMP
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .visibility import is_head_office
from ..time_utils import utcnow


logger = logging.getLogger(__name__)

BRANCH_MUTABLE_FIELDS = {"name", "location", "phone", "tax_number", "commercial_register"}
BRANCH_STATUSES = (BRANCH_STATUS_ACTIVE, BRANCH_STATUS_CLOSED_TEMP)


class BranchError(Exception):
    """Raised when branch operations fail."""
    pass


class BranchNotFoundError(BranchError):
    pass


class BranchInUseError(BranchError):
    """Raised when archiving a branch that still has staff assigned."""
    pass


def _require_unique_name(name: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Branch).filter(Branch.name == name)
    if exclude_id is not None:
        q = q.filter(Branch.id != exclude_id)
    if q.first():
        raise BranchError(f"Branch name '{name}' already exists")


def create_branch(
    name: str,
    *,
    location: str | None = None,
    phone: str | None = None,
    tax_number: str | None = None,
    commercial_register: str | None = None,
    actor: User | None = None,
) -> Branch:
    def _op():
        clean = (name or "").strip()
        if not clean:
            raise BranchError("Branch name is required")
        _require_unique_name(clean)

        branch = Branch(
            name=clean,
            location=location,
            phone=phone,
            tax_number=tax_number,
            commercial_register=commercial_register,
            status=BRANCH_STATUS_ACTIVE,
        )
        db.session.add(branch)
        db.session.flush()

        append_audit_event(
            event_type="BRANCH_CREATED",
            entity_type="branch",
            entity_id=branch.id,
            branch_id=branch.id,
            actor_user_id=actor.id if actor else None,
            occurred_at=utcnow(),
            note=clean,
        )
        db.session.commit()
        return branch

    return run_with_retry(_op)


def update_branch(branch_id: int, patch: dict, *, actor: User | None = None) -> Branch:
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch or branch.is_deleted:
            raise BranchNotFoundError("Branch not found")

        for key, value in patch.items():
            if key not in BRANCH_MUTABLE_FIELDS:
                raise BranchError(f"Field not allowed: {key}")
            if key == "name":
                value = (value or "").strip()
                if not value:
                    raise BranchError("Branch name cannot be empty")
                _require_unique_name(value, exclude_id=branch.id)
            setattr(branch, key, value)

        append_audit_event(
            event_type="BRANCH_UPDATED",
            entity_type="branch",
            entity_id=branch.id,
            branch_id=branch.id,
            actor_user_id=actor.id if actor else None,
            occurred_at=utcnow(),
            note=f"Updated fields: {', '.join(sorted(patch.keys()))}",
        )
        db.session.commit()
        return branch

    return run_with_retry(_op)


def set_branch_status(branch_id: int, status: str, *, actor: User | None = None) -> Branch:
    if status not in BRANCH_STATUSES:
        raise BranchError(f"status must be one of: {', '.join(BRANCH_STATUSES)}")

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch or branch.is_deleted:
            raise BranchNotFoundError("Branch not found")

        branch.status = status
        append_audit_event(
            event_type="BRANCH_STATUS_CHANGED",
            entity_type="branch",
            entity_id=branch.id,
            branch_id=branch.id,
            actor_user_id=actor.id if actor else None,
            occurred_at=utcnow(),
            note=status,
        )
        db.session.commit()
        return branch

    return run_with_retry(_op)


def delete_branch(branch_id: int, reason: str, *, actor: User | None = None) -> Branch:
    """Archive a branch. Refused while non-archived staff are assigned to it."""
    if not reason or not reason.strip():
        raise BranchError("A deletion reason is required")

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch or branch.is_deleted:
            raise BranchNotFoundError("Branch not found")

        staff_count = (
            db.session.query(User)
            .filter(User.branch_id == branch_id, User.is_deleted.is_(False))
            .count()
        )
        if staff_count:
            logger.warning("Refused to archive branch %s: %s staff assigned", branch_id, staff_count)
            raise BranchInUseError(
                f"Branch still has {staff_count} staff member(s); transfer them first"
            )

        branch.is_deleted = True
        branch.deletion_reason = reason.strip()
        branch.deleted_at = utcnow()

        append_audit_event(
            event_type="BRANCH_ARCHIVED",
            entity_type="branch",
            entity_id=branch.id,
            branch_id=branch.id,
            actor_user_id=actor.id if actor else None,
            occurred_at=branch.deleted_at,
            note=branch.deletion_reason,
        )
        db.session.commit()
        return branch

    return run_with_retry(_op)


def get_branch(branch_id: int) -> Branch | None:
    return db.session.get(Branch, branch_id)


def list_branches(user: User, *, include_deleted: bool = False) -> list[Branch]:
    """Head office sees every branch; everyone else only their own."""
    q = db.session.query(Branch)
    if not include_deleted:
        q = q.filter(Branch.is_deleted.is_(False))
    if not is_head_office(user):
        if user.branch_id is None:
            return []
        q = q.filter(Branch.id == user.branch_id)
    return q.order_by(Branch.name.asc()).all()
