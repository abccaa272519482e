# Overview: Internal messages and leave requests between staff.

"""
Correspondence Service

MESSAGES: one row per recipient. A message reaches a user when it is
addressed to them, to their role, to "all", or flagged as broadcast. The
sender never sees their own message in the inbox.

Folders are derived from flags:
- inbox:   addressed to me, not archived, not in trash
- sent:    sent by me, not archived, not in trash
- archive: archived, not in trash, I am sender or receiver
- trash:   in trash, I am sender or receiver

Purge (permanent delete) is only possible from the trash.

LEAVE REQUESTS: routed upwards by role seniority. A manager sees a pending
request when the requester is strictly junior, the request targets the
manager's role (or no role), and, for branch managers and supervisors, the
requester works in the same branch.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Message, LeaveRequest, User
from ..models.auth import ROLE_SENIORITY
from ..models.communications import LEAVE_TYPES, LEAVE_PENDING, LEAVE_APPROVED, LEAVE_REJECTED
from .audit_service import append_audit_event
from backoffice.time_utils import utcnow


logger = logging.getLogger(__name__)

ROLE_ALL = "all"
MANAGER_ROLES = ("admin", "general_manager", "it_support", "branch_manager", "supervisor")
BRANCH_BOUND_MANAGER_ROLES = ("branch_manager", "supervisor")


class CorrespondenceError(Exception):
    """Raised for invalid messaging or leave operations."""
    pass


class CorrespondenceNotFoundError(CorrespondenceError):
    pass


# =============================================================================
# MESSAGES
# =============================================================================

def send_message(
    *,
    sender: User,
    subject: str,
    content: str,
    receiver_ids: list[int] | None = None,
    receiver_role: str | None = None,
    is_broadcast: bool = False,
    parent_message_id: int | None = None,
) -> list[Message]:
    """
    Send a message. Returns the created rows (one per recipient user, or a
    single row for role / broadcast addressing).
    """
    subject = (subject or "").strip()
    content = (content or "").strip()
    if not subject or not content:
        raise CorrespondenceError("subject and content are required")

    receiver_ids = list(dict.fromkeys(receiver_ids or []))
    if not is_broadcast and not receiver_ids and not receiver_role:
        raise CorrespondenceError("At least one recipient is required")
    if receiver_role and receiver_role != ROLE_ALL and receiver_role not in ROLE_SENIORITY:
        raise CorrespondenceError(f"Unknown role: {receiver_role}")

    if parent_message_id is not None and db.session.get(Message, parent_message_id) is None:
        raise CorrespondenceNotFoundError(f"Message {parent_message_id} not found")

    now = utcnow()
    created: list[Message] = []

    if is_broadcast or receiver_role:
        created.append(Message(
            sender_id=sender.id,
            receiver_role=None if is_broadcast else receiver_role,
            is_broadcast=bool(is_broadcast),
            subject=subject,
            content=content,
            parent_message_id=parent_message_id,
            created_at=now,
        ))
    else:
        for receiver_id in receiver_ids:
            receiver = db.session.get(User, receiver_id)
            if receiver is None or receiver.is_deleted:
                raise CorrespondenceError(f"Recipient {receiver_id} not found")
            created.append(Message(
                sender_id=sender.id,
                receiver_id=receiver.id,
                subject=subject,
                content=content,
                parent_message_id=parent_message_id,
                created_at=now,
            ))

    db.session.add_all(created)
    db.session.commit()
    return created


def _addressed_to(user: User):
    return or_(
        Message.receiver_id == user.id,
        Message.receiver_role == user.role,
        Message.receiver_role == ROLE_ALL,
        Message.is_broadcast.is_(True),
    )


def inbox(user: User) -> list[Message]:
    return (
        db.session.query(Message)
        .filter(
            Message.sender_id != user.id,
            _addressed_to(user),
            Message.is_archived.is_(False),
            Message.is_deleted.is_(False),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def sent(user: User) -> list[Message]:
    return (
        db.session.query(Message)
        .filter(
            Message.sender_id == user.id,
            Message.is_archived.is_(False),
            Message.is_deleted.is_(False),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def _participant(user: User):
    return or_(Message.sender_id == user.id, Message.receiver_id == user.id)


def archived(user: User) -> list[Message]:
    return (
        db.session.query(Message)
        .filter(_participant(user), Message.is_archived.is_(True), Message.is_deleted.is_(False))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def trash(user: User) -> list[Message]:
    return (
        db.session.query(Message)
        .filter(_participant(user), Message.is_deleted.is_(True))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def _get_own_message(user: User, message_id: int) -> Message:
    msg = db.session.get(Message, message_id)
    if msg is None or user.id not in (msg.sender_id, msg.receiver_id):
        raise CorrespondenceNotFoundError(f"Message {message_id} not found")
    return msg


def mark_read(user: User, message_id: int) -> Message:
    msg = db.session.get(Message, message_id)
    addressed = msg is not None and (
        msg.receiver_id == user.id
        or msg.receiver_role in (user.role, ROLE_ALL)
        or msg.is_broadcast
    )
    if not addressed:
        raise CorrespondenceNotFoundError(f"Message {message_id} not found")
    msg.is_read = True
    db.session.commit()
    return msg


def set_archived(user: User, message_id: int, archived_flag: bool) -> Message:
    msg = _get_own_message(user, message_id)
    msg.is_archived = bool(archived_flag)
    db.session.commit()
    return msg


def move_to_trash(user: User, message_id: int) -> Message:
    msg = _get_own_message(user, message_id)
    msg.is_deleted = True
    db.session.commit()
    return msg


def restore(user: User, message_id: int) -> Message:
    msg = _get_own_message(user, message_id)
    msg.is_deleted = False
    db.session.commit()
    return msg


def purge(user: User, message_id: int) -> None:
    """Permanently delete a message that is already in the trash."""
    msg = _get_own_message(user, message_id)
    if not msg.is_deleted:
        raise CorrespondenceError("Only messages in the trash can be purged")
    db.session.query(Message).filter(Message.parent_message_id == msg.id).update(
        {Message.parent_message_id: None}, synchronize_session=False
    )
    db.session.delete(msg)
    db.session.commit()


def empty_trash(user: User) -> int:
    items = trash(user)
    for msg in items:
        db.session.query(Message).filter(Message.parent_message_id == msg.id).update(
            {Message.parent_message_id: None}, synchronize_session=False
        )
        db.session.delete(msg)
    db.session.commit()
    return len(items)


# =============================================================================
# LEAVE REQUESTS
# =============================================================================

def submit_leave(
    *,
    user: User,
    leave_type: str,
    start_date: date | None,
    end_date: date | None,
    reason: str,
    target_role: str | None = None,
) -> LeaveRequest:
    if leave_type not in LEAVE_TYPES:
        raise CorrespondenceError(f"type must be one of: {', '.join(LEAVE_TYPES)}")
    if start_date is None or end_date is None:
        raise CorrespondenceError("start_date and end_date are required")
    if end_date < start_date:
        raise CorrespondenceError("end_date must not be before start_date")
    if not reason or not reason.strip():
        raise CorrespondenceError("reason is required")
    if target_role and target_role not in ROLE_SENIORITY:
        raise CorrespondenceError(f"Unknown role: {target_role}")

    req = LeaveRequest(
        user_id=user.id,
        user_role=user.role,
        type=leave_type,
        start_date=start_date,
        end_date=end_date,
        reason=reason.strip(),
        target_role=target_role or None,
        status=LEAVE_PENDING,
        created_at=utcnow(),
    )
    db.session.add(req)
    db.session.commit()
    return req


def my_leave_requests(user: User) -> list[LeaveRequest]:
    return (
        db.session.query(LeaveRequest)
        .filter(LeaveRequest.user_id == user.id, LeaveRequest.is_deleted.is_(False))
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        .all()
    )


def can_decide(manager: User, req: LeaveRequest) -> bool:
    if manager.role not in MANAGER_ROLES:
        return False
    if req.status != LEAVE_PENDING or req.is_archived or req.is_deleted:
        return False
    if req.user_id == manager.id:
        return False
    if req.target_role and req.target_role != manager.role:
        return False

    requester_seniority = ROLE_SENIORITY.get(req.user_role, 0)
    if manager.seniority <= requester_seniority:
        return False
    if manager.role in BRANCH_BOUND_MANAGER_ROLES:
        requester = req.user
        return requester is not None and requester.branch_id == manager.branch_id
    return True


def incoming_leave_requests(manager: User) -> list[LeaveRequest]:
    if manager.role not in MANAGER_ROLES:
        return []
    pending = (
        db.session.query(LeaveRequest)
        .filter(LeaveRequest.status == LEAVE_PENDING)
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        .all()
    )
    return [req for req in pending if can_decide(manager, req)]


def decide_leave(
    *,
    manager: User,
    request_id: int,
    status: str,
    rejection_note: str | None = None,
) -> LeaveRequest:
    """
    Approve or reject a pending request the manager is allowed to see.

    A rejection needs a note, which is sent to the requester as a message.
    """
    if status not in (LEAVE_APPROVED, LEAVE_REJECTED):
        raise CorrespondenceError("status must be 'approved' or 'rejected'")

    req = db.session.get(LeaveRequest, request_id)
    if req is None or not can_decide(manager, req):
        raise CorrespondenceNotFoundError(f"Leave request {request_id} not found")

    note = (rejection_note or "").strip()
    if status == LEAVE_REJECTED and not note:
        raise CorrespondenceError("A rejection note is required")

    req.status = status
    req.decided_by_user_id = manager.id
    req.decided_at = utcnow()
    req.rejection_note = note or None

    if status == LEAVE_REJECTED:
        db.session.add(Message(
            sender_id=manager.id,
            receiver_id=req.user_id,
            subject="Leave request rejected",
            content=(
                f"Your {req.type} leave request for {req.start_date.isoformat()} to "
                f"{req.end_date.isoformat()} was rejected: {note}"
            ),
            created_at=req.decided_at,
        ))

    append_audit_event(
        event_type=f"LEAVE_{status.upper()}",
        entity_type="leave_request",
        entity_id=req.id,
        branch_id=req.user.branch_id if req.user else None,
        actor_user_id=manager.id,
        occurred_at=req.decided_at,
        note=note or None,
    )
    db.session.commit()
    logger.info("Leave request %s %s by user %s", req.id, status, manager.id)
    return req


def set_leave_archived(user: User, request_id: int, archived_flag: bool) -> LeaveRequest:
    req = db.session.get(LeaveRequest, request_id)
    if req is None or req.user_id != user.id:
        raise CorrespondenceNotFoundError(f"Leave request {request_id} not found")
    req.is_archived = bool(archived_flag)
    db.session.commit()
    return req


def trash_leave(user: User, request_id: int) -> LeaveRequest:
    req = db.session.get(LeaveRequest, request_id)
    if req is None or req.user_id != user.id:
        raise CorrespondenceNotFoundError(f"Leave request {request_id} not found")
    req.is_deleted = True
    db.session.commit()
    return req
