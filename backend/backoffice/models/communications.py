from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


LEAVE_TYPES = ("normal", "sick", "emergency")

LEAVE_PENDING = "pending"
LEAVE_APPROVED = "approved"
LEAVE_REJECTED = "rejected"


class Message(db.Model):
    """
    Internal correspondence.

    One row per recipient. A message is addressed to a single user
    (receiver_id), to a role (receiver_role, "all" for everyone) or flagged
    as a broadcast. Archive and trash are flags; purge is a physical delete
    from the trash.
    """
    __tablename__ = "messages"
    __table_args__ = (
        db.Index("ix_messages_receiver", "receiver_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    receiver_role = db.Column(db.String(32), nullable=True)
    is_broadcast = db.Column(db.Boolean, nullable=False, default=False)

    subject = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    parent_message_id = db.Column(db.Integer, db.ForeignKey("messages.id"), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    sender = db.relationship("User", foreign_keys=[sender_id])
    receiver = db.relationship("User", foreign_keys=[receiver_id])

    def to_dict(self):
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "sender_name": self.sender.full_name if self.sender else None,
            "receiver_id": self.receiver_id,
            "receiver_role": self.receiver_role,
            "is_broadcast": self.is_broadcast,
            "subject": self.subject,
            "content": self.content,
            "parent_message_id": self.parent_message_id,
            "is_read": self.is_read,
            "is_archived": self.is_archived,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
        }


class LeaveRequest(db.Model):
    """
    Leave request routed to a more senior role.

    user_role is snapshotted at submission so later role changes do not
    re-route pending requests.
    """
    __tablename__ = "leave_requests"
    __table_args__ = (
        db.Index("ix_leave_requests_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_role = db.Column(db.String(32), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="normal")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    target_role = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=LEAVE_PENDING)
    decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_note = db.Column(db.Text, nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user.full_name if self.user else None,
            "user_role": self.user_role,
            "type": self.type,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "reason": self.reason,
            "target_role": self.target_role,
            "status": self.status,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": to_utc_z(self.decided_at),
            "rejection_note": self.rejection_note,
            "is_archived": self.is_archived,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
        }
