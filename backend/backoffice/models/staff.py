from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


PAYMENT_TYPE_SALARY = "salary"
PAYMENT_TYPE_BONUS = "bonus"
PAYMENT_TYPE_ADVANCE = "advance"
PAYMENT_TYPE_DEDUCTION = "deduction"

STAFF_PAYMENT_TYPES = (
    PAYMENT_TYPE_SALARY,
    PAYMENT_TYPE_BONUS,
    PAYMENT_TYPE_ADVANCE,
    PAYMENT_TYPE_DEDUCTION,
)


class StaffPayment(db.Model):
    """
    Salary, bonus, advance or deduction for one staff member.

    Deductions are bookkeeping only (no cash leaves the branch); every other
    type is paid out of the staff member's branch treasury.
    """
    __tablename__ = "staff_payments"
    __table_args__ = (
        db.Index("ix_staff_payments_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    payment_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    staff = db.relationship("User", foreign_keys=[staff_id], backref=db.backref("staff_payments", lazy=True))

    @property
    def is_deduction(self) -> bool:
        return self.payment_type == PAYMENT_TYPE_DEDUCTION

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "staff_name": self.staff.full_name if self.staff else None,
            "branch_id": self.branch_id,
            "payment_type": self.payment_type,
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
