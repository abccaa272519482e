from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


TREASURY_IN = "in"
TREASURY_OUT = "out"

# Known sources. Anything else is rejected by treasury_service.record_entry.
TREASURY_SOURCES = (
    "sale",
    "sale_void",
    "sale_return",
    "expense",
    "purchase",
    "purchase_return",
    "supplier_payment",
    "staff_payment",
    "manual",
)


class TreasuryLog(db.Model):
    """
    Branch cash movement.

    The treasury has no stored balance: the balance is always the fold
    sum(in) - sum(out) over the visible logs (treasury_service.compute_balance).
    Rows are append-only.
    """
    __tablename__ = "treasury_logs"
    __table_args__ = (
        db.Index("ix_treasury_logs_branch_occurred", "branch_id", "occurred_at"),
        db.Index("ix_treasury_logs_source", "source"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    type = db.Column(db.String(8), nullable=False)  # in | out
    source = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.String(64), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == TREASURY_IN else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "type": self.type,
            "source": self.source,
            "reference_id": self.reference_id,
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
