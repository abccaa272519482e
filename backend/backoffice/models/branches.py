from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


BRANCH_STATUS_ACTIVE = "active"
BRANCH_STATUS_CLOSED_TEMP = "closed_temp"


class Branch(db.Model):
    """
    A physical shop location.

    Branch-scoped records (products, invoices, expenses, purchases, treasury
    logs) carry branch_id; non-head-office users only ever see their own
    branch's rows (see services/visibility.py).

    Branches are archived, never physically deleted, so historic records keep
    a valid foreign key.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.Index("ix_branches_deleted", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    location = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    commercial_register = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=BRANCH_STATUS_ACTIVE)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deletion_reason = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "phone": self.phone,
            "tax_number": self.tax_number,
            "commercial_register": self.commercial_register,
            "status": self.status,
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
