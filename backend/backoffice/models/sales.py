from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


class Invoice(db.Model):
    """
    Point-of-sale sales invoice.

    Totals are computed server-side from the lines (see
    sales_service.compute_invoice_totals); clients never submit net_total.

    Invoices are archived with a mandatory reason instead of being deleted.
    Archiving restores the stock of every line.
    """
    __tablename__ = "sales_invoices"
    __table_args__ = (
        db.Index("ix_sales_invoices_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    total_before_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_PERCENTAGE)
    # Percent (0-100) for "percentage", minor units for "fixed"
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_total_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    creator_username = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deletion_reason = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "items": [line.to_dict() for line in self.lines],
            "total_before_discount_cents": self.total_before_discount_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "net_total_cents": self.net_total_cents,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "creator_username": self.creator_username,
            "occurred_at": to_utc_z(self.occurred_at),
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class InvoiceLine(db.Model):
    __tablename__ = "sales_invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class SalesReturn(db.Model):
    """
    Customer return against a sales invoice. Restores stock, pays money out
    of the branch treasury.
    """
    __tablename__ = "sales_returns"
    __table_args__ = (
        db.Index("ix_sales_returns_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    total_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    invoice = db.relationship("Invoice", backref=db.backref("returns", lazy=True))
    lines = db.relationship(
        "SalesReturnLine",
        backref="sales_return",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SalesReturnLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "branch_id": self.branch_id,
            "items": [line.to_dict() for line in self.lines],
            "total_refund_cents": self.total_refund_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "is_deleted": self.is_deleted,
        }


class SalesReturnLine(db.Model):
    __tablename__ = "sales_return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_return_id = db.Column(db.Integer, db.ForeignKey("sales_returns.id"), nullable=False, index=True)
    invoice_line_id = db.Column(db.Integer, db.ForeignKey("sales_invoice_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_line_id": self.invoice_line_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
