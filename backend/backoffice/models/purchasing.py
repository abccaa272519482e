from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


PAYMENT_STATUS_CASH = "cash"
PAYMENT_STATUS_CREDIT = "credit"

REFUND_METHOD_CASH = "cash"
REFUND_METHOD_DEBT_DEDUCTION = "debt_deduction"


class Supplier(db.Model):
    """
    Supplier with running account aggregates.

    AGGREGATES (minor units):
    - total_debt_cents: signed running balance. Positive = we owe the supplier,
      negative = the supplier owes us (e.g. refunds not yet collected).
    - total_paid_cents: lifetime payments made to the supplier.
    - total_supplied_cents: lifetime purchase value.

    These fields are only mutated by purchase_service through single SQL
    UPDATE statements (column = column + delta) in the same transaction as
    the purchase / payment / return row that causes the change.

    Suppliers are archived (is_deleted) only when total_debt_cents == 0.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    commercial_register = db.Column(db.String(64), nullable=True)

    total_debt_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    total_supplied_cents = db.Column(db.Integer, nullable=False, default=0)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deletion_reason = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} debt={self.total_debt_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "tax_number": self.tax_number,
            "commercial_register": self.commercial_register,
            "total_debt_cents": self.total_debt_cents,
            "total_paid_cents": self.total_paid_cents,
            "total_supplied_cents": self.total_supplied_cents,
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseRecord(db.Model):
    """
    Supplier invoice.

    remaining_amount_cents is computed once at creation
    (total_amount_cents - paid_amount_cents) and is never rewritten by later
    payments or returns; those only move the Supplier aggregates. The live
    figure is available as purchase_service.purchase_outstanding_cents().
    """
    __tablename__ = "purchase_records"
    __table_args__ = (
        db.Index("ix_purchase_records_supplier_occurred", "supplier_id", "occurred_at"),
        db.Index("ix_purchase_records_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    supplier_invoice_no = db.Column(db.String(64), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_CASH)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    lines = db.relationship(
        "PurchaseLine",
        backref="purchase",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "supplier_invoice_no": self.supplier_invoice_no,
            "branch_id": self.branch_id,
            "items": [line.to_dict() for line in self.lines],
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "is_deleted": self.is_deleted,
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchase_records.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    retail_price_cents = db.Column(db.Integer, nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class SupplierPayment(db.Model):
    """A single debt-reduction event, optionally tied to one purchase."""
    __tablename__ = "supplier_payments"
    __table_args__ = (
        db.Index("ix_supplier_payments_supplier_occurred", "supplier_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchase_records.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    supplier = db.relationship("Supplier", backref=db.backref("payments", lazy=True))
    purchase = db.relationship("PurchaseRecord", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_id": self.purchase_id,
            "branch_id": self.branch_id,
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class PurchaseReturn(db.Model):
    """
    Goods sent back to a supplier from one purchase.

    refund_method / is_money_received decide the financial leg:
    - debt_deduction, or cash not yet received -> supplier debt decreases
    - cash received -> treasury "in" entry, supplier untouched
    """
    __tablename__ = "purchase_returns"
    __table_args__ = (
        db.Index("ix_purchase_returns_supplier_occurred", "supplier_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_purchase_id = db.Column(db.Integer, db.ForeignKey("purchase_records.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    total_refund_cents = db.Column(db.Integer, nullable=False)
    refund_method = db.Column(db.String(16), nullable=False)
    is_money_received = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    original_purchase = db.relationship("PurchaseRecord", backref=db.backref("returns", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchase_returns", lazy=True))
    lines = db.relationship(
        "PurchaseReturnLine",
        backref="purchase_return",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseReturnLine.id",
    )

    @property
    def reduces_debt(self) -> bool:
        return not (self.refund_method == REFUND_METHOD_CASH and self.is_money_received)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_purchase_id": self.original_purchase_id,
            "supplier_id": self.supplier_id,
            "branch_id": self.branch_id,
            "items": [line.to_dict() for line in self.lines],
            "total_refund_cents": self.total_refund_cents,
            "refund_method": self.refund_method,
            "is_money_received": self.is_money_received,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class PurchaseReturnLine(db.Model):
    __tablename__ = "purchase_return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)
    purchase_line_id = db.Column(db.Integer, db.ForeignKey("purchase_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_line_id": self.purchase_line_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
