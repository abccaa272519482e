from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data with its on-hand stock.

    STOCK: `stock` is only ever changed through
    product_service.adjust_stock(), a single SQL UPDATE of the form
    stock = stock + delta. Sales, sale voids, sales returns, purchases and
    purchase returns all go through that one path.

    CODE: 6-digit numeric code, generated at creation and re-rolled on
    collision (see product_service.generate_product_code).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_deleted", "branch_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(6), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in minor units
    wholesale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deletion_reason = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "wholesale_price_cents": self.wholesale_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "stock": self.stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "branch_id": self.branch_id,
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
