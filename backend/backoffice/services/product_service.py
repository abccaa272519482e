# backend/backoffice/services/product_service.py
"""
Products Service

STOCK: adjust_stock() is the only way stock changes. It issues a single
`UPDATE products SET stock = stock + :delta` after locking the row and
checking that the result stays non-negative. Sales, sale voids, sales
returns, purchases and purchase returns all call it inside their own
transaction; it never commits.

CODES: each product gets a random 6-digit code (100000-999999). A collision
with an existing code is re-rolled a bounded number of times.
"""
from __future__ import annotations

import logging
import random

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, Branch, User
from ..validation import ConflictError, ValidationError, enforce_money
from .audit_service import append_audit_event
from .concurrency import lock_for_update, increment_columns
from .visibility import scope_query, is_head_office, visible
from backoffice.time_utils import utcnow


logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "description",
    "wholesale_price_cents",
    "retail_price_cents",
    "low_stock_threshold",
}

CODE_MIN = 100000
CODE_MAX = 999999
CODE_ATTEMPTS = 10


class ProductNotFoundError(Exception):
    """Raised when a product is not found (or not visible)."""
    pass


class InsufficientStockError(Exception):
    """Raised when a stock decrement would take stock below zero."""

    def __init__(self, product_id: int, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}: available {available}, requested {requested}"
        )


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def generate_product_code(rng: random.Random | None = None) -> str:
    """
    Pick an unused 6-digit code.

    Raises ConflictError after CODE_ATTEMPTS collisions in a row.
    """
    rng = rng or random.SystemRandom()
    for _ in range(CODE_ATTEMPTS):
        code = str(rng.randint(CODE_MIN, CODE_MAX))
        taken = db.session.query(Product.id).filter(Product.code == code).first()
        if not taken:
            return code
    raise ConflictError("Could not allocate a unique product code; try again")


def get_product(product_id: int, user: User | None = None) -> Product:
    p = db.session.get(Product, product_id)
    if p is None or (user is not None and not visible(user, p)):
        raise ProductNotFoundError(f"Product {product_id} not found")
    return p


def list_products(
    user: User,
    *,
    include_deleted: bool = False,
    search: str | None = None,
    branch_id: int | None = None,
) -> list[Product]:
    """Products visible to `user`, by name. search matches name or code."""
    q = scope_query(db.session.query(Product), Product, user)
    if not include_deleted:
        q = q.filter(Product.is_deleted.is_(False))
    if branch_id is not None and is_head_office(user):
        q = q.filter(Product.branch_id == branch_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.code.like(pattern)))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def low_stock_products(user: User) -> list[Product]:
    """Non-archived visible products with stock <= their threshold."""
    q = scope_query(db.session.query(Product), Product, user)
    return (
        q.filter(Product.is_deleted.is_(False))
        .filter(Product.stock <= Product.low_stock_threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def create_product(
    *,
    actor: User,
    name: str,
    wholesale_price_cents: int = 0,
    retail_price_cents: int = 0,
    initial_stock: int = 0,
    description: str | None = None,
    branch_id: int | None = None,
    low_stock_threshold: int | None = None,
) -> Product:
    """
    Create a product with a fresh 6-digit code.

    Branch users always create in their own branch.
    """
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    enforce_money("wholesale_price_cents", wholesale_price_cents)
    enforce_money("retail_price_cents", retail_price_cents)
    if initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")

    if low_stock_threshold is None:
        low_stock_threshold = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5)
    if low_stock_threshold < 0:
        raise ValidationError("low_stock_threshold must be >= 0")

    if not is_head_office(actor):
        branch_id = actor.branch_id
    if branch_id is not None and db.session.get(Branch, branch_id) is None:
        raise ValidationError(f"Branch {branch_id} not found")

    p = Product(
        code=generate_product_code(),
        name=str(name).strip(),
        description=description,
        wholesale_price_cents=wholesale_price_cents,
        retail_price_cents=retail_price_cents,
        stock=initial_stock,
        low_stock_threshold=low_stock_threshold,
        branch_id=branch_id,
    )
    db.session.add(p)
    db.session.flush()  # ensure p.id exists before audit append

    append_audit_event(
        event_type="PRODUCT_CREATED",
        entity_type="product",
        entity_id=p.id,
        branch_id=p.branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
        note=f"Created product code={p.code} name={p.name}",
    )
    db.session.commit()
    return p


def update_product(*, product_id: int, patch: dict, actor: User) -> Product:
    p = get_product(product_id, actor)
    if p.is_deleted:
        raise ConflictError("Cannot update an archived product")

    for money_field in ("wholesale_price_cents", "retail_price_cents"):
        if money_field in patch:
            enforce_money(money_field, patch[money_field])
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")

    apply_product_patch(p, patch)
    append_audit_event(
        event_type="PRODUCT_UPDATED",
        entity_type="product",
        entity_id=p.id,
        branch_id=p.branch_id,
        actor_user_id=actor.id,
        occurred_at=utcnow(),
        note=f"Updated fields: {', '.join(sorted(patch.keys()))}",
    )
    db.session.commit()
    return p


def delete_product(*, product_id: int, reason: str, actor: User) -> Product:
    """Soft delete with a mandatory reason. Historic lines keep their FK."""
    if not reason or not reason.strip():
        raise ValidationError("A deletion reason is required")

    p = get_product(product_id, actor)
    if p.is_deleted:
        raise ConflictError("Product is already archived")

    p.is_deleted = True
    p.deletion_reason = reason.strip()
    p.deleted_at = utcnow()

    append_audit_event(
        event_type="PRODUCT_ARCHIVED",
        entity_type="product",
        entity_id=p.id,
        branch_id=p.branch_id,
        actor_user_id=actor.id,
        occurred_at=p.deleted_at,
        note=p.deletion_reason,
    )
    db.session.commit()
    return p


def adjust_stock(product_id: int, delta: int, *, allow_negative: bool = False) -> Product:
    """
    Atomically add `delta` to a product's stock. Does not commit.

    The row is locked, the resulting level is checked, then a single
    `stock = stock + delta` UPDATE is issued so concurrent adjustments
    compose instead of overwriting each other.

    Raises ProductNotFoundError, or InsufficientStockError when the result
    would be negative and allow_negative is False.
    """
    p = (
        lock_for_update(db.session.query(Product).filter(Product.id == product_id))
        .populate_existing()
        .first()
    )
    if p is None:
        raise ProductNotFoundError(f"Product {product_id} not found")

    if delta < 0 and not allow_negative and p.stock + delta < 0:
        logger.warning(
            "Insufficient stock: product=%s available=%s requested=%s",
            product_id, p.stock, -delta,
        )
        raise InsufficientStockError(product_id, p.stock, -delta)

    if delta:
        increment_columns(Product, product_id, stock=delta)
    return p
