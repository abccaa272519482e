# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers carry three running aggregates (total_debt_cents,
total_paid_cents, total_supplied_cents). This module creates, edits and
archives suppliers; the aggregates themselves are only moved by
purchase_service.

Suppliers are global (not branch-scoped). Archiving is refused while the
supplier's debt is not exactly zero, in either direction.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Supplier, User
from .audit_service import append_audit_event
from .concurrency import lock_for_update
from backoffice.time_utils import utcnow


logger = logging.getLogger(__name__)

SUPPLIER_MUTABLE_FIELDS = {"name", "phone", "tax_number", "commercial_register"}


class SupplierNotFoundError(Exception):
    """Raised when a supplier is not found."""
    pass


class SupplierValidationError(Exception):
    """Raised when supplier data fails validation."""
    pass


class OutstandingBalanceError(Exception):
    """Raised when archiving a supplier whose debt is not settled."""

    def __init__(self, supplier_id: int, balance_cents: int):
        self.supplier_id = supplier_id
        self.balance_cents = balance_cents
        super().__init__(
            f"Supplier {supplier_id} has an outstanding balance of {balance_cents} cents; "
            "settle it before archiving"
        )


def create_supplier(
    *,
    name: str,
    phone: str | None = None,
    tax_number: str | None = None,
    commercial_register: str | None = None,
    actor: User | None = None,
) -> Supplier:
    """
    Create a supplier with zeroed aggregates.

    Raises:
        SupplierValidationError: If name is blank
    """
    if not name or not name.strip():
        raise SupplierValidationError("Supplier name is required")

    supplier = Supplier(
        name=name.strip(),
        phone=phone,
        tax_number=tax_number,
        commercial_register=commercial_register,
        total_debt_cents=0,
        total_paid_cents=0,
        total_supplied_cents=0,
    )
    db.session.add(supplier)
    db.session.flush()

    append_audit_event(
        event_type="SUPPLIER_CREATED",
        entity_type="supplier",
        entity_id=supplier.id,
        actor_user_id=actor.id if actor else None,
        occurred_at=utcnow(),
        note=supplier.name,
    )
    db.session.commit()
    return supplier


def update_supplier(*, supplier_id: int, patch: dict, actor: User | None = None) -> Supplier:
    """
    Update contact fields. Aggregates are not writable here.

    Raises:
        SupplierNotFoundError: If supplier not found
        SupplierValidationError: If a field is not editable or name is blank
    """
    supplier = get_supplier(supplier_id)
    if supplier.is_deleted:
        raise SupplierValidationError("Cannot update an archived supplier")

    for key, value in patch.items():
        if key not in SUPPLIER_MUTABLE_FIELDS:
            raise SupplierValidationError(f"Field not allowed: {key}")
        if key == "name":
            value = (value or "").strip()
            if not value:
                raise SupplierValidationError("Supplier name cannot be empty")
        setattr(supplier, key, value)

    append_audit_event(
        event_type="SUPPLIER_UPDATED",
        entity_type="supplier",
        entity_id=supplier.id,
        actor_user_id=actor.id if actor else None,
        occurred_at=utcnow(),
        note=f"Updated fields: {', '.join(sorted(patch.keys()))}",
    )
    db.session.commit()
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(
    *,
    include_deleted: bool = False,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    """
    List suppliers by name.

    Returns:
        Tuple of (suppliers list, total count)
    """
    query = db.session.query(Supplier)
    if not include_deleted:
        query = query.filter(Supplier.is_deleted.is_(False))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Supplier.name.ilike(pattern),
            Supplier.phone.ilike(pattern),
            Supplier.tax_number.ilike(pattern),
        ))

    total = query.count()
    query = query.order_by(Supplier.name.asc(), Supplier.id.asc()).offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all(), total


def delete_supplier(*, supplier_id: int, reason: str | None = None, actor: User | None = None) -> Supplier:
    """
    Archive a supplier.

    Allowed only when total_debt_cents == 0. A positive balance (we owe
    them) and a negative balance (they owe us) both block archiving, and the
    row is left unmodified.

    Raises:
        SupplierNotFoundError: If supplier not found
        OutstandingBalanceError: If the debt is not settled
    """
    supplier = lock_for_update(
        db.session.query(Supplier).filter(Supplier.id == supplier_id)
    ).populate_existing().first()
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    if supplier.is_deleted:
        raise SupplierValidationError("Supplier is already archived")

    if supplier.total_debt_cents != 0:
        logger.warning(
            "Refused to archive supplier %s: balance %s cents",
            supplier_id, supplier.total_debt_cents,
        )
        raise OutstandingBalanceError(supplier_id, supplier.total_debt_cents)

    supplier.is_deleted = True
    supplier.deletion_reason = (reason or "").strip() or None
    supplier.deleted_at = utcnow()

    append_audit_event(
        event_type="SUPPLIER_ARCHIVED",
        entity_type="supplier",
        entity_id=supplier.id,
        actor_user_id=actor.id if actor else None,
        occurred_at=supplier.deleted_at,
        note=supplier.deletion_reason,
    )
    db.session.commit()
    logger.info("Archived supplier %s", supplier_id)
    return supplier
