# Overview: Sales invoices, customer returns and branch expenses.

"""
Sales Service

Invoices are priced server-side from their lines. Every sale deducts stock
through product_service.adjust_stock and books the net total into the
branch treasury in the same transaction.

- delete_invoice: soft delete with a mandatory reason; restores stock and
  books a treasury "out" (source "sale_void").
- create_sales_return: clamps quantities against sold minus already
  returned; restores stock; treasury "out" (source "sale_return").
- create_expense: treasury "out" (source "expense").
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Invoice, InvoiceLine, SalesReturn, SalesReturnLine, Expense, Product, User
from ..models.sales import DISCOUNT_PERCENTAGE, DISCOUNT_FIXED
from ..validation import MAX_AMOUNT_CENTS
from .audit_service import append_audit_event
from .product_service import adjust_stock
from .treasury_service import add_entry
from .visibility import scope_query, visible
from backoffice.time_utils import utcnow, in_period


logger = logging.getLogger(__name__)

DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


class SaleError(Exception):
    """Raised for sales operation errors."""
    pass


class InvoiceNotFoundError(SaleError):
    pass


def _require_int(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise SaleError(f"{name} must be an integer")
    return value


# =============================================================================
# PRICING
# =============================================================================

def compute_invoice_totals(lines: list[dict], discount_type: str = DISCOUNT_PERCENTAGE, discount_value: int = 0) -> dict:
    """
    Price an invoice.

    total_before_discount = sum(quantity * unit_price_cents)
    percentage: discount = total * value / 100 rounded half-up, value in [0, 100]
    fixed:      discount = value (minor units), value in [0, total]
    net_total = total - discount
    """
    if discount_type not in DISCOUNT_TYPES:
        raise SaleError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")
    discount_value = _require_int("discount_value", discount_value)

    total = 0
    for idx, line in enumerate(lines, start=1):
        qty = _require_int(f"items[{idx}].quantity", line.get("quantity"))
        price = _require_int(f"items[{idx}].unit_price_cents", line.get("unit_price_cents"))
        if qty < 1:
            raise SaleError(f"Item {idx}: quantity must be at least 1")
        if price < 0:
            raise SaleError(f"Item {idx}: unit_price_cents must be >= 0")
        total += qty * price

    if discount_type == DISCOUNT_PERCENTAGE:
        if discount_value < 0 or discount_value > 100:
            raise SaleError("Percentage discount must be between 0 and 100")
        # half-up rounding to whole minor units
        discount = (total * discount_value + 50) // 100
    else:
        if discount_value < 0 or discount_value > total:
            raise SaleError("Fixed discount must be between 0 and the invoice total")
        discount = discount_value

    if total > MAX_AMOUNT_CENTS:
        raise SaleError(f"Invoice total cannot exceed {MAX_AMOUNT_CENTS}")

    return {
        "total_before_discount_cents": total,
        "discount_cents": discount,
        "net_total_cents": total - discount,
    }


# =============================================================================
# INVOICES
# =============================================================================

def create_invoice(
    *,
    items: list[dict],
    actor: User,
    discount_type: str = DISCOUNT_PERCENTAGE,
    discount_value: int = 0,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    notes: str | None = None,
) -> Invoice:
    """
    Ring up a sale on the actor's branch.

    items: [{"product_id": int, "quantity": int, "unit_price_cents": int?}]
    unit_price_cents defaults to the product's retail price.
    """
    if not items:
        raise SaleError("At least one item is required")

    try:
        priced = []
        for idx, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise SaleError(f"Item {idx} must be an object")
            product_id = _require_int(f"items[{idx}].product_id", item.get("product_id"))
            product = db.session.get(Product, product_id)
            if product is None or product.is_deleted or not visible(actor, product):
                raise SaleError(f"Product {product_id} not found")
            unit_price = item.get("unit_price_cents", product.retail_price_cents)
            priced.append({
                "product_id": product.id,
                "name": product.name,
                "quantity": item.get("quantity"),
                "unit_price_cents": unit_price,
            })

        totals = compute_invoice_totals(priced, discount_type, discount_value)

        invoice = Invoice(
            branch_id=actor.branch_id,
            discount_type=discount_type,
            discount_value=discount_value,
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
            created_by_user_id=actor.id,
            creator_username=actor.username,
            occurred_at=utcnow(),
            **totals,
        )
        for line in priced:
            invoice.lines.append(InvoiceLine(
                subtotal_cents=line["quantity"] * line["unit_price_cents"],
                **line,
            ))
        db.session.add(invoice)
        db.session.flush()

        for line in priced:
            adjust_stock(line["product_id"], -line["quantity"])

        if invoice.net_total_cents > 0:
            add_entry(
                branch_id=invoice.branch_id,
                entry_type="in",
                source="sale",
                amount_cents=invoice.net_total_cents,
                reference_id=invoice.id,
                notes=f"Invoice {invoice.id}",
                created_by_user_id=actor.id,
            )

        append_audit_event(
            event_type="SALE_CREATED",
            entity_type="invoice",
            entity_id=invoice.id,
            branch_id=invoice.branch_id,
            actor_user_id=actor.id,
            amount_cents=invoice.net_total_cents,
            occurred_at=invoice.occurred_at,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Invoice %s created: net=%s lines=%s", invoice.id, invoice.net_total_cents, len(priced))
    return invoice


def get_invoice(invoice_id: int, user: User | None = None) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or (user is not None and not visible(user, invoice)):
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def delete_invoice(*, invoice_id: int, reason: str, actor: User) -> Invoice:
    """Void an invoice: soft delete, restore stock, refund the treasury."""
    if not reason or not reason.strip():
        raise SaleError("A deletion reason is required")

    invoice = get_invoice(invoice_id, actor)
    if invoice.is_deleted:
        raise SaleError("Invoice is already deleted")
    if any(not r.is_deleted for r in invoice.returns):
        raise SaleError("Invoice has returns; it cannot be deleted")

    try:
        invoice.is_deleted = True
        invoice.deletion_reason = reason.strip()
        invoice.deleted_at = utcnow()
        invoice.deleted_by_user_id = actor.id

        for line in invoice.lines:
            adjust_stock(line.product_id, line.quantity)

        if invoice.net_total_cents > 0:
            add_entry(
                branch_id=invoice.branch_id,
                entry_type="out",
                source="sale_void",
                amount_cents=invoice.net_total_cents,
                reference_id=invoice.id,
                notes=invoice.deletion_reason,
                created_by_user_id=actor.id,
            )

        append_audit_event(
            event_type="SALE_DELETED",
            entity_type="invoice",
            entity_id=invoice.id,
            branch_id=invoice.branch_id,
            actor_user_id=actor.id,
            amount_cents=-invoice.net_total_cents,
            occurred_at=invoice.deleted_at,
            note=invoice.deletion_reason,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Invoice %s deleted: %s", invoice.id, invoice.deletion_reason)
    return invoice


def list_invoices(
    user: User,
    *,
    period: str | None = None,
    on: date | None = None,
    search: str | None = None,
    include_deleted: bool = False,
) -> list[Invoice]:
    """
    Visible invoices, newest first.

    period: "daily" | "monthly" | "yearly" around `on` (default today).
    search: invoice id, customer name/phone or creator username.
    """
    q = scope_query(db.session.query(Invoice), Invoice, user)
    if not include_deleted:
        q = q.filter(Invoice.is_deleted.is_(False))
    if search:
        term = search.strip()
        pattern = f"%{term}%"
        clauses = [
            Invoice.customer_name.ilike(pattern),
            Invoice.customer_phone.ilike(pattern),
            Invoice.creator_username.ilike(pattern),
        ]
        if term.isdigit():
            clauses.append(Invoice.id == int(term))
        q = q.filter(or_(*clauses))

    invoices = q.order_by(Invoice.occurred_at.desc(), Invoice.id.desc()).all()
    if period is not None:
        anchor = on or utcnow().date()
        try:
            invoices = [inv for inv in invoices if in_period(inv.occurred_at, anchor, period)]
        except ValueError as exc:
            raise SaleError(str(exc))
    return invoices


# =============================================================================
# SALES RETURNS
# =============================================================================

def _sold_minus_returned(invoice: Invoice) -> dict[int, int]:
    returned: dict[int, int] = {}
    for ret in invoice.returns:
        if ret.is_deleted:
            continue
        for line in ret.lines:
            returned[line.invoice_line_id] = returned.get(line.invoice_line_id, 0) + line.quantity
    return {line.id: max(0, line.quantity - returned.get(line.id, 0)) for line in invoice.lines}


def create_sales_return(
    *,
    invoice_id: int,
    quantities: dict,
    actor: User,
    notes: str | None = None,
) -> SalesReturn:
    """
    Take goods back from a customer.

    quantities maps product_id -> qty; each is clamped to what is still
    returnable on the invoice. Refund is priced at the invoiced unit price.
    """
    if not isinstance(quantities, dict):
        raise SaleError("quantities must be an object of product_id -> quantity")

    invoice = get_invoice(invoice_id, actor)
    if invoice.is_deleted:
        raise SaleError("Cannot return items from a deleted invoice")

    try:
        returnable = _sold_minus_returned(invoice)
        picked = []
        for raw_product_id, raw_qty in quantities.items():
            try:
                product_id = int(raw_product_id)
            except (TypeError, ValueError):
                raise SaleError(f"Invalid product id: {raw_product_id!r}")
            wanted = max(0, _require_int(f"quantities[{product_id}]", raw_qty))
            lines = [line for line in invoice.lines if line.product_id == product_id]
            if not lines:
                raise SaleError(f"Product {product_id} is not on invoice {invoice.id}")
            for line in lines:
                take = min(wanted, returnable.get(line.id, 0))
                if take > 0:
                    picked.append((line, take))
                    wanted -= take

        total_refund = sum(line.unit_price_cents * qty for line, qty in picked)
        if total_refund <= 0:
            raise SaleError("Nothing to return: refund total must be positive")

        ret = SalesReturn(
            invoice_id=invoice.id,
            branch_id=invoice.branch_id,
            total_refund_cents=total_refund,
            notes=notes,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        for line, qty in picked:
            ret.lines.append(SalesReturnLine(
                invoice_line_id=line.id,
                product_id=line.product_id,
                name=line.name,
                quantity=qty,
                unit_price_cents=line.unit_price_cents,
                subtotal_cents=qty * line.unit_price_cents,
            ))
        db.session.add(ret)
        db.session.flush()

        for line, qty in picked:
            adjust_stock(line.product_id, qty)

        add_entry(
            branch_id=invoice.branch_id,
            entry_type="out",
            source="sale_return",
            amount_cents=total_refund,
            reference_id=ret.id,
            notes=f"Return on invoice {invoice.id}",
            created_by_user_id=actor.id,
        )

        append_audit_event(
            event_type="SALE_RETURN_CREATED",
            entity_type="sales_return",
            entity_id=ret.id,
            branch_id=invoice.branch_id,
            actor_user_id=actor.id,
            amount_cents=total_refund,
            occurred_at=ret.occurred_at,
            note=f"invoice={invoice.id}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Sales return %s on invoice %s: refund=%s", ret.id, invoice.id, total_refund)
    return ret


def list_sales_returns(user: User) -> list[SalesReturn]:
    q = scope_query(db.session.query(SalesReturn), SalesReturn, user)
    return (
        q.filter(SalesReturn.is_deleted.is_(False))
        .order_by(SalesReturn.occurred_at.desc(), SalesReturn.id.desc())
        .all()
    )


# =============================================================================
# EXPENSES
# =============================================================================

def create_expense(
    *,
    description: str,
    amount_cents: int,
    actor: User,
    category: str | None = None,
) -> Expense:
    if not description or not description.strip():
        raise SaleError("description is required")
    amount = _require_int("amount_cents", amount_cents)
    if amount <= 0:
        raise SaleError("amount_cents must be positive")
    if amount > MAX_AMOUNT_CENTS:
        raise SaleError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")

    try:
        expense = Expense(
            branch_id=actor.branch_id,
            description=description.strip(),
            amount_cents=amount,
            category=category,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        db.session.add(expense)
        db.session.flush()

        add_entry(
            branch_id=expense.branch_id,
            entry_type="out",
            source="expense",
            amount_cents=amount,
            reference_id=expense.id,
            notes=expense.description,
            created_by_user_id=actor.id,
        )
        append_audit_event(
            event_type="EXPENSE_RECORDED",
            entity_type="expense",
            entity_id=expense.id,
            branch_id=expense.branch_id,
            actor_user_id=actor.id,
            amount_cents=amount,
            occurred_at=expense.occurred_at,
            note=expense.description,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return expense


def list_expenses(user: User) -> list[Expense]:
    q = scope_query(db.session.query(Expense), Expense, user)
    return q.order_by(Expense.occurred_at.desc(), Expense.id.desc()).all()
