"""
Purchase / Supplier Ledger Service

WHY: Every goods movement to or from a supplier changes three things that
must agree: product stock, the supplier's running aggregates and (when cash
moves) the branch treasury. Each public operation here performs all of its
writes in ONE transaction and commits once; on any failure nothing is
applied.

AGGREGATE RULES (Supplier, minor units):
- purchase:  total_supplied += total, total_paid += paid, total_debt += total - paid
- payment:   total_paid += amount, total_debt -= amount
- return:    total_debt -= refund   (debt_deduction, or cash not yet received)
             treasury "in"          (cash received; supplier untouched)

Aggregates are moved with a single `col = col + delta` UPDATE after locking
the supplier row. Balances are never computed in Python from a snapshot and
written back.

remaining_amount_cents on a purchase is computed once at creation and is NOT
rewritten by later payments or returns. purchase_outstanding_cents() derives
the live figure.
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import (
    Branch,
    Supplier,
    PurchaseRecord,
    PurchaseLine,
    SupplierPayment,
    PurchaseReturn,
    PurchaseReturnLine,
    Product,
    User,
)
from ..models.purchasing import (
    PAYMENT_STATUS_CASH,
    PAYMENT_STATUS_CREDIT,
    REFUND_METHOD_CASH,
    REFUND_METHOD_DEBT_DEDUCTION,
)
from ..validation import MAX_AMOUNT_CENTS
from .audit_service import append_audit_event
from .concurrency import lock_for_update, increment_columns
from .product_service import adjust_stock
from .supplier_service import SupplierNotFoundError
from .treasury_service import add_entry
from .visibility import scope_query, visible, is_head_office
from backoffice.time_utils import utcnow, to_utc_z


logger = logging.getLogger(__name__)

PAYMENT_STATUSES = (PAYMENT_STATUS_CASH, PAYMENT_STATUS_CREDIT)
REFUND_METHODS = (REFUND_METHOD_CASH, REFUND_METHOD_DEBT_DEDUCTION)
PURCHASE_FILTERS = ("all", "paid", "outstanding")


class PurchaseError(Exception):
    """Base class for purchase ledger errors."""
    pass


class PurchaseValidationError(PurchaseError):
    """Raised when purchase, payment or return input is invalid."""
    pass


class PurchaseNotFoundError(PurchaseError):
    """Raised when a purchase is not found (or not visible)."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _lock_supplier(supplier_id: int) -> Supplier:
    supplier = (
        lock_for_update(db.session.query(Supplier).filter(Supplier.id == supplier_id))
        .populate_existing()
        .first()
    )
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def _require_int(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise PurchaseValidationError(f"{name} must be an integer")
    return value


def _acting_branch(actor: User, branch_id: int | None) -> int | None:
    """Branch users always act on their own branch; head office may choose."""
    if is_head_office(actor):
        if branch_id is not None and db.session.get(Branch, branch_id) is None:
            raise PurchaseValidationError(f"Branch {branch_id} not found")
        return branch_id
    return actor.branch_id


def get_purchase(purchase_id: int, user: User | None = None) -> PurchaseRecord:
    purchase = db.session.get(PurchaseRecord, purchase_id)
    if not purchase or purchase.is_deleted or (user is not None and not visible(user, purchase)):
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def returned_quantities(purchase: PurchaseRecord) -> dict[int, int]:
    """Quantity already returned per purchase line id."""
    returned: dict[int, int] = {}
    for ret in purchase.returns:
        for line in ret.lines:
            returned[line.purchase_line_id] = returned.get(line.purchase_line_id, 0) + line.quantity
    return returned


def purchase_outstanding_cents(purchase: PurchaseRecord) -> int:
    """
    Live amount still owed on one purchase.

    total - paid at creation - payments tied to this purchase - debt-reducing
    returns of this purchase, floored at zero. The stored
    remaining_amount_cents is left as it was at creation.
    """
    paid_later = sum(p.amount_cents for p in purchase.payments)
    credited = sum(r.total_refund_cents for r in purchase.returns if r.reduces_debt)
    outstanding = purchase.total_amount_cents - purchase.paid_amount_cents - paid_later - credited
    return max(0, outstanding)


def purchase_to_dict(purchase: PurchaseRecord) -> dict:
    data = purchase.to_dict()
    data["outstanding_cents"] = purchase_outstanding_cents(purchase)
    data["default_refund_method"] = default_refund_method(purchase)
    return data


def default_refund_method(purchase: PurchaseRecord) -> str:
    """Cash purchases are refunded in cash by default; credit ones against the debt."""
    if purchase.payment_status == PAYMENT_STATUS_CASH:
        return REFUND_METHOD_CASH
    return REFUND_METHOD_DEBT_DEDUCTION


# =============================================================================
# PURCHASES
# =============================================================================

def _normalize_purchase_lines(items) -> list[dict]:
    if not items:
        raise PurchaseValidationError("At least one item is required")

    lines = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise PurchaseValidationError(f"Item {idx} must be an object")
        product_id = _require_int(f"items[{idx}].product_id", item.get("product_id"))
        quantity = _require_int(f"items[{idx}].quantity", item.get("quantity"))
        cost = _require_int(f"items[{idx}].cost_price_cents", item.get("cost_price_cents"))
        retail = item.get("retail_price_cents")
        if retail is not None:
            _require_int(f"items[{idx}].retail_price_cents", retail)

        if quantity < 1:
            raise PurchaseValidationError(f"Item {idx}: quantity must be at least 1")
        if cost < 0:
            raise PurchaseValidationError(f"Item {idx}: cost_price_cents must be >= 0")
        if cost > MAX_AMOUNT_CENTS:
            raise PurchaseValidationError(f"Item {idx}: cost_price_cents cannot exceed {MAX_AMOUNT_CENTS}")

        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "cost_price_cents": cost,
            "retail_price_cents": retail,
            "subtotal_cents": quantity * cost,
        })
    return lines


def record_purchase(
    *,
    supplier_id: int,
    supplier_invoice_no: str,
    items: list[dict],
    actor: User,
    payment_status: str = PAYMENT_STATUS_CASH,
    paid_amount_cents: int | None = None,
    notes: str | None = None,
    branch_id: int | None = None,
) -> PurchaseRecord:
    """
    Record a supplier invoice and apply all of its effects atomically.

    - inserts the purchase and its lines
    - increases each product's stock by the line quantity
    - supplier: total_supplied += total, total_paid += paid, total_debt += remaining
    - treasury "out" (source "purchase") when paid > 0
    - audit event

    For cash purchases paid_amount_cents defaults to the full total.

    Raises:
        PurchaseValidationError: bad input (no items, blank invoice number,
            quantity < 1, negative cost, paid outside [0, total])
        SupplierNotFoundError: unknown supplier
        ProductNotFoundError: unknown product on a line
    """
    invoice_no = (supplier_invoice_no or "").strip()
    if not invoice_no:
        raise PurchaseValidationError("supplier_invoice_no is required")
    if payment_status not in PAYMENT_STATUSES:
        raise PurchaseValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")

    lines = _normalize_purchase_lines(items)
    total = sum(line["subtotal_cents"] for line in lines)
    if total > MAX_AMOUNT_CENTS:
        raise PurchaseValidationError(f"Purchase total cannot exceed {MAX_AMOUNT_CENTS}")

    if paid_amount_cents is None:
        paid = total if payment_status == PAYMENT_STATUS_CASH else 0
    else:
        paid = _require_int("paid_amount_cents", paid_amount_cents)
    if paid < 0 or paid > total:
        raise PurchaseValidationError("paid_amount_cents must be between 0 and the purchase total")
    remaining = total - paid

    branch_id = _acting_branch(actor, branch_id)

    try:
        supplier = _lock_supplier(supplier_id)
        if supplier.is_deleted:
            raise PurchaseValidationError("Cannot purchase from an archived supplier")

        purchase = PurchaseRecord(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            supplier_invoice_no=invoice_no,
            branch_id=branch_id,
            total_amount_cents=total,
            paid_amount_cents=paid,
            remaining_amount_cents=remaining,
            payment_status=payment_status,
            notes=notes,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        db.session.add(purchase)

        for line in lines:
            product = db.session.get(Product, line["product_id"])
            if product is None or product.is_deleted or not visible(actor, product):
                raise PurchaseValidationError(f"Product {line['product_id']} not found")
            if branch_id is not None and product.branch_id != branch_id:
                raise PurchaseValidationError(
                    f"Product {product.id} does not belong to branch {branch_id}"
                )
            purchase.lines.append(PurchaseLine(name=product.name, **line))

        db.session.flush()

        for line in lines:
            adjust_stock(line["product_id"], line["quantity"])

        increment_columns(
            Supplier,
            supplier.id,
            total_supplied_cents=total,
            total_paid_cents=paid,
            total_debt_cents=remaining,
        )

        if paid > 0:
            add_entry(
                branch_id=branch_id,
                entry_type="out",
                source="purchase",
                amount_cents=paid,
                reference_id=purchase.id,
                notes=f"Purchase {invoice_no} from {supplier.name}",
                created_by_user_id=actor.id,
            )

        append_audit_event(
            event_type="PURCHASE_RECORDED",
            entity_type="purchase",
            entity_id=purchase.id,
            branch_id=branch_id,
            actor_user_id=actor.id,
            amount_cents=total,
            occurred_at=purchase.occurred_at,
            note=f"supplier={supplier.id} invoice={invoice_no} paid={paid}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Purchase %s recorded: supplier=%s total=%s paid=%s remaining=%s",
        purchase.id, supplier_id, total, paid, remaining,
    )
    return purchase


def list_purchases(
    user: User,
    *,
    status_filter: str = "all",
    supplier_id: int | None = None,
) -> list[PurchaseRecord]:
    """
    Visible purchases, newest first.

    status_filter: "paid" = remaining_amount <= 0, "outstanding" = remaining > 0.
    """
    if status_filter not in PURCHASE_FILTERS:
        raise PurchaseValidationError(f"filter must be one of: {', '.join(PURCHASE_FILTERS)}")

    q = scope_query(db.session.query(PurchaseRecord), PurchaseRecord, user)
    q = q.filter(PurchaseRecord.is_deleted.is_(False))
    if supplier_id is not None:
        q = q.filter(PurchaseRecord.supplier_id == supplier_id)
    if status_filter == "paid":
        q = q.filter(PurchaseRecord.remaining_amount_cents <= 0)
    elif status_filter == "outstanding":
        q = q.filter(PurchaseRecord.remaining_amount_cents > 0)
    return q.order_by(PurchaseRecord.occurred_at.desc(), PurchaseRecord.id.desc()).all()


def unpaid_purchases(supplier_id: int, user: User) -> list[PurchaseRecord]:
    """Credit purchases of one supplier that still show a remaining amount."""
    q = scope_query(db.session.query(PurchaseRecord), PurchaseRecord, user)
    return (
        q.filter(
            PurchaseRecord.supplier_id == supplier_id,
            PurchaseRecord.is_deleted.is_(False),
            PurchaseRecord.payment_status == PAYMENT_STATUS_CREDIT,
            PurchaseRecord.remaining_amount_cents > 0,
        )
        .order_by(PurchaseRecord.occurred_at.asc(), PurchaseRecord.id.asc())
        .all()
    )


# =============================================================================
# SUPPLIER PAYMENTS
# =============================================================================

def record_payment(
    *,
    supplier_id: int,
    amount_cents: int,
    actor: User,
    purchase_id: int | None = None,
    notes: str | None = None,
    branch_id: int | None = None,
) -> SupplierPayment:
    """
    Pay down a supplier's debt.

    Property: total_paid_new = total_paid_old + amount and
    total_debt_new = total_debt_old - amount, applied by one SQL UPDATE in
    the same transaction as the payment row and its treasury "out" entry.
    The debt may go negative (prepayment / overpayment).

    Raises:
        PurchaseValidationError: amount <= 0, or purchase not of this supplier
        SupplierNotFoundError: unknown supplier
    """
    amount = _require_int("amount_cents", amount_cents)
    if amount <= 0:
        raise PurchaseValidationError("amount_cents must be positive")
    if amount > MAX_AMOUNT_CENTS:
        raise PurchaseValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")

    try:
        supplier = _lock_supplier(supplier_id)
        if supplier.is_deleted:
            raise PurchaseValidationError("Cannot pay an archived supplier")

        purchase = None
        if purchase_id is not None:
            purchase = db.session.get(PurchaseRecord, purchase_id)
            if (
                purchase is None
                or purchase.is_deleted
                or purchase.supplier_id != supplier.id
                or not visible(actor, purchase)
            ):
                raise PurchaseValidationError(
                    f"Purchase {purchase_id} does not belong to supplier {supplier.id}"
                )

        if branch_id is None and purchase is not None:
            branch_id = purchase.branch_id
        branch_id = _acting_branch(actor, branch_id)

        payment = SupplierPayment(
            supplier_id=supplier.id,
            purchase_id=purchase.id if purchase else None,
            branch_id=branch_id,
            amount_cents=amount,
            notes=notes,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        increment_columns(
            Supplier,
            supplier.id,
            total_paid_cents=amount,
            total_debt_cents=-amount,
        )

        add_entry(
            branch_id=branch_id,
            entry_type="out",
            source="supplier_payment",
            amount_cents=amount,
            reference_id=payment.id,
            notes=f"Payment to {supplier.name}",
            created_by_user_id=actor.id,
        )

        append_audit_event(
            event_type="SUPPLIER_PAYMENT_RECORDED",
            entity_type="supplier_payment",
            entity_id=payment.id,
            branch_id=branch_id,
            actor_user_id=actor.id,
            amount_cents=amount,
            occurred_at=payment.occurred_at,
            note=f"supplier={supplier.id} purchase={payment.purchase_id}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Supplier payment %s: supplier=%s amount=%s", payment.id, supplier_id, amount)
    return payment


def list_payments(user: User, *, supplier_id: int | None = None) -> list[SupplierPayment]:
    q = scope_query(db.session.query(SupplierPayment), SupplierPayment, user)
    if supplier_id is not None:
        q = q.filter(SupplierPayment.supplier_id == supplier_id)
    return q.order_by(SupplierPayment.occurred_at.desc(), SupplierPayment.id.desc()).all()


# =============================================================================
# PURCHASE RETURNS
# =============================================================================

def _clamp_return_lines(purchase: PurchaseRecord, quantities: dict) -> list[tuple[PurchaseLine, int]]:
    """
    Map requested {product_id: qty} onto purchase lines.

    Each request is clamped to [0, purchased - already returned]; when a
    product appears on several lines the quantity fills them in order.
    Zero-quantity results are dropped.
    """
    if not isinstance(quantities, dict):
        raise PurchaseValidationError("quantities must be an object of product_id -> quantity")

    already = returned_quantities(purchase)
    picked: list[tuple[PurchaseLine, int]] = []

    for raw_product_id, raw_qty in quantities.items():
        try:
            product_id = int(raw_product_id)
        except (TypeError, ValueError):
            raise PurchaseValidationError(f"Invalid product id: {raw_product_id!r}")
        wanted = max(0, _require_int(f"quantities[{product_id}]", raw_qty))

        candidates = [line for line in purchase.lines if line.product_id == product_id]
        if not candidates:
            raise PurchaseValidationError(f"Product {product_id} is not on purchase {purchase.id}")

        for line in candidates:
            if wanted <= 0:
                break
            available = max(0, line.quantity - already.get(line.id, 0))
            take = min(wanted, available)
            if take > 0:
                picked.append((line, take))
                wanted -= take

    return picked


def record_return(
    *,
    purchase_id: int,
    quantities: dict,
    actor: User,
    refund_method: str | None = None,
    is_money_received: bool = False,
    notes: str | None = None,
) -> PurchaseReturn:
    """
    Send goods from one purchase back to its supplier.

    Quantities are clamped to what is still returnable; total_refund is
    sum(qty * cost) and must be positive. is_money_received only applies to
    cash refunds. In one transaction:

    - inserts the return and its lines
    - decreases each product's stock by exactly the returned quantity
    - then exactly one of:
        debt_deduction, or cash not received -> supplier total_debt -= refund
        cash received                         -> treasury "in" (source "purchase_return")
    - audit event

    refund_method defaults to default_refund_method(purchase).

    Raises:
        PurchaseNotFoundError, PurchaseValidationError, InsufficientStockError
    """
    purchase = get_purchase(purchase_id, actor)

    method = refund_method or default_refund_method(purchase)
    if method not in REFUND_METHODS:
        raise PurchaseValidationError(f"refund_method must be one of: {', '.join(REFUND_METHODS)}")
    money_received = bool(is_money_received) and method == REFUND_METHOD_CASH

    try:
        # Serialize returns against the same supplier so the returnable
        # quantity check and the inserts see a consistent history.
        supplier = _lock_supplier(purchase.supplier_id)
        db.session.refresh(purchase)

        picked = _clamp_return_lines(purchase, quantities)
        total_refund = sum(line.cost_price_cents * qty for line, qty in picked)
        if total_refund <= 0:
            raise PurchaseValidationError("Nothing to return: refund total must be positive")

        branch_id = purchase.branch_id if is_head_office(actor) else actor.branch_id

        ret = PurchaseReturn(
            original_purchase_id=purchase.id,
            supplier_id=supplier.id,
            branch_id=branch_id,
            total_refund_cents=total_refund,
            refund_method=method,
            is_money_received=money_received,
            notes=notes,
            created_by_user_id=actor.id,
            occurred_at=utcnow(),
        )
        for line, qty in picked:
            ret.lines.append(PurchaseReturnLine(
                purchase_line_id=line.id,
                product_id=line.product_id,
                name=line.name,
                quantity=qty,
                cost_price_cents=line.cost_price_cents,
                subtotal_cents=qty * line.cost_price_cents,
            ))
        db.session.add(ret)
        db.session.flush()

        for line, qty in picked:
            adjust_stock(line.product_id, -qty)

        if ret.reduces_debt:
            increment_columns(Supplier, supplier.id, total_debt_cents=-total_refund)
        else:
            add_entry(
                branch_id=branch_id,
                entry_type="in",
                source="purchase_return",
                amount_cents=total_refund,
                reference_id=ret.id,
                notes=f"Cash refund for return on purchase {purchase.supplier_invoice_no}",
                created_by_user_id=actor.id,
            )

        append_audit_event(
            event_type="PURCHASE_RETURN_RECORDED",
            entity_type="purchase_return",
            entity_id=ret.id,
            branch_id=branch_id,
            actor_user_id=actor.id,
            amount_cents=total_refund,
            occurred_at=ret.occurred_at,
            note=f"purchase={purchase.id} method={method} received={money_received}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Purchase return %s: purchase=%s refund=%s method=%s received=%s",
        ret.id, purchase_id, total_refund, method, money_received,
    )
    return ret


def list_returns(user: User, *, supplier_id: int | None = None) -> list[PurchaseReturn]:
    q = scope_query(db.session.query(PurchaseReturn), PurchaseReturn, user)
    if supplier_id is not None:
        q = q.filter(PurchaseReturn.supplier_id == supplier_id)
    return q.order_by(PurchaseReturn.occurred_at.desc(), PurchaseReturn.id.desc()).all()


# =============================================================================
# STATEMENT
# =============================================================================

def supplier_statement(
    supplier_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
) -> dict:
    """
    Account statement for one supplier over an inclusive date range.

    Purchases debit their total and credit whatever was paid up front;
    later payments and returns are credits. A return whose cash came back
    is debited by the same amount.
    Rows are sorted ascending by time and carry a running balance.
    """
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    if start and end and end < start:
        raise PurchaseValidationError("end must not be before start")

    def _in_range(moment) -> bool:
        day = moment.date()
        if start and day < start:
            return False
        if end and day > end:
            return False
        return True

    rows = []
    for p in supplier.purchases:
        if p.is_deleted or not _in_range(p.occurred_at):
            continue
        rows.append({
            "kind": "purchase",
            "reference_id": p.id,
            "occurred_at": p.occurred_at,
            "description": f"Invoice {p.supplier_invoice_no}",
            "debit_cents": p.total_amount_cents,
            "credit_cents": p.paid_amount_cents,
        })
    for pay in supplier.payments:
        if not _in_range(pay.occurred_at):
            continue
        rows.append({
            "kind": "payment",
            "reference_id": pay.id,
            "occurred_at": pay.occurred_at,
            "description": pay.notes or "Payment",
            "debit_cents": 0,
            "credit_cents": pay.amount_cents,
        })
    for ret in supplier.purchase_returns:
        if not _in_range(ret.occurred_at):
            continue
        rows.append({
            "kind": "return",
            "reference_id": ret.id,
            "occurred_at": ret.occurred_at,
            "description": f"Return on purchase {ret.original_purchase_id} ({ret.refund_method})",
            "debit_cents": 0 if ret.reduces_debt else ret.total_refund_cents,
            "credit_cents": ret.total_refund_cents,
        })

    rows.sort(key=lambda r: (r["occurred_at"], r["kind"], r["reference_id"]))

    running = 0
    for row in rows:
        running += row["debit_cents"] - row["credit_cents"]
        row["balance_cents"] = running
        row["occurred_at"] = to_utc_z(row["occurred_at"])

    total_debit = sum(r["debit_cents"] for r in rows)
    total_credit = sum(r["credit_cents"] for r in rows)
    return {
        "supplier": supplier.to_dict(),
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "rows": rows,
        "total_debit_cents": total_debit,
        "total_credit_cents": total_credit,
        "net_cents": total_debit - total_credit,
    }
