# Overview: Flask API routes for suppliers, purchases, payments and purchase returns.

"""
Supplier Routes

SECURITY: All routes require authentication.
- View operations require VIEW_SUPPLIERS
- Create/update/archive suppliers require MANAGE_SUPPLIERS
- Purchases and purchase returns require RECORD_PURCHASES
- Supplier payments require RECORD_SUPPLIER_PAYMENTS

Suppliers are global; purchases, payments and returns are branch-scoped.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import supplier_service
from ..services import purchase_service
from ..services.supplier_service import (
    SupplierNotFoundError,
    SupplierValidationError,
    OutstandingBalanceError,
)
from ..services.purchase_service import PurchaseNotFoundError, PurchaseValidationError
from ..services.product_service import InsufficientStockError
from backoffice.time_utils import parse_iso_date


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_suppliers_route():
    """
    List suppliers.

    Query parameters:
    - include_deleted: Include archived suppliers (default: false)
    - search: name, phone or tax number substring
    - limit: Maximum results (default: 100)
    - offset: Pagination offset (default: 0)

    Returns:
        {items: Supplier[], count: int, limit: int, offset: int}
    """
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    search = request.args.get("search")
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500
    if offset < 0:
        offset = 0

    suppliers, total = supplier_service.list_suppliers(
        include_deleted=include_deleted,
        search=search,
        limit=limit,
        offset=offset,
    )

    return jsonify({
        "items": [s.to_dict() for s in suppliers],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    """
    Request body:
    {
        "name": "Supplier Name",        // required
        "phone": "...",
        "tax_number": "...",
        "commercial_register": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    name = data.get("name")
    if not name:
        return jsonify({"error": "name is required"}), 400

    try:
        supplier = supplier_service.create_supplier(
            name=name,
            phone=data.get("phone"),
            tax_number=data.get("tax_number"),
            commercial_register=data.get("commercial_register"),
            actor=g.current_user,
        )
        return jsonify(supplier.to_dict()), 201
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 400


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def get_supplier_route(supplier_id: int):
    try:
        return jsonify(supplier_service.get_supplier(supplier_id).to_dict())
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.update_supplier(
            supplier_id=supplier_id,
            patch=data,
            actor=g.current_user,
        )
        return jsonify(supplier.to_dict())
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 400


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def delete_supplier_route(supplier_id: int):
    """
    Archive a supplier. Refused with 409 while total_debt_cents != 0.

    Body (optional): {"reason": "..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.delete_supplier(
            supplier_id=supplier_id,
            reason=data.get("reason"),
            actor=g.current_user,
        )
        return jsonify(supplier.to_dict())
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404
    except OutstandingBalanceError as e:
        return jsonify({"error": str(e), "balance_cents": e.balance_cents}), 409
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 400


@suppliers_bp.get("/<int:supplier_id>/statement")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def supplier_statement_route(supplier_id: int):
    """Query parameters: start, end (YYYY-MM-DD, inclusive, optional)."""
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 dates"}), 400

    try:
        return jsonify(purchase_service.supplier_statement(supplier_id, start=start, end=end))
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400


@suppliers_bp.get("/<int:supplier_id>/unpaid-purchases")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def unpaid_purchases_route(supplier_id: int):
    purchases = purchase_service.unpaid_purchases(supplier_id, g.current_user)
    items = [purchase_service.purchase_to_dict(p) for p in purchases]
    return jsonify({"items": items, "count": len(items)})


# =============================================================================
# PURCHASES
# =============================================================================

@suppliers_bp.get("/purchases")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_purchases_route():
    """Query parameters: filter (all | paid | outstanding), supplier_id."""
    try:
        purchases = purchase_service.list_purchases(
            g.current_user,
            status_filter=request.args.get("filter", "all"),
            supplier_id=request.args.get("supplier_id", type=int),
        )
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400
    items = [purchase_service.purchase_to_dict(p) for p in purchases]
    return jsonify({"items": items, "count": len(items)})


@suppliers_bp.get("/purchases/<int:purchase_id>")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id, g.current_user)
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    data = purchase_service.purchase_to_dict(purchase)
    data["returned_quantities"] = {
        str(line_id): qty for line_id, qty in purchase_service.returned_quantities(purchase).items()
    }
    return jsonify(data)


@suppliers_bp.post("/<int:supplier_id>/purchases")
@require_auth
@require_permission("RECORD_PURCHASES")
def record_purchase_route(supplier_id: int):
    """
    Request body:
    {
        "supplier_invoice_no": "INV-1001",       // required
        "items": [{"product_id": 1, "quantity": 10, "cost_price_cents": 700,
                   "retail_price_cents": 1000}],
        "payment_status": "cash",               // cash | credit
        "paid_amount_cents": 7000,              // defaults to total for cash, 0 for credit
        "notes": "...",
        "branch_id": 1                          // head office only
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.record_purchase(
            supplier_id=supplier_id,
            supplier_invoice_no=data.get("supplier_invoice_no"),
            items=data.get("items") or [],
            actor=g.current_user,
            payment_status=data.get("payment_status", "cash"),
            paid_amount_cents=data.get("paid_amount_cents"),
            notes=data.get("notes"),
            branch_id=data.get("branch_id"),
        )
        return jsonify(purchase_service.purchase_to_dict(purchase)), 201
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# PAYMENTS
# =============================================================================

@suppliers_bp.get("/payments")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_payments_route():
    payments = purchase_service.list_payments(
        g.current_user,
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})


@suppliers_bp.post("/<int:supplier_id>/payments")
@require_auth
@require_permission("RECORD_SUPPLIER_PAYMENTS")
def record_payment_route(supplier_id: int):
    """Body: {"amount_cents": 5000, "purchase_id": 3, "notes": "...", "branch_id": 1}"""
    data = request.get_json(silent=True) or {}
    try:
        payment = purchase_service.record_payment(
            supplier_id=supplier_id,
            amount_cents=data.get("amount_cents"),
            actor=g.current_user,
            purchase_id=data.get("purchase_id"),
            notes=data.get("notes"),
            branch_id=data.get("branch_id"),
        )
        return jsonify(payment.to_dict()), 201
    except SupplierNotFoundError:
        return jsonify({"error": "Supplier not found"}), 404
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# PURCHASE RETURNS
# =============================================================================

@suppliers_bp.get("/returns")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_returns_route():
    returns = purchase_service.list_returns(
        g.current_user,
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)})


@suppliers_bp.post("/purchases/<int:purchase_id>/returns")
@require_auth
@require_permission("RECORD_PURCHASES")
def record_return_route(purchase_id: int):
    """
    Request body:
    {
        "quantities": {"<product_id>": 2},
        "refund_method": "cash",         // cash | debt_deduction, default by purchase
        "is_money_received": true,
        "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        ret = purchase_service.record_return(
            purchase_id=purchase_id,
            quantities=data.get("quantities") or {},
            actor=g.current_user,
            refund_method=data.get("refund_method"),
            is_money_received=bool(data.get("is_money_received", False)),
            notes=data.get("notes"),
        )
        return jsonify(ret.to_dict()), 201
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    except InsufficientStockError as e:
        return jsonify({
            "error": str(e),
            "product_id": e.product_id,
            "available": e.available,
            "requested": e.requested,
        }), 409
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400
