# Overview: Flask API routes for invoices, sales returns and expenses.

"""
Sales Routes

SECURITY: All routes require authentication.
- Creating invoices and sales returns requires CREATE_SALE
- Deleting (voiding) invoices requires DELETE_SALE
- Expenses require MANAGE_EXPENSES

Every list is branch-scoped: non-head-office users only see their branch.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import sales_service
from ..services.sales_service import SaleError, InvoiceNotFoundError
from ..services.product_service import InsufficientStockError, ProductNotFoundError
from backoffice.time_utils import parse_iso_date


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _stock_error(e: InsufficientStockError):
    return jsonify({
        "error": str(e),
        "product_id": e.product_id,
        "available": e.available,
        "requested": e.requested,
    }), 409


# =============================================================================
# INVOICES
# =============================================================================

@sales_bp.get("/invoices")
@require_auth
@require_permission("CREATE_SALE")
def list_invoices_route():
    """
    Query parameters:
    - period: daily | monthly | yearly
    - on: YYYY-MM-DD anchor for period (default today)
    - search: invoice id, customer or cashier
    - include_deleted: true to include voided invoices
    """
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    try:
        on = parse_iso_date(request.args.get("on"))
    except ValueError:
        return jsonify({"error": "on must be an ISO-8601 date"}), 400

    try:
        invoices = sales_service.list_invoices(
            g.current_user,
            period=request.args.get("period") or None,
            on=on,
            search=request.args.get("search"),
            include_deleted=include_deleted,
        )
    except SaleError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [inv.to_dict() for inv in invoices], "count": len(invoices)})


@sales_bp.get("/invoices/<int:invoice_id>")
@require_auth
@require_permission("CREATE_SALE")
def get_invoice_route(invoice_id: int):
    try:
        invoice = sales_service.get_invoice(invoice_id, g.current_user)
    except InvoiceNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    data = invoice.to_dict()
    data["returns"] = [r.to_dict() for r in invoice.returns if not r.is_deleted]
    return jsonify(data)


@sales_bp.post("/invoices")
@require_auth
@require_permission("CREATE_SALE")
def create_invoice_route():
    """
    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1000}],
        "discount_type": "percentage",   // percentage | fixed
        "discount_value": 10,
        "customer_name": "...",
        "customer_phone": "...",
        "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        invoice = sales_service.create_invoice(
            items=data.get("items") or [],
            actor=g.current_user,
            discount_type=data.get("discount_type", "percentage"),
            discount_value=data.get("discount_value", 0),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
        )
        return jsonify(invoice.to_dict()), 201
    except InsufficientStockError as e:
        return _stock_error(e)
    except (SaleError, ProductNotFoundError) as e:
        return jsonify({"error": str(e)}), 400


@sales_bp.delete("/invoices/<int:invoice_id>")
@require_auth
@require_permission("DELETE_SALE")
def delete_invoice_route(invoice_id: int):
    """Void an invoice. Body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        invoice = sales_service.delete_invoice(
            invoice_id=invoice_id,
            reason=data.get("reason"),
            actor=g.current_user,
        )
        return jsonify(invoice.to_dict())
    except InvoiceNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    except SaleError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# SALES RETURNS
# =============================================================================

@sales_bp.get("/returns")
@require_auth
@require_permission("CREATE_SALE")
def list_sales_returns_route():
    returns = sales_service.list_sales_returns(g.current_user)
    return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)})


@sales_bp.post("/invoices/<int:invoice_id>/returns")
@require_auth
@require_permission("CREATE_SALE")
def create_sales_return_route(invoice_id: int):
    """
    Request body:
    {
        "quantities": {"<product_id>": 1},
        "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        ret = sales_service.create_sales_return(
            invoice_id=invoice_id,
            quantities=data.get("quantities") or {},
            actor=g.current_user,
            notes=data.get("notes"),
        )
        return jsonify(ret.to_dict()), 201
    except InvoiceNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    except SaleError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# EXPENSES
# =============================================================================

@sales_bp.get("/expenses")
@require_auth
@require_permission("MANAGE_EXPENSES")
def list_expenses_route():
    expenses = sales_service.list_expenses(g.current_user)
    return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)})


@sales_bp.post("/expenses")
@require_auth
@require_permission("MANAGE_EXPENSES")
def create_expense_route():
    """Body: {"description": "...", "amount_cents": 5000, "category": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        expense = sales_service.create_expense(
            description=data.get("description"),
            amount_cents=data.get("amount_cents"),
            actor=g.current_user,
            category=data.get("category"),
        )
        return jsonify(expense.to_dict()), 201
    except SaleError as e:
        return jsonify({"error": str(e)}), 400
