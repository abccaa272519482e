# Overview: Flask API routes for product operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..models import Product
from ..services import product_service
from ..services.product_service import ProductNotFoundError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    ConflictError,
    coerce_int,
    validate_payload,
)


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


PRODUCT_PATCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "wholesale_price_cents",
        "retail_price_cents",
        "low_stock_threshold",
    },
)


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products_route():
    """
    Query parameters:
    - include_deleted: include archived products (default: false)
    - search: name or code substring
    - branch_id: head office only, narrow to one branch
    """
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    products = product_service.list_products(
        g.current_user,
        include_deleted=include_deleted,
        search=request.args.get("search"),
        branch_id=request.args.get("branch_id", type=int),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_PRODUCTS")
def low_stock_route():
    products = product_service.low_stock_products(g.current_user)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product_route(product_id: int):
    try:
        return jsonify(product_service.get_product(product_id, g.current_user).to_dict())
    except ProductNotFoundError:
        return jsonify({"error": "Product not found"}), 404


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Request body:
    {
        "name": "...",                    // required
        "description": "...",
        "wholesale_price_cents": 700,
        "retail_price_cents": 1000,
        "initial_stock": 10,
        "branch_id": 1,                   // head office only
        "low_stock_threshold": 5
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        threshold = data.get("low_stock_threshold")
        branch_id = data.get("branch_id")
        product = product_service.create_product(
            actor=g.current_user,
            name=data.get("name"),
            description=data.get("description"),
            wholesale_price_cents=coerce_int("wholesale_price_cents", data.get("wholesale_price_cents", 0)),
            retail_price_cents=coerce_int("retail_price_cents", data.get("retail_price_cents", 0)),
            initial_stock=coerce_int("initial_stock", data.get("initial_stock", 0)),
            branch_id=coerce_int("branch_id", branch_id) if branch_id is not None else None,
            low_stock_threshold=coerce_int("low_stock_threshold", threshold) if threshold is not None else None,
        )
        return jsonify(product.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_PATCH_POLICY,
            partial=True,
        )
        product = product_service.update_product(product_id=product_id, patch=patch, actor=g.current_user)
        return jsonify(product.to_dict())
    except ProductNotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Archive a product. Body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        product = product_service.delete_product(
            product_id=product_id,
            reason=data.get("reason"),
            actor=g.current_user,
        )
        return jsonify(product.to_dict())
    except ProductNotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
