# Overview: Flask API routes for treasury balance, logs and manual entries.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import treasury_service
from ..services.treasury_service import TreasuryError, TreasuryQuery
from backoffice.time_utils import parse_iso_date


treasury_bp = Blueprint("treasury", __name__, url_prefix="/api/treasury")


@treasury_bp.get("/balance")
@require_auth
@require_permission("VIEW_TREASURY")
def balance_route():
    """Balance over every visible log. Head office may pass branch_id."""
    result = treasury_service.branch_balance(
        g.current_user,
        branch_id=request.args.get("branch_id", type=int),
    )
    return jsonify(result)


@treasury_bp.get("/logs")
@require_auth
@require_permission("VIEW_TREASURY")
def list_logs_route():
    """
    Query parameters:
    - period: daily | monthly | yearly (omit for all time)
    - on: YYYY-MM-DD anchor for period (default today)
    - source: sale | expense | purchase | ... | all
    - search: reference id or notes substring
    - branch_id: head office only
    - sort: occurred_at | amount_cents | type | source
    - direction: asc | desc
    """
    try:
        on = parse_iso_date(request.args.get("on"))
    except ValueError:
        return jsonify({"error": "on must be an ISO-8601 date"}), 400

    query = TreasuryQuery(
        period=request.args.get("period") or None,
        on=on,
        source=request.args.get("source", "all"),
        search=request.args.get("search"),
        branch_id=request.args.get("branch_id", type=int),
        sort_key=request.args.get("sort", "occurred_at"),
        sort_direction=request.args.get("direction", "desc"),
    )
    try:
        logs = treasury_service.list_logs(g.current_user, query)
    except TreasuryError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "items": [log.to_dict() for log in logs],
        "count": len(logs),
        "balance_cents": treasury_service.compute_balance(logs),
    })


@treasury_bp.post("/entries")
@require_auth
@require_permission("MANAGE_TREASURY")
def record_entry_route():
    """
    Manual deposit or withdrawal.

    Request body:
    {
        "type": "in",                 // in | out
        "amount_cents": 10000,        // required, > 0
        "reference_id": "...",
        "notes": "...",
        "branch_id": 1                // head office only
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        log = treasury_service.record_entry(
            actor=g.current_user,
            entry_type=data.get("type"),
            amount_cents=data.get("amount_cents"),
            branch_id=data.get("branch_id"),
            reference_id=data.get("reference_id"),
            notes=data.get("notes"),
        )
        return jsonify(log.to_dict()), 201
    except TreasuryError as e:
        return jsonify({"error": str(e)}), 400
