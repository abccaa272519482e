# Overview: Recent-activity feed merged from the financial tables.

from __future__ import annotations

from ..extensions import db
from ..models import Invoice, Expense, SalesReturn, StaffPayment, PurchaseRecord, User
from .audit_service import list_audit_events
from .visibility import scope_query
from backoffice.time_utils import to_utc_z


DEFAULT_LIMITS = {
    "sale": 30,
    "expense": 15,
    "return": 10,
    "payment": 15,
    "purchase": 15,
}


def _latest(model, user: User, limit: int):
    q = scope_query(db.session.query(model), model, user)
    return q.order_by(model.occurred_at.desc(), model.id.desc()).limit(limit).all()


def _usernames(ids) -> dict[int, str]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    rows = db.session.query(User.id, User.username).filter(User.id.in_(ids)).all()
    return {row.id: row.username for row in rows}


def recent_activity(user: User, limits: dict | None = None) -> list[dict]:
    """
    Latest sales, expenses, sales returns, staff payments and purchases the
    user may see, merged newest first.

    Each source is capped independently (DEFAULT_LIMITS) before merging.
    """
    caps = dict(DEFAULT_LIMITS)
    caps.update(limits or {})

    invoices = [i for i in _latest(Invoice, user, caps["sale"]) if not i.is_deleted]
    expenses = _latest(Expense, user, caps["expense"])
    returns = [r for r in _latest(SalesReturn, user, caps["return"]) if not r.is_deleted]
    payments = _latest(StaffPayment, user, caps["payment"])
    purchases = [p for p in _latest(PurchaseRecord, user, caps["purchase"]) if not p.is_deleted]

    names = _usernames(
        [e.created_by_user_id for e in expenses]
        + [r.created_by_user_id for r in returns]
        + [p.created_by_user_id for p in payments]
        + [p.created_by_user_id for p in purchases]
    )

    entries = []
    for inv in invoices:
        entries.append(("sale", inv.id, inv.creator_username, f"Sales invoice #{inv.id}",
                        inv.net_total_cents, inv.occurred_at))
    for exp in expenses:
        entries.append(("expense", exp.id, names.get(exp.created_by_user_id), f"Expense: {exp.description}",
                        exp.amount_cents, exp.occurred_at))
    for ret in returns:
        entries.append(("return", ret.id, names.get(ret.created_by_user_id), f"Sales return #{ret.id}",
                        ret.total_refund_cents, ret.occurred_at))
    for pay in payments:
        entries.append(("payment", pay.id, names.get(pay.created_by_user_id),
                        f"Staff {pay.payment_type} #{pay.id}", pay.amount_cents, pay.occurred_at))
    for pur in purchases:
        entries.append(("purchase", pur.id, names.get(pur.created_by_user_id),
                        f"Purchase from {pur.supplier_name} #{pur.id}", pur.total_amount_cents, pur.occurred_at))

    entries.sort(key=lambda e: e[5], reverse=True)
    return [
        {
            "type": kind,
            "reference_id": ref,
            "user": username,
            "details": details,
            "amount_cents": amount,
            "occurred_at": to_utc_z(when),
        }
        for kind, ref, username, details, amount, when in entries
    ]


def audit_trail(user: User, limit: int = 100) -> list[dict]:
    return [ev.to_dict() for ev in list_audit_events(user, limit=limit)]
