# Overview: Dashboard aggregation over sales, expenses, returns, stock and payroll.

"""
Dashboard Service

The pure functions in this module take already-filtered collections and
return numbers; build_dashboard() loads the collections the user may see
and combines them.

Figures (all minor units):
- today_net_cashflow = today's invoice net totals - today's expenses
                       - today's sales-return refunds
- inventory_value    = sum(stock * wholesale price) over non-archived products
- net_profit_estimate = revenue - ASSUMED_COGS_RATIO * revenue - expenses
                        - salaries - returns
  This is an explicit approximation: cost of goods is assumed to be a fixed
  share of revenue rather than derived from per-item wholesale cost.
- salaries: staff payments that are not deductions; deductions are
  reported separately.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Invoice, Expense, SalesReturn, Product, StaffPayment, User
from .visibility import scope_query, resolve_branch_filter
from backoffice.time_utils import utcnow


@dataclass
class DashboardQuery:
    """today: the business day "today" refers to. branch_id: head-office narrowing."""
    today: date | None = None
    branch_id: int | None = None


# =============================================================================
# PURE AGGREGATES
# =============================================================================

def _on_day(moment, day: date) -> bool:
    return moment is not None and moment.date() == day


def today_net_cashflow(invoices: Iterable, expenses: Iterable, returns: Iterable, today: date) -> int:
    income = sum(inv.net_total_cents for inv in invoices if _on_day(inv.occurred_at, today))
    spent = sum(exp.amount_cents for exp in expenses if _on_day(exp.occurred_at, today))
    refunded = sum(ret.total_refund_cents for ret in returns if _on_day(ret.occurred_at, today))
    return income - spent - refunded


def inventory_value(products: Iterable) -> int:
    return sum(p.stock * p.wholesale_price_cents for p in products)


def net_profit_estimate(
    *,
    revenue_cents: int,
    expenses_cents: int,
    salaries_cents: int,
    returns_cents: int,
    cogs_ratio: float,
) -> int:
    assumed_cogs = int(round(revenue_cents * cogs_ratio))
    return revenue_cents - assumed_cogs - expenses_cents - salaries_cents - returns_cents


def payroll_totals(staff_payments: Iterable) -> tuple[int, int]:
    """(salaries, deductions). Salaries are every non-deduction payment."""
    salaries = 0
    deductions = 0
    for p in staff_payments:
        if p.is_deduction:
            deductions += p.amount_cents
        else:
            salaries += p.amount_cents
    return salaries, deductions


def product_performance(invoices: Iterable, limit: int = 5) -> dict:
    """
    Per-product sales tally across invoice lines.

    best:  top `limit` by quantity, descending. Ties keep first-seen order.
    least: the `limit` lowest sellers among products that sold at least once,
           least-sold first.
    """
    tally: "OrderedDict[int, dict]" = OrderedDict()
    for inv in invoices:
        for line in inv.lines:
            entry = tally.get(line.product_id)
            if entry is None:
                entry = {"product_id": line.product_id, "name": line.name, "quantity": 0, "revenue_cents": 0}
                tally[line.product_id] = entry
            entry["quantity"] += line.quantity
            entry["revenue_cents"] += line.subtotal_cents

    ranked = sorted(tally.values(), key=lambda e: e["quantity"], reverse=True)
    sold = [e for e in ranked if e["quantity"] > 0]
    return {
        "best": ranked[:limit],
        "least": list(reversed(sold[-limit:])) if limit > 0 else [],
    }


def sales_last_7_days(invoices: Iterable, today: date) -> list[dict]:
    """Seven daily buckets of net sales, oldest first, ending on `today`."""
    days = [today - timedelta(days=offset) for offset in range(6, -1, -1)]
    buckets = {day: 0 for day in days}
    for inv in invoices:
        day = inv.occurred_at.date()
        if day in buckets:
            buckets[day] += inv.net_total_cents
    return [{"date": day.isoformat(), "total_cents": buckets[day]} for day in days]


# =============================================================================
# LOADER
# =============================================================================

def _visible(model, user: User, branch_id: int | None):
    q = scope_query(db.session.query(model), model, user)
    if branch_id is not None:
        q = q.filter(model.branch_id == branch_id)
    return q


def build_dashboard(user: User, query: DashboardQuery | None = None) -> dict:
    """
    Dashboard stats for everything `user` may see.

    Head office sees the whole company unless query.branch_id narrows it;
    other users always get their own branch.
    """
    query = query or DashboardQuery()
    today = query.today or utcnow().date()
    branch_id = resolve_branch_filter(user, query.branch_id)

    invoices = _visible(Invoice, user, branch_id).filter(Invoice.is_deleted.is_(False)).all()
    expenses = _visible(Expense, user, branch_id).all()
    returns = _visible(SalesReturn, user, branch_id).filter(SalesReturn.is_deleted.is_(False)).all()
    products = _visible(Product, user, branch_id).filter(Product.is_deleted.is_(False)).all()
    staff_payments = _visible(StaffPayment, user, branch_id).all()

    cfg = current_app.config
    ratio = cfg.get("ASSUMED_COGS_RATIO", 0.7)
    limit = cfg.get("TOP_PRODUCTS_LIMIT", 5)

    revenue = sum(inv.net_total_cents for inv in invoices)
    expenses_total = sum(exp.amount_cents for exp in expenses)
    returns_total = sum(ret.total_refund_cents for ret in returns)
    salaries, deductions = payroll_totals(staff_payments)

    return {
        "today": today.isoformat(),
        "branch_id": branch_id,
        "revenue_cents": revenue,
        "expenses_cents": expenses_total,
        "returns_cents": returns_total,
        "salaries_cents": salaries,
        "deductions_cents": deductions,
        "inventory_value_cents": inventory_value(products),
        "today_net_cashflow_cents": today_net_cashflow(invoices, expenses, returns, today),
        "net_profit_estimate_cents": net_profit_estimate(
            revenue_cents=revenue,
            expenses_cents=expenses_total,
            salaries_cents=salaries,
            returns_cents=returns_total,
            cogs_ratio=ratio,
        ),
        "assumed_cogs_ratio": ratio,
        "low_stock_count": sum(1 for p in products if p.is_low_stock),
        "product_performance": product_performance(invoices, limit),
        "sales_last_7_days": sales_last_7_days(invoices, today),
    }
