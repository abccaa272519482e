# Overview: Branch treasury entries and balance aggregation.

"""
Treasury Service

The treasury is an append-only list of cash movements per branch. There is
no stored balance: balance = sum(in) - sum(out) over the logs the user can
see, recomputed from the full set on every request.

Other services call add_entry() inside their own transaction (a purchase,
a payment, a sale ...). record_entry() is the manual deposit/withdrawal path
and commits on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy import or_, func

from ..extensions import db
from ..models import TreasuryLog, User, Branch
from ..models.treasury import TREASURY_IN, TREASURY_OUT, TREASURY_SOURCES
from .audit_service import append_audit_event
from .visibility import scope_query, resolve_branch_filter, is_head_office
from backoffice.time_utils import utcnow, in_period
from backoffice.validation import MAX_AMOUNT_CENTS


logger = logging.getLogger(__name__)

PERIODS = ("daily", "monthly", "yearly")
SORT_KEYS = ("occurred_at", "amount_cents", "type", "source")


class TreasuryError(Exception):
    """Raised when a treasury entry or query is invalid."""
    pass


@dataclass
class TreasuryQuery:
    """
    Explicit filter for list_logs.

    period/on: restrict to the day, month or year containing `on`
    (None = no date filter). source: one of TREASURY_SOURCES or "all".
    search: case-insensitive substring of reference_id or notes.
    """
    period: str | None = None
    on: date | None = None
    source: str = "all"
    search: str | None = None
    branch_id: int | None = None
    sort_key: str = "occurred_at"
    sort_direction: str = "desc"

    def validate(self) -> None:
        if self.period is not None and self.period not in PERIODS:
            raise TreasuryError(f"period must be one of: {', '.join(PERIODS)}")
        if self.source != "all" and self.source not in TREASURY_SOURCES:
            raise TreasuryError(f"Unknown treasury source: {self.source}")
        if self.sort_key not in SORT_KEYS:
            raise TreasuryError(f"sort_key must be one of: {', '.join(SORT_KEYS)}")
        if self.sort_direction not in ("asc", "desc"):
            raise TreasuryError("sort_direction must be 'asc' or 'desc'")


# =============================================================================
# WRITES
# =============================================================================

def add_entry(
    *,
    branch_id: int | None,
    entry_type: str,
    source: str,
    amount_cents: int,
    reference_id: str | int | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> TreasuryLog:
    """
    Append a treasury log to the current session without committing.

    The caller owns the transaction.
    """
    if entry_type not in (TREASURY_IN, TREASURY_OUT):
        raise TreasuryError("type must be 'in' or 'out'")
    if source not in TREASURY_SOURCES:
        raise TreasuryError(f"Unknown treasury source: {source}")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise TreasuryError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise TreasuryError("amount_cents must be positive")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise TreasuryError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")

    log = TreasuryLog(
        branch_id=branch_id,
        type=entry_type,
        source=source,
        reference_id=str(reference_id) if reference_id is not None else None,
        amount_cents=amount_cents,
        notes=notes,
        created_by_user_id=created_by_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(log)
    return log


def record_entry(
    *,
    actor: User,
    entry_type: str,
    amount_cents: int,
    branch_id: int | None = None,
    source: str = "manual",
    reference_id: str | None = None,
    notes: str | None = None,
) -> TreasuryLog:
    """
    Manual deposit or withdrawal.

    Non-head-office users always book against their own branch.
    """
    if not is_head_office(actor):
        branch_id = actor.branch_id
    if branch_id is not None and db.session.get(Branch, branch_id) is None:
        raise TreasuryError(f"Branch {branch_id} not found")

    try:
        log = add_entry(
            branch_id=branch_id,
            entry_type=entry_type,
            source=source,
            amount_cents=amount_cents,
            reference_id=reference_id,
            notes=notes,
            created_by_user_id=actor.id,
        )
        db.session.flush()
        append_audit_event(
            event_type="TREASURY_ENTRY_RECORDED",
            entity_type="treasury_log",
            entity_id=log.id,
            branch_id=branch_id,
            actor_user_id=actor.id,
            amount_cents=amount_cents if entry_type == TREASURY_IN else -amount_cents,
            occurred_at=log.occurred_at,
            note=f"{entry_type}:{source}",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Treasury %s %s cents=%s branch=%s", entry_type, source, amount_cents, branch_id)
    return log


# =============================================================================
# READS
# =============================================================================

def compute_balance(logs: Iterable) -> int:
    """
    Fold treasury logs into a balance: sum(in) - sum(out).

    Accepts TreasuryLog rows or dicts with "type" and "amount_cents".
    Entries with any other type contribute nothing.
    """
    balance = 0
    for log in logs:
        if isinstance(log, dict):
            kind, amount = log.get("type"), log.get("amount_cents") or 0
        else:
            kind, amount = log.type, log.amount_cents
        if kind == TREASURY_IN:
            balance += amount
        elif kind == TREASURY_OUT:
            balance -= amount
    return balance


def _visible_logs_query(user: User, branch_id: int | None):
    q = scope_query(db.session.query(TreasuryLog), TreasuryLog, user)
    target = resolve_branch_filter(user, branch_id)
    if target is not None:
        q = q.filter(TreasuryLog.branch_id == target)
    return q


def branch_balance(user: User, branch_id: int | None = None) -> dict:
    """
    Current balance over every log visible to `user`.

    Head office sees all branches unless branch_id narrows it; other users
    always get their own branch. Re-scans the full log set.
    """
    logs = _visible_logs_query(user, branch_id).all()
    total_in = sum(log.amount_cents for log in logs if log.type == TREASURY_IN)
    total_out = sum(log.amount_cents for log in logs if log.type == TREASURY_OUT)
    return {
        "branch_id": resolve_branch_filter(user, branch_id),
        "balance_cents": compute_balance(logs),
        "total_in_cents": total_in,
        "total_out_cents": total_out,
        "entry_count": len(logs),
    }


def list_logs(user: User, query: TreasuryQuery | None = None) -> list[TreasuryLog]:
    """Visible treasury logs filtered and sorted per `query`."""
    query = query or TreasuryQuery()
    query.validate()

    q = _visible_logs_query(user, query.branch_id)
    if query.source != "all":
        q = q.filter(TreasuryLog.source == query.source)
    if query.search:
        pattern = f"%{query.search.strip().lower()}%"
        q = q.filter(or_(
            func.lower(TreasuryLog.reference_id).like(pattern),
            func.lower(TreasuryLog.notes).like(pattern),
        ))

    logs = q.all()

    if query.period is not None:
        anchor = query.on or utcnow().date()
        logs = [log for log in logs if in_period(log.occurred_at, anchor, query.period)]

    reverse = query.sort_direction == "desc"
    logs.sort(key=lambda log: (getattr(log, query.sort_key), log.id), reverse=reverse)
    return logs
