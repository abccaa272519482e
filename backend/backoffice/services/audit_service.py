# Overview: Append-only audit trail for business events.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent, User
from .visibility import scope_query

"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- No business logic here.
- Events are added to the session of the domain event they record and are
  committed (or rolled back) with it.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    branch_id: int | None = None,
    actor_user_id: int | None = None,
    amount_cents: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        branch_id=branch_id,
        actor_user_id=actor_user_id,
        amount_cents=amount_cents,
        occurred_at=occurred_at,  # if None, db default applies
        note=(note[:255] if note else None),
    )
    db.session.add(ev)
    return ev


def list_audit_events(
    user: User,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    """Latest audit events visible to `user`, newest first."""
    q = scope_query(db.session.query(AuditEvent), AuditEvent, user)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
