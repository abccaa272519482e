# Overview: Branch / role visibility policy shared by every list and aggregate.

"""
Single visibility rule for branch-scoped data:

    a user sees a record  <=>  user is head office
                               OR record.branch_id == user.branch_id

Head-office roles come from Config.HEAD_OFFICE_ROLES. Every service that
returns branch-scoped rows (lists, dashboards, treasury) applies this rule,
either in SQL via scope_query() or in memory via filter_visible().

A non-head-office user without a branch sees nothing.
"""

from __future__ import annotations

from typing import Any, Iterable

from flask import current_app
from sqlalchemy import false


DEFAULT_HEAD_OFFICE_ROLES = ("admin", "general_manager", "it_support")


def _head_office_roles() -> tuple[str, ...]:
    try:
        return tuple(current_app.config.get("HEAD_OFFICE_ROLES", DEFAULT_HEAD_OFFICE_ROLES))
    except RuntimeError:
        # outside an application context
        return DEFAULT_HEAD_OFFICE_ROLES


def is_head_office(user) -> bool:
    return user is not None and user.role in _head_office_roles()


def _branch_of(record: Any):
    if isinstance(record, dict):
        return record.get("branch_id")
    return getattr(record, "branch_id", None)


def visible(user, record: Any) -> bool:
    """True when `user` may see `record` (ORM row or dict with branch_id)."""
    if is_head_office(user):
        return True
    if user is None or user.branch_id is None:
        return False
    return _branch_of(record) == user.branch_id


def filter_visible(user, records: Iterable[Any]) -> list:
    return [r for r in records if visible(user, r)]


def scope_query(query, model, user):
    """Push the visibility predicate into a SQLAlchemy query on `model`."""
    if is_head_office(user):
        return query
    if user is None or user.branch_id is None:
        return query.filter(false())
    return query.filter(model.branch_id == user.branch_id)


def resolve_branch_filter(user, requested_branch_id: int | None) -> int | None:
    """
    Branch to aggregate over.

    Head office may narrow to any branch (None = all branches). Everyone else
    is pinned to their own branch regardless of what they asked for.
    """
    if is_head_office(user):
        return requested_branch_id
    return user.branch_id
