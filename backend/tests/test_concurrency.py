# Overview: Pytest coverage for the atomic counter and retry helpers.

import pytest
from sqlalchemy.exc import OperationalError

from backoffice.extensions import db
from backoffice.models import Supplier
from backoffice.services.concurrency import increment_columns, run_with_retry


def test_increment_refreshes_loaded_instance(db_session, supplier):
    assert supplier.total_debt_cents == 0

    matched = increment_columns(Supplier, supplier.id, total_debt_cents=250, total_paid_cents=-40)

    assert matched == 1
    assert supplier.total_debt_cents == 250
    assert supplier.total_paid_cents == -40
    db.session.commit()


def test_increment_composes(db_session, supplier):
    increment_columns(Supplier, supplier.id, total_supplied_cents=100)
    increment_columns(Supplier, supplier.id, total_supplied_cents=35)
    db.session.commit()

    assert db.session.get(Supplier, supplier.id).total_supplied_cents == 135


def test_increment_unknown_row_matches_nothing(db_session):
    assert increment_columns(Supplier, 424242, total_debt_cents=1) == 0


def test_run_with_retry_gives_up(db_session):
    calls = []

    def _always_locked():
        calls.append(1)
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    with pytest.raises(OperationalError):
        run_with_retry(_always_locked, attempts=3, backoff_base=0)
    assert len(calls) == 3


def test_run_with_retry_returns_result(db_session):
    attempts = iter([OperationalError("UPDATE", {}, Exception("locked")), None])

    def _flaky():
        exc = next(attempts)
        if exc is not None:
            raise exc
        return "ok"

    assert run_with_retry(_flaky, attempts=3, backoff_base=0) == "ok"
