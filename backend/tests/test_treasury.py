# Overview: Pytest coverage for treasury balance folding, filters and manual entries.

import pytest
from datetime import timedelta

from backoffice.extensions import db
from backoffice.models import TreasuryLog
from backoffice.services import treasury_service
from backoffice.services.treasury_service import TreasuryError, TreasuryQuery
from backoffice.time_utils import utcnow


def _log(branch_id, entry_type, amount, *, source="manual", reference_id=None, notes=None, occurred_at=None):
    log = TreasuryLog(
        branch_id=branch_id,
        type=entry_type,
        source=source,
        amount_cents=amount,
        reference_id=reference_id,
        notes=notes,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(log)
    db.session.commit()
    return log


class TestComputeBalance:

    def test_in_minus_out(self):
        logs = [
            {"type": "in", "amount_cents": 500},
            {"type": "out", "amount_cents": 120},
            {"type": "in", "amount_cents": 80},
        ]
        assert treasury_service.compute_balance(logs) == 460

    def test_empty(self):
        assert treasury_service.compute_balance([]) == 0

    def test_unknown_types_ignored(self):
        logs = [{"type": "in", "amount_cents": 100}, {"type": "transfer", "amount_cents": 999}]
        assert treasury_service.compute_balance(logs) == 100

    def test_order_does_not_matter(self):
        logs = [
            {"type": "out", "amount_cents": 120},
            {"type": "in", "amount_cents": 80},
            {"type": "in", "amount_cents": 500},
        ]
        assert treasury_service.compute_balance(logs) == 460


class TestBranchBalance:

    def test_branch_user_sees_own_branch(self, db_session, manager_a, branch_a, branch_b):
        _log(branch_a.id, "in", 500)
        _log(branch_a.id, "out", 120)
        _log(branch_a.id, "in", 80)
        _log(branch_b.id, "in", 10_000)

        result = treasury_service.branch_balance(manager_a, branch_id=branch_b.id)
        assert result["branch_id"] == branch_a.id
        assert result["balance_cents"] == 460
        assert result["total_in_cents"] == 580
        assert result["total_out_cents"] == 120
        assert result["entry_count"] == 3

    def test_head_office_sees_all_or_narrows(self, db_session, admin, branch_a, branch_b):
        _log(branch_a.id, "in", 500)
        _log(branch_b.id, "out", 200)

        assert treasury_service.branch_balance(admin)["balance_cents"] == 300
        assert treasury_service.branch_balance(admin, branch_id=branch_b.id)["balance_cents"] == -200

    def test_branchless_non_head_office_sees_nothing(self, db_session, branch_a):
        from conftest import make_user
        floater = make_user("floater", "supervisor")
        _log(branch_a.id, "in", 500)
        assert treasury_service.branch_balance(floater)["entry_count"] == 0


class TestListLogs:

    def test_source_filter(self, db_session, admin, branch_a):
        _log(branch_a.id, "in", 100, source="sale")
        _log(branch_a.id, "out", 40, source="expense")

        logs = treasury_service.list_logs(admin, TreasuryQuery(source="expense"))
        assert [log.amount_cents for log in logs] == [40]

    def test_search_matches_reference_or_notes(self, db_session, admin, branch_a):
        _log(branch_a.id, "in", 100, reference_id="INV-77")
        _log(branch_a.id, "in", 200, notes="Petty cash top-up")
        _log(branch_a.id, "in", 300, notes="other")

        assert [log.amount_cents for log in treasury_service.list_logs(admin, TreasuryQuery(search="inv-77"))] == [100]
        assert [log.amount_cents for log in treasury_service.list_logs(admin, TreasuryQuery(search="PETTY"))] == [200]

    def test_period_filter(self, db_session, admin, branch_a):
        now = utcnow()
        _log(branch_a.id, "in", 100, occurred_at=now)
        _log(branch_a.id, "in", 200, occurred_at=now - timedelta(days=400))

        daily = treasury_service.list_logs(admin, TreasuryQuery(period="daily", on=now.date()))
        yearly_old = treasury_service.list_logs(
            admin, TreasuryQuery(period="yearly", on=(now - timedelta(days=400)).date())
        )
        assert [log.amount_cents for log in daily] == [100]
        assert [log.amount_cents for log in yearly_old] == [200]

    def test_sorting(self, db_session, admin, branch_a):
        for amount in (300, 100, 200):
            _log(branch_a.id, "in", amount)

        asc = treasury_service.list_logs(admin, TreasuryQuery(sort_key="amount_cents", sort_direction="asc"))
        assert [log.amount_cents for log in asc] == [100, 200, 300]

        newest_first = treasury_service.list_logs(admin)
        assert [log.amount_cents for log in newest_first] == [200, 100, 300]

    @pytest.mark.parametrize("query", [
        TreasuryQuery(period="weekly"),
        TreasuryQuery(source="lottery"),
        TreasuryQuery(sort_key="notes"),
        TreasuryQuery(sort_direction="sideways"),
    ])
    def test_invalid_query_rejected(self, db_session, admin, query):
        with pytest.raises(TreasuryError):
            treasury_service.list_logs(admin, query)

    def test_balance_over_filtered_logs(self, db_session, manager_a, branch_a, branch_b):
        _log(branch_a.id, "in", 500)
        _log(branch_a.id, "out", 120)
        _log(branch_a.id, "in", 80)
        _log(branch_b.id, "out", 999)

        logs = treasury_service.list_logs(manager_a)
        assert treasury_service.compute_balance(logs) == 460


class TestRecordEntry:

    def test_manual_deposit(self, db_session, manager_a):
        log = treasury_service.record_entry(actor=manager_a, entry_type="in", amount_cents=2500, notes="float")
        assert log.id is not None
        assert log.source == "manual"
        assert log.branch_id == manager_a.branch_id
        assert treasury_service.branch_balance(manager_a)["balance_cents"] == 2500

    def test_branch_user_cannot_book_elsewhere(self, db_session, manager_a, branch_b):
        log = treasury_service.record_entry(
            actor=manager_a, entry_type="out", amount_cents=100, branch_id=branch_b.id
        )
        assert log.branch_id == manager_a.branch_id

    @pytest.mark.parametrize("entry_type,amount", [
        ("in", 0),
        ("in", -5),
        ("sideways", 100),
        ("in", 10.0),
        ("in", True),
    ])
    def test_invalid_entries_rejected(self, db_session, manager_a, entry_type, amount):
        with pytest.raises(TreasuryError):
            treasury_service.record_entry(actor=manager_a, entry_type=entry_type, amount_cents=amount)
        assert db.session.query(TreasuryLog).count() == 0

    def test_unknown_branch_rejected(self, db_session, admin):
        with pytest.raises(TreasuryError):
            treasury_service.record_entry(actor=admin, entry_type="in", amount_cents=100, branch_id=987654)
