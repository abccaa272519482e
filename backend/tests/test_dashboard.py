# Overview: Pytest coverage for dashboard aggregates.

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
from backoffice.services import dashboard_service, sales_service, staff_service
from backoffice.services.dashboard_service import DashboardQuery
from backoffice.time_utils import utcnow


TODAY = date(2024, 5, 10)


def _at(day, hour=12):
    return datetime(day.year, day.month, day.day, hour)


def _invoice(net, day=TODAY, lines=()):
    return SimpleNamespace(net_total_cents=net, occurred_at=_at(day), lines=list(lines))


def _line(product_id, quantity, name=None, subtotal=0):
    return SimpleNamespace(product_id=product_id, name=name or f"P{product_id}", quantity=quantity,
                           subtotal_cents=subtotal)


class TestPureAggregates:

    def test_today_net_cashflow(self):
        invoices = [_invoice(1000), _invoice(500), _invoice(9999, TODAY - timedelta(days=1))]
        expenses = [SimpleNamespace(amount_cents=200, occurred_at=_at(TODAY))]
        returns = [SimpleNamespace(total_refund_cents=100, occurred_at=_at(TODAY, 18))]

        assert dashboard_service.today_net_cashflow(invoices, expenses, returns, TODAY) == 1200

    def test_inventory_value(self):
        products = [
            SimpleNamespace(stock=10, wholesale_price_cents=700),
            SimpleNamespace(stock=0, wholesale_price_cents=5000),
            SimpleNamespace(stock=3, wholesale_price_cents=150),
        ]
        assert dashboard_service.inventory_value(products) == 7450

    def test_net_profit_estimate(self):
        assert dashboard_service.net_profit_estimate(
            revenue_cents=10_000,
            expenses_cents=500,
            salaries_cents=1_000,
            returns_cents=200,
            cogs_ratio=0.7,
        ) == 1_300

    def test_payroll_separates_deductions(self):
        payments = [
            SimpleNamespace(amount_cents=3000, is_deduction=False),
            SimpleNamespace(amount_cents=500, is_deduction=False),
            SimpleNamespace(amount_cents=200, is_deduction=True),
        ]
        assert dashboard_service.payroll_totals(payments) == (3500, 200)

    def test_product_performance(self):
        invoices = [
            _invoice(0, lines=[_line(1, 5), _line(2, 1), _line(3, 9)]),
            _invoice(0, lines=[_line(1, 5), _line(4, 2)]),
        ]
        perf = dashboard_service.product_performance(invoices, limit=2)

        assert [e["product_id"] for e in perf["best"]] == [1, 3]
        assert perf["best"][0]["quantity"] == 10
        assert [e["product_id"] for e in perf["least"]] == [2, 4]

    def test_product_performance_ties_keep_first_seen_order(self):
        invoices = [_invoice(0, lines=[_line(pid, 2) for pid in (1, 2, 3, 4, 5)])]
        perf = dashboard_service.product_performance(invoices, limit=5)

        assert [e["product_id"] for e in perf["best"]] == [1, 2, 3, 4, 5]
        assert [e["product_id"] for e in perf["least"]] == [5, 4, 3, 2, 1]

    def test_product_performance_ties_behind_a_leader(self):
        invoices = [
            _invoice(0, lines=[_line(1, 2), _line(2, 2), _line(3, 2)]),
            _invoice(0, lines=[_line(4, 2), _line(5, 2), _line(6, 9)]),
        ]
        perf = dashboard_service.product_performance(invoices, limit=5)

        assert [e["product_id"] for e in perf["best"]] == [6, 1, 2, 3, 4]
        assert [e["product_id"] for e in perf["least"]] == [5, 4, 3, 2, 1]

    def test_product_performance_empty(self):
        assert dashboard_service.product_performance([], limit=5) == {"best": [], "least": []}

    def test_sales_last_7_days(self):
        invoices = [_invoice(100), _invoice(50, TODAY - timedelta(days=6)), _invoice(999, TODAY - timedelta(days=7))]
        buckets = dashboard_service.sales_last_7_days(invoices, TODAY)

        assert len(buckets) == 7
        assert buckets[0] == {"date": "2024-05-04", "total_cents": 50}
        assert buckets[-1] == {"date": "2024-05-10", "total_cents": 100}
        assert sum(b["total_cents"] for b in buckets) == 150


class TestBuildDashboard:

    @pytest.fixture
    def activity(self, db_session, employee_a, manager_a, manager_b, product_a, product_b):
        sales_service.create_invoice(items=[{"product_id": product_a.id, "quantity": 2}], actor=employee_a)
        sales_service.create_invoice(items=[{"product_id": product_b.id, "quantity": 4}], actor=manager_b)
        sales_service.create_expense(description="Cleaning", amount_cents=300, actor=manager_a)
        staff_service.record_staff_payment(
            staff_id=employee_a.id, amount_cents=1000, payment_type="salary", actor=manager_a
        )
        staff_service.record_staff_payment(
            staff_id=employee_a.id, amount_cents=100, payment_type="deduction", actor=manager_a
        )

    def test_branch_user_sees_own_branch(self, app, activity, manager_a, branch_a):
        stats = dashboard_service.build_dashboard(manager_a, DashboardQuery(today=utcnow().date()))

        assert stats["branch_id"] == branch_a.id
        assert stats["revenue_cents"] == 2000
        assert stats["expenses_cents"] == 300
        assert stats["salaries_cents"] == 1000
        assert stats["deductions_cents"] == 100
        assert stats["today_net_cashflow_cents"] == 1700
        assert stats["inventory_value_cents"] == 18 * 700
        # 2000 - 1400 - 300 - 1000 - 0
        assert stats["net_profit_estimate_cents"] == -700
        assert stats["product_performance"]["best"][0]["quantity"] == 2

    def test_head_office_sees_everything(self, activity, admin):
        stats = dashboard_service.build_dashboard(admin, DashboardQuery(today=utcnow().date()))
        assert stats["revenue_cents"] == 2000 + 4 * 250
        assert stats["branch_id"] is None

    def test_head_office_can_narrow(self, activity, admin, branch_b):
        stats = dashboard_service.build_dashboard(admin, DashboardQuery(branch_id=branch_b.id))
        assert stats["revenue_cents"] == 1000
        assert stats["expenses_cents"] == 0

    def test_cogs_ratio_is_configurable(self, app, activity, manager_a):
        original = app.config["ASSUMED_COGS_RATIO"]
        app.config["ASSUMED_COGS_RATIO"] = 0.5
        try:
            stats = dashboard_service.build_dashboard(manager_a)
        finally:
            app.config["ASSUMED_COGS_RATIO"] = original
        assert stats["net_profit_estimate_cents"] == 2000 - 1000 - 300 - 1000
