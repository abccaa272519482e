# Overview: Pytest coverage for products, stock adjustment, invoices, sales returns and expenses.

import random

import pytest
from backoffice.extensions import db
from backoffice.models import Product, TreasuryLog
from backoffice.services import product_service, sales_service
from backoffice.services.product_service import InsufficientStockError, ProductNotFoundError
from backoffice.services.sales_service import SaleError, InvoiceNotFoundError
from backoffice.validation import ConflictError, ValidationError


def _sum_treasury(branch_id):
    total = 0
    for log in db.session.query(TreasuryLog).filter_by(branch_id=branch_id):
        total += log.amount_cents if log.type == "in" else -log.amount_cents
    return total


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProducts:

    def test_create_generates_six_digit_code(self, db_session, manager_a):
        p = product_service.create_product(
            actor=manager_a, name="Flour 1kg", wholesale_price_cents=90, retail_price_cents=150, initial_stock=12
        )
        assert len(p.code) == 6 and p.code.isdigit()
        assert 100000 <= int(p.code) <= 999999
        assert p.branch_id == manager_a.branch_id
        assert p.low_stock_threshold == 5

    def test_code_collision_rerolls(self, db_session, product_a):
        class FixedRng:
            def __init__(self):
                self.values = [int(product_a.code), 123456]

            def randint(self, lo, hi):
                return self.values.pop(0)

        assert product_service.generate_product_code(FixedRng()) == "123456"

    def test_code_exhaustion_raises_conflict(self, db_session, product_a):
        class StuckRng(random.Random):
            def randint(self, lo, hi):
                return int(product_a.code)

        with pytest.raises(ConflictError):
            product_service.generate_product_code(StuckRng())

    def test_negative_price_rejected(self, db_session, manager_a):
        with pytest.raises(ValidationError):
            product_service.create_product(actor=manager_a, name="Bad", retail_price_cents=-1)

    def test_update_ignores_stock(self, db_session, manager_a, product_a):
        product_service.update_product(
            product_id=product_a.id, patch={"retail_price_cents": 1200, "stock": 999}, actor=manager_a
        )
        assert product_a.retail_price_cents == 1200
        assert product_a.stock == 20

    def test_delete_requires_reason(self, db_session, manager_a, product_a):
        with pytest.raises(ValidationError):
            product_service.delete_product(product_id=product_a.id, reason=" ", actor=manager_a)

        archived = product_service.delete_product(product_id=product_a.id, reason="discontinued", actor=manager_a)
        assert archived.is_deleted is True
        assert product_service.list_products(manager_a) == []
        assert len(product_service.list_products(manager_a, include_deleted=True)) == 1

    def test_other_branch_product_not_found(self, db_session, manager_b, product_a):
        with pytest.raises(ProductNotFoundError):
            product_service.get_product(product_a.id, manager_b)

    def test_low_stock(self, db_session, manager_a, product_a, product_a2):
        product_a2.stock = 5
        db.session.commit()
        assert [p.id for p in product_service.low_stock_products(manager_a)] == [product_a2.id]

    def test_search_by_name_or_code(self, db_session, manager_a, product_a, product_a2):
        assert [p.id for p in product_service.list_products(manager_a, search="rice")] == [product_a2.id]
        assert [p.id for p in product_service.list_products(manager_a, search="100001")] == [product_a.id]


class TestAdjustStock:

    def test_increment_and_decrement(self, db_session, product_a):
        product_service.adjust_stock(product_a.id, 5)
        product_service.adjust_stock(product_a.id, -8)
        db.session.commit()
        assert db.session.get(Product, product_a.id).stock == 17

    def test_refuses_negative(self, db_session, product_a):
        with pytest.raises(InsufficientStockError) as exc:
            product_service.adjust_stock(product_a.id, -21)
        assert exc.value.available == 20
        assert exc.value.requested == 21

    def test_allow_negative(self, db_session, product_a):
        product_service.adjust_stock(product_a.id, -25, allow_negative=True)
        db.session.commit()
        assert product_a.stock == -5

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            product_service.adjust_stock(999999, 1)


# =============================================================================
# INVOICE PRICING
# =============================================================================


class TestInvoiceTotals:

    LINES = [
        {"quantity": 2, "unit_price_cents": 1000},
        {"quantity": 1, "unit_price_cents": 550},
    ]

    def test_no_discount(self):
        totals = sales_service.compute_invoice_totals(self.LINES)
        assert totals == {
            "total_before_discount_cents": 2550,
            "discount_cents": 0,
            "net_total_cents": 2550,
        }

    def test_percentage_rounds_half_up(self):
        totals = sales_service.compute_invoice_totals(self.LINES, "percentage", 10)
        assert totals["discount_cents"] == 255
        assert totals["net_total_cents"] == 2295

        odd = sales_service.compute_invoice_totals([{"quantity": 1, "unit_price_cents": 5}], "percentage", 50)
        assert odd["discount_cents"] == 3

    def test_fixed_discount(self):
        totals = sales_service.compute_invoice_totals(self.LINES, "fixed", 550)
        assert totals["net_total_cents"] == 2000

    @pytest.mark.parametrize("discount_type,value", [
        ("percentage", 101),
        ("percentage", -1),
        ("fixed", 2551),
        ("bogus", 0),
    ])
    def test_invalid_discounts(self, discount_type, value):
        with pytest.raises(SaleError):
            sales_service.compute_invoice_totals(self.LINES, discount_type, value)

    def test_full_discount_allowed(self):
        totals = sales_service.compute_invoice_totals(self.LINES, "percentage", 100)
        assert totals["net_total_cents"] == 0


# =============================================================================
# INVOICES
# =============================================================================


class TestInvoices:

    def _sell(self, actor, product, qty=3, **kwargs):
        return sales_service.create_invoice(
            items=[{"product_id": product.id, "quantity": qty}],
            actor=actor,
            **kwargs,
        )

    def test_sale_deducts_stock_and_books_treasury(self, db_session, employee_a, product_a):
        invoice = self._sell(employee_a, product_a, qty=3, discount_type="fixed", discount_value=500)

        assert invoice.total_before_discount_cents == 3000
        assert invoice.net_total_cents == 2500
        assert invoice.creator_username == employee_a.username
        assert product_a.stock == 17
        assert _sum_treasury(employee_a.branch_id) == 2500

    def test_oversell_rolls_back(self, db_session, employee_a, product_a):
        with pytest.raises(InsufficientStockError):
            self._sell(employee_a, product_a, qty=21)
        assert product_a.stock == 20
        assert sales_service.list_invoices(employee_a) == []
        assert _sum_treasury(employee_a.branch_id) == 0

    def test_cannot_sell_other_branch_product(self, db_session, employee_a, product_b):
        with pytest.raises(SaleError):
            self._sell(employee_a, product_b)

    def test_delete_restores_stock_and_refunds(self, db_session, employee_a, supervisor_a, product_a):
        invoice = self._sell(employee_a, product_a, qty=4)

        sales_service.delete_invoice(invoice_id=invoice.id, reason="customer cancelled", actor=supervisor_a)

        assert invoice.is_deleted is True
        assert invoice.deleted_by_user_id == supervisor_a.id
        assert product_a.stock == 20
        assert _sum_treasury(employee_a.branch_id) == 0
        assert sales_service.list_invoices(employee_a) == []
        assert len(sales_service.list_invoices(employee_a, include_deleted=True)) == 1

    def test_delete_requires_reason(self, db_session, employee_a, supervisor_a, product_a):
        invoice = self._sell(employee_a, product_a)
        with pytest.raises(SaleError):
            sales_service.delete_invoice(invoice_id=invoice.id, reason="", actor=supervisor_a)

    def test_delete_twice_rejected(self, db_session, employee_a, supervisor_a, product_a):
        invoice = self._sell(employee_a, product_a)
        sales_service.delete_invoice(invoice_id=invoice.id, reason="dup", actor=supervisor_a)
        with pytest.raises(SaleError):
            sales_service.delete_invoice(invoice_id=invoice.id, reason="dup", actor=supervisor_a)
        assert product_a.stock == 20

    def test_other_branch_invoice_not_found(self, db_session, employee_a, manager_b, product_a):
        invoice = self._sell(employee_a, product_a)
        with pytest.raises(InvoiceNotFoundError):
            sales_service.get_invoice(invoice.id, manager_b)

    def test_search_by_customer_and_id(self, db_session, employee_a, product_a):
        first = self._sell(employee_a, product_a, customer_name="Layla")
        second = self._sell(employee_a, product_a, customer_phone="0555")

        assert [i.id for i in sales_service.list_invoices(employee_a, search="layla")] == [first.id]
        assert [i.id for i in sales_service.list_invoices(employee_a, search=str(second.id))] == [second.id]

    def test_unknown_period_rejected(self, db_session, employee_a, product_a):
        self._sell(employee_a, product_a)
        with pytest.raises(SaleError):
            sales_service.list_invoices(employee_a, period="hourly")


class TestSalesReturns:

    def test_return_restores_stock_and_refunds(self, db_session, employee_a, product_a):
        invoice = sales_service.create_invoice(
            items=[{"product_id": product_a.id, "quantity": 5}], actor=employee_a
        )
        ret = sales_service.create_sales_return(
            invoice_id=invoice.id, quantities={str(product_a.id): 2}, actor=employee_a
        )

        assert ret.total_refund_cents == 2000
        assert product_a.stock == 17
        assert _sum_treasury(employee_a.branch_id) == 3000

    def test_return_clamped_to_sold(self, db_session, employee_a, product_a):
        invoice = sales_service.create_invoice(
            items=[{"product_id": product_a.id, "quantity": 2}], actor=employee_a
        )
        ret = sales_service.create_sales_return(
            invoice_id=invoice.id, quantities={product_a.id: 9}, actor=employee_a
        )
        assert [line.quantity for line in ret.lines] == [2]

        with pytest.raises(SaleError):
            sales_service.create_sales_return(invoice_id=invoice.id, quantities={product_a.id: 1}, actor=employee_a)

    def test_invoice_with_returns_cannot_be_deleted(self, db_session, employee_a, supervisor_a, product_a):
        invoice = sales_service.create_invoice(
            items=[{"product_id": product_a.id, "quantity": 2}], actor=employee_a
        )
        sales_service.create_sales_return(invoice_id=invoice.id, quantities={product_a.id: 1}, actor=employee_a)
        with pytest.raises(SaleError):
            sales_service.delete_invoice(invoice_id=invoice.id, reason="oops", actor=supervisor_a)


class TestExpenses:

    def test_expense_books_treasury_out(self, db_session, manager_a):
        expense = sales_service.create_expense(description="Electricity", amount_cents=4200, actor=manager_a)
        assert expense.branch_id == manager_a.branch_id
        assert _sum_treasury(manager_a.branch_id) == -4200
        assert [e.id for e in sales_service.list_expenses(manager_a)] == [expense.id]

    @pytest.mark.parametrize("description,amount", [("", 100), ("Rent", 0), ("Rent", "100")])
    def test_invalid_expense(self, db_session, manager_a, description, amount):
        with pytest.raises(SaleError):
            sales_service.create_expense(description=description, amount_cents=amount, actor=manager_a)

    def test_other_branch_expenses_hidden(self, db_session, manager_a, manager_b):
        sales_service.create_expense(description="Rent", amount_cents=100, actor=manager_a)
        assert sales_service.list_expenses(manager_b) == []
