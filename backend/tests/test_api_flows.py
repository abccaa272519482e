# Overview: End-to-end API coverage for the supplier, sales, treasury and correspondence routes.

"""
API Flow Tests

Drives the HTTP surface with a logged-in branch manager and checks that the
JSON responses reflect the ledger effects: supplier aggregates, stock,
treasury balance and dashboard figures.
"""

import pytest

from conftest import get_auth_token, auth_headers


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client):
        assert client.get("/version").json["api_version"] == "1.0.0"


class TestSupplierFlow:

    def test_purchase_payment_return(self, client, manager_headers, supplier, product_a):
        resp = client.post(
            f"/api/suppliers/{supplier.id}/purchases",
            json={
                "supplier_invoice_no": "INV-1001",
                "items": [{"product_id": product_a.id, "quantity": 10, "cost_price_cents": 100}],
                "payment_status": "credit",
                "paid_amount_cents": 200,
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        purchase = resp.json
        assert purchase["remaining_amount_cents"] == 800
        assert purchase["outstanding_cents"] == 800
        assert purchase["default_refund_method"] == "debt_deduction"

        resp = client.post(
            f"/api/suppliers/{supplier.id}/payments",
            json={"amount_cents": 300, "purchase_id": purchase["id"]},
            headers=manager_headers,
        )
        assert resp.status_code == 201

        resp = client.post(
            f"/api/suppliers/purchases/{purchase['id']}/returns",
            json={"quantities": {str(product_a.id): 2}},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.json["total_refund_cents"] == 200

        s = client.get(f"/api/suppliers/{supplier.id}", headers=manager_headers).json
        assert s["total_supplied_cents"] == 1000
        assert s["total_paid_cents"] == 500
        assert s["total_debt_cents"] == 300

        detail = client.get(f"/api/suppliers/purchases/{purchase['id']}", headers=manager_headers).json
        assert detail["remaining_amount_cents"] == 800
        assert detail["outstanding_cents"] == 300
        assert sum(detail["returned_quantities"].values()) == 2

        statement = client.get(f"/api/suppliers/{supplier.id}/statement", headers=manager_headers).json
        assert statement["net_cents"] == 300

        balance = client.get("/api/treasury/balance", headers=manager_headers).json
        assert balance["balance_cents"] == -500

    def test_archive_refused_with_debt(self, client, admin_headers, manager_headers, supplier, product_a):
        client.post(
            f"/api/suppliers/{supplier.id}/purchases",
            json={
                "supplier_invoice_no": "INV-2",
                "items": [{"product_id": product_a.id, "quantity": 1, "cost_price_cents": 100}],
                "payment_status": "credit",
            },
            headers=manager_headers,
        )
        resp = client.delete(f"/api/suppliers/{supplier.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["balance_cents"] == 100

    def test_return_more_than_stock_is_conflict(self, client, manager_headers, supplier, product_a):
        resp = client.post(
            f"/api/suppliers/{supplier.id}/purchases",
            json={
                "supplier_invoice_no": "INV-3",
                "items": [{"product_id": product_a.id, "quantity": 5, "cost_price_cents": 100}],
            },
            headers=manager_headers,
        )
        purchase_id = resp.json["id"]

        client.post(
            "/api/sales/invoices",
            json={"items": [{"product_id": product_a.id, "quantity": 24}]},
            headers=manager_headers,
        )

        resp = client.post(
            f"/api/suppliers/purchases/{purchase_id}/returns",
            json={"quantities": {str(product_a.id): 5}},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert resp.json["available"] == 1

    def test_invalid_purchase_is_400(self, client, manager_headers, supplier):
        resp = client.post(
            f"/api/suppliers/{supplier.id}/purchases",
            json={"supplier_invoice_no": "INV-4", "items": []},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_unknown_supplier_is_404(self, client, manager_headers, product_a):
        resp = client.post(
            "/api/suppliers/999999/payments",
            json={"amount_cents": 10},
            headers=manager_headers,
        )
        assert resp.status_code == 404


class TestSalesFlow:

    def test_sale_and_void(self, client, manager_headers, product_a):
        resp = client.post(
            "/api/sales/invoices",
            json={
                "items": [{"product_id": product_a.id, "quantity": 2}],
                "discount_type": "percentage",
                "discount_value": 10,
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        invoice = resp.json
        assert invoice["net_total_cents"] == 1800

        assert client.get("/api/treasury/balance", headers=manager_headers).json["balance_cents"] == 1800

        resp = client.delete(
            f"/api/sales/invoices/{invoice['id']}", json={"reason": "wrong item"}, headers=manager_headers
        )
        assert resp.status_code == 200

        product = client.get(f"/api/products/{product_a.id}", headers=manager_headers).json
        assert product["stock"] == 20
        assert client.get("/api/treasury/balance", headers=manager_headers).json["balance_cents"] == 0

    def test_oversell_is_conflict(self, client, employee_headers, product_a):
        resp = client.post(
            "/api/sales/invoices",
            json={"items": [{"product_id": product_a.id, "quantity": 50}]},
            headers=employee_headers,
        )
        assert resp.status_code == 409
        assert resp.json["requested"] == 50


class TestTreasuryAndDashboard:

    def test_manual_entries_and_logs(self, client, manager_headers):
        for entry in ({"type": "in", "amount_cents": 500},
                      {"type": "out", "amount_cents": 120},
                      {"type": "in", "amount_cents": 80}):
            assert client.post("/api/treasury/entries", json=entry, headers=manager_headers).status_code == 201

        resp = client.get("/api/treasury/logs?source=manual&sort=amount_cents&direction=asc",
                          headers=manager_headers)
        assert resp.status_code == 200
        assert [log["amount_cents"] for log in resp.json["items"]] == [80, 120, 500]
        assert resp.json["balance_cents"] == 460

    def test_bad_period_is_400(self, client, manager_headers):
        resp = client.get("/api/treasury/logs?period=weekly", headers=manager_headers)
        assert resp.status_code == 400

    def test_dashboard(self, client, manager_headers, product_a):
        resp = client.get("/api/dashboard", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["inventory_value_cents"] == 20 * 700
        assert len(resp.json["sales_last_7_days"]) == 7

    def test_activity_feed(self, client, manager_headers, product_a):
        client.post(
            "/api/sales/invoices",
            json={"items": [{"product_id": product_a.id, "quantity": 1}]},
            headers=manager_headers,
        )
        client.post("/api/sales/expenses", json={"description": "Water", "amount_cents": 50},
                    headers=manager_headers)

        feed = client.get("/api/activity", headers=manager_headers).json["items"]
        assert {item["type"] for item in feed} == {"sale", "expense"}

        audit = client.get("/api/activity/audit?limit=1", headers=manager_headers).json
        assert audit["count"] == 1


class TestCorrespondenceFlow:

    def test_message_and_leave(self, client, manager_a, employee_headers, manager_headers):
        resp = client.post(
            "/api/correspondence/messages",
            json={"subject": "Hello", "content": "First day", "receiver_ids": [manager_a.id]},
            headers=employee_headers,
        )
        assert resp.status_code == 201

        inbox = client.get("/api/correspondence/messages?folder=inbox", headers=manager_headers).json
        assert inbox["count"] == 1 and inbox["unread"] == 1

        resp = client.post(
            "/api/correspondence/leave",
            json={"type": "emergency", "start_date": "2024-07-01", "end_date": "2024-07-02", "reason": "Family"},
            headers=employee_headers,
        )
        assert resp.status_code == 201
        request_id = resp.json["id"]

        incoming = client.get("/api/correspondence/leave/incoming", headers=manager_headers).json
        assert [r["id"] for r in incoming["items"]] == [request_id]

        resp = client.post(
            f"/api/correspondence/leave/{request_id}/decision",
            json={"status": "approved"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "approved"

    def test_bad_folder_and_dates(self, client, employee_headers):
        assert client.get("/api/correspondence/messages?folder=spam", headers=employee_headers).status_code == 400
        resp = client.post(
            "/api/correspondence/leave",
            json={"type": "sick", "start_date": "July 1st", "end_date": "2024-07-02", "reason": "x"},
            headers=employee_headers,
        )
        assert resp.status_code == 400
