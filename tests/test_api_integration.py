"""
Integration tests for the Pawnshop API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import date
from fastapi.testclient import TestClient

from pawnshop.api import create_app, get_system
from pawnshop.config import PawnshopConfig
from pawnshop.dates import Clock
from pawnshop.system import PawnshopSystem


@pytest.fixture
def system():
    """In-memory system pinned to 15 June 2024"""
    return PawnshopSystem(PawnshopConfig(database_url="memory://"), clock=Clock(date(2024, 6, 15)))


@pytest.fixture
def client(system):
    """Create a test client wired to the test system"""
    app = create_app(PawnshopConfig(database_url="memory://"))
    app.dependency_overrides[get_system] = lambda: system
    return TestClient(app)


def create_customer(client, name="Ravi Kumar", phone="9876543210"):
    r = client.post("/customers", json={"full_name": name, "phone_number": phone})
    assert r.status_code == 201
    return r.json()["customer"]


def create_loan(client, customer_id):
    r = client.post("/loans", json={
        "customer_id": customer_id,
        "loan_amount": "100000",
        "interest_rate": "12",
        "number_of_installments": 12,
        "installment_frequency": "Monthly",
        "start_date": "01/01/2024",
    }, headers={"X-User-Id": "cashier1"})
    assert r.status_code == 201
    return r.json()["loan"]


def create_voucher(client, customer_id, bill_no="B001"):
    r = client.post("/vouchers", json={
        "bill_no": bill_no,
        "customer_id": customer_id,
        "jewel_type": "gold",
        "gross_weight": "25.5",
        "deduction_weight": "0.5",
        "loan_amount": "10000",
        "interest_rate": "2",
        "disbursement_date": "2024-04-11",
    })
    assert r.status_code == 201
    return r.json()["voucher"]


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert data["service"] == "pawnshop_api"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "loans" in r.json()["endpoints"]


class TestCustomerFlow:
    """End-to-end customer management tests"""

    def test_create_and_get(self, client):
        customer = create_customer(client)
        assert customer["customer_id"] == "2406001"

        r = client.get(f"/customers/{customer['customer_id']}")
        assert r.status_code == 200
        assert r.json()["full_name"] == "Ravi Kumar"

    def test_missing_phone(self, client):
        r = client.post("/customers", json={"full_name": "Ravi Kumar", "phone_number": " "})
        assert r.status_code == 400

    def test_unknown_customer(self, client):
        assert client.get("/customers/9999999").status_code == 404

    def test_update_and_search(self, client):
        customer = create_customer(client)

        r = client.put(f"/customers/{customer['customer_id']}", json={"address": "MG Road"})
        assert r.status_code == 200
        assert r.json()["address"] == "MG Road"

        r = client.get("/customers", params={"search": "ravi"})
        assert r.json()["total"] == 1


class TestLoanFlow:
    """Loan creation, payments and closure"""

    def test_create_loan(self, client):
        customer = create_customer(client)
        loan = create_loan(client, customer["customer_id"])

        assert loan["customer_name"] == "Ravi Kumar"
        assert loan["total_amount"] == "112000.00"
        assert loan["start_date"] == "01/01/2024"
        assert loan["installments"][0]["due_date"] == "01/02/2024"
        assert loan["installments"][0]["emi_amount"] == "9333.33"
        assert loan["created_by"] == "cashier1"

    def test_schedule_preview(self, client):
        r = client.post("/loans/schedule", json={
            "loan_amount": "5000",
            "interest_rate": "10",
            "number_of_installments": 1,
            "installment_frequency": "Weekly",
            "start_date": "2024-06-01",
        })
        assert r.status_code == 200
        installments = r.json()["installments"]
        assert installments[0]["emi_amount"] == "5500.00"
        assert installments[0]["due_date"] == "08/06/2024"

    def test_invalid_loan(self, client):
        customer = create_customer(client)
        r = client.post("/loans", json={
            "customer_id": customer["customer_id"],
            "loan_amount": "100000",
            "interest_rate": "-1",
            "number_of_installments": 12,
            "installment_frequency": "Monthly",
            "start_date": "01/01/2024",
        })
        assert r.status_code == 400

    def test_unknown_loan(self, client):
        assert client.get("/loans/NOPE").status_code == 404
        r = client.post("/loans/NOPE/payments", json={"installment_no": 1, "paid_amount": "10"})
        assert r.status_code == 404

    def test_pay_and_undo(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])
        loan_id = loan["loan_id"]

        r = client.post(f"/loans/{loan_id}/payments", json={
            "installment_no": 1, "paid_amount": "9333.33", "payment_method": "UPI"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["message"] == "Payment of ₹9,333.33 received successfully!"
        assert data["remaining_balance"] == "102666.67"
        assert data["next_due_date"] == "01/03/2024"
        assert data["loan_status"] == "Active"
        assert data["payment"]["payment_date"] == "15/06/2024"

        r = client.post(f"/loans/{loan_id}/payments", json={
            "installment_no": 1, "paid_amount": "9333.33"
        })
        assert r.status_code == 409

        r = client.post(f"/loans/{loan_id}/installments/1/undo")
        assert r.status_code == 200
        assert r.json()["remaining_balance"] == "112000.00"

        r = client.post(f"/loans/{loan_id}/installments/1/undo")
        assert r.status_code == 409

    def test_payment_below_emi(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])

        r = client.post(f"/loans/{loan['loan_id']}/payments", json={
            "installment_no": 1, "paid_amount": "100"
        })
        assert r.status_code == 400
        assert "EMI" in r.json()["detail"]

    def test_close_requires_full_payment(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])

        r = client.post(f"/loans/{loan['loan_id']}/close", json={})
        assert r.status_code == 409

    def test_single_installment_lifecycle(self, client):
        customer = create_customer(client)
        r = client.post("/loans", json={
            "customer_id": customer["customer_id"],
            "loan_amount": "5000",
            "interest_rate": "10",
            "number_of_installments": 1,
            "installment_frequency": "Monthly",
            "start_date": "2024-05-15",
        })
        loan_id = r.json()["loan"]["loan_id"]

        r = client.post(f"/loans/{loan_id}/payments", json={
            "installment_no": 1, "paid_amount": "5500", "fine_amount": "50"
        })
        assert r.json()["loan_status"] == "Completed"
        assert r.json()["collection_status"] == "Completed"
        assert r.json()["message"].endswith("(Fine: ₹50.00)")

        r = client.post(f"/loans/{loan_id}/close", json={"payment_method": "Cash"})
        assert r.status_code == 200
        assert r.json()["final_amount"] == "5500.00"
        assert r.json()["closed_date"] == "15/06/2024"
        assert r.json()["payment_method"] == "Cash"

        r = client.post(f"/loans/{loan_id}/close", json={})
        assert r.status_code == 409

    def test_status_changes(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])
        loan_id = loan["loan_id"]

        r = client.put(f"/loans/{loan_id}/status", json={"status": "Defaulted"})
        assert r.status_code == 200
        assert r.json()["loan_status"] == "Defaulted"
        assert r.json()["collection_status"] == "Defaulted"

        r = client.put(f"/loans/{loan_id}/status", json={"status": "Completed"})
        assert r.status_code == 400

    def test_statistics_and_list(self, client):
        create_loan(client, create_customer(client)["customer_id"])

        assert client.get("/loans").json()["total"] == 1
        assert client.get("/loans", params={"status": "Closed"}).json()["total"] == 0
        r = client.get("/loans/statistics")
        assert r.status_code == 200


class TestCollectionFlow:
    """Collection desk endpoints"""

    def test_collection_follows_payments(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])
        loan_id = loan["loan_id"]

        r = client.get("/collections")
        assert r.json()["total"] == 1
        assert r.json()["collections"][0]["loan_id"] == loan_id

        client.post(f"/collections/{loan_id}/payments", json={
            "installment_no": 1, "paid_amount": "9333.33"
        })

        r = client.get(f"/collections/{loan_id}")
        assert r.status_code == 200
        data = r.json()
        assert data["paid_installments"] == 1
        assert data["total_paid_amount"] == "9333.33"
        assert data["next_due_date"] == "01/03/2024"

        r = client.get(f"/collections/{loan_id}/summary")
        assert r.json()["next_due_date"] == "01/03/2024"

    def test_suspend_and_assign(self, client):
        loan_id = create_loan(client, create_customer(client)["customer_id"])["loan_id"]

        r = client.put(f"/collections/{loan_id}/status", json={"status": "Suspended"})
        assert r.json()["collection_status"] == "Suspended"

        r = client.put(f"/collections/{loan_id}/assign", json={
            "assigned_to": "agent7", "collection_route": "North"
        })
        assert r.json()["assigned_to"] == "agent7"
        assert r.json()["collection_status"] == "Suspended"

    def test_sync_all_and_dashboard(self, client):
        create_loan(client, create_customer(client)["customer_id"])

        r = client.post("/collections/sync-all")
        assert r.status_code == 200

        r = client.get("/collections/dashboard")
        assert r.json()["total_active_loans"] == 1

    def test_unknown_collection(self, client):
        assert client.get("/collections/NOPE").status_code == 404


class TestVoucherFlow:
    """Pawn vouchers, the rate card and the read models"""

    def test_create_and_close(self, client):
        customer = create_customer(client)
        voucher = create_voucher(client, customer["customer_id"])

        assert voucher["net_weight"] == "25.0"
        assert voucher["status"] == "Active"

        r = client.post(f"/vouchers/{voucher['id']}/close", json={"payment_method": "Cash"})
        assert r.status_code == 200
        data = r.json()
        assert data["message"] == "Loan closed successfully"
        assert data["final_amount"] == "10400.00"
        assert data["months_paid"] == 2

        r = client.post(f"/vouchers/{voucher['id']}/close", json={})
        assert r.status_code == 409

        assert client.get("/vouchers/closed").json()["total"] == 1

    def test_duplicate_bill(self, client):
        customer = create_customer(client)
        create_voucher(client, customer["customer_id"])

        r = client.post("/vouchers", json={
            "bill_no": "B001",
            "customer_id": customer["customer_id"],
            "jewel_type": "gold",
            "gross_weight": "10",
            "loan_amount": "5000",
            "interest_rate": "2",
        })
        assert r.status_code == 400

    def test_rate_card_lookup(self, client):
        r = client.post("/interest-rates", json={
            "metal_type": "gold", "min_amount": "0", "max_amount": "50000", "interest": "1.5"
        })
        assert r.status_code == 201

        r = client.get("/interest-rates/lookup", params={"metal_type": "gold", "amount": "15000"})
        assert r.status_code == 200
        assert r.json()["interest"] == "1.5"

        r = client.get("/interest-rates/lookup", params={"metal_type": "silver", "amount": "15000"})
        assert r.status_code == 404

    def test_ledger(self, client):
        customer = create_customer(client)
        create_voucher(client, customer["customer_id"])

        r = client.get("/ledger", params={"date": "2024-06-15"})
        assert r.status_code == 200
        data = r.json()
        assert data["query_date"] == "2024-06-15"
        assert data["category_counts"]["all"] == 1
        assert data["all_loans"][0]["bill_no"] == "B001"

        r = client.get("/ledger/entries", params={"date": "2024-06-15"})
        assert r.json()["total"] == 1

    def test_stock_summary(self, client):
        customer = create_customer(client)
        create_voucher(client, customer["customer_id"])

        r = client.get("/stock-summary")
        assert r.status_code == 200
        data = r.json()
        assert data["pagination"]["total"] == 1
        assert data["summary"]["total_loan_amount"] == "10000.00"

        create_voucher(client, customer["customer_id"], bill_no="B002")
        assert client.get("/stock-summary").json()["pagination"]["total"] == 1

        r = client.post("/stock-summary/rebuild")
        assert r.json()["record_count"] == 2

        r = client.get("/stock-summary", params={"status": "bogus"})
        assert r.status_code == 400


class TestTrashFlow:
    """Soft delete and restore through the API"""

    def test_delete_and_restore_customer(self, client):
        customer = create_customer(client)
        customer_id = customer["customer_id"]

        assert client.delete(f"/customers/{customer_id}").status_code == 200
        assert client.get(f"/customers/{customer_id}").status_code == 404

        r = client.get("/trash")
        assert r.json()["total"] == 1
        item = r.json()["items"][0]
        assert item["item_type"] == "customer"

        r = client.post(f"/trash/{item['id']}/restore")
        assert r.status_code == 200
        assert client.get(f"/customers/{customer_id}").status_code == 200

        assert len(client.get("/trash/logs").json()["logs"]) == 2

    def test_missing_trash_item(self, client):
        assert client.post("/trash/NOPE/restore").status_code == 404


class TestCounterBooks:
    """Jewel catalogue, metal rates, financial years, day book and overview"""

    def test_jewels_and_rates(self, client):
        r = client.post("/jewels", json={"name": "Ring", "category": "ring", "material": "gold"})
        assert r.status_code == 201
        item_id = r.json()["id"]
        assert item_id.startswith("G-RIN-")

        r = client.post("/jewels", json={"name": "Ring", "category": "crown", "material": "gold"})
        assert r.status_code == 400

        assert client.delete(f"/jewels/{item_id}").status_code == 200
        assert client.get(f"/jewels/{item_id}").status_code == 404
        assert client.get("/trash", params={"item_type": "jewel"}).json()["total"] == 1

        r = client.post("/jewel-rates", json={"metal_type": "Gold", "rate": "6500"})
        assert r.status_code == 200
        assert r.json()["rate"] == "6500.00"
        assert r.json()["date"] == "2024-06-15"

        r = client.get("/jewel-rates/gold/value", params={"weight": "10"})
        assert r.json()["value"] == "65000.00"
        assert client.get("/jewel-rates/silver").status_code == 404

    def test_financial_years(self, client):
        r = client.post("/financial-years", json={"year": 2024, "initial_stock_value": "50000"})
        assert r.status_code == 200
        assert r.json()["period"] == "01/04/2024 - 31/03/2025"

        r = client.get("/financial-years/active")
        assert r.json()["year"] == 2024

        r = client.get("/financial-years/summary/2024")
        assert r.status_code == 200
        assert r.json()["initial_stock_value"] == "50000.00"

        assert client.post("/financial-years", json={"year": 2024}).status_code == 400
        assert client.get("/financial-years/summary/2030").status_code == 404

    def test_day_book(self, client):
        customer = create_customer(client)
        voucher = create_voucher(client, customer["customer_id"])
        client.post(f"/vouchers/{voucher['id']}/close", json={"payment_method": "UPI"})

        r = client.get("/day-book/2024-06-15")
        assert r.status_code == 200
        closed = r.json()["summary"]["closed_loans"]
        assert closed["count"] == 1
        assert closed["transactions"][0]["total_settled"] == "10400.00"
        assert closed["transactions"][0]["payment_method"] == "UPI"

        assert client.get("/day-book/not-a-date").status_code == 400

    def test_overview(self, client):
        loan = create_loan(client, create_customer(client)["customer_id"])

        r = client.get("/overview", params={"date": "2024-06-15"})
        assert r.status_code == 200
        assert r.json()["monthly_loans"] == 1
        assert r.json()["total_capital"] == "100000.00"

        r = client.get("/overview/due", params={"period": "monthly", "date": "2024-06-15"})
        assert [row["loan_id"] for row in r.json()["loans"]] == [loan["loan_id"]]

        r = client.get("/overview/due", params={"period": "yearly", "date": "2024-06-15"})
        assert r.status_code == 400

        r = client.get("/overview/loans",
                       params={"start_date": "2024-01-01", "end_date": "2024-01-31"})
        assert r.json()["total_count"] == 1
