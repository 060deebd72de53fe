"""
Integration tests for the Asset Finance API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from asset_finance.api import create_app
from asset_finance.backoffice import BackOffice
from asset_finance.config import AssetFinanceConfig
from asset_finance.storage import InMemoryStorage


ADMIN = {"X-Staff-Id": "admin-1", "X-Staff-Roles": "admin"}
FIELD_OFFICER = {"X-Staff-Id": "fo-1", "X-Staff-Roles": "field_officer"}
CLIENT = {"X-Staff-Id": "client-1", "X-Staff-Roles": "client"}

PRODUCT = {
    "product_id": "prod-boxer-150",
    "name": "Bajaj Boxer 150",
    "asset_type": "motorcycle",
    "brand": "Bajaj",
    "model": "Boxer 150",
    "price": "9000000",
    "interest_rate": "30",
    "loan_duration_months": 12
}

APPLICANT = {
    "full_name": "Okello James",
    "phone": "+256700123456",
    "address": "Plot 12, Gulu Road",
    "district": "Lira"
}


@pytest.fixture
def client():
    """Create a test client with an in-memory back office and auth on"""
    back_office = BackOffice(
        storage=InMemoryStorage(),
        config=AssetFinanceConfig(database_url="memory://", auth_enabled=True)
    )
    with TestClient(create_app(back_office)) as test_client:
        yield test_client


def _create_application(client):
    r = client.post("/loans/applications", headers=FIELD_OFFICER, json={
        "applicant": APPLICANT,
        "product": PRODUCT,
        "repayment_frequency": "daily",
        "down_payment": "1000000"
    })
    assert r.status_code == 201
    return r.json()


def _activate(client, loan):
    assert client.post(f"/loans/{loan['id']}/review", headers=FIELD_OFFICER).status_code == 200
    r = client.post(f"/loans/{loan['id']}/kyc-complete", headers=FIELD_OFFICER)
    assert r.json()["status"] == "awaiting_asset"

    r = client.post(f"/assets/{loan['asset_id']}/identifiers", headers=FIELD_OFFICER, json={
        "chassis_number": "MD2A11CZ5KWA12345",
        "registration_number": "UEX 123A"
    })
    assert r.status_code == 200
    assert r.json()["loan"]["status"] == "awaiting_approval"

    r = client.post(f"/loans/{loan['id']}/approve", headers=ADMIN,
                    json={"start_date": "2026-01-01"})
    assert r.status_code == 200
    return r.json()


class TestHealthAndQuote:
    """Test unauthenticated endpoints"""

    def test_health(self, client):
        """Test health endpoint needs no identity"""
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_quote(self, client):
        """Test quote endpoint returns the calculated terms"""
        r = client.post("/calculator/quote", json={
            "price": "9000000", "down_payment": "1000000", "interest_rate": "30",
            "duration_months": 12, "frequency": "daily"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["total_amount"] == "10400000"
        assert data["total_installments"] == 360
        assert data["installment_amount"] == "28889"
        assert data["rounding_excess"] == "40"
        assert data["end_offset_days"] == 360

    def test_quote_uses_configured_defaults(self, client):
        """Test quote falls back to configured rate and duration"""
        r = client.post("/calculator/quote", json={"price": "9000000", "down_payment": "1000000",
                                                   "frequency": "weekly"})
        assert r.status_code == 200
        assert r.json()["total_installments"] == 52

    def test_quote_validation_error(self, client):
        """Test invalid terms map to a validation error"""
        r = client.post("/calculator/quote", json={"price": "9000000", "down_payment": "9000000"})
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "validation_error"

    def test_malformed_body(self, client):
        """Test malformed request bodies return field details"""
        r = client.post("/calculator/quote", json={"price": "nine million"})
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "validation_error"
        assert r.json()["error"]["details"]


class TestAuthentication:
    """Test identity headers and permission checks"""

    def test_missing_headers(self, client):
        """Test requests without identity headers are unauthorized"""
        r = client.get("/loans")
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "http_error"

    def test_client_role_forbidden(self, client):
        """Test client role cannot list loans"""
        r = client.get("/loans", headers=CLIENT)
        assert r.status_code == 403
        assert r.json()["error"]["code"] == "permission_denied"

    def test_field_officer_cannot_approve(self, client):
        """Test field officer cannot approve over the API"""
        loan = _create_application(client)
        r = client.post(f"/loans/{loan['id']}/approve", headers=FIELD_OFFICER, json={})
        assert r.status_code == 403

    def test_public_inquiry_submission(self, client):
        """Test inquiries can be submitted anonymously"""
        r = client.post("/inquiries", json={"full_name": "Nakato Sarah", "phone": "0701",
                                            "sale_type": "cash"})
        assert r.status_code == 201
        assert r.json()["status"] == "new"

    def test_auth_disabled_runs_as_system(self):
        """Test requests run as system actor when auth is off"""
        back_office = BackOffice(
            storage=InMemoryStorage(),
            config=AssetFinanceConfig(database_url="memory://", auth_enabled=False)
        )
        with TestClient(create_app(back_office)) as test_client:
            assert test_client.get("/loans").status_code == 200


class TestLoanWorkflow:
    """Test the full origination and repayment flow"""

    def test_application_to_first_payment(self, client):
        """Test application through approval and first confirmed payment"""
        loan = _create_application(client)
        assert loan["status"] == "pending"
        assert loan["installment_amount"] == "28889"

        loan = _activate(client, loan)
        assert loan["status"] == "active"
        assert loan["next_payment_date"] == "2026-01-02"

        r = client.get(f"/loans/{loan['id']}/schedule", headers=FIELD_OFFICER)
        assert len(r.json()["schedule"]) == 360

        r = client.post("/payments", headers=FIELD_OFFICER, json={
            "loan_id": loan["id"], "amount": "28889", "payment_method": "mtn_momo",
            "transaction_id": "MP240101.1234.A00001"
        })
        assert r.status_code == 201
        payment = r.json()
        assert payment["status"] == "pending"

        r = client.post(f"/payments/{payment['id']}/confirm", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["payment"]["status"] == "confirmed"
        assert r.json()["loan"]["loan_balance"] == "10371111"
        assert r.json()["loan"]["installments_paid"] == 1

        r = client.post(f"/payments/{payment['id']}/confirm", headers=ADMIN)
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "precondition_failed"

    def test_reject_application(self, client):
        """Test rejecting an application returns the asset to stock"""
        loan = _create_application(client)

        r = client.post(f"/loans/{loan['id']}/reject", headers=ADMIN,
                        json={"reason": "Incomplete KYC"})
        assert r.status_code == 200
        assert r.json()["status"] == "rejected"

        r = client.get("/assets", headers=ADMIN, params={"status": "available"})
        assert [a["id"] for a in r.json()["assets"]] == [loan["asset_id"]]

    def test_unknown_loan(self, client):
        """Test unknown loan returns not found"""
        r = client.get("/loans/missing", headers=ADMIN)
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "not_found"

    def test_invalid_payment_amount(self, client):
        """Test zero payment amount is rejected"""
        loan = _activate(client, _create_application(client))

        r = client.post("/payments", headers=FIELD_OFFICER, json={
            "loan_id": loan["id"], "amount": "0", "payment_method": "cash"
        })
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "validation_error"

    def test_list_loans_by_status(self, client):
        """Test listing loans filtered by status"""
        _create_application(client)

        r = client.get("/loans", headers=ADMIN, params={"status": "pending"})
        assert len(r.json()["loans"]) == 1
        r = client.get("/loans", headers=ADMIN, params={"status": "active"})
        assert r.json()["loans"] == []


class TestRecoveryWorkflow:
    """Test delinquency, default and repossession endpoints"""

    def test_missed_payments_to_release(self, client):
        """Test missed payments through default, recovery and release"""
        loan = _activate(client, _create_application(client))

        r = client.post("/admin/jobs/reconcile-missed-payments", headers=ADMIN,
                        json={"as_of": "2026-01-06"})
        assert r.status_code == 200
        assert r.json()["missed_recorded"] == 4

        r = client.get("/recovery/candidates", headers=FIELD_OFFICER)
        assert [l["id"] for l in r.json()["loans"]] == [loan["id"]]

        r = client.get("/recovery/summary", headers=ADMIN)
        assert r.json()["balance_at_risk"] == "10400000"

        r = client.post(f"/recovery/loans/{loan['id']}/initiate", headers=ADMIN,
                        json={"notes": "Rider unreachable"})
        assert r.json()["status"] == "defaulted"

        r = client.post(f"/recovery/loans/{loan['id']}/recovered", headers=ADMIN)
        assert r.json()["status"] == "recovered"

        r = client.post(f"/recovery/assets/{loan['asset_id']}/release", headers=ADMIN)
        assert r.json()["status"] == "available"

        r = client.get("/admin/consistency", headers=ADMIN)
        assert r.json() == {"consistent": True, "violations": []}

        r = client.get("/admin/audit/verify", headers=ADMIN)
        assert r.json()["valid"] is True
