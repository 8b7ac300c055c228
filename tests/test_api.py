"""
Integration tests for the Bank Ledger API
Tests end-to-end workflows using FastAPI TestClient
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from bank_ledger.api import create_app, status_for
from bank_ledger.errors import ErrorKind
from bank_ledger.service import LedgerService

from conftest import make_config


def user(user_id):
    return {"X-User-ID": str(user_id)}


def admin(user_id=100):
    return {"X-User-ID": str(user_id), "X-User-Role": "admin"}


@pytest.fixture
def ledger():
    service = LedgerService.from_config(make_config("memory://"))
    yield service
    service.close()


@pytest.fixture
def client(ledger):
    """Create a test client over an in-memory ledger"""
    return TestClient(create_app(ledger))


def open_funded_account(client, user_id, currency="TRY", amount=None):
    r = client.post("/api/accounts", json={"currency": currency}, headers=user(user_id))
    assert r.status_code == 201
    account = r.json()
    if amount:
        r = client.post(f"/api/admin/accounts/{account['id']}/deposit", json={"amount": amount}, headers=admin())
        assert r.status_code == 200
        account = r.json()
    return account


class TestHealthEndpoints:
    """Test basic health endpoint"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "healthy", "database": "memory"}


class TestAccountFlow:
    """Account creation and listing"""

    def test_create_account(self, client):
        r = client.post("/api/accounts", json={"currency": "usd"}, headers=user(1))
        assert r.status_code == 201
        data = r.json()
        assert data["currency"] == "USD"
        assert data["balance"] == "0.00"
        assert data["user_id"] == 1
        assert data["account_number"] == 1000000001

    def test_unsupported_currency(self, client):
        r = client.post("/api/accounts", json={"currency": "GBP"}, headers=user(1))
        assert r.status_code == 400
        assert r.json()["kind"] == "unsupported_currency"

    def test_missing_user_header(self, client):
        r = client.post("/api/accounts", json={"currency": "TRY"})
        assert r.status_code == 422

    def test_list_own_accounts(self, client):
        open_funded_account(client, 1)
        open_funded_account(client, 1, "USD")
        open_funded_account(client, 2)

        r = client.get("/api/accounts", headers=user(1))
        assert r.status_code == 200
        assert [a["currency"] for a in r.json()] == ["TRY", "USD"]


class TestAdminEndpoints:
    """Deposits and the full account list require the admin role"""

    def test_deposit(self, client):
        account = open_funded_account(client, 1)
        r = client.post(f"/api/admin/accounts/{account['id']}/deposit", json={"amount": "12.34"}, headers=admin())
        assert r.status_code == 200
        assert r.json()["balance"] == "12.34"

    def test_deposit_requires_admin(self, client):
        account = open_funded_account(client, 1)
        r = client.post(f"/api/admin/accounts/{account['id']}/deposit", json={"amount": "12.34"}, headers=user(1))
        assert r.status_code == 403
        assert r.json()["message"] == "admin access required"

    def test_deposit_missing_account(self, client):
        r = client.post("/api/admin/accounts/999/deposit", json={"amount": "1.00"}, headers=admin())
        assert r.status_code == 404

    def test_deposit_invalid_amount(self, client):
        account = open_funded_account(client, 1)
        r = client.post(f"/api/admin/accounts/{account['id']}/deposit", json={"amount": "-1"}, headers=admin())
        assert r.status_code == 400
        assert r.json()["kind"] == "invalid_amount"

    def test_list_all_accounts(self, client):
        open_funded_account(client, 1)
        open_funded_account(client, 2)

        assert client.get("/api/admin/accounts", headers=user(1)).status_code == 403
        r = client.get("/api/admin/accounts", headers=admin())
        assert r.status_code == 200
        assert [a["user_id"] for a in r.json()] == [1, 2]


class TestTransferFlow:
    """End-to-end transfer tests"""

    def test_transfer(self, client):
        source = open_funded_account(client, 1, amount="500.00")
        destination = open_funded_account(client, 2)

        r = client.post("/api/transfers", json={
            "from_account_id": source["id"],
            "to_account_id": destination["id"],
            "amount": "150.75",
        }, headers=user(1))

        assert r.status_code == 201
        data = r.json()
        assert data["amount"] == "150.75"
        assert data["from_account_id"] == source["id"]
        assert data["id"] is not None

        balances = {a["id"]: a["balance"] for a in client.get("/api/admin/accounts", headers=admin()).json()}
        assert balances == {source["id"]: "349.25", destination["id"]: "150.75"}

    def test_listing_reflects_transfer(self, client):
        source = open_funded_account(client, 1, amount="100.00")
        destination = open_funded_account(client, 2)
        client.get("/api/accounts", headers=user(1))
        client.get("/api/accounts", headers=user(2))

        client.post("/api/transfers", json={
            "from_account_id": source["id"], "to_account_id": destination["id"], "amount": "25.00",
        }, headers=user(1))

        assert client.get("/api/accounts", headers=user(1)).json()[0]["balance"] == "75.00"
        assert client.get("/api/accounts", headers=user(2)).json()[0]["balance"] == "25.00"

    @pytest.mark.parametrize("case,expected_status,expected_kind", [
        ("insufficient", 400, "insufficient_funds"),
        ("currency", 400, "currency_mismatch"),
        ("same", 400, "same_account_transfer"),
        ("owner", 403, "permission_denied"),
        ("sender", 404, "sender_account_not_found"),
        ("receiver", 404, "receiver_account_not_found"),
        ("amount", 400, "invalid_amount"),
    ])
    def test_transfer_errors(self, client, case, expected_status, expected_kind):
        source = open_funded_account(client, 1, amount="50.00")
        destination = open_funded_account(client, 2)
        foreign = open_funded_account(client, 2, "USD")

        body = {"from_account_id": source["id"], "to_account_id": destination["id"], "amount": "10.00"}
        acting_user = 1
        if case == "insufficient":
            body["amount"] = "100.00"
        elif case == "currency":
            body["to_account_id"] = foreign["id"]
        elif case == "same":
            body["to_account_id"] = source["id"]
        elif case == "owner":
            acting_user = 2
        elif case == "sender":
            body["from_account_id"] = 9999
        elif case == "receiver":
            body["to_account_id"] = 9999
        elif case == "amount":
            body["amount"] = "0"

        r = client.post("/api/transfers", json=body, headers=user(acting_user))

        assert r.status_code == expected_status
        data = r.json()
        assert data["code"] == expected_status
        assert data["kind"] == expected_kind
        assert data["message"]

    def test_storage_failure_hides_details(self, client, ledger):
        source = open_funded_account(client, 1, amount="50.00")
        destination = open_funded_account(client, 2)

        with patch.object(ledger.transaction_store, "append_transaction", side_effect=RuntimeError("disk on fire")):
            r = client.post("/api/transfers", json={
                "from_account_id": source["id"], "to_account_id": destination["id"], "amount": "10.00",
            }, headers=user(1))

        assert r.status_code == 500
        assert r.json() == {"code": 500, "message": "Could not process request", "kind": "storage_failure"}


class TestTransactionHistory:
    """Transaction history endpoint"""

    def test_history_newest_first(self, client):
        source = open_funded_account(client, 1, amount="50.00")
        destination = open_funded_account(client, 2)
        for amount in ("1.00", "2.00"):
            client.post("/api/transfers", json={
                "from_account_id": source["id"], "to_account_id": destination["id"], "amount": amount,
            }, headers=user(1))

        r = client.get(f"/api/accounts/{destination['id']}/transactions", headers=user(2))
        assert r.status_code == 200
        assert [t["amount"] for t in r.json()] == ["2.00", "1.00"]

    def test_history_of_foreign_account(self, client):
        source = open_funded_account(client, 1)
        r = client.get(f"/api/accounts/{source['id']}/transactions", headers=user(2))
        assert r.status_code == 403

    def test_history_of_missing_account(self, client):
        r = client.get("/api/accounts/9999/transactions", headers=user(1))
        assert r.status_code == 404


def test_status_mapping():
    assert status_for(ErrorKind.ACCOUNT_NOT_FOUND) == 404
    assert status_for(ErrorKind.PERMISSION_DENIED) == 403
    assert status_for(ErrorKind.CURRENCY_MISMATCH) == 400
    assert status_for(ErrorKind.STORAGE_FAILURE) == 500
