"""
Test suite for the HTTP API

Drives the FastAPI app end to end with TestClient over an in-memory engine.
"""

import pytest
from fastapi.testclient import TestClient

from minibank.api import create_app
from minibank.bank import Bank
from minibank.config import MinibankConfig
from minibank.storage import InMemoryStorage


@pytest.fixture
def bank(tmp_path):
    config = MinibankConfig(data_dir=str(tmp_path), session_idle_timeout_seconds=0)
    return Bank(config, storage=InMemoryStorage())


@pytest.fixture
def client(bank):
    return TestClient(create_app(bank))


def login(client, username, password, role="Customer"):
    response = client.post("/auth/login", json={"username": username, "password": password, "role": role})
    assert response.status_code == 200, response.text
    return {"X-Session-Token": response.json()["token"]}


@pytest.fixture
def admin_headers(client):
    return login(client, "q", "q", "Admin")


def open_customer(client, admin_headers, username="alice", national_id="784", deposit="6000"):
    response = client.post("/auth/signup", json={
        "username": username,
        "password": "pw",
        "full_name": f"{username} Test",
        "national_id": national_id,
        "initial_deposit": deposit
    })
    assert response.status_code == 201, response.text
    decided = client.post("/workflows/signups/account_opening/decide",
                          json={"response": "A"}, headers=admin_headers)
    assert decided.status_code == 200, decided.text
    return decided.json()["created"]["account"]["account_number"]


@pytest.fixture
def customer(client, admin_headers):
    """Approved customer 'alice' with account 1001, logged in"""
    number = open_customer(client, admin_headers)
    return number, login(client, "alice", "pw")


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "MiniBank API"


class TestAuth:

    def test_requires_session(self, client):
        assert client.get("/accounts/mine").status_code == 401
        assert client.get("/accounts/mine", headers={"X-Session-Token": "bogus"}).status_code == 401

    def test_login_failures(self, client, customer):
        bad = {"username": "alice", "password": "nope", "role": "Customer"}
        assert client.post("/auth/login", json=bad).status_code == 401
        assert client.post("/auth/login", json=bad).status_code == 401
        assert client.post("/auth/login", json=bad).status_code == 423

        good = {"username": "alice", "password": "pw", "role": "Customer"}
        assert client.post("/auth/login", json=good).status_code == 423

    def test_unknown_user(self, client):
        response = client.post("/auth/login", json={"username": "ghost", "password": "x"})
        assert response.status_code == 401

    def test_logout_ends_session(self, client, customer):
        _, headers = customer
        assert client.post("/auth/logout", headers=headers).status_code == 200
        assert client.get("/accounts/mine", headers=headers).status_code == 401

    def test_lockout_ends_open_session(self, client, customer):
        _, headers = customer
        for _ in range(3):
            client.post("/auth/login", json={"username": "alice", "password": "bad"})
        assert client.get("/accounts/mine", headers=headers).status_code == 401

    def test_duplicate_signup(self, client, customer):
        response = client.post("/auth/signup", json={
            "username": "bob", "password": "pw", "full_name": "Bob", "national_id": "784"
        })
        assert response.status_code == 409

    def test_signup_response_hides_digest(self, client):
        response = client.post("/auth/signup", json={
            "username": "bob", "password": "pw", "full_name": "Bob", "national_id": "1"
        })
        assert "password_digest" not in response.json()["request"]

    def test_change_password(self, client, customer):
        _, headers = customer
        wrong = client.post("/auth/password", json={"old_password": "x", "new_password": "y"}, headers=headers)
        assert wrong.status_code == 403
        ok = client.post("/auth/password", json={"old_password": "pw", "new_password": "y"}, headers=headers)
        assert ok.status_code == 200
        login(client, "alice", "y")


class TestAccounts:

    def test_my_accounts(self, client, customer):
        number, headers = customer
        accounts = client.get("/accounts/mine", headers=headers).json()["accounts"]
        assert [a["account_number"] for a in accounts] == [number]
        assert accounts[0]["balance"] == "6000"

    def test_deposit_and_withdraw(self, client, customer):
        number, headers = customer
        response = client.post(f"/accounts/{number}/deposit", json={"amount": "100"}, headers=headers)
        assert response.json()["balance"] == "6100"

        too_much = client.post(f"/accounts/{number}/withdraw", json={"amount": "6060"}, headers=headers)
        assert too_much.status_code == 400

        ok = client.post(f"/accounts/{number}/withdraw", json={"amount": "6050"}, headers=headers)
        assert ok.json()["balance"] == "50"

    def test_invalid_amount(self, client, customer):
        number, headers = customer
        response = client.post(f"/accounts/{number}/deposit", json={"amount": "-1"}, headers=headers)
        assert response.status_code == 400

    def test_cannot_touch_other_accounts(self, client, admin_headers, customer):
        other = open_customer(client, admin_headers, "bob", "785")
        _, headers = customer
        assert client.get(f"/accounts/{other}", headers=headers).status_code == 403
        assert client.post(f"/accounts/{other}/deposit", json={"amount": "1"},
                           headers=headers).status_code == 403
        assert client.get("/accounts/9999", headers=headers).status_code == 404

    def test_transfer_and_history(self, client, admin_headers, customer):
        other = open_customer(client, admin_headers, "bob", "785", "100")
        number, headers = customer

        response = client.post("/accounts/transfer", json={
            "from_account": number, "to_account": other, "amount": "250"
        }, headers=headers)
        assert response.status_code == 200
        assert response.json()["from_balance"] == "5750"

        history = client.get(f"/accounts/{number}/transactions?type=transfer", headers=headers).json()
        assert [t["type"] for t in history["transactions"]] == ["Transfer Out"]

    def test_transfer_to_missing_account(self, client, customer):
        number, headers = customer
        response = client.post("/accounts/transfer", json={
            "from_account": number, "to_account": 9999, "amount": "1"
        }, headers=headers)
        assert response.status_code == 404

    def test_convert(self, client, customer):
        number, headers = customer
        response = client.get(f"/accounts/{number}/convert?currency=usd", headers=headers)
        assert response.json()["converted"] == "15600.00"
        assert client.get(f"/accounts/{number}/convert?currency=jpy", headers=headers).status_code == 400

    def test_admin_only_listing_and_delete(self, client, admin_headers, customer):
        number, headers = customer
        assert client.get("/accounts", headers=headers).status_code == 403
        assert client.get("/accounts?q=ALICE", headers=admin_headers).json()["accounts"][0]["account_number"] == number

        assert client.delete(f"/accounts/{number}", headers=admin_headers).status_code == 400
        assert client.delete(f"/accounts/{number}?confirm=true", headers=admin_headers).status_code == 200
        assert client.get("/accounts", headers=admin_headers).json()["accounts"] == []


class TestWorkflows:

    def test_empty_queue(self, client, admin_headers):
        response = client.post("/workflows/signups/account_opening/decide",
                               json={"response": "A"}, headers=admin_headers)
        assert response.status_code == 404

    def test_unknown_queue(self, client, admin_headers):
        assert client.get("/workflows/signups/vip", headers=admin_headers).status_code == 404

    def test_loan_flow(self, client, admin_headers, customer):
        number, headers = customer
        submitted = client.post("/workflows/loans", json={"amount": "2000", "reason": "car"}, headers=headers)
        assert submitted.status_code == 201

        decided = client.post("/workflows/loans/decide", json={"response": "A"}, headers=admin_headers)
        assert decided.json()["loan"]["status"] == "Approved"
        assert client.get(f"/accounts/{number}", headers=headers).json()["balance"] == "8000"

        again = client.post("/workflows/loans", json={"amount": "100"}, headers=headers)
        assert again.status_code == 400

    def test_appointments(self, client, admin_headers, customer):
        _, headers = customer
        client.post("/workflows/appointments", json={
            "service": "Consultation", "date": "2024-06-01", "time": "10:00"
        }, headers=headers)

        decided = client.post("/workflows/appointments/decide", json={"response": "A"}, headers=admin_headers)
        assert decided.json()["decision"] == "approve"
        mine = client.get("/workflows/appointments", headers=headers).json()["appointments"]
        assert mine[0]["status"] == "Approved"

    def test_admin_routes_forbidden_to_customers(self, client, customer):
        _, headers = customer
        assert client.get("/workflows/signups/account_opening", headers=headers).status_code == 403
        assert client.post("/workflows/loans/decide", json={"response": "A"}, headers=headers).status_code == 403


class TestAdmin:

    def test_unlock(self, client, admin_headers, customer):
        for _ in range(3):
            client.post("/auth/login", json={"username": "alice", "password": "bad"})

        locked = client.get("/admin/locked", headers=admin_headers).json()["locked"]
        assert [i["username"] for i in locked] == ["alice"]

        response = client.post("/admin/unlock", json={"username": "alice", "confirm": True},
                               headers=admin_headers)
        assert response.status_code == 200
        login(client, "alice", "pw")

    def test_rates(self, client, admin_headers):
        response = client.put("/admin/rates", json={"usd": "2.7", "eur": "2.5", "sar": "10"},
                              headers=admin_headers)
        assert response.json()["rates"]["USD"] == "2.7"
        bad = client.put("/admin/rates", json={"usd": "0", "eur": "2.5", "sar": "10"},
                         headers=admin_headers)
        assert bad.status_code == 400

    def test_delete_all_requires_confirm(self, client, admin_headers, customer):
        assert client.post("/admin/delete-all", json={}, headers=admin_headers).status_code == 400
        response = client.post("/admin/delete-all", json={"confirm": True}, headers=admin_headers)
        assert response.status_code == 200


class TestReportsAndSupport:

    def test_stats(self, client, admin_headers, customer):
        stats = client.get("/reports/stats", headers=admin_headers).json()
        assert stats["total_users"] == 2
        assert stats["total_accounts"] == 1
        assert stats["loan_interest_income"] == "0"

    def test_summary(self, client, admin_headers, customer):
        summary = client.get("/reports/summary", headers=admin_headers).json()
        assert summary["total_balance"] == "6000"
        assert summary["total_customers"] == 1
        assert summary["holdings"]["USD"] == "15600.00"

    def test_complaints(self, client, admin_headers, customer):
        _, headers = customer
        client.post("/support/complaints", json={"text": "slow"}, headers=headers)
        client.post("/support/complaints", json={"text": "rude"}, headers=headers)
        assert client.get("/support/complaints", headers=admin_headers).json()["complaints"] == ["rude", "slow"]

        assert client.post("/support/complaints/undo", headers=headers).json()["removed"] == "rude"
        client.post("/support/complaints/undo", headers=headers)
        assert client.post("/support/complaints/undo", headers=headers).status_code == 404

    def test_feedback(self, client, admin_headers, customer):
        _, headers = customer
        response = client.post("/support/feedback", json={"service": "Loans", "text": "great"}, headers=headers)
        assert response.status_code == 201
        entries = client.get("/support/feedback?service=Loans", headers=admin_headers).json()["feedback"]
        assert [e["username"] for e in entries] == ["alice"]
