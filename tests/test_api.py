from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, build_engine
from main import app, get_db

ALICE = {"X-User-Id": "1"}
BOB = {"X-User-Id": "2"}


@pytest.fixture()
def client():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    engine.dispose()


def create_account(client, headers=ALICE, initial="1000.00", name="Checking"):
    res = client.post(
        "/api/v1/accounts",
        json={"name": name, "type": "checking", "initial_balance": initial},
        headers=headers,
    )
    assert res.status_code == 201
    return res.json()


def create_txn(client, account_id, amount, type_, day="2025-01-10", headers=ALICE, **extra):
    payload = {
        "amount": amount,
        "type": type_,
        "description": "Entry",
        "account_id": account_id,
        "transaction_date": day,
        **extra,
    }
    return client.post("/api/v1/transactions", json=payload, headers=headers)


def test_balance_and_summary_follow_soft_delete(client) -> None:
    account = create_account(client)
    assert Decimal(account["current_balance"]) == Decimal("1000.00")

    salary = create_txn(client, account["id"], "3200.00", "income")
    assert salary.status_code == 201
    assert create_txn(client, account["id"], "1200.00", "expense").status_code == 201
    assert create_txn(client, account["id"], "650.00", "expense").status_code == 201

    res = client.get(f"/api/v1/accounts/{account['id']}/balance", headers=ALICE)
    assert res.status_code == 200
    assert Decimal(res.json()["balance"]) == Decimal("2350.00")

    summary = client.get(
        "/api/v1/analytics/monthly-summary", params={"month": "2025-01"}, headers=ALICE
    ).json()
    assert summary["month"] == "2025-01"
    assert Decimal(summary["total_income"]) == Decimal("3200.00")
    assert Decimal(summary["total_expenses"]) == Decimal("1850.00")
    assert Decimal(summary["net_savings"]) == Decimal("1350.00")
    assert Decimal(summary["savings_rate"]) == Decimal("42.19")

    res = client.delete(f"/api/v1/transactions/{salary.json()['id']}", headers=ALICE)
    assert res.status_code == 204

    res = client.get(f"/api/v1/accounts/{account['id']}", headers=ALICE)
    assert Decimal(res.json()["current_balance"]) == Decimal("-850.00")
    summary = client.get(
        "/api/v1/analytics/monthly-summary", params={"month": "2025-01"}, headers=ALICE
    ).json()
    assert Decimal(summary["total_income"]) == Decimal("0.00")


def test_transaction_payload_carries_direction_and_category(client) -> None:
    account = create_account(client)

    res = create_txn(client, account["id"], "123.456", "expense")

    assert res.status_code == 201
    body = res.json()
    assert Decimal(body["amount"]) == Decimal("-123.46")
    assert body["type"] == "expense"
    assert body["account"]["id"] == account["id"]
    assert body["category"]["name"] == "Uncategorized"
    assert body["category"]["is_default"] is True

    categories = client.get("/api/v1/categories").json()
    assert [c["name"] for c in categories] == ["Uncategorized"]


def test_foreign_resources_are_not_found(client) -> None:
    account = create_account(client)
    txn = create_txn(client, account["id"], "10", "expense").json()

    for path in (
        f"/api/v1/accounts/{account['id']}",
        f"/api/v1/accounts/{account['id']}/balance",
        f"/api/v1/accounts/{account['id']}/transactions",
        f"/api/v1/transactions/{txn['id']}",
    ):
        res = client.get(path, headers=BOB)
        assert res.status_code == 404, path

    res = client.get(f"/api/v1/accounts/{account['id']}", headers=BOB)
    missing = client.get("/api/v1/accounts/9999", headers=BOB)
    assert res.json()["detail"] == f"Account not found with ID: {account['id']}"
    assert missing.json()["detail"] == "Account not found with ID: 9999"

    res = create_txn(client, account["id"], "10", "expense", headers=BOB)
    assert res.status_code == 404


def test_account_lifecycle(client) -> None:
    account = create_account(client, initial="50")
    create_account(client, initial="25.25", name="Savings")
    create_account(client, headers=BOB, initial="999")

    res = client.put(
        f"/api/v1/accounts/{account['id']}",
        json={"name": "Everyday", "initial_balance": "100.005"},
        headers=ALICE,
    )
    assert res.status_code == 200
    assert res.json()["name"] == "Everyday"
    assert Decimal(res.json()["initial_balance"]) == Decimal("100.01")

    total = client.get("/api/v1/accounts/total-balance", headers=ALICE).json()
    assert Decimal(total["balance"]) == Decimal("125.26")

    listed = client.get("/api/v1/accounts", headers=ALICE).json()
    assert {a["name"] for a in listed} == {"Everyday", "Savings"}

    create_txn(client, account["id"], "5", "expense")
    res = client.delete(f"/api/v1/accounts/{account['id']}", headers=ALICE)
    assert res.status_code == 409

    empty = [a for a in listed if a["name"] == "Savings"][0]
    res = client.delete(f"/api/v1/accounts/{empty['id']}", headers=ALICE)
    assert res.status_code == 204
    assert client.get(f"/api/v1/accounts/{empty['id']}", headers=ALICE).status_code == 404


def test_transaction_listing_filters(client) -> None:
    account = create_account(client)
    create_txn(client, account["id"], "100", "income", day="2025-01-01")
    create_txn(client, account["id"], "40", "expense", day="2025-01-15")
    create_txn(client, account["id"], "7", "expense", day="2025-02-01")

    res = client.get(
        "/api/v1/transactions", params={"type": "expense", "size": 1}, headers=ALICE
    )
    assert res.status_code == 200
    page = res.json()
    assert page["total"] == 2
    assert page["size"] == 1
    assert [Decimal(t["amount"]) for t in page["items"]] == [Decimal("-7.00")]

    res = client.get(
        "/api/v1/transactions",
        params={"start_date": "2025-01-01", "end_date": "2025-01-31"},
        headers=ALICE,
    )
    assert res.json()["total"] == 2

    res = client.get(
        f"/api/v1/accounts/{account['id']}/transactions", headers=ALICE
    )
    assert res.json()["total"] == 3


def test_update_transaction_flips_direction(client) -> None:
    account = create_account(client)
    txn = create_txn(client, account["id"], "40", "expense").json()

    res = client.put(
        f"/api/v1/transactions/{txn['id']}", json={"type": "income"}, headers=ALICE
    )

    assert res.status_code == 200
    assert res.json()["id"] == txn["id"]
    assert Decimal(res.json()["amount"]) == Decimal("40.00")


def test_spending_savings_and_trends(client) -> None:
    account = create_account(client)
    create_txn(client, account["id"], "1000", "income", day="2024-11-20")
    create_txn(client, account["id"], "250", "expense", day="2024-11-21")

    spending = client.get(
        "/api/v1/analytics/spending-by-category",
        params={"start_date": "2024-11-01", "end_date": "2024-11-30"},
        headers=ALICE,
    ).json()
    assert Decimal(spending["total_expenses"]) == Decimal("250.00")
    assert len(spending["categories"]) == 1
    assert Decimal(spending["categories"][0]["percentage"]) == Decimal("100.00")

    rate = client.get(
        "/api/v1/analytics/savings-rate",
        params={"start_date": "2024-11-01", "end_date": "2024-11-30"},
        headers=ALICE,
    ).json()
    assert Decimal(rate["savings_rate"]) == Decimal("75.00")

    trend = client.get(
        "/api/v1/analytics/trends",
        params={"start_date": "2024-11-15", "end_date": "2025-03-02"},
        headers=ALICE,
    ).json()
    assert [m["month"] for m in trend] == [
        "2024-11",
        "2024-12",
        "2025-01",
        "2025-02",
        "2025-03",
    ]


def test_invalid_input_status_codes(client) -> None:
    account = create_account(client)

    assert create_txn(client, account["id"], "0", "expense").status_code == 422
    assert create_txn(client, account["id"], "0.001", "expense").status_code == 400
    assert create_txn(client, account["id"], "5", "transfer").status_code == 422

    inverted = {"start_date": "2025-02-01", "end_date": "2025-01-01"}
    for path in (
        "/api/v1/analytics/spending-by-category",
        "/api/v1/analytics/savings-rate",
        "/api/v1/analytics/trends",
        "/api/v1/transactions",
    ):
        res = client.get(path, params=inverted, headers=ALICE)
        assert res.status_code == 400, path
        assert res.json()["detail"] == "Start date must be before or equal to end date"

    res = client.get(
        "/api/v1/analytics/monthly-summary", params={"month": "2025-13"}, headers=ALICE
    )
    assert res.status_code == 400

    assert client.get("/api/v1/accounts").status_code == 422


def test_blank_account_name_on_update_is_rejected(client) -> None:
    account = create_account(client)

    res = client.put(
        f"/api/v1/accounts/{account['id']}", json={"name": "   "}, headers=ALICE
    )

    assert res.status_code == 422
    assert client.get(f"/api/v1/accounts/{account['id']}", headers=ALICE).json()[
        "name"
    ] == "Checking"
