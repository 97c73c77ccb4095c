# Sales listings, transactions and their 4% commission ledger.
from fastapi.testclient import TestClient

from conftest import auth_headers


def make_sales_property(client: TestClient, token: str, **fields) -> dict:
    body = {
        "title": "Hillside Townhouse",
        "location": "Arabian Ranches",
        "property_type": "townhouse",
        "price": 1500000,
        "beds": 3,
        **fields,
    }
    r = client.post("/api/sales-properties", headers=auth_headers(token), json=body)
    assert r.status_code == 201, r.text
    return r.json()


def transaction_body(property_id: int, seller_id: int, buyer_id: int, **extra) -> dict:
    body = {
        "property_id": property_id,
        "seller_agent_id": seller_id,
        "buyer_agent_id": buyer_id,
        "buyer_name": "Karim Buyer",
        "buyer_email": "karim@example.com",
        "sale_price": 500000,
        "sale_date": "2025-05-20",
    }
    body.update(extra)
    return body


def test_sales_property_crud(client: TestClient, make_agent):
    token, agent = make_agent("seller@example.com", agency_name="Summit Sales")
    prop = make_sales_property(client, token)
    assert prop["status"] == "draft"
    assert prop["agent_id"] == agent["id"]
    assert prop["price"] == 1500000

    r = client.put(
        f"/api/sales-properties/{prop['id']}", headers=auth_headers(token), json={"status": "published", "price": 1450000}
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "published"

    make_sales_property(client, token, title="Lakeside Villa", location="Emirates Hills")
    r = client.get("/api/sales-properties", headers=auth_headers(token), params={"search": "lake"})
    assert [p["title"] for p in r.json()] == ["Lakeside Villa"]
    r = client.get("/api/sales-properties", headers=auth_headers(token), params={"status": "published"})
    assert [p["id"] for p in r.json()] == [prop["id"]]

    assert client.get("/api/sales-properties/9999", headers=auth_headers(token)).status_code == 404


def test_transaction_creates_commission_and_completion_sells(client: TestClient, make_agent):
    seller_token, seller = make_agent("seller@example.com", agency_name="Summit Sales")
    buyer_token, buyer = make_agent("buyer@example.com", agency_name="Buyer Brokers")
    prop = make_sales_property(client, seller_token)

    r = client.post(
        "/api/sales-transactions", headers=auth_headers(seller_token), json=transaction_body(prop["id"], seller["id"], buyer["id"])
    )
    assert r.status_code == 201, r.text
    txn = r.json()
    assert txn["status"] == "pending"
    commission = txn["commission"]
    assert commission["total_amount"] == 20000
    assert commission["seller_commission"] == 9600
    assert commission["buyer_commission"] == 9600
    assert commission["platform_fee"] == 800
    assert commission["status"] == "pending"

    r = client.patch(
        f"/api/sales-transactions/{txn['id']}/status", headers=auth_headers(buyer_token), json={"status": "completed"}
    )
    assert r.status_code == 200, r.text
    done = r.json()
    assert done["status"] == "completed"
    assert done["commission"]["status"] == "paid"
    assert done["commission"]["paid_at"] is not None

    r = client.get(f"/api/sales-properties/{prop['id']}", headers=auth_headers(seller_token))
    assert r.json()["status"] == "sold"

    # Sold listings are frozen and cannot be sold again
    r = client.put(f"/api/sales-properties/{prop['id']}", headers=auth_headers(seller_token), json={"price": 1})
    assert r.status_code == 400
    r = client.post(
        "/api/sales-transactions", headers=auth_headers(seller_token), json=transaction_body(prop["id"], seller["id"], buyer["id"])
    )
    assert r.status_code == 400

    # Completed is final; repeating it is a no-op
    r = client.patch(
        f"/api/sales-transactions/{txn['id']}/status", headers=auth_headers(seller_token), json={"status": "cancelled"}
    )
    assert r.status_code == 400
    r = client.patch(
        f"/api/sales-transactions/{txn['id']}/status", headers=auth_headers(seller_token), json={"status": "completed"}
    )
    assert r.status_code == 200

    r = client.get(f"/api/sales-commissions/agent/{buyer['id']}", headers=auth_headers(buyer_token))
    assert r.status_code == 200
    assert [c["transaction_id"] for c in r.json()] == [txn["id"]]


def test_transaction_validation(client: TestClient, make_agent):
    token, seller = make_agent("seller@example.com", agency_name="Summit Sales")
    prop = make_sales_property(client, token)

    r = client.post("/api/sales-transactions", headers=auth_headers(token), json=transaction_body(9999, seller["id"], seller["id"]))
    assert r.status_code == 404
    r = client.post("/api/sales-transactions", headers=auth_headers(token), json=transaction_body(prop["id"], seller["id"], 9999))
    assert r.status_code == 404
    assert r.json()["detail"] == "Buyer agent not found"
    r = client.post(
        "/api/sales-transactions",
        headers=auth_headers(token),
        json=transaction_body(prop["id"], seller["id"], seller["id"], sale_price=0),
    )
    assert r.status_code == 400
    r = client.post(
        "/api/sales-transactions",
        headers=auth_headers(token),
        json=transaction_body(prop["id"], seller["id"], seller["id"], buyer_email="not-an-email"),
    )
    assert r.status_code == 400


def test_list_transactions_and_outsider_forbidden(client: TestClient, make_agent):
    token, seller = make_agent("seller@example.com", agency_name="Summit Sales")
    _, buyer = make_agent("buyer@example.com")
    outsider_token, outsider = make_agent("outsider@example.com")
    prop = make_sales_property(client, token)
    txn = client.post(
        "/api/sales-transactions", headers=auth_headers(token), json=transaction_body(prop["id"], seller["id"], buyer["id"])
    ).json()

    r = client.get("/api/sales-transactions", headers=auth_headers(token), params={"agent_id": buyer["id"]})
    assert [t["id"] for t in r.json()] == [txn["id"]]
    r = client.get("/api/sales-transactions", headers=auth_headers(token), params={"agent_id": outsider["id"]})
    assert r.json() == []
    r = client.get("/api/sales-transactions", headers=auth_headers(token), params={"status": "completed"})
    assert r.json() == []

    r = client.patch(
        f"/api/sales-transactions/{txn['id']}/status", headers=auth_headers(outsider_token), json={"status": "cancelled"}
    )
    assert r.status_code == 403
