"""
Order API tests: identity headers, role scoping and error mapping.
"""

from laundry.models import Order

from conftest import CUSTOMER_USER_ID, MANAGER_USER_ID, STAFF_USER_ID, actor_headers, line, reload


def staff(branch):
    return actor_headers(STAFF_USER_ID, "STAFF", branch.id)


def manager(branch):
    return actor_headers(MANAGER_USER_ID, "BRANCH_MANAGER", branch.id)


def customer(branch, user_id=CUSTOMER_USER_ID):
    return actor_headers(user_id, "CUSTOMER", branch.id)


def create(client, branch, headers=None, **overrides):
    payload = {"branch_id": branch.id, "customer_id": CUSTOMER_USER_ID, "items": [line(2, 1000)]}
    payload.update(overrides)
    return client.post("/api/orders/", json=payload, headers=headers or staff(branch))


def test_missing_identity_is_unauthorized(client, branch):
    response = client.post("/api/orders/", json={"branch_id": branch.id, "items": [line(1, 100)]})
    assert response.status_code == 401

    response = client.get("/api/orders/", headers={"X-Actor-Id": "1", "X-Actor-Role": "STAFF"})
    assert response.status_code == 401


def test_staff_creates_order(client, branch):
    response = create(client, branch, customer_name="Ngozi", pickup_date="2026-10-20T09:00:00Z")

    assert response.status_code == 201
    order = response.json["order"]
    assert order["order_number"] == "ORD-LEK-000001"
    assert order["total_amount_cents"] == 2150
    assert order["status"] == "PENDING"
    assert order["pickup_date"] == "2026-10-20T09:00:00Z"
    assert order["items"][0]["subtotal_cents"] == 2000


def test_staff_must_name_the_customer(client, branch):
    response = client.post(
        "/api/orders/", json={"branch_id": branch.id, "items": [line(1, 100)]}, headers=staff(branch)
    )
    assert response.status_code == 400
    assert response.json["kind"] == "VALIDATION_ERROR"


def test_validation_errors_are_mapped(client, branch):
    response = create(client, branch, items=[{"item_type": "Shirt", "quantity": 1.5, "unit_price_cents": 100}])
    assert response.status_code == 400

    response = create(client, branch, priority="OVERNIGHT")
    assert response.status_code == 400

    response = create(client, branch, total_amount_cents=1)
    assert response.status_code == 400


def test_staff_cannot_create_in_another_branch(client, branch, other_branch):
    response = create(client, other_branch, headers=staff(branch))
    assert response.status_code == 403


def test_customer_creates_own_order_only(client, branch):
    response = client.post(
        "/api/orders/",
        json={"branch_id": branch.id, "items": [line(1, 500)]},
        headers=customer(branch),
    )
    assert response.status_code == 201
    assert response.json["order"]["customer_id"] == CUSTOMER_USER_ID

    response = create(client, branch, headers=customer(branch, user_id=901))
    assert response.status_code == 403

    response = client.post(
        "/api/orders/",
        json={"branch_id": branch.id, "items": [line(1, 500)], "payment_status": "PAID"},
        headers=customer(branch),
    )
    assert response.status_code == 403


def test_customer_sees_only_own_orders(client, branch):
    mine = create(client, branch).json["order"]
    theirs = create(client, branch, customer_id=777).json["order"]

    listing = client.get("/api/orders/", headers=customer(branch))
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json["orders"]] == [mine["id"]]

    assert client.get(f"/api/orders/{mine['id']}", headers=customer(branch)).status_code == 200
    assert client.get(f"/api/orders/{theirs['id']}", headers=customer(branch)).status_code == 403


def test_list_is_scoped_to_staff_branch(client, branch, other_branch):
    create(client, branch)
    create(client, other_branch, headers=staff(other_branch))

    listing = client.get("/api/orders/?limit=5", headers=staff(branch))
    assert listing.json["pagination"]["total"] == 1

    assert client.get(f"/api/orders/?branch_id={other_branch.id}", headers=staff(branch)).status_code == 403

    admin = actor_headers(1, "SUPER_ADMIN")
    assert client.get("/api/orders/", headers=admin).json["pagination"]["total"] == 2


def test_status_patch_and_history(client, branch, items):
    order = create(client, branch).json["order"]

    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "WASHING"}, headers=staff(branch))
    assert response.status_code == 200
    assert response.json["order"]["status"] == "WASHING"

    # repeating the same status changes nothing
    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "WASHING"}, headers=staff(branch))
    assert response.status_code == 200

    history = client.get(f"/api/orders/{order['id']}/history", headers=staff(branch)).json["history"]
    assert [(h["from_status"], h["status"]) for h in history] == [(None, "PENDING"), ("PENDING", "WASHING")]
    assert reload(items["DETERGENT"]).current_stock == 9


def test_invalid_transition_and_insufficient_stock_responses(client, branch):
    order = create(client, branch).json["order"]

    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "WASHING"}, headers=staff(branch))
    assert response.status_code == 400
    assert response.json["kind"] == "INSUFFICIENT_STOCK"
    assert response.json["details"]["category"] == "DETERGENT"

    client.patch(f"/api/orders/{order['id']}/status", json={"status": "CANCELLED"}, headers=staff(branch))
    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "PENDING"}, headers=staff(branch))
    assert response.status_code == 400
    assert response.json["kind"] == "INVALID_TRANSITION"


def test_customer_cannot_change_status(client, branch):
    order = create(client, branch).json["order"]
    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "PROCESSING"}, headers=customer(branch))
    assert response.status_code == 403


def test_update_marks_paid(client, branch):
    order = create(client, branch).json["order"]

    response = client.put(
        f"/api/orders/{order['id']}",
        json={"payment_status": "PAID", "payment_method": "POS", "notes": "Paid at counter"},
        headers=staff(branch),
    )

    assert response.status_code == 200
    assert response.json["order"]["payment_status"] == "PAID"
    assert reload(branch).total_revenue_cents == 2150


def test_delete_requires_manager(client, branch, db_session):
    order = create(client, branch).json["order"]

    assert client.delete(f"/api/orders/{order['id']}", headers=staff(branch)).status_code == 403

    response = client.delete(f"/api/orders/{order['id']}", headers=manager(branch))
    assert response.status_code == 200
    assert db_session.get(Order, order["id"]) is None
    assert reload(branch).total_orders == 0

    assert client.delete(f"/api/orders/{order['id']}", headers=manager(branch)).status_code == 404
