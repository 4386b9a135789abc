from conftest import MANAGER_USER_ID, STAFF_USER_ID, actor_headers, make_item


def manager(branch):
    return actor_headers(MANAGER_USER_ID, "BRANCH_MANAGER", branch.id)


def staff(branch):
    return actor_headers(STAFF_USER_ID, "STAFF", branch.id)


def test_manager_creates_item_with_initial_stock(client, branch):
    response = client.post(
        "/api/inventory/",
        json={
            "branch_id": branch.id,
            "item_name": "Omo Liquid",
            "category": "detergent",
            "unit": "liters",
            "current_stock": 15,
            "reorder_level": 5,
            "cost_per_unit_cents": 1200,
        },
        headers=manager(branch),
    )

    assert response.status_code == 201
    item = response.json["item"]
    assert item["category"] == "DETERGENT"
    assert item["current_stock"] == 15
    assert item["reorder_pending"] is False

    logs = client.get(f"/api/inventory/{item['id']}/logs", headers=staff(branch)).json["logs"]
    assert [(log["change_type"], log["quantity_delta"]) for log in logs] == [("RESTOCK", 15)]


def test_staff_cannot_create_items(client, branch):
    response = client.post(
        "/api/inventory/", json={"branch_id": branch.id, "item_name": "Bags"}, headers=staff(branch)
    )
    assert response.status_code == 403


def test_adjust_and_audit(client, branch):
    item = make_item(branch.id, "SOFTENER", 8)

    response = client.post(
        f"/api/inventory/{item.id}/adjust",
        json={"delta": -3, "change_type": "DAMAGE", "reason": "Leaking drum"},
        headers=staff(branch),
    )
    assert response.status_code == 200
    assert response.json["item"]["current_stock"] == 5

    response = client.post(f"/api/inventory/{item.id}/adjust", json={"delta": -6}, headers=staff(branch))
    assert response.status_code == 400
    assert response.json["kind"] == "INSUFFICIENT_STOCK"

    audit = client.get(f"/api/inventory/{item.id}/audit", headers=manager(branch)).json["audit"]
    assert audit == {
        "item_id": item.id,
        "current_stock": 5,
        "replayed_stock": 5,
        "log_count": 2,
        "consistent": True,
    }


def test_adjust_rejects_decimal_delta(client, branch):
    item = make_item(branch.id, "SOFTENER", 8)
    response = client.post(f"/api/inventory/{item.id}/adjust", json={"delta": "1.5"}, headers=staff(branch))
    assert response.status_code == 400


def test_other_branch_items_are_forbidden(client, branch, other_branch):
    item = make_item(other_branch.id, "PACKAGING", 3)
    assert client.get(f"/api/inventory/{item.id}/logs", headers=staff(branch)).status_code == 403
    assert client.get(f"/api/inventory/branch/{other_branch.id}", headers=staff(branch)).status_code == 403


def test_branch_listing_and_low_stock(client, branch):
    make_item(branch.id, "DETERGENT", 1, reorder_level=5)
    make_item(branch.id, "PACKAGING", 40, reorder_level=5)

    listing = client.get(f"/api/inventory/branch/{branch.id}", headers=staff(branch)).json
    assert listing["pagination"]["total"] == 2

    low = client.get(f"/api/inventory/branch/{branch.id}?low_stock=true", headers=staff(branch)).json
    assert [i["category"] for i in low["items"]] == ["DETERGENT"]

    low = client.get("/api/inventory/low-stock", headers=staff(branch)).json
    assert [i["category"] for i in low["items"]] == ["DETERGENT"]


def test_update_settings_and_deactivate(client, branch):
    item = make_item(branch.id, "HANGERS", 30, reorder_level=5)

    response = client.put(
        f"/api/inventory/{item.id}",
        json={"reorder_level": 40, "supplier_contact": "hangers@example.com"},
        headers=manager(branch),
    )
    assert response.status_code == 200
    assert response.json["item"]["reorder_pending"] is True

    response = client.put(f"/api/inventory/{item.id}", json={"reorder_pending": False}, headers=manager(branch))
    assert response.status_code == 400

    response = client.delete(f"/api/inventory/{item.id}", headers=manager(branch))
    assert response.status_code == 200
    assert response.json["item"]["is_active"] is False
