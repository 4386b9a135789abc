from conftest import actor_headers

ADMIN = actor_headers(1, "SUPER_ADMIN")


def test_super_admin_creates_branch_with_derived_code(client, db_session):
    response = client.post("/api/branches/", json={"name": "Victoria Island Hub"}, headers=ADMIN)

    assert response.status_code == 201
    branch = response.json["branch"]
    assert branch["code"] == "VIH"
    assert branch["total_orders"] == 0
    assert branch["total_revenue_cents"] == 0


def test_duplicate_branch_rejected(client, branch):
    response = client.post("/api/branches/", json={"name": "Another", "code": "lek"}, headers=ADMIN)
    assert response.status_code == 400


def test_only_super_admin_creates_branches(client, branch):
    headers = actor_headers(5, "BRANCH_MANAGER", branch.id)
    assert client.post("/api/branches/", json={"name": "Rogue"}, headers=headers).status_code == 403


def test_manager_adds_employee_to_own_branch(client, branch, other_branch):
    headers = actor_headers(5, "BRANCH_MANAGER", branch.id)

    response = client.post(
        f"/api/branches/{branch.id}/employees",
        json={"full_name": "Tunde Driver", "job_role": "DRIVER"},
        headers=headers,
    )
    assert response.status_code == 201
    employee = response.json["employee"]
    assert employee["employee_number"] == "LEK-EMP-0001"
    assert employee["assigned_tasks"] == 0

    fetched = client.get(f"/api/branches/employees/{employee['id']}", headers=headers)
    assert fetched.json["employee"]["full_name"] == "Tunde Driver"

    response = client.post(
        f"/api/branches/{other_branch.id}/employees", json={"full_name": "Nope"}, headers=headers
    )
    assert response.status_code == 403


def test_branch_aggregates_visible_to_manager(client, branch, other_branch):
    headers = actor_headers(5, "BRANCH_MANAGER", branch.id)
    assert client.get(f"/api/branches/{branch.id}", headers=headers).status_code == 200
    assert client.get(f"/api/branches/{other_branch.id}", headers=headers).status_code == 403
    assert client.get("/api/branches/999", headers=ADMIN).status_code == 404


def test_healthz(client, db_session):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"
