"""Branch and user administration."""
from __future__ import annotations


def test_admin_creates_branch_with_unique_code(client, world, auth_headers):
    headers = auth_headers(world.admin)

    created = client.post("/branches", json={"branch_code": "ngp", "name": "Nagpur", "city": "Nagpur"}, headers=headers)
    duplicate = client.post("/branches", json={"branch_code": "NGP", "name": "Nagpur 2"}, headers=headers)
    other_company = client.post("/branches", json={"branch_code": "NGP", "name": "Nagpur"}, headers=auth_headers(world.acme_admin))

    assert created.status_code == 201
    assert created.json()["data"]["branch_code"] == "NGP"
    assert duplicate.status_code == 400
    assert other_company.status_code == 201


def test_branch_routes_require_admin(client, world, auth_headers):
    headers = auth_headers(world.mgr_pun)

    assert client.post("/branches", json={"branch_code": "NGP", "name": "Nagpur"}, headers=headers).status_code == 403
    assert client.patch(f"/branches/{world.pun.id}", json={"name": "Pune City"}, headers=headers).status_code == 403


def test_branch_list_is_scoped(client, world, auth_headers):
    operator = client.get("/branches", headers=auth_headers(world.op_mum)).json()
    admin = client.get("/branches", headers=auth_headers(world.admin)).json()

    assert [b["branch_code"] for b in operator["data"]] == ["MUM"]
    assert [b["branch_code"] for b in admin["data"]] == ["MUM", "DEL", "PUN"]


def test_head_office_rules(client, world, auth_headers):
    headers = auth_headers(world.admin)

    cannot_deactivate = client.delete(f"/branches/{world.mum.id}", headers=headers)
    cannot_unset = client.patch(f"/branches/{world.mum.id}", json={"is_head_office": False}, headers=headers)
    moved = client.patch(f"/branches/{world.pun.id}", json={"is_head_office": True}, headers=headers)
    old = client.get(f"/branches/{world.mum.id}", headers=headers).json()["data"]

    assert cannot_deactivate.status_code == 400
    assert cannot_unset.status_code == 400
    assert moved.json()["data"]["is_head_office"] is True
    assert old["is_head_office"] is False


def test_user_creation_rules(client, world, auth_headers):
    headers = auth_headers(world.admin)
    base = {"password": "secret123", "full_name": "New Person"}

    ok = client.post("/users", json={**base, "username": "new_op", "branch_id": world.pun.id}, headers=headers)
    taken = client.post("/users", json={**base, "username": "acme_admin", "branch_id": world.pun.id}, headers=headers)
    no_branch = client.post("/users", json={**base, "username": "floating"}, headers=headers)
    foreign_branch = client.post("/users", json={**base, "username": "spy", "branch_id": world.blr.id}, headers=headers)
    superadmin = client.post("/users", json={**base, "username": "boss", "role": "superadmin"}, headers=headers)

    assert ok.status_code == 201
    assert ok.json()["data"]["role"] == "operator"
    assert ok.json()["data"]["branch_name"] == "Pune"
    assert taken.status_code == 400
    assert no_branch.status_code == 400
    assert foreign_branch.status_code == 400
    assert superadmin.status_code == 403


def test_user_list_is_branch_scoped(client, world, auth_headers):
    data = client.get("/users", headers=auth_headers(world.op_del)).json()["data"]
    assert [u["username"] for u in data] == ["op_del"]


def test_admin_cannot_deactivate_self(client, world, auth_headers):
    headers = auth_headers(world.admin)

    assert client.delete(f"/users/{world.admin.id}", headers=headers).status_code == 400
    assert client.delete(f"/users/{world.op_mum.id}", headers=headers).status_code == 200
    assert client.get("/auth/me", headers=auth_headers(world.op_mum)).status_code == 401


def test_password_reset_by_admin(client, world, auth_headers):
    response = client.patch(f"/users/{world.op_mum.id}", json={"password": "brandnew1"}, headers=auth_headers(world.admin))

    assert response.status_code == 200
    assert client.post("/auth/login", json={"username": "op_mum", "password": "brandnew1"}).status_code == 200
