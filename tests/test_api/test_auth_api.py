"""Login, token handling and the global security dependency over HTTP."""
from __future__ import annotations

PASSWORD = "secret123"


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_login_returns_tokens_and_user(client, world):
    response = client.post("/auth/login", json={"username": "op_mum", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["branch_name"] == "Mumbai"
    assert body["data"]["user"]["tenant_name"] == "Demo Transport"
    assert body["data"]["access_token"] and body["data"]["refresh_token"]
    assert "password_hash" not in body["data"]["user"]


def test_bad_credentials_get_one_answer(client, world, db_session):
    world.op_del.is_active = False
    db_session.commit()

    wrong_password = client.post("/auth/login", json={"username": "op_mum", "password": "nope"})
    unknown_user = client.post("/auth/login", json={"username": "ghost", "password": PASSWORD})
    inactive_user = client.post("/auth/login", json={"username": "op_del", "password": PASSWORD})

    for response in (wrong_password, unknown_user, inactive_user):
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid credentials"}


def test_missing_token_is_401(client, world):
    response = client.get("/consignments")

    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"


def test_malformed_authorization_header_is_401(client, world):
    response = client.get("/consignments", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


def test_me_returns_the_token_user(client, world, auth_headers):
    response = client.get("/auth/me", headers=auth_headers(world.mgr_pun))

    assert response.status_code == 200
    assert response.json()["data"]["username"] == "mgr_pun"


def test_refresh_issues_a_working_access_token(client, world):
    login = client.post("/auth/login", json={"username": "op_mum", "password": PASSWORD}).json()["data"]

    refreshed = client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert refreshed.status_code == 200
    token = refreshed.json()["data"]["access_token"]

    assert client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_access_token_cannot_refresh(client, world, auth_headers):
    token = auth_headers(world.op_mum)["Authorization"].split(" ", 1)[1]

    assert client.post("/auth/refresh", json={"refresh_token": token}).status_code == 401


def test_conflicting_tenant_hint_is_403(client, world, auth_headers):
    response = client.get("/consignments", headers=auth_headers(world.op_mum, **{"X-Tenant-Code": "ACME"}))

    assert response.status_code == 403
    assert response.json()["success"] is False


def test_matching_tenant_hint_is_ignored(client, world, auth_headers):
    response = client.get("/consignments", headers=auth_headers(world.op_mum, **{"X-Tenant-Code": "demo"}))
    assert response.status_code == 200


def test_deactivated_user_token_stops_working(client, world, auth_headers, db_session):
    headers = auth_headers(world.op_mum)
    world.op_mum.is_active = False
    db_session.commit()

    assert client.get("/auth/me", headers=headers).status_code == 401


def test_role_change_applies_before_token_expiry(client, world, auth_headers, db_session):
    headers = auth_headers(world.admin)
    world.admin.role = "operator"
    db_session.commit()

    response = client.post("/branches", json={"branch_code": "NGP", "name": "Nagpur"}, headers=headers)
    assert response.status_code == 403


def test_change_password(client, world, auth_headers):
    headers = auth_headers(world.op_mum)

    wrong = client.post(
        "/auth/change-password", json={"current_password": "nope", "new_password": "newsecret"}, headers=headers
    )
    assert wrong.status_code == 400

    ok = client.post(
        "/auth/change-password", json={"current_password": PASSWORD, "new_password": "newsecret"}, headers=headers
    )
    assert ok.status_code == 200
    assert client.post("/auth/login", json={"username": "op_mum", "password": "newsecret"}).status_code == 200


def test_request_validation_uses_the_failure_envelope(client, world):
    response = client.post("/auth/login", json={"username": "op_mum"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["loc"][-1] == "password"
