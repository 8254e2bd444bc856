"""Customers are tenant-wide; phone numbers are unique per company, not globally."""
from __future__ import annotations


def _create(client, headers, **fields):
    payload = {"name": "Ravi Traders", "phone": "9811111111", **fields}
    return client.post("/customers", json=payload, headers=headers)


def test_same_phone_in_two_companies(client, world, auth_headers):
    demo = _create(client, auth_headers(world.op_mum))
    acme = _create(client, auth_headers(world.acme_admin))
    duplicate = _create(client, auth_headers(world.admin), name="Other Name")

    assert demo.status_code == acme.status_code == 201
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Customer with this phone number already exists"


def test_customer_lists_and_searches_stay_within_the_company(client, world, auth_headers):
    demo_headers = auth_headers(world.admin)
    acme_headers = auth_headers(world.acme_admin)
    demo_id = _create(client, demo_headers).json()["data"]["id"]
    acme_id = _create(client, acme_headers).json()["data"]["id"]
    _create(client, acme_headers, name="Acme Only", phone="9844444444")

    def ids(response):
        return [c["id"] for c in response.json()["data"]]

    assert ids(client.get("/customers", headers=demo_headers)) == [demo_id]
    assert acme_id in ids(client.get("/customers", headers=acme_headers))
    assert demo_id not in ids(client.get("/customers", headers=acme_headers))

    assert ids(client.get("/customers?search=9811111111", headers=demo_headers)) == [demo_id]
    assert ids(client.get("/customers/search?q=9811111111", headers=demo_headers)) == [demo_id]
    assert ids(client.get("/customers?search=9844444444", headers=demo_headers)) == []
    assert ids(client.get("/customers/search?q=9844444444", headers=demo_headers)) == []


def test_customers_are_visible_to_every_branch(client, world, auth_headers):
    created = _create(client, auth_headers(world.op_mum)).json()["data"]

    response = client.get(f"/customers/{created['id']}", headers=auth_headers(world.op_del))

    assert response.status_code == 200
    assert response.json()["data"]["recent_bookings"] == []


def test_other_company_customer_is_404(client, world, auth_headers):
    created = _create(client, auth_headers(world.acme_admin)).json()["data"]

    response = client.get(f"/customers/{created['id']}", headers=auth_headers(world.admin))
    assert response.status_code == 404


def test_search_needs_two_characters(client, world, auth_headers):
    headers = auth_headers(world.op_mum)
    _create(client, headers)
    inactive = _create(client, headers, name="Inactive Ravi", phone="9811111112").json()["data"]
    client.delete(f"/customers/{inactive['id']}", headers=headers)

    short = client.get("/customers/search?q=r", headers=headers).json()
    found = client.get("/customers/search?q=ravi", headers=headers).json()

    assert short["data"] == []
    assert [c["name"] for c in found["data"]] == ["Ravi Traders"]


def test_update_rejects_phone_of_another_customer(client, world, auth_headers):
    headers = auth_headers(world.admin)
    _create(client, headers)
    second = _create(client, headers, name="Sharma Stores", phone="9822222222").json()["data"]

    clash = client.patch(f"/customers/{second['id']}", json={"phone": "9811111111"}, headers=headers)
    ok = client.patch(f"/customers/{second['id']}", json={"credit_limit": 2500}, headers=headers)

    assert clash.status_code == 400
    assert ok.json()["data"]["credit_limit"] == 2500


def test_import_upserts_by_phone_and_reports_bad_rows(client, world, auth_headers):
    headers = auth_headers(world.mgr_pun)
    _create(client, headers)

    response = client.post(
        "/customers/import",
        json={
            "customers": [
                {"name": "Ravi Traders Pvt Ltd", "phone": "9811111111"},
                {"name": "New Customer", "phone": "9833333333", "city": "Pune"},
                {"name": "Broken", "phone": "123"},
            ]
        },
        headers=headers,
    )

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert (data["created"], data["updated"]) == (1, 1)
    assert [e["row"] for e in data["errors"]] == [3]

    names = {c["name"] for c in client.get("/customers", headers=headers).json()["data"]}
    assert names == {"Ravi Traders Pvt Ltd", "New Customer"}


def test_import_is_limited_to_managers_and_admins(client, world, auth_headers):
    response = client.post(
        "/customers/import",
        json={"customers": [{"name": "X", "phone": "9833333333"}]},
        headers=auth_headers(world.op_mum),
    )
    assert response.status_code == 403
