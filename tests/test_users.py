import pytest
from tests.helpers import SHIPPING_ADDRESS, create_product, register_admin, register_user, url_prefix


def _defaults(addresses):
    return [a for a in addresses if a["is_default"]]


@pytest.mark.asyncio
async def test_profile_update(ac_client):
    shopper = await register_user(ac_client, "profile@shopper.io")
    resp = await ac_client.patch(f"{url_prefix}/users/me", json={"name": "New Name", "phone": "9000000001"},
                                 headers=shopper["headers"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["user"]["name"] == "New Name"
    assert resp.json()["data"]["user"]["phone"] == "9000000001"


@pytest.mark.asyncio
async def test_exactly_one_default_address(ac_client):
    shopper = await register_user(ac_client, "addr@shopper.io")
    headers = shopper["headers"]

    first = await ac_client.post(f"{url_prefix}/users/me/addresses", json=SHIPPING_ADDRESS, headers=headers)
    assert first.status_code == 201, first.text
    assert first.json()["data"]["address"]["is_default"] is True

    second = await ac_client.post(f"{url_prefix}/users/me/addresses",
                                  json={**SHIPPING_ADDRESS, "line1": "99 Park Street", "is_default": True},
                                  headers=headers)
    assert second.status_code == 201
    second_id = second.json()["data"]["address"]["id"]

    listed = (await ac_client.get(f"{url_prefix}/users/me/addresses", headers=headers)).json()["data"]["addresses"]
    assert len(listed) == 2
    assert [a["id"] for a in _defaults(listed)] == [second_id]

    first_id = first.json()["data"]["address"]["id"]
    made = await ac_client.post(f"{url_prefix}/users/me/addresses/{first_id}/default", headers=headers)
    assert made.status_code == 200

    deleted = await ac_client.delete(f"{url_prefix}/users/me/addresses/{first_id}", headers=headers)
    assert deleted.status_code == 200
    remaining = deleted.json()["data"]["addresses"]
    assert [a["id"] for a in remaining] == [second_id]
    assert remaining[0]["is_default"] is True


@pytest.mark.asyncio
async def test_cannot_unset_only_default(ac_client):
    shopper = await register_user(ac_client, "unset@shopper.io")
    created = await ac_client.post(f"{url_prefix}/users/me/addresses", json=SHIPPING_ADDRESS, headers=shopper["headers"])
    address_id = created.json()["data"]["address"]["id"]

    resp = await ac_client.patch(f"{url_prefix}/users/me/addresses/{address_id}", json={"is_default": False},
                                 headers=shopper["headers"])
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_other_users_address_is_not_found(ac_client):
    owner = await register_user(ac_client, "owner@shopper.io")
    other = await register_user(ac_client, "other@shopper.io")
    created = await ac_client.post(f"{url_prefix}/users/me/addresses", json=SHIPPING_ADDRESS, headers=owner["headers"])
    address_id = created.json()["data"]["address"]["id"]

    resp = await ac_client.delete(f"{url_prefix}/users/me/addresses/{address_id}", headers=other["headers"])
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_favorites_toggle(ac_client):
    admin = await register_admin(ac_client)
    shopper = await register_user(ac_client, "fav@shopper.io")
    product = await create_product(ac_client, admin["headers"], "Linen Shirt", price=1200, stock=5)

    added = await ac_client.post(f"{url_prefix}/users/me/favorites/{product['id']}", headers=shopper["headers"])
    assert added.status_code == 200
    assert added.json()["data"]["ids"] == [product["id"]]

    listed = await ac_client.get(f"{url_prefix}/users/me/favorites", headers=shopper["headers"])
    assert listed.json()["data"]["products"][0]["title"] == "Linen Shirt"

    removed = await ac_client.post(f"{url_prefix}/users/me/favorites/{product['id']}", headers=shopper["headers"])
    assert removed.json()["data"]["ids"] == []


@pytest.mark.asyncio
async def test_admin_routes_forbidden_for_buyers(ac_client):
    shopper = await register_user(ac_client, "buyer@shopper.io")
    resp = await ac_client.get(f"{url_prefix}/admin/users", headers=shopper["headers"])
    assert resp.status_code == 403
    assert resp.json()["message"] == "Forbidden"


@pytest.mark.asyncio
async def test_admin_credits_wallet(ac_client):
    admin = await register_admin(ac_client)
    shopper = await register_user(ac_client, "wallet@shopper.io")

    resp = await ac_client.post(f"{url_prefix}/admin/users/{shopper['user']['id']}/wallet", json={"amount": 250},
                                headers=admin["headers"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["user"]["wallet"] == 250

    listed = await ac_client.get(f"{url_prefix}/admin/users", headers=admin["headers"])
    assert {u["email"] for u in listed.json()["data"]["users"]} >= {"wallet@shopper.io", "admin@storefront.io"}
