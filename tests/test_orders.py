import asyncio
import pytest
from tests.helpers import (coupon_usage_count, create_coupon, create_product, place_order, product_stock,
                           register_admin, register_user, url_prefix, variant_stock)


@pytest.fixture
async def store(ac_client):
    admin = await register_admin(ac_client)
    shopper = await register_user(ac_client, "orders@shopper.io")
    hoodie = await create_product(ac_client, admin["headers"], "Zip Hoodie",
                                  variants=[{"size": "M", "price": 1200, "stock": 5},
                                            {"size": "L", "price": 1300, "stock": 1}])
    mug = await create_product(ac_client, admin["headers"], "Coffee Mug", price=350, stock=10)
    return {"admin": admin, "shopper": shopper, "headers": shopper["headers"], "hoodie": hoodie, "mug": mug}


@pytest.mark.asyncio
async def test_cod_order_snapshots_lines_and_deducts_stock(ac_client, store):
    medium = store["hoodie"]["variants"][0]["id"]
    resp = await place_order(ac_client, store["headers"], shipping=40, items=[
        {"product_id": store["hoodie"]["id"], "variant_id": medium, "quantity": 2},
        {"product_id": store["mug"]["id"], "quantity": 1},
    ])
    assert resp.status_code == 201, resp.text
    order = resp.json()["data"]["order"]

    assert order["status"] == "processing"
    assert order["payment"]["status"] == "unpaid"
    assert order["subtotal"] == 2750
    assert order["shipping"] == 40
    assert order["total"] == order["subtotal"] + order["shipping"] - order["discount"] == 2790
    assert order["payment"]["amount"] == 2790
    assert order["items"][0]["variant"]["size"] == "M"
    assert order["customer"]["email"] == "orders@shopper.io"
    assert order["shipping_address"]["city"] == "Bengaluru"

    assert await variant_stock(medium) == 3
    assert await product_stock(store["hoodie"]["id"]) == (4, 2)
    assert await product_stock(store["mug"]["id"]) == (9, 1)


@pytest.mark.asyncio
async def test_online_order_starts_pending(ac_client, store):
    resp = await place_order(ac_client, store["headers"], payment_mode="online",
                             items=[{"product_id": store["mug"]["id"], "quantity": 2}])
    order = resp.json()["data"]["order"]
    assert order["status"] == "pending"
    assert order["payment"]["status"] == "pending"
    assert order["payment"]["provider"] == "razorpay"


@pytest.mark.asyncio
async def test_failed_checkout_changes_nothing(ac_client, store):
    large = store["hoodie"]["variants"][1]["id"]
    resp = await place_order(ac_client, store["headers"], items=[
        {"product_id": store["mug"]["id"], "quantity": 3},
        {"product_id": store["hoodie"]["id"], "variant_id": large, "quantity": 2},
    ])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Insufficient stock for Zip Hoodie"

    assert await product_stock(store["mug"]["id"]) == (10, 0)
    assert await variant_stock(large) == 1
    mine = await ac_client.get(f"{url_prefix}/orders/mine", headers=store["headers"])
    assert mine.json()["data"]["orders"] == []


@pytest.mark.asyncio
async def test_invalid_coupon_aborts_the_whole_checkout(ac_client, store):
    resp = await place_order(ac_client, store["headers"], coupon_code="GHOST",
                             items=[{"product_id": store["mug"]["id"], "quantity": 1}])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid coupon code"
    assert await product_stock(store["mug"]["id"]) == (10, 0)


@pytest.mark.asyncio
async def test_variant_required_and_address_required(ac_client, store):
    no_variant = await place_order(ac_client, store["headers"], items=[{"product_id": store["hoodie"]["id"]}])
    assert no_variant.status_code == 400
    assert no_variant.json()["message"] == "Variant is required for Zip Hoodie"

    no_address = await ac_client.post(f"{url_prefix}/orders", headers=store["headers"],
                                      json={"payment_mode": "cod", "items": [{"product_id": store["mug"]["id"]}]})
    assert no_address.status_code == 400
    assert no_address.json()["message"] == "Shipping address is required"


@pytest.mark.asyncio
async def test_concurrent_checkouts_never_oversell(ac_client, store):
    medium = store["hoodie"]["variants"][0]["id"]
    other = await register_user(ac_client, "rival@shopper.io")
    items = [{"product_id": store["hoodie"]["id"], "variant_id": medium, "quantity": 3}]

    first, second = await asyncio.gather(
        place_order(ac_client, store["headers"], items=items),
        place_order(ac_client, other["headers"], items=items),
    )
    assert sorted([first.status_code, second.status_code]) == [201, 400]
    assert await variant_stock(medium) == 2
    assert await product_stock(store["hoodie"]["id"]) == (3, 3)


@pytest.mark.asyncio
async def test_order_from_cart_removes_only_ordered_lines(ac_client, store):
    await ac_client.post(f"{url_prefix}/cart/add", json={"product_id": store["mug"]["id"], "quantity": 2},
                         headers=store["headers"])
    resp = await place_order(ac_client, store["headers"])
    assert resp.status_code == 201, resp.text
    assert resp.json()["data"]["order"]["items"][0]["quantity"] == 2

    cart = await ac_client.get(f"{url_prefix}/cart", headers=store["headers"])
    assert cart.json()["data"]["cart"]["items"] == []

    empty = await place_order(ac_client, store["headers"])
    assert empty.status_code == 400
    assert empty.json()["message"] == "No items to order"


@pytest.mark.asyncio
async def test_welcome_coupon_applies_to_first_order_only(ac_client, store):
    await create_coupon(ac_client, store["admin"]["headers"], "WELCOME50", value=50, max_uses_per_user=5)
    items = [{"product_id": store["mug"]["id"], "quantity": 1}]

    first = (await place_order(ac_client, store["headers"], items=items)).json()["data"]["order"]
    assert first["coupon_code"] == "WELCOME50"
    assert first["discount"] == 50
    assert first["total"] == 300

    second = (await place_order(ac_client, store["headers"], items=items)).json()["data"]["order"]
    assert second["coupon_code"] is None
    assert second["discount"] == 0
    assert await coupon_usage_count() == 1


@pytest.mark.asyncio
async def test_explicit_coupon_and_free_shipping(ac_client, store):
    await create_coupon(ac_client, store["admin"]["headers"], "SHIPFREE", type_="free_shipping", value=0)
    resp = await place_order(ac_client, store["headers"], shipping=99, coupon_code="shipfree",
                             items=[{"product_id": store["mug"]["id"], "quantity": 1}])
    order = resp.json()["data"]["order"]
    assert order["coupon_code"] == "SHIPFREE"
    assert order["shipping"] == 0
    assert order["total"] == 350


@pytest.mark.asyncio
async def test_cancel_restores_stock_once(ac_client, store):
    medium = store["hoodie"]["variants"][0]["id"]
    placed = await place_order(ac_client, store["headers"],
                               items=[{"product_id": store["hoodie"]["id"], "variant_id": medium, "quantity": 2}])
    order_id = placed.json()["data"]["order"]["id"]

    resp = await ac_client.post(f"{url_prefix}/orders/{order_id}/cancel", headers=store["headers"])
    assert resp.status_code == 200, resp.text
    cancelled = resp.json()["data"]["order"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_at"] is not None
    assert cancelled["payment"]["status"] == "refunded"
    assert await variant_stock(medium) == 5
    assert await product_stock(store["hoodie"]["id"]) == (6, 0)

    again = await ac_client.post(f"{url_prefix}/orders/{order_id}/cancel", headers=store["headers"])
    assert again.status_code == 400
    assert again.json()["message"] == "Order cannot be cancelled once cancelled"
    assert await variant_stock(medium) == 5


@pytest.mark.asyncio
async def test_orders_are_private_to_their_owner(ac_client, store):
    placed = await place_order(ac_client, store["headers"], items=[{"product_id": store["mug"]["id"]}])
    order_id = placed.json()["data"]["order"]["id"]
    stranger = await register_user(ac_client, "nosy@shopper.io")

    assert (await ac_client.get(f"{url_prefix}/orders/{order_id}", headers=stranger["headers"])).status_code == 403
    assert (await ac_client.post(f"{url_prefix}/orders/{order_id}/cancel",
                                 headers=stranger["headers"])).status_code == 403
    assert (await ac_client.get(f"{url_prefix}/orders/{order_id}",
                                headers=store["admin"]["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_admin_status_moves_forward_only(ac_client, store):
    placed = await place_order(ac_client, store["headers"], items=[{"product_id": store["mug"]["id"], "quantity": 4}])
    order_id = placed.json()["data"]["order"]["id"]
    status_url = f"{url_prefix}/admin/orders/{order_id}/status"
    admin_headers = store["admin"]["headers"]

    shipped = await ac_client.patch(status_url, json={"status": "shipped"}, headers=admin_headers)
    assert shipped.json()["data"]["order"]["status"] == "shipped"

    back = await ac_client.patch(status_url, json={"status": "processing"}, headers=admin_headers)
    assert back.status_code == 400

    late_cancel = await ac_client.patch(status_url, json={"status": "cancelled"}, headers=admin_headers)
    assert late_cancel.status_code == 400
    assert await product_stock(store["mug"]["id"]) == (6, 4)

    delivered = await ac_client.patch(status_url, json={"status": "delivered"}, headers=admin_headers)
    assert delivered.json()["data"]["order"]["delivered_at"] is not None

    listed = await ac_client.get(f"{url_prefix}/admin/orders", params={"status": "delivered"}, headers=admin_headers)
    assert [o["id"] for o in listed.json()["data"]["orders"]] == [order_id]

    forbidden = await ac_client.patch(status_url, json={"status": "delivered"}, headers=store["headers"])
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_admin_cancel_goes_through_stock_restore(ac_client, store):
    placed = await place_order(ac_client, store["headers"], items=[{"product_id": store["mug"]["id"], "quantity": 2}])
    order_id = placed.json()["data"]["order"]["id"]

    resp = await ac_client.patch(f"{url_prefix}/admin/orders/{order_id}/status", json={"status": "cancelled"},
                                 headers=store["admin"]["headers"])
    assert resp.json()["data"]["order"]["status"] == "cancelled"
    assert await product_stock(store["mug"]["id"]) == (10, 0)


@pytest.mark.asyncio
async def test_dashboard_stats(ac_client, store):
    await place_order(ac_client, store["headers"], items=[{"product_id": store["mug"]["id"], "quantity": 3}])
    await place_order(ac_client, store["headers"], payment_mode="online",
                      items=[{"product_id": store["mug"]["id"], "quantity": 1}])

    resp = await ac_client.get(f"{url_prefix}/admin/stats", headers=store["admin"]["headers"])
    assert resp.status_code == 200, resp.text
    stats = resp.json()["data"]
    assert stats["revenue"] == 1050
    assert stats["orders"] == 1
    assert stats["products"] == 2
    assert len(stats["monthly_revenue"]) == 6
    assert stats["monthly_revenue"][-1]["revenue"] == 1050
    assert stats["orders_status"]["pending"] == 1
    assert stats["top_products"][0] == {"id": store["mug"]["id"], "title": "Coffee Mug", "total_sold": 3}
