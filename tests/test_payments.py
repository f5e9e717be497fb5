import json
import pytest
from sqlalchemy import func, select
from storefront.db.connection import async_session
from storefront.schema.full_schema import PaymentWebhookEvent
from tests.helpers import (coupon_usage_count, create_coupon, create_product, place_order, product_stock, register_admin,
                           register_user, sign_payment, sign_webhook,
                           url_prefix)


async def webhook_event_count() -> int:
    async with async_session() as session:
        res = await session.execute(select(func.count(PaymentWebhookEvent.id)))
        return res.scalar_one()


def captured_event(gateway_order_id: str, gateway_payment_id: str, event: str = "payment.captured") -> bytes:
    body = {
        "event": event,
        "payload": {"payment": {"entity": {"id": gateway_payment_id, "order_id": gateway_order_id,
                                           "status": "captured"}}},
    }
    return json.dumps(body).encode()


async def send_webhook(ac, body: bytes, event_id=None, signature=None):
    headers = {"Content-Type": "application/json",
               "X-Razorpay-Signature": signature or sign_webhook(body)}
    if event_id:
        headers["X-Razorpay-Event-Id"] = event_id
    return await ac.post(f"{url_prefix}/payments/webhook", content=body, headers=headers)


@pytest.fixture
async def online_order(ac_client):
    admin = await register_admin(ac_client)
    shopper = await register_user(ac_client, "payer@shopper.io")
    lamp = await create_product(ac_client, admin["headers"], "Desk Lamp", price=1499, stock=4)
    resp = await place_order(ac_client, shopper["headers"], payment_mode="online", shipping=50,
                             items=[{"product_id": lamp["id"]}])
    assert resp.status_code == 201, resp.text
    return {"admin": admin, "headers": shopper["headers"], "lamp": lamp, "order": resp.json()["data"]["order"]}


async def _create_intent(ac, online_order) -> dict:
    resp = await ac.post(f"{url_prefix}/payments/create", json={"order_id": online_order["order"]["id"]},
                         headers=online_order["headers"])
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def _order(ac, online_order) -> dict:
    resp = await ac.get(f"{url_prefix}/orders/{online_order['order']['id']}", headers=online_order["headers"])
    return resp.json()["data"]["order"]


@pytest.mark.asyncio
async def test_create_intent_amount_in_paise(ac_client, online_order, fake_gateway):
    intent = await _create_intent(ac_client, online_order)
    order_id = online_order["order"]["id"]

    assert intent["amount"] == 154900
    assert intent["currency"] == "INR"
    assert intent["receipt"] == f"order_{order_id}"
    assert intent["gateway_order_id"] == "order_test_1"
    assert intent["key_id"] == fake_gateway.key_id
    assert fake_gateway.created == [{"amount": 154900, "currency": "INR", "receipt": f"order_{order_id}"}]

    order = await _order(ac_client, online_order)
    assert order["payment"]["gateway_order_id"] == "order_test_1"
    assert order["payment"]["status"] == "pending"


@pytest.mark.asyncio
async def test_cod_order_is_not_payable_online(ac_client, online_order):
    cod = await place_order(ac_client, online_order["headers"], items=[{"product_id": online_order["lamp"]["id"]}])
    resp = await ac_client.post(f"{url_prefix}/payments/create", json={"order_id": cod.json()["data"]["order"]["id"]},
                                headers=online_order["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Order is not payable online"


@pytest.mark.asyncio
async def test_verify_with_valid_signature_confirms_order(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    payload = {
        "order_id": online_order["order"]["id"],
        "gateway_order_id": intent["gateway_order_id"],
        "gateway_payment_id": "pay_123",
        "gateway_signature": sign_payment(intent["gateway_order_id"], "pay_123"),
    }
    resp = await ac_client.post(f"{url_prefix}/payments/verify", json=payload, headers=online_order["headers"])
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"] == {"verified": True, "already_confirmed": False, "order_status": "processing"}

    order = await _order(ac_client, online_order)
    assert order["payment"]["status"] == "success"
    assert order["payment"]["gateway_payment_id"] == "pay_123"
    assert order["payment"]["paid_at"] is not None

    again = await ac_client.post(f"{url_prefix}/payments/verify", json=payload, headers=online_order["headers"])
    assert again.json()["data"]["already_confirmed"] is True

    paid = await ac_client.post(f"{url_prefix}/payments/create", json={"order_id": online_order["order"]["id"]},
                                headers=online_order["headers"])
    assert paid.status_code == 400
    assert paid.json()["message"] == "Order is already paid"


@pytest.mark.asyncio
async def test_verify_with_bad_signature_marks_failed(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    resp = await ac_client.post(f"{url_prefix}/payments/verify", headers=online_order["headers"], json={
        "order_id": online_order["order"]["id"],
        "gateway_order_id": intent["gateway_order_id"],
        "gateway_payment_id": "pay_123",
        "gateway_signature": "not-a-signature",
    })
    assert resp.status_code == 400
    assert resp.json()["message"] == "Payment verification failed"

    order = await _order(ac_client, online_order)
    assert order["status"] == "pending"
    assert order["payment"]["status"] == "failed"


@pytest.mark.asyncio
async def test_duplicate_webhook_is_applied_once(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    body = captured_event(intent["gateway_order_id"], "pay_777")

    first = await send_webhook(ac_client, body, event_id="evt_1")
    assert first.status_code == 200, first.text
    assert first.json()["data"] == {"status": "ok", "note": "payment captured"}
    order = await _order(ac_client, online_order)
    assert order["status"] == "processing"
    assert order["payment"]["status"] == "success"

    # a fresh cart line must survive redeliveries
    await ac_client.post(f"{url_prefix}/cart/add", json={"product_id": online_order["lamp"]["id"]},
                         headers=online_order["headers"])

    replay = await send_webhook(ac_client, body, event_id="evt_1")
    assert replay.json()["data"] == {"status": "ok", "note": "already processed"}
    assert await webhook_event_count() == 1

    other_id = await send_webhook(ac_client, body, event_id="evt_2")
    assert other_id.json()["data"]["note"] == "payment already confirmed"

    cart = await ac_client.get(f"{url_prefix}/cart", headers=online_order["headers"])
    assert len(cart.json()["data"]["cart"]["items"]) == 1


@pytest.mark.asyncio
async def test_webhook_without_event_id_dedupes_on_payment(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    body = captured_event(intent["gateway_order_id"], "pay_888")

    assert (await send_webhook(ac_client, body)).json()["data"]["note"] == "payment captured"
    assert (await send_webhook(ac_client, body)).json()["data"]["note"] == "already processed"
    assert await webhook_event_count() == 1


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    body = captured_event(intent["gateway_order_id"], "pay_999")

    resp = await send_webhook(ac_client, body, event_id="evt_bad", signature="deadbeef")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid webhook signature"
    assert await webhook_event_count() == 0
    assert (await _order(ac_client, online_order))["status"] == "pending"


@pytest.mark.asyncio
async def test_failed_and_unknown_events(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)

    failed = await send_webhook(ac_client, captured_event(intent["gateway_order_id"], "pay_f", "payment.failed"),
                                event_id="evt_f")
    assert failed.json()["data"]["note"] == "payment failed"
    assert (await _order(ac_client, online_order))["payment"]["status"] == "failed"

    unknown = await send_webhook(ac_client, captured_event("order_unknown", "pay_x"), event_id="evt_x")
    assert unknown.json()["data"]["note"] == "payment not found"

    admin_list = await ac_client.get(f"{url_prefix}/admin/payments", params={"status": "failed"},
                                     headers=online_order["admin"]["headers"])
    assert len(admin_list.json()["data"]["payments"]) == 1


@pytest.mark.asyncio
async def test_payments_of_order_are_private(ac_client, online_order):
    stranger = await register_user(ac_client, "peek@shopper.io")
    url = f"{url_prefix}/payments/order/{online_order['order']['id']}"
    assert (await ac_client.get(url, headers=stranger["headers"])).status_code == 403

    mine = await ac_client.get(url, headers=online_order["headers"])
    assert [p["mode"] for p in mine.json()["data"]["payments"]] == ["online"]


@pytest.mark.asyncio
async def test_webhooks_without_any_identifier_are_kept_apart(ac_client, online_order):
    first = json.dumps({"event": "payment.captured", "payload": {"note": "first"}}).encode()
    second = json.dumps({"event": "payment.captured", "payload": {"note": "second"}}).encode()

    assert (await send_webhook(ac_client, first)).json()["data"]["note"] == "payment not found"
    assert (await send_webhook(ac_client, second)).json()["data"]["note"] == "payment not found"
    assert await webhook_event_count() == 2

    assert (await send_webhook(ac_client, first)).json()["data"]["note"] == "already processed"
    assert await webhook_event_count() == 2


@pytest.mark.asyncio
async def test_capture_after_cancel_keeps_order_cancelled(ac_client, online_order):
    intent = await _create_intent(ac_client, online_order)
    lamp_id = online_order["lamp"]["id"]

    cancelled = await ac_client.post(f"{url_prefix}/orders/{online_order['order']['id']}/cancel",
                                     headers=online_order["headers"])
    assert cancelled.status_code == 200, cancelled.text
    assert await product_stock(lamp_id) == (4, 0)
    await ac_client.post(f"{url_prefix}/cart/add", json={"product_id": lamp_id}, headers=online_order["headers"])

    late = await send_webhook(ac_client, captured_event(intent["gateway_order_id"], "pay_late"), event_id="evt_late")
    assert late.json()["data"]["note"] == "order cancelled"

    order = await _order(ac_client, online_order)
    assert order["status"] == "cancelled"
    assert order["payment"]["status"] == "refunded"
    assert await product_stock(lamp_id) == (4, 0)
    cart = await ac_client.get(f"{url_prefix}/cart", headers=online_order["headers"])
    assert len(cart.json()["data"]["cart"]["items"]) == 1

    verify = await ac_client.post(f"{url_prefix}/payments/verify", headers=online_order["headers"], json={
        "order_id": online_order["order"]["id"],
        "gateway_order_id": intent["gateway_order_id"],
        "gateway_payment_id": "pay_late",
        "gateway_signature": sign_payment(intent["gateway_order_id"], "pay_late"),
    })
    assert verify.status_code == 400
    assert verify.json()["message"] == "Order is cancelled"
    assert (await _order(ac_client, online_order))["payment"]["status"] == "refunded"


@pytest.mark.asyncio
async def test_coupon_use_counted_once_across_verify_and_webhooks(ac_client, online_order):
    admin_headers = online_order["admin"]["headers"]
    await create_coupon(ac_client, admin_headers, "PAYDAY", value=100)
    resp = await place_order(ac_client, online_order["headers"], payment_mode="online", coupon_code="PAYDAY",
                             items=[{"product_id": online_order["lamp"]["id"]}])
    assert resp.status_code == 201, resp.text
    coupon_order = {**online_order, "order": resp.json()["data"]["order"]}
    assert await coupon_usage_count() == 1

    intent = await _create_intent(ac_client, coupon_order)
    verify = await ac_client.post(f"{url_prefix}/payments/verify", headers=online_order["headers"], json={
        "order_id": coupon_order["order"]["id"],
        "gateway_order_id": intent["gateway_order_id"],
        "gateway_payment_id": "pay_cpn",
        "gateway_signature": sign_payment(intent["gateway_order_id"], "pay_cpn"),
    })
    assert verify.json()["data"]["already_confirmed"] is False

    body = captured_event(intent["gateway_order_id"], "pay_cpn")
    assert (await send_webhook(ac_client, body, event_id="evt_c1")).json()["data"]["note"] == "payment already confirmed"
    assert (await send_webhook(ac_client, body, event_id="evt_c1")).json()["data"]["note"] == "already processed"
    assert (await send_webhook(ac_client, body, event_id="evt_c2")).json()["data"]["note"] == "payment already confirmed"

    assert await coupon_usage_count() == 1
    coupons = await ac_client.get(f"{url_prefix}/admin/coupons", headers=admin_headers)
    payday = next(c for c in coupons.json()["data"]["coupons"] if c["code"] == "PAYDAY")
    assert payday["uses"] == 1
