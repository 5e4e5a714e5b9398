import json

from conftest import STRIPE_WEBHOOK_SIGNATURE


def post_stripe_event(client, event, signature=STRIPE_WEBHOOK_SIGNATURE):
    return client.post(
        "/api/webhooks/stripe",
        content=json.dumps(event),
        headers={"Content-Type": "application/json", "Stripe-Signature": signature},
    )


def post_paypal_event(client, event, signature="valid"):
    headers = {
        "Content-Type": "application/json",
        "PayPal-Transmission-Id": "t-1",
        "PayPal-Transmission-Time": "2024-01-01T00:00:00Z",
        "PayPal-Cert-Url": "https://api.paypal.com/cert",
        "PayPal-Auth-Algo": "SHA256withRSA",
        "PayPal-Transmission-Sig": signature,
    }
    return client.post("/api/webhooks/paypal", content=json.dumps(event), headers=headers)


def order_status(client, order_id):
    return client.get(f"/api/orders/{order_id}").json()["order"]["status"]


def test_stripe_webhook_rejects_bad_signature(client):
    response = post_stripe_event(client, {"type": "payment_intent.succeeded"}, signature="forged")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook signature"}


def test_stripe_payment_failed_then_succeeded(client, make_order):
    order_id = client.post("/api/orders", json=make_order(paymentIntentId="pi_hook")).json()["orderId"]

    failed = {
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_hook", "last_payment_error": {"message": "card declined"}}},
    }
    assert post_stripe_event(client, failed).json() == {"received": True}
    assert order_status(client, order_id) == "failed"

    succeeded = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_hook"}}}
    post_stripe_event(client, succeeded)
    assert order_status(client, order_id) == "paid"


def test_stripe_refund(client, fake_stripe, make_order):
    fake_stripe.add_intent("pi_paid", 1000)
    order_id = client.post("/api/orders", json=make_order(method="stripe", paymentIntentId="pi_paid")).json()["orderId"]

    refund = {"type": "charge.refunded", "data": {"object": {"id": "ch_1", "amount": 1000, "payment_intent": "pi_paid"}}}
    assert post_stripe_event(client, refund).status_code == 200
    assert order_status(client, order_id) == "refunded"


def test_stripe_unknown_and_dispute_events_are_acknowledged(client):
    for event_type in ("charge.dispute.created", "customer.created"):
        event = {"type": event_type, "data": {"object": {"id": "x"}}}
        assert post_stripe_event(client, event).json() == {"received": True}


def test_paypal_webhook_rejects_unverified(client):
    response = post_paypal_event(client, {"event_type": "PAYMENT.SALE.COMPLETED"}, signature="forged")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_paypal_sale_events_update_order(client, make_order):
    order_id = client.post("/api/orders", json=make_order(method="paypal", paymentIntentId="PAY-77")).json()["orderId"]
    assert order_status(client, order_id) == "pending"

    completed = {
        "event_type": "PAYMENT.SALE.COMPLETED",
        "resource": {"id": "SALE-1", "parent_payment": "PAY-77", "amount": {"total": "10.00", "currency": "USD"}},
    }
    assert post_paypal_event(client, completed).json() == {"received": True}
    assert order_status(client, order_id) == "paid"

    refunded = {"event_type": "PAYMENT.SALE.REFUNDED", "resource": {"id": "SALE-1", "parent_payment": "PAY-77"}}
    post_paypal_event(client, refunded)
    assert order_status(client, order_id) == "refunded"


def test_paypal_invalid_json(client):
    response = client.post("/api/webhooks/paypal", content="{nope", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
