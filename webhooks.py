import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks")

# event type -> order status, keyed by the PaymentIntent id
STRIPE_STATUS_EVENTS = {
    "payment_intent.succeeded": "paid",
    "payment_intent.payment_failed": "failed",
}

# event type -> order status, keyed by the sale's parent payment id
PAYPAL_STATUS_EVENTS = {
    "PAYMENT.SALE.COMPLETED": "paid",
    "PAYMENT.SALE.DENIED": "failed",
    "PAYMENT.SALE.REFUNDED": "refunded",
}


def handle_stripe_event(storefront, event: dict) -> None:
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type in STRIPE_STATUS_EVENTS:
        if event_type == "payment_intent.payment_failed":
            reason = (obj.get("last_payment_error") or {}).get("message", "unknown")
            logger.info("Payment intent failed: %s (%s)", obj.get("id"), reason)
        else:
            logger.info("Payment intent succeeded: %s", obj.get("id"))
        storefront.set_payment_status(obj.get("id"), STRIPE_STATUS_EVENTS[event_type])
    elif event_type == "charge.refunded":
        logger.info("Refund processed: %s amount %.2f", obj.get("id"), (obj.get("amount") or 0) / 100)
        storefront.set_payment_status(obj.get("payment_intent"), "refunded")
    elif event_type == "charge.dispute.created":
        logger.warning("Dispute created for charge %s", obj.get("charge") or obj.get("id"))
    else:
        logger.info("Unhandled Stripe event type: %s", event_type)


def handle_paypal_event(storefront, event: dict) -> None:
    event_type = event.get("event_type")
    resource = event.get("resource") or {}
    if event_type in PAYPAL_STATUS_EVENTS:
        amount = resource.get("amount") or {}
        logger.info("PayPal %s: sale %s %s %s", event_type, resource.get("id"), amount.get("currency"), amount.get("total"))
        storefront.set_payment_status(resource.get("parent_payment"), PAYPAL_STATUS_EVENTS[event_type])
    else:
        logger.info("Unhandled PayPal event: %s", event_type)


@router.post("/stripe")
async def stripe_webhook(request: Request):
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    event = request.app.state.stripe.construct_event(payload, signature)
    await run_in_threadpool(handle_stripe_event, request.app.state.storefront, event)
    return {"received": True}


@router.post("/paypal")
async def paypal_webhook(request: Request):
    try:
        event = json.loads(await request.body() or b"{}")
    except ValueError:
        raise ValidationError("Invalid webhook payload")

    headers = {k.lower(): v for k, v in request.headers.items()}
    if not await run_in_threadpool(request.app.state.paypal.verify_webhook, headers, event):
        logger.error("PayPal webhook signature verification failed")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    await run_in_threadpool(handle_paypal_event, request.app.state.storefront, event)
    return {"received": True}
