"""
Payment gateway adapters.

Thin wrappers over the Stripe SDK and the PayPal REST API. Nothing here is
retried: a provider failure is logged and surfaced as
``UpstreamPaymentError``.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import requests
import stripe

from errors import ServerMisconfigured, UpstreamPaymentError, ValidationError

logger = logging.getLogger(__name__)

PAYPAL_API_BASE = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}


def to_minor_units(amount) -> int:
    """Convert a decimal amount (12.34) to cents (1234), rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_money(amount) -> float:
    """Round a decimal amount to whole cents, half up, the way ``to_minor_units`` does."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str = ""):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def _require_key(self):
        if not self.secret_key:
            raise ServerMisconfigured("Stripe is not configured")

    def create_intent(self, amount: float, currency: str, description: str,
                      receipt_email: Optional[str], metadata: Dict[str, str]) -> Dict[str, Any]:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=to_minor_units(amount),
                currency=currency,
                description=description,
                receipt_email=receipt_email,
                metadata=metadata,
            )
        except stripe.StripeError:
            logger.exception("Stripe payment intent creation failed")
            raise UpstreamPaymentError("Failed to create payment intent")
        return {"id": intent["id"], "client_secret": intent["client_secret"]}

    def retrieve_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.secret_key)
        except stripe.StripeError:
            logger.exception("Stripe payment intent lookup failed for %s", payment_intent_id)
            raise UpstreamPaymentError("Failed to verify payment")
        return {
            "id": intent["id"],
            "status": intent["status"],
            "amount": intent["amount"],
            "currency": intent["currency"],
        }

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise ServerMisconfigured("Stripe webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Stripe webhook signature failure: %s", e)
            raise ValidationError("Invalid webhook signature")
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)


class PayPalGateway:
    """PayPal REST v1 payments, authenticated with client credentials."""

    def __init__(self, client_id: str, client_secret: str, mode: str = "sandbox",
                 webhook_id: str = "", session: Optional[requests.Session] = None, timeout: int = 15):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = PAYPAL_API_BASE.get(mode, PAYPAL_API_BASE["sandbox"])
        self.webhook_id = webhook_id
        self.http = session or requests.Session()
        self.timeout = timeout

    def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ServerMisconfigured("PayPal is not configured")
        try:
            r = self.http.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("PayPal token request failed")
            raise UpstreamPaymentError("PayPal is unavailable")
        if r.status_code >= 300:
            logger.error("PayPal token request rejected: %s %s", r.status_code, r.text[:200])
            raise UpstreamPaymentError("PayPal authentication failed")
        return r.json()["access_token"]

    def _post(self, path: str, body: dict, error_message: str) -> Dict[str, Any]:
        token = self._access_token()
        try:
            r = self.http.post(
                f"{self.base_url}{path}",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("PayPal request to %s failed", path)
            raise UpstreamPaymentError(error_message)
        if r.status_code >= 300:
            logger.error("PayPal request to %s rejected: %s %s", path, r.status_code, r.text[:200])
            raise UpstreamPaymentError(error_message)
        return r.json()

    def create_payment(self, amount: float, order_id: str, return_url: str, cancel_url: str,
                       customer_email: Optional[str] = None, items: Optional[List[dict]] = None) -> Dict[str, Any]:
        total = f"{Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"
        payer = {"payment_method": "paypal"}
        if customer_email:
            payer["payer_info"] = {"email": customer_email}
        body = {
            "intent": "sale",
            "payer": payer,
            "redirect_urls": {"return_url": return_url, "cancel_url": cancel_url},
            "transactions": [
                {
                    "amount": {"total": total, "currency": "USD", "details": {"subtotal": total}},
                    "description": f"Order {order_id}",
                    "invoice_number": order_id,
                    "item_list": {"items": items or []},
                }
            ],
        }
        payment = self._post("/v1/payments/payment", body, "Failed to create PayPal payment")
        approval = next((link["href"] for link in payment.get("links", []) if link.get("rel") == "approval_url"), None)
        if not approval:
            raise UpstreamPaymentError("PayPal did not return an approval URL")
        return {"id": payment["id"], "approval_url": approval}

    def execute_payment(self, payment_id: str, payer_id: str) -> Dict[str, Any]:
        payment = self._post(
            f"/v1/payments/payment/{payment_id}/execute",
            {"payer_id": payer_id},
            "Failed to execute payment",
        )
        amount = (payment.get("transactions") or [{}])[0].get("amount", {})
        return {
            "id": payment.get("id", payment_id),
            "state": payment.get("state"),
            "total": amount.get("total"),
            "currency": amount.get("currency"),
        }

    def verify_webhook(self, headers: Dict[str, str], event: dict) -> bool:
        if not self.webhook_id:
            raise ServerMisconfigured("PayPal webhook id not configured")
        body = {
            "transmission_id": headers.get("paypal-transmission-id"),
            "transmission_time": headers.get("paypal-transmission-time"),
            "cert_url": headers.get("paypal-cert-url"),
            "auth_algo": headers.get("paypal-auth-algo"),
            "transmission_sig": headers.get("paypal-transmission-sig"),
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        }
        if not all(body[k] for k in ("transmission_id", "transmission_time", "cert_url", "auth_algo", "transmission_sig")):
            return False
        result = self._post("/v1/notifications/verify-webhook-signature", body, "PayPal webhook verification failed")
        return result.get("verification_status") == "SUCCESS"
