"""
Storefront service layer.

One canonical implementation of catalog, checkout, inbox and client
operations. Request-level validation happens here, before any write, so a
rejected call never leaves partial state behind.
"""
import logging
import math
import re
import time
import uuid
from typing import List, Optional

from database import CATEGORY_MAX_LENGTH, ICON_MAX_LENGTH, ORDER_ID_MAX_LENGTH, SqlStore, utcnow
from errors import NotFound, ValidationError
from payments import StripeGateway, round_money, to_minor_units
from schemas import Client, Message, MessageCreate, Order, OrderCreate, Product, ProductIn

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("stripe", "paypal", "manual")
ORDER_STATUSES = ("pending", "placed", "paid", "failed", "refunded")
ORDER_ID_RE = re.compile(r"^ORDER-\d+(-[A-Za-z0-9]+)?$")


def _timestamped_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def new_order_id() -> str:
    return _timestamped_id("ORDER")


def new_message_id() -> str:
    return _timestamped_id("MSG")


def _money_amount(value: Optional[float]) -> Optional[float]:
    # stored amounts are whole cents and strictly positive
    if value is None or not math.isfinite(value):
        return None
    amount = round_money(value)
    return amount if amount > 0 else None


def _product_fields(payload: ProductIn) -> dict:
    if not payload.name or not payload.category or not payload.icon or not payload.description:
        raise ValidationError("Missing required fields")
    if len(payload.category) > CATEGORY_MAX_LENGTH:
        raise ValidationError(f"Category must be at most {CATEGORY_MAX_LENGTH} characters")
    if len(payload.icon) > ICON_MAX_LENGTH:
        raise ValidationError(f"Icon must be at most {ICON_MAX_LENGTH} characters")
    price = _money_amount(payload.price)
    if price is None:
        raise ValidationError("Invalid price")
    return {
        "name": payload.name,
        "price": price,
        "category": payload.category,
        "icon": payload.icon,
        "image_url": payload.image_url or "",
        "description": payload.description,
    }


def _check_product_id(product_id: int) -> None:
    if product_id <= 0:
        raise ValidationError("Invalid id")


class Storefront:
    def __init__(self, store: SqlStore, stripe_gateway: Optional[StripeGateway] = None):
        self.store = store
        self.stripe = stripe_gateway

    # Products

    def list_products(self) -> List[Product]:
        return self.store.list_products()

    def get_product(self, product_id: int) -> Product:
        _check_product_id(product_id)
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFound("Product not found")
        return product

    def create_product(self, payload: ProductIn) -> Product:
        product = self.store.insert_product(_product_fields(payload))
        logger.info("Created product %s (%s)", product.id, product.name)
        return product

    def update_product(self, product_id: int, payload: ProductIn) -> Product:
        _check_product_id(product_id)
        fields = _product_fields(payload)
        product = self.store.update_product(product_id, fields)
        if product is None:
            raise NotFound("Product not found")
        return product

    def delete_product(self, product_id: int) -> None:
        _check_product_id(product_id)
        if not self.store.delete_product(product_id):
            raise NotFound("Product not found")
        logger.info("Deleted product %s", product_id)

    # Orders

    def verify_stripe_payment(self, payment_intent_id: str, total: float) -> dict:
        """Check that the PaymentIntent succeeded for exactly ``total``."""
        if self.stripe is None:
            raise ValidationError("Stripe payments are not available")
        expected = to_minor_units(total)
        if expected <= 0:
            raise ValidationError("Invalid order total")
        intent = self.stripe.retrieve_intent(payment_intent_id)
        if intent.get("status") != "succeeded":
            raise ValidationError(f"Payment {intent.get('status')}")
        if intent.get("amount") != expected:
            logger.warning(
                "Payment amount mismatch for %s: intent %s, order %s",
                payment_intent_id, intent.get("amount"), expected,
            )
            raise ValidationError("Order total does not match payment amount")
        return intent

    def create_order(self, payload: OrderCreate) -> Order:
        if not payload.items:
            raise ValidationError("Order must contain items")
        total = _money_amount(payload.total)
        if total is None:
            raise ValidationError("Invalid order total")
        customer = payload.customer
        if customer is None or not customer.email or not customer.name:
            raise ValidationError("Customer information required")
        if not payload.payment_method:
            raise ValidationError("Payment method required")
        if payload.payment_method not in PAYMENT_METHODS:
            raise ValidationError("Invalid payment method")
        order_id = (payload.id or "").strip()
        if payload.id is not None and (len(order_id) > ORDER_ID_MAX_LENGTH or not ORDER_ID_RE.match(order_id)):
            raise ValidationError("Invalid order id")

        status = "pending"
        if payload.payment_method == "stripe":
            if not payload.payment_intent_id:
                raise ValidationError("Payment intent ID required")
            self.verify_stripe_payment(payload.payment_intent_id, total)
            status = "paid"

        order = Order(
            id=order_id or new_order_id(),
            items=payload.items,
            total=total,
            customer=customer,
            payment_method=payload.payment_method,
            payment_intent_id=payload.payment_intent_id,
            status=status,
            created_at=utcnow(),
        )
        stored = self.store.insert_order(order)
        logger.info("Order %s created (%s, %.2f)", stored.id, stored.payment_method, stored.total)
        return stored

    def get_order(self, order_id: str) -> Order:
        order_id = (order_id or "").strip()
        if not order_id:
            raise ValidationError("Order ID required")
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    def list_orders(self) -> List[Order]:
        return self.store.list_orders()

    def set_payment_status(self, payment_ref: str, status: str) -> int:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")
        if not payment_ref:
            return 0
        updated = self.store.set_order_status(payment_ref, status)
        if updated:
            logger.info("Marked %d order(s) for %s as %s", updated, payment_ref, status)
        else:
            logger.info("No order found for payment %s", payment_ref)
        return updated

    # Messages

    def create_message(self, payload: MessageCreate) -> Message:
        if not payload.email or not payload.subject or not payload.message:
            raise ValidationError("Invalid message payload")
        message = Message(
            id=(payload.id or "").strip() or new_message_id(),
            name=payload.name,
            email=payload.email,
            subject=payload.subject,
            message=payload.message,
            status="new",
            created_at=utcnow(),
        )
        return self.store.insert_message(message)

    def list_messages(self) -> List[Message]:
        return self.store.list_messages()

    # Clients

    def list_clients(self) -> List[Client]:
        return self.store.list_clients()
