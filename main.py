import os
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import webhooks
from auth import AdminAuth, bearer_token, get_current_admin
from config import Settings, configure_logging
from database import AdminToken, SqlStore
from errors import ServerMisconfigured, ValidationError, install_error_handlers
from payments import PayPalGateway, StripeGateway
from ratelimit import RateLimiter
from schemas import (
    LoginRequest,
    MessageCreate,
    OrderCreate,
    PayPalCreateRequest,
    PayPalExecuteRequest,
    ProductIn,
    StripeConfirmRequest,
    StripeIntentRequest,
)
from services import Storefront, new_order_id

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SqlStore] = None,
    stripe_gateway: Optional[StripeGateway] = None,
    paypal_gateway: Optional[PayPalGateway] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or SqlStore(settings.database_url)
    stripe_gateway = stripe_gateway or StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    paypal_gateway = paypal_gateway or PayPalGateway(
        settings.paypal_client_id,
        settings.paypal_client_secret,
        mode=settings.paypal_mode,
        webhook_id=settings.paypal_webhook_id,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.open()
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.storefront = Storefront(store, stripe_gateway)
    app.state.admin_auth = AdminAuth(settings, store)
    app.state.stripe = stripe_gateway
    app.state.paypal = paypal_gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    install_error_handlers(app, expose_details=not settings.is_production)

    login_limiter = RateLimiter(settings.login_rate_limit, settings.login_rate_window)
    payment_limiter = RateLimiter(settings.payment_rate_limit, settings.payment_rate_window)
    app.state.login_limiter = login_limiter
    app.state.payment_limiter = payment_limiter

    storefront: Storefront = app.state.storefront
    admin_auth: AdminAuth = app.state.admin_auth

    # Admin
    @app.post("/api/admin/login")
    def admin_login(body: LoginRequest, client_key: str = Depends(login_limiter)):
        token, ttl = admin_auth.login(body.username, body.password)
        login_limiter.forgive(client_key)
        return {"token": token, "expiresIn": ttl, "message": "Login successful"}

    @app.post("/api/admin/logout")
    def admin_logout(request: Request, admin: AdminToken = Depends(get_current_admin)):
        admin_auth.logout(bearer_token(request.headers.get("Authorization")))
        return {"success": True}

    @app.get("/api/admin/orders")
    def admin_orders(admin: AdminToken = Depends(get_current_admin)):
        return {"orders": [o.to_api() for o in storefront.list_orders()]}

    # Products
    @app.get("/api/products")
    def list_products():
        return {"products": [p.to_api() for p in storefront.list_products()]}

    @app.get("/api/products/{product_id}")
    def get_product(product_id: int):
        return {"product": storefront.get_product(product_id).to_api()}

    @app.post("/api/products", status_code=201)
    def create_product(body: ProductIn, admin: AdminToken = Depends(get_current_admin)):
        return {"product": storefront.create_product(body).to_api()}

    @app.put("/api/products/{product_id}")
    def update_product(product_id: int, body: ProductIn,
                       admin: AdminToken = Depends(get_current_admin)):
        return {"product": storefront.update_product(product_id, body).to_api()}

    @app.delete("/api/products/{product_id}")
    def delete_product(product_id: int, admin: AdminToken = Depends(get_current_admin)):
        storefront.delete_product(product_id)
        return {"success": True}

    # Orders
    @app.post("/api/orders")
    def create_order(body: OrderCreate, _: str = Depends(payment_limiter)):
        order = storefront.create_order(body)
        return {
            "success": True,
            "orderId": order.id,
            "message": "Order created successfully",
            "order": order.to_api(),
        }

    @app.get("/api/orders/{order_id}")
    def get_order(order_id: str):
        return {"order": storefront.get_order(order_id).to_api()}

    # Payments
    @app.get("/api/config/stripe")
    def stripe_config():
        if not settings.stripe_public_key:
            raise ServerMisconfigured("Stripe publishable key not configured")
        return {"publishableKey": settings.stripe_public_key}

    @app.post("/api/payments/stripe/create-intent")
    def stripe_create_intent(body: StripeIntentRequest, _: str = Depends(payment_limiter)):
        if not body.amount or body.amount <= 0:
            raise ValidationError("Invalid amount")
        if not body.customer_email:
            raise ValidationError("Invalid email address")
        order_id = body.order_id or new_order_id()
        intent = stripe_gateway.create_intent(
            amount=body.amount,
            currency=(body.currency or "usd").lower(),
            description=body.description or f"Order {order_id}",
            receipt_email=str(body.customer_email),
            metadata={"orderId": order_id, "customerEmail": str(body.customer_email)},
        )
        return {"clientSecret": intent["client_secret"], "paymentIntentId": intent["id"]}

    @app.post("/api/payments/stripe/confirm")
    def stripe_confirm(body: StripeConfirmRequest, _: str = Depends(payment_limiter)):
        if not body.payment_intent_id:
            raise ValidationError("Payment intent ID required")
        intent = stripe_gateway.retrieve_intent(body.payment_intent_id)
        if intent["status"] != "succeeded":
            return JSONResponse(status_code=400, content={"success": False, "error": f"Payment {intent['status']}"})
        return {
            "success": True,
            "transactionId": intent["id"],
            "amount": intent["amount"] / 100,
            "currency": intent["currency"],
            "message": "Payment successful",
        }

    @app.post("/api/payments/paypal/create")
    def paypal_create(body: PayPalCreateRequest, _: str = Depends(payment_limiter)):
        if not body.amount or body.amount <= 0:
            raise ValidationError("Invalid amount")
        order_id = body.order_id or new_order_id()
        base_url = settings.client_url.rstrip("/")
        payment = paypal_gateway.create_payment(
            amount=body.amount,
            order_id=order_id,
            return_url=body.return_url or f"{base_url}/checkout?status=success",
            cancel_url=body.cancel_url or f"{base_url}/checkout?status=cancelled",
            customer_email=body.customer_email,
            items=body.items,
        )
        return {"paymentId": payment["id"], "approvalUrl": payment["approval_url"]}

    @app.post("/api/payments/paypal/execute")
    def paypal_execute(body: PayPalExecuteRequest, _: str = Depends(payment_limiter)):
        if not body.payment_id or not body.payer_id:
            raise ValidationError("Payment ID and Payer ID required")
        payment = paypal_gateway.execute_payment(body.payment_id, body.payer_id)
        if payment["state"] != "approved":
            logger.error("PayPal payment %s ended in state %s", payment["id"], payment["state"])
            return JSONResponse(status_code=500, content={"error": f"Payment {payment['state']}"})
        return {
            "success": True,
            "transactionId": payment["id"],
            "amount": payment["total"],
            "currency": payment["currency"],
            "message": "Payment successful",
        }

    app.include_router(webhooks.router)

    # Messages
    @app.post("/api/messages")
    def create_message(body: MessageCreate):
        message = storefront.create_message(body)
        return {"success": True, "messageId": message.id}

    @app.get("/api/messages")
    def list_messages(admin: AdminToken = Depends(get_current_admin)):
        return {"messages": [m.to_api() for m in storefront.list_messages()]}

    # Clients
    @app.get("/api/clients")
    def list_clients(admin: AdminToken = Depends(get_current_admin)):
        return {"clients": [c.to_api() for c in storefront.list_clients()]}

    # Health + reporting
    @app.get("/api/health")
    def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    @app.post("/api/csp-report", status_code=204)
    async def csp_report(request: Request):
        report = (await request.body()).decode("utf-8", errors="replace")[:2000]
        logger.warning(
            "CSP violation report from %s (%s): %s",
            request.client.host if request.client else "unknown",
            request.headers.get("user-agent", ""),
            report,
        )
        return Response(status_code=204)

    return app


def build_default_app() -> FastAPI:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    if not settings.admin_token_secret and not settings.is_production:
        # development fallback; production requires ADMIN_TOKEN_SECRET
        settings.admin_token_secret = secrets.token_hex(32)
    return create_app(settings)


app = build_default_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host="0.0.0.0", port=port)
