import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from errors import ServerMisconfigured

DEFAULT_DATABASE_URL = "sqlite:///./data/storefront.sqlite"

REQUIRED_IN_PRODUCTION = [
    "STRIPE_PUBLIC_KEY",
    "STRIPE_SECRET_KEY",
    "PAYPAL_CLIENT_ID",
    "PAYPAL_CLIENT_SECRET",
    "PAYPAL_WEBHOOK_ID",
    "CLIENT_URL",
    "ADMIN_USERNAME",
    "ADMIN_PASSWORD_HASH",
    "ADMIN_TOKEN_SECRET",
]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ServerMisconfigured(f"{name} must be an integer")


@dataclass
class Settings:
    environment: str = "development"
    database_url: str = DEFAULT_DATABASE_URL

    admin_username: str = ""
    admin_password_hash: str = ""
    admin_token_secret: str = ""
    admin_token_ttl_seconds: int = 86400

    stripe_secret_key: str = ""
    stripe_public_key: str = ""
    stripe_webhook_secret: str = ""

    paypal_mode: str = "sandbox"
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_webhook_id: str = ""

    client_url: str = "http://localhost:3000"
    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000", "https://localhost:3000"])
    log_level: str = "INFO"

    # (max requests, window seconds)
    login_rate_limit: int = 5
    login_rate_window: int = 15 * 60
    payment_rate_limit: int = 10
    payment_rate_window: int = 60

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)
        environment = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"

        if environment == "production":
            missing = [key for key in REQUIRED_IN_PRODUCTION if not os.getenv(key)]
            if missing:
                raise ServerMisconfigured(f"Missing required environment variables: {', '.join(missing)}")

        origins = os.getenv("ALLOWED_ORIGINS")
        return cls(
            environment=environment,
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            admin_username=os.getenv("ADMIN_USERNAME", ""),
            admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH", ""),
            admin_token_secret=os.getenv("ADMIN_TOKEN_SECRET", ""),
            admin_token_ttl_seconds=_int_env("ADMIN_TOKEN_TTL_SECONDS", 86400),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_public_key=os.getenv("STRIPE_PUBLIC_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            paypal_mode=os.getenv("PAYPAL_MODE", "sandbox"),
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID", ""),
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET", ""),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID", ""),
            client_url=os.getenv("CLIENT_URL", "http://localhost:3000"),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else cls().allowed_origins,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            login_rate_limit=_int_env("LOGIN_RATE_LIMIT", 5),
            login_rate_window=_int_env("LOGIN_RATE_WINDOW_SECONDS", 15 * 60),
            payment_rate_limit=_int_env("PAYMENT_RATE_LIMIT", 10),
            payment_rate_window=_int_env("PAYMENT_RATE_WINDOW_SECONDS", 60),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
