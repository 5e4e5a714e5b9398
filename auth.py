import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

import bcrypt
from fastapi import Depends, Request

from config import Settings
from database import AdminToken, SqlStore, utcnow
from errors import Forbidden, InvalidCredentials, ServerMisconfigured, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

MIN_TOKEN_SECRET_LENGTH = 16


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        raise ServerMisconfigured("Admin password hash is invalid")


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


class AdminAuth:
    """Admin login backed by the admin_tokens table.

    Tokens are opaque and stored server side so they can be revoked;
    expired rows are removed the first time they are presented.
    """

    def __init__(self, settings: Settings, store: SqlStore):
        self.settings = settings
        self.store = store

    def _check_configured(self):
        s = self.settings
        if not s.admin_username or not s.admin_password_hash:
            raise ServerMisconfigured("Admin credentials not configured")
        if len(s.admin_token_secret or "") < MIN_TOKEN_SECRET_LENGTH:
            raise ServerMisconfigured("Admin token secret not configured")

    def _new_token(self) -> str:
        return hmac.new(
            self.settings.admin_token_secret.encode("utf-8"),
            secrets.token_bytes(32),
            hashlib.sha256,
        ).hexdigest()

    def login(self, username: str, password: str) -> Tuple[str, int]:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password required")
        self._check_configured()

        # both checks always run, same error for either mismatch
        username_ok = hmac.compare_digest(username.encode("utf-8"), self.settings.admin_username.encode("utf-8"))
        password_ok = verify_password(password, self.settings.admin_password_hash)
        if not (username_ok and password_ok):
            logger.warning("Failed admin login for %r", username)
            raise InvalidCredentials()

        ttl = self.settings.admin_token_ttl_seconds
        self.store.purge_expired_tokens()
        token = self._new_token()
        self.store.insert_admin_token(token, username, utcnow() + timedelta(seconds=ttl))
        logger.info("Admin %s logged in", username)
        return token, ttl

    def require_admin(self, token: Optional[str]) -> AdminToken:
        if not token:
            raise Unauthorized("Missing admin token")
        record = self.store.get_admin_token(token)
        if record is None:
            raise Forbidden("Invalid admin token")
        if record.expires_at <= utcnow():
            self.store.delete_admin_token(token)
            raise Forbidden("Expired admin token")
        return record

    def logout(self, token: str) -> bool:
        return self.store.delete_admin_token(token)


def get_admin_auth(request: Request) -> AdminAuth:
    return request.app.state.admin_auth


def get_current_admin(request: Request, admin_auth: AdminAuth = Depends(get_admin_auth)) -> AdminToken:
    return admin_auth.require_admin(bearer_token(request.headers.get("Authorization")))
