from __future__ import annotations

import logging

import bcrypt
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from cargo_api.db.session import SKIP_TENANT_SCOPE
from cargo_api.errors import AuthenticationError
from cargo_api.models.tenancy import User
from cargo_api.security.config import SecurityConfig

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request, config: SecurityConfig) -> str | None:
    """
    Read `Authorization: Bearer <token>`.

    Returns None when the header is absent; a present but malformed header is a 401.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError(f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.")

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError(f"Invalid {header_name}. Missing token after '{bearer_prefix}'.")

    return token


def load_user(db: Session, user_id: str, tenant_id: str) -> User:
    """The token's user must still exist, be active and belong to the token's tenant."""

    user = db.execute(select(User).where(User.id == user_id, User.tenant_id == tenant_id)).scalar_one_or_none()

    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or inactive user")
    if not user.tenant.is_active:
        raise AuthenticationError("Tenant account is inactive")

    return user


def username_taken(db: Session, username: str) -> bool:
    """Usernames are global (login takes no company code), so the lookup spans every tenant."""

    stmt = select(User.id).where(User.username == username).limit(1).execution_options(**{SKIP_TENANT_SCOPE: True})
    return db.scalar(stmt) is not None


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False
