"""
Issue and verify the service's own session tokens (HS256 JWTs).

Access tokens embed the tenant at issuance time; that claim is what the tenant
context resolver trusts. Refresh tokens are signed with a separate secret and
carry a ``type`` claim so one can never be used in place of the other.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from cargo_api.errors import AuthenticationError
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenSigner:
    def __init__(self, settings: Settings) -> None:
        self._secrets = {ACCESS: settings.jwt_secret, REFRESH: settings.jwt_refresh_secret}
        self._ttls = {
            ACCESS: timedelta(minutes=settings.access_token_ttl_minutes),
            REFRESH: timedelta(days=settings.refresh_token_ttl_days),
        }
        self._algorithm = settings.jwt_algorithm

    def _issue(self, claims: dict[str, Any], token_type: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "type": token_type, "iat": now, "exp": now + self._ttls[token_type]}
        return jwt.encode(payload, self._secrets[token_type], algorithm=self._algorithm)

    def issue_access_token(self, claims: dict[str, Any]) -> str:
        return self._issue(claims, ACCESS)

    def issue_refresh_token(self, claims: dict[str, Any]) -> str:
        return self._issue(claims, REFRESH)

    def _verify(self, token: str, token_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"], "verify_exp": True},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired type=%s", token_type)
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid type=%s: %s", token_type, type(e).__name__)
            raise AuthenticationError("Invalid token") from e

        if payload.get("type") != token_type:
            logger.info("Token type mismatch expected=%s", token_type)
            raise AuthenticationError("Invalid token")
        return payload

    def verify_access_token(self, token: str) -> dict[str, Any]:
        return self._verify(token, ACCESS)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        return self._verify(token, REFRESH)


def session_claims(user: Any) -> dict[str, Any]:
    """Claims embedded in both token types for `user` (a `models.tenancy.User`)."""

    return {
        "sub": user.id,
        "tenant_id": user.tenant_id,
        "tenant_code": user.tenant.code,
        "branch_id": user.branch_id,
        "role": user.role,
        "username": user.username,
    }
