"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access/refresh JWT creation and verification via PyJWT

Access and refresh tokens are signed with two independent secrets so that a
leaked secret for one token type cannot be used to forge the other.
Verification returns a VerifyResult instead of raising.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Any, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError

from flask import current_app

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


class TokenError(str, Enum):
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class VerifyResult:
    claims: Optional[Dict[str, Any]] = None
    error: Optional[TokenError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _encode(payload: Dict[str, Any], secret: str, ttl: timedelta) -> str:
    now = _now()
    payload = {
        **payload,
        "iss": current_app.config.get("JWT_ISSUER", "admin-auth-api"),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=current_app.config["JWT_ALGORITHM"])


def issue_access_token(user_id: str, role: str, ttl: timedelta | None = None) -> str:
    """Short-lived token presented on every API call: {sub, role, exp}."""
    return _encode(
        {"sub": str(user_id), "role": role, "type": "access"},
        current_app.config["JWT_ACCESS_SECRET"],
        ttl if ttl is not None else current_app.config["ACCESS_TOKEN_EXPIRES"],
    )


def issue_refresh_token(user_id: str, family: str, jti: str, ttl: timedelta | None = None) -> str:
    """Long-lived single-use token: {sub, family, exp}, bound to its store record by jti."""
    return _encode(
        {"sub": str(user_id), "family": family, "jti": jti, "type": "refresh"},
        current_app.config["JWT_REFRESH_SECRET"],
        ttl if ttl is not None else current_app.config["REFRESH_TOKEN_EXPIRES"],
    )


def verify_token(token: str, secret: str, expected_type: str | None = None) -> VerifyResult:
    """
    Pure cryptographic check of a token against one secret.
    Never touches the token store.
    """
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            issuer=current_app.config.get("JWT_ISSUER", "admin-auth-api"),
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        return VerifyResult(error=TokenError.EXPIRED)
    except jwt.InvalidSignatureError:
        return VerifyResult(error=TokenError.INVALID_SIGNATURE)
    except jwt.InvalidTokenError:
        return VerifyResult(error=TokenError.MALFORMED)

    if expected_type and decoded.get("type") != expected_type:
        return VerifyResult(error=TokenError.MALFORMED)
    return VerifyResult(claims=decoded)


def verify_access_token(token: str) -> VerifyResult:
    return verify_token(token, current_app.config["JWT_ACCESS_SECRET"], expected_type="access")


def verify_refresh_token(token: str) -> VerifyResult:
    return verify_token(token, current_app.config["JWT_REFRESH_SECRET"], expected_type="refresh")
