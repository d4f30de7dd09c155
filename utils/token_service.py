"""
Refresh-token lifecycle: issuing a session, rotating a refresh token,
detecting reuse and revoking token families.

Rotation is one-winner-per-token: exactly one caller may move a record from
active to replaced. Any other presentation of that token, whether a replay by
a thief or a duplicate client request, revokes the whole family.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from flask import current_app

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user import User
from utils.security import (
    TokenError,
    issue_access_token,
    issue_refresh_token,
    verify_refresh_token,
)
from utils.token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthErrorKind(str, Enum):
    """Server-side failure taxonomy. Clients only ever see a generic 401."""
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    TOKEN_REVOKED = "token_revoked"
    TOKEN_REUSED = "token_reused"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@dataclass(frozen=True)
class RotationResult:
    tokens: Optional[TokenPair] = None
    error: Optional[AuthErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _failure(kind: AuthErrorKind) -> RotationResult:
    return RotationResult(error=kind)


def issue_token_pair(
    user: User,
    ip: str | None = None,
    user_agent: str | None = None,
    family: str | None = None,
    store: TokenStore | None = None,
    commit: bool = True,
) -> Tuple[TokenPair, RefreshToken]:
    """
    Mint an access+refresh pair and persist the refresh token (hashed).
    A new family is started unless one is given.
    """
    store = store or TokenStore()
    family = family or str(uuid.uuid4())
    token_id = str(uuid.uuid4())

    refresh_token = issue_refresh_token(user.id, family, token_id)
    record = store.create(
        user_id=user.id,
        family=family,
        digest=store.hash(refresh_token),
        expires_at=utcnow() + current_app.config["REFRESH_TOKEN_EXPIRES"],
        ip=ip,
        user_agent=user_agent,
        token_id=token_id,
        commit=commit,
    )
    access_token = issue_access_token(user.id, user.role)
    return TokenPair(access_token, refresh_token), record


def revoke_token_family(family: str, store: TokenStore | None = None) -> int:
    """
    Revoke every not-yet-revoked record of a family, replaced ones included,
    so the whole chain reads as terminated. Idempotent.
    """
    store = store or TokenStore()
    revoked = store.revoke_family(family)
    logger.info("token_family_revoked family=%s revoked=%d", family, revoked)
    return revoked


def _reuse_detected(
    record: RefreshToken,
    ip: str | None,
    user_agent: str | None,
    store: TokenStore,
) -> RotationResult:
    successor = store.get(record.replaced_by_token_id) if record.replaced_by_token_id else None
    logger.warning(
        "refresh_token_reuse_detected family=%s user=%s ip=%s user_agent=%r "
        "reused_token=%s reused_ip=%s reused_user_agent=%r "
        "successor_token=%s successor_ip=%s successor_user_agent=%r",
        record.token_family,
        record.user_id,
        ip,
        user_agent,
        record.id,
        record.ip_address,
        record.user_agent,
        successor.id if successor else None,
        successor.ip_address if successor else None,
        successor.user_agent if successor else None,
    )
    revoke_token_family(record.token_family, store=store)
    return _failure(AuthErrorKind.TOKEN_REUSED)


def rotate_refresh_token(
    raw_token: str,
    ip: str | None = None,
    user_agent: str | None = None,
    store: TokenStore | None = None,
) -> RotationResult:
    """
    Exchange a refresh token for a new pair in the same family.

    Failures come back as RotationResult.error; only storage errors raise.
    """
    store = store or TokenStore()

    verified = verify_refresh_token(raw_token)
    if not verified.ok:
        if verified.error is TokenError.EXPIRED:
            return _failure(AuthErrorKind.EXPIRED_TOKEN)
        return _failure(AuthErrorKind.INVALID_TOKEN)
    claims = verified.claims

    record = store.find_by_hash(store.hash(raw_token))
    # Unknown tokens are indistinguishable from malformed ones
    if record is None:
        return _failure(AuthErrorKind.INVALID_TOKEN)
    if record.user_id != claims.get("sub") or record.token_family != claims.get("family"):
        return _failure(AuthErrorKind.INVALID_TOKEN)

    if record.revoked_at is not None:
        return _failure(AuthErrorKind.TOKEN_REVOKED)
    if record.replaced_by_token_id is not None:
        return _reuse_detected(record, ip, user_agent, store)
    if record.is_expired:
        return _failure(AuthErrorKind.EXPIRED_TOKEN)

    user = store.db.get(User, record.user_id)
    if user is None:
        return _failure(AuthErrorKind.INVALID_TOKEN)

    # claim -> create successor -> link predecessor commit as one transaction
    if not store.try_claim(record.id, commit=False):
        store.rollback()
        return _reuse_detected(store.get(record.id) or record, ip, user_agent, store)

    pair, successor = issue_token_pair(
        user,
        ip=ip,
        user_agent=user_agent,
        family=record.token_family,
        store=store,
        commit=False,
    )
    store.set_replaced_by(record.id, successor.id, commit=False)
    store.commit()

    logger.debug("refresh_token_rotated family=%s old=%s new=%s", record.token_family, record.id, successor.id)
    return RotationResult(tokens=pair)


def revoke_refresh_token(raw_token: str, store: TokenStore | None = None) -> bool:
    """
    Logout of one session. Returns False only when the token does not verify;
    an expired, unknown or already revoked token is a successful no-op.
    """
    store = store or TokenStore()
    verified = verify_refresh_token(raw_token)
    if not verified.ok and verified.error is not TokenError.EXPIRED:
        return False

    record = store.find_by_hash(store.hash(raw_token))
    if record is not None and store.revoke(record.id):
        logger.info("refresh_token_revoked token=%s user=%s", record.id, record.user_id)
    return True


def revoke_user_tokens(user_id: str, store: TokenStore | None = None) -> int:
    """Logout from every device: revoke all of a user's refresh tokens."""
    store = store or TokenStore()
    revoked = store.revoke_user(user_id)
    logger.info("user_refresh_tokens_revoked user=%s revoked=%d", user_id, revoked)
    return revoked
