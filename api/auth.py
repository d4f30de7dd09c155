"""
Authentication blueprint:
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- GET  /auth/sessions

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and long-lived refresh tokens, signed with separate secrets
- Stores refresh tokens hashed in DB (RefreshToken model) so they can be rotated and revoked
- Rotates the refresh token on every use; replaying an old one revokes its whole family
- Every token failure is the same 401, the specific reason is only logged
- Failed logins are counted per client IP; past the limit login answers 429
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app

from models import storage
from models.user import User
from models.schemas.user import UserLoginSchema, UserOutSchema, RefreshTokenSchema, SessionOutSchema

from utils.decorators import jwt_required
from utils.security import verify_password
from utils.token_service import (
    AuthErrorKind,
    issue_token_pair,
    rotate_refresh_token,
    revoke_refresh_token,
    revoke_user_tokens,
)
from utils.token_store import TokenStore

from .errors import error_response

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_login_schema = UserLoginSchema()
refresh_token_schema = RefreshTokenSchema()
user_out_schema = UserOutSchema()
session_list_out_schema = SessionOutSchema(many=True)

REFRESH_FAILED = "Invalid or expired refresh token"


def client_ip() -> str | None:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.remote_addr


def client_user_agent() -> str | None:
    return request.headers.get("User-Agent") or None


def _login_limit_key() -> str:
    return f"login:ip:{client_ip() or 'unknown'}"


def _login_rate_limited():
    limiter = current_app.extensions.get("login_rate_limiter")
    if limiter is None:
        return None
    allowed, retry_after = limiter.check(_login_limit_key())
    if allowed:
        return None
    logger.warning("login_rate_limited ip=%s retry_after=%s", client_ip(), retry_after)
    response, status = error_response("TOO_MANY_REQUESTS", "Too many login attempts, please try again later.", 429)
    response.headers["Retry-After"] = str(retry_after)
    return response, status


def _record_failed_login() -> None:
    limiter = current_app.extensions.get("login_rate_limiter")
    if limiter is not None:
        limiter.hit(_login_limit_key())


@bp.post("/login")
def login():
    """
    Login: return accessToken, refreshToken and the user
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid credentials
      422:
        description: Validation error
      429:
        description: Too many failed attempts from this IP
    """
    limited = _login_rate_limited()
    if limited is not None:
        return limited

    payload = user_login_schema.load(request.get_json(silent=True) or {})
    username = payload["username"]

    session = storage.get_session()
    user: User = session.query(User).filter(User.username == username).first()
    if not user or not verify_password(payload["password"], user.password_hash):
        logger.warning("login_failed kind=%s username=%s ip=%s", AuthErrorKind.INVALID_CREDENTIALS.value, username, client_ip())
        _record_failed_login()
        abort(401, description="Invalid credentials")

    pair, record = issue_token_pair(user, ip=client_ip(), user_agent=client_user_agent())
    logger.info("login_succeeded user=%s family=%s", user.id, record.token_family)

    return jsonify(
        {
            **pair.to_dict(),
            "user": user_out_schema.dump(user),
        }
    ), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access/refresh pair (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns rotated tokens)
      401:
        description: Unauthorized
    """
    payload = refresh_token_schema.load(request.get_json(silent=True) or {})

    result = rotate_refresh_token(payload["refresh_token"], ip=client_ip(), user_agent=client_user_agent())
    if not result.ok:
        logger.info("refresh_failed kind=%s ip=%s", result.error.value, client_ip())
        abort(401, description=REFRESH_FAILED)

    return jsonify(result.tokens.to_dict()), 200


@bp.post("/logout")
def logout():
    """
    logout: revokes one refresh token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    payload = refresh_token_schema.load(request.get_json(silent=True) or {})
    if not revoke_refresh_token(payload["refresh_token"]):
        abort(401, description=REFRESH_FAILED)
    return jsonify({"message": "Logged out"}), 200


@bp.post("/logout-all")
@jwt_required()
def logout_all():
    """
    logout from every device: revokes all refresh tokens of the current user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out everywhere
      401:
        description: Unauthorized
    """
    revoked = revoke_user_tokens(g.current_user.id)
    return jsonify({"message": "Logged out from all devices", "revoked": revoked}), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify(user_out_schema.dump(g.current_user)), 200


@bp.get("/sessions")
@jwt_required()
def sessions():
    """
    List the current user's active sessions (usable refresh tokens)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    rows = TokenStore().active_sessions(g.current_user.id)
    return jsonify({"data": session_list_out_schema.dump(rows)}), 200
