from __future__ import annotations
from functools import wraps
from flask import request, g, abort
from utils.security import verify_access_token
from models import storage
from models.user import User


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if not token:
                abort(401, description="Missing or invalid Authorization header")
            verified = verify_access_token(token)
            if not verified.ok:
                abort(401, description="Invalid or expired access token")

            user_id = verified.claims.get("sub")
            user = storage.get(User, user_id)
            if not user:
                abort(401, description="Invalid or expired access token")
            g.current_user = user
            g.current_user_role = verified.claims.get("role", user.role)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
