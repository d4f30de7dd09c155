from __future__ import annotations

import unittest

from api import create_app
from models import storage
from models.refresh_token import RefreshToken
from models.user import User
from utils.security import hash_password
from utils.token_store import TokenStore

PASSWORD = "Passw0rd!"


class AuthTestCase(unittest.TestCase):
    """Fresh app and empty in-memory database for every test."""

    def setUp(self):
        self.app = create_app("test")
        self.client = self.app.test_client()
        self.ctx = self.app.app_context()
        self.ctx.push()
        storage.drop_all()
        storage.reload()
        self.store = TokenStore()

    def tearDown(self):
        storage.close()
        self.ctx.pop()

    def create_user(self, username: str = "alice", role: str = "admin") -> User:
        user = User(username=username, password_hash=hash_password(PASSWORD), role=role)
        user.save()
        return user

    def record_for(self, raw_token: str) -> RefreshToken | None:
        session = storage.get_session()
        session.expire_all()
        return self.store.find_by_hash(self.store.hash(raw_token))

    def family_records(self, family: str) -> list[RefreshToken]:
        session = storage.get_session()
        session.expire_all()
        return session.query(RefreshToken).filter(RefreshToken.token_family == family).all()

    def login(self, username: str = "alice", password: str = PASSWORD, user_agent: str = "pytest"):
        return self.client.post(
            "/api/v1/auth/login",
            json={"username": username, "password": password},
            headers={"User-Agent": user_agent},
        )

    def refresh(self, refresh_token: str, user_agent: str = "pytest"):
        return self.client.post(
            "/api/v1/auth/refresh",
            json={"refreshToken": refresh_token},
            headers={"User-Agent": user_agent},
        )
