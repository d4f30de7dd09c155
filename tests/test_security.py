from __future__ import annotations

import unittest
from datetime import timedelta

import jwt

from tests.base import AuthTestCase
from utils.security import (
    TokenError,
    hash_password,
    issue_access_token,
    issue_refresh_token,
    verify_access_token,
    verify_password,
    verify_refresh_token,
    verify_token,
)


class TokenCodecTestCase(AuthTestCase):

    def test_access_token_claims(self):
        token = issue_access_token("user-1", "admin")
        result = verify_access_token(token)
        self.assertTrue(result.ok)
        self.assertEqual(result.claims["sub"], "user-1")
        self.assertEqual(result.claims["role"], "admin")
        self.assertEqual(result.claims["type"], "access")
        ttl = result.claims["exp"] - result.claims["iat"]
        self.assertEqual(ttl, 15 * 60)

    def test_refresh_token_claims(self):
        token = issue_refresh_token("user-1", "family-1", "token-1")
        result = verify_refresh_token(token)
        self.assertTrue(result.ok)
        self.assertEqual(result.claims["sub"], "user-1")
        self.assertEqual(result.claims["family"], "family-1")
        self.assertEqual(result.claims["jti"], "token-1")
        self.assertEqual(result.claims["exp"] - result.claims["iat"], 14 * 24 * 3600)

    def test_secrets_are_not_interchangeable(self):
        access = issue_access_token("user-1", "admin")
        refresh = issue_refresh_token("user-1", "family-1", "token-1")
        self.assertIs(verify_refresh_token(access).error, TokenError.INVALID_SIGNATURE)
        self.assertIs(verify_access_token(refresh).error, TokenError.INVALID_SIGNATURE)

    def test_wrong_type_under_right_secret_is_malformed(self):
        access = issue_access_token("user-1", "admin")
        result = verify_token(access, self.app.config["JWT_ACCESS_SECRET"], expected_type="refresh")
        self.assertIs(result.error, TokenError.MALFORMED)

    def test_garbage_is_malformed(self):
        for token in ("", "not-a-jwt", "a.b.c"):
            with self.subTest(token=token):
                self.assertIs(verify_refresh_token(token).error, TokenError.MALFORMED)

    def test_missing_exp_is_malformed(self):
        token = jwt.encode(
            {"sub": "user-1", "type": "refresh", "iss": self.app.config["JWT_ISSUER"], "iat": 0},
            self.app.config["JWT_REFRESH_SECRET"],
            algorithm="HS256",
        )
        self.assertIs(verify_refresh_token(token).error, TokenError.MALFORMED)

    def test_expired(self):
        token = issue_refresh_token("user-1", "family-1", "token-1", ttl=timedelta(seconds=-30))
        result = verify_refresh_token(token)
        self.assertFalse(result.ok)
        self.assertIs(result.error, TokenError.EXPIRED)
        self.assertIsNone(result.claims)


class PasswordHashingTestCase(unittest.TestCase):

    def test_hash_and_verify(self):
        pw_hash = hash_password("s3cret-pass")
        self.assertNotEqual(pw_hash, "s3cret-pass")
        self.assertTrue(verify_password("s3cret-pass", pw_hash))
        self.assertFalse(verify_password("wrong", pw_hash))

    def test_invalid_hash_is_rejected(self):
        self.assertFalse(verify_password("anything", "not-an-argon2-hash"))


if __name__ == "__main__":
    unittest.main()
