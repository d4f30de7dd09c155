from __future__ import annotations

import unittest

from tests.base import AuthTestCase
from utils.security import verify_refresh_token


class AuthApiTestCase(AuthTestCase):

    def setUp(self):
        super().setUp()
        self.user = self.create_user("alice", role="admin")

    def _login_tokens(self, user_agent: str = "pytest") -> dict:
        res = self.login(user_agent=user_agent)
        self.assertEqual(res.status_code, 200)
        return res.get_json()

    def test_login_returns_tokens_and_user(self):
        data = self._login_tokens()
        self.assertTrue(data["accessToken"])
        self.assertTrue(data["refreshToken"])
        self.assertEqual(data["user"], {"id": self.user.id, "username": "alice", "role": "admin"})

        record = self.record_for(data["refreshToken"])
        self.assertEqual(record.user_id, self.user.id)
        self.assertEqual(record.user_agent, "pytest")

    def test_login_normalizes_username(self):
        res = self.login(username="  Alice ")
        self.assertEqual(res.status_code, 200)

    def test_login_with_bad_credentials(self):
        for username, password in (("alice", "wrong-password"), ("nobody", "Passw0rd!")):
            with self.subTest(username=username):
                res = self.login(username=username, password=password)
                self.assertEqual(res.status_code, 401)
                body = res.get_json()
                self.assertEqual(body["error"], "UNAUTHORIZED")
                self.assertEqual(body["message"], "Invalid credentials")

    def test_login_validation(self):
        res = self.client.post("/api/v1/auth/login", json={"username": "alice"})
        self.assertEqual(res.status_code, 422)
        self.assertIn("password", res.get_json()["details"])

    def test_refresh_requires_body(self):
        res = self.client.post("/api/v1/auth/refresh", json={})
        self.assertEqual(res.status_code, 422)

    def test_alice_scenario(self):
        login = self._login_tokens()
        r1 = login["refreshToken"]
        family = verify_refresh_token(r1).claims["family"]

        refreshed = self.refresh(r1)
        self.assertEqual(refreshed.status_code, 200)
        r2 = refreshed.get_json()["refreshToken"]
        self.assertNotEqual(r1, r2)
        self.assertEqual(verify_refresh_token(r2).claims["family"], family)
        self.assertEqual(self.record_for(r1).replaced_by_token_id, self.record_for(r2).id)

        replay = self.refresh(r1)
        self.assertEqual(replay.status_code, 401)
        self.assertTrue(all(r.revoked_at is not None for r in self.family_records(family)))

        self.assertEqual(self.refresh(r2).status_code, 401)

    def test_all_refresh_failures_look_the_same(self):
        login = self._login_tokens()
        r1 = login["refreshToken"]
        r2 = self.refresh(r1).get_json()["refreshToken"]

        reused = self.refresh(r1)
        revoked = self.refresh(r2)
        malformed = self.refresh("not-a-token")
        for res in (reused, revoked, malformed):
            self.assertEqual(res.status_code, 401)
        self.assertEqual(reused.get_json(), revoked.get_json())
        self.assertEqual(reused.get_json(), malformed.get_json())

    def test_logout_is_final(self):
        r1 = self._login_tokens()["refreshToken"]
        res = self.client.post("/api/v1/auth/logout", json={"refreshToken": r1})
        self.assertEqual(res.status_code, 200)
        self.assertIn("message", res.get_json())
        self.assertEqual(self.refresh(r1).status_code, 401)

        again = self.client.post("/api/v1/auth/logout", json={"refreshToken": r1})
        self.assertEqual(again.status_code, 200)

    def test_logout_with_unverifiable_token(self):
        res = self.client.post("/api/v1/auth/logout", json={"refreshToken": "garbage"})
        self.assertEqual(res.status_code, 401)

    def test_logout_all_is_final_across_devices(self):
        laptop = self._login_tokens(user_agent="laptop")
        phone = self._login_tokens(user_agent="phone")
        phone_rotated = self.refresh(phone["refreshToken"]).get_json()

        res = self.client.post(
            "/api/v1/auth/logout-all",
            headers={"Authorization": f"Bearer {laptop['accessToken']}"},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["revoked"], 3)

        for token in (laptop["refreshToken"], phone["refreshToken"], phone_rotated["refreshToken"]):
            self.assertEqual(self.refresh(token).status_code, 401)

    def test_logout_all_requires_access_token(self):
        self.assertEqual(self.client.post("/api/v1/auth/logout-all").status_code, 401)
        refresh_token = self._login_tokens()["refreshToken"]
        res = self.client.post(
            "/api/v1/auth/logout-all",
            headers={"Authorization": f"Bearer {refresh_token}"},
        )
        self.assertEqual(res.status_code, 401)

    def test_me(self):
        access = self._login_tokens()["accessToken"]
        res = self.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {access}"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["username"], "alice")

    def test_sessions_lists_usable_tokens(self):
        first = self._login_tokens(user_agent="laptop")
        second = self._login_tokens(user_agent="phone")
        self.refresh(second["refreshToken"], user_agent="phone")

        res = self.client.get("/api/v1/auth/sessions", headers={"Authorization": f"Bearer {first['accessToken']}"})
        self.assertEqual(res.status_code, 200)
        sessions = res.get_json()["data"]
        self.assertEqual(len(sessions), 2)
        self.assertEqual({s["userAgent"] for s in sessions}, {"laptop", "phone"})
        self.assertTrue(all("createdAt" in s and "ipAddress" in s for s in sessions))

    def test_forwarded_ip_is_recorded(self):
        res = self.client.post(
            "/api/v1/auth/login",
            json={"username": "alice", "password": "Passw0rd!"},
            headers={"X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
        )
        self.assertEqual(self.record_for(res.get_json()["refreshToken"]).ip_address, "198.51.100.4")

    def test_auth_routes_are_served_under_the_auth_prefix(self):
        rules = {rule.rule for rule in self.app.url_map.iter_rules()}
        for path in ("login", "refresh", "logout", "logout-all", "me", "sessions"):
            with self.subTest(path=path):
                self.assertIn(f"/api/v1/auth/{path}", rules)
                self.assertNotIn(f"/api/v1/{path}", rules)

    def test_repeated_failed_logins_are_rate_limited(self):
        for _ in range(5):
            self.assertEqual(self.login(password="wrong-password").status_code, 401)

        res = self.login()
        self.assertEqual(res.status_code, 429)
        body = res.get_json()
        self.assertEqual(body["error"], "TOO_MANY_REQUESTS")
        self.assertEqual(body["status"], 429)
        self.assertGreater(int(res.headers["Retry-After"]), 0)

        other_ip = self.client.post(
            "/api/v1/auth/login",
            json={"username": "alice", "password": "Passw0rd!"},
            headers={"X-Forwarded-For": "198.51.100.9"},
        )
        self.assertEqual(other_ip.status_code, 200)

    def test_successful_logins_do_not_count_against_the_limit(self):
        for _ in range(8):
            self.assertEqual(self.login().status_code, 200)
        self.assertEqual(self.login(password="wrong-password").status_code, 401)

    def test_health(self):
        res = self.client.get("/api/v1/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
