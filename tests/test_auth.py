from __future__ import annotations

import os
import time
import unittest

from spaceshare import create_app
from spaceshare.extensions import db
from spaceshare.utils.jwt_utils import create_token, decode_token
from spaceshare.utils.rate_limit import reset_memory_windows


class AuthFlowTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri

    def setUp(self):
        reset_memory_windows()

    def _register(self, email: str, password: str = "Passw0rd!"):
        return self.client.post("/api/auth/register", json={"email": email, "password": password, "name": "Lan", "phone": "0901111222"})

    def test_register_login_me(self):
        email = f"lan-{time.time_ns()}@spaceshare.test"
        res = self._register(email)
        self.assertEqual(res.status_code, 201)
        body = res.get_json() or {}
        self.assertEqual(body["user"]["coin_balance"], 0)
        self.assertNotIn("password_hash", body["user"])

        res = self.client.post("/api/auth/login", json={"email": email.upper(), "password": "Passw0rd!"})
        self.assertEqual(res.status_code, 200)
        token = (res.get_json() or {}).get("token")

        res = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual((res.get_json() or {})["user"]["email"], email)

    def test_duplicate_email(self):
        email = f"dup-{time.time_ns()}@spaceshare.test"
        self.assertEqual(self._register(email).status_code, 201)
        self.assertEqual(self._register(email).status_code, 409)

    def test_register_validation(self):
        self.assertEqual(self._register("not-an-email").status_code, 400)
        self.assertEqual(self._register(f"short-{time.time_ns()}@spaceshare.test", password="123").status_code, 400)

    def test_bad_credentials(self):
        email = f"bad-{time.time_ns()}@spaceshare.test"
        self._register(email)
        res = self.client.post("/api/auth/login", json={"email": email, "password": "wrong-password"})
        self.assertEqual(res.status_code, 401)

    def test_login_is_rate_limited(self):
        statuses = [
            self.client.post("/api/auth/login", json={"email": "nobody@spaceshare.test", "password": "x"}).status_code
            for _ in range(11)
        ]
        self.assertEqual(statuses[:10], [401] * 10)
        self.assertEqual(statuses[10], 429)

    def test_tokens(self):
        token = create_token(42)
        self.assertEqual(decode_token(token)["sub"], "42")
        self.assertIsNone(decode_token(token + "x"))
        self.assertIsNone(decode_token(create_token(42, ttl_seconds=-120)))
        res = self.client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"})
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
