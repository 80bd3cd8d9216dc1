from __future__ import annotations

import sqlite3
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

import jwt
import requests

from parkshare.app.api.auth import IdentityClient
from parkshare.app.core.config import Settings
from parkshare.app.core.errors import AuthError
from parkshare.app.core.security import generate_fernet_key
from parkshare.app.db.models import AuthSession
from parkshare.app.db.sessions import SESSION_KEY, SQLiteSessionStore
from parkshare.tests.fakes import FakeHttp, FakeResponse


SECRET = "test-signing-secret-that-is-long-enough-for-hs256"
CFG = Settings(backend_url="https://backend.test", backend_anon_key="anon", session_refresh_margin_seconds=60)


def token_payload(user_id: str = "user-1", email: str = "driver@example.com", ttl: int = 3600) -> dict:
    exp = int(time.time()) + ttl
    access = jwt.encode({"sub": user_id, "email": email, "exp": exp}, SECRET, algorithm="HS256")
    return {
        "access_token": access,
        "refresh_token": f"refresh-{user_id}",
        "token_type": "bearer",
        "expires_in": ttl,
        "user": {"id": user_id, "email": email},
    }


class TestAuthSession(unittest.TestCase):
    def test_expiry_falls_back_to_jwt_claim(self) -> None:
        payload = token_payload(ttl=120)
        payload.pop("user")
        session = AuthSession.from_token_response(payload)
        self.assertEqual(session.user_id, "user-1")
        self.assertEqual(session.email, "driver@example.com")
        self.assertTrue(session.expires_within(300))
        self.assertFalse(session.expires_within(10))

    def test_explicit_expires_at_wins(self) -> None:
        payload = token_payload()
        payload["expires_at"] = 1_700_000_000
        self.assertEqual(AuthSession.from_token_response(payload).expires_at, 1_700_000_000)


class TestSQLiteSessionStore(unittest.TestCase):
    def test_set_get_remove(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            store = SQLiteSessionStore(Path(td) / "db" / "session.sqlite3")
            self.assertIsNone(store.get_item("k"))
            store.set_item("k", "v1")
            store.set_item("k", "v2")
            self.assertEqual(store.get_item("k"), "v2")
            store.remove_item("k")
            self.assertIsNone(store.get_item("k"))

    def test_values_are_encrypted_at_rest_when_key_is_set(self) -> None:
        encrypted_cfg = Settings(session_encryption_key=generate_fernet_key())
        with tempfile.TemporaryDirectory() as td, mock.patch("parkshare.app.core.security.settings", encrypted_cfg):
            db_path = Path(td) / "session.sqlite3"
            store = SQLiteSessionStore(db_path)
            store.set_item(SESSION_KEY, '{"secret": "refresh-token"}')

            conn = sqlite3.connect(str(db_path))
            try:
                raw = conn.execute("SELECT value, encrypted FROM kv WHERE key = ?", (SESSION_KEY,)).fetchone()
            finally:
                conn.close()
            self.assertEqual(raw[1], 1)
            self.assertNotIn("refresh-token", raw[0])
            self.assertEqual(store.get_item(SESSION_KEY), '{"secret": "refresh-token"}')


class TestIdentityClient(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SQLiteSessionStore(Path(self._tmp.name) / "session.sqlite3")
        self.http = FakeHttp()
        self.identity = IdentityClient(self.store, CFG, http=self.http)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_sign_in_persists_session(self) -> None:
        self.http.queue(FakeResponse(200, token_payload()))
        session = self.identity.sign_in(" driver@example.com ", "hunter22")

        call = self.http.calls[0]
        self.assertEqual(call["url"], "https://backend.test/auth/v1/token?grant_type=password")
        self.assertEqual(call["json"], {"email": "driver@example.com", "password": "hunter22"})
        self.assertEqual(session.user_id, "user-1")
        self.assertEqual(self.identity.current_session(), session)

    def test_sign_in_validates_before_calling_backend(self) -> None:
        with self.assertRaises(ValueError):
            self.identity.sign_in("driver@example.com", "")
        with self.assertRaises(ValueError):
            self.identity.sign_in("not-an-email", "pw")
        self.assertEqual(self.http.calls, [])

    def test_rejected_credentials_raise_auth_error(self) -> None:
        self.http.queue(FakeResponse(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"}))
        with self.assertRaises(AuthError) as ctx:
            self.identity.sign_in("driver@example.com", "wrong")
        self.assertEqual(ctx.exception.message, "Invalid login credentials")
        self.assertIsNone(self.identity.current_session())

    def test_sign_up_creates_profile_row(self) -> None:
        self.http.queue(
            FakeResponse(200, token_payload(user_id="user-9", email="new@example.com")),
            FakeResponse(201, [{"id": "user-9"}]),
        )
        session = self.identity.sign_up("new@example.com", "pw123456", " Ada Lovelace ")

        signup, profile = self.http.calls
        self.assertEqual(signup["url"], "https://backend.test/auth/v1/signup")
        self.assertEqual(signup["json"]["data"], {"full_name": "Ada Lovelace"})
        self.assertEqual(profile["url"], "https://backend.test/rest/v1/profiles")
        self.assertEqual(profile["json"], {"id": "user-9", "email": "new@example.com", "full_name": "Ada Lovelace"})
        self.assertEqual(profile["headers"]["Authorization"], f"Bearer {session.access_token}")

    def test_sign_up_pending_confirmation_raises(self) -> None:
        self.http.queue(FakeResponse(200, {"id": "user-9", "email": "new@example.com"}))
        with self.assertRaises(AuthError):
            self.identity.sign_up("new@example.com", "pw123456", "Ada")

    def test_expiring_session_is_refreshed(self) -> None:
        self.http.queue(FakeResponse(200, token_payload(ttl=30)))
        old = self.identity.sign_in("driver@example.com", "pw")

        self.http.queue(FakeResponse(200, token_payload(ttl=3600)))
        fresh = self.identity.current_session()

        refresh_call = self.http.calls[-1]
        self.assertEqual(refresh_call["url"], "https://backend.test/auth/v1/token?grant_type=refresh_token")
        self.assertEqual(refresh_call["json"], {"refresh_token": old.refresh_token})
        self.assertGreater(fresh.expires_at, old.expires_at)

    def test_rejected_refresh_signs_out(self) -> None:
        self.http.queue(FakeResponse(200, token_payload(ttl=30)))
        self.identity.sign_in("driver@example.com", "pw")

        self.http.queue(FakeResponse(401, {"message": "Invalid Refresh Token"}))
        self.assertIsNone(self.identity.current_session())
        self.assertIsNone(self.store.get_item(SESSION_KEY))

    def test_offline_refresh_keeps_stored_session(self) -> None:
        self.http.queue(FakeResponse(200, token_payload(ttl=30)))
        self.identity.sign_in("driver@example.com", "pw")

        self.http.queue(requests.ConnectionError("network unreachable"))
        self.assertIsNone(self.identity.current_session())
        self.assertIsNotNone(self.store.get_item(SESSION_KEY))

    def test_sign_out_clears_session_even_if_backend_fails(self) -> None:
        self.http.queue(FakeResponse(200, token_payload()))
        self.identity.sign_in("driver@example.com", "pw")

        self.http.queue(FakeResponse(500, {"message": "boom"}))
        self.identity.sign_out()
        self.assertIsNone(self.identity.current_session())
        self.assertEqual(self.http.calls[-1]["url"], "https://backend.test/auth/v1/logout")

    def test_profile_read_and_update(self) -> None:
        self.http.queue(FakeResponse(200, token_payload()))
        session = self.identity.sign_in("driver@example.com", "pw")
        row = {"id": "user-1", "email": "driver@example.com", "full_name": "Ada", "is_verified": False}

        self.http.queue(FakeResponse(200, [row]))
        profile = self.identity.get_profile(session)
        self.assertEqual(profile.full_name, "Ada")
        self.assertEqual(self.http.calls[-1]["params"], [("select", "*"), ("id", "eq.user-1"), ("limit", "1")])

        self.http.queue(FakeResponse(200, [{**row, "language": "tr"}]))
        updated = self.identity.update_profile(session, {"language": "tr"})
        self.assertEqual(updated.language, "tr")
        self.assertEqual(self.http.calls[-1]["method"], "PATCH")

        self.http.queue(FakeResponse(200, []))
        self.assertIsNone(self.identity.get_profile(session))
