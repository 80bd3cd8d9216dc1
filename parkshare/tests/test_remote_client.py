from __future__ import annotations

import unittest

import requests

from parkshare.app.api.client import RemoteDataClient
from parkshare.app.core.errors import BackendError
from parkshare.tests.fakes import FakeHttp, FakeResponse


def make_client(http: FakeHttp, access_token: str | None = None) -> RemoteDataClient:
    return RemoteDataClient("https://backend.test/", "anon-key", access_token=access_token, timeout=5, http=http)


class TestTableQuery(unittest.TestCase):
    def test_select_builds_postgrest_params(self) -> None:
        client = make_client(FakeHttp())
        q = (
            client.table("parking_spots")
            .select("*, categories(name, icon)")
            .eq("is_active", True)
            .order("created_at", ascending=False)
            .limit(20)
        )
        self.assertEqual(
            q.params(),
            [
                ("select", "*,categories(name,icon)"),
                ("is_active", "eq.true"),
                ("order", "created_at.desc"),
                ("limit", "20"),
            ],
        )

    def test_or_in_and_is_filters(self) -> None:
        client = make_client(FakeHttp())
        q = (
            client.table("reservations")
            .in_("status", ["pending", "confirmed"])
            .is_("deleted_at", None)
            .or_("title.ilike.*a*", "address.ilike.*a*")
        )
        self.assertEqual(
            q.params(),
            [
                ("status", "in.(pending,confirmed)"),
                ("deleted_at", "is.null"),
                ("or", "(title.ilike.*a*,address.ilike.*a*)"),
            ],
        )

    def test_execute_sends_auth_headers_and_returns_rows(self) -> None:
        http = FakeHttp(FakeResponse(200, [{"id": "s1"}]))
        rows = make_client(http, access_token="user-token").table("parking_spots").select().execute()

        self.assertEqual(rows, [{"id": "s1"}])
        call = http.calls[0]
        self.assertEqual(call["method"], "GET")
        self.assertEqual(call["url"], "https://backend.test/rest/v1/parking_spots")
        self.assertEqual(call["headers"]["apikey"], "anon-key")
        self.assertEqual(call["headers"]["Authorization"], "Bearer user-token")
        self.assertNotIn("Prefer", call["headers"])
        self.assertEqual(call["timeout"], 5)

    def test_anonymous_requests_use_api_key_as_bearer(self) -> None:
        http = FakeHttp(FakeResponse(200, []))
        make_client(http).table("categories").select().execute()
        self.assertEqual(http.calls[0]["headers"]["Authorization"], "Bearer anon-key")

    def test_writes_ask_for_representation(self) -> None:
        http = FakeHttp(FakeResponse(201, [{"id": "p1", "full_name": "Ada"}]), FakeResponse(204))
        client = make_client(http, access_token="t")

        rows = client.table("profiles").insert({"id": "p1", "full_name": "Ada"}).execute()
        self.assertEqual(rows, [{"id": "p1", "full_name": "Ada"}])
        self.assertEqual(http.calls[0]["method"], "POST")
        self.assertEqual(http.calls[0]["json"], {"id": "p1", "full_name": "Ada"})
        self.assertEqual(http.calls[0]["headers"]["Prefer"], "return=representation")

        self.assertEqual(client.table("profiles").delete().eq("id", "p1").execute(), [])
        self.assertEqual(http.calls[1]["method"], "DELETE")
        self.assertEqual(http.calls[1]["params"], [("id", "eq.p1")])

    def test_single_object_response_is_wrapped(self) -> None:
        http = FakeHttp(FakeResponse(200, {"id": "p1"}))
        rows = make_client(http).table("profiles").update({"phone": None}).eq("id", "p1").execute()
        self.assertEqual(rows, [{"id": "p1"}])
        self.assertEqual(http.calls[0]["method"], "PATCH")


class TestRemoteDataClientErrors(unittest.TestCase):
    def test_http_error_carries_backend_message_and_code(self) -> None:
        http = FakeHttp(FakeResponse(400, {"message": "column does not exist", "code": "42703"}))
        with self.assertRaises(BackendError) as ctx:
            make_client(http).table("parking_spots").select().execute()
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "42703")
        self.assertEqual(ctx.exception.message, "column does not exist")
        self.assertFalse(ctx.exception.is_transport)

    def test_http_error_without_json_body(self) -> None:
        http = FakeHttp(FakeResponse(502, text="<html>Bad gateway</html>"))
        with self.assertRaises(BackendError) as ctx:
            make_client(http).rpc("get_user_stats")
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.message, "HTTP 502")

    def test_connection_failure_is_transport_error(self) -> None:
        http = FakeHttp(requests.ConnectionError("connection refused"))
        with self.assertRaises(BackendError) as ctx:
            make_client(http).rpc("verify_email_code", {"code_param": "123456"})
        self.assertTrue(ctx.exception.is_transport)
        self.assertIn("connection refused", ctx.exception.message)

    def test_invalid_json_on_success_raises(self) -> None:
        http = FakeHttp(FakeResponse(200, text="not json"))
        with self.assertRaises(BackendError):
            make_client(http).rpc("create_verification_code")

    def test_rpc_posts_params(self) -> None:
        http = FakeHttp(FakeResponse(200, "482913"))
        result = make_client(http).rpc("create_verification_code", {"user_email": "a@example.com"})
        self.assertEqual(result, "482913")
        self.assertEqual(http.calls[0]["method"], "POST")
        self.assertEqual(http.calls[0]["url"], "https://backend.test/rest/v1/rpc/create_verification_code")
        self.assertEqual(http.calls[0]["json"], {"user_email": "a@example.com"})

    def test_with_access_token_shares_transport(self) -> None:
        http = FakeHttp()
        client = make_client(http)
        bound = client.with_access_token("abc")
        self.assertIs(bound.http, http)
        self.assertEqual(bound.access_token, "abc")
        self.assertIsNone(client.access_token)
