"""Tests for the security pipeline: headers, CORS, size and user-agent checks, inspection, rate limits, audit."""

import json
import unittest
from types import SimpleNamespace
from typing import Annotated, Any
from unittest.mock import AsyncMock, patch

from fastapi import Body
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.requests import Request

from app.api.middleware.dependencies import random_delay, sanitize_path_params
from app.core.errors import ValidationError
from app.core.headers import SECURITY_HEADERS
from app.models import UserRole
from tests.support import STRONG_PASSWORD, USER_AGENT, ApiHarness, make_settings


class PipelineTestCase(unittest.TestCase):
    harness_settings: dict = {}

    def setUp(self) -> None:
        self.api = ApiHarness(**self.harness_settings)
        self.client = self.api.client

    def tearDown(self) -> None:
        self.api.close()

    def assertSecurityHeaders(self, response) -> None:
        for name, value in SECURITY_HEADERS.items():
            self.assertEqual(response.headers.get(name), value, name)
        self.assertNotIn("Cross-Origin-Embedder-Policy", response.headers)


class TestSecurityHeaders(PipelineTestCase):
    def test_on_success(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertSecurityHeaders(response)

    def test_on_rejection_by_earlier_stage(self) -> None:
        response = self.client.get("/health", headers={"User-Agent": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertSecurityHeaders(response)

    def test_on_not_found(self) -> None:
        response = self.client.get(self.api.url("/nope"))
        self.assertEqual(response.status_code, 404)
        self.assertSecurityHeaders(response)


class TestErrorBodies(PipelineTestCase):
    def test_unknown_route(self) -> None:
        response = self.client.get(self.api.url("/nope"))
        self.assertEqual(response.json(), {"success": False, "message": "Route not found"})

    def test_malformed_json_is_400(self) -> None:
        response = self.client.post(
            self.api.url("/auth/login"),
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid data")

    def test_unhandled_error_is_500(self) -> None:
        @self.api.app.get("/boom")
        def boom() -> None:
            raise RuntimeError("boom")

        client = TestClient(self.api.app, headers={"User-Agent": USER_AGENT}, raise_server_exceptions=False)
        with self.assertLogs("app.api.errors", level="ERROR"):
            response = client.get("/boom")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"success": False, "message": "boom"})
        self.assertSecurityHeaders(response)

    def test_database_outage_is_503(self) -> None:
        @self.api.app.get("/db-down")
        def db_down() -> None:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with self.assertLogs("app.api.errors", level="ERROR"):
            response = self.client.get("/db-down")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["message"], "Service temporarily unavailable")

    def test_error_body_is_documented(self) -> None:
        schema = self.client.get("/openapi.json").json()
        error_ref = {"$ref": "#/components/schemas/ErrorResponse"}
        self.assertIn("ErrorResponse", schema["components"]["schemas"])
        self.assertIn("FieldError", schema["components"]["schemas"])

        login = schema["paths"][self.api.url("/auth/login")]["post"]["responses"]
        self.assertEqual(login["429"]["content"]["application/json"]["schema"], error_ref)
        users = schema["paths"][self.api.url("/admin/users")]["get"]["responses"]
        self.assertEqual(users["403"]["content"]["application/json"]["schema"], error_ref)


class TestUserAgentCheck(PipelineTestCase):
    def test_short_user_agent_is_rejected(self) -> None:
        with self.assertLogs("app.security", level="WARNING") as logs:
            response = self.client.get("/api/info", headers={"User-Agent": "curl/8.0"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"success": False, "message": "Invalid request"})
        self.assertIn("Invalid user agent", logs.output[0])

    def test_empty_user_agent_is_rejected(self) -> None:
        response = self.client.get("/api/info", headers={"User-Agent": ""})
        self.assertEqual(response.status_code, 400)

    def test_plausible_user_agent_passes(self) -> None:
        response = self.client.get("/api/info")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], self.api.settings.APP_NAME)


class TestPayloadSize(PipelineTestCase):
    harness_settings = {"MAX_BODY_BYTES": 256}

    def test_declared_size_over_limit_is_413(self) -> None:
        body = {"name": "A" * 300, "email": "alice@example.com", "password": STRONG_PASSWORD}
        response = self.client.post(self.api.url("/auth/register"), json=body)
        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json()["message"], "Payload too large")
        self.assertSecurityHeaders(response)

    def test_small_body_passes(self) -> None:
        body = {"name": "Alice", "email": "alice@example.com", "password": STRONG_PASSWORD}
        response = self.client.post(self.api.url("/auth/register"), json=body)
        self.assertEqual(response.status_code, 201)


class TestRequestInspection(PipelineTestCase):
    def setUp(self) -> None:
        super().setUp()

        @self.api.app.post("/echo")
        def echo(payload: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
            return payload

        @self.api.app.get("/echo-query")
        def echo_query(q: str) -> dict[str, str]:
            return {"q": q}

    def assertInjectionRejected(self, response) -> None:
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"success": False, "message": "Invalid request detected"})

    def test_sql_in_body_is_rejected(self) -> None:
        with self.assertLogs("app.security", level="WARNING") as logs:
            response = self.client.post(
                self.api.url("/auth/login"),
                json={"email": "admin@example.com' OR '1'='1", "password": STRONG_PASSWORD},
            )
        self.assertInjectionRejected(response)
        self.assertIn("SQL injection attempt detected", logs.output[0])

    def test_sql_in_nested_body_is_rejected(self) -> None:
        response = self.client.post("/echo", json={"filters": [{"q": "x UNION SELECT password"}]})
        self.assertInjectionRejected(response)

    def test_classic_injection_never_reaches_handler(self) -> None:
        calls = []

        @self.api.app.post("/profile-note")
        def note(payload: Annotated[dict[str, Any], Body()]) -> dict[str, Any]:
            calls.append(payload)
            return payload

        response = self.client.post("/profile-note", json={"name": "Robert'); DROP TABLE users;--"})
        self.assertInjectionRejected(response)
        self.assertEqual(calls, [])

    def test_script_is_removed_before_handler(self) -> None:
        response = self.client.post("/echo", json={"bio": "<script>alert(1)</script>hello"})
        self.assertEqual(response.json(), {"bio": "hello"})

    def test_body_without_content_type_is_inspected(self) -> None:
        body = json.dumps({"name": "Robert'); DROP TABLE users;--"}).encode()
        response = self.client.post("/echo", content=body)
        self.assertInjectionRejected(response)

    def test_body_without_content_type_is_sanitized(self) -> None:
        body = json.dumps({"bio": "<script>alert(1)</script>hello"}).encode()
        response = self.client.post("/echo", content=body)
        self.assertEqual(response.json(), {"bio": "hello"})

    def test_sql_in_query_is_rejected(self) -> None:
        response = self.client.get("/echo-query", params={"q": "1; DROP TABLE users"})
        self.assertInjectionRejected(response)

    def test_sql_in_path_is_rejected(self) -> None:
        response = self.client.get(self.api.url("/admin/users/1%27%20OR%201=1"))
        self.assertInjectionRejected(response)

    def test_markup_is_stripped_from_body(self) -> None:
        response = self.client.post(
            "/echo",
            json={"comment": "<script>steal()</script>Hello <b>there</b>", "count": 3, "tags": ["<i>a</i>"]},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"comment": "Hello there", "count": 3, "tags": ["a"]})

    def test_markup_is_stripped_from_query(self) -> None:
        response = self.client.get("/echo-query", params={"q": "<b>bold</b> move"})
        self.assertEqual(response.json(), {"q": "bold move"})

    def test_exempt_fields_are_untouched(self) -> None:
        body = {"password": "<b>It's#1</b>", "name": "<b>Al</b>"}
        response = self.client.post("/echo", json=body)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"password": "<b>It's#1</b>", "name": "Al"})

    def test_apostrophe_in_plain_field_is_rejected(self) -> None:
        response = self.client.post("/echo", json={"name": "Dana O'Brien"})
        self.assertInjectionRejected(response)

    def test_clean_request_passes_unchanged(self) -> None:
        response = self.client.post("/echo", json={"name": "Alice", "amount": 12.5})
        self.assertEqual(response.json(), {"name": "Alice", "amount": 12.5})


class TestCors(PipelineTestCase):
    def _preflight(self, origin: str):
        return self.client.options(
            self.api.url("/auth/login"),
            headers={
                "Origin": origin,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type, Authorization",
            },
        )

    def test_allowed_origin(self) -> None:
        response = self._preflight("http://localhost:3000")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "http://localhost:3000")
        self.assertEqual(response.headers["access-control-allow-credentials"], "true")
        self.assertEqual(response.headers["access-control-max-age"], "86400")
        self.assertIn("PATCH", response.headers["access-control-allow-methods"])

    def test_unknown_origin_gets_no_grant(self) -> None:
        response = self._preflight("https://evil.example")
        self.assertNotIn("access-control-allow-origin", response.headers)

    def test_total_count_is_exposed(self) -> None:
        response = self.client.get("/api/info", headers={"Origin": "http://localhost:3000"})
        self.assertEqual(response.headers["access-control-allow-origin"], "http://localhost:3000")
        self.assertIn("X-Total-Count", response.headers["access-control-expose-headers"])

    def test_production_allows_frontend_url_only(self) -> None:
        settings = make_settings(
            APP_ENV="prod",
            FRONTEND_URL="https://app.finboard.example",
            JWT_ACCESS_SECRET="a" * 48,
            JWT_REFRESH_SECRET="b" * 48,
        )
        self.assertEqual(settings.allowed_origins, ["https://app.finboard.example"])


class TestRateLimits(PipelineTestCase):
    harness_settings = {"RATE_LIMIT_MAX": 3}

    def test_general_limit(self) -> None:
        for remaining in ("2", "1", "0"):
            response = self.client.get("/api/info")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.headers["X-RateLimit-Limit"], "3")
            self.assertEqual(response.headers["X-RateLimit-Remaining"], remaining)

        with self.assertLogs("app.security", level="WARNING"):
            response = self.client.get("/api/info")
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["message"], "Too many requests from this IP. Try again later.")
        self.assertGreater(int(response.headers["Retry-After"]), 0)
        self.assertSecurityHeaders(response)

    def test_health_and_root_are_not_limited(self) -> None:
        for _ in range(6):
            self.assertEqual(self.client.get("/health").status_code, 200)
            self.assertEqual(self.client.get("/").status_code, 200)
        self.assertEqual(self.client.get("/api/info").status_code, 200)

    def test_limits_are_per_app_instance(self) -> None:
        for _ in range(3):
            self.client.get("/api/info")
        other = ApiHarness(**self.harness_settings)
        try:
            self.assertEqual(other.client.get("/api/info").status_code, 200)
        finally:
            other.close()

    def test_disabled(self) -> None:
        api = ApiHarness(RATE_LIMIT_MAX=1, RATE_LIMIT_ENABLED=False)
        try:
            for _ in range(3):
                response = api.client.get("/api/info")
                self.assertEqual(response.status_code, 200)
                self.assertNotIn("X-RateLimit-Limit", response.headers)
        finally:
            api.close()


class TestSecurityAudit(PipelineTestCase):
    def test_suspicious_user_agent_is_logged_not_blocked(self) -> None:
        with self.assertLogs("app.security", level="WARNING") as logs:
            response = self.client.get("/health", headers={"User-Agent": "sqlmap/1.7 (https://sqlmap.org)"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Suspicious user agent", logs.output[0])

    def test_admin_path_without_admin_token_is_logged(self) -> None:
        with self.assertLogs("app.security", level="WARNING") as logs:
            response = self.client.get(self.api.url("/admin/users"))
        self.assertEqual(response.status_code, 401)
        self.assertIn("Unauthorized admin access attempt", logs.output[0])

    def test_admin_path_with_user_token_is_logged(self) -> None:
        self.api.add_user()
        session = self.api.login()
        with self.assertLogs("app.security", level="WARNING") as logs:
            response = self.client.get(self.api.url("/admin/users"), headers=self.api.bearer(session["accessToken"]))
        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("Unauthorized admin access attempt" in line for line in logs.output))

    def test_admin_token_is_not_logged(self) -> None:
        self.api.add_user(email="root@example.com", role=UserRole.ADMIN)
        session = self.api.login(email="root@example.com")
        with self.assertNoLogs("app.security", level="WARNING"):
            response = self.client.get(self.api.url("/admin/users"), headers=self.api.bearer(session["accessToken"]))
        self.assertEqual(response.status_code, 200)


def _request(settings, path_params: dict[str, Any] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("10.0.0.7", 50000),
        "path": "/api/v1/admin/users/7",
        "query_string": b"",
        "headers": [(b"user-agent", USER_AGENT.encode())],
        "path_params": path_params or {},
        "app": SimpleNamespace(state=SimpleNamespace(settings=settings)),
    }
    return Request(scope)


class TestRandomDelay(unittest.IsolatedAsyncioTestCase):
    async def test_sleeps_within_configured_range(self) -> None:
        settings = make_settings(TIMING_DELAY_ENABLED=True, LOGIN_DELAY_MS=(300, 1000))
        sleep = AsyncMock()
        with patch("app.api.middleware.dependencies.asyncio.sleep", sleep):
            await random_delay("LOGIN_DELAY_MS")(_request(settings))
        sleep.assert_awaited_once()
        seconds = sleep.await_args.args[0]
        self.assertGreaterEqual(seconds, 0.3)
        self.assertLessEqual(seconds, 1.0)

    async def test_disabled(self) -> None:
        settings = make_settings(TIMING_DELAY_ENABLED=False)
        sleep = AsyncMock()
        with patch("app.api.middleware.dependencies.asyncio.sleep", sleep):
            await random_delay("LOGIN_DELAY_MS")(_request(settings))
        sleep.assert_not_awaited()


class TestSanitizePathParams(unittest.IsolatedAsyncioTestCase):
    async def test_markup_is_stripped(self) -> None:
        request = _request(make_settings(), {"slug": "<b>report</b>", "user_id": 7})
        await sanitize_path_params(request)
        self.assertEqual(request.scope["path_params"], {"slug": "report", "user_id": 7})

    async def test_sql_pattern_is_rejected(self) -> None:
        request = _request(make_settings(), {"slug": "1 UNION SELECT email"})
        with self.assertLogs("app.security", level="WARNING"):
            with self.assertRaises(ValidationError) as ctx:
                await sanitize_path_params(request)
        self.assertEqual(ctx.exception.message, "Invalid request detected")


if __name__ == "__main__":
    unittest.main()
