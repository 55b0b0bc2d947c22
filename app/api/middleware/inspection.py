"""Request inspection: markup sanitization and the SQL-injection heuristic.

Runs as a plain ASGI middleware because it has to replace the request body. The
JSON body (declared as JSON, or sent without a Content-Type) and query parameters
are scanned first; a hit rejects the request. Otherwise
downstream receives a sanitized copy of both, with ``content-length`` adjusted.
"""

import json
from collections.abc import Collection
from typing import Any
from urllib.parse import parse_qsl, unquote, urlencode

from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.errors import error_response
from app.api.middleware.client import client_address
from app.core.errors import PayloadTooLargeError
from app.core.logging_config import get_security_logger
from app.core.sanitize import contains_sql_injection, is_sql_injection, sanitize_value, strip_markup

security_logger = get_security_logger()

INJECTION_DETECTED = "Invalid request detected"


class _BodyTooLarge(Exception):
    pass


def _may_be_json(headers: Headers) -> bool:
    # A body without Content-Type may still be parsed as JSON downstream.
    content_type = headers.get("content-type")
    if content_type is None:
        return True
    return content_type.split(";")[0].strip().lower().endswith("json")


async def _read_body(receive: Receive, limit: int) -> bytes:
    chunks: list[bytes] = []
    size = 0
    more_body = True
    while more_body:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunk = message.get("body", b"")
        size += len(chunk)
        if size > limit:
            raise _BodyTooLarge()
        chunks.append(chunk)
        more_body = message.get("more_body", False)
    return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def receive_replayed() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return receive_replayed


class RequestInspectionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        *,
        exempt_fields: Collection[str] = (),
        max_body_bytes: int,
        trust_proxy_headers: bool = False,
    ) -> None:
        self.app = app
        self._exempt = frozenset(exempt_fields)
        self._max_body_bytes = max_body_bytes
        self._trust_proxy_headers = trust_proxy_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_pairs = parse_qsl(scope.get("query_string", b"").decode("latin-1"), keep_blank_values=True)
        path_segments = [unquote(segment) for segment in scope["path"].split("/") if segment]
        scanned = [value for _, value in query_pairs] + path_segments
        if any(is_sql_injection(value) for value in scanned):
            await self._reject(scope, receive, send)
            return

        scope = dict(scope)
        sanitized_pairs = [(key, strip_markup(value)) for key, value in query_pairs]
        if sanitized_pairs != query_pairs:
            scope["query_string"] = urlencode(sanitized_pairs).encode("latin-1")

        headers = Headers(scope=scope)
        if not _may_be_json(headers):
            await self.app(scope, receive, send)
            return

        try:
            body = await _read_body(receive, self._max_body_bytes)
        except _BodyTooLarge:
            response = error_response(413, PayloadTooLargeError.default_message)
            await response(scope, receive, send)
            return

        payload: Any = None
        if body:
            try:
                payload = json.loads(body)
            except (UnicodeDecodeError, json.JSONDecodeError):
                # Left to request validation, which answers 400.
                payload = None

        if payload is not None:
            if contains_sql_injection(payload, self._exempt):
                await self._reject(scope, receive, send)
                return
            sanitized = sanitize_value(payload, self._exempt)
            if sanitized != payload:
                body = json.dumps(sanitized).encode("utf-8")
                MutableHeaders(scope=scope)["content-length"] = str(len(body))

        await self.app(scope, _replay(body, receive), send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        conn = HTTPConnection(scope)
        security_logger.warning(
            "SQL injection attempt detected: ip=%s url=%s user_agent=%r",
            client_address(conn, self._trust_proxy_headers),
            conn.url.path,
            conn.headers.get("user-agent", ""),
        )
        response = error_response(400, INJECTION_DETECTED)
        await response(scope, receive, send)
