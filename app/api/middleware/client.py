"""Request helpers shared by the middleware stages and the auth routes."""

from starlette.requests import HTTPConnection

UNKNOWN_CLIENT = "unknown"


def client_address(conn: HTTPConnection, trust_proxy_headers: bool = False) -> str:
    """
    Client address used as the throttle and rate-limit key.

    Forwarding headers are only honoured behind a trusted proxy; otherwise any client
    could pick its own key.
    """
    if trust_proxy_headers:
        forwarded_for = conn.headers.get("x-forwarded-for")
        if forwarded_for:
            # First entry is the original client; the rest is the proxy chain.
            return forwarded_for.split(",")[0].strip() or UNKNOWN_CLIENT
        real_ip = conn.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if conn.client and conn.client.host:
        return conn.client.host
    return UNKNOWN_CLIENT


def bearer_token(conn: HTTPConnection) -> str | None:
    """Token from ``Authorization: Bearer <token>``, or None."""
    auth_header = conn.headers.get("authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
