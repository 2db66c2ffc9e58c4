"""Request rewriting and streaming relay to the upstream API.

The outbound request keeps the inbound method, raw path, raw query string,
body and end-to-end headers. Only Host and Authorization are replaced.
The upstream status, headers and raw body bytes are relayed back as they
arrive, without decoding or buffering.
"""

from collections.abc import AsyncIterator

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse

from src.logging.audit import RequestTimer, get_audit_logger
from src.proxy.upstream import UpstreamClient
from src.security.auth import bearer_header

# Connection-scoped headers (RFC 9110 §7.6.1) never copied across the proxy
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})


def _connection_scoped(headers: list[tuple[str, str]]) -> set[str]:
    """Hop-by-hop header names, including any listed in Connection."""
    names = set(HOP_BY_HOP_HEADERS)
    for name, value in headers:
        if name == "connection":
            names.update(token.strip().lower() for token in value.split(",") if token.strip())
    return names


def build_upstream_url(request: Request, host: str) -> httpx.URL:
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    # Some servers include the query in raw_path
    raw_path = raw_path.split(b"?", 1)[0]
    url = f"https://{host}{raw_path.decode('latin-1')}"

    query = request.scope.get("query_string", b"")
    if query:
        url += "?" + query.decode("latin-1")
    return httpx.URL(url)


def build_upstream_headers(request: Request, host: str, upstream_key: str) -> list[tuple[str, str]]:
    """Copy inbound headers, replacing Host and Authorization."""
    inbound = [
        (name.decode("latin-1").lower(), value.decode("latin-1"))
        for name, value in request.headers.raw
    ]
    skip = _connection_scoped(inbound) | {"host", "authorization"}

    headers = [("host", host)]
    headers.extend((name, value) for name, value in inbound if name not in skip)
    headers.append(("authorization", bearer_header(upstream_key)))
    return headers


def build_upstream_request(request: Request, host: str, upstream_key: str) -> httpx.Request:
    headers = build_upstream_headers(request, host, upstream_key)

    # Only send a body when the client sent one
    has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
    return httpx.Request(
        method=request.method,
        url=build_upstream_url(request, host),
        headers=headers,
        content=request.stream() if has_body else None,
    )


def build_downstream_headers(response: httpx.Response) -> list[tuple[bytes, bytes]]:
    raw = [(name.lower(), value) for name, value in response.headers.raw]
    skip = _connection_scoped([(n.decode("latin-1"), v.decode("latin-1")) for n, v in raw])
    return [(name, value) for name, value in raw if name.decode("latin-1") not in skip]


async def relay_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the raw upstream body and always close the upstream response.

    If the caller disconnects, the generator is closed and the finally
    block releases the upstream connection.
    """
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        get_audit_logger().error(
            "Upstream stream interrupted",
            extra={"audit_data": {"error_type": type(e).__name__, "error": str(e)}},
        )
        raise
    finally:
        await response.aclose()


async def forward_request(
    request: Request,
    upstream_key: str,
    upstream: UpstreamClient,
    host: str,
    substituted: bool = False,
) -> StreamingResponse:
    """Forward the request upstream and stream the response back verbatim."""
    outbound = build_upstream_request(request, host, upstream_key)

    with RequestTimer() as timer:
        response = await upstream.send(outbound)

    get_audit_logger().info(
        "Request proxied",
        extra={"audit_data": {
            "method": request.method,
            "path": request.url.path,
            "upstream_status": response.status_code,
            "latency_ms": timer.elapsed_ms,
            "substituted": substituted,
        }},
    )

    streaming = StreamingResponse(relay_body(response), status_code=response.status_code)
    # Set raw headers directly so repeated headers (e.g. Set-Cookie) survive
    streaming.raw_headers = build_downstream_headers(response)
    return streaming
