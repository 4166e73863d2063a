"""
Reverse-Proxy Pipeline Stages.

The proxy handles each admitted request in three explicit steps, composed
by the catch-all view in ``proxy_app.routes``:

  * **Director** (``direct_request``) -- turns the inbound Flask request
    into an ``OutboundRequest`` aimed at the fixed upstream.  Only the
    scheme and authority change; method, path, raw query string, headers
    (``Authorization`` included) and body pass through.
  * **Forwarding** (``send_upstream``) -- performs exactly one HTTP call.
    Any transport failure becomes ``UpstreamUnavailableError``; there are
    no retries.
  * **Response Shaper** (``relay_response`` + ``shape_response``) -- copies
    the upstream status, headers and undecoded body bytes into a Flask
    ``Response`` and injects the CORS headers.

Hop-by-hop headers (RFC 7230 §6.1) describe a single transport connection
and are dropped in both directions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import ParseResult, quote

import requests
from flask import Request, Response

from proxy_app.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

# =====================================================================
# Constants
# =====================================================================

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, User-Agent",
}

RATE_LIMIT_HEADERS = (
    ("X-RateLimit-Limit", "Rate Limit"),
    ("X-RateLimit-Remaining", "Rate Remaining"),
)

STREAM_CHUNK_SIZE = 64 * 1024

# Characters left unescaped when a path has to be rebuilt from PATH_INFO.
_PATH_SAFE_CHARS = "/:@!$&'()*+,;=-._~"

# Raw targets keep their existing escapes; only bytes that may not appear
# on a request line are percent-encoded.
_RAW_PATH_SAFE_CHARS = _PATH_SAFE_CHARS + "%"
_RAW_QUERY_SAFE_CHARS = _RAW_PATH_SAFE_CHARS + "?"


@dataclass
class OutboundRequest:
    """The rewritten request the Director hands to ``send_upstream``."""

    method: str
    url: str
    host: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


# =====================================================================
# Director
# =====================================================================


def _raw_path(inbound: Request) -> str:
    """
    Return the request path exactly as the caller sent it.

    WSGI servers decode ``PATH_INFO``; the undecoded form is available as
    ``RAW_URI`` / ``REQUEST_URI`` on most servers.  When neither is present
    the decoded path is re-quoted.
    """
    raw_uri = inbound.environ.get("RAW_URI") or inbound.environ.get("REQUEST_URI")
    if raw_uri:
        path = raw_uri.split("?", 1)[0]
        # Absolute-form targets (``http://host/path``) never start with "/".
        if not path.startswith("/") and "://" in path:
            path = "/" + path.split("://", 1)[1].partition("/")[2]
        # WSGI strings carry the raw request bytes as latin-1.
        return quote(path.encode("latin-1"), safe=_RAW_PATH_SAFE_CHARS) or "/"
    return quote(inbound.path, safe=_PATH_SAFE_CHARS)


def _outbound_headers(inbound: Request, upstream_host: str) -> dict[str, str]:
    """
    Build the header set sent upstream.

    Hop-by-hop headers, ``Host`` and ``Content-Length`` are dropped; ``Host``
    is replaced with the upstream authority and ``requests`` recomputes the
    length from the body.
    """
    headers: dict[str, str] = {}
    for name, value in inbound.headers.items():
        lower = name.lower()
        if lower in HOP_BY_HOP_HEADERS or lower == "host" or lower == "content-length":
            continue
        headers[name] = value

    headers["Host"] = upstream_host

    if inbound.remote_addr:
        prior = inbound.headers.get("X-Forwarded-For")
        headers["X-Forwarded-For"] = (
            f"{prior}, {inbound.remote_addr}" if prior else inbound.remote_addr
        )

    # Otherwise requests asks for gzip on the caller's behalf and the
    # undecoded body would arrive compressed at a caller that never asked.
    if "Accept-Encoding" not in inbound.headers:
        headers["Accept-Encoding"] = "identity"

    return headers


def _log_header_pairs(label: str, headers: Any) -> None:
    for name, value in headers.items():
        logger.info("%s %s: %s", label, name, value)


def direct_request(
    inbound: Request,
    upstream: ParseResult,
    *,
    verbose: bool = False,
) -> OutboundRequest:
    """
    Rewrite an admitted inbound request so it targets the upstream.

    Args:
        inbound: The current Flask request.
        upstream: The parsed upstream base URL.
        verbose: Also log every header before and after rewriting.  This
            writes the caller's ``Authorization`` value to the log.

    Returns:
        The ``OutboundRequest`` to forward.
    """
    if verbose:
        logger.info("=== INCOMING REQUEST ===")
        logger.info("Method: %s, URL: %s", inbound.method, inbound.url)
        logger.info("Host header: %s", inbound.host)
        logger.info("Remote address: %s", inbound.remote_addr)
        _log_header_pairs("Header", inbound.headers)

    path = upstream.path.rstrip("/") + _raw_path(inbound)
    url = f"{upstream.scheme}://{upstream.netloc}{path}"
    # Already-escaped sequences pass through; requests leaves them alone.
    query_string = quote(inbound.query_string, safe=_RAW_QUERY_SAFE_CHARS)
    if query_string:
        url = f"{url}?{query_string}"

    outbound = OutboundRequest(
        method=inbound.method,
        url=url,
        host=upstream.netloc,
        path=path,
        headers=_outbound_headers(inbound, upstream.netloc),
        body=inbound.get_data(),
    )

    logger.info("Proxying %s %s to %s", outbound.method, outbound.path, outbound.url)

    if verbose:
        logger.info("=== OUTGOING REQUEST ===")
        logger.info(
            "Host: %s | User-Agent: %s | Accept: %s",
            outbound.host,
            outbound.headers.get("User-Agent", ""),
            outbound.headers.get("Accept", ""),
        )
        logger.info("Authorization: %s", outbound.headers.get("Authorization", ""))
        _log_header_pairs("Outgoing", outbound.headers)
        logger.info("=== END REQUEST LOG ===")

    return outbound


# =====================================================================
# Forwarding
# =====================================================================


def send_upstream(outbound: OutboundRequest, timeout: float | None = None) -> requests.Response:
    """
    Perform the single upstream call for ``outbound``.

    ``stream=True`` defers reading the body so it can be relayed chunk by
    chunk; ``allow_redirects=False`` hands redirects back to the caller
    untouched.

    Raises:
        UpstreamUnavailableError: If no response could be obtained.
    """
    try:
        return requests.request(
            method=outbound.method,
            url=outbound.url,
            headers=outbound.headers,
            data=outbound.body,
            allow_redirects=False,
            stream=True,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise UpstreamUnavailableError(exc) from exc


# =====================================================================
# Response Shaper
# =====================================================================


def _stream_body(upstream_response: Any) -> Iterator[bytes]:
    """
    Yield the upstream body bytes exactly as received.

    The WSGI server closes this generator when the caller goes away, which
    in turn releases the upstream connection.
    """
    try:
        yield from upstream_response.raw.stream(STREAM_CHUNK_SIZE, decode_content=False)
    finally:
        upstream_response.close()


def _set_cookie_values(upstream_response: Any) -> list[str]:
    """
    Collect every ``Set-Cookie`` value the upstream sent.

    ``requests`` merges duplicate headers in ``Response.headers``; the raw
    urllib3 headers keep each cookie separate.
    """
    raw_headers = getattr(getattr(upstream_response, "raw", None), "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))
    if "Set-Cookie" in upstream_response.headers:
        return [upstream_response.headers["Set-Cookie"]]
    return []


def relay_response(upstream_response: Any) -> Response:
    """
    Wrap the upstream response in a Flask ``Response`` without altering it.

    Status code, reason phrase, end-to-end headers and body bytes are
    carried over.  Content-Length and Content-Encoding stay valid because
    the body is relayed undecoded.
    """
    status: int | str = upstream_response.status_code
    if upstream_response.reason:
        status = f"{upstream_response.status_code} {upstream_response.reason}"

    response = Response(_stream_body(upstream_response), status=status)
    # Only the upstream decides the Content-Type.
    response.headers.pop("Content-Type", None)

    for name, value in upstream_response.headers.items():
        lower = name.lower()
        if lower in HOP_BY_HOP_HEADERS or lower == "set-cookie":
            continue
        response.headers[name] = value

    for cookie_header in _set_cookie_values(upstream_response):
        response.headers.add("Set-Cookie", cookie_header)

    return response


def apply_cors_headers(response: Response, *, origin_only: bool = False) -> Response:
    """Set the CORS headers on ``response``, replacing any existing values."""
    if origin_only:
        response.headers["Access-Control-Allow-Origin"] = CORS_HEADERS["Access-Control-Allow-Origin"]
        return response
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


def shape_response(response: Response) -> Response:
    """
    Log the relayed response and inject the CORS headers.

    Status and body are never touched.
    """
    logger.info("=== RESPONSE FROM API ===")
    logger.info("Status: %d %s", response.status_code, response.status)
    logger.info("Content-Type: %s", response.headers.get("Content-Type", ""))
    logger.info("Content-Length: %s", response.headers.get("Content-Length", ""))

    for header, label in RATE_LIMIT_HEADERS:
        value = response.headers.get(header)
        if value:
            logger.info("%s: %s", label, value)

    apply_cors_headers(response)
    logger.info("=== END RESPONSE LOG ===")
    return response
