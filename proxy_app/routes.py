"""
Proxy Routes.

A single catch-all route receives every inbound request and runs it
through the pipeline:

  1. **Preflight** -- ``OPTIONS`` is answered directly with the CORS headers.
  2. **Gatekeeper** -- ``authenticate`` rejects malformed credentials with
     ``AuthenticationError`` (401) before anything is sent upstream.
  3. **Director** -- ``direct_request`` rewrites the target to the upstream.
  4. **Forwarding** -- ``send_upstream`` makes one call; transport failures
     raise ``UpstreamUnavailableError`` (502).
  5. **Response Shaper** -- the upstream response is relayed with the CORS
     headers added.

The route lists the common methods.  Any other method (``PROPFIND``,
``PURGE``, ``CONNECT``, ...) fails routing with ``MethodNotAllowed``; the
app-wide 405 handler sends those requests through the same pipeline.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, request
from werkzeug.exceptions import MethodNotAllowed

from proxy_app.auth import authenticate
from proxy_app.errors import AuthenticationError, UpstreamUnavailableError
from proxy_app.proxy import (
    apply_cors_headers,
    direct_request,
    relay_response,
    send_upstream,
    shape_response,
)

logger = logging.getLogger(__name__)

proxy_bp = Blueprint("proxy", __name__)

PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


def _plain_text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def preflight_response() -> Response:
    """Answer a CORS preflight: 200, CORS headers, empty body."""
    return apply_cors_headers(Response(status=200))


def forward_request() -> Response:
    """
    Run the current request through the proxy pipeline.

    Returns:
        The preflight answer or the relayed upstream response.

    Raises:
        AuthenticationError: If the Authorization header is rejected.
        UpstreamUnavailableError: If the upstream could not be reached.
    """
    if request.method == "OPTIONS":
        return preflight_response()

    authenticate(request.headers.get("Authorization"), request.remote_addr)

    outbound = direct_request(
        request,
        current_app.config["UPSTREAM"],
        verbose=current_app.config.get("VERBOSE_REQUEST_LOGGING", False),
    )
    upstream_response = send_upstream(outbound, timeout=current_app.config.get("PROXY_TIMEOUT"))
    return shape_response(relay_response(upstream_response))


# =====================================================================
# Route Handlers
# =====================================================================


# provide_automatic_options=False keeps Flask from answering OPTIONS itself.
@proxy_bp.route(
    "/",
    defaults={"path": ""},
    methods=PROXIED_METHODS,
    provide_automatic_options=False,
)
@proxy_bp.route("/<path:path>", methods=PROXIED_METHODS, provide_automatic_options=False)
def proxy(path: str) -> Response:
    """
    Forward the current request to the upstream API.

    Args:
        path: Captured request path; routing only, the raw path is read
            from the request itself so it reaches the upstream unchanged.
    """
    return forward_request()


# =====================================================================
# Error Handlers
# =====================================================================


@proxy_bp.errorhandler(AuthenticationError)
def unauthorized(error: AuthenticationError) -> Response:
    """Return the plain-text 401 for a rejected Authorization header."""
    return apply_cors_headers(_plain_text(error.message, 401), origin_only=True)


@proxy_bp.errorhandler(UpstreamUnavailableError)
def bad_gateway(error: UpstreamUnavailableError) -> Response:
    """Log the transport failure and return a plain-text 502."""
    logger.error("=== PROXY ERROR ===")
    logger.error("Error: %s", error.cause)
    logger.error("Request: %s %s", request.method, request.url)
    logger.error("Host: %s", request.host)
    logger.error("Remote: %s", request.remote_addr)
    logger.error("=== END ERROR LOG ===")
    return apply_cors_headers(_plain_text("Bad Gateway", 502), origin_only=True)


# Routing errors never reach blueprint handlers, so this one is app-wide.
@proxy_bp.app_errorhandler(MethodNotAllowed)
def unlisted_method(_: MethodNotAllowed) -> Response:
    """Proxy a request whose method the route does not list."""
    try:
        return forward_request()
    except AuthenticationError as error:
        return unauthorized(error)
    except UpstreamUnavailableError as error:
        return bad_gateway(error)
