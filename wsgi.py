"""WSGI entry point for the proxy service."""

from __future__ import annotations

import logging
import os
import socket
import sys

from flask import Flask
from werkzeug.serving import make_server

from proxy_app import create_app
from proxy_app.errors import ConfigurationError

logger = logging.getLogger(__name__)

LISTEN_HOST = "0.0.0.0"


def build_app() -> Flask:
    """Create the application, exiting with status 1 on a configuration error."""
    try:
        return create_app(os.getenv("FLASK_ENV", "production"))
    except ConfigurationError as exc:
        logger.critical("Failed to parse target URL: %s", exc)
        sys.exit(1)


app = build_app()


def bind_listener(host: str, port: int) -> socket.socket:
    """
    Open a listening TCP socket on ``host``:``port``.

    Werkzeug exits the process on its own when it cannot bind, so the
    socket is bound here and handed to the server already listening.

    Raises:
        OSError: If the address cannot be bound.
    """
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind((host, port))
        listener.listen(socket.SOMAXCONN)
    except OSError:
        listener.close()
        raise
    return listener


def main() -> None:
    """Serve ``app`` on ``PORT`` with one thread per request."""
    port = app.config["PORT"]
    try:
        listener = bind_listener(LISTEN_HOST, port)
    except OSError as exc:
        logger.critical("Server failed to start: %s", exc)
        sys.exit(1)

    logger.info("Starting proxy server on port %s", listener.getsockname()[1])
    logger.info("Forwarding requests to %s", app.config["UPSTREAM_URL"])
    try:
        server = make_server(LISTEN_HOST, port, app, threaded=True, fd=listener.fileno())
        server.serve_forever()
    finally:
        listener.close()


if __name__ == "__main__":
    main()
