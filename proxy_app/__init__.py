"""
Proxy Service: Application Factory.

This module provides the Flask application factory for the idle-mmo API
proxy.  The proxy is a single entry-point for browser and extension
traffic: it checks the bearer token, forwards the request to
``api.idle-mmo.com`` and relays the response with CORS headers attached.
"""

from __future__ import annotations

import logging

from flask import Flask

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(config_name: str | None = None) -> Flask:
    """
    Construct and configure the proxy Flask application.

    The upstream URL is parsed here, once, and stored as
    ``app.config["UPSTREAM"]``; request handlers only ever read it.

    Args:
        config_name: Optional environment key ("development", "testing",
            "production").  When *None*, the FLASK_ENV environment
            variable is consulted, defaulting to "development".

    Returns:
        A fully-configured Flask application with the proxy blueprint
        registered.

    Raises:
        ConfigurationError: If the upstream URL cannot be parsed.
    """
    # config imports proxy_app.errors, so it is loaded after this package.
    from config import get_config, parse_upstream_url

    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    logging.getLogger().setLevel(app.config["LOG_LEVEL"])

    app.config["UPSTREAM"] = parse_upstream_url(app.config["UPSTREAM_URL"])

    logger.info("Creating proxy app with config: %s", config_class.__name__)
    logger.info("Forwarding requests to %s", app.config["UPSTREAM_URL"])

    from proxy_app.routes import proxy_bp

    app.register_blueprint(proxy_bp)
    return app
