"""
Proxy Service: Configuration.

Defines environment-specific configuration classes for the idle-mmo API
proxy.  The upstream target is a fixed constant; everything operational
(listening port, upstream timeout, logging verbosity) can be overridden
through environment variables.  The ``get_config`` factory selects the
right class based on the ``FLASK_ENV`` environment variable (or an
explicit key).
"""

from __future__ import annotations

import os
from urllib.parse import ParseResult, urlparse

from proxy_app.errors import ConfigurationError

# The single upstream every admitted request is forwarded to.
IDLE_MMO_API_BASE = "https://api.idle-mmo.com"
DEFAULT_PORT = "8080"


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag such as ``1``/``true``/``yes`` from the environment."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def read_port(name: str, default: str = DEFAULT_PORT) -> int:
    """
    Read a TCP port number from the environment.

    Raises:
        ConfigurationError: If the value is not an integer in 0-65535.
    """
    raw = os.environ.get(name, "").strip() or default
    try:
        port = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer port, got {raw!r}") from exc
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"{name} must be between 0 and 65535, got {port}")
    return port


def read_timeout(name: str) -> float | None:
    """
    Read an optional timeout in seconds; unset means the transport default.

    Raises:
        ConfigurationError: If the value is not a positive number.
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if not timeout > 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return timeout


def parse_upstream_url(url: str) -> ParseResult:
    """
    Parse and validate the upstream base URL.

    Args:
        url: Absolute ``http`` or ``https`` URL of the upstream API.

    Returns:
        The parsed URL.

    Raises:
        ConfigurationError: If the URL has no http(s) scheme or no host.
    """
    try:
        parsed = urlparse(url)
        # Accessing .port validates it and raises ValueError when malformed.
        parsed.port
    except ValueError as exc:
        raise ConfigurationError(f"Failed to parse upstream URL {url!r}: {exc}") from exc

    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(
            f"Failed to parse upstream URL {url!r}: expected an absolute http(s) URL"
        )
    return parsed


class Config:
    """
    Base (shared) configuration for the proxy.

    All environment-specific classes inherit from ``Config`` so that
    common defaults only need to be stated once.
    """

    # Fixed at build time; not configurable at runtime.
    UPSTREAM_URL: str = IDLE_MMO_API_BASE

    PORT: int = read_port("PORT")

    # None leaves connect/read timeouts to the HTTP transport.
    PROXY_TIMEOUT: float | None = read_timeout("PROXY_TIMEOUT")

    # Dumps every header (Authorization included) to the log when enabled.
    VERBOSE_REQUEST_LOGGING: bool = _env_flag("PROXY_VERBOSE_LOGGING", False)

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()


class DevelopmentConfig(Config):
    """Development overrides: debug mode and header-level request logging."""

    DEBUG: bool = True
    TESTING: bool = False
    VERBOSE_REQUEST_LOGGING: bool = _env_flag("PROXY_VERBOSE_LOGGING", True)


class TestingConfig(Config):
    """
    Test-suite overrides.

    Outbound calls are replaced in tests, so the timeout only matters for
    tests that deliberately exercise it.
    """

    DEBUG: bool = True
    TESTING: bool = True
    PROXY_TIMEOUT: float | None = read_timeout("TEST_PROXY_TIMEOUT")
    VERBOSE_REQUEST_LOGGING: bool = False


class ProductionConfig(Config):
    """
    Production-hardened overrides.

    Header dumps stay off unless explicitly requested through
    ``PROXY_VERBOSE_LOGGING``.
    """

    DEBUG: bool = False
    TESTING: bool = False


# Lookup table mapping environment name strings to their config classes.
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Return the configuration class for the given environment.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When *None*, the ``FLASK_ENV``
            environment variable is consulted, falling back to
            ``"development"`` if unset.

    Returns:
        The ``Config`` subclass matching the requested environment,
        or ``DevelopmentConfig`` if the key is unrecognised.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
