"""
Bearer-Token Gatekeeper for the Proxy.

Decides whether an inbound request may be forwarded to the upstream API.
The ``Authorization`` header is parsed into a ``(scheme, credential)`` pair
and the credential is then checked against a simple format policy: it must
start with ``idlemmo``.

The policy is a *format* check, not authentication.  Tokens are not
validated against an issuer and carry no expiry; anything shaped like
``Bearer idlemmo...`` is admitted.  The upstream remains responsible for
deciding whether the credential is actually valid.
"""

from __future__ import annotations

import enum
import logging
from typing import NamedTuple

from proxy_app.errors import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_SCHEME = "Bearer"
TOKEN_PREFIX = "idlemmo"

# Number of token characters written to the log on admission.
TOKEN_LOG_PREFIX_LENGTH = 10


class AuthDecision(enum.Enum):
    """Outcome of checking one request's Authorization header."""

    ADMITTED = "admitted"
    MISSING_HEADER = "missing Authorization header"
    MALFORMED_SCHEME = "invalid Authorization format"
    MALFORMED_TOKEN = "invalid token format"

    @property
    def admitted(self) -> bool:
        return self is AuthDecision.ADMITTED

    @property
    def message(self) -> str:
        """Body of the 401 response sent for this decision."""
        return _REJECTION_MESSAGES.get(self, "")


_REJECTION_MESSAGES = {
    AuthDecision.MISSING_HEADER: "Unauthorized: Missing Authorization header",
    AuthDecision.MALFORMED_SCHEME: "Unauthorized: Invalid Authorization format",
    AuthDecision.MALFORMED_TOKEN: "Unauthorized: Invalid token format",
}


class Credentials(NamedTuple):
    """An ``Authorization`` header split into its scheme and credential."""

    scheme: str
    credential: str


def parse_authorization(header_value: str | None) -> Credentials | None:
    """
    Split an ``Authorization`` header value on its first space.

    Returns ``None`` for an absent or empty header, or when there is no
    space separating scheme and credential.  Nothing is stripped: the
    scheme comparison is exact and the credential is everything after the
    first space.
    """
    if not header_value:
        return None
    scheme, separator, credential = header_value.partition(" ")
    if not separator:
        return None
    return Credentials(scheme=scheme, credential=credential)


def is_valid_token(token: str) -> bool:
    """Return True when ``token`` satisfies the ``idlemmo`` prefix policy."""
    return len(token) >= len(TOKEN_PREFIX) and token[: len(TOKEN_PREFIX)] == TOKEN_PREFIX


def evaluate_authorization(header_value: str | None) -> AuthDecision:
    """
    Compute the ``AuthDecision`` for an ``Authorization`` header value.

    Args:
        header_value: Raw header value, or ``None`` when the header is absent.

    Returns:
        ``AuthDecision.ADMITTED`` for ``Bearer idlemmo...``; otherwise the
        decision naming the first check that failed.
    """
    if not header_value:
        return AuthDecision.MISSING_HEADER

    credentials = parse_authorization(header_value)
    if credentials is None or credentials.scheme != BEARER_SCHEME:
        return AuthDecision.MALFORMED_SCHEME

    if not is_valid_token(credentials.credential):
        return AuthDecision.MALFORMED_TOKEN

    return AuthDecision.ADMITTED


def token_log_prefix(token: str) -> str:
    """Return the leading characters of ``token`` that are safe to log."""
    return token[:TOKEN_LOG_PREFIX_LENGTH]


def authenticate(header_value: str | None, remote_addr: str | None) -> str:
    """
    Gate a request on its ``Authorization`` header.

    Logs the outcome with the caller's address.  Admissions log only a
    truncated token prefix.

    Args:
        header_value: Raw ``Authorization`` header value, if any.
        remote_addr: Address of the caller, for the log line.

    Returns:
        The admitted bearer token.

    Raises:
        AuthenticationError: If the header is missing or malformed.
    """
    decision = evaluate_authorization(header_value)
    if not decision.admitted:
        logger.warning("Rejected request from %s: %s", remote_addr, decision.value)
        raise AuthenticationError(decision)

    token = header_value[len(BEARER_SCHEME) + 1 :]
    logger.info(
        "Authenticated request from %s with token: %s...",
        remote_addr,
        token_log_prefix(token),
    )
    return token
