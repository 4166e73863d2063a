"""Exceptions raised along the proxy pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxy_app.auth import AuthDecision


class ProxyError(Exception):
    """Base class for every error the proxy raises."""


class ConfigurationError(ProxyError):
    """Fatal startup problem: bad upstream URL or unusable listen port."""


class AuthenticationError(ProxyError):
    """
    The inbound request failed the Authorization header check.

    Carries the rejecting ``AuthDecision`` so the error handler can render
    the matching 401 message.
    """

    def __init__(self, decision: AuthDecision):
        super().__init__(decision.message)
        self.decision = decision

    @property
    def message(self) -> str:
        return self.decision.message


class UpstreamUnavailableError(ProxyError):
    """No response could be obtained from the upstream at all."""

    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause
