"""
Unit tests for the bearer-token gatekeeper.

Exercises header parsing, the ``idlemmo`` prefix predicate and the
``authenticate`` entry point without any HTTP plumbing.
"""

from __future__ import annotations

import logging

import pytest

from proxy_app.auth import (
    AuthDecision,
    Credentials,
    authenticate,
    evaluate_authorization,
    is_valid_token,
    parse_authorization,
    token_log_prefix,
)
from proxy_app.errors import AuthenticationError

pytestmark = pytest.mark.unit


def test_parse_authorization_splits_on_first_space():
    """Test that the scheme and credential are split at the first space only."""
    # Act
    credentials = parse_authorization("Bearer idlemmo with spaces")

    # Assert
    assert credentials == Credentials(scheme="Bearer", credential="idlemmo with spaces")


@pytest.mark.parametrize("header_value", [None, "", "Bearer"])
def test_parse_authorization_without_separator_returns_none(header_value):
    """Test that absent, empty, or scheme-only headers do not parse."""
    assert parse_authorization(header_value) is None


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("idlemmo", True),
        ("idlemmo123", True),
        ("idlemm", False),
        ("abc123", False),
        ("IDLEMMO123", False),
        ("xidlemmo", False),
        ("", False),
    ],
)
def test_is_valid_token_checks_prefix(token, expected):
    """Test the prefix policy at and around its seven-character boundary."""
    assert is_valid_token(token) is expected


@pytest.mark.parametrize(
    ("header_value", "expected"),
    [
        (None, AuthDecision.MISSING_HEADER),
        ("", AuthDecision.MISSING_HEADER),
        ("Token abc", AuthDecision.MALFORMED_SCHEME),
        ("bearer idlemmo123", AuthDecision.MALFORMED_SCHEME),
        ("Bearer", AuthDecision.MALFORMED_SCHEME),
        ("Bearer abc123", AuthDecision.MALFORMED_TOKEN),
        ("Bearer ", AuthDecision.MALFORMED_TOKEN),
        ("Bearer  idlemmo123", AuthDecision.MALFORMED_TOKEN),
        ("Bearer idlemmo", AuthDecision.ADMITTED),
        ("Bearer idlemmoXYZ", AuthDecision.ADMITTED),
    ],
)
def test_evaluate_authorization(header_value, expected):
    """Test that each header shape maps to the expected decision."""
    assert evaluate_authorization(header_value) is expected


def test_rejection_messages_match_response_bodies():
    """Test that each rejecting decision carries its 401 body text."""
    assert AuthDecision.MISSING_HEADER.message == "Unauthorized: Missing Authorization header"
    assert AuthDecision.MALFORMED_SCHEME.message == "Unauthorized: Invalid Authorization format"
    assert AuthDecision.MALFORMED_TOKEN.message == "Unauthorized: Invalid token format"
    assert AuthDecision.ADMITTED.admitted
    assert not AuthDecision.MALFORMED_TOKEN.admitted


def test_token_log_prefix_truncates_and_tolerates_short_tokens():
    """Test that only the first ten characters are ever logged."""
    assert token_log_prefix("idlemmo_secret_value") == "idlemmo_se"
    assert token_log_prefix("idlemmo") == "idlemmo"


def test_authenticate_returns_token_and_logs_prefix_only(caplog):
    """Test that admission logs the caller and a truncated token."""
    # Arrange
    secret = "idlemmo_super_secret_value"

    # Act
    with caplog.at_level(logging.INFO, logger="proxy_app.auth"):
        token = authenticate(f"Bearer {secret}", "10.0.0.7")

    # Assert
    assert token == secret
    assert "Authenticated request from 10.0.0.7 with token: idlemmo_su..." in caplog.text
    assert secret not in caplog.text


def test_authenticate_raises_with_decision_and_logs_reason(caplog):
    """Test that rejection raises AuthenticationError and logs the reason."""
    # Act
    with caplog.at_level(logging.INFO, logger="proxy_app.auth"):
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate("Token abc", "10.0.0.8")

    # Assert
    assert exc_info.value.decision is AuthDecision.MALFORMED_SCHEME
    assert exc_info.value.message == "Unauthorized: Invalid Authorization format"
    assert "Rejected request from 10.0.0.8: invalid Authorization format" in caplog.text
