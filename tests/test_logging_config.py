"""Tests for the structlog redaction processor."""

from reverse_captcha.logging_config import REDACTED, drop_sensitive_keys


def test_sensitive_values_redacted():
    event = {
        "event": "challenge_created",
        "token": "3f2b8c1e-9a4d-4e7f-8b21-0c5d6e7f8a9b",
        "secret": "ab" * 32,
        "signature": "cd" * 32,
    }

    result = drop_sensitive_keys(None, "info", event)

    assert result["token"] == REDACTED
    assert result["secret"] == REDACTED
    assert result["signature"] == REDACTED
    assert result["event"] == "challenge_created"


def test_other_keys_untouched():
    event = {"event": "solution_rejected", "reason": "total-mismatch", "last_seq": 3}

    assert drop_sensitive_keys(None, "info", dict(event)) == event
