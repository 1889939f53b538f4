"""Tests for the challenge and operation models."""

import pytest

from reverse_captcha.models.challenge import Sign
from tests.test_utils import emit, make_operation


class TestChallenge:
    def test_append_tracks_last_seq(self, challenge):
        emit(challenge, [("+", 4), ("-", 3)], expires_at=0)

        assert challenge.last_seq == 2
        assert [op.seq for op in challenge.ops] == [1, 2]

    def test_append_rejects_gap(self, challenge):
        with pytest.raises(ValueError):
            challenge.append(make_operation(challenge, 2, Sign.PLUS, 1, 0))

    def test_append_rejects_duplicate(self, challenge):
        emit(challenge, [("+", 1)], expires_at=0)

        with pytest.raises(ValueError):
            challenge.append(make_operation(challenge, 1, Sign.PLUS, 1, 0))
        assert len(challenge.ops) == 1

    def test_running_total(self, challenge):
        emit(challenge, [("+", 4), ("-", 3), ("+", 7)], expires_at=0)

        assert challenge.running_total(0) == 0
        assert challenge.running_total(1) == 4
        assert challenge.running_total(2) == 1
        assert challenge.running_total(3) == 8

    def test_find_operation(self, challenge):
        emit(challenge, [("+", 4), ("-", 3)], expires_at=0)

        assert challenge.find_operation(2).value == 3
        assert challenge.find_operation(0) is None
        assert challenge.find_operation(3) is None

    def test_expiry_is_exclusive(self, challenge):
        assert not challenge.is_expired(challenge.expires_at - 1)
        assert challenge.is_expired(challenge.expires_at)


class TestOperation:
    def test_signed_value(self, challenge):
        assert make_operation(challenge, 1, Sign.PLUS, 5, 0).signed_value == 5
        assert make_operation(challenge, 1, Sign.MINUS, 5, 0).signed_value == -5

    def test_immutable(self, challenge):
        operation = make_operation(challenge, 1, Sign.PLUS, 5, 0)
        with pytest.raises(AttributeError):
            operation.value = 6
