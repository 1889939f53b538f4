import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from reverse_captcha.models.challenge import now_ms
from reverse_captcha.services.challenge_store import ChallengeStore

logger = structlog.get_logger()


class FailureReason(str, Enum):
    INVALID_TOKEN = "invalid-token"
    CHALLENGE_EXPIRED = "challenge-expired"
    INVALID_PAYLOAD = "invalid-payload"
    MISSING_SEQ = "missing-seq"
    TOTAL_MISMATCH = "total-mismatch"
    LATENCY = "latency"
    WINDOW_EXPIRED = "window-expired"


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    reason: FailureReason | None = None
    token: str | None = None


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_int(value: object) -> int | None:
    """Integer value of a JSON number with no fractional part, so 8.0 reads as 8."""
    if _is_int(value):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _is_timestamp(value: object) -> bool:
    if value is None or _is_int(value):
        return True
    return isinstance(value, float) and math.isfinite(value)


class SolutionVerifier:
    def __init__(
        self,
        store: ChallengeStore,
        op_window_ms: int,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.op_window_ms = op_window_ms
        self.clock = clock

    def verify(
        self,
        token: object,
        last_seq: object,
        total: object,
        client_ts: object = None,
    ) -> VerificationResult:
        """
        Check a submitted running total against the challenge's emitted operations.

        Checks run in a fixed order and stop at the first failure:
        token, challenge expiry, payload shape, sequence, total, client latency,
        operation window. On success the challenge is marked solved.
        """
        challenge = self.store.get(token)
        if challenge is None or challenge.solved:
            return self._reject(FailureReason.INVALID_TOKEN)

        now = self.clock()

        if challenge.is_expired(now):
            return self._reject(FailureReason.CHALLENGE_EXPIRED)

        last_seq = _as_int(last_seq)
        total = _as_int(total)
        if last_seq is None or total is None or not _is_timestamp(client_ts):
            return self._reject(FailureReason.INVALID_PAYLOAD)

        last_op = challenge.find_operation(last_seq)
        if last_op is None:
            return self._reject(FailureReason.MISSING_SEQ, last_seq=last_seq)

        if challenge.running_total(last_seq) != total:
            return self._reject(FailureReason.TOTAL_MISMATCH, last_seq=last_seq)

        if client_ts is not None and abs(now - client_ts) > self.op_window_ms:
            return self._reject(FailureReason.LATENCY, skew_ms=now - client_ts)

        if last_op.is_expired(now):
            return self._reject(FailureReason.WINDOW_EXPIRED, last_seq=last_seq)

        # A concurrent solve may have won between the first check and here
        if not self.store.mark_solved(challenge.token):
            return self._reject(FailureReason.INVALID_TOKEN)

        logger.info("challenge_solved", last_seq=last_seq, ops_emitted=challenge.last_seq)
        return VerificationResult(ok=True, token=challenge.token)

    @staticmethod
    def _reject(reason: FailureReason, **context) -> VerificationResult:
        logger.info("solution_rejected", reason=reason.value, **context)
        return VerificationResult(ok=False, reason=reason)
