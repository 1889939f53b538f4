import hashlib
import hmac
import secrets
from collections.abc import Callable

from reverse_captcha.models.challenge import Challenge, Operation, Sign, now_ms

# Canonical field separator for signed payloads; existing clients depend on it
PAYLOAD_DELIMITER = ":"

VALUE_MIN = 1
VALUE_MAX = 9


def canonical_payload(token: str, seq: int, sign: Sign, value: int, expires_at: int) -> str:
    """Format: token:seq:sign:value:expiresAt"""
    return PAYLOAD_DELIMITER.join(
        [token, str(seq), sign.value, str(value), str(expires_at)]
    )


def sign_payload(secret: str, payload: str) -> str:
    """HMAC-SHA256 of payload keyed by the challenge secret, as lowercase hex."""
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_signature(token: str, secret: str, operation: Operation) -> bool:
    """
    Recompute an operation's signature and compare in constant time.

    Clients never receive the challenge secret, so they cannot call this. It is
    for the server side: auditing a challenge's recorded operations, or checking
    frames captured from a stream against the secret they were signed with.
    Solution verification does not need it, because the verifier reads its own
    stored operations rather than anything the client sends back.
    """
    payload = canonical_payload(
        token, operation.seq, operation.sign, operation.value, operation.expires_at
    )
    return hmac.compare_digest(sign_payload(secret, payload), operation.signature)


class OperationGenerator:
    """Builds signed arithmetic operations from the system CSPRNG."""

    def __init__(self, op_window_ms: int, clock: Callable[[], int] = now_ms):
        self.op_window_ms = op_window_ms
        self.clock = clock

    def next_operation(self, challenge: Challenge, seq: int) -> Operation:
        sign = secrets.choice((Sign.PLUS, Sign.MINUS))
        value = VALUE_MIN + secrets.randbelow(VALUE_MAX - VALUE_MIN + 1)
        expires_at = self.clock() + self.op_window_ms

        payload = canonical_payload(challenge.token, seq, sign, value, expires_at)

        return Operation(
            seq=seq,
            sign=sign,
            value=value,
            expires_at=expires_at,
            signature=sign_payload(challenge.secret, payload),
        )
