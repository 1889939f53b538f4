import secrets
import threading
import uuid
from collections.abc import Callable

from reverse_captcha.models.challenge import Challenge, now_ms


class ChallengeStore:
    """
    In-memory registry of issued challenges, keyed by token.

    Owned by the application (created in the lifespan handler) rather than a
    module global. The lock only guards the map itself; each Challenge is
    mutated by its own emission task and by the verifier.
    """

    def __init__(
        self,
        ttl_ms: int,
        eviction_grace_ms: int = 0,
        clock: Callable[[], int] = now_ms,
    ):
        self.ttl_ms = ttl_ms
        self.eviction_grace_ms = eviction_grace_ms
        self.clock = clock
        self._challenges: dict[str, Challenge] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._challenges)

    def __contains__(self, token: object) -> bool:
        return token in self._challenges

    def create(self) -> Challenge:
        """Issue a new challenge with a fresh token and signing secret."""
        created_at = self.clock()
        with self._lock:
            token = str(uuid.uuid4())
            while token in self._challenges:
                token = str(uuid.uuid4())

            challenge = Challenge(
                token=token,
                secret=secrets.token_hex(32),
                created_at=created_at,
                expires_at=created_at + self.ttl_ms,
            )
            self._challenges[token] = challenge

        return challenge

    def get(self, token: object) -> Challenge | None:
        if not isinstance(token, str):
            return None
        return self._challenges.get(token)

    def claim_stream(self, token: str) -> Challenge | None:
        """
        Reserve a challenge for streaming.

        Returns None if the token is unknown, already solved, or was streamed
        before. A challenge has exactly one emission task over its lifetime.
        """
        with self._lock:
            challenge = self._challenges.get(token)
            if challenge is None or challenge.solved or challenge.stream_claimed:
                return None
            challenge.stream_claimed = True
            return challenge

    def mark_solved(self, token: str) -> bool:
        """Mark a challenge solved. Returns True only for the call that flipped it."""
        with self._lock:
            challenge = self._challenges.get(token)
            if challenge is None or challenge.solved:
                return False
            challenge.solved = True
            return True

    def evict(self) -> int:
        """Drop solved challenges and those expired past the grace period.

        Returns count of evicted challenges.
        """
        now = self.clock()
        with self._lock:
            stale = [
                token
                for token, challenge in self._challenges.items()
                if challenge.solved or now >= challenge.expires_at + self.eviction_grace_ms
            ]
            for token in stale:
                del self._challenges[token]
        return len(stale)
