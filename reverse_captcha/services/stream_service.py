"""
Cadence-driven emission of signed operations to a subscribed client.

Each opened stream owns one asyncio task. The task is the only writer of its
challenge's operations; it hands each operation to the response generator
through a queue. Closing the response (client disconnect) cancels the task.
"""

import asyncio
from collections.abc import AsyncIterator
from enum import Enum

import structlog

from reverse_captcha.models.challenge import Challenge, Operation
from reverse_captcha.schemas.challenge import OperationMessage
from reverse_captcha.services.challenge_store import ChallengeStore
from reverse_captcha.services.operation_service import OperationGenerator

logger = structlog.get_logger()

DONE_EVENT = "event: done\ndata: done\n\n"

_END = object()


class StreamState(str, Enum):
    IDLE = "idle"
    EMITTING = "emitting"
    DONE = "done"
    CANCELLED = "cancelled"


def format_event(operation: Operation) -> str:
    """Render an operation as a server-sent event data frame."""
    message = OperationMessage.from_operation(operation)
    return f"data: {message.model_dump_json(by_alias=True)}\n\n"


class OperationStream:
    def __init__(
        self,
        challenge: Challenge,
        generator: OperationGenerator,
        interval_ms: int,
        count: int,
    ):
        self.challenge = challenge
        self.generator = generator
        self.interval_ms = interval_ms
        self.interval = interval_ms / 1000
        self.count = count
        self.state = StreamState.IDLE
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Schedule the emission task. Must be called from a running event loop."""
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Stream already {self.state.value}")
        self.state = StreamState.EMITTING
        self._task = asyncio.create_task(self._emit())
        logger.info("stream_started", count=self.count, interval_ms=self.interval_ms)

    def cancel(self) -> None:
        """Stop emitting. No-op once the stream reached a terminal state."""
        if self.state is not StreamState.EMITTING:
            return
        self.state = StreamState.CANCELLED
        if self._task is not None:
            self._task.cancel()
        logger.info("stream_cancelled", last_seq=self.challenge.last_seq)

    async def _emit(self) -> None:
        try:
            for seq in range(1, self.count + 1):
                await asyncio.sleep(self.interval)
                if self.challenge.solved:
                    break
                operation = self.generator.next_operation(self.challenge, seq)
                self.challenge.append(operation)
                self._queue.put_nowait(operation)

            await asyncio.sleep(self.interval)
            self.state = StreamState.DONE
            logger.info("stream_completed", last_seq=self.challenge.last_seq)
        except Exception:
            # Scoped to this challenge; the client sees the stream close without done
            logger.error("stream_failed", last_seq=self.challenge.last_seq, exc_info=True)
            self.state = StreamState.CANCELLED
        finally:
            self._queue.put_nowait(_END)

    async def events(self) -> AsyncIterator[str]:
        """Start emitting and yield server-sent event frames until done or closed."""
        if self.state is StreamState.IDLE:
            self.start()
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    if self.state is StreamState.DONE:
                        yield DONE_EVENT
                    return
                yield format_event(item)
        finally:
            self.cancel()


class StreamDispatcher:
    """Opens operation streams for challenges and tracks the ones still running."""

    def __init__(
        self,
        store: ChallengeStore,
        generator: OperationGenerator,
        interval_ms: int,
        ops_per_challenge: int,
    ):
        self.store = store
        self.generator = generator
        self.interval_ms = interval_ms
        self.ops_per_challenge = ops_per_challenge
        self._active: set[OperationStream] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def open(self, token: str) -> OperationStream | None:
        """
        Create a stream for an unsolved, never-streamed challenge.

        Returns None when the token cannot be streamed.
        """
        challenge = self.store.claim_stream(token)
        if challenge is None:
            return None

        stream = OperationStream(
            challenge,
            self.generator,
            interval_ms=self.interval_ms,
            count=self.ops_per_challenge,
        )
        self._active.add(stream)
        return stream

    async def run(self, stream: OperationStream) -> AsyncIterator[str]:
        """Yield the stream's frames, forgetting it once it finishes or is closed."""
        try:
            async for frame in stream.events():
                yield frame
        finally:
            # Closing this generator does not close the inner one
            stream.cancel()
            self._active.discard(stream)

    def cancel_all(self) -> None:
        for stream in list(self._active):
            stream.cancel()
        self._active.clear()
