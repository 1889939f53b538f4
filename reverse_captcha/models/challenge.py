import time
from dataclasses import dataclass, field
from enum import Enum


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


class Sign(str, Enum):
    PLUS = "+"
    MINUS = "-"


@dataclass(frozen=True)
class Operation:
    seq: int
    sign: Sign
    value: int
    expires_at: int
    signature: str

    @property
    def signed_value(self) -> int:
        return self.value if self.sign is Sign.PLUS else -self.value

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


@dataclass
class Challenge:
    token: str
    secret: str = field(repr=False)
    created_at: int
    expires_at: int
    solved: bool = False
    ops: list[Operation] = field(default_factory=list)
    last_seq: int = 0
    stream_claimed: bool = False

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def append(self, operation: Operation) -> None:
        """Record an emitted operation. Sequence numbers must stay contiguous."""
        if operation.seq != self.last_seq + 1:
            raise ValueError(
                f"Operation seq {operation.seq} does not follow last_seq {self.last_seq}"
            )
        # Publish the fully built operation before advancing last_seq
        self.ops.append(operation)
        self.last_seq = operation.seq

    def find_operation(self, seq: int) -> Operation | None:
        ops = self.ops
        if 1 <= seq <= len(ops):
            return ops[seq - 1]
        return None

    def running_total(self, last_seq: int) -> int:
        """Sum of signed values for every operation up to and including last_seq."""
        return sum(op.signed_value for op in list(self.ops) if op.seq <= last_seq)
