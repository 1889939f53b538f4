from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from reverse_captcha.models.challenge import Operation


class CamelModel(BaseModel):
    """Wire models use camelCase keys to stay compatible with browser clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeStartResponse(CamelModel):
    token: str
    stream_url: str
    solve_url: str
    ttl_ms: int
    op_window_ms: int
    ops_per_challenge: int


class OperationMessage(CamelModel):
    seq: int
    sign: str
    value: int
    expires_at: int
    signature: str

    @classmethod
    def from_operation(cls, operation: Operation) -> "OperationMessage":
        return cls(
            seq=operation.seq,
            sign=operation.sign.value,
            value=operation.value,
            expires_at=operation.expires_at,
            signature=operation.signature,
        )


class SolveRequest(CamelModel):
    # Untyped: the verifier reports bad types as invalid-payload after the token check
    token: Any = None
    last_seq: Any = None
    total: Any = None
    client_ts: Any = None


class SolveResponse(CamelModel):
    ok: bool
    reason: str | None = None
    token: str | None = None
