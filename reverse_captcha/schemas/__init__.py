from reverse_captcha.schemas.challenge import (
    ChallengeStartResponse,
    OperationMessage,
    SolveRequest,
    SolveResponse,
)

__all__ = [
    "ChallengeStartResponse",
    "OperationMessage",
    "SolveRequest",
    "SolveResponse",
]
