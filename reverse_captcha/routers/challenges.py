from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from reverse_captcha.config import Settings
from reverse_captcha.config import settings as default_settings
from reverse_captcha.middleware.rate_limit import limiter
from reverse_captcha.schemas.challenge import ChallengeStartResponse, SolveRequest, SolveResponse
from reverse_captcha.services.challenge_store import ChallengeStore
from reverse_captcha.services.stream_service import StreamDispatcher
from reverse_captcha.services.verification_service import FailureReason, SolutionVerifier

router = APIRouter()
logger = structlog.get_logger()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ChallengeStore:
    return request.app.state.store


def get_dispatcher(request: Request) -> StreamDispatcher:
    return request.app.state.dispatcher


def get_verifier(request: Request) -> SolutionVerifier:
    return request.app.state.verifier


def status_for(reason: FailureReason | None) -> int:
    """Unknown or spent tokens are 404; every other rejection is 400."""
    if reason is None:
        return 200
    if reason is FailureReason.INVALID_TOKEN:
        return 404
    return 400


@router.post("/start", response_model=ChallengeStartResponse)
@limiter.limit(default_settings.rate_limit_starts)
async def start_challenge(
    request: Request,
    store: ChallengeStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """
    Issue a new challenge.

    The client opens the stream URL, keeps a running total of the operations it
    receives, and posts that total to the solve URL.
    """
    challenge = store.create()

    logger.info("challenge_created", expires_at=challenge.expires_at)

    return ChallengeStartResponse(
        token=challenge.token,
        stream_url=request.url_for("open_stream", token=challenge.token).path,
        solve_url=request.url_for("submit_solution").path,
        ttl_ms=settings.total_ttl_ms,
        op_window_ms=settings.op_window_ms,
        ops_per_challenge=settings.ops_per_challenge,
    )


@router.get("/stream/{token}")
async def open_stream(
    token: str,
    dispatcher: StreamDispatcher = Depends(get_dispatcher),
):
    """Stream signed operations as server-sent events, then a done event."""
    stream = dispatcher.open(token)
    if stream is None:
        raise HTTPException(status_code=404, detail="Challenge not found")

    return StreamingResponse(
        dispatcher.run(stream),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.post("/solve", response_model=SolveResponse)
@limiter.limit(default_settings.rate_limit_solves)
async def submit_solution(
    request: Request,
    payload: Any = Body(None),
    verifier: SolutionVerifier = Depends(get_verifier),
):
    """Verify a reported running total. A challenge can be solved once."""
    # Non-object bodies carry no token and fail the first check like an empty one
    solution = SolveRequest()
    if isinstance(payload, dict):
        solution = SolveRequest.model_validate(payload)
    result = verifier.verify(
        token=solution.token,
        last_seq=solution.last_seq,
        total=solution.total,
        client_ts=solution.client_ts,
    )

    body = SolveResponse(
        ok=result.ok,
        reason=result.reason.value if result.reason else None,
        token=result.token,
    )
    return JSONResponse(
        status_code=status_for(result.reason),
        content=body.model_dump(by_alias=True, exclude_none=True),
    )
