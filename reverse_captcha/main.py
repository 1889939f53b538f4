from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from reverse_captcha.config import Settings, settings
from reverse_captcha.logging_config import setup_logging
from reverse_captcha.middleware.logging import LoggingMiddleware
from reverse_captcha.middleware.rate_limit import limiter
from reverse_captcha.routers import challenges
from reverse_captcha.scheduler import shutdown_scheduler, start_scheduler
from reverse_captcha.services.challenge_store import ChallengeStore
from reverse_captcha.services.operation_service import OperationGenerator
from reverse_captcha.services.stream_service import StreamDispatcher
from reverse_captcha.services.verification_service import SolutionVerifier

setup_logging()


@dataclass
class Components:
    settings: Settings
    store: ChallengeStore
    dispatcher: StreamDispatcher
    verifier: SolutionVerifier


def build_components(config: Settings) -> Components:
    """Create the challenge store and the services that share it."""
    store = ChallengeStore(
        ttl_ms=config.total_ttl_ms,
        eviction_grace_ms=config.eviction_grace_ms,
    )
    generator = OperationGenerator(op_window_ms=config.op_window_ms)

    return Components(
        settings=config,
        store=store,
        dispatcher=StreamDispatcher(
            store,
            generator,
            interval_ms=config.stream_interval_ms,
            ops_per_challenge=config.ops_per_challenge,
        ),
        verifier=SolutionVerifier(store, op_window_ms=config.op_window_ms),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - build components, start/stop the sweeper."""
    components = build_components(settings)
    app.state.settings = components.settings
    app.state.store = components.store
    app.state.dispatcher = components.dispatcher
    app.state.verifier = components.verifier

    scheduler = start_scheduler(components.store, settings.sweep_interval_seconds)
    yield
    components.dispatcher.cancel_all()
    shutdown_scheduler(scheduler)


app = FastAPI(
    title="ReverseCaptcha",
    description="Streamed arithmetic challenges that prove a live client",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a generic 500 that still carries the request's correlation ID."""
    correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    headers = {"X-Correlation-ID": correlation_id} if correlation_id else None
    return JSONResponse(
        status_code=500, content={"detail": "Internal Server Error"}, headers=headers
    )


# Middleware (last added runs first)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(challenges.router, prefix="/captcha", tags=["captcha"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
