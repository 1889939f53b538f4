from slowapi import Limiter
from starlette.requests import Request


def get_client_key(request: Request) -> str:
    """Rate-limit key for a request: the originating client IP.

    Behind a reverse proxy the first X-Forwarded-For hop is the client.
    Direct connections fall back to the socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# Challenge issuance and solving are limited; streams are bounded by the one-stream-per-token rule
limiter = Limiter(key_func=get_client_key)
