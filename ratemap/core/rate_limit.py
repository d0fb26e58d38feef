"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests carrying a valid bearer token are keyed by user id, so a submitter
cannot dodge the rating limit by switching networks; everything else is
keyed by client IP.

Usage in routes:
    from fastapi import Request
    from ratemap.core.rate_limit import limiter

    @router.post("/some-endpoint")
    @limiter.limit(settings.rating_submit_limit)
    async def my_endpoint(request: Request, payload: MyRequest):
        ...
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ratemap.core.security import decode_access_token


def submitter_key(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token:
        identity = decode_access_token(token)
        if identity is not None:
            return f"user:{identity.user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=submitter_key)
