"""Shared API dependencies: application context, sessions, rate limiting."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends, Request
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from kgr_leaderboard.core.context import AppContext
from kgr_leaderboard.core.errors import RateLimitedError, RateLimiterUnavailableError
from kgr_leaderboard.services.rate_limit import client_ip, rate_limit_key

logger = logging.getLogger(__name__)


def get_app_context(request: Request) -> AppContext:
    """Return the context created at startup.

    Raises:
        RuntimeError: If the application has not been started.
    """
    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("Application context is not initialised")
    return context


# Type alias for application context dependency
ContextDep = Annotated[AppContext, Depends(get_app_context)]


async def get_db(context: ContextDep) -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for dependency injection."""
    async with context.session_factory() as session:
        yield session


# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_db)]


async def get_json_body(request: Request) -> Any:
    """Return the parsed JSON body, or an empty mapping when it is absent or invalid."""
    try:
        return await request.json()
    except ValueError:
        return {}


JsonBodyDep = Annotated[Any, Depends(get_json_body)]


def get_client_ip(request: Request, context: ContextDep) -> str | None:
    """Resolve the caller's IP, honouring the configured proxy depth."""
    peer = request.client.host if request.client else None
    return client_ip(peer, request.headers, context.settings.trust_proxy_hops)


ClientIpDep = Annotated[str | None, Depends(get_client_ip)]


async def enforce_submit_rate_limit(
    context: ContextDep,
    body: JsonBodyDep,
    ip: ClientIpDep,
) -> None:
    """Reject the request before the pipeline runs when its key is over the limit.

    Raises:
        RateLimitedError: If the key exceeded its submissions for the window.
        RateLimiterUnavailableError: If the Redis counter store failed.
    """
    limiter = context.rate_limiter
    key = rate_limit_key(body, ip)
    try:
        decision = await limiter.hit(key)
    except RedisError as exc:
        logger.exception("Rate limit backend failed for %s", key)
        raise RateLimiterUnavailableError() from exc
    if not decision.allowed:
        raise RateLimitedError(
            limit=decision.limit,
            reset_seconds=decision.reset_seconds,
            retry_after=limiter.window_seconds,
        )
