# src/kgr_leaderboard/main.py
"""Main entry point for the KGR leaderboard application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from kgr_leaderboard import __version__
from kgr_leaderboard.api.endpoints import scores_router, system_router
from kgr_leaderboard.core.context import AppContext
from kgr_leaderboard.core.errors import RateLimitedError, SubmissionError
from kgr_leaderboard.core.log_config import configure_logging
from kgr_leaderboard.core.settings import Settings, get_settings
from kgr_leaderboard.db.session import create_tables
from kgr_leaderboard.schemas import RateLimitedResponse

logger = logging.getLogger(__name__)


async def handle_submission_error(request: Request, exc: SubmissionError) -> Response:
    """Render submission rejections as plain text, rate limiting as JSON."""
    if isinstance(exc, RateLimitedError):
        body = RateLimitedResponse(message=exc.message)
        return JSONResponse(
            body.model_dump(),
            status_code=exc.status_code,
            headers=exc.headers(),
        )
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    The context (database engine, ledger client, rate limiter) is created on
    startup and closed on shutdown; tests may set ``app.state.context``
    themselves instead.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Payment-verified global leaderboard for KALE game scores",
        version=__version__,
    )
    app.state.settings = settings
    app.state.context = None

    # An empty allow-list leaves CORS open to any origin.
    origins = settings.cors_origin_list or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SubmissionError, handle_submission_error)

    app.include_router(system_router)
    app.include_router(scores_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging(settings.log_level)
        if app.state.context is None:
            context = AppContext.build(settings)
            try:
                await create_tables(context.engine)
            except Exception:
                logger.exception("Failed to init DB")
                await context.close()
                raise
            app.state.context = context
        logger.info("%s ready on :%d", settings.app_name, settings.port)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        context: AppContext | None = getattr(app.state, "context", None)
        if context is not None:
            await context.close()
            app.state.context = None

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "kgr_leaderboard.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        proxy_headers=False,
    )
