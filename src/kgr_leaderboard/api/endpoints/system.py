"""Liveness endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["system"])


@router.get("/")
async def root(request: Request) -> dict[str, object]:
    """Root endpoint with basic information about the API."""
    return {
        "ok": True,
        "name": request.app.title,
        "version": request.app.version,
    }


@router.get("/healthz")
async def health_check() -> dict[str, bool]:
    """Health check endpoint to verify the service is running."""
    return {"ok": True}
