"""API router initialization."""

# Hey future me, this aggregates the sub-routers. main.py mounts api_router under
# /api; the health router is mounted at the root so health checks hit /health.

from fastapi import APIRouter

from theset.api.routers import health, setlists, sync, votes

api_router = APIRouter()

api_router.include_router(sync.router, tags=["Sync"])
api_router.include_router(setlists.router, tags=["Setlists"])
api_router.include_router(votes.router, tags=["Votes"])

__all__ = ["api_router", "health", "setlists", "sync", "votes"]
