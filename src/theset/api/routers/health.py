"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from theset import __version__

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """200 when the database answers, 503 otherwise. Includes background runner stats."""
    checks: dict[str, Any] = {}
    healthy = True

    db = getattr(request.app.state, "db", None)
    if db is None:
        healthy = False
        checks["database"] = {"ok": False, "error": "not initialized"}
    else:
        try:
            async with db.session_scope() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = {"ok": True, "dialect": db.dialect_name}
        except SQLAlchemyError as e:
            healthy = False
            checks["database"] = {"ok": False, "error": str(e)}

    background = getattr(request.app.state, "background", None)
    if background is not None:
        checks["background"] = background.get_status()

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": __version__,
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": checks,
        },
    )
