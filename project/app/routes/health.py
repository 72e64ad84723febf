# app/routes/health.py

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.utils.database import utcnow

router = APIRouter()

VERSION = "1.0.0"
STARTED_AT = time.monotonic()


@router.get("/health", summary="Service status", responses={503: {"description": "Database unreachable"}})
async def health(request: Request, detailed: bool = False):
    """
    Базовый статус для балансировщиков. `detailed=true` также проверяет
    БД (SELECT 1 с задержкой) и кеш (PING).
    """
    body = {
        "status": "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "version": VERSION,
        "uptime": int(time.monotonic() - STARTED_AT),
    }
    if not detailed:
        return body

    checks = {}
    start = time.perf_counter()
    try:
        await request.state.db.execute(text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency": round((time.perf_counter() - start) * 1000, 1)}
    except Exception as e:
        await request.app.state.log.log_error("health", f"Database check failed: {e}")
        checks["database"] = {"status": "error", "message": "Database unreachable"}
        body["status"] = "degraded"

    cache = request.app.state.cache
    if not cache.enabled:
        checks["cache"] = {"status": "warning", "message": "Cache disabled"}
    elif await cache.is_available():
        checks["cache"] = {"status": "ok"}
    else:
        checks["cache"] = {"status": "warning", "message": "Cache unreachable, direct queries are used"}

    body["checks"] = checks
    status_code = 503 if body["status"] == "degraded" else 200
    return JSONResponse(content=body, status_code=status_code)
