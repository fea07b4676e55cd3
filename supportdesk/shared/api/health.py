"""
Health Endpoints
================

`/support/health` checks the database and the search index, caching the
result so frequent polling does not keep the database awake.
`/support/uptime` touches nothing.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from supportdesk.infrastructure.search import ISearchIndex
from supportdesk.shared.api.middleware import require_bearer_token
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/support", tags=["Health"])


@dataclass
class _CachedHealth:
    result: Dict[str, Any]
    status_code: int
    checked_at: float


class HealthChecker:
    """Runs the dependency checks at most once per `ttl_seconds`."""

    def __init__(
        self,
        db_check: Callable[[], Awaitable[None]],
        search_index: Optional[ISearchIndex],
        index_name: str,
        ttl_seconds: int,
        clock: Callable[[], float] = time.monotonic
    ):
        self._db_check = db_check
        self._search_index = search_index
        self._index_name = index_name
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Optional[_CachedHealth] = None

    async def _check_db(self) -> Dict[str, Any]:
        try:
            await self._db_check()
        except Exception as e:
            return {"ok": False, "error": str(e) or "DB check failed"}
        return {"ok": True, "error": None}

    async def _check_index(self) -> Dict[str, Any]:
        if self._search_index is None:
            return {"ok": False, "error": "Search index not configured", "index": self._index_name}
        try:
            await self._search_index.get_stats()
        except Exception as e:
            return {"ok": False, "error": str(e) or "Index check failed", "index": self._index_name}
        return {"ok": True, "error": None, "index": self._index_name}

    async def check(self) -> tuple:
        """Returns (body, status_code)."""
        now = self._clock()
        cached = self._cache
        if cached is not None and now - cached.checked_at < self._ttl_seconds:
            age = now - cached.checked_at
            return {
                **cached.result,
                "cached": True,
                "cache_age_seconds": int(age),
                "cache_ttl_seconds": int(self._ttl_seconds - age),
            }, cached.status_code

        started = time.perf_counter()
        db = await self._check_db()
        meili = await self._check_index()
        healthy = db["ok"] and meili["ok"]

        result = {
            "ok": healthy,
            "status": "ok" if healthy else "degraded",
            "checks": {"db": db, "meili": meili},
            "duration_ms": int((time.perf_counter() - started) * 1000),
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        status_code = 200 if healthy else 503
        self._cache = _CachedHealth(result=result, status_code=status_code, checked_at=now)

        if not healthy:
            logger.warning("Health check degraded", extra={"checks": result["checks"]})

        return {**result, "cached": False}, status_code


@router.get(
    "/health",
    summary="Dependency health",
    description="Checks the database and the search index. Results are cached; use `/support/uptime` for frequent polling.",
    responses={
        200: {"description": "Database and index reachable"},
        401: {"description": "Missing or wrong bearer token"},
        503: {"description": "A dependency is unreachable"}
    }
)
async def health(request: Request):
    require_bearer_token(request, request.app.state.settings.health_token)
    body, status_code = await request.app.state.health_checker.check()
    return JSONResponse(status_code=status_code, content=body)


@router.get("/uptime", summary="Uptime check")
async def uptime():
    return {"ok": True}
