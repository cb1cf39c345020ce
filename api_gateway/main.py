"""
FastAPI application.

`create_app()` builds the HTTP surface; stores and the cache live on
`app.state`. Anything not passed in is constructed from settings at startup.
"""

from contextlib import asynccontextmanager
from typing import Any, Optional
import uvicorn
from fastapi import FastAPI, Request
from shared.config import settings
from shared.database import DatabaseClient
from shared.logging import get_logger
from shared.redis_client import RedisClient
from modules.credit_ledger import CreditLedger, SupabaseCreditStore
from modules.drafts import DraftService, SupabaseDraftStore
from modules.job_queue import SupabaseJobStore
from api_gateway.routes import admin, credits, drafts, jobs

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    owned_cache = None
    if getattr(app.state, "job_store", None) is None:
        db = DatabaseClient()
        app.state.job_store = SupabaseJobStore(db)
        app.state.credit_ledger = CreditLedger(SupabaseCreditStore(db))
        app.state.draft_service = DraftService(SupabaseDraftStore(db))
        owned_cache = app.state.cache = RedisClient()
        logger.info("API services initialized", extra={"environment": settings.environment})
    try:
        yield
    finally:
        if owned_cache is not None:
            await owned_cache.close()


def create_app(
    job_store: Optional[Any] = None,
    credit_ledger: Optional[Any] = None,
    draft_service: Optional[Any] = None,
    cache: Optional[Any] = None
) -> FastAPI:
    """
    Build the API application.

    Args:
        job_store: JobStore (Supabase-backed when omitted)
        credit_ledger: CreditLedger (Supabase-backed when omitted)
        draft_service: DraftService (Supabase-backed when omitted)
        cache: RedisClient for job status and JWT caching
    """
    app = FastAPI(title="CanvasCast API", lifespan=lifespan)
    app.state.job_store = job_store
    app.state.credit_ledger = credit_ledger
    app.state.draft_service = draft_service
    app.state.cache = cache

    app.include_router(jobs.router, prefix=API_PREFIX, tags=["jobs"])
    app.include_router(admin.router, prefix=API_PREFIX, tags=["admin"])
    app.include_router(credits.router, prefix=API_PREFIX, tags=["credits"])
    app.include_router(drafts.router, prefix=API_PREFIX, tags=["drafts"])

    @app.get("/health")
    async def health(request: Request):
        cache_client = getattr(request.app.state, "cache", None)
        redis_ok = await cache_client.health_check() if cache_client is not None else None
        return {
            "status": "degraded" if redis_ok is False else "healthy",
            "redis": redis_ok,
        }

    return app


def run() -> None:
    """Console entry point for the API server."""
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.api_port)
