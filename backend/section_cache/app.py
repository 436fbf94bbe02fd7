"""FastAPI application setup for Section Cache."""

from __future__ import annotations

from fastapi import FastAPI

from section_cache.api.dependencies import get_app_settings, get_database, get_runner
from section_cache.api.routes_admin import router as admin_router
from section_cache.api.routes_ingest import router as runs_router
from section_cache.core.logging import configure_logging

configure_logging()

app = FastAPI(
    title="Section Cache",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(runs_router, prefix="/runs", tags=["runs"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_runner()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
