"""
Asset Catalog Server: FastAPI application entry point.

Usage:
    uvicorn catalog.server.app:app --host 127.0.0.1 --port 8000

Or via CLI:
    python -m catalog.server.app
"""

import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog.db.sqlite_client import CatalogDB
from catalog.server.config import get_cors_origins, get_server_config
from catalog.server.deps import close_all, get_db

# ── Logging ──────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# ── App ──────────────────────────────────────────────────────

app = FastAPI(
    title="Asset Catalog Server",
    description="Local media-asset catalog: folder indexing and hybrid search",
    version=VERSION,
)

# CORS
_cors_origins = get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),  # wildcard + credentials is invalid CORS
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Lifecycle ────────────────────────────────────────────────

@app.on_event("startup")
async def startup():
    logger.info("Asset Catalog Server starting up...")
    # DB, search and indexer are created lazily on first request via deps


@app.on_event("shutdown")
async def shutdown():
    logger.info("Asset Catalog Server shutting down...")
    close_all()


# ── Routes ───────────────────────────────────────────────────

from catalog.server.routers.assets import router as assets_router
from catalog.server.routers.search import router as search_router
from catalog.server.routers.sync import router as sync_router
from catalog.server.routers.tags import router as tags_router

app.include_router(sync_router, prefix="/api/v1")
app.include_router(search_router, prefix="/api/v1")
app.include_router(assets_router, prefix="/api/v1")
app.include_router(tags_router, prefix="/api/v1")


@app.get("/api/v1/health")
def health(db: CatalogDB = Depends(get_db)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": VERSION,
        "vector_search_enabled": db.vector_search_enabled,
    }


# ── CLI entry point ──────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    cfg = get_server_config()
    host = cfg.get("host", "127.0.0.1")
    port = cfg.get("port", 8000)

    logger.info(f"Starting Asset Catalog Server on {host}:{port}")
    uvicorn.run(
        "catalog.server.app:app",
        host=host,
        port=port,
        workers=1,  # SQLite requires single worker (single writer)
    )
