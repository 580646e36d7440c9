"""
Search router: hybrid search, similarity, lineage and chat endpoints.
"""

import logging
import sqlite3
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from catalog.parser.schema import Asset, SearchFilters
from catalog.search.sqlite_search import SearchService, similarity_percent
from catalog.server.deps import get_search

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


def format_asset(asset: Asset) -> dict:
    """Serialize an asset for API responses (embedding stripped)."""
    data = asset.model_dump()
    data["metadata"] = {k: v for k, v in asset.metadata.items() if k != "embedding"}
    data["has_embedding"] = asset.embedding is not None
    data["similarity"] = similarity_percent(asset.distance)
    return data


# ── Request schemas ──────────────────────────────────────────

class SearchRequest(BaseModel):
    query: Optional[str] = ""
    filters: Optional[Dict[str, Any]] = None
    limit: Optional[int] = Field(None, ge=1, le=1000)


class ChatRequest(BaseModel):
    text: str


# ── Endpoints ────────────────────────────────────────────────

@router.post("")
def search_assets(
    req: SearchRequest,
    search: SearchService = Depends(get_search),
):
    """Hybrid search: exact filters + FTS5 + vector neighbours + lineage."""
    try:
        filters = SearchFilters.model_validate(req.filters or {})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors())

    try:
        results = search.search(req.query or "", filters)
    except sqlite3.Error as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")

    if req.limit:
        results = results[:req.limit]
    formatted = [format_asset(a) for a in results]
    return {"success": True, "results": formatted, "count": len(formatted)}


@router.get("/similar/{asset_id}")
def search_similar(
    asset_id: str,
    limit: int = 10,
    search: SearchService = Depends(get_search),
):
    """Nearest neighbours of an asset's embedding."""
    results = search.find_similar(asset_id, limit)
    formatted = [format_asset(a) for a in results]
    return {"success": True, "results": formatted, "count": len(formatted)}


@router.get("/lineage/{asset_id}")
def search_lineage(
    asset_id: str,
    search: SearchService = Depends(get_search),
):
    """Ancestors and descendants of an asset, root first."""
    results = search.lineage(asset_id)
    formatted = [format_asset(a) for a in results]
    return {"success": True, "results": formatted, "count": len(formatted)}


@router.post("/chat")
def search_chat(
    req: ChatRequest,
    search: SearchService = Depends(get_search),
):
    """Chat-style search returning the top matches."""
    reply = search.handle_chat_message(req.text)
    if "assets" in reply:
        reply = {**reply, "assets": [format_asset(a) for a in reply["assets"]]}
    return reply
