"""
Sync router: watched root and indexer statistics.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog.pipeline.indexer import IndexerService
from catalog.server.deps import get_indexer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class SetRootRequest(BaseModel):
    path: str


@router.post("/root")
def sync_set_root(
    req: SetRootRequest,
    indexer: IndexerService = Depends(get_indexer),
):
    """Watch a folder (replaces the previous root) and start the initial scan."""
    try:
        root = indexer.set_root(req.path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "root_path": root}


@router.post("/resync")
def sync_resync(indexer: IndexerService = Depends(get_indexer)):
    """Full rescan of the current root."""
    root = indexer.resync()
    if root is None:
        raise HTTPException(status_code=400, detail="No root path set")
    return {"success": True, "root_path": root}


@router.get("/stats")
def sync_stats(indexer: IndexerService = Depends(get_indexer)):
    """Running indexer statistics (snapshot)."""
    return {"success": True, **indexer.get_stats().model_dump()}
