"""
Assets router: lookup and user mutations (status, metadata, comments,
likes, tag associations).
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog.db.sqlite_client import CatalogDB
from catalog.parser.schema import AssetStatus
from catalog.search.sqlite_search import SearchService
from catalog.server.deps import get_db, get_search
from catalog.server.routers.search import format_asset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


class StatusRequest(BaseModel):
    status: AssetStatus


class MetadataRequest(BaseModel):
    """Either a full replacement (`metadata`) or one field (`key` + `value`)."""
    metadata: Optional[Dict[str, Any]] = None
    key: Optional[str] = None
    value: Any = None


class CommentRequest(BaseModel):
    text: str
    author_id: str = "local"


class LikeRequest(BaseModel):
    liked: bool = True


def _found(asset):
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return {"success": True, "asset": format_asset(asset)}


# Declared before /{asset_id} so "options" is not taken for an id
@router.get("/options/metadata")
def metadata_options(
    db: CatalogDB = Depends(get_db),
    search: SearchService = Depends(get_search),
):
    """Distinct authors/projects/scenes/shots/models for filter pickers."""
    return {"success": True, **db.get_metadata_options(search.root_path)}


@router.get("/{asset_id}")
def get_asset(asset_id: str, db: CatalogDB = Depends(get_db)):
    return _found(db.get_asset(asset_id))


@router.patch("/{asset_id}/status")
def update_status(asset_id: str, req: StatusRequest, db: CatalogDB = Depends(get_db)):
    return _found(db.update_status(asset_id, req.status))


@router.patch("/{asset_id}/metadata")
def update_metadata(asset_id: str, req: MetadataRequest, db: CatalogDB = Depends(get_db)):
    if req.metadata is not None:
        return _found(db.update_metadata(asset_id, req.metadata))
    if req.key:
        return _found(db.set_metadata_field(asset_id, req.key, req.value))
    raise HTTPException(status_code=400, detail="Provide metadata or key/value")


@router.post("/{asset_id}/comments")
def add_comment(asset_id: str, req: CommentRequest, db: CatalogDB = Depends(get_db)):
    comment = db.add_comment(asset_id, req.text, req.author_id)
    if comment is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return {"success": True, "comment": comment.model_dump()}


@router.post("/{asset_id}/like")
def set_liked(asset_id: str, req: LikeRequest, db: CatalogDB = Depends(get_db)):
    return _found(db.set_liked(asset_id, req.liked))


@router.post("/{asset_id}/tags/{tag_id}")
def add_tag(asset_id: str, tag_id: str, db: CatalogDB = Depends(get_db)):
    if not db.add_tag_to_asset(asset_id, tag_id):
        raise HTTPException(status_code=404, detail="Asset or tag not found")
    return {"success": True, "tags": [t.model_dump() for t in db.get_asset_tags(asset_id)]}


@router.delete("/{asset_id}/tags/{tag_id}")
def remove_tag(asset_id: str, tag_id: str, db: CatalogDB = Depends(get_db)):
    removed = db.remove_tag_from_asset(asset_id, tag_id)
    return {"success": True, "removed": removed}
