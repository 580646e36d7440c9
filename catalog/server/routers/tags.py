"""
Tags router: tag CRUD.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog.db.sqlite_client import CatalogDB
from catalog.server.deps import get_db

router = APIRouter(prefix="/tags", tags=["tags"])


class CreateTagRequest(BaseModel):
    name: str
    color: Optional[str] = None


@router.get("")
def list_tags(db: CatalogDB = Depends(get_db)):
    return {"success": True, "tags": [t.model_dump() for t in db.get_tags()]}


@router.post("")
def create_tag(req: CreateTagRequest, db: CatalogDB = Depends(get_db)):
    """Create a tag; an existing name returns the existing tag."""
    try:
        tag = db.create_tag(req.name, req.color)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "tag": tag.model_dump()}


@router.delete("/{tag_id}")
def delete_tag(tag_id: str, db: CatalogDB = Depends(get_db)):
    """Delete a tag and every association to it."""
    if not db.delete_tag(tag_id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return {"success": True}
