"""
FastAPI dependency injection: shared catalog, search executor and indexer.

One CatalogDB per process; the search executor and the indexer share it,
and the indexer keeps the executor's root in step with the watched folder.
"""

import logging
from typing import Optional

from catalog.db.sqlite_client import CatalogDB
from catalog.pipeline.indexer import IndexerService
from catalog.search.sqlite_search import SearchService
from catalog.server.config import get_db_path

logger = logging.getLogger(__name__)

# ── Shared singletons ────────────────────────────────────────

_db_instance: Optional[CatalogDB] = None
_search_instance: Optional[SearchService] = None
_indexer_instance: Optional[IndexerService] = None


def get_db() -> CatalogDB:
    """Get shared CatalogDB instance (singleton)."""
    global _db_instance
    if _db_instance is None:
        _db_instance = CatalogDB(get_db_path())
    return _db_instance


def get_search() -> SearchService:
    global _search_instance
    if _search_instance is None:
        _search_instance = SearchService(get_db())
    return _search_instance


def get_indexer() -> IndexerService:
    global _indexer_instance
    if _indexer_instance is None:
        _indexer_instance = IndexerService(get_db(), search=get_search())
    return _indexer_instance


def close_all():
    """Stop the watcher and close the shared DB (call on shutdown)."""
    global _db_instance, _search_instance, _indexer_instance
    if _indexer_instance is not None:
        _indexer_instance.stop()
        _indexer_instance = None
    _search_instance = None
    if _db_instance is not None:
        _db_instance.close()
        _db_instance = None
