"""
Database module for SQLite + FTS5 + sqlite-vec storage.

This module provides the catalog store shared by the indexer and search.
"""

from .sqlite_client import CatalogDB

__all__ = ['CatalogDB']
