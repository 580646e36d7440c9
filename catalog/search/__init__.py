"""
Search module for the asset catalog.

This module provides search functionality including:
- Exact filters over asset columns and metadata
- Full-text prefix search (FTS5)
- Vector neighbours via sqlite-vec (semantic and hybrid)
- Lineage traversal over metadata inputs
"""

from .lineage import ancestors_and_descendants
from .sqlite_search import SearchService

__all__ = ['SearchService', 'ancestors_and_descendants']
