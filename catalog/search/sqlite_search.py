"""
Hybrid asset search over SQLite (exact filters + FTS5 + sqlite-vec + lineage).

Pipeline for search(query, filters):
1. Exact filters       tags (any), ids, type, status(es), date range, metadata fields
2. Relational filter   children of an asset, or its vector neighbours (semantic)
3. Full-text           FTS5 prefix match per token, ranked by bm25 then recency
4. Hybrid              vector neighbours of the query text, appended after
                       passing the same structural filters
5-8. Source pin, ordering, tag hydration, semantic closure

Only the structural query (1-3) may raise; vector phases log and degrade.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from catalog.db.sqlite_client import CatalogDB
from catalog.parser.schema import Asset, SearchFilters
from catalog.search.lineage import ancestors_and_descendants
from catalog.vector.text_embedding import EmbeddingProvider

logger = logging.getLogger(__name__)

# filter field -> metadata JSON key (equality match)
_METADATA_EQ = {
    'author_id': 'authorId',
    'project': 'project',
    'scene': 'scene',
    'shot': 'shot',
    'platform': 'platform',
    'model': 'model',
}

CHAT_RESULT_LIMIT = 4


def build_fts_query(text: str) -> Optional[str]:
    """
    Turn free text into an FTS5 MATCH expression.

    Each whitespace token becomes a quoted prefix term; terms are ANDed.
    Quoting keeps user punctuation from breaking MATCH syntax.

    Example:
        build_fts_query('red drag')  -> '"red"* "drag"*'
    """
    tokens = [t for t in (text or '').split() if t]
    if not tokens:
        return None
    return ' '.join('"' + t.replace('"', '""') + '"*' for t in tokens)


def similarity_percent(distance: Optional[float]) -> Optional[float]:
    """Display similarity for a cosine distance, (1 - d) * 100."""
    if distance is None:
        return None
    return round((1.0 - distance) * 100.0, 1)


def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class SearchService:
    """Hybrid search executor scoped to one catalog root."""

    def __init__(
        self,
        db: CatalogDB,
        provider: Optional[EmbeddingProvider] = None,
        root_path: Optional[str] = None,
    ):
        """
        Args:
            db: Catalog store shared with the indexer
            provider: Embedding provider (config singleton if None, loaded lazily)
            root_path: Active catalog root; None searches every root
        """
        from catalog.utils.config import get_config
        cfg = get_config()

        self.db = db
        self._provider = provider
        self.root_path = root_path
        self.related_limit = int(cfg.get("search.related_limit", 50))
        self.hybrid_limit = int(cfg.get("search.hybrid_limit", 50))

    @property
    def text_provider(self) -> EmbeddingProvider:
        if self._provider is None:
            from catalog.vector.text_embedding import get_text_embedding_provider
            self._provider = get_text_embedding_provider()
        return self._provider

    def set_root_path(self, root_path: Optional[str]):
        self.root_path = root_path

    def embed(self, text: str) -> Optional[List[float]]:
        """Embedding gateway call; any failure yields None."""
        try:
            vec = self.text_provider.encode(text, is_query=True)
        except Exception as e:
            logger.warning(f"⚠️ Embedding unavailable, continuing without vectors: {e}")
            return None
        if vec is None:
            return None
        return np.asarray(vec, dtype=np.float32).tolist()

    # ── query building ──────────────────────────────────

    def _related_distances(self, source_id: str, limit: int) -> Dict[str, float]:
        """Vector neighbours of an asset: id -> distance, source excluded."""
        if not self.db.vector_search_enabled:
            return {}
        source = self.db.get_asset(source_id, hydrate=False)
        if source is None or source.embedding is None:
            return {}
        try:
            hits = self.db.knn(
                source.embedding, limit, root_path=self.root_path, exclude_id=source_id
            )
        except sqlite3.Error as e:
            logger.warning(f"⚠️ Similarity lookup failed for {source_id}: {e}")
            return {}
        return dict(hits)

    def _structural_where(
        self,
        filters: SearchFilters,
        related: Optional[Dict[str, float]],
    ) -> Tuple[List[str], List[Any]]:
        """WHERE clauses for phases 1-2 against `assets a`."""
        clauses: List[str] = []
        params: List[Any] = []

        if self.root_path:
            clauses.append("a.root_path = ?")
            params.append(self.root_path)

        if filters.tag_ids:
            marks = ','.join('?' * len(filters.tag_ids))
            clauses.append(
                "EXISTS (SELECT 1 FROM asset_tags at "
                f"WHERE at.asset_id = a.id AND at.tag_id IN ({marks}))"
            )
            params.extend(filters.tag_ids)

        if filters.ids is not None:
            if filters.ids:
                clauses.append(f"a.id IN ({','.join('?' * len(filters.ids))})")
                params.extend(filters.ids)
            else:
                clauses.append("1=0")

        if filters.type:
            clauses.append("a.type = ?")
            params.append(filters.type)

        single_status = filters.single_status()
        if single_status:
            clauses.append("a.status = ?")
            params.append(single_status)
        if filters.statuses:
            clauses.append(f"a.status IN ({','.join('?' * len(filters.statuses))})")
            params.extend(filters.statuses)

        if filters.date_from is not None:
            clauses.append("a.created_at >= ?")
            params.append(filters.date_from)
        if filters.date_to is not None:
            clauses.append("a.created_at <= ?")
            params.append(filters.date_to)

        for field, key in _METADATA_EQ.items():
            value = getattr(filters, field)
            if value:
                clauses.append(f"json_extract(a.metadata, '$.{key}') = ?")
                params.append(value)

        if filters.platform_url:
            clauses.append("json_extract(a.metadata, '$.platformUrl') LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(filters.platform_url)}%")

        if filters.related_to_asset_id:
            if filters.semantic:
                if related:
                    clauses.append(f"a.id IN ({','.join('?' * len(related))})")
                    params.extend(related.keys())
                else:
                    clauses.append("1=0")
            else:
                clauses.append(
                    "EXISTS (SELECT 1 FROM json_each(a.metadata, '$.inputs') "
                    "WHERE json_each.value = ?)"
                )
                params.append(filters.related_to_asset_id)

        return clauses, params

    def _query_assets(
        self,
        clauses: List[str],
        params: List[Any],
        fts_query: Optional[str],
    ) -> List[Asset]:
        where_sql = " AND ".join(clauses) if clauses else "1=1"
        if fts_query:
            sql = (
                "SELECT a.* FROM assets a "
                "JOIN assets_fts ON assets_fts.rowid = a.row_id "
                f"WHERE assets_fts MATCH ? AND {where_sql} "
                "ORDER BY assets_fts.rank, a.created_at DESC"
            )
            params = [fts_query] + params
        else:
            sql = f"SELECT a.* FROM assets a WHERE {where_sql} ORDER BY a.created_at DESC"
        return [CatalogDB.row_to_asset(r) for r in self.db.query(sql, params)]

    def _hybrid_candidates(
        self,
        query: str,
        filters: SearchFilters,
        related: Optional[Dict[str, float]],
        present: set,
    ) -> List[Asset]:
        """Vector neighbours of the query text that pass every structural filter."""
        vec = self.embed(query)
        if vec is None:
            return []
        hits = self.db.knn(vec, self.hybrid_limit, root_path=self.root_path)
        distances = {asset_id: d for asset_id, d in hits if asset_id not in present}
        if not distances:
            return []

        clauses, params = self._structural_where(filters, related)
        clauses.append(f"a.id IN ({','.join('?' * len(distances))})")
        params.extend(distances.keys())
        admitted = {a.id: a for a in self._query_assets(clauses, params, None)}

        appended = []
        for asset_id, distance in hits:
            asset = admitted.get(asset_id)
            if asset is not None:
                # related-semantic mode reassigns distances from the source
                if not (filters.semantic and filters.related_to_asset_id):
                    asset.distance = distance
                appended.append(asset)
        return appended

    # ── public API ──────────────────────────────────────

    def search(self, query: str = "", filters: Optional[SearchFilters] = None) -> List[Asset]:
        """
        Run the full hybrid search.

        Args:
            query: Free text ('' for none)
            filters: Structured filters (SearchFilters or a dict of them)

        Returns:
            Ranked, de-duplicated, tag-hydrated assets. With
            related_to_asset_id set, the source asset is at index 0 with
            distance 0.

        Raises:
            sqlite3.Error: the structural query itself failed
        """
        if filters is None:
            filters = SearchFilters()
        elif isinstance(filters, dict):
            filters = SearchFilters.model_validate(filters)

        source_id = filters.related_to_asset_id
        semantic_mode = bool(source_id and filters.semantic)

        related: Optional[Dict[str, float]] = None
        if semantic_mode:
            related = self._related_distances(source_id, self.related_limit)

        fts_query = build_fts_query(query)
        clauses, params = self._structural_where(filters, related)
        results = self._query_assets(clauses, params, fts_query)

        if fts_query and self.db.vector_search_enabled:
            try:
                present = {a.id for a in results}
                extra = self._hybrid_candidates(query, filters, related, present)
                if extra:
                    logger.debug(f"Hybrid search appended {len(extra)} vector hits")
                results.extend(extra)
            except (sqlite3.Error, ValueError) as e:
                logger.warning(f"⚠️ Hybrid vector phase skipped: {e}")

        if semantic_mode:
            for asset in results:
                asset.distance = related.get(asset.id)
            # stable sort; unknown distance last
            results.sort(key=lambda a: (a.distance is None, a.distance or 0.0))

        if source_id:
            results = [a for a in results if a.id != source_id]
            source = self.db.get_asset(source_id, hydrate=False)
            if source is not None:
                source.distance = 0.0
                results.insert(0, source)

        self.db.hydrate_tags(results)

        if semantic_mode:
            results = [a for a in results if a.distance is not None]

        logger.info(
            f"Search '{query}' (related={source_id}, semantic={filters.semantic}) "
            f"returned {len(results)} results"
        )
        return results

    def find_similar(self, asset_id: str, limit: int = 10) -> List[Asset]:
        """
        Nearest neighbours of an asset's embedding, source excluded.

        Returns:
            Assets ascending by distance; [] for unknown ids, assets
            without an embedding, or when vector search is unavailable
        """
        distances = self._related_distances(asset_id, limit)
        if not distances:
            return []
        found = self.db.get_assets_by_ids(list(distances))
        results = []
        for neighbour_id, distance in sorted(distances.items(), key=lambda kv: kv[1]):
            asset = found.get(neighbour_id)
            if asset is not None:
                asset.distance = distance
                results.append(asset)
        return self.db.hydrate_tags(results[:limit])

    def lineage(self, root_id: str) -> List[Asset]:
        """Root, ancestors and descendants of an asset within the active root."""
        assets = self.db.get_assets(self.root_path, hydrate=False)
        return self.db.hydrate_tags(ancestors_and_descendants(root_id, assets))

    def handle_chat_message(self, text: str) -> Dict[str, Any]:
        """Answer a chat prompt with the top matching assets."""
        logger.info(f"Handling chat message: \"{text}\"")
        try:
            results = self.search(text, SearchFilters(semantic=True))
        except sqlite3.Error as e:
            logger.error(f"Chat search failed: {e}")
            return {'type': 'error', 'message': 'I encountered an error while searching.'}

        if results:
            return {
                'type': 'search_results',
                'message': f"I found {len(results)} assets. Here are the top matches:",
                'assets': results[:CHAT_RESULT_LIMIT],
            }
        return {
            'type': 'chat',
            'message': f"I couldn't find any assets matching \"{text}\".",
        }
