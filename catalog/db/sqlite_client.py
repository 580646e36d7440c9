"""
SQLite client for the asset catalog, with FTS5 and sqlite-vec support.

One connection per CatalogDB, shared between the indexer's consumer thread
and request handlers; every access goes through an RLock. Multi-statement
writes run inside BEGIN IMMEDIATE transactions.
"""

import json
import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from catalog.parser.media import FILE_DERIVED_KEYS, FileInfo
from catalog.parser.schema import ASSET_STATUSES, Asset, Comment, Tag

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent.parent

# SQLite's default host-parameter limit is 999 on older builds
_CHUNK = 500

# sqlite-vec rejects larger k in a KNN query
_VEC_MAX_K = 4096


def now_ms() -> int:
    return int(time.time() * 1000)


def _chunks(items: Sequence[str], size: int = _CHUNK):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class CatalogDB:
    """SQLite catalog store: assets, tags, FTS5 shadow index, vec0 index."""

    def __init__(self, db_path: Optional[str] = None,
                 vector_dimensions: Optional[int] = None):
        """
        Open (and create if needed) the catalog database.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
                    Default: database.path from config.yaml
            vector_dimensions: Embedding size for vec_assets.
                    Default: embedding.dimensions from config.yaml (512)
        """
        from catalog.utils.config import get_config
        cfg = get_config()

        if db_path is None:
            db_path = cfg.get("database.path", "asset-catalog.db")
        if db_path != ":memory:" and not Path(db_path).is_absolute():
            db_path = str(_PROJECT_ROOT / db_path)

        self.db_path = db_path
        self.vector_dimensions = int(vector_dimensions or cfg.get("embedding.dimensions", 512))
        self.vector_search_enabled = False
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._connect()
        self.init_schema()

    def _connect(self):
        """Establish database connection."""
        try:
            # isolation_level=None: statements autocommit unless inside transaction()
            self.conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            self.conn.row_factory = sqlite3.Row

            try:
                import sqlite_vec
                self.conn.enable_load_extension(True)
                sqlite_vec.load(self.conn)
                self.conn.enable_load_extension(False)
                self.vector_search_enabled = True
                logger.info("✅ sqlite-vec loaded via Python package")
            except (ImportError, AttributeError, sqlite3.Error) as e:
                logger.warning(f"⚠️ sqlite-vec not loaded: {e}")
                logger.warning("Vector search will not work. Install: pip install sqlite-vec")

            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.execute("PRAGMA synchronous = NORMAL")
            self.conn.execute("PRAGMA cache_size = -64000")

            logger.info(f"✅ Connected to SQLite database: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"❌ Failed to connect to SQLite: {e}")
            raise

    def init_schema(self):
        """Create tables, indexes and the FTS5 shadow table if missing."""
        schema_path = Path(__file__).parent / "sqlite_schema.sql"
        with open(schema_path, encoding='utf-8') as f:
            schema_sql = f.read()

        with self._lock:
            self.conn.executescript(schema_sql)
            if self.vector_search_enabled:
                self._ensure_vec_table()
            asset_count = self.conn.execute("SELECT COUNT(*) FROM assets").fetchone()[0]
            fts_count = self.conn.execute("SELECT COUNT(*) FROM assets_fts").fetchone()[0]

        logger.info("✅ SQLite schema initialized successfully")
        if asset_count and not fts_count:
            logger.warning("⚠️ FTS5 index is empty, rebuilding from assets")
            self.rebuild_fts()

    def _ensure_vec_table(self):
        try:
            self.conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS vec_assets USING vec0("
                f"embedding float[{self.vector_dimensions}] distance_metric=cosine)"
            )
            vec_ver = self.conn.execute("SELECT vec_version()").fetchone()[0]
            logger.info(f"✅ sqlite-vec version: {vec_ver}")
        except sqlite3.Error as e:
            logger.warning(f"⚠️ vec_assets unavailable, vector search disabled: {e}")
            self.vector_search_enabled = False

    @contextmanager
    def transaction(self):
        """Serialised write transaction (BEGIN IMMEDIATE ... COMMIT)."""
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                yield self.conn
            except BaseException:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()

    def query(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        """Run a read query under the connection lock."""
        with self._lock:
            return self.conn.execute(sql, tuple(params)).fetchall()

    # ── row conversion ──────────────────────────────────

    @staticmethod
    def _parse_metadata(raw: Optional[str]) -> Dict[str, Any]:
        if not raw:
            return {}
        try:
            meta = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return {}
        return meta if isinstance(meta, dict) else {}

    @staticmethod
    def _dump_metadata(meta: Dict[str, Any]) -> str:
        # None means "unknown"; never persist it
        return json.dumps({k: v for k, v in meta.items() if v is not None})

    @classmethod
    def row_to_asset(cls, row: sqlite3.Row) -> Asset:
        return Asset(
            id=row['id'],
            root_path=row['root_path'],
            path=row['path'],
            type=row['type'],
            status=row['status'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
            metadata=cls._parse_metadata(row['metadata']),
        )

    # ── FTS5 ────────────────────────────────────────────

    _FTS_META_KEYS = ('prompt', 'model', 'authorId', 'project', 'scene', 'shot', 'platform')

    @classmethod
    def _build_fts_content(cls, path: str, meta: Dict[str, Any]) -> str:
        """Flatten searchable metadata into one FTS column (embedding excluded)."""
        parts = [Path(path).stem]
        for key in cls._FTS_META_KEYS:
            val = meta.get(key)
            if val:
                parts.append(str(val))
        comments = meta.get('comments')
        if isinstance(comments, list):
            parts.extend(str(c.get('text', '')) for c in comments if isinstance(c, dict))
        return ' '.join(p for p in parts if p)

    def _write_fts(self, row_id: int, path: str, meta: Dict[str, Any]):
        self.conn.execute("DELETE FROM assets_fts WHERE rowid = ?", (row_id,))
        self.conn.execute(
            "INSERT INTO assets_fts(rowid, path, content) VALUES (?, ?, ?)",
            (row_id, path, self._build_fts_content(path, meta)),
        )

    def rebuild_fts(self) -> int:
        """Recreate every FTS row from the assets table."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM assets_fts")
            rows = conn.execute("SELECT row_id, path, metadata FROM assets").fetchall()
            for row in rows:
                self._write_fts(row['row_id'], row['path'], self._parse_metadata(row['metadata']))
        logger.info(f"✅ FTS5 rebuilt ({len(rows)} rows)")
        return len(rows)

    # ── watcher write path ──────────────────────────────

    def upsert_asset(
        self,
        root_path: str,
        path: str,
        media_type: str,
        file_info: FileInfo,
        file_metadata: Dict[str, Any],
    ) -> Asset:
        """
        Insert or refresh an asset keyed by (root_path, path).

        Args:
            root_path: Absolute watched root
            path: Path relative to root_path (forward slashes)
            media_type: 'image' or 'video'
            file_info: Stat result from read_file_info()
            file_metadata: File-derived keys from extract_metadata()

        Returns:
            The stored asset. On conflict id, created_at, status and tags
            are untouched; file-derived keys are replaced, user keys kept.
        """
        ts = now_ms()
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT row_id, metadata FROM assets WHERE root_path = ? AND path = ?",
                (root_path, path),
            ).fetchone()

            if row:
                meta = self._parse_metadata(row['metadata'])
                for key in FILE_DERIVED_KEYS:
                    meta.pop(key, None)
                meta.update(file_metadata)
                row_id = row['row_id']
                conn.execute(
                    "UPDATE assets SET type = ?, metadata = ?, updated_at = ? WHERE row_id = ?",
                    (media_type, self._dump_metadata(meta), ts, row_id),
                )
            else:
                meta = dict(file_metadata)
                cursor = conn.execute(
                    "INSERT INTO assets (id, root_path, path, type, status, "
                    "created_at, updated_at, metadata) "
                    "VALUES (?, ?, ?, ?, 'unsorted', ?, ?, ?)",
                    (uuid.uuid4().hex, root_path, path, media_type,
                     file_info.created_at, ts, self._dump_metadata(meta)),
                )
                row_id = cursor.lastrowid

            self._write_fts(row_id, path, meta)
            stored = conn.execute("SELECT * FROM assets WHERE row_id = ?", (row_id,)).fetchone()

        logger.debug(f"✅ Indexed asset: {path} (ID: {stored['id']})")
        return self.row_to_asset(stored)

    def _delete_rows(self, conn: sqlite3.Connection, rows: List[sqlite3.Row]):
        for row in rows:
            if self.vector_search_enabled:
                conn.execute("DELETE FROM vec_assets WHERE rowid = ?", (row['row_id'],))
            # asset_tags and assets_fts follow via cascade / trigger
            conn.execute("DELETE FROM assets WHERE row_id = ?", (row['row_id'],))

    def delete_asset_by_path(self, root_path: str, path: str) -> bool:
        """Remove the asset at path. Returns False when nothing was stored."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT row_id FROM assets WHERE root_path = ? AND path = ?",
                (root_path, path),
            ).fetchall()
            self._delete_rows(conn, rows)
        return bool(rows)

    def list_paths(self, root_path: str) -> Set[str]:
        rows = self.query("SELECT path FROM assets WHERE root_path = ?", (root_path,))
        return {r['path'] for r in rows}

    def prune_missing(self, root_path: str, present: Set[str]) -> int:
        """
        Delete assets of root_path whose path is not in `present`.

        Returns:
            Number of rows removed
        """
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT row_id, path FROM assets WHERE root_path = ?", (root_path,)
            ).fetchall()
            stale = [r for r in rows if r['path'] not in present]
            self._delete_rows(conn, stale)
        if stale:
            logger.info(f"Pruned {len(stale)} missing assets under {root_path}")
        return len(stale)

    # ── asset reads ─────────────────────────────────────

    def get_asset(self, asset_id: str, hydrate: bool = True) -> Optional[Asset]:
        rows = self.query("SELECT * FROM assets WHERE id = ?", (asset_id,))
        if not rows:
            return None
        asset = self.row_to_asset(rows[0])
        if hydrate:
            asset.tags = self.get_asset_tags(asset_id)
        return asset

    def get_asset_by_path(self, root_path: str, path: str) -> Optional[Asset]:
        rows = self.query(
            "SELECT * FROM assets WHERE root_path = ? AND path = ?", (root_path, path)
        )
        return self.row_to_asset(rows[0]) if rows else None

    def get_assets(self, root_path: Optional[str] = None,
                   hydrate: bool = True) -> List[Asset]:
        """All assets (of one root when given), newest first."""
        if root_path:
            rows = self.query(
                "SELECT * FROM assets WHERE root_path = ? ORDER BY created_at DESC",
                (root_path,),
            )
        else:
            rows = self.query("SELECT * FROM assets ORDER BY created_at DESC")
        assets = [self.row_to_asset(r) for r in rows]
        if hydrate:
            self.hydrate_tags(assets)
        return assets

    def get_assets_by_ids(self, ids: Sequence[str]) -> Dict[str, Asset]:
        found: Dict[str, Asset] = {}
        for chunk in _chunks(list(ids)):
            marks = ','.join('?' * len(chunk))
            for row in self.query(f"SELECT * FROM assets WHERE id IN ({marks})", chunk):
                found[row['id']] = self.row_to_asset(row)
        return found

    def count_assets(self, root_path: Optional[str] = None) -> int:
        if root_path:
            rows = self.query("SELECT COUNT(*) FROM assets WHERE root_path = ?", (root_path,))
        else:
            rows = self.query("SELECT COUNT(*) FROM assets")
        return rows[0][0]

    # ── user mutations ──────────────────────────────────

    def _mutate_metadata(self, asset_id: str, fn) -> Optional[Asset]:
        """Read-modify-write the metadata of one asset in a transaction."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT row_id, path, metadata FROM assets WHERE id = ?", (asset_id,)
            ).fetchone()
            if not row:
                return None
            meta = fn(self._parse_metadata(row['metadata']))
            conn.execute(
                "UPDATE assets SET metadata = ?, updated_at = ? WHERE row_id = ?",
                (self._dump_metadata(meta), now_ms(), row['row_id']),
            )
            self._write_fts(row['row_id'], row['path'], meta)
        return self.get_asset(asset_id)

    def update_status(self, asset_id: str, status: str) -> Optional[Asset]:
        """
        Change an asset's review status.

        Raises:
            ValueError: status is not one of ASSET_STATUSES
        """
        if status not in ASSET_STATUSES:
            raise ValueError(f"Invalid status: {status!r}")
        with self._lock:
            cursor = self.conn.execute(
                "UPDATE assets SET status = ?, updated_at = ? WHERE id = ?",
                (status, now_ms(), asset_id),
            )
        if cursor.rowcount == 0:
            logger.warning(f"Asset not found: {asset_id}")
            return None
        return self.get_asset(asset_id)

    def update_metadata(self, asset_id: str, metadata: Dict[str, Any]) -> Optional[Asset]:
        """Replace the whole metadata object."""
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be an object")
        return self._mutate_metadata(asset_id, lambda _old: dict(metadata))

    def set_metadata_field(self, asset_id: str, key: str, value: Any) -> Optional[Asset]:
        """Merge one key into metadata; value None removes the key."""
        def apply(meta):
            if value is None:
                meta.pop(key, None)
            else:
                meta[key] = value
            return meta
        return self._mutate_metadata(asset_id, apply)

    def set_liked(self, asset_id: str, liked: bool) -> Optional[Asset]:
        return self.set_metadata_field(asset_id, 'liked', bool(liked))

    def add_comment(self, asset_id: str, text: str, author_id: str) -> Optional[Comment]:
        comment = Comment(
            id=uuid.uuid4().hex, authorId=author_id, text=text, timestamp=now_ms()
        )

        def apply(meta):
            comments = meta.get('comments')
            if not isinstance(comments, list):
                comments = []
            comments.append(comment.model_dump())
            meta['comments'] = comments
            return meta

        return comment if self._mutate_metadata(asset_id, apply) else None

    # ── tags ────────────────────────────────────────────

    def get_tags(self) -> List[Tag]:
        rows = self.query("SELECT id, name, color FROM tags ORDER BY name")
        return [Tag(**dict(r)) for r in rows]

    def create_tag(self, name: str, color: Optional[str] = None) -> Tag:
        """Create a tag; a duplicate name returns the existing tag."""
        name = name.strip()
        if not name:
            raise ValueError("Tag name must not be empty")
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO tags (id, name, color, created_at) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(name) DO NOTHING",
                (uuid.uuid4().hex, name, color, now_ms()),
            )
            row = conn.execute(
                "SELECT id, name, color FROM tags WHERE name = ?", (name,)
            ).fetchone()
        return Tag(**dict(row))

    def delete_tag(self, tag_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cursor.rowcount > 0

    def add_tag_to_asset(self, asset_id: str, tag_id: str) -> bool:
        """
        Attach a tag. Returns False when either side does not exist.
        """
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT OR IGNORE INTO asset_tags (asset_id, tag_id) VALUES (?, ?)",
                    (asset_id, tag_id),
                )
                conn.execute(
                    "UPDATE assets SET updated_at = ? WHERE id = ?", (now_ms(), asset_id)
                )
        except sqlite3.IntegrityError as e:
            logger.warning(f"Cannot tag {asset_id} with {tag_id}: {e}")
            return False
        return True

    def remove_tag_from_asset(self, asset_id: str, tag_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM asset_tags WHERE asset_id = ? AND tag_id = ?",
                (asset_id, tag_id),
            )
            removed = cursor.rowcount > 0
            if removed:
                conn.execute(
                    "UPDATE assets SET updated_at = ? WHERE id = ?", (now_ms(), asset_id)
                )
        return removed

    def get_asset_tags(self, asset_id: str) -> List[Tag]:
        return self.get_tags_for_assets([asset_id]).get(asset_id, [])

    def get_tags_for_assets(self, asset_ids: Sequence[str]) -> Dict[str, List[Tag]]:
        """Batch tag lookup: asset id -> tags (ids without tags are absent)."""
        result: Dict[str, List[Tag]] = {}
        for chunk in _chunks(list(dict.fromkeys(asset_ids))):
            marks = ','.join('?' * len(chunk))
            rows = self.query(
                "SELECT at.asset_id, t.id, t.name, t.color FROM asset_tags at "
                f"JOIN tags t ON t.id = at.tag_id WHERE at.asset_id IN ({marks}) "
                "ORDER BY t.name",
                chunk,
            )
            for r in rows:
                result.setdefault(r['asset_id'], []).append(
                    Tag(id=r['id'], name=r['name'], color=r['color'])
                )
        return result

    def hydrate_tags(self, assets: List[Asset]) -> List[Asset]:
        """Attach tags to every asset in place with one batch query."""
        tag_map = self.get_tags_for_assets([a.id for a in assets])
        for asset in assets:
            asset.tags = tag_map.get(asset.id, [])
        return assets

    # ── vectors ─────────────────────────────────────────

    def set_embedding(self, asset_id: str, embedding: Sequence[float]) -> bool:
        """
        Store an embedding in metadata and the vector index together.

        Returns:
            False when the asset is gone or the dimension does not match
        """
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.shape != (self.vector_dimensions,):
            logger.warning(
                f"Embedding for {asset_id} has shape {vector.shape}, "
                f"expected ({self.vector_dimensions},)"
            )
            return False
        values = vector.tolist()

        with self.transaction() as conn:
            row = conn.execute(
                "SELECT row_id, path, metadata FROM assets WHERE id = ?", (asset_id,)
            ).fetchone()
            if not row:
                return False
            meta = self._parse_metadata(row['metadata'])
            meta['embedding'] = values
            conn.execute(
                "UPDATE assets SET metadata = ?, updated_at = ? WHERE row_id = ?",
                (self._dump_metadata(meta), now_ms(), row['row_id']),
            )
            if self.vector_search_enabled:
                self._write_vector(conn, row['row_id'], values)
        return True

    @staticmethod
    def _write_vector(conn: sqlite3.Connection, row_id: int, values: List[float]):
        # Virtual tables don't support ON CONFLICT, so delete + insert
        conn.execute("DELETE FROM vec_assets WHERE rowid = ?", (row_id,))
        conn.execute(
            "INSERT INTO vec_assets (rowid, embedding) VALUES (?, ?)",
            (row_id, json.dumps(values)),
        )

    def sync_vectors(self, root_path: Optional[str] = None) -> int:
        """
        Copy metadata.embedding into vec_assets for rows that lack a vector.

        Returns:
            Number of vector rows written
        """
        if not self.vector_search_enabled:
            return 0
        sql = (
            "SELECT a.row_id, a.metadata FROM assets a "
            "LEFT JOIN vec_assets v ON v.rowid = a.row_id "
            "WHERE v.rowid IS NULL AND json_extract(a.metadata, '$.embedding') IS NOT NULL"
        )
        params: Tuple = ()
        if root_path:
            sql += " AND a.root_path = ?"
            params = (root_path,)

        written = 0
        with self.transaction() as conn:
            for row in conn.execute(sql, params).fetchall():
                values = self._parse_metadata(row['metadata']).get('embedding')
                if isinstance(values, list) and len(values) == self.vector_dimensions:
                    self._write_vector(conn, row['row_id'], values)
                    written += 1
        if written:
            logger.info(f"[EMBED] restored {written} vector rows from metadata")
        return written

    def assets_missing_embedding(self, root_path: str) -> List[Asset]:
        """Assets of a root with no embedding or one of the wrong dimension."""
        rows = self.query(
            "SELECT * FROM assets WHERE root_path = ? AND ("
            "json_extract(metadata, '$.embedding') IS NULL OR "
            "json_array_length(metadata, '$.embedding') != ?)",
            (root_path, self.vector_dimensions),
        )
        return [self.row_to_asset(r) for r in rows]

    def knn(
        self,
        embedding: Sequence[float],
        k: int,
        root_path: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> List[Tuple[str, float]]:
        """
        Nearest neighbours by cosine distance.

        Args:
            embedding: Query vector (vector_dimensions long)
            k: Maximum number of results
            root_path: Keep only assets of this root
            exclude_id: Asset id to leave out (the query's own asset)

        Returns:
            [(asset_id, distance)] ascending by distance; [] when the
            vector index is unavailable
        """
        if not self.vector_search_enabled or k <= 0:
            return []
        query_vec = json.dumps([float(x) for x in embedding])
        # One extra neighbour so excluding the source still yields k
        fetch_k = k + 1 if exclude_id else k
        while True:
            fetch_k = min(fetch_k, _VEC_MAX_K)
            rows = self.query(
                "SELECT a.id, a.root_path, v.distance FROM ("
                "  SELECT rowid, distance FROM vec_assets "
                "  WHERE embedding MATCH ? AND k = ?"
                ") v JOIN assets a ON a.row_id = v.rowid "
                "ORDER BY v.distance",
                (query_vec, fetch_k),
            )
            hits = [
                (r['id'], float(r['distance'])) for r in rows
                if r['id'] != exclude_id and (root_path is None or r['root_path'] == root_path)
            ]
            # vec0 ranks every root together; widen until this root fills k
            if len(hits) >= k or len(rows) < fetch_k or fetch_k >= _VEC_MAX_K:
                return hits[:k]
            fetch_k *= 4

    # ── options & stats ─────────────────────────────────

    _OPTION_KEYS = {
        'authors': 'authorId',
        'projects': 'project',
        'scenes': 'scene',
        'shots': 'shot',
        'models': 'model',
    }

    def get_metadata_options(self, root_path: Optional[str] = None) -> Dict[str, List[str]]:
        """Distinct values of the filterable metadata keys, for filter pickers."""
        options: Dict[str, List[str]] = {}
        for name, key in self._OPTION_KEYS.items():
            sql = (
                f"SELECT DISTINCT json_extract(metadata, '$.{key}') AS v FROM assets "
                f"WHERE json_extract(metadata, '$.{key}') IS NOT NULL"
            )
            params: Tuple = ()
            if root_path:
                sql += " AND root_path = ?"
                params = (root_path,)
            sql += " ORDER BY v"
            options[name] = [str(r['v']) for r in self.query(sql, params)]
        return options

    def get_stats(self, root_path: Optional[str] = None) -> Dict[str, Any]:
        """Get database statistics."""
        where, params = ("WHERE root_path = ?", (root_path,)) if root_path else ("", ())
        stats: Dict[str, Any] = {}
        stats['total_assets'] = self.query(f"SELECT COUNT(*) FROM assets {where}", params)[0][0]
        stats['by_type'] = {
            r['type']: r['n'] for r in self.query(
                f"SELECT type, COUNT(*) AS n FROM assets {where} GROUP BY type", params)
        }
        stats['by_status'] = {
            r['status']: r['n'] for r in self.query(
                f"SELECT status, COUNT(*) AS n FROM assets {where} GROUP BY status", params)
        }
        emb_where = f"{where} {'AND' if where else 'WHERE'} " \
                    "json_extract(metadata, '$.embedding') IS NOT NULL"
        stats['with_embedding'] = self.query(
            f"SELECT COUNT(*) FROM assets {emb_where}", params)[0][0]
        stats['total_tags'] = self.query("SELECT COUNT(*) FROM tags")[0][0]
        stats['vector_search_enabled'] = self.vector_search_enabled
        return stats

    def close(self):
        """Close database connection."""
        if self.conn:
            with self._lock:
                self.conn.close()
                self.conn = None
            logger.info("SQLite connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
