"""
Folder watcher / indexer.

Keeps the catalog congruent with one watched folder tree. Each set_root()
starts a WatchSession: a watchdog Observer whose handler only enqueues
events, and one consumer thread that applies them to the catalog in order.
Initial discovery also runs on the consumer thread, so set_root() returns
as soon as the observer is up.

Event kinds:
    add / change   upsert keyed by (root_path, relative path)
    unlink         delete the row
    unlink_dir     delete every row below a removed directory
    ready          end of initial discovery: idle, lastSync, prune, embeddings
"""

import logging
import os
import queue
import threading
import time
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from catalog.db.sqlite_client import CatalogDB, now_ms
from catalog.parser.media import classify, extract_metadata, is_hidden, read_file_info
from catalog.parser.schema import FileError, SyncStats
from catalog.vector.text_embedding import EmbeddingProvider, build_embedding_text

logger = logging.getLogger(__name__)

EVENT_ADD = "add"
EVENT_CHANGE = "change"
EVENT_UNLINK = "unlink"
EVENT_UNLINK_DIR = "unlink_dir"
EVENT_READY = "ready"
_STOP = "__stop__"
_DISCOVER = "__discover__"

_SKIP_DIRS = {'__pycache__', 'node_modules', 'venv'}


def _nfc(path) -> str:
    """Normalize to NFC with forward slashes (macOS reports NFD names)."""
    return unicodedata.normalize('NFC', str(path).replace('\\', '/'))


def discover_media_files(root_dir: Path) -> List[Path]:
    """
    DFS discovery of media files below root_dir.

    Dot-directories, dotfiles and non-media files are skipped.

    Returns:
        Absolute file paths, directories first then names, case-insensitive
    """
    discovered: List[Path] = []

    def _dfs(current_dir: Path):
        try:
            entries = sorted(
                current_dir.iterdir(),
                key=lambda e: (not e.is_dir(), e.name.lower())
            )
        except OSError as e:
            logger.warning(f"Cannot read directory: {current_dir}: {e}")
            return

        for entry in entries:
            if entry.name.startswith('.'):
                continue
            if entry.is_dir():
                if entry.name not in _SKIP_DIRS:
                    _dfs(entry)
            elif entry.is_file() and classify(entry):
                discovered.append(Path(_nfc(entry)))

    _dfs(root_dir)
    return discovered


@dataclass
class _Event:
    kind: str
    path: Optional[str] = None


class IndexHandler(FileSystemEventHandler):
    """Watchdog handler: filters hidden paths and enqueues into the session."""

    def __init__(self, session: "WatchSession"):
        super().__init__()
        self.session = session

    def _visible(self, path) -> bool:
        return not is_hidden(path, self.session.root)

    def on_created(self, event):
        if not event.is_directory and self._visible(event.src_path):
            self.session.post(EVENT_ADD, event.src_path)

    def on_modified(self, event):
        if not event.is_directory and self._visible(event.src_path):
            self.session.post(EVENT_CHANGE, event.src_path)

    def on_deleted(self, event):
        if not self._visible(event.src_path):
            return
        kind = EVENT_UNLINK_DIR if event.is_directory else EVENT_UNLINK
        self.session.post(kind, event.src_path)

    def on_moved(self, event):
        # Identity is keyed by path: a rename is unlink + add
        if event.is_directory:
            if self._visible(event.src_path):
                self.session.post(EVENT_UNLINK_DIR, event.src_path)
            if self._visible(event.dest_path):
                for fp in discover_media_files(Path(event.dest_path)):
                    self.session.post(EVENT_ADD, str(fp))
            return
        if self._visible(event.src_path):
            self.session.post(EVENT_UNLINK, event.src_path)
        if self._visible(event.dest_path):
            self.session.post(EVENT_ADD, event.dest_path)


class WatchSession:
    """One watched root: observer + event queue + single consumer thread."""

    def __init__(self, indexer: "IndexerService", root: Path):
        self.indexer = indexer
        self.root = root
        self.root_str = _nfc(root)
        self.discovered: Set[str] = set()
        self.counted: Set[str] = set()

        self._q: "queue.Queue[_Event]" = queue.Queue()
        self._stopped = threading.Event()
        self._pending = 0
        self._idle = threading.Condition()
        self._observer = None
        self._thread = threading.Thread(
            target=self._run, name=f"WatchSession[{root.name}]", daemon=True
        )

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def start(self):
        self._observer = Observer()
        self._observer.schedule(IndexHandler(self), str(self.root), recursive=True)
        self._observer.start()
        logger.info(f"[WATCH] Now watching for changes: {self.root}")

        # Observer first so nothing created during discovery is missed
        self.post(_DISCOVER)
        self._thread.start()

    def _discover(self):
        files = discover_media_files(self.root)
        logger.info(f"[SCAN] Discovered {len(files)} media files under {self.root}")
        for fp in files:
            if self.stopped:
                return
            self.discovered.add(self.indexer.relative_path(self, fp))
            self.post(EVENT_ADD, str(fp))
        self.post(EVENT_READY)

    def post(self, kind: str, path: Optional[str] = None):
        if self.stopped:
            return
        with self._idle:
            self._pending += 1
        self._q.put(_Event(kind, path))

    def stop(self, timeout: float = 10.0):
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=timeout)
        self._q.put(_Event(_STOP))
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        with self._idle:
            self._pending = 0
            self._idle.notify_all()
        logger.info(f"[WATCH] Stopped watching {self.root}")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every posted event has been applied."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def _run(self):
        while True:
            event = self._q.get()
            if event.kind == _STOP:
                break
            try:
                if self.stopped:
                    continue
                if event.kind == _DISCOVER:
                    try:
                        self._discover()
                    except Exception as e:
                        logger.error(f"❌ Discovery failed under {self.root}: {e}")
                        self.post(EVENT_READY)
                else:
                    self.indexer.apply_event(self, event.kind, event.path)
            finally:
                with self._idle:
                    self._pending = max(0, self._pending - 1)
                    if self._pending == 0:
                        self._idle.notify_all()


class IndexerService:
    """Indexer lifecycle: set_root / resync / get_stats / stop."""

    def __init__(
        self,
        db: CatalogDB,
        provider: Optional[EmbeddingProvider] = None,
        search=None,
    ):
        """
        Args:
            db: Catalog store
            provider: Embedding provider for the embedding pass (config
                      singleton if None, loaded lazily)
            search: Optional SearchService whose root follows this indexer
        """
        from catalog.utils.config import get_config
        cfg = get_config()

        self.db = db
        self.search = search
        self._provider = provider
        self.root_path: Optional[str] = None
        self.prune_missing = bool(cfg.get("indexer.prune_missing", True))
        self.max_errors = int(cfg.get("indexer.max_errors", 100))
        self.embeddings_enabled = bool(cfg.get("indexer.embeddings.enabled", False))

        self._stats = SyncStats()
        self._stats_lock = threading.Lock()
        self._session: Optional[WatchSession] = None
        self._session_lock = threading.Lock()
        self._embed_thread: Optional[threading.Thread] = None

    @property
    def text_provider(self) -> EmbeddingProvider:
        if self._provider is None:
            from catalog.vector.text_embedding import get_text_embedding_provider
            self._provider = get_text_embedding_provider()
        return self._provider

    # ── lifecycle ───────────────────────────────────────

    def set_root(self, path) -> str:
        """
        Start (or restart) watching a folder.

        Raises:
            ValueError: path is not an existing directory
        """
        root = Path(os.path.realpath(path))
        if not root.is_dir():
            raise ValueError(f"Directory not found: {path}")

        with self._session_lock:
            if self._session is not None:
                self._session.stop()
                self._join_embed_thread()

            self.root_path = _nfc(root)
            with self._stats_lock:
                self._stats = SyncStats(status='scanning', rootPath=self.root_path)
            if self.search is not None:
                self.search.set_root_path(self.root_path)

            self._session = WatchSession(self, root)
            self._session.start()

        logger.info(f"[WATCH] Root set to {self.root_path}")
        return self.root_path

    def resync(self) -> Optional[str]:
        """Full rescan of the current root."""
        if not self.root_path:
            logger.warning("Resync requested but no root path is set")
            return None
        return self.set_root(self.root_path)

    def stop(self):
        with self._session_lock:
            if self._session is not None:
                self._session.stop()
                self._session = None
            self._join_embed_thread()
        with self._stats_lock:
            self._stats.status = 'idle'

    def _join_embed_thread(self, timeout: float = 30.0):
        thread = self._embed_thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("⚠️ Embedding pass still running after stop")
        self._embed_thread = None

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        session = self._session
        return session.wait_idle(timeout) if session else True

    def get_stats(self) -> SyncStats:
        """Snapshot of the running statistics; never the live object."""
        with self._stats_lock:
            return self._stats.model_copy(deep=True)

    # ── event application (consumer thread) ─────────────

    @staticmethod
    def relative_path(session: WatchSession, abs_path) -> str:
        """
        Raises:
            ValueError: abs_path is not below the session root
        """
        rel = Path(_nfc(abs_path)).relative_to(session.root_str)
        return rel.as_posix()

    def apply_event(self, session: WatchSession, kind: str, path: Optional[str]):
        """Apply one event. Never raises; failures land in stats.errors."""
        if kind == EVENT_READY:
            self._handle_ready(session)
            return

        rel = path
        try:
            rel = self.relative_path(session, path)
            if kind in (EVENT_ADD, EVENT_CHANGE):
                self._handle_add(session, Path(path), rel)
            elif kind == EVENT_UNLINK:
                self._handle_unlink(session, rel)
            elif kind == EVENT_UNLINK_DIR:
                self._handle_unlink_dir(session, rel)
        except Exception as e:
            logger.error(f"❌ Error processing {kind} {path}: {e}")
            self._record_error(rel, e)

    def _handle_add(self, session: WatchSession, abs_path: Path, rel: str):
        media_type = classify(abs_path)
        if media_type is None:
            return

        with self._stats_lock:
            self._stats.currentFile = rel
            self._stats.processedFiles += 1

        info = read_file_info(abs_path)
        file_metadata = extract_metadata(abs_path, media_type, info.size)
        self.db.upsert_asset(session.root_str, rel, media_type, info, file_metadata)

        with self._stats_lock:
            if rel not in session.counted:
                session.counted.add(rel)
                self._stats.totalFiles += 1
                self._bump_type(media_type, 1)

    def _handle_unlink(self, session: WatchSession, rel: str):
        media_type = classify(rel)
        if media_type is None:
            return
        removed = self.db.delete_asset_by_path(session.root_str, rel)
        with self._stats_lock:
            if rel in session.counted:
                session.counted.discard(rel)
                self._stats.totalFiles = max(0, self._stats.totalFiles - 1)
                self._bump_type(media_type, -1)
        if removed:
            logger.info(f"[WATCH] Removed {rel}")

    def _handle_unlink_dir(self, session: WatchSession, rel_dir: str):
        prefix = rel_dir.rstrip('/') + '/'
        for rel in sorted(p for p in self.db.list_paths(session.root_str) if p.startswith(prefix)):
            self._handle_unlink(session, rel)

    def _handle_ready(self, session: WatchSession):
        pruned = 0
        if self.prune_missing:
            try:
                pruned = self.db.prune_missing(session.root_str, session.discovered | session.counted)
            except Exception as e:
                logger.error(f"❌ Prune failed for {session.root_str}: {e}")
                self._record_error(session.root_str, e)

        with self._stats_lock:
            self._stats.status = 'idle'
            self._stats.lastSync = now_ms()
            self._stats.currentFile = None
            total = self._stats.totalFiles
        logger.info(f"[SCAN] Initial scan complete: {total} files ({pruned} pruned)")

        if self.embeddings_enabled and not session.stopped:
            self._embed_thread = threading.Thread(
                target=self.process_embeddings,
                args=(session.root_str, session),
                name="EmbeddingPass",
                daemon=True,
            )
            self._embed_thread.start()

    def _bump_type(self, media_type: str, delta: int):
        by_type = self._stats.filesByType
        if media_type == 'image':
            by_type.images = max(0, by_type.images + delta)
        elif media_type == 'video':
            by_type.videos = max(0, by_type.videos + delta)
        else:
            by_type.other = max(0, by_type.other + delta)

    def _record_error(self, rel: Optional[str], error: Exception):
        with self._stats_lock:
            self._stats.errors.append(
                FileError(file=str(rel), error=str(error), timestamp=now_ms())
            )
            if len(self._stats.errors) > self.max_errors:
                del self._stats.errors[:-self.max_errors]

    # ── embedding pass ──────────────────────────────────

    def process_embeddings(
        self,
        root_path: Optional[str] = None,
        session: Optional[WatchSession] = None,
    ) -> int:
        """
        Embed every asset of the root that has no (valid) embedding.

        Args:
            root_path: Root to embed (current root if None)
            session: Watch session that owns the pass; once it stops the
                pass ends and leaves stats alone

        Returns:
            Number of embeddings written
        """
        root_path = root_path or self.root_path
        if not root_path:
            return 0

        def superseded() -> bool:
            return session is not None and session.stopped

        if superseded():
            return 0
        with self._stats_lock:
            self._stats.status = 'indexing'

        generated = 0
        try:
            self.db.sync_vectors(root_path)
            pending = self.db.assets_missing_embedding(root_path)
            logger.info(f"[EMBED] {len(pending)} assets need embeddings")

            for asset in pending:
                if superseded():
                    logger.info("[EMBED] Session stopped, ending embedding pass")
                    break
                try:
                    vec = self.text_provider.encode(build_embedding_text(asset))
                except Exception as e:
                    logger.warning(f"[EMBED] Gateway failed for {asset.path}: {e}")
                    vec = None
                if vec is None:
                    continue
                if self.db.set_embedding(asset.id, vec):
                    generated += 1
                    with self._stats_lock:
                        if not superseded():
                            self._stats.embeddingsGenerated += 1
        except Exception as e:
            logger.error(f"❌ Embedding pass failed: {e}")
            if not superseded():
                self._record_error(root_path, e)
        finally:
            with self._stats_lock:
                if not superseded() and self._stats.status == 'indexing':
                    self._stats.status = 'idle'

        logger.info(f"[EMBED] Generated {generated} embeddings")
        return generated
