"""
Shared fixtures for the catalog test suite.

- app_config (autouse): config.yaml from the repo, no user settings
- db: fresh CatalogDB on a temp file, 4-dim vectors
- vec_db: same, skipped when sqlite-vec cannot be loaded
- make_provider: in-memory EmbeddingProvider keyed by text
- add_asset: insert an asset row without touching the filesystem
"""

from typing import Dict, Optional

import numpy as np
import pytest

from catalog.db.sqlite_client import CatalogDB
from catalog.parser.media import FileInfo
from catalog.utils.config import AppConfig, reset_config
from catalog.vector.text_embedding import EmbeddingProvider, set_text_embedding_provider

ROOT = "/library"
DIMS = 4


@pytest.fixture(autouse=True)
def app_config(tmp_path, monkeypatch):
    for key in ("CATALOG_DB_PATH", "OLLAMA_HOST", "EMBEDDING_MODEL"):
        monkeypatch.delenv(key, raising=False)
    cfg = AppConfig(user_settings_path=tmp_path / "no-user-settings.yaml")
    reset_config(cfg)
    yield cfg
    reset_config(None)
    set_text_embedding_provider(None)


@pytest.fixture
def db(tmp_path):
    catalog = CatalogDB(str(tmp_path / "catalog.db"), vector_dimensions=DIMS)
    yield catalog
    catalog.close()


@pytest.fixture
def vec_db(db):
    if not db.vector_search_enabled:
        pytest.skip("sqlite-vec not available")
    return db


class FakeProvider(EmbeddingProvider):
    """Returns preset vectors; unknown text -> None, `fail=True` -> raises."""

    def __init__(self, vectors: Optional[Dict[str, list]] = None, fail: bool = False):
        self.vectors = vectors or {}
        self.fail = fail
        self.calls = []

    @property
    def dimensions(self) -> int:
        return DIMS

    def encode(self, text: str, is_query: bool = False):
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend down")
        vec = self.vectors.get(text)
        return None if vec is None else np.asarray(vec, dtype=np.float32)


@pytest.fixture
def make_provider():
    """make_provider({text: vector}, fail=False) -> FakeProvider"""
    return FakeProvider


@pytest.fixture
def add_asset(db):
    """add_asset(path, created_at=..., type='image', root=ROOT, **metadata) -> Asset"""
    counter = {"ts": 1_700_000_000_000}

    def _add(path, created_at=None, type="image", root=ROOT, embedding=None, **metadata):
        counter["ts"] += 1000
        ts = created_at if created_at is not None else counter["ts"]
        asset = db.upsert_asset(
            root, path, type, FileInfo(size=10, created_at=ts, modified_at=ts), {"fileSize": 10}
        )
        if metadata:
            asset = db.update_metadata(asset.id, {**asset.metadata, **metadata})
        if embedding is not None:
            db.set_embedding(asset.id, embedding)
            asset = db.get_asset(asset.id)
        return asset

    return _add
