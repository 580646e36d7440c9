"""
Embedding gateway for semantic search.

Backend: Ollama /api/embed. The provider never raises on transport or
model errors; it logs and returns None so callers degrade to exact and
full-text search.

Vectors longer than the configured dimension are truncated and
re-normalized (Matryoshka-style); shorter ones are rejected.

Usage:
    provider = get_text_embedding_provider()
    query_vec = provider.encode("red dragon over a castle", is_query=True)
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import numpy as np
import requests

if TYPE_CHECKING:
    from catalog.parser.schema import Asset

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for text embedding providers."""

    @abstractmethod
    def encode(self, text: str, is_query: bool = False) -> Optional[np.ndarray]:
        """
        Encode text to a normalized embedding vector.

        Args:
            text: Input text string
            is_query: If True, apply the query instruction prefix

        Returns:
            L2-normalized float32 array of shape (dimensions,), or None
            when no embedding could be produced
        """
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the embedding dimensionality."""
        ...


def _fit_dimensions(vec: np.ndarray, dimensions: int) -> Optional[np.ndarray]:
    if len(vec) < dimensions:
        logger.error(f"Embedding has {len(vec)} dims, expected {dimensions}")
        return None
    vec = vec[:dimensions]
    norm = np.linalg.norm(vec)
    if norm > 0:
        vec = vec / norm
    return vec.astype(np.float32)


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embeddings via Ollama's /api/embed endpoint."""

    def __init__(
        self,
        model: Optional[str] = None,
        host: Optional[str] = None,
        dimensions: Optional[int] = None,
        instruction_prefix: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        from catalog.utils.config import get_config
        cfg = get_config()

        self.model = model or cfg.get("embedding.model", "nomic-embed-text")
        self.host = host or cfg.get("embedding.host", "http://localhost:11434")
        self._dimensions = int(dimensions or cfg.get("embedding.dimensions", 512))
        self._instruction_prefix = instruction_prefix or cfg.get(
            "embedding.instruction_prefix", ""
        )
        self._timeout_s = float(timeout_s or cfg.get("embedding.timeout_s", 30))
        self._embed_url = f"{self.host.rstrip('/')}/api/embed"

        logger.info(
            f"OllamaEmbeddingProvider initialized "
            f"(model={self.model}, dims={self._dimensions})"
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def encode(self, text: str, is_query: bool = False) -> Optional[np.ndarray]:
        """
        Encode text via Ollama embed API.

        Args:
            text: Input text
            is_query: If True, prepend instruction_prefix for retrieval queries

        Returns:
            L2-normalized float32 numpy array, or None on any failure
        """
        if not text or not text.strip():
            return None

        input_text = text.strip()
        if is_query and self._instruction_prefix:
            input_text = f"{self._instruction_prefix}{input_text}"

        payload = {
            "model": self.model,
            "input": input_text,
        }

        try:
            resp = requests.post(self._embed_url, json=payload, timeout=self._timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except requests.ConnectionError:
            logger.error(
                f"Cannot connect to Ollama at {self.host}. "
                f"Is Ollama running? (ollama serve)"
            )
            return None
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Embedding request failed: {e}")
            return None

        embeddings = data.get("embeddings") or []
        if not embeddings:
            logger.error("Empty embeddings response from Ollama")
            return None

        return _fit_dimensions(np.array(embeddings[0], dtype=np.float32), self._dimensions)


def build_embedding_text(asset: "Asset") -> str:
    """
    Build the document string embedded for an asset.

    Combines file stem, prompt, model and media type, e.g.
    'sunset_01 | golden hour over the sea | sdxl | image'.
    """
    parts = [Path(asset.path).stem]
    for key in ('prompt', 'model'):
        val = asset.metadata.get(key)
        if val and str(val).strip():
            parts.append(str(val).strip())
    parts.append(asset.type)
    return " | ".join(parts)


# ── Singleton / Factory ───────────────────────────────────

_provider_instance: Optional[EmbeddingProvider] = None


def get_text_embedding_provider() -> EmbeddingProvider:
    """Return a singleton provider based on config.yaml."""
    global _provider_instance
    if _provider_instance is None:
        from catalog.utils.config import get_config

        backend = get_config().get("embedding.provider", "ollama")
        if backend != "ollama":
            raise ValueError(f"Unknown embedding provider: {backend}")
        _provider_instance = OllamaEmbeddingProvider()

    return _provider_instance


def set_text_embedding_provider(provider: Optional[EmbeddingProvider]) -> None:
    """Install (or drop, with None) the singleton provider."""
    global _provider_instance
    _provider_instance = provider
