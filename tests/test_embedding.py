"""Ollama embedding gateway: request shape, normalization, failure handling."""

import numpy as np
import pytest
import requests

from catalog.parser.schema import Asset
from catalog.vector import text_embedding
from catalog.vector.text_embedding import (
    OllamaEmbeddingProvider,
    build_embedding_text,
    get_text_embedding_provider,
    set_text_embedding_provider,
)


class _Response:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


@pytest.fixture
def provider():
    return OllamaEmbeddingProvider(
        model="test-embed", host="http://ollama.test:11434/", dimensions=4, timeout_s=2
    )


def test_encode_posts_and_normalizes(provider, monkeypatch):
    seen = {}

    def fake_post(url, json=None, timeout=None):
        seen.update(url=url, body=json, timeout=timeout)
        return _Response({"embeddings": [[3.0, 0.0, 4.0, 0.0, 99.0]]})

    monkeypatch.setattr(text_embedding.requests, "post", fake_post)
    vec = provider.encode("  red dragon ")

    assert seen["url"] == "http://ollama.test:11434/api/embed"
    assert seen["body"] == {"model": "test-embed", "input": "red dragon"}
    assert seen["timeout"] == 2.0
    assert vec.dtype == np.float32
    assert vec.tolist() == pytest.approx([0.6, 0.0, 0.8, 0.0])


def test_short_vector_is_rejected(provider, monkeypatch):
    monkeypatch.setattr(
        text_embedding.requests, "post",
        lambda *a, **k: _Response({"embeddings": [[1.0, 2.0]]}),
    )
    assert provider.encode("x") is None


def test_blank_text_makes_no_request(provider, monkeypatch):
    def fail(*a, **k):
        raise AssertionError("no request expected")

    monkeypatch.setattr(text_embedding.requests, "post", fail)
    assert provider.encode("   ") is None


@pytest.mark.parametrize("error", [
    requests.ConnectionError("refused"),
    requests.Timeout("slow"),
])
def test_transport_errors_yield_none(provider, monkeypatch, error):
    def boom(*a, **k):
        raise error

    monkeypatch.setattr(text_embedding.requests, "post", boom)
    assert provider.encode("x") is None


def test_http_error_and_empty_payload_yield_none(provider, monkeypatch):
    monkeypatch.setattr(
        text_embedding.requests, "post", lambda *a, **k: _Response({}, status=500)
    )
    assert provider.encode("x") is None

    monkeypatch.setattr(
        text_embedding.requests, "post", lambda *a, **k: _Response({"embeddings": []})
    )
    assert provider.encode("x") is None


def test_build_embedding_text():
    asset = Asset(
        id="a", root_path="/r", path="shots/sunset_01.png", type="image",
        created_at=0, updated_at=0,
        metadata={"prompt": " golden hour ", "model": "sdxl", "seed": 7},
    )
    assert build_embedding_text(asset) == "sunset_01 | golden hour | sdxl | image"


def test_provider_singleton_follows_config(app_config):
    first = get_text_embedding_provider()
    assert isinstance(first, OllamaEmbeddingProvider)
    assert get_text_embedding_provider() is first

    set_text_embedding_provider(None)
    assert get_text_embedding_provider() is not first
