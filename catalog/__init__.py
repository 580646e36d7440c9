"""Local media-asset catalog: folder indexing and hybrid search."""

__version__ = "0.1.0"
