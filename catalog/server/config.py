"""
Server configuration: reads from config.yaml server section.
"""

import logging
from typing import List

from catalog.utils.config import get_config

logger = logging.getLogger(__name__)


def get_server_config() -> dict:
    """Server section of config.yaml (with user/env overrides)."""
    return get_config().section("server")


def get_cors_origins() -> List[str]:
    cfg = get_server_config()
    origins = list(cfg.get("cors_origins", ["http://localhost:8000"]))
    # file:// frontends send Origin: null
    if "*" not in origins and "null" not in origins:
        origins.append("null")
    return origins


def get_db_path() -> str:
    """SQLite database path; relative paths resolve against the project root."""
    return get_config().get("database.path", "asset-catalog.db")
