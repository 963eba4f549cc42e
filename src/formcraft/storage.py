from __future__ import annotations

import logging

from formcraft.config import Settings, ensure_dirs
from formcraft.protocols import Storage
from formcraft.repo_json import JSONStorage
from formcraft.repo_sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def init_storage(settings: Settings) -> Storage:
    ensure_dirs(settings)
    if settings.storage_backend == "json":
        logger.info("Using JSON document store at %s", settings.json_path)
        return JSONStorage(settings.json_path)
    logger.info("Using SQLite store at %s", settings.sqlite_path)
    return SQLiteStorage(settings.sqlite_path)
