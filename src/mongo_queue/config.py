# src/mongo_queue/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the CLI / composition root.
- Library classes never read settings themselves; everything is passed in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "MONGO_QUEUE"

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "queue"
DEFAULT_TASK_COLLECTION = "queueTasks"
DEFAULT_WAIT_BEFORE_RETRY_MS = 10000


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- MongoDB ----
    mongo_uri: str
    db_name: str
    task_collection: str

    # ---- Engine ----
    wait_before_retry_ms: int
    system_name: str | None

    # ---- Logging ----
    log_level: str
    log_file: Path | None

    @staticmethod
    def from_env() -> "Settings":
        mongo_uri = _env(_k("MONGO_URI"), DEFAULT_MONGO_URI).strip() or DEFAULT_MONGO_URI
        db_name = _env(_k("DB_NAME"), DEFAULT_DB_NAME).strip() or DEFAULT_DB_NAME
        task_collection = _env(_k("TASK_COLLECTION"), DEFAULT_TASK_COLLECTION).strip() or DEFAULT_TASK_COLLECTION

        wait_before_retry_ms = max(0, _env_int(_k("WAIT_BEFORE_RETRY_MS"), DEFAULT_WAIT_BEFORE_RETRY_MS))

        # Explicit name wins; in Kubernetes the pod name is the natural default.
        system_name = (_first_env(_k("SYSTEM_NAME"), "POD_NAME", default="") or "").strip() or None

        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"
        log_file = _env_path(_k("LOG_FILE"))

        return Settings(
            mongo_uri=mongo_uri,
            db_name=db_name,
            task_collection=task_collection,
            wait_before_retry_ms=wait_before_retry_ms,
            system_name=system_name,
            log_level=log_level,
            log_file=log_file,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings.from_env()
