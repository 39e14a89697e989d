"""
Environment-driven settings for MemGraph.

Everything here is read once at import. ``validate_and_prepare_config`` runs
at startup to derive the database URL and reject incoherent combinations.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, TypeVar

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("memgraph")

_Number = TypeVar("_Number", int, float)

PROVIDER_CHOICES = {"openai", "none"}


def _get_bool(env_name: str, default: bool) -> bool:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_number(env_name: str, default: _Number, cast: Callable[[str], _Number]) -> _Number:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("config_value_ignored", extra={"setting": env_name, "value": raw})
        return default


def _get_int(env_name: str, default: int) -> int:
    return _get_number(env_name, default, int)


def _get_float(env_name: str, default: float) -> float:
    return _get_number(env_name, default, float)


def _get_choice(env_name: str, default: str) -> str:
    return os.environ.get(env_name, default).strip().lower()


def _get_list(env_name: str) -> list[str]:
    return [item.strip() for item in os.environ.get(env_name, "").split(",") if item.strip()]


# Database settings
DB_BACKEND = _get_choice("DB_BACKEND", "postgres")
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/memgraph.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Embedding settings
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
EMBEDDING_PROVIDER = _get_choice("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_FAILURE_THRESHOLD = _get_int("EMBEDDING_FAILURE_THRESHOLD", 5)
EMBEDDING_COOLDOWN_SECONDS = _get_int("EMBEDDING_COOLDOWN_SECONDS", 60)
EMBEDDING_HEALTHCHECK_ENABLED = _get_bool("EMBEDDING_HEALTHCHECK_ENABLED", True)

# LLM settings
LLM_PROVIDER = _get_choice("LLM_PROVIDER", "openai")
LLM_MODEL = os.environ.get("LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = _get_float("LLM_TEMPERATURE", 0.3)
LLM_TIMEOUT_SECONDS = _get_float("LLM_TIMEOUT_SECONDS", 60.0)
LLM_FAILURE_THRESHOLD = _get_int("LLM_FAILURE_THRESHOLD", 5)
LLM_COOLDOWN_SECONDS = _get_int("LLM_COOLDOWN_SECONDS", 60)

# API key validation
API_KEY_PREFIX = os.environ.get("API_KEY_PREFIX", "mk_")
REDIS_URL = os.environ.get("REDIS_URL")
KEY_CACHE_PREFIX = os.environ.get("KEY_CACHE_PREFIX", "apikey:")
KEY_CACHE_TTL_SECONDS = _get_int("KEY_CACHE_TTL_SECONDS", 60)
KEY_CACHE_MAX_ENTRIES = _get_int("KEY_CACHE_MAX_ENTRIES", 10000)

# HTTP boundary
TRUSTED_HOSTS = _get_list("TRUSTED_HOSTS")
CORS_ALLOWED_ORIGINS = _get_list("CORS_ALLOWED_ORIGINS") or [os.environ.get("FRONTEND_URL", "http://localhost:3000")]

# Request/input limits
MAX_RESULT_LIMIT = _get_int("MEMGRAPH_MAX_RESULT_LIMIT", 100)
MAX_GRAPH_LIMIT = _get_int("MEMGRAPH_MAX_GRAPH_LIMIT", 5000)
MAX_QUERY_LENGTH = _get_int("MEMGRAPH_MAX_QUERY_LENGTH", 4000)
MAX_CONTENT_LENGTH = _get_int("MEMGRAPH_MAX_CONTENT_LENGTH", 32000)
MAX_EXTRACT_TEXT_LENGTH = _get_int("MEMGRAPH_MAX_EXTRACT_TEXT_LENGTH", 32000)
MAX_SHORT_TEXT_LENGTH = _get_int("MEMGRAPH_MAX_SHORT_TEXT_LENGTH", 255)
MAX_METADATA_BYTES = _get_int("MEMGRAPH_MAX_METADATA_BYTES", 20000)
MAX_TAG_ITEMS = _get_int("MEMGRAPH_MAX_TAG_ITEMS", 50)
MAX_BATCH_ITEMS = _get_int("MEMGRAPH_MAX_BATCH_ITEMS", 100)

# Graph traversal defaults
TRAVERSE_DEFAULT_DEPTH = _get_int("TRAVERSE_DEFAULT_DEPTH", 2)
TRAVERSE_MAX_DEPTH = _get_int("TRAVERSE_MAX_DEPTH", 10)
PATH_DEFAULT_DEPTH = _get_int("PATH_DEFAULT_DEPTH", 6)
FULL_GRAPH_DEFAULT_LIMIT = _get_int("FULL_GRAPH_DEFAULT_LIMIT", 1000)

# Extraction defaults
EXTRACT_MIN_CONFIDENCE = _get_float("EXTRACT_MIN_CONFIDENCE", 0.5)


def _resolve_database_url(errors: list[str]) -> None:
    global DATABASE_URL

    if DATABASE_URL:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if is_sqlite_url != (DB_BACKEND == "sqlite"):
            errors.append(f"DATABASE_URL does not match DB_BACKEND={DB_BACKEND}")
        return
    if DB_BACKEND != "sqlite":
        errors.append("DATABASE_URL environment variable is required")
    elif not SQLITE_PATH:
        errors.append("SQLITE_PATH environment variable is required for sqlite")
    else:
        DATABASE_URL = f"sqlite:///{SQLITE_PATH}"


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    errors: list[str] = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")
    _resolve_database_url(errors)

    for name, value in (("EMBEDDING_PROVIDER", EMBEDDING_PROVIDER), ("LLM_PROVIDER", LLM_PROVIDER)):
        if value not in PROVIDER_CHOICES:
            errors.append(f"{name} must be one of {sorted(PROVIDER_CHOICES)}")
    if KEY_CACHE_TTL_SECONDS <= 0:
        errors.append("KEY_CACHE_TTL_SECONDS must be positive")
    if not 0.0 <= EXTRACT_MIN_CONFIDENCE <= 1.0:
        errors.append("EXTRACT_MIN_CONFIDENCE must be between 0.0 and 1.0")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))

    if "openai" in (EMBEDDING_PROVIDER, LLM_PROVIDER) and not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; embedding and extraction calls will fail.")
    if not REDIS_URL:
        logger.info("REDIS_URL not set; using in-process API key cache.")
