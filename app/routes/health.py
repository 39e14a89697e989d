"""
Liveness and dependency checks.

``/health`` answers from local state only (database round trip, schema
revision, breaker state). ``/health/deps`` may also call the embedding
provider once.
"""

from __future__ import annotations

import time

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

import memgraph.config as config
from memgraph.cache import RedisKeyCache, get_key_cache
from memgraph.db import DB, _get_schema_revisions
from memgraph.errors import EmbeddingProviderError
from memgraph.services.embeddings import get_embedding_provider


router = APIRouter()

SERVICE_NAME = "MemGraph"


def _check_db_health(check_schema: bool = True) -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}
    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        return {"ok": False, "error": str(exc)}
    if not check_schema:
        return {"ok": True}

    current_rev, head_rev = _get_schema_revisions(DB.engine)
    up_to_date = head_rev is None or current_rev == head_rev
    return {
        "ok": up_to_date,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": up_to_date,
    }


def _probe_embeddings(provider) -> dict:
    started = time.monotonic()
    try:
        provider.embed("healthcheck")
    except EmbeddingProviderError as exc:
        return {"status": "error", "error": str(exc)}
    return {"status": "ok", "latency_ms": int((time.monotonic() - started) * 1000)}


def _check_embedding_health(check_external: bool) -> dict:
    """Breaker state first; an open breaker short-circuits any probe."""
    provider = get_embedding_provider()
    breaker = getattr(provider, "breaker", None)
    report = {
        "provider": config.EMBEDDING_PROVIDER,
        "model": config.EMBEDDING_MODEL,
        "circuit_breaker": breaker.status() if breaker is not None else None,
        "checked": False,
    }
    if config.EMBEDDING_PROVIDER == "none":
        return {**report, "status": "disabled"}
    if report["circuit_breaker"] and report["circuit_breaker"].get("open"):
        return {**report, "status": "cooldown"}
    if not check_external:
        return {**report, "status": "ready"}
    if not config.EMBEDDING_HEALTHCHECK_ENABLED:
        return {**report, "status": "skipped"}
    return {**report, "checked": True, **_probe_embeddings(provider)}


def _key_cache_backend() -> str:
    return "redis" if isinstance(get_key_cache(), RedisKeyCache) else "memory"


@router.get("/health")
def health():
    db_health = _check_db_health()
    embedding_status = _check_embedding_health(check_external=False)
    if not db_health.get("ok"):
        raise HTTPException(
            status_code=503,
            detail={"database": db_health, "embedding_provider": embedding_status},
        )
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": "0.1.0",
        "database": db_health,
        "embedding_provider": embedding_status,
        "key_cache": _key_cache_backend(),
    }


@router.get("/health/deps")
def health_deps():
    """Like /health, plus one live embedding call when enabled."""
    db_health = _check_db_health()
    if not db_health.get("ok"):
        raise HTTPException(status_code=503, detail={"database": db_health})
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "database": db_health,
        "embedding_provider": _check_embedding_health(check_external=True),
    }
