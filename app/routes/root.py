"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import memgraph.config as config


router = APIRouter()


@router.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": "MemGraph",
        "version": "0.1.0",
        "description": "Multi-tenant memory and knowledge-graph engine",
        "embedding_model": config.EMBEDDING_MODEL,
        "llm_model": config.LLM_MODEL,
        "endpoints": {
            "health": "/health",
            "health_deps": "/health/deps",
            "memories": "/v1/memories",
            "entities": "/v1/entities",
            "relations": "/v1/relations",
            "graph": "/v1/graph",
            "extract": "/v1/extract",
            "account": "/v1/account",
        },
    }
