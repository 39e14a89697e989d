"""
Extraction pipeline endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

import memgraph.config as config
from memgraph.errors import ValidationIssue
from memgraph.services import extraction as extraction_service
from app.deps import TenantContext, require_tenant


router = APIRouter(prefix="/v1/extract", tags=["extract"])


class ExtractOptionsIn(BaseModel):
    entity_types: Optional[list[str]] = None
    relation_types: Optional[list[str]] = None
    min_confidence: float = config.EXTRACT_MIN_CONFIDENCE

    def to_options(self, save_to_graph: bool = True) -> extraction_service.ExtractionOptions:
        return extraction_service.ExtractionOptions(
            entity_types=self.entity_types,
            relation_types=self.relation_types,
            min_confidence=self.min_confidence,
            save_to_graph=save_to_graph,
        )


class ExtractIn(ExtractOptionsIn):
    user_id: str
    text: Optional[str] = None
    texts: Optional[list[str]] = None
    save_to_graph: bool = True


class PreviewIn(ExtractOptionsIn):
    text: str


@router.post("")
def extract(payload: ExtractIn, tenant: TenantContext = Depends(require_tenant)):
    options = payload.to_options(payload.save_to_graph)
    if payload.texts is not None:
        if len(payload.texts) > config.MAX_BATCH_ITEMS:
            raise ValidationIssue(
                f"texts exceeds max items {config.MAX_BATCH_ITEMS}",
                field="texts",
                error_type="max_items",
            )
        return extraction_service.extract_from_texts(tenant.api_key_id, payload.user_id, payload.texts, options)
    if payload.text is None:
        raise ValidationIssue("text or texts is required", field="text", error_type="required")
    return extraction_service.extract_from_text(tenant.api_key_id, payload.user_id, payload.text, options)


@router.post("/preview")
def preview(payload: PreviewIn, tenant: TenantContext = Depends(require_tenant)):
    return extraction_service.preview(payload.text, payload.to_options(save_to_graph=False))
