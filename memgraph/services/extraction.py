"""
Extraction pipeline: text -> LLM -> filtered entities/relations -> graph.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import memgraph.config as config
from memgraph.db import DB
from memgraph.models import UsageType
from memgraph.services import entities as entity_service
from memgraph.services import relations as relation_service
from memgraph.services import usage as usage_service
from memgraph.services.llm import LLMProvider, get_llm_provider
from memgraph.validators import validate_confidence, validate_required_text

logger = config.logger


@dataclass
class ExtractionOptions:
    entity_types: Optional[Sequence[str]] = None
    relation_types: Optional[Sequence[str]] = None
    min_confidence: float = 0.5
    save_to_graph: bool = True


def _confidence(item: dict) -> float:
    value = item.get("confidence")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 1.0
    return float(value)


def _usable_entity(item: dict) -> bool:
    return bool(isinstance(item.get("name"), str) and item["name"].strip()
                and isinstance(item.get("type"), str) and item["type"].strip())


def _usable_relation(item: dict) -> bool:
    return all(isinstance(item.get(key), str) and item[key].strip() for key in ("source", "target", "type"))


def _run(text: str, options: ExtractionOptions, provider: Optional[LLMProvider]) -> dict:
    validate_required_text(text, "text", config.MAX_EXTRACT_TEXT_LENGTH)
    validate_confidence(options.min_confidence, "min_confidence")
    extracted = (provider or get_llm_provider()).extract_entities_and_relations(
        text,
        options.entity_types,
        options.relation_types,
    )

    found_entities = []
    for item in extracted.get("entities", []):
        if not _usable_entity(item):
            continue
        item = {**item, "confidence": _confidence(item)}
        if item["confidence"] >= options.min_confidence:
            found_entities.append(item)

    found_relations = []
    for item in extracted.get("relations", []):
        if not _usable_relation(item):
            continue
        item = {**item, "confidence": _confidence(item)}
        if item["confidence"] >= options.min_confidence:
            found_relations.append(item)

    return {"entities": found_entities, "relations": found_relations}


def preview(text: str, options: Optional[ExtractionOptions] = None, provider: Optional[LLMProvider] = None) -> dict:
    """Run extraction and filtering without touching the graph."""
    return _run(text, options or ExtractionOptions(), provider)


def extract_from_text(
    api_key_id: str,
    user_id: str,
    text: str,
    options: Optional[ExtractionOptions] = None,
    provider: Optional[LLMProvider] = None,
) -> dict:
    options = options or ExtractionOptions()
    validate_required_text(user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    raw = _run(text, options, provider)
    usage_service.record_usage_by_api_key(api_key_id, UsageType.EXTRACTION)
    if not options.save_to_graph:
        return {"entities": [], "relations": [], "raw_extraction": raw}

    db = DB.SessionLocal()
    try:
        saved_entities = []
        ids_by_name: dict[str, str] = {}
        for item in raw["entities"]:
            properties = item.get("properties")
            entity = entity_service.upsert_in(
                db,
                api_key_id,
                entity_service.EntityInput(
                    user_id=user_id,
                    type=item["type"],
                    name=item["name"],
                    properties=properties if isinstance(properties, dict) else None,
                    confidence=item["confidence"],
                ),
            )
            ids_by_name[item["name"].lower()] = entity.id
            saved_entities.append(entity)

        saved_relations = []
        for item in raw["relations"]:
            source_id = ids_by_name.get(item["source"].lower())
            target_id = ids_by_name.get(item["target"].lower())
            if source_id is None or target_id is None:
                logger.info(
                    "extraction_relation_unresolved",
                    extra={"source": item["source"], "target": item["target"], "type": item["type"]},
                )
                continue
            properties = item.get("properties")
            saved_relations.append(
                relation_service.create_in(
                    db,
                    api_key_id,
                    relation_service.RelationInput(
                        user_id=user_id,
                        source_id=source_id,
                        target_id=target_id,
                        type=item["type"],
                        properties=properties if isinstance(properties, dict) else None,
                        confidence=item["confidence"],
                    ),
                )
            )
        db.commit()
        return {
            "entities": [entity_service.entity_to_dict(entity) for entity in saved_entities],
            "relations": [relation_service.relation_to_dict(relation) for relation in saved_relations],
            "raw_extraction": raw,
        }
    finally:
        db.close()


def extract_from_texts(
    api_key_id: str,
    user_id: str,
    texts: Sequence[str],
    options: Optional[ExtractionOptions] = None,
    provider: Optional[LLMProvider] = None,
) -> dict:
    """Sequential extraction over many texts with accumulated results."""
    result = {"entities": [], "relations": [], "raw_extraction": {"entities": [], "relations": []}}
    for text in texts:
        single = extract_from_text(api_key_id, user_id, text, options, provider)
        result["entities"].extend(single["entities"])
        result["relations"].extend(single["relations"])
        result["raw_extraction"]["entities"].extend(single["raw_extraction"]["entities"])
        result["raw_extraction"]["relations"].extend(single["raw_extraction"]["relations"])
    return result
