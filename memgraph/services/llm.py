"""
LLM provider used by the extraction pipeline.
"""

from __future__ import annotations

import json
import threading
from typing import Optional, Protocol, Sequence

import httpx

import memgraph.config as config
from memgraph.errors import LLMProviderError
from memgraph.services.providers import OpenAICompatibleClient, ProviderCircuitBreaker

logger = config.logger

EXTRACTION_PROMPT = (
    "You are an entity extraction and relation extraction system for a knowledge graph. "
    "Identify the entities mentioned in the text and the relations between them. "
    "Respond with a single JSON object of the form "
    '{"entities": [{"name": str, "type": str, "confidence": float, "properties": object}], '
    '"relations": [{"source": str, "target": str, "type": str, "confidence": float}]}. '
    "Relation source and target must be entity names from the entities list. "
    "Confidence is a number between 0 and 1."
)


class LLMProvider(Protocol):
    def extract_entities_and_relations(
        self,
        text: str,
        entity_types: Optional[Sequence[str]] = None,
        relation_types: Optional[Sequence[str]] = None,
    ) -> dict: ...


def build_extraction_prompt(
    entity_types: Optional[Sequence[str]] = None,
    relation_types: Optional[Sequence[str]] = None,
) -> str:
    prompt = EXTRACTION_PROMPT
    if entity_types:
        prompt += f" Focus on these entity types: {', '.join(entity_types)}."
    if relation_types:
        prompt += f" Focus on these relation types: {', '.join(relation_types)}."
    return prompt


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_extraction(content: str) -> dict:
    """Parse the model's JSON answer; anything unusable becomes empty lists."""
    try:
        parsed = json.loads(_strip_code_fence(content or ""))
    except ValueError:
        logger.warning("llm_extraction_invalid_json")
        return {"entities": [], "relations": []}
    if not isinstance(parsed, dict):
        return {"entities": [], "relations": []}
    entities = parsed.get("entities")
    relations = parsed.get("relations")
    return {
        "entities": [item for item in entities if isinstance(item, dict)] if isinstance(entities, list) else [],
        "relations": [item for item in relations if isinstance(item, dict)] if isinstance(relations, list) else [],
    }


class OpenAILLMProvider(OpenAICompatibleClient):
    kind = "llm"
    error_class = LLMProviderError
    timeout_seconds = config.LLM_TIMEOUT_SECONDS

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        breaker: Optional[ProviderCircuitBreaker] = None,
    ):
        super().__init__(
            api_key,
            provider or config.LLM_PROVIDER,
            base_url,
            client,
            breaker or ProviderCircuitBreaker(
                failure_threshold=config.LLM_FAILURE_THRESHOLD,
                cooldown_seconds=config.LLM_COOLDOWN_SECONDS,
            ),
        )
        self.model = model or config.LLM_MODEL
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature

    def chat(self, messages: list[dict]) -> dict:
        return self._post_json(
            "chat/completions",
            {"model": self.model, "messages": messages, "temperature": self.temperature},
            self._read_completion,
        )

    def _read_completion(self, body: dict) -> dict:
        return {
            "content": body["choices"][0]["message"]["content"],
            "model": body.get("model", self.model),
            "usage": body.get("usage"),
        }

    def extract_entities_and_relations(
        self,
        text: str,
        entity_types: Optional[Sequence[str]] = None,
        relation_types: Optional[Sequence[str]] = None,
    ) -> dict:
        result = self.chat([
            {"role": "system", "content": build_extraction_prompt(entity_types, relation_types)},
            {"role": "user", "content": text},
        ])
        return parse_extraction(result["content"])


_provider: Optional[LLMProvider] = None
_provider_lock = threading.Lock()


def get_llm_provider() -> LLMProvider:
    global _provider
    with _provider_lock:
        if _provider is None:
            _provider = OpenAILLMProvider()
        return _provider


def set_llm_provider(provider: Optional[LLMProvider]) -> None:
    global _provider
    with _provider_lock:
        _provider = provider


def close_llm_provider() -> None:
    global _provider
    with _provider_lock:
        close = getattr(_provider, "close", None)
        if close is not None:
            close()
        _provider = None
