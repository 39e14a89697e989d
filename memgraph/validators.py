"""
Input checks shared by the services.

Each helper raises ``ValidationIssue`` carrying the offending field and an
``error_type`` the HTTP layer passes through unchanged.
"""

from __future__ import annotations

import json
from typing import Optional, Sequence

from memgraph.config import MAX_METADATA_BYTES
from memgraph.errors import ValidationIssue


def _fail(field: str, message: str, error_type: str) -> None:
    raise ValidationIssue(f"{field} {message}", field=field, error_type=error_type)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_length(value: str, field: str, max_len: int) -> None:
    if len(value) > max_len:
        _fail(field, f"exceeds max length {max_len}", "max_length")


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        _fail(field, "must be a non-empty string", "required")
    _check_length(value, field, max_len)


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        _fail(field, "must be a string", "invalid_type")
    _check_length(value, field, max_len)


def _validate_int_range(value: int, field: str, low: int, high: int) -> None:
    if not _is_int(value):
        _fail(field, "must be an integer", "invalid_type")
    if not low <= value <= high:
        _fail(field, f"must be between {low} and {high}", "out_of_range")


def validate_limit(value: int, field: str, max_value: int) -> None:
    _validate_int_range(value, field, 1, max_value)


def validate_depth(value: int, field: str, max_value: int) -> None:
    _validate_int_range(value, field, 0, max_value)


def validate_offset(value: int, field: str = "offset") -> None:
    if not _is_int(value) or value < 0:
        _fail(field, "must be a non-negative integer", "out_of_range")


def validate_confidence(value: float, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(field, "must be a number", "invalid_type")
    if not 0.0 <= value <= 1.0:
        _fail(field, "must be between 0.0 and 1.0", "out_of_range")


def validate_string_list(
    values: Optional[Sequence[str]],
    field: str,
    max_items: int,
    max_item_length: int,
) -> None:
    """Tags and type filters: bounded count, strings only, bounded length."""
    if values is None:
        return
    if len(values) > max_items:
        _fail(field, f"exceeds max items {max_items}", "max_items")
    for item in values:
        if not isinstance(item, str):
            _fail(field, "must contain only strings", "invalid_type")
        if len(item) > max_item_length:
            _fail(field, f"item exceeds max length {max_item_length}", "max_length")


def validate_metadata(metadata: Optional[dict], field: str) -> None:
    if metadata is None:
        return
    if not isinstance(metadata, dict):
        _fail(field, "must be an object", "invalid_type")
    try:
        encoded = json.dumps(metadata)
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc
    if len(encoded) > MAX_METADATA_BYTES:
        _fail(field, f"exceeds max size {MAX_METADATA_BYTES} bytes", "max_bytes")
