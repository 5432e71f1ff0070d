"""
Shared validation helpers for AI Mind services.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from mind.config import MAX_EMBEDDING_TEXT_LENGTH
from mind.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_limit(value: int, field: str, max_value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value <= 0 or value > max_value:
        raise ValidationIssue(f"{field} must be between 1 and {max_value}", field=field, error_type="out_of_range")


def validate_optional_id(value: Optional[int], field: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationIssue(f"{field} must be a positive integer", field=field, error_type="invalid_id")


def validate_choice(value: Optional[str], field: str, allowed: Iterable[str]) -> None:
    if value is None:
        return
    allowed_values = tuple(allowed)
    if value not in allowed_values:
        raise ValidationIssue(
            f"{field} must be one of: {', '.join(allowed_values)}",
            field=field,
            error_type="invalid_value",
        )


def validate_string_list(
    values: Optional[Sequence[str]],
    field: str,
    max_items: int,
    max_item_length: int,
) -> None:
    if values is None:
        return
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ValidationIssue(f"{field} must be a list of strings", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationIssue(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")
    for item in values:
        if not isinstance(item, str) or not item.strip():
            raise ValidationIssue(f"{field} must contain only non-empty strings", field=field, error_type="invalid_type")
        if len(item) > max_item_length:
            raise ValidationIssue(
                f"{field} item exceeds max length {max_item_length}",
                field=field,
                error_type="max_length",
            )


def validate_unit_interval(value: float, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type")
    if value < 0.0 or value > 1.0:
        raise ValidationIssue(f"{field} must be between 0.0 and 1.0", field=field, error_type="out_of_range")


def validate_embedding_text(text: str) -> None:
    validate_required_text(text, "text", MAX_EMBEDDING_TEXT_LENGTH)
