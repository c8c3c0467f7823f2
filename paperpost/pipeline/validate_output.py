from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator

DOI_PATTERN = r"^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$"
HTTP_URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"
HASHTAG_PATTERN = r"^#[^\s#]+$"

POST_PLATFORMS = ("linkedin", "x", "threads", "bluesky")

_NON_EMPTY_STRING: dict[str, Any] = {"type": "string", "minLength": 1}

CITATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["title", "sourceUsed"],
    "properties": {
        "title": _NON_EMPTY_STRING,
        "doi": {"type": "string", "pattern": DOI_PATTERN},
        "url": {"type": "string", "pattern": HTTP_URL_PATTERN},
        "year": {"type": "integer", "minimum": 1800, "maximum": 2100},
        "sourceUsed": {"type": "boolean"},
    },
}

EXTRACTION_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "extraction",
    "type": "object",
    "additionalProperties": False,
    "required": [
        "claims",
        "population",
        "intervention",
        "outcomes",
        "limitations",
        "evidenceLevel",
        "confidenceScore",
        "citations",
    ],
    "properties": {
        "claims": {
            "type": "array",
            "items": _NON_EMPTY_STRING,
            "minItems": 3,
            "maxItems": 7,
        },
        "population": _NON_EMPTY_STRING,
        "intervention": _NON_EMPTY_STRING,
        "outcomes": _NON_EMPTY_STRING,
        "limitations": _NON_EMPTY_STRING,
        "evidenceLevel": _NON_EMPTY_STRING,
        "confidenceScore": {"type": "number", "minimum": 0, "maximum": 1},
        "citations": {"type": "array", "items": CITATION_SCHEMA, "minItems": 1},
    },
}

POST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["platform", "contentText", "citationBlock"],
    "properties": {
        "platform": {"enum": list(POST_PLATFORMS)},
        "contentText": _NON_EMPTY_STRING,
        "hashtags": {
            "type": "array",
            "items": {"type": "string", "pattern": HASHTAG_PATTERN},
        },
        "citationBlock": _NON_EMPTY_STRING,
    },
}

POST_VARIANTS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "post_variants",
    "type": "array",
    "items": POST_SCHEMA,
    "minItems": 1,
}

WRAPPED_POST_VARIANTS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "wrapped_post_variants",
    "type": "object",
    "additionalProperties": False,
    "required": ["posts"],
    "properties": {"posts": POST_VARIANTS_SCHEMA},
}

_EXTRACTION_VALIDATOR = Draft202012Validator(EXTRACTION_SCHEMA)
_POST_VARIANTS_VALIDATOR = Draft202012Validator(POST_VARIANTS_SCHEMA)
_WRAPPED_POST_VARIANTS_VALIDATOR = Draft202012Validator(WRAPPED_POST_VARIANTS_SCHEMA)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: list[str]
    normalized: Any = None

    @property
    def details(self) -> str:
        return json.dumps(self.errors, ensure_ascii=False)


class OutputValidationError(ValueError):
    """Raised when a decoded model payload does not match its contract."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors

    @property
    def details(self) -> str:
        return json.dumps(self.errors, ensure_ascii=False)


def validate_extraction(payload: Any) -> ValidationResult:
    errors = _collect_errors(_EXTRACTION_VALIDATOR, payload)
    return ValidationResult(
        valid=not errors,
        errors=errors,
        normalized=payload if not errors else None,
    )


def validate_post_variants(payload: Any) -> ValidationResult:
    if isinstance(payload, list):
        errors = _collect_errors(_POST_VARIANTS_VALIDATOR, payload)
        return ValidationResult(
            valid=not errors,
            errors=errors,
            normalized=list(payload) if not errors else None,
        )

    if isinstance(payload, dict):
        errors = _collect_errors(_WRAPPED_POST_VARIANTS_VALIDATOR, payload)
        return ValidationResult(
            valid=not errors,
            errors=errors,
            normalized=list(payload["posts"]) if not errors else None,
        )

    return ValidationResult(
        valid=False,
        errors=["payload must be an array of posts or an object with a posts array"],
    )


def parse_extraction(payload: Any) -> dict[str, Any]:
    result = validate_extraction(payload)
    if not result.valid:
        raise OutputValidationError("extraction failed schema validation", result.errors)
    return result.normalized


def parse_post_variants(payload: Any) -> list[dict[str, Any]]:
    result = validate_post_variants(payload)
    if not result.valid:
        raise OutputValidationError("post variants failed schema validation", result.errors)
    return result.normalized


def _collect_errors(validator: Draft202012Validator, payload: Any) -> list[str]:
    errors = sorted(
        validator.iter_errors(payload),
        key=lambda item: [str(part) for part in item.absolute_path],
    )

    messages: list[str] = []
    for error in errors:
        path = "/".join(str(item) for item in error.absolute_path)
        if path:
            messages.append(f"{path}: {error.message}")
        else:
            messages.append(error.message)

    return messages
