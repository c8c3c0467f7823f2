from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, TypeVar

from paperpost.pipeline.validate_output import OutputValidationError
from paperpost.utils.error_taxonomy import response_validation_error

T = TypeVar("T")

logger = logging.getLogger("paperpost.llm")

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_RAW_PREVIEW_CHARS = 1000


def extract_json_text(raw: str) -> str:
    trimmed = raw.strip()
    if not trimmed:
        return ""

    # Some providers still wrap JSON in markdown fences.
    fenced = _FENCED_JSON_RE.search(trimmed)
    if fenced is not None and fenced.group(1):
        return fenced.group(1).strip()

    return trimmed


def decode_json_output(raw: str, *, provider: str) -> Any:
    json_text = extract_json_text(raw)
    try:
        return json.loads(json_text)
    except json.JSONDecodeError as error:
        raise OutputValidationError(
            f"{provider} returned non-JSON output",
            [f"invalid JSON: {error.msg} at line {error.lineno} column {error.colno}"],
        ) from error


def parse_with_single_repair(
    *,
    provider: str,
    raw_output: str,
    parse: Callable[[Any], T],
    build_repair_prompt: Callable[[str, str], str],
    call_repair: Callable[[str], str],
) -> T:
    try:
        return parse(decode_json_output(raw_output, provider=provider))
    except OutputValidationError as error:
        details = error.details

    logger.warning(
        "Invalid model output, issuing one repair call",
        extra={"provider": provider, "metrics": {"errors": details[:_RAW_PREVIEW_CHARS]}},
    )
    repaired_raw = call_repair(build_repair_prompt(raw_output, details))

    try:
        return parse(decode_json_output(repaired_raw, provider=provider))
    except OutputValidationError as error:
        raise response_validation_error(
            provider=provider,
            message=f"{provider} output is invalid after one repair attempt",
            details=error.details,
        ) from error
