from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

ErrorKind = Literal[
    "CONFIGURATION",
    "EXTERNAL_SERVICE",
    "RATE_LIMIT",
    "RESPONSE_VALIDATION",
    "UNAVAILABLE",
    "APPLICATION",
]

ERROR_KINDS: tuple[ErrorKind, ...] = (
    "CONFIGURATION",
    "EXTERNAL_SERVICE",
    "RATE_LIMIT",
    "RESPONSE_VALIDATION",
    "UNAVAILABLE",
    "APPLICATION",
)

ERROR_FRIENDLY_MESSAGES: dict[ErrorKind, str] = {
    "CONFIGURATION": "Required configuration is missing. Check API keys and settings.",
    "EXTERNAL_SERVICE": "An upstream service request failed. Please retry.",
    "RATE_LIMIT": "An upstream service is rate limiting requests. Please retry later.",
    "RESPONSE_VALIDATION": "Model output failed schema validation after repair.",
    "UNAVAILABLE": "All LLM providers are currently unavailable.",
    "APPLICATION": "Unexpected error occurred during pipeline run.",
}

_HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    "CONFIGURATION": 500,
    "EXTERNAL_SERVICE": 502,
    "RATE_LIMIT": 429,
    "RESPONSE_VALIDATION": 502,
    "UNAVAILABLE": 503,
    "APPLICATION": 500,
}

LLM_UNAVAILABLE_MESSAGE = "LLM_UNAVAILABLE"


class AppError(Exception):
    """Single application error type; callers dispatch on ``kind``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        service: str | None = None,
        status_code: int | None = None,
        retry_after_seconds: int | None = None,
        provider: str | None = None,
        details: str | None = None,
    ) -> None:
        if kind not in ERROR_KINDS:
            raise ValueError(f"Unknown error kind: {kind}")
        super().__init__(message)
        self.kind: ErrorKind = kind
        self.message = message
        self.service = service
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        self.provider = provider
        self.details = details

    @property
    def friendly_message(self) -> str:
        return ERROR_FRIENDLY_MESSAGES[self.kind]

    def __repr__(self) -> str:
        return f"AppError(kind={self.kind!r}, message={self.message!r})"


def configuration_error(message: str) -> AppError:
    return AppError("CONFIGURATION", message)


def external_service_error(
    *,
    service: str,
    message: str,
    status_code: int | None = None,
) -> AppError:
    return AppError(
        "EXTERNAL_SERVICE",
        message,
        service=service,
        status_code=status_code,
    )


def rate_limit_error(
    *,
    service: str,
    retry_after_seconds: int | None = None,
) -> AppError:
    return AppError(
        "RATE_LIMIT",
        f"{service} rate limit exceeded",
        service=service,
        status_code=429,
        retry_after_seconds=retry_after_seconds,
    )


def response_validation_error(
    *,
    provider: str,
    message: str,
    details: str | None = None,
) -> AppError:
    return AppError(
        "RESPONSE_VALIDATION",
        message,
        provider=provider,
        details=details,
    )


def llm_unavailable_error() -> AppError:
    return AppError("UNAVAILABLE", LLM_UNAVAILABLE_MESSAGE)


def application_error(message: str) -> AppError:
    return AppError("APPLICATION", message)


def error_kind(error: BaseException) -> ErrorKind:
    if isinstance(error, AppError):
        return error.kind
    return "APPLICATION"


def is_configuration_error(error: BaseException) -> bool:
    return error_kind(error) == "CONFIGURATION"


def http_status_for_error(error: BaseException) -> int:
    if isinstance(error, AppError):
        return _HTTP_STATUS_BY_KIND[error.kind]
    if isinstance(error, KeyError):
        return 404
    if isinstance(error, ValueError):
        return 400
    return 500


def is_retryable_llm_exception(error: BaseException) -> bool:
    status_code = extract_http_status_code(error)
    return status_code is not None and is_retryable_status_code(status_code)


def is_retryable_status_code(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


def extract_http_status_code(error: BaseException) -> int | None:
    for field_name in ("status_code", "code", "status", "http_status"):
        value = getattr(error, field_name, None)
        parsed = _to_int_or_none(value)
        if parsed is not None:
            return parsed

    response = getattr(error, "response", None)
    if response is not None:
        parsed = _to_int_or_none(getattr(response, "status_code", None))
        if parsed is not None:
            return parsed

    return None


def extract_retry_after_seconds(error: BaseException) -> int | None:
    response = getattr(error, "response", None)
    if response is None:
        return None
    return parse_retry_after(getattr(response, "headers", None))


def parse_retry_after(headers: Mapping[str, Any] | None) -> int | None:
    if not headers:
        return None

    raw = headers.get("retry-after")
    if raw is None:
        raw = headers.get("Retry-After")
    if raw is None:
        return None

    text = str(raw).strip()
    digits = ""
    for char in text:
        if not char.isdigit():
            break
        digits += char
    if not digits:
        return None
    return int(digits)


def build_error_details(error: BaseException) -> str:
    details: list[str] = [f"{error.__class__.__name__}: {error}"]
    if isinstance(error, AppError):
        details.append(f"kind={error.kind}")
        for field_name in ("service", "provider", "retry_after_seconds", "details"):
            value = getattr(error, field_name)
            if value is not None:
                details.append(f"{field_name}={value}")

    status_code = extract_http_status_code(error)
    if status_code is not None:
        details.append(f"status_code={status_code}")
    return "\n".join(details)


def _to_int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
