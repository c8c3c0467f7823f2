from __future__ import annotations

from typing import Any

import pytest

from paperpost.llm_client.base import ExtractClaimsInput, GeneratePostsInput
from paperpost.llm_client.router import LLMRouter
from paperpost.utils.error_taxonomy import (
    AppError,
    configuration_error,
    external_service_error,
    rate_limit_error,
    response_validation_error,
)

EXTRACTION = {"claims": ["a", "b", "c"], "confidenceScore": 0.5}


class ScriptedProvider:
    def __init__(self, provider_id: str, outcomes: list[Any]) -> None:
        self.provider_id = provider_id
        self.outcomes = list(outcomes)
        self.calls = 0

    def _next(self) -> Any:
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else EXTRACTION
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def extract_claims(self, request: ExtractClaimsInput) -> dict[str, Any]:
        return self._next()

    def generate_posts(self, request: GeneratePostsInput) -> list[dict[str, Any]]:
        return self._next()


def _upstream(status_code: int) -> AppError:
    return external_service_error(
        service="gemini", message=f"status {status_code}", status_code=status_code
    )


def _router(primary: ScriptedProvider, fallback: ScriptedProvider, sleeps: list[float]) -> LLMRouter:
    return LLMRouter(primary=primary, fallback=fallback, sleep_fn=sleeps.append)


def test_primary_success_returns_without_fallback() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [EXTRACTION])
    fallback = ScriptedProvider("groq", [])

    result = _router(primary, fallback, sleeps).extract_claims(
        ExtractClaimsInput(document_text="x")
    )

    assert result == EXTRACTION
    assert primary.calls == 1
    assert fallback.calls == 0
    assert sleeps == []


def test_rate_limits_exhaust_schedule_then_fallback_succeeds() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [rate_limit_error(service="gemini")] * 3)
    fallback = ScriptedProvider("groq", [EXTRACTION])

    result = _router(primary, fallback, sleeps).extract_claims(
        ExtractClaimsInput(document_text="x")
    )

    assert result == EXTRACTION
    assert primary.calls == 3
    assert fallback.calls == 1
    assert sleeps == [500, 1500]


def test_server_errors_follow_same_schedule() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [_upstream(500), _upstream(502), _upstream(503)])
    fallback = ScriptedProvider("groq", [[{"platform": "x"}]])

    result = _router(primary, fallback, sleeps).generate_posts(
        GeneratePostsInput(extraction=EXTRACTION)
    )

    assert result == [{"platform": "x"}]
    assert primary.calls == 3
    assert fallback.calls == 1
    assert sleeps == [500, 1500]


def test_primary_recovers_mid_schedule() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [_upstream(503), EXTRACTION])
    fallback = ScriptedProvider("groq", [])

    _router(primary, fallback, sleeps).extract_claims(ExtractClaimsInput(document_text="x"))

    assert primary.calls == 2
    assert fallback.calls == 0
    assert sleeps == [500]


@pytest.mark.parametrize(
    "error",
    [
        _upstream(400),
        response_validation_error(provider="gemini", message="bad output"),
        external_service_error(service="gemini", message="timeout"),
    ],
)
def test_non_retryable_primary_error_goes_straight_to_fallback(error: AppError) -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [error])
    fallback = ScriptedProvider("groq", [EXTRACTION])

    _router(primary, fallback, sleeps).extract_claims(ExtractClaimsInput(document_text="x"))

    assert primary.calls == 1
    assert fallback.calls == 1
    assert sleeps == []


def test_both_providers_failing_is_llm_unavailable() -> None:
    sleeps: list[float] = []
    fallback_error = _upstream(503)
    primary = ScriptedProvider("gemini", [_upstream(400)])
    fallback = ScriptedProvider("groq", [fallback_error])

    with pytest.raises(AppError) as exc_info:
        _router(primary, fallback, sleeps).extract_claims(
            ExtractClaimsInput(document_text="x")
        )

    assert exc_info.value.kind == "UNAVAILABLE"
    assert str(exc_info.value) == "LLM_UNAVAILABLE"
    assert exc_info.value.__cause__ is fallback_error
    assert fallback.calls == 1


def test_fallback_is_not_retried() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [_upstream(400)])
    fallback = ScriptedProvider("groq", [rate_limit_error(service="groq"), EXTRACTION])

    with pytest.raises(AppError):
        _router(primary, fallback, sleeps).extract_claims(
            ExtractClaimsInput(document_text="x")
        )

    assert fallback.calls == 1
    assert sleeps == []


def test_configuration_errors_propagate_from_either_provider() -> None:
    sleeps: list[float] = []
    missing_key = configuration_error("GEMINI_API_KEY is required")
    primary = ScriptedProvider("gemini", [missing_key])
    fallback = ScriptedProvider("groq", [EXTRACTION])

    with pytest.raises(AppError) as exc_info:
        _router(primary, fallback, sleeps).extract_claims(
            ExtractClaimsInput(document_text="x")
        )
    assert exc_info.value is missing_key
    assert fallback.calls == 0

    fallback_missing = configuration_error("GROQ_API_KEY is required")
    primary = ScriptedProvider("gemini", [_upstream(400)])
    fallback = ScriptedProvider("groq", [fallback_missing])

    with pytest.raises(AppError) as exc_info:
        _router(primary, fallback, sleeps).extract_claims(
            ExtractClaimsInput(document_text="x")
        )
    assert exc_info.value is fallback_missing


def test_custom_schedule_controls_attempts() -> None:
    sleeps: list[float] = []
    primary = ScriptedProvider("gemini", [_upstream(503)] * 2)
    fallback = ScriptedProvider("groq", [EXTRACTION])

    router = LLMRouter(
        primary=primary, fallback=fallback, backoff_schedule_ms=(10,), sleep_fn=sleeps.append
    )
    router.extract_claims(ExtractClaimsInput(document_text="x"))

    assert primary.calls == 2
    assert sleeps == [10]
