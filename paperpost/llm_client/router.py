from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

from paperpost.llm_client.base import (
    ExtractClaimsInput,
    ExtractionPayload,
    GeneratePostsInput,
    LLMProvider,
    PostPayload,
)
from paperpost.utils.error_taxonomy import (
    build_error_details,
    is_configuration_error,
    is_retryable_llm_exception,
    llm_unavailable_error,
)
from paperpost.utils.retry import run_with_backoff, sleep_ms

T = TypeVar("T")

PRIMARY_BACKOFF_MS: tuple[int, ...] = (500, 1500)

logger = logging.getLogger("paperpost.llm")


class LLMRouter:
    """Primary provider with bounded backoff, then one fallback attempt.

    Configuration errors are fatal and propagate from either provider
    unchanged. Any other fallback failure becomes ``LLM_UNAVAILABLE``.
    """

    def __init__(
        self,
        *,
        primary: LLMProvider,
        fallback: LLMProvider,
        backoff_schedule_ms: Sequence[float] = PRIMARY_BACKOFF_MS,
        sleep_fn: Callable[[float], None] = sleep_ms,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.backoff_schedule_ms = tuple(backoff_schedule_ms)
        self.sleep_fn = sleep_fn
        self.provider_id = primary.provider_id

    def extract_claims(self, request: ExtractClaimsInput) -> ExtractionPayload:
        return self._run_with_fallback(
            operation="extract_claims",
            run_primary=lambda: self.primary.extract_claims(request),
            run_fallback=lambda: self.fallback.extract_claims(request),
        )

    def generate_posts(self, request: GeneratePostsInput) -> list[PostPayload]:
        return self._run_with_fallback(
            operation="generate_posts",
            run_primary=lambda: self.primary.generate_posts(request),
            run_fallback=lambda: self.fallback.generate_posts(request),
        )

    def _run_with_fallback(
        self,
        *,
        operation: str,
        run_primary: Callable[[], T],
        run_fallback: Callable[[], T],
    ) -> T:
        try:
            return run_with_backoff(
                operation=run_primary,
                should_retry=is_retryable_llm_exception,
                backoff_schedule_ms=self.backoff_schedule_ms,
                sleep_fn=self.sleep_fn,
                on_retry=lambda attempt, delay, error: self._log_retry(
                    operation, attempt, delay, error
                ),
            )
        except Exception as primary_error:  # noqa: BLE001
            if is_configuration_error(primary_error):
                raise
            logger.warning(
                "Primary LLM provider exhausted, switching to fallback",
                extra={
                    "provider": self.primary.provider_id,
                    "metrics": {
                        "operation": operation,
                        "fallback": self.fallback.provider_id,
                        "error": build_error_details(primary_error),
                    },
                },
            )

        try:
            return run_fallback()
        except Exception as fallback_error:  # noqa: BLE001
            if is_configuration_error(fallback_error):
                raise
            logger.error(
                "Fallback LLM provider failed",
                extra={
                    "provider": self.fallback.provider_id,
                    "metrics": {
                        "operation": operation,
                        "error": build_error_details(fallback_error),
                    },
                },
            )
            raise llm_unavailable_error() from fallback_error

    def _log_retry(
        self,
        operation: str,
        attempt: int,
        delay_ms: float,
        error: Exception,
    ) -> None:
        logger.warning(
            "Retrying primary LLM provider",
            extra={
                "provider": self.primary.provider_id,
                "metrics": {
                    "operation": operation,
                    "attempt": attempt,
                    "delay_ms": delay_ms,
                    "error": build_error_details(error),
                },
            },
        )
