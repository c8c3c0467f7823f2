from __future__ import annotations

from typing import Any, Protocol

from paperpost.llm_client.base import (
    DEFAULT_LLM_TIMEOUT_SECONDS,
    DEFAULT_TEMPERATURE,
    PromptCompletionProvider,
)
from paperpost.llm_client.prompts import PromptBuilder
from paperpost.utils.error_taxonomy import (
    AppError,
    configuration_error,
    external_service_error,
    extract_http_status_code,
    extract_retry_after_seconds,
    rate_limit_error,
)

DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
SERVICE_NAME = "groq"


class ChatCompletionsService(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class GroqProvider(PromptCompletionProvider):
    """Groq through its OpenAI-compatible chat completions endpoint."""

    provider_id = SERVICE_NAME

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_GROQ_MODEL,
        timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        completions_service: ChatCompletionsService | None = None,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        super().__init__(prompt_builder=prompt_builder)
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._completions_service = completions_service

    def ensure_configured(self) -> None:
        if self._completions_service is None and not self._api_key:
            raise configuration_error("GROQ_API_KEY is required for GroqProvider")

    def complete(self, prompt: str) -> str:
        service = self._resolve_service()
        payload = self.build_request_payload(prompt=prompt, model=self._model)

        try:
            response = service.create(**payload)
        except AppError:
            raise
        except Exception as error:  # noqa: BLE001
            raise _map_groq_error(error) from error

        text = _extract_groq_output_text(response=response, payload=_to_dict(response))
        if not text:
            raise external_service_error(
                service=SERVICE_NAME,
                message="Groq response did not include text output",
                status_code=200,
            )
        return text

    @staticmethod
    def build_request_payload(*, prompt: str, model: str) -> dict[str, Any]:
        return {
            "model": model,
            "temperature": DEFAULT_TEMPERATURE,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _resolve_service(self) -> ChatCompletionsService:
        if self._completions_service is not None:
            return self._completions_service

        self.ensure_configured()

        try:
            from openai import OpenAI
        except ImportError as error:
            raise configuration_error("openai package is not installed") from error

        client = OpenAI(
            api_key=self._api_key,
            base_url=GROQ_BASE_URL,
            timeout=self._timeout_seconds,
            max_retries=0,
        )
        self._completions_service = client.chat.completions
        return self._completions_service


def _map_groq_error(error: Exception) -> AppError:
    status_code = extract_http_status_code(error)
    if status_code == 429:
        return rate_limit_error(
            service=SERVICE_NAME,
            retry_after_seconds=extract_retry_after_seconds(error),
        )
    if status_code is not None:
        return external_service_error(
            service=SERVICE_NAME,
            message=f"Groq request failed with status {status_code}",
            status_code=status_code,
        )
    return external_service_error(
        service=SERVICE_NAME,
        message=f"Groq request failed: {error.__class__.__name__}: {error}",
    )


def _extract_groq_output_text(*, response: Any, payload: dict[str, Any]) -> str:
    choices = getattr(response, "choices", None)
    if isinstance(choices, list) and choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content.strip()

    payload_choices = payload.get("choices")
    if not isinstance(payload_choices, list) or not payload_choices:
        return ""

    first_choice = payload_choices[0]
    if not isinstance(first_choice, dict):
        return ""
    message_payload = first_choice.get("message")
    if not isinstance(message_payload, dict):
        return ""
    content = message_payload.get("content")
    if not isinstance(content, str):
        return ""
    return content.strip()


def _to_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump()
        if isinstance(dumped, dict):
            return dumped

    return {}
