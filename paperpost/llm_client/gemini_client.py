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

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
SERVICE_NAME = "gemini"


class GeminiGenerateService(Protocol):
    def generate_content(self, **kwargs: Any) -> Any: ...


class GeminiProvider(PromptCompletionProvider):
    provider_id = SERVICE_NAME

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        generate_service: GeminiGenerateService | None = None,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        super().__init__(prompt_builder=prompt_builder)
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._generate_service = generate_service

    def ensure_configured(self) -> None:
        if self._generate_service is None and not self._api_key:
            raise configuration_error("GEMINI_API_KEY is required for GeminiProvider")

    def complete(self, prompt: str) -> str:
        service = self._resolve_service()
        payload = self.build_request_payload(prompt=prompt, model=self._model)

        try:
            response = service.generate_content(**payload)
        except AppError:
            raise
        except Exception as error:  # noqa: BLE001
            raise _map_gemini_error(error) from error

        text = _extract_gemini_output_text(response=response, payload=_to_dict(response))
        if not text:
            raise external_service_error(
                service=SERVICE_NAME,
                message="Gemini response did not include text output",
                status_code=200,
            )
        return text

    @staticmethod
    def build_request_payload(*, prompt: str, model: str) -> dict[str, Any]:
        return {
            "model": model,
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "config": {
                "temperature": DEFAULT_TEMPERATURE,
                "response_mime_type": "application/json",
            },
        }

    def _resolve_service(self) -> GeminiGenerateService:
        if self._generate_service is not None:
            return self._generate_service

        self.ensure_configured()

        try:
            from google import genai
        except ImportError as error:
            raise configuration_error("google-genai package is not installed") from error

        # Keep a persistent client reference to prevent socket closures.
        client = getattr(self, "_genai_client", None)
        if client is None:
            client = genai.Client(
                api_key=self._api_key,
                http_options={"timeout": int(self._timeout_seconds * 1000)},
            )
            self._genai_client = client

        self._generate_service = client.models
        return self._generate_service


def _map_gemini_error(error: Exception) -> AppError:
    status_code = extract_http_status_code(error)
    if status_code == 429:
        return rate_limit_error(
            service=SERVICE_NAME,
            retry_after_seconds=extract_retry_after_seconds(error),
        )
    if status_code is not None:
        return external_service_error(
            service=SERVICE_NAME,
            message=f"Gemini request failed with status {status_code}",
            status_code=status_code,
        )
    return external_service_error(
        service=SERVICE_NAME,
        message=f"Gemini request failed: {error.__class__.__name__}: {error}",
    )


def _extract_gemini_output_text(*, response: Any, payload: dict[str, Any]) -> str:
    direct_text = getattr(response, "text", None)
    if isinstance(direct_text, str) and direct_text.strip():
        return direct_text.strip()

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""

    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return ""
    content = candidate.get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""

    texts = [
        part.get("text")
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "".join(texts).strip()


def _to_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump()
        if isinstance(dumped, dict):
            return dumped

    return {}
