from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from paperpost.llm_client.prompts import PromptBuilder
from paperpost.llm_client.repair import parse_with_single_repair
from paperpost.pipeline.validate_output import parse_extraction, parse_post_variants

ExtractionPayload = dict[str, Any]
PostPayload = dict[str, Any]

DEFAULT_LLM_TIMEOUT_SECONDS = 20.0
DEFAULT_TEMPERATURE = 0.2


@dataclass(frozen=True, slots=True)
class ExtractClaimsInput:
    document_text: str
    abstract_text: str | None = None
    doi: str | None = None


@dataclass(frozen=True, slots=True)
class GeneratePostsInput:
    extraction: ExtractionPayload
    audience: str | None = None
    preferred_platforms: list[str] = field(default_factory=list)


class LLMProvider(Protocol):
    provider_id: str

    def extract_claims(self, request: ExtractClaimsInput) -> ExtractionPayload: ...

    def generate_posts(self, request: GeneratePostsInput) -> list[PostPayload]: ...


class PromptCompletionProvider:
    """Shared extract/generate flow; subclasses implement ``complete``.

    ``complete`` turns one prompt into raw text and maps upstream failures
    to ``AppError``. Every call runs through a single self-repair attempt.
    """

    provider_id = "base"

    def __init__(self, *, prompt_builder: PromptBuilder | None = None) -> None:
        self._prompt_builder = prompt_builder or PromptBuilder()

    def complete(self, prompt: str) -> str:
        raise NotImplementedError

    def extract_claims(self, request: ExtractClaimsInput) -> ExtractionPayload:
        self.ensure_configured()
        raw_output = self.complete(self._prompt_builder.extraction_prompt(request))
        return parse_with_single_repair(
            provider=self.provider_id,
            raw_output=raw_output,
            parse=parse_extraction,
            build_repair_prompt=self._prompt_builder.repair_prompt,
            call_repair=self.complete,
        )

    def generate_posts(self, request: GeneratePostsInput) -> list[PostPayload]:
        self.ensure_configured()
        raw_output = self.complete(self._prompt_builder.post_generation_prompt(request))
        return parse_with_single_repair(
            provider=self.provider_id,
            raw_output=raw_output,
            parse=parse_post_variants,
            build_repair_prompt=self._prompt_builder.repair_prompt,
            call_repair=self.complete,
        )

    def ensure_configured(self) -> None:
        """Raise a configuration error before any network call when unusable."""
