from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from paperpost.prompts.manager import PromptManager, PromptSet

if TYPE_CHECKING:
    from paperpost.llm_client.base import ExtractClaimsInput, GeneratePostsInput

EXTRACTION_PROMPT_NAME = "claim_extraction"
POST_GENERATION_PROMPT_NAME = "post_generation"
REPAIR_PROMPT_NAME = "schema_repair"

DEFAULT_PROMPTS_ROOT = Path(__file__).resolve().parents[1] / "prompts"
DEFAULT_AUDIENCE = "general professional audience"
DEFAULT_PLATFORMS = ("linkedin", "x", "threads", "bluesky")


class PromptBuilder:
    def __init__(
        self,
        *,
        prompt_manager: PromptManager | None = None,
        extraction_version: str | None = None,
        post_generation_version: str | None = None,
        repair_version: str | None = None,
    ) -> None:
        self._manager = prompt_manager or PromptManager(DEFAULT_PROMPTS_ROOT)
        self._versions = {
            EXTRACTION_PROMPT_NAME: extraction_version,
            POST_GENERATION_PROMPT_NAME: post_generation_version,
            REPAIR_PROMPT_NAME: repair_version,
        }
        self._cache: dict[str, PromptSet] = {}

    def prompt_set(self, prompt_name: str) -> PromptSet:
        cached = self._cache.get(prompt_name)
        if cached is None:
            cached = self._manager.load_prompt_set(
                prompt_name=prompt_name,
                version=self._versions.get(prompt_name),
            )
            self._cache[prompt_name] = cached
        return cached

    def extraction_prompt(self, request: ExtractClaimsInput) -> str:
        instructions = self.prompt_set(EXTRACTION_PROMPT_NAME).system_prompt_text
        return "\n\n".join(
            [
                instructions.strip(),
                f"DOI (if present): {request.doi or 'unknown'}",
                f"Abstract: {request.abstract_text or 'not provided'}",
                f"Document text:\n{request.document_text}",
            ]
        )

    def post_generation_prompt(self, request: GeneratePostsInput) -> str:
        prompt_set = self.prompt_set(POST_GENERATION_PROMPT_NAME)
        audience = request.audience or str(
            prompt_set.meta.get("default_audience") or DEFAULT_AUDIENCE
        )
        platforms = request.preferred_platforms or list(
            prompt_set.meta.get("default_platforms") or DEFAULT_PLATFORMS
        )

        return "\n\n".join(
            [
                prompt_set.system_prompt_text.strip(),
                f"Audience: {audience}",
                f"Preferred platforms: {', '.join(platforms)}",
                "Extraction JSON:\n"
                + json.dumps(request.extraction, ensure_ascii=False, sort_keys=True),
            ]
        )

    def repair_prompt(self, raw_output: str, validation_errors: str) -> str:
        instructions = self.prompt_set(REPAIR_PROMPT_NAME).system_prompt_text
        return "\n\n".join(
            [
                instructions.strip(),
                "Validation errors:",
                validation_errors,
                "Invalid JSON/output:",
                raw_output,
            ]
        )
