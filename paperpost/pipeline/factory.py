from __future__ import annotations

from dataclasses import dataclass

from paperpost.config.settings import Settings
from paperpost.external.crossref_client import CrossrefClient
from paperpost.external.http import build_client
from paperpost.external.unpaywall_client import UnpaywallClient
from paperpost.llm_client.gemini_client import GeminiProvider
from paperpost.llm_client.groq_client import GroqProvider
from paperpost.llm_client.prompts import PromptBuilder
from paperpost.llm_client.router import LLMRouter
from paperpost.pdf.parser import PdfParser
from paperpost.pipeline.orchestrator import PipelineOrchestrator
from paperpost.prompts.manager import PromptManager
from paperpost.storage.artifacts import ArtifactsManager
from paperpost.storage.repo import StorageRepo
from paperpost.storage.zip_export import DocumentBundleExporter


@dataclass(frozen=True, slots=True)
class AppServices:
    repo: StorageRepo
    artifacts_manager: ArtifactsManager
    orchestrator: PipelineOrchestrator


def build_services(settings: Settings) -> AppServices:
    repo = StorageRepo(settings.resolved_sqlite_path)
    artifacts_manager = ArtifactsManager(settings.resolved_data_dir)
    return AppServices(
        repo=repo,
        artifacts_manager=artifacts_manager,
        orchestrator=build_orchestrator(
            settings,
            repo=repo,
            artifacts_manager=artifacts_manager,
        ),
    )


def build_orchestrator(
    settings: Settings,
    *,
    repo: StorageRepo | None = None,
    artifacts_manager: ArtifactsManager | None = None,
) -> PipelineOrchestrator:
    repo = repo or StorageRepo(settings.resolved_sqlite_path)
    artifacts_manager = artifacts_manager or ArtifactsManager(settings.resolved_data_dir)

    http_client = build_client(
        timeout_seconds=settings.http_timeout_seconds,
        user_agent=settings.http_user_agent,
    )

    return PipelineOrchestrator(
        repo=repo,
        file_reader=artifacts_manager,
        pdf_parser=PdfParser(abstract_max_chars=settings.safe_snippet_chars),
        bibliographic_client=CrossrefClient(http_client=http_client),
        open_access_client=UnpaywallClient(
            email=settings.unpaywall_email,
            http_client=http_client,
        ),
        llm=build_llm_router(settings),
        exporter=DocumentBundleExporter(
            repo=repo,
            artifacts_manager=artifacts_manager,
            signing_key=settings.bundle_signing_key,
        ),
        max_llm_input_chars=settings.max_llm_input_chars,
        safe_snippet_chars=settings.safe_snippet_chars,
        detached_workers=settings.detached_workers,
    )


def build_llm_router(settings: Settings) -> LLMRouter:
    prompt_builder = PromptBuilder(
        prompt_manager=PromptManager(settings.resolved_prompts_root),
        extraction_version=settings.extraction_prompt_version,
        post_generation_version=settings.post_generation_prompt_version,
        repair_version=settings.repair_prompt_version,
    )
    return LLMRouter(
        primary=GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.llm_timeout_seconds,
            prompt_builder=prompt_builder,
        ),
        fallback=GroqProvider(
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            timeout_seconds=settings.llm_timeout_seconds,
            prompt_builder=prompt_builder,
        ),
        backoff_schedule_ms=tuple(settings.llm_backoff_schedule_ms),
    )
