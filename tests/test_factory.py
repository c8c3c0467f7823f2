from __future__ import annotations

from pathlib import Path

from paperpost.config.settings import Settings
from paperpost.external.crossref_client import CrossrefClient
from paperpost.external.unpaywall_client import UnpaywallClient
from paperpost.llm_client.gemini_client import GeminiProvider
from paperpost.llm_client.groq_client import GroqProvider
from paperpost.pipeline.factory import build_llm_router, build_services
from paperpost.storage.zip_export import DocumentBundleExporter


def _settings(tmp_path: Path, **overrides) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        sqlite_path=tmp_path / "data" / "db.sqlite3",
        **overrides,
    )


def test_build_services_wires_concrete_collaborators(tmp_path: Path) -> None:
    services = build_services(_settings(tmp_path, max_llm_input_chars=4000))

    orchestrator = services.orchestrator
    assert orchestrator.repo is services.repo
    assert orchestrator.file_reader is services.artifacts_manager
    assert isinstance(orchestrator.bibliographic_client, CrossrefClient)
    assert isinstance(orchestrator.open_access_client, UnpaywallClient)
    assert isinstance(orchestrator.exporter, DocumentBundleExporter)
    assert orchestrator.max_llm_input_chars == 4000
    assert (tmp_path / "data" / "db.sqlite3").is_file()


def test_llm_router_uses_gemini_then_groq(tmp_path: Path) -> None:
    router = build_llm_router(_settings(tmp_path, llm_backoff_schedule_ms=[1, 2, 3]))

    assert isinstance(router.primary, GeminiProvider)
    assert isinstance(router.fallback, GroqProvider)
    assert router.backoff_schedule_ms == (1, 2, 3)
