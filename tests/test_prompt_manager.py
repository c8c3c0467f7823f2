from __future__ import annotations

from pathlib import Path

import pytest

from paperpost.llm_client.base import ExtractClaimsInput, GeneratePostsInput
from paperpost.llm_client.prompts import DEFAULT_PROMPTS_ROOT, PromptBuilder
from paperpost.prompts.manager import PromptManager


def test_bundled_prompt_sets_are_discoverable() -> None:
    manager = PromptManager(DEFAULT_PROMPTS_ROOT)

    assert manager.list_prompt_names() == [
        "claim_extraction",
        "post_generation",
        "schema_repair",
    ]
    prompt_set = manager.load_prompt_set(prompt_name="claim_extraction")
    assert prompt_set.version == "v001"
    assert prompt_set.meta["schema_version"] == "1.0.0"
    assert prompt_set.system_prompt_text.strip()


def test_latest_version_is_numeric(tmp_path: Path) -> None:
    for version in ("v002", "v010", "v001"):
        prompt_dir = tmp_path / "demo" / version
        prompt_dir.mkdir(parents=True)
        (prompt_dir / "system_prompt.txt").write_text(f"prompt {version}", encoding="utf-8")
    (tmp_path / "demo" / "notes").mkdir()

    manager = PromptManager(tmp_path)

    assert manager.list_versions("demo") == ["v001", "v002", "v010"]
    assert manager.latest_version("demo") == "v010"
    assert manager.load_prompt_set(prompt_name="demo").system_prompt_text == "prompt v010"
    assert manager.load_prompt_set(prompt_name="demo", version="v001").version == "v001"


def test_invalid_prompts_are_rejected(tmp_path: Path) -> None:
    prompt_dir = tmp_path / "demo" / "v001"
    prompt_dir.mkdir(parents=True)
    (prompt_dir / "system_prompt.txt").write_text("   ", encoding="utf-8")
    manager = PromptManager(tmp_path)

    with pytest.raises(ValueError, match="empty"):
        manager.load_prompt_set(prompt_name="demo")
    with pytest.raises(ValueError, match="Invalid prompt version"):
        manager.load_prompt_set(prompt_name="demo", version="latest")
    with pytest.raises(FileNotFoundError):
        manager.load_prompt_set(prompt_name="missing")

    (prompt_dir / "system_prompt.txt").write_text("ok", encoding="utf-8")
    (prompt_dir / "meta.yaml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="object root"):
        manager.load_prompt_set(prompt_name="demo")


def test_prompt_builder_is_deterministic() -> None:
    builder = PromptBuilder()
    request = GeneratePostsInput(extraction={"b": 1, "a": 2})

    first = builder.post_generation_prompt(request)
    second = builder.post_generation_prompt(request)

    assert first == second
    assert 'Extraction JSON:\n{"a": 2, "b": 1}' in first
    assert "Preferred platforms: linkedin, x, threads, bluesky" in first


def test_prompt_builder_respects_request_overrides() -> None:
    builder = PromptBuilder()

    prompt = builder.post_generation_prompt(
        GeneratePostsInput(extraction={}, audience="clinicians", preferred_platforms=["x"])
    )
    extraction_prompt = builder.extraction_prompt(ExtractClaimsInput(document_text="body"))
    repair_prompt = builder.repair_prompt("raw output", '["claims: too short"]')

    assert "Audience: clinicians" in prompt
    assert "Preferred platforms: x" in prompt
    assert "DOI (if present): unknown" in extraction_prompt
    assert "Abstract: not provided" in extraction_prompt
    assert '["claims: too short"]' in repair_prompt
    assert repair_prompt.endswith("raw output")
