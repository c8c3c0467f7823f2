from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

VERSION_RE = re.compile(r"^v(\d{3})$")


@dataclass(frozen=True, slots=True)
class PromptSet:
    prompt_name: str
    version: str
    system_prompt_text: str
    meta: dict[str, Any]
    prompt_dir: Path


class PromptManager:
    def __init__(self, prompts_root: Path | str) -> None:
        self.prompts_root = Path(prompts_root)

    def list_prompt_names(self) -> list[str]:
        if not self.prompts_root.exists():
            return []

        names: list[str] = []
        for child in self.prompts_root.iterdir():
            if not child.is_dir():
                continue
            if child.name.startswith("__"):
                continue
            if self.list_versions(child.name):
                names.append(child.name)
        return sorted(names)

    def list_versions(self, prompt_name: str) -> list[str]:
        prompt_dir = self.prompts_root / prompt_name
        if not prompt_dir.exists() or not prompt_dir.is_dir():
            return []

        versions: list[str] = []
        for child in prompt_dir.iterdir():
            if not child.is_dir():
                continue
            if VERSION_RE.match(child.name):
                versions.append(child.name)

        return sorted(versions, key=_version_to_int)

    def latest_version(self, prompt_name: str) -> str:
        versions = self.list_versions(prompt_name)
        if not versions:
            raise FileNotFoundError(
                f"No prompt versions found: {self.prompts_root / prompt_name}"
            )
        return versions[-1]

    def load_prompt_set(
        self,
        *,
        prompt_name: str,
        version: str | None = None,
    ) -> PromptSet:
        resolved_version = version or self.latest_version(prompt_name)
        prompt_dir = self._prompt_dir(prompt_name=prompt_name, version=resolved_version)
        system_prompt_path = prompt_dir / "system_prompt.txt"
        meta_path = prompt_dir / "meta.yaml"

        if not system_prompt_path.exists():
            raise FileNotFoundError(f"system prompt not found: {system_prompt_path}")

        system_prompt_text = system_prompt_path.read_text(encoding="utf-8")
        if not system_prompt_text.strip():
            raise ValueError(f"system prompt is empty: {system_prompt_path}")

        meta: dict[str, Any] = {}
        if meta_path.exists():
            parsed_meta = yaml.safe_load(meta_path.read_text(encoding="utf-8")) or {}
            if not isinstance(parsed_meta, dict):
                raise ValueError(f"meta.yaml must contain object root: {meta_path}")
            meta = parsed_meta

        return PromptSet(
            prompt_name=prompt_name,
            version=resolved_version,
            system_prompt_text=system_prompt_text,
            meta=meta,
            prompt_dir=prompt_dir,
        )

    def _prompt_dir(self, *, prompt_name: str, version: str) -> Path:
        if not VERSION_RE.match(version):
            raise ValueError(f"Invalid prompt version: {version}")

        prompt_dir = self.prompts_root / prompt_name / version
        if not prompt_dir.is_dir():
            raise FileNotFoundError(f"prompt version not found: {prompt_dir}")
        return prompt_dir


def _version_to_int(version: str) -> int:
    match = VERSION_RE.match(version)
    if match is None:
        raise ValueError(f"Invalid prompt version: {version}")
    return int(match.group(1))
