from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAPERPOST_",
        extra="ignore",
    )

    environment: str = "local"
    data_dir: Path = Path("data")
    sqlite_path: Path = Path("data/paperpost.sqlite3")
    prompts_root: Path | None = None

    gemini_model: str = "gemini-1.5-flash"
    groq_model: str = "llama-3.3-70b-versatile"
    llm_timeout_seconds: float = Field(default=20.0, gt=0)
    llm_backoff_schedule_ms: list[int] = Field(default_factory=lambda: [500, 1500])

    extraction_prompt_version: str | None = None
    post_generation_prompt_version: str | None = None
    repair_prompt_version: str | None = None

    max_llm_input_chars: int = Field(default=12_000, ge=1)
    safe_snippet_chars: int = Field(default=2_500, ge=1)

    http_timeout_seconds: float = Field(default=15.0, gt=0)
    http_user_agent: str = "paperpost/0.1 (+https://github.com/paperpost)"
    detached_workers: int = Field(default=2, ge=1)

    bundle_signing_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "PAPERPOST_BUNDLE_SIGNING_KEY",
            "BUNDLE_SIGNING_KEY",
        ),
    )

    log_level: str = "INFO"
    log_file: Path | None = None

    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PAPERPOST_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    groq_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PAPERPOST_GROQ_API_KEY", "GROQ_API_KEY"),
    )
    unpaywall_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PAPERPOST_UNPAYWALL_EMAIL", "UNPAYWALL_EMAIL"),
    )

    @field_validator("llm_backoff_schedule_ms")
    @classmethod
    def _non_negative_backoff(cls, value: list[int]) -> list[int]:
        if any(item < 0 for item in value):
            raise ValueError("llm_backoff_schedule_ms entries must be >= 0")
        return value

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parents[2]

    @property
    def resolved_data_dir(self) -> Path:
        return self._resolve_path(self.data_dir)

    @property
    def resolved_sqlite_path(self) -> Path:
        return self._resolve_path(self.sqlite_path)

    @property
    def resolved_prompts_root(self) -> Path:
        if self.prompts_root is None:
            return Path(__file__).resolve().parents[1] / "prompts"
        return self._resolve_path(self.prompts_root)

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
