from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

DocumentStatus = Literal["PENDING", "PROCESSING", "READY", "FAILED"]
JobStage = Literal[
    "PARSE_PDF",
    "METADATA_ENRICH",
    "EXTRACTION",
    "POST_GENERATION",
    "EXPORT_RENDER",
]
JobRunStatus = Literal["RUNNING", "SUCCEEDED", "FAILED"]
Platform = Literal["linkedin", "x", "threads", "bluesky"]
LengthBucket = Literal["short", "medium", "long"]

PIPELINE_STAGES: tuple[JobStage, ...] = (
    "PARSE_PDF",
    "METADATA_ENRICH",
    "EXTRACTION",
    "POST_GENERATION",
    "EXPORT_RENDER",
)


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    document_id: str
    filename: str
    storage_path: str
    content_hash: str
    status: DocumentStatus
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class DocumentMetadataRecord:
    document_id: str
    title: str | None
    authors: list[str]
    year: int | None
    doi: str | None
    url: str | None
    is_open_access: bool | None
    oa_url: str | None
    updated_at: str


@dataclass(frozen=True, slots=True)
class JobRunRecord:
    job_run_id: str
    document_id: str
    stage: JobStage
    status: JobRunStatus
    duration_ms: int | None
    error_message: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class ExtractionRecord:
    document_id: str
    extracted_json: dict[str, Any]
    schema_version: str
    confidence_score: float
    updated_at: str


@dataclass(frozen=True, slots=True)
class PostVariantDraft:
    platform: Platform
    tone: str
    length: LengthBucket
    content_text: str
    hashtags: list[str]
    citation_block: str | None
    citations: list[dict[str, Any]]


@dataclass(frozen=True, slots=True)
class PostVariantRecord:
    post_variant_id: str
    document_id: str
    platform: Platform
    tone: str
    length: LengthBucket
    content_text: str
    hashtags: list[str]
    citation_block: str | None
    citations: list[dict[str, Any]]
    created_at: str


@dataclass(frozen=True, slots=True)
class ExportRecord:
    export_id: str
    document_id: str
    kind: str
    path: str
    created_at: str


@dataclass(frozen=True, slots=True)
class DocumentResults:
    document: DocumentRecord
    metadata: DocumentMetadataRecord | None
    extraction: ExtractionRecord | None
    post_variants: list[PostVariantRecord]
    job_runs: list[JobRunRecord]
    exports: list[ExportRecord]
