from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from paperpost.external.crossref_client import BibliographicRecord
from paperpost.external.unpaywall_client import OpenAccessRecord
from paperpost.llm_client.base import (
    ExtractClaimsInput,
    ExtractionPayload,
    GeneratePostsInput,
    LLMProvider,
    PostPayload,
)
from paperpost.pdf.doi_detect import detect_doi
from paperpost.pdf.parser import ParsedPdf
from paperpost.pipeline.job_runs import JobRunTracker
from paperpost.storage.models import (
    DocumentMetadataRecord,
    ExportRecord,
    LengthBucket,
    PostVariantDraft,
)
from paperpost.storage.repo import StorageRepo
from paperpost.utils.error_taxonomy import application_error, error_kind
from paperpost.utils.logging import clear_log_context, set_log_context

logger = logging.getLogger("paperpost.pipeline")

EXTRACTION_SCHEMA_VERSION = "1.0.0"
DEFAULT_TONE = "neutral"
DEFAULT_MAX_LLM_INPUT_CHARS = 12_000
DEFAULT_SAFE_SNIPPET_CHARS = 2_500
DEFAULT_DETACHED_WORKERS = 2

_SHORT_POST_MAX_CHARS = 280
_MEDIUM_POST_MAX_CHARS = 900


class FileReader(Protocol):
    def read_file(self, path: Path | str) -> bytes: ...


class PdfTextExtractor(Protocol):
    def parse(self, content: bytes) -> ParsedPdf: ...


class BibliographicLookup(Protocol):
    def find_by_doi(self, doi: str) -> BibliographicRecord: ...


class OpenAccessLookup(Protocol):
    def find_by_doi(self, doi: str) -> OpenAccessRecord: ...


class ExportWriter(Protocol):
    def export(self, document_id: str) -> ExportRecord: ...


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    full_text: str
    abstract_text: str | None
    detected_doi: str | None


@dataclass(frozen=True, slots=True)
class EnrichmentResult:
    doi: str | None
    is_open_access: bool | None
    metadata: DocumentMetadataRecord


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        repo: StorageRepo,
        file_reader: FileReader,
        pdf_parser: PdfTextExtractor,
        bibliographic_client: BibliographicLookup,
        open_access_client: OpenAccessLookup,
        llm: LLMProvider,
        exporter: ExportWriter,
        tracker: JobRunTracker | None = None,
        max_llm_input_chars: int = DEFAULT_MAX_LLM_INPUT_CHARS,
        safe_snippet_chars: int = DEFAULT_SAFE_SNIPPET_CHARS,
        executor: ThreadPoolExecutor | None = None,
        detached_workers: int = DEFAULT_DETACHED_WORKERS,
    ) -> None:
        self.repo = repo
        self.file_reader = file_reader
        self.pdf_parser = pdf_parser
        self.bibliographic_client = bibliographic_client
        self.open_access_client = open_access_client
        self.llm = llm
        self.exporter = exporter
        self.tracker = tracker or JobRunTracker(repo=repo)
        self.max_llm_input_chars = max_llm_input_chars
        self.safe_snippet_chars = safe_snippet_chars
        self._executor = executor
        self._detached_workers = detached_workers
        self._active_lock = threading.Lock()
        self._active_documents: set[str] = set()

    def run(self, document_id: str) -> None:
        self._claim(document_id)
        try:
            self._run_claimed(document_id)
        finally:
            self._release(document_id)

    def start_detached(self, document_id: str) -> Future[None]:
        """Claim synchronously, then run the pipeline on a worker thread."""
        self._claim(document_id)
        try:
            future = self._resolve_executor().submit(self._run_claimed, document_id)
        except Exception:
            self._release(document_id)
            raise

        future.add_done_callback(
            lambda done: self._on_detached_done(document_id=document_id, future=done)
        )
        return future

    def is_active(self, document_id: str) -> bool:
        with self._active_lock:
            return document_id in self._active_documents

    def shutdown(self, *, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _run_claimed(self, document_id: str) -> None:
        set_log_context(document_id=document_id)
        try:
            self.repo.update_document_status(
                document_id=document_id, status="PROCESSING"
            )
            logger.info("Pipeline started")

            try:
                self._run_stages(document_id)
                self.repo.update_document_status(document_id=document_id, status="READY")
            except Exception as error:
                self._mark_failed(document_id=document_id, error=error)
                raise

            logger.info("Pipeline finished")
        finally:
            clear_log_context()

    def _run_stages(self, document_id: str) -> None:
        parsed = self.tracker.run_stage(
            document_id=document_id,
            stage="PARSE_PDF",
            body=lambda: self._parse_pdf(document_id),
        )
        enrichment = self.tracker.run_stage(
            document_id=document_id,
            stage="METADATA_ENRICH",
            body=lambda: self._enrich_metadata(document_id, parsed),
        )
        extraction = self.tracker.run_stage(
            document_id=document_id,
            stage="EXTRACTION",
            body=lambda: self._extract_claims(document_id, parsed, enrichment),
        )
        self.tracker.run_stage(
            document_id=document_id,
            stage="POST_GENERATION",
            body=lambda: self._generate_posts(document_id, extraction),
        )
        self.tracker.run_stage(
            document_id=document_id,
            stage="EXPORT_RENDER",
            body=lambda: self.exporter.export(document_id),
        )

    def _parse_pdf(self, document_id: str) -> ParsedDocument:
        document = self.repo.get_document(document_id)
        if document is None:
            raise KeyError(f"Document not found: {document_id}")

        content = self.file_reader.read_file(document.storage_path)
        parsed = self.pdf_parser.parse(content)
        return ParsedDocument(
            full_text=parsed.full_text,
            abstract_text=parsed.abstract_text,
            detected_doi=detect_doi(parsed.full_text),
        )

    def _enrich_metadata(
        self,
        document_id: str,
        parsed: ParsedDocument,
    ) -> EnrichmentResult:
        existing = self.repo.get_metadata(document_id)
        doi = parsed.detected_doi or (existing.doi if existing is not None else None)

        bibliographic: BibliographicRecord | None = None
        open_access: OpenAccessRecord | None = None
        if doi:
            bibliographic = self.bibliographic_client.find_by_doi(doi)
            open_access = self._lookup_open_access(doi)

        is_open_access = _first_present(
            open_access.is_open_access if open_access is not None else None,
            existing.is_open_access if existing is not None else None,
        )
        metadata = self.repo.upsert_metadata(
            document_id=document_id,
            title=_first_present(
                bibliographic.title if bibliographic is not None else None,
                existing.title if existing is not None else None,
            ),
            authors=(
                bibliographic.authors
                if bibliographic is not None and bibliographic.authors
                else (existing.authors if existing is not None else [])
            ),
            year=_first_present(
                bibliographic.year if bibliographic is not None else None,
                existing.year if existing is not None else None,
            ),
            doi=_first_present(
                bibliographic.doi if bibliographic is not None else None,
                doi,
            ),
            url=_first_present(
                bibliographic.url if bibliographic is not None else None,
                existing.url if existing is not None else None,
            ),
            is_open_access=is_open_access,
            oa_url=_first_present(
                open_access.oa_url if open_access is not None else None,
                existing.oa_url if existing is not None else None,
            ),
        )
        return EnrichmentResult(
            doi=metadata.doi,
            is_open_access=is_open_access,
            metadata=metadata,
        )

    def _lookup_open_access(self, doi: str) -> OpenAccessRecord | None:
        try:
            return self.open_access_client.find_by_doi(doi)
        except Exception as error:
            logger.warning(
                "Open access lookup failed, continuing without it: %s",
                error_kind(error),
                extra={"metrics": {"error_kind": error_kind(error), "error": str(error)}},
            )
            return None

    def _extract_claims(
        self,
        document_id: str,
        parsed: ParsedDocument,
        enrichment: EnrichmentResult,
    ) -> ExtractionPayload:
        text_for_llm = build_text_for_llm(
            parsed.full_text,
            parsed.abstract_text,
            enrichment.is_open_access,
            max_chars=self.max_llm_input_chars,
            snippet_chars=self.safe_snippet_chars,
        )
        extraction = self.llm.extract_claims(
            ExtractClaimsInput(
                document_text=text_for_llm,
                abstract_text=parsed.abstract_text,
                doi=enrichment.doi,
            )
        )
        self.repo.upsert_extraction(
            document_id=document_id,
            extracted_json=extraction,
            schema_version=EXTRACTION_SCHEMA_VERSION,
            confidence_score=float(extraction["confidenceScore"]),
        )
        return extraction

    def _generate_posts(
        self,
        document_id: str,
        extraction: ExtractionPayload,
    ) -> list[PostPayload]:
        posts = self.llm.generate_posts(GeneratePostsInput(extraction=extraction))
        citations = list(extraction.get("citations") or [])
        self.repo.replace_post_variants(
            document_id=document_id,
            variants=[_post_to_draft(post, citations=citations) for post in posts],
        )
        return posts

    def _mark_failed(self, *, document_id: str, error: BaseException) -> None:
        logger.error(
            "Pipeline failed: %s",
            error_kind(error),
            extra={
                "document_id": document_id,
                "metrics": {"error_kind": error_kind(error)},
            },
        )
        try:
            self.repo.update_document_status(document_id=document_id, status="FAILED")
        except Exception:
            logger.exception("Unable to mark document as FAILED")

    def _on_detached_done(self, *, document_id: str, future: Future[None]) -> None:
        try:
            if future.cancelled():
                return
            error = future.exception()
            if error is None:
                return
            document = self.repo.get_document(document_id)
            if document is not None and document.status != "FAILED":
                self._mark_failed(document_id=document_id, error=error)
            else:
                logger.warning(
                    "Detached pipeline run ended with %s",
                    error_kind(error),
                    extra={"document_id": document_id},
                )
        finally:
            self._release(document_id)

    def _claim(self, document_id: str) -> None:
        with self._active_lock:
            if document_id in self._active_documents:
                raise application_error(
                    f"Pipeline is already running for document: {document_id}"
                )
            self._active_documents.add(document_id)

    def _release(self, document_id: str) -> None:
        with self._active_lock:
            self._active_documents.discard(document_id)

    def _resolve_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._detached_workers,
                thread_name_prefix="paperpost-pipeline",
            )
        return self._executor


def build_text_for_llm(
    full_text: str,
    abstract_text: str | None,
    is_open_access: bool | None,
    *,
    max_chars: int = DEFAULT_MAX_LLM_INPUT_CHARS,
    snippet_chars: int = DEFAULT_SAFE_SNIPPET_CHARS,
) -> str:
    """Only open-access papers send their full body upstream."""
    normalized_full = full_text.strip()
    normalized_abstract = (abstract_text or "").strip()

    if is_open_access is not True:
        safe_text = normalized_abstract or normalized_full[:snippet_chars]
        return safe_text[:max_chars]

    return normalized_full[:max_chars]


def estimate_length(content: str) -> LengthBucket:
    if len(content) < _SHORT_POST_MAX_CHARS:
        return "short"
    if len(content) < _MEDIUM_POST_MAX_CHARS:
        return "medium"
    return "long"


def _post_to_draft(post: PostPayload, *, citations: list[Any]) -> PostVariantDraft:
    content_text = str(post["contentText"])
    return PostVariantDraft(
        platform=post["platform"],
        tone=DEFAULT_TONE,
        length=estimate_length(content_text),
        content_text=content_text,
        hashtags=[str(tag) for tag in post.get("hashtags") or []],
        citation_block=post.get("citationBlock"),
        citations=citations,
    )


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None
