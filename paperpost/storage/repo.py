from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence
from uuid import uuid4

from paperpost.storage.db import connection, init_db
from paperpost.storage.models import (
    DocumentMetadataRecord,
    DocumentRecord,
    DocumentResults,
    DocumentStatus,
    ExportRecord,
    ExtractionRecord,
    JobRunRecord,
    JobRunStatus,
    JobStage,
    PostVariantDraft,
    PostVariantRecord,
)

_DOCUMENT_COLUMNS = """
    document_id,
    filename,
    storage_path,
    content_hash,
    status,
    created_at,
    updated_at
"""

_JOB_RUN_COLUMNS = """
    job_run_id,
    document_id,
    stage,
    status,
    duration_ms,
    error_message,
    created_at
"""

_POST_VARIANT_COLUMNS = """
    post_variant_id,
    document_id,
    platform,
    tone,
    length,
    content_text,
    hashtags_json,
    citation_block,
    citations_json,
    created_at
"""


class StorageRepo:
    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        init_db(self.db_path)

    def create_document(
        self,
        *,
        filename: str,
        storage_path: str,
        content_hash: str,
        document_id: str | None = None,
        status: DocumentStatus = "PENDING",
    ) -> DocumentRecord:
        document_identifier = document_id or str(uuid4())
        created_at = _utc_now()

        with connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO documents (
                    document_id,
                    filename,
                    storage_path,
                    content_hash,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document_identifier,
                    filename,
                    storage_path,
                    content_hash,
                    status,
                    created_at,
                    created_at,
                ),
            )

        document = self.get_document(document_identifier)
        if document is None:
            raise RuntimeError("Failed to create document")
        return document

    def get_document(self, document_id: str) -> DocumentRecord | None:
        with connection(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?",
                (document_id,),
            ).fetchone()

        if row is None:
            return None
        return _row_to_document_record(row)

    def find_documents_by_hash(self, content_hash: str) -> list[DocumentRecord]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_DOCUMENT_COLUMNS}
                FROM documents
                WHERE content_hash = ?
                ORDER BY created_at DESC
                """,
                (content_hash,),
            ).fetchall()

        return [_row_to_document_record(row) for row in rows]

    def list_documents(self, *, limit: int = 50) -> list[DocumentRecord]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_DOCUMENT_COLUMNS}
                FROM documents
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (max(limit, 1),),
            ).fetchall()

        return [_row_to_document_record(row) for row in rows]

    def update_document_status(
        self,
        *,
        document_id: str,
        status: DocumentStatus,
    ) -> None:
        with connection(self.db_path) as conn:
            result = conn.execute(
                """
                UPDATE documents
                SET status = ?, updated_at = ?
                WHERE document_id = ?
                """,
                (status, _utc_now(), document_id),
            )

        if result.rowcount == 0:
            raise KeyError(f"Document not found: {document_id}")

    def get_metadata(self, document_id: str) -> DocumentMetadataRecord | None:
        with connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT
                    document_id,
                    title,
                    authors_json,
                    year,
                    doi,
                    url,
                    is_open_access,
                    oa_url,
                    updated_at
                FROM document_metadata
                WHERE document_id = ?
                """,
                (document_id,),
            ).fetchone()

        if row is None:
            return None

        return DocumentMetadataRecord(
            document_id=str(row["document_id"]),
            title=_to_optional_str(row["title"]),
            authors=[str(item) for item in _from_json_list(row["authors_json"])],
            year=_to_optional_int(row["year"]),
            doi=_to_optional_str(row["doi"]),
            url=_to_optional_str(row["url"]),
            is_open_access=_to_optional_bool(row["is_open_access"]),
            oa_url=_to_optional_str(row["oa_url"]),
            updated_at=str(row["updated_at"]),
        )

    def upsert_metadata(
        self,
        *,
        document_id: str,
        title: str | None,
        authors: Sequence[str],
        year: int | None,
        doi: str | None,
        url: str | None,
        is_open_access: bool | None,
        oa_url: str | None,
    ) -> DocumentMetadataRecord:
        with connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO document_metadata (
                    document_id,
                    title,
                    authors_json,
                    year,
                    doi,
                    url,
                    is_open_access,
                    oa_url,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    title = excluded.title,
                    authors_json = excluded.authors_json,
                    year = excluded.year,
                    doi = excluded.doi,
                    url = excluded.url,
                    is_open_access = excluded.is_open_access,
                    oa_url = excluded.oa_url,
                    updated_at = excluded.updated_at
                """,
                (
                    document_id,
                    title,
                    _to_json_text(list(authors)),
                    year,
                    doi,
                    url,
                    None if is_open_access is None else int(is_open_access),
                    oa_url,
                    _utc_now(),
                ),
            )

        metadata = self.get_metadata(document_id)
        if metadata is None:
            raise RuntimeError("Failed to upsert document metadata")
        return metadata

    def create_job_run(self, *, document_id: str, stage: JobStage) -> JobRunRecord:
        job_run_id = str(uuid4())

        with connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO job_runs (
                    job_run_id,
                    document_id,
                    stage,
                    status,
                    created_at
                )
                VALUES (?, ?, ?, 'RUNNING', ?)
                """,
                (job_run_id, document_id, stage, _utc_now()),
            )

        job_run = self.get_job_run(job_run_id)
        if job_run is None:
            raise RuntimeError("Failed to create job run")
        return job_run

    def finish_job_run(
        self,
        *,
        job_run_id: str,
        status: JobRunStatus,
        duration_ms: int,
        error_message: str | None = None,
    ) -> None:
        if status == "RUNNING":
            raise ValueError("Job run must finish with SUCCEEDED or FAILED")

        with connection(self.db_path) as conn:
            result = conn.execute(
                """
                UPDATE job_runs
                SET status = ?, duration_ms = ?, error_message = ?
                WHERE job_run_id = ? AND status = 'RUNNING'
                """,
                (status, duration_ms, error_message, job_run_id),
            )

        if result.rowcount == 0:
            raise KeyError(f"Running job run not found: {job_run_id}")

    def get_job_run(self, job_run_id: str) -> JobRunRecord | None:
        with connection(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_JOB_RUN_COLUMNS} FROM job_runs WHERE job_run_id = ?",
                (job_run_id,),
            ).fetchone()

        if row is None:
            return None
        return _row_to_job_run_record(row)

    def list_job_runs(
        self,
        document_id: str,
        *,
        newest_first: bool = True,
    ) -> list[JobRunRecord]:
        order = "DESC" if newest_first else "ASC"
        with connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_JOB_RUN_COLUMNS}
                FROM job_runs
                WHERE document_id = ?
                ORDER BY created_at {order}, seq {order}
                """,
                (document_id,),
            ).fetchall()

        return [_row_to_job_run_record(row) for row in rows]

    def upsert_extraction(
        self,
        *,
        document_id: str,
        extracted_json: dict[str, Any],
        schema_version: str,
        confidence_score: float,
    ) -> ExtractionRecord:
        with connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO extractions (
                    document_id,
                    extracted_json,
                    schema_version,
                    confidence_score,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    extracted_json = excluded.extracted_json,
                    schema_version = excluded.schema_version,
                    confidence_score = excluded.confidence_score,
                    updated_at = excluded.updated_at
                """,
                (
                    document_id,
                    _to_json_text(extracted_json),
                    schema_version,
                    float(confidence_score),
                    _utc_now(),
                ),
            )

        extraction = self.get_extraction(document_id)
        if extraction is None:
            raise RuntimeError("Failed to upsert extraction")
        return extraction

    def get_extraction(self, document_id: str) -> ExtractionRecord | None:
        with connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT
                    document_id,
                    extracted_json,
                    schema_version,
                    confidence_score,
                    updated_at
                FROM extractions
                WHERE document_id = ?
                """,
                (document_id,),
            ).fetchone()

        if row is None:
            return None

        return ExtractionRecord(
            document_id=str(row["document_id"]),
            extracted_json=json.loads(str(row["extracted_json"])),
            schema_version=str(row["schema_version"]),
            confidence_score=float(row["confidence_score"]),
            updated_at=str(row["updated_at"]),
        )

    def replace_post_variants(
        self,
        *,
        document_id: str,
        variants: Sequence[PostVariantDraft],
    ) -> list[PostVariantRecord]:
        created_at = _utc_now()

        with connection(self.db_path) as conn:
            conn.execute(
                "DELETE FROM post_variants WHERE document_id = ?",
                (document_id,),
            )
            conn.executemany(
                """
                INSERT INTO post_variants (
                    post_variant_id,
                    document_id,
                    platform,
                    tone,
                    length,
                    content_text,
                    hashtags_json,
                    citation_block,
                    citations_json,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        str(uuid4()),
                        document_id,
                        variant.platform,
                        variant.tone,
                        variant.length,
                        variant.content_text,
                        _to_json_text(list(variant.hashtags)),
                        variant.citation_block,
                        _to_json_text(list(variant.citations)),
                        created_at,
                    )
                    for variant in variants
                ],
            )

        return self.list_post_variants(document_id)

    def list_post_variants(self, document_id: str) -> list[PostVariantRecord]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT {_POST_VARIANT_COLUMNS}
                FROM post_variants
                WHERE document_id = ?
                ORDER BY seq ASC
                """,
                (document_id,),
            ).fetchall()

        return [_row_to_post_variant_record(row) for row in rows]

    def create_export(
        self,
        *,
        document_id: str,
        kind: str,
        path: str,
        export_id: str | None = None,
    ) -> ExportRecord:
        export_id = export_id or str(uuid4())
        created_at = _utc_now()

        with connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO exports (export_id, document_id, kind, path, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (export_id, document_id, kind, path, created_at),
            )

        return ExportRecord(
            export_id=export_id,
            document_id=document_id,
            kind=kind,
            path=path,
            created_at=created_at,
        )

    def list_exports(self, document_id: str) -> list[ExportRecord]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT export_id, document_id, kind, path, created_at
                FROM exports
                WHERE document_id = ?
                ORDER BY seq DESC
                """,
                (document_id,),
            ).fetchall()

        return [
            ExportRecord(
                export_id=str(row["export_id"]),
                document_id=str(row["document_id"]),
                kind=str(row["kind"]),
                path=str(row["path"]),
                created_at=str(row["created_at"]),
            )
            for row in rows
        ]

    def get_document_results(self, document_id: str) -> DocumentResults | None:
        document = self.get_document(document_id)
        if document is None:
            return None

        return DocumentResults(
            document=document,
            metadata=self.get_metadata(document_id),
            extraction=self.get_extraction(document_id),
            post_variants=self.list_post_variants(document_id),
            job_runs=self.list_job_runs(document_id),
            exports=self.list_exports(document_id),
        )


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _to_optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _to_optional_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)


def _to_optional_bool(value: object) -> bool | None:
    if value is None:
        return None
    return bool(value)


def _row_to_document_record(row: Any) -> DocumentRecord:
    return DocumentRecord(
        document_id=str(row["document_id"]),
        filename=str(row["filename"]),
        storage_path=str(row["storage_path"]),
        content_hash=str(row["content_hash"]),
        status=str(row["status"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_job_run_record(row: Any) -> JobRunRecord:
    return JobRunRecord(
        job_run_id=str(row["job_run_id"]),
        document_id=str(row["document_id"]),
        stage=str(row["stage"]),
        status=str(row["status"]),
        duration_ms=_to_optional_int(row["duration_ms"]),
        error_message=_to_optional_str(row["error_message"]),
        created_at=str(row["created_at"]),
    )


def _row_to_post_variant_record(row: Any) -> PostVariantRecord:
    return PostVariantRecord(
        post_variant_id=str(row["post_variant_id"]),
        document_id=str(row["document_id"]),
        platform=str(row["platform"]),
        tone=str(row["tone"]),
        length=str(row["length"]),
        content_text=str(row["content_text"]),
        hashtags=[str(item) for item in _from_json_list(row["hashtags_json"])],
        citation_block=_to_optional_str(row["citation_block"]),
        citations=[
            item for item in _from_json_list(row["citations_json"]) if isinstance(item, dict)
        ],
        created_at=str(row["created_at"]),
    )


def _to_json_text(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)


def _from_json_list(value: object) -> list[Any]:
    text = _to_optional_str(value)
    if text is None:
        return []

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return []

    if not isinstance(parsed, list):
        return []
    return parsed
