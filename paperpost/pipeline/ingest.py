from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from paperpost.storage.artifacts import ArtifactsManager
from paperpost.storage.models import DocumentRecord
from paperpost.storage.repo import StorageRepo

logger = logging.getLogger("paperpost.pipeline")

PDF_MAGIC = b"%PDF"


def ingest_document(
    *,
    repo: StorageRepo,
    artifacts_manager: ArtifactsManager,
    filename: str,
    content: bytes,
) -> DocumentRecord:
    """Store an uploaded PDF and create its PENDING document row."""
    if not is_pdf_upload(filename=filename, content=content):
        raise ValueError(f"Only PDF uploads are supported: {filename}")

    content_hash = hashlib.sha256(content).hexdigest()
    stored_path = artifacts_manager.store_upload(filename=filename, content=content)
    document = repo.create_document(
        filename=Path(filename).name,
        storage_path=str(stored_path),
        content_hash=content_hash,
    )

    duplicates = [
        item
        for item in repo.find_documents_by_hash(content_hash)
        if item.document_id != document.document_id
    ]
    logger.info(
        "Document ingested",
        extra={
            "document_id": document.document_id,
            "metrics": {"size_bytes": len(content), "duplicates": len(duplicates)},
        },
    )
    return document


def ingest_document_from_path(
    *,
    repo: StorageRepo,
    artifacts_manager: ArtifactsManager,
    source_path: Path | str,
) -> DocumentRecord:
    path = Path(source_path)
    if not path.is_file():
        raise ValueError(f"File does not exist: {path}")

    return ingest_document(
        repo=repo,
        artifacts_manager=artifacts_manager,
        filename=path.name,
        content=path.read_bytes(),
    )


def is_pdf_upload(*, filename: str, content: bytes) -> bool:
    return filename.lower().endswith(".pdf") and content.startswith(PDF_MAGIC)
