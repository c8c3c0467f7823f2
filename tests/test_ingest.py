from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from paperpost.pipeline.ingest import (
    ingest_document,
    ingest_document_from_path,
    is_pdf_upload,
)
from paperpost.storage.artifacts import ArtifactsManager, sanitize_filename
from paperpost.storage.repo import StorageRepo

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<<>>\nendobj\n%%EOF\n"


def _setup(tmp_path: Path) -> tuple[StorageRepo, ArtifactsManager]:
    return (
        StorageRepo(db_path=tmp_path / "paperpost.sqlite3"),
        ArtifactsManager(tmp_path / "data"),
    )


def test_ingest_stores_bytes_and_creates_pending_document(tmp_path: Path) -> None:
    repo, artifacts_manager = _setup(tmp_path)

    document = ingest_document(
        repo=repo,
        artifacts_manager=artifacts_manager,
        filename="My Paper (final).pdf",
        content=PDF_BYTES,
    )

    assert document.status == "PENDING"
    assert document.filename == "My Paper (final).pdf"
    assert document.content_hash == hashlib.sha256(PDF_BYTES).hexdigest()

    stored = Path(document.storage_path)
    assert stored.parent == (tmp_path / "data" / "uploads").resolve()
    assert stored.name.endswith("-My_Paper__final_.pdf")
    assert artifacts_manager.read_file(stored) == PDF_BYTES


@pytest.mark.parametrize(
    ("filename", "content"),
    [
        ("paper.txt", PDF_BYTES),
        ("paper.pdf", b"plain text"),
        ("paper.pdf", b""),
    ],
)
def test_ingest_rejects_non_pdf_input(tmp_path: Path, filename: str, content: bytes) -> None:
    repo, artifacts_manager = _setup(tmp_path)

    with pytest.raises(ValueError, match="Only PDF"):
        ingest_document(
            repo=repo,
            artifacts_manager=artifacts_manager,
            filename=filename,
            content=content,
        )

    assert repo.list_documents() == []
    assert not artifacts_manager.uploads_dir.exists()


def test_ingest_from_path(tmp_path: Path) -> None:
    repo, artifacts_manager = _setup(tmp_path)
    source = tmp_path / "source.PDF"
    source.write_bytes(PDF_BYTES)

    document = ingest_document_from_path(
        repo=repo, artifacts_manager=artifacts_manager, source_path=source
    )

    assert document.filename == "source.PDF"
    with pytest.raises(ValueError, match="does not exist"):
        ingest_document_from_path(
            repo=repo,
            artifacts_manager=artifacts_manager,
            source_path=tmp_path / "missing.pdf",
        )


def test_duplicate_uploads_keep_separate_documents(tmp_path: Path) -> None:
    repo, artifacts_manager = _setup(tmp_path)

    first = ingest_document(
        repo=repo, artifacts_manager=artifacts_manager, filename="a.pdf", content=PDF_BYTES
    )
    second = ingest_document(
        repo=repo, artifacts_manager=artifacts_manager, filename="a.pdf", content=PDF_BYTES
    )

    assert first.document_id != second.document_id
    assert first.storage_path != second.storage_path
    assert len(repo.find_documents_by_hash(first.content_hash)) == 2


def test_helpers() -> None:
    assert is_pdf_upload(filename="x.pdf", content=b"%PDF-1.4") is True
    assert is_pdf_upload(filename="x.pdf", content=b"%PDX") is False
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("") == "upload.pdf"
