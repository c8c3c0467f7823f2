from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from paperpost.storage.models import PostVariantDraft
from paperpost.storage.repo import StorageRepo


def _create_document(repo: StorageRepo) -> str:
    document = repo.create_document(
        filename="paper.pdf",
        storage_path="/tmp/paper.pdf",
        content_hash="abc123",
    )
    return document.document_id


def _draft(platform: str, content_text: str) -> PostVariantDraft:
    return PostVariantDraft(
        platform=platform,  # type: ignore[arg-type]
        tone="neutral",
        length="short",
        content_text=content_text,
        hashtags=["#science"],
        citation_block="Paper (2021)",
        citations=[{"title": "Paper", "sourceUsed": True}],
    )


def test_storage_repo_creates_required_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "paperpost.sqlite3"
    StorageRepo(db_path=db_path)

    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ).fetchall()

    table_names = {name for (name,) in rows}

    assert {
        "documents",
        "document_metadata",
        "job_runs",
        "extractions",
        "post_variants",
        "exports",
    }.issubset(table_names)


def test_document_create_and_status_update(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)

    document = repo.get_document(document_id)
    assert document is not None
    assert document.status == "PENDING"
    assert document.content_hash == "abc123"
    assert [item.document_id for item in repo.find_documents_by_hash("abc123")] == [
        document_id
    ]

    repo.update_document_status(document_id=document_id, status="PROCESSING")
    assert repo.get_document(document_id).status == "PROCESSING"  # type: ignore[union-attr]

    with pytest.raises(KeyError):
        repo.update_document_status(document_id="missing", status="READY")


def test_metadata_upsert_roundtrips_nullable_open_access(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)

    first = repo.upsert_metadata(
        document_id=document_id,
        title="Walking",
        authors=["Ada Lovelace", "Alan Turing"],
        year=2021,
        doi="10.1000/xyz123",
        url="https://doi.org/10.1000/xyz123",
        is_open_access=None,
        oa_url=None,
    )
    assert first.is_open_access is None
    assert first.authors == ["Ada Lovelace", "Alan Turing"]

    second = repo.upsert_metadata(
        document_id=document_id,
        title="Walking",
        authors=[],
        year=None,
        doi="10.1000/xyz123",
        url=None,
        is_open_access=False,
        oa_url=None,
    )
    assert second.is_open_access is False
    assert second.authors == []


def test_job_runs_finish_once_and_list_newest_first(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)

    first = repo.create_job_run(document_id=document_id, stage="PARSE_PDF")
    second = repo.create_job_run(document_id=document_id, stage="METADATA_ENRICH")
    assert first.status == "RUNNING"

    repo.finish_job_run(job_run_id=first.job_run_id, status="SUCCEEDED", duration_ms=12)
    with pytest.raises(KeyError):
        repo.finish_job_run(job_run_id=first.job_run_id, status="FAILED", duration_ms=1)
    with pytest.raises(ValueError):
        repo.finish_job_run(job_run_id=second.job_run_id, status="RUNNING", duration_ms=1)

    newest_first = repo.list_job_runs(document_id)
    assert [item.stage for item in newest_first] == ["METADATA_ENRICH", "PARSE_PDF"]
    oldest_first = repo.list_job_runs(document_id, newest_first=False)
    assert [item.stage for item in oldest_first] == ["PARSE_PDF", "METADATA_ENRICH"]

    finished = repo.get_job_run(first.job_run_id)
    assert finished is not None
    assert finished.status == "SUCCEEDED"
    assert finished.duration_ms == 12


def test_extraction_upsert_replaces_payload(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)

    repo.upsert_extraction(
        document_id=document_id,
        extracted_json={"claims": ["a"]},
        schema_version="1.0.0",
        confidence_score=0.4,
    )
    repo.upsert_extraction(
        document_id=document_id,
        extracted_json={"claims": ["b"]},
        schema_version="1.0.0",
        confidence_score=0.9,
    )

    extraction = repo.get_extraction(document_id)
    assert extraction is not None
    assert extraction.extracted_json == {"claims": ["b"]}
    assert extraction.confidence_score == 0.9


def test_post_variants_are_replaced_as_a_whole(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)

    repo.replace_post_variants(
        document_id=document_id,
        variants=[_draft("linkedin", "first"), _draft("x", "second")],
    )
    repo.replace_post_variants(document_id=document_id, variants=[_draft("threads", "third")])

    variants = repo.list_post_variants(document_id)
    assert [item.content_text for item in variants] == ["third"]
    assert variants[0].hashtags == ["#science"]
    assert variants[0].citations == [{"title": "Paper", "sourceUsed": True}]


def test_document_results_aggregate(tmp_path: Path) -> None:
    repo = StorageRepo(db_path=tmp_path / "paperpost.sqlite3")
    document_id = _create_document(repo)
    repo.create_export(document_id=document_id, kind="bundle_zip", path="/tmp/a.zip")

    results = repo.get_document_results(document_id)

    assert results is not None
    assert results.document.document_id == document_id
    assert results.metadata is None
    assert results.extraction is None
    assert results.post_variants == []
    assert [item.kind for item in results.exports] == ["bundle_zip"]
    assert repo.get_document_results("missing") is None
