from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import asdict
from typing import Any
from uuid import uuid4
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from paperpost.storage.artifacts import ArtifactsManager
from paperpost.storage.models import ExportRecord, PostVariantRecord
from paperpost.storage.repo import StorageRepo

BUNDLE_EXPORT_KIND = "bundle_zip"

_BUNDLE_MANIFEST_FILE = "bundle_manifest.json"
_MANIFEST_SIGNATURE_ALGORITHM = "hmac-sha256"


class ZipExportError(RuntimeError):
    """Raised when a document bundle cannot be exported."""


class DocumentBundleExporter:
    """Writes extraction, metadata and post variants of a document into a zip."""

    def __init__(
        self,
        *,
        repo: StorageRepo,
        artifacts_manager: ArtifactsManager,
        signing_key: str | None = None,
    ) -> None:
        self.repo = repo
        self.artifacts_manager = artifacts_manager
        self.signing_key = signing_key

    def export(self, document_id: str) -> ExportRecord:
        extraction = self.repo.get_extraction(document_id)
        if extraction is None:
            raise ZipExportError(f"No extraction to export for document: {document_id}")

        post_variants = self.repo.list_post_variants(document_id)
        metadata = self.repo.get_metadata(document_id)

        archive_files: list[tuple[str, bytes]] = [
            ("extraction.json", _json_dumps_bytes(extraction.extracted_json)),
            (
                "posts.json",
                _json_dumps_bytes(
                    {"posts": [_post_payload(item) for item in post_variants]}
                ),
            ),
            ("posts.md", _render_posts_markdown(post_variants).encode("utf-8")),
        ]
        if metadata is not None:
            archive_files.append(("metadata.json", _json_dumps_bytes(asdict(metadata))))

        manifest_payload = _build_bundle_manifest(
            document_id=document_id,
            archive_files=archive_files,
            signing_key=self.signing_key,
        )
        archive_entries = [
            *archive_files,
            (_BUNDLE_MANIFEST_FILE, _json_dumps_bytes(manifest_payload)),
        ]

        export_id = str(uuid4())
        artifacts = self.artifacts_manager.create_export_artifacts(
            document_id=document_id, export_id=export_id
        )
        with ZipFile(artifacts.bundle_path, mode="w") as archive:
            for relative_path, data in sorted(archive_entries, key=lambda item: item[0]):
                zip_info = ZipInfo(filename=relative_path)
                zip_info.date_time = (1980, 1, 1, 0, 0, 0)
                zip_info.compress_type = ZIP_DEFLATED
                archive.writestr(zip_info, data)

        return self.repo.create_export(
            document_id=document_id,
            kind=BUNDLE_EXPORT_KIND,
            path=str(artifacts.bundle_path.resolve()),
            export_id=export_id,
        )


def _post_payload(post_variant: PostVariantRecord) -> dict[str, Any]:
    return {
        "platform": post_variant.platform,
        "tone": post_variant.tone,
        "length": post_variant.length,
        "contentText": post_variant.content_text,
        "hashtags": post_variant.hashtags,
        "citationBlock": post_variant.citation_block,
        "citations": post_variant.citations,
    }


def _render_posts_markdown(post_variants: list[PostVariantRecord]) -> str:
    sections: list[str] = []
    for post_variant in post_variants:
        lines = [
            f"## {post_variant.platform} ({post_variant.length}, {post_variant.tone})",
            "",
            post_variant.content_text,
        ]
        if post_variant.hashtags:
            lines.extend(["", " ".join(post_variant.hashtags)])
        if post_variant.citation_block:
            lines.extend(["", f"> {post_variant.citation_block}"])
        sections.append("\n".join(lines))
    return "\n\n".join(sections) + "\n"


def _build_bundle_manifest(
    *,
    document_id: str,
    archive_files: list[tuple[str, bytes]],
    signing_key: str | None,
) -> dict[str, Any]:
    files_payload: list[dict[str, Any]] = []
    for relative_path, data in sorted(archive_files, key=lambda item: item[0]):
        files_payload.append(
            {
                "relative_path": relative_path,
                "size_bytes": len(data),
                "sha256": hashlib.sha256(data).hexdigest(),
            }
        )

    manifest_payload: dict[str, Any] = {
        "version": "v1",
        "document_id": document_id,
        "files": files_payload,
    }
    normalized_key = _normalize_signing_key(signing_key)
    if normalized_key is not None:
        manifest_payload["signature"] = {
            "algorithm": _MANIFEST_SIGNATURE_ALGORITHM,
            "hmac_sha256": _compute_manifest_signature(
                manifest_payload=manifest_payload,
                signing_key=normalized_key,
            ),
        }
    return manifest_payload


def _json_dumps_bytes(payload: Any) -> bytes:
    text = json.dumps(
        payload,
        ensure_ascii=False,
        indent=2,
        sort_keys=True,
    )
    return f"{text}\n".encode("utf-8")


def _compute_manifest_signature(
    *,
    manifest_payload: dict[str, Any],
    signing_key: str,
) -> str:
    message = json.dumps(
        manifest_payload,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")
    return hmac.new(
        signing_key.encode("utf-8"),
        message,
        hashlib.sha256,
    ).hexdigest()


def _normalize_signing_key(signing_key: str | None) -> str | None:
    if signing_key is None:
        return None
    normalized = signing_key.strip()
    if not normalized:
        return None
    return normalized
