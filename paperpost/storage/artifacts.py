from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass(frozen=True, slots=True)
class ExportArtifacts:
    document_id: str
    export_dir: Path
    bundle_path: Path


class ArtifactsManager:
    """File storage under ``data_dir`` for uploads and export bundles."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"

    def store_upload(self, *, filename: str, content: bytes) -> Path:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        target = self.uploads_dir / f"{uuid4()}-{sanitize_filename(filename)}"
        target.write_bytes(content)
        return target.resolve()

    def read_file(self, path: Path | str) -> bytes:
        return Path(path).read_bytes()

    def create_export_artifacts(
        self, *, document_id: str, export_id: str
    ) -> ExportArtifacts:
        export_dir = self.exports_dir / document_id
        export_dir.mkdir(parents=True, exist_ok=True)
        return ExportArtifacts(
            document_id=document_id,
            export_dir=export_dir,
            bundle_path=export_dir / f"{document_id}_{export_id}_bundle.zip",
        )


def sanitize_filename(value: str) -> str:
    name = Path(value).name
    return _UNSAFE_FILENAME_CHARS.sub("_", name) or "upload.pdf"
