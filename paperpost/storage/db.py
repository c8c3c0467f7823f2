from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS documents (
    document_id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    storage_path TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('PENDING', 'PROCESSING', 'READY', 'FAILED')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_metadata (
    document_id TEXT PRIMARY KEY,
    title TEXT,
    authors_json TEXT NOT NULL DEFAULT '[]',
    year INTEGER,
    doi TEXT,
    url TEXT,
    is_open_access INTEGER CHECK (is_open_access IN (0, 1)),
    oa_url TEXT,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents (document_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS job_runs (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    job_run_id TEXT NOT NULL UNIQUE,
    document_id TEXT NOT NULL,
    stage TEXT NOT NULL CHECK (
        stage IN (
            'PARSE_PDF',
            'METADATA_ENRICH',
            'EXTRACTION',
            'POST_GENERATION',
            'EXPORT_RENDER'
        )
    ),
    status TEXT NOT NULL CHECK (status IN ('RUNNING', 'SUCCEEDED', 'FAILED')),
    duration_ms INTEGER,
    error_message TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents (document_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS extractions (
    document_id TEXT PRIMARY KEY,
    extracted_json TEXT NOT NULL,
    schema_version TEXT NOT NULL,
    confidence_score REAL NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents (document_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS post_variants (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    post_variant_id TEXT NOT NULL UNIQUE,
    document_id TEXT NOT NULL,
    platform TEXT NOT NULL CHECK (platform IN ('linkedin', 'x', 'threads', 'bluesky')),
    tone TEXT NOT NULL,
    length TEXT NOT NULL CHECK (length IN ('short', 'medium', 'long')),
    content_text TEXT NOT NULL,
    hashtags_json TEXT NOT NULL DEFAULT '[]',
    citation_block TEXT,
    citations_json TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents (document_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS exports (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    export_id TEXT NOT NULL UNIQUE,
    document_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents (document_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_job_runs_document_id ON job_runs (document_id);
CREATE INDEX IF NOT EXISTS idx_post_variants_document_id ON post_variants (document_id);
CREATE INDEX IF NOT EXISTS idx_exports_document_id ON exports (document_id);
"""


def init_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with connection(db_path) as conn:
        conn.executescript(SCHEMA_SQL)


@contextmanager
def connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
