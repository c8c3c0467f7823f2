from __future__ import annotations

import re

DOI_RE = re.compile(r"\b10\.\d{4,9}/[-._;()/:A-Z0-9]+\b", re.IGNORECASE)
_TRAILING_PUNCTUATION_RE = re.compile(r"[).,;]+$")


def extract_dois(content: str) -> list[str]:
    """Unique lowercased DOIs in first-seen order."""
    unique: dict[str, None] = {}
    for match in DOI_RE.finditer(content):
        normalized = normalize_doi(match.group(0))
        if normalized:
            unique.setdefault(normalized, None)
    return list(unique)


def detect_doi(content: str) -> str | None:
    dois = extract_dois(content)
    if not dois:
        return None
    return dois[0]


def normalize_doi(raw_doi: str) -> str | None:
    trimmed = _TRAILING_PUNCTUATION_RE.sub("", raw_doi.strip())
    if not trimmed:
        return None
    return trimmed.lower()
