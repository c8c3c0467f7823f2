from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from paperpost.external.http import build_client, get_json

CROSSREF_API_BASE_URL = "https://api.crossref.org/works"
SERVICE_NAME = "crossref"


@dataclass(frozen=True, slots=True)
class BibliographicRecord:
    title: str
    authors: list[str]
    year: int | None
    url: str | None
    doi: str


class CrossrefClient:
    def __init__(
        self,
        *,
        http_client: httpx.Client | None = None,
        base_url: str = CROSSREF_API_BASE_URL,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._http_client = http_client or build_client()
        self._base_url = base_url.rstrip("/")
        self._retry_backoff_seconds = retry_backoff_seconds

    def find_by_doi(self, doi: str) -> BibliographicRecord:
        encoded_doi = quote(doi.strip(), safe="")
        payload = get_json(
            self._http_client,
            f"{self._base_url}/{encoded_doi}",
            service=SERVICE_NAME,
            retry_backoff_seconds=self._retry_backoff_seconds,
        )

        message = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(message, dict):
            message = {}

        return BibliographicRecord(
            title=_normalize_title(message.get("title")),
            authors=_normalize_authors(message.get("author")),
            year=_normalize_year(message.get("issued")),
            url=_optional_str(message.get("URL")),
            doi=_optional_str(message.get("DOI")) or doi,
        )


def _normalize_title(value: Any) -> str:
    if isinstance(value, list) and value and isinstance(value[0], str) and value[0]:
        return value[0]
    if isinstance(value, str) and value:
        return value
    return ""


def _normalize_authors(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []

    authors: list[str] = []
    for author in value:
        if not isinstance(author, dict):
            continue

        name = author.get("name")
        if isinstance(name, str) and name:
            authors.append(name)
            continue

        given = author.get("given") if isinstance(author.get("given"), str) else ""
        family = author.get("family") if isinstance(author.get("family"), str) else ""
        full = f"{given} {family}".strip()
        if full:
            authors.append(full)

    return authors


def _normalize_year(issued: Any) -> int | None:
    if not isinstance(issued, dict):
        return None

    date_parts = issued.get("date-parts")
    if not isinstance(date_parts, list) or not date_parts:
        return None

    first = date_parts[0]
    if not isinstance(first, list) or not first:
        return None

    year = first[0]
    if isinstance(year, int) and not isinstance(year, bool):
        return year
    return None


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
