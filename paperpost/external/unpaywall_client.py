from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from paperpost.external.http import build_client, get_json
from paperpost.utils.error_taxonomy import configuration_error

UNPAYWALL_API_BASE_URL = "https://api.unpaywall.org/v2"
SERVICE_NAME = "unpaywall"


@dataclass(frozen=True, slots=True)
class OpenAccessRecord:
    is_open_access: bool
    oa_url: str | None


class UnpaywallClient:
    def __init__(
        self,
        *,
        email: str | None,
        http_client: httpx.Client | None = None,
        base_url: str = UNPAYWALL_API_BASE_URL,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self._email = email
        self._http_client = http_client or build_client()
        self._base_url = base_url.rstrip("/")
        self._retry_backoff_seconds = retry_backoff_seconds

    def find_by_doi(self, doi: str) -> OpenAccessRecord:
        email = (self._email or "").strip()
        if not email:
            raise configuration_error("UNPAYWALL_EMAIL is required for Unpaywall requests")

        encoded_doi = quote(doi.strip(), safe="")
        payload = get_json(
            self._http_client,
            f"{self._base_url}/{encoded_doi}",
            service=SERVICE_NAME,
            params={"email": email},
            retry_backoff_seconds=self._retry_backoff_seconds,
        )
        if not isinstance(payload, dict):
            payload = {}

        return OpenAccessRecord(
            is_open_access=bool(payload.get("is_oa")),
            oa_url=_normalize_oa_url(payload.get("best_oa_location")),
        )


def _normalize_oa_url(best_location: Any) -> str | None:
    if not isinstance(best_location, dict):
        return None

    url_for_pdf = best_location.get("url_for_pdf")
    if isinstance(url_for_pdf, str) and url_for_pdf:
        return url_for_pdf

    url = best_location.get("url")
    if isinstance(url, str) and url:
        return url

    return None
