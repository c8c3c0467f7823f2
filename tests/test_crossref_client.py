from __future__ import annotations

import httpx
import pytest

from paperpost.external.crossref_client import CrossrefClient
from paperpost.external.http import build_client
from paperpost.utils.error_taxonomy import AppError


def _client(handler) -> CrossrefClient:
    return CrossrefClient(
        http_client=build_client(transport=httpx.MockTransport(handler)),
        retry_backoff_seconds=0,
    )


def test_find_by_doi_normalizes_record() -> None:
    requested: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        return httpx.Response(
            200,
            json={
                "message": {
                    "title": ["Walking and glycemic control"],
                    "author": [
                        {"given": "Ada", "family": "Lovelace"},
                        {"name": "Diabetes Study Group"},
                        {"family": "Turing"},
                        {},
                    ],
                    "issued": {"date-parts": [[2021, 5, 1]]},
                    "URL": "https://doi.org/10.1000/xyz123",
                    "DOI": "10.1000/xyz123",
                }
            },
        )

    record = _client(handler).find_by_doi("10.1000/xyz123")

    assert record.title == "Walking and glycemic control"
    assert record.authors == ["Ada Lovelace", "Diabetes Study Group", "Turing"]
    assert record.year == 2021
    assert record.url == "https://doi.org/10.1000/xyz123"
    assert record.doi == "10.1000/xyz123"
    assert requested[0].url.path.startswith("/works/10.1000")
    assert requested[0].headers["user-agent"].startswith("paperpost")


def test_find_by_doi_tolerates_sparse_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": {"issued": {"date-parts": [[None]]}}})

    record = _client(handler).find_by_doi("10.1000/abc")

    assert record.title == ""
    assert record.authors == []
    assert record.year is None
    assert record.url is None
    assert record.doi == "10.1000/abc"


def test_rate_limit_maps_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"retry-after": "30"})

    with pytest.raises(AppError) as exc_info:
        _client(handler).find_by_doi("10.1000/xyz123")

    assert exc_info.value.kind == "RATE_LIMIT"
    assert exc_info.value.service == "crossref"
    assert exc_info.value.retry_after_seconds == 30


def test_non_success_status_is_external_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status": "error"})

    with pytest.raises(AppError) as exc_info:
        _client(handler).find_by_doi("10.1000/xyz123")

    assert exc_info.value.kind == "EXTERNAL_SERVICE"
    assert exc_info.value.status_code == 404


def test_transport_errors_are_retried_then_mapped() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(AppError) as exc_info:
        _client(handler).find_by_doi("10.1000/xyz123")

    assert calls["count"] == 3
    assert exc_info.value.kind == "EXTERNAL_SERVICE"
    assert exc_info.value.status_code is None


def test_transient_network_error_recovers() -> None:
    outcomes: list[object] = [httpx.ConnectError("refused"), {"message": {"title": "T"}}]

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(200, json=outcome)

    assert _client(handler).find_by_doi("10.1000/xyz123").title == "T"
