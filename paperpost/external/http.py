from __future__ import annotations

from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from paperpost.utils.error_taxonomy import (
    external_service_error,
    parse_retry_after,
    rate_limit_error,
)

DEFAULT_HTTP_TIMEOUT_SECONDS = 15.0
DEFAULT_USER_AGENT = "paperpost/0.1"
TRANSPORT_MAX_ATTEMPTS = 3


def build_client(
    *,
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    return httpx.Client(
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        timeout=timeout_seconds,
        follow_redirects=True,
        transport=transport,
    )


def get_json(
    client: httpx.Client,
    url: str,
    *,
    service: str,
    params: dict[str, Any] | None = None,
    retry_backoff_seconds: float = 0.5,
) -> Any:
    @retry(
        wait=wait_exponential(multiplier=retry_backoff_seconds),
        stop=stop_after_attempt(TRANSPORT_MAX_ATTEMPTS),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    def _do_get() -> httpx.Response:
        return client.get(url, params=params)

    try:
        response = _do_get()
    except httpx.TransportError as error:
        raise external_service_error(
            service=service,
            message=f"{service} request failed: {error.__class__.__name__}: {error}",
        ) from error

    if response.status_code == 429:
        raise rate_limit_error(
            service=service,
            retry_after_seconds=parse_retry_after(response.headers),
        )
    if not response.is_success:
        raise external_service_error(
            service=service,
            message=f"{service} request failed with status {response.status_code}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as error:
        raise external_service_error(
            service=service,
            message=f"{service} returned a non-JSON body",
            status_code=response.status_code,
        ) from error
