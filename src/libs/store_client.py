"""
Talent store client.

Async HTTP client for the remote authoritative store, with retry and
exponential backoff for idempotent reads.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from src.core.config import get_settings

logger = structlog.get_logger()

_RETRYABLE_METHODS = frozenset({"GET"})


class StoreClientError(Exception):
    """Base exception for store transport errors."""


class StoreTimeoutError(StoreClientError):
    """Raised when a store request times out."""


class StoreAPIError(StoreClientError):
    """Raised for non-success responses from the store."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class TalentStoreClient:
    """Async client for the talent store REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        max_retries: int | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.store_base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.store_api_token
        self.max_retries = max(
            1, max_retries if max_retries is not None else settings.store_max_retries
        )
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds
        )
        self._transport = transport

        if not self.api_token:
            logger.warning("store_api_token_missing", msg="STORE_API_TOKEN not configured")

    async def get(
        self, path: str, *, params: dict[str, Any] | None = None, allow_not_found: bool = False
    ) -> Any:
        return await self.request("GET", path, params=params, allow_not_found=allow_not_found)

    async def post(
        self, path: str, *, params: dict[str, Any] | None = None, json: Any = None
    ) -> Any:
        return await self.request("POST", path, params=params, json=json)

    async def put(self, path: str, *, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (``None`` when empty).

        Only GETs are retried, on timeouts and 5xx, with backoff 1s, 2s, 4s.
        With ``allow_not_found`` a 404 returns ``None`` instead of raising.
        """
        attempts = self.max_retries if method in _RETRYABLE_METHODS else 1
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_error: StoreClientError | None = None

        for attempt in range(attempts):
            start_time = datetime.now(UTC)

            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=self._headers(),
                        params=_clean_params(params),
                        json=json,
                    )
            except httpx.TimeoutException:
                last_error = StoreTimeoutError(
                    f"{method} {path} timed out (attempt {attempt + 1})"
                )
                await logger.awarning(
                    "store_timeout",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    timeout_seconds=self.timeout,
                )
            except httpx.RequestError as e:
                last_error = StoreClientError(f"{method} {path} failed: {e}")
                await logger.awarning(
                    "store_request_error",
                    method=method,
                    path=path,
                    error=str(e),
                    attempt=attempt + 1,
                )
            else:
                latency_ms = int((datetime.now(UTC) - start_time).total_seconds() * 1000)

                if response.status_code == 404 and allow_not_found:
                    return None

                if response.is_success:
                    await logger.adebug(
                        "store_request_completed",
                        method=method,
                        path=path,
                        status_code=response.status_code,
                        latency_ms=latency_ms,
                    )
                    return self._decode(response)

                error = StoreAPIError(
                    _error_message(response),
                    status_code=response.status_code,
                    payload=_safe_json(response),
                )
                if response.status_code < 500:
                    # Client error - don't retry
                    raise error

                last_error = error
                await logger.awarning(
                    "store_server_error",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )

            if attempt < attempts - 1:
                await asyncio.sleep(2**attempt)

        raise last_error or StoreClientError("All retries exhausted")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _decode(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreAPIError(
                "Store response was not valid JSON",
                status_code=response.status_code,
            ) from exc


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if not params:
        return None
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    payload = _safe_json(response)
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("title") or payload.get("error")
        if message:
            return str(message)
    text = response.text.strip()
    return text or f"Store error {response.status_code}"
