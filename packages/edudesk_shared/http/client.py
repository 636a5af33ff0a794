"""Shared asynchronous HTTP transport over httpx.

The client hands every response back, whatever its status; callers decide
what a status means. Only transport failures are raised, as
``HttpRequestError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .errors import HttpJsonDecodeError, HttpRequestError


def decode_json_body(response: httpx.Response) -> Any:
    """Decode a JSON response body, returning ``None`` for empty bodies."""
    if len(response.content) == 0:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise HttpJsonDecodeError(
            message=f"Invalid JSON response for {response.request.method} {response.request.url}",
            method=response.request.method,
            url=str(response.request.url),
            status_code=response.status_code,
            response_body=response.content.decode("utf-8", errors="replace"),
            cause=exc,
        ) from exc


class AsyncHttpClient:
    """Owns one ``httpx.AsyncClient`` unless an existing one is injected."""

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout_seconds: float = 10.0,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = (
            httpx.AsyncClient(
                base_url=base_url,
                timeout=timeout_seconds,
                headers=dict(headers or {}),
                transport=transport,
            )
            if client is None
            else client
        )

    @property
    def base_url(self) -> str:
        """Return the base URL requests are resolved against."""
        return str(self._client.base_url)

    async def aclose(self) -> None:
        """Close the underlying client when this wrapper created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue one request; transport failures become ``HttpRequestError``."""
        try:
            return await self._client.request(method=method, url=url, **kwargs)
        except httpx.RequestError as exc:
            request = _request_or_none(exc)
            request_url = str(request.url) if request is not None else url
            request_method = request.method if request is not None else method.upper()
            raise HttpRequestError(
                message=f"HTTP request failed for {request_method} {request_url}",
                method=request_method,
                url=request_url,
                retryable=True,
                cause=exc,
            ) from exc


def _request_or_none(exc: httpx.RequestError) -> httpx.Request | None:
    """Return the request attached to an httpx error, if any.

    ``httpx.RequestError.request`` raises when no request was bound.
    """
    try:
        return exc.request
    except RuntimeError:
        return None
