"""Authenticated request pipeline with coordinated session renewal.

Every outbound call goes through ``RequestPipeline.send``:

1. The current access token (if any) is attached as a bearer credential.
2. The request is dispatched, bounded by a timeout.
3. A 401 on an authenticated request triggers one shared renewal (see
   ``RenewalGate``) and a single replay of the original request.
4. Any other non-2xx status becomes ``HttpError``; transport failures and
   timeouts become ``NetworkError``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

import httpx

from packages.edudesk_sdk.config import SdkConfig
from packages.edudesk_sdk.credentials import (
    Credential,
    CredentialStore,
    SessionEndReason,
)
from packages.edudesk_sdk.errors import AuthExpiredError, HttpError, NetworkError
from packages.edudesk_sdk.renewal import RenewalGate, RenewalState
from packages.edudesk_shared.http import (
    AsyncHttpClient,
    HttpJsonDecodeError,
    HttpRequestError,
    decode_json_body,
)
from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)

_UNAUTHORIZED = 401
_CONTENT_TYPE = "content-type"


@dataclass(frozen=True)
class ApiRequest:
    """One outbound REST call, independent of transport details."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None
    data: Mapping[str, Any] | None = None
    files: Mapping[str, Any] | None = None
    params: Mapping[str, Any] | None = None
    authenticated: bool = True
    timeout_seconds: float | None = None

    @property
    def is_multipart(self) -> bool:
        """Return True when the body is a multipart form upload."""
        return bool(self.files)


class RequestPipeline:
    """Sends ``ApiRequest`` values with bearer auth and single-flight renewal."""

    def __init__(
        self,
        *,
        config: SdkConfig,
        store: CredentialStore,
        http: AsyncHttpClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._owns_http = http is None
        self._http = (
            AsyncHttpClient(
                base_url=config.base_url,
                timeout_seconds=config.timeout_seconds,
                headers={"Accept": "application/json"},
                transport=transport,
            )
            if http is None
            else http
        )
        self._gate = RenewalGate(on_failure=self._on_renewal_failed)

    @property
    def store(self) -> CredentialStore:
        """Return the credential store this pipeline reads and writes."""
        return self._store

    @property
    def renewal_state(self) -> RenewalState:
        """Return the current renewal state."""
        return self._gate.state

    async def aclose(self) -> None:
        """Release transport resources when owned."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> RequestPipeline:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    def establish_session(self, credential: Credential) -> None:
        """Store a freshly issued credential and re-arm renewal."""
        self._store.set(credential)
        self._gate.reset()

    def end_session(self) -> None:
        """Drop the current session (user-initiated logout)."""
        self._store.clear(SessionEndReason.LOGOUT)

    async def send(self, request: ApiRequest) -> httpx.Response:
        """Send ``request``; renew and replay once on an expired session."""
        with log_context({fields.METHOD: request.method, fields.PATH: request.path}):
            credential = self._store.get() if request.authenticated else None
            sent_token = credential.access_token if credential is not None else None
            response = await self._dispatch(request, sent_token)

            if response.status_code == _UNAUTHORIZED and request.authenticated:
                token = await self._token_after_unauthorized(request, sent_token)
                response = await self._dispatch(request, token, attempt=2)
                if response.status_code == _UNAUTHORIZED:
                    _LOGGER.warning("Replay after renewal was rejected")
                    raise AuthExpiredError(
                        message=f"{request.method} {request.path} rejected after session renewal",
                        reason="replay_unauthorized",
                    )

            if response.is_error:
                raise _http_error(request, response)
            return response

    async def request_json(self, request: ApiRequest) -> Any:
        """Send ``request`` and decode its JSON body (``None`` when empty)."""
        return decode_response(request, await self.send(request))

    async def _token_after_unauthorized(
        self, request: ApiRequest, sent_token: str | None
    ) -> str:
        """Return the access token to replay with after a 401."""
        current = self._store.get()
        if current is None:
            raise AuthExpiredError(
                message=f"{request.method} {request.path} requires an active session",
                reason="no_session",
            )
        if sent_token is not None and current.access_token != sent_token:
            # Renewed while this request was in flight.
            return current.access_token
        try:
            return await self._gate.renew(self._refresh_access_token)
        except AuthExpiredError as exc:
            raise AuthExpiredError(message=exc.message, reason=exc.reason) from exc
        except Exception as exc:
            raise AuthExpiredError(
                message="Session renewal failed",
                reason="renewal_failed",
            ) from exc

    async def _refresh_access_token(self) -> str:
        """Call the renewal endpoint and store the renewed credential."""
        credential = self._store.get()
        if credential is None or not credential.refresh_token:
            raise AuthExpiredError(message="No refresh token available", reason="no_refresh_token")

        _LOGGER.info("Renewing session")
        try:
            access, rotated = await self._request_renewal(credential)
        except Exception:
            newer = self._newer_session(credential)
            if newer is None:
                raise
            _LOGGER.info("Renewal failed after a new sign-in; keeping the new session")
            return newer.access_token

        latest = self._store.get()
        if latest is None:
            raise AuthExpiredError(message="Session ended during renewal", reason="no_session")
        newer = self._newer_session(credential)
        if newer is not None:
            return newer.access_token

        self._store.set(credential.with_access_token(access, refresh_token=rotated))
        _LOGGER.info("Session renewed")
        return access

    async def _request_renewal(self, credential: Credential) -> tuple[str, str | None]:
        """Exchange the refresh token; return the new access and rotated refresh tokens."""
        renewal = ApiRequest(
            method="POST",
            path=self._config.refresh_path,
            json={"refresh": credential.refresh_token},
            authenticated=False,
        )
        body = await self.request_json(renewal)
        access = body.get("access") if isinstance(body, dict) else None
        if not isinstance(access, str) or access == "":
            raise AuthExpiredError(
                message="Renewal response did not include an access token",
                reason="malformed_renewal",
            )
        rotated = body.get("refresh")
        return access, rotated if isinstance(rotated, str) else None

    def _newer_session(self, renewing: Credential) -> Credential | None:
        """Return the stored credential when a sign-in replaced ``renewing``."""
        latest = self._store.get()
        if latest is None or latest.refresh_token == renewing.refresh_token:
            return None
        return latest

    def _on_renewal_failed(self) -> None:
        # Runs in the renewal task right after a failure with no newer session.
        _LOGGER.warning("Session renewal failed; clearing credentials")
        self._store.clear(SessionEndReason.RENEWAL_FAILED)

    async def _dispatch(
        self, request: ApiRequest, token: str | None, *, attempt: int = 1
    ) -> httpx.Response:
        """Issue one HTTP exchange for ``request`` with ``token`` attached."""
        timeout = (
            request.timeout_seconds
            if request.timeout_seconds is not None
            else self._config.timeout_seconds
        )
        kwargs: dict[str, Any] = {"headers": self._headers(request, token)}
        if request.params is not None:
            kwargs["params"] = dict(request.params)
        if request.is_multipart:
            kwargs["files"] = dict(request.files or {})
            if request.data is not None:
                kwargs["data"] = _form_fields(request.data)
        elif request.json is not None:
            kwargs["json"] = request.json
        elif request.data is not None:
            kwargs["data"] = dict(request.data)

        with log_context({fields.ATTEMPT: attempt}):
            _LOGGER.debug("Dispatching request")
            try:
                response = await asyncio.wait_for(
                    self._http.request(
                        request.method,
                        request.path,
                        **kwargs,
                    ),
                    timeout=timeout,
                )
            except TimeoutError as exc:
                _LOGGER.warning("Request timed out after %.1fs", timeout)
                raise NetworkError(
                    message=f"{request.method} {request.path} timed out after {timeout}s",
                    method=request.method,
                    path=request.path,
                    timed_out=True,
                    cause=exc,
                ) from exc
            except HttpRequestError as exc:
                _LOGGER.warning("Request failed in transport")
                raise NetworkError(
                    message=f"{request.method} {request.path} failed: {exc.cause or exc}",
                    method=request.method,
                    path=request.path,
                    timed_out=exc.timed_out,
                    cause=exc,
                ) from exc
            with log_context({fields.STATUS_CODE: response.status_code}):
                _LOGGER.debug("Response received")
            return response

    def _headers(self, request: ApiRequest, token: str | None) -> dict[str, str]:
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() != "authorization"
        }
        if request.is_multipart:
            # httpx must generate the boundary itself.
            headers = {k: v for k, v in headers.items() if k.lower() != _CONTENT_TYPE}
        elif request.json is not None and not any(
            key.lower() == _CONTENT_TYPE for key in headers
        ):
            headers["Content-Type"] = "application/json"
        if request.authenticated and token:
            headers["Authorization"] = f"Bearer {token}"
        return headers


def decode_response(request: ApiRequest, response: httpx.Response) -> Any:
    """Decode a successful response body; non-JSON bodies become ``HttpError``."""
    try:
        return decode_json_body(response)
    except HttpJsonDecodeError as exc:
        raise HttpError(
            message=str(exc),
            status=response.status_code,
            body=exc.response_body,
            method=request.method,
            path=request.path,
        ) from exc


def _http_error(request: ApiRequest, response: httpx.Response) -> HttpError:
    """Build an ``HttpError`` carrying the server body unmodified."""
    body: Any
    try:
        body = decode_json_body(response)
    except HttpJsonDecodeError:
        body = response.text
    return HttpError(
        message=f"HTTP {response.status_code} for {request.method} {request.path}",
        status=response.status_code,
        body=body,
        method=request.method,
        path=request.path,
    )


def with_timeout(request: ApiRequest, timeout_seconds: float | None) -> ApiRequest:
    """Return ``request`` bounded by ``timeout_seconds`` when one is given."""
    if timeout_seconds is None:
        return request
    return replace(request, timeout_seconds=timeout_seconds)


def _form_fields(data: Mapping[str, Any]) -> dict[str, str]:
    """Render multipart form values as text; ``None`` fields are omitted."""
    rendered: dict[str, str] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[key] = "true" if value else "false"
        else:
            rendered[key] = str(value)
    return rendered
