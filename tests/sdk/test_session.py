"""Unit tests for sign-in, registration and sign-out."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from packages.edudesk_sdk.config import SdkConfig
from packages.edudesk_sdk.credentials import CredentialStore, SessionEndReason
from packages.edudesk_sdk.errors import AuthExpiredError, HttpError
from packages.edudesk_sdk.pipeline import ApiRequest, RequestPipeline
from packages.edudesk_sdk.renewal import RenewalState
from packages.edudesk_sdk.session import SessionClient
from packages.edudesk_sdk.storage import MemoryStorage

_USER = {"id": 3, "username": "amina", "first_name": "Amina", "role": "secretary"}


def _session(handler, store: CredentialStore | None = None) -> SessionClient:
    config = SdkConfig(base_url="https://edu.test/api")
    pipeline = RequestPipeline(
        config=config,
        store=CredentialStore(MemoryStorage()) if store is None else store,
        transport=httpx.MockTransport(handler),
    )
    return SessionClient(config=config, pipeline=pipeline)


def test_login_stores_issued_credential() -> None:
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["authorization"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"access": "a-1", "refresh": "r-1", "user": _USER},
            request=request,
        )

    store = CredentialStore(MemoryStorage())
    session = _session(handler, store)

    profile = asyncio.run(session.login("amina", "s3cret"))

    assert seen == {
        "path": "/api/auth/login",
        "authorization": None,
        "body": {"username": "amina", "password": "s3cret"},
    }
    assert profile.role == "secretary"
    assert session.current_user() == profile
    credential = store.get()
    assert credential is not None
    assert credential.access_token == "a-1"


def test_login_with_bad_credentials_is_http_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "No active account"}, request=request)

    session = _session(handler)

    with pytest.raises(HttpError) as exc_info:
        asyncio.run(session.login("amina", "wrong"))

    assert exc_info.value.status == 401
    assert session.current_user() is None


def test_login_with_malformed_response_is_http_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access": "a-1", "user": _USER}, request=request)

    session = _session(handler)

    with pytest.raises(HttpError):
        asyncio.run(session.login("amina", "s3cret"))
    assert session.current_user() is None


def test_register_posts_profile_and_starts_session() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/auth/register"
        body = json.loads(request.content)
        assert body["email"] == "amina@example.org"
        return httpx.Response(
            201,
            json={"access": "a-2", "refresh": "r-2", "user": _USER},
            request=request,
        )

    session = _session(handler)

    profile = asyncio.run(
        session.register(
            {"username": "amina", "email": "amina@example.org", "password": "s3cret"}
        )
    )

    assert profile.username == "amina"
    assert session.current_user() is not None


def test_logout_clears_session_and_notifies() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"access": "a-1", "refresh": "r-1", "user": _USER},
            request=request,
        )

    store = CredentialStore(MemoryStorage())
    ended: list[SessionEndReason] = []
    store.subscribe(ended.append)
    session = _session(handler, store)
    asyncio.run(session.login("amina", "s3cret"))

    session.logout()

    assert session.current_user() is None
    assert ended == [SessionEndReason.LOGOUT]


def test_login_after_failed_renewal_rearms_pipeline() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/token/refresh":
            return httpx.Response(401, request=request)
        if request.url.path == "/api/auth/login":
            return httpx.Response(
                200,
                json={"access": "a-9", "refresh": "r-9", "user": _USER},
                request=request,
            )
        if request.headers.get("authorization") == "Bearer a-9":
            return httpx.Response(200, json=[], request=request)
        return httpx.Response(401, request=request)

    config = SdkConfig(base_url="https://edu.test/api")
    store = CredentialStore(MemoryStorage())
    pipeline = RequestPipeline(
        config=config, store=store, transport=httpx.MockTransport(handler)
    )
    session = SessionClient(config=config, pipeline=pipeline)
    tasks = ApiRequest(method="GET", path="/secretary/tasks/")

    async def work() -> Any:
        await session.login("amina", "s3cret")
        credential = store.get()
        assert credential is not None
        store.set(credential.with_access_token("stale"))
        with pytest.raises(AuthExpiredError):
            await pipeline.send(tasks)
        assert store.get() is None
        assert pipeline.renewal_state is RenewalState.FAILED

        await session.login("amina", "s3cret")
        assert pipeline.renewal_state is RenewalState.IDLE
        return await pipeline.request_json(tasks)

    assert asyncio.run(work()) == []
