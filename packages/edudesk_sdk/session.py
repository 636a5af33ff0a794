"""Sign-in, registration and sign-out on top of the request pipeline."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from packages.edudesk_sdk.config import SdkConfig
from packages.edudesk_sdk.credentials import Credential, Profile
from packages.edudesk_sdk.errors import HttpError
from packages.edudesk_sdk.pipeline import ApiRequest, RequestPipeline, decode_response
from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)


class SessionClient:
    """Issues credentials through the auth endpoints and installs them."""

    def __init__(self, *, config: SdkConfig, pipeline: RequestPipeline) -> None:
        self._config = config
        self._pipeline = pipeline

    async def login(self, username: str, password: str) -> Profile:
        """Sign in and start a session; bad credentials raise ``HttpError(401)``."""
        with log_context({fields.USERNAME: username}):
            credential = await self._issue(
                ApiRequest(
                    method="POST",
                    path=self._config.login_path,
                    json={"username": username, "password": password},
                    authenticated=False,
                )
            )
            _LOGGER.info("Signed in")
        return credential.user

    async def register(self, payload: Mapping[str, Any]) -> Profile:
        """Create an account and start a session for it."""
        credential = await self._issue(
            ApiRequest(
                method="POST",
                path=self._config.register_path,
                json=dict(payload),
                authenticated=False,
            )
        )
        with log_context({fields.USERNAME: credential.user.username}):
            _LOGGER.info("Registered")
        return credential.user

    def logout(self) -> None:
        """End the session locally; the server keeps no session state."""
        self._pipeline.end_session()

    def current_user(self) -> Profile | None:
        """Return the signed-in user, if any."""
        credential = self._pipeline.store.get()
        return None if credential is None else credential.user

    async def _issue(self, request: ApiRequest) -> Credential:
        response = await self._pipeline.send(request)
        body = decode_response(request, response)
        try:
            credential = _credential_from_body(body)
        except (ValueError, ValidationError) as exc:
            raise HttpError(
                message=f"Unexpected response from {request.path}: {exc}",
                status=response.status_code,
                body=body,
                method=request.method,
                path=request.path,
            ) from exc
        self._pipeline.establish_session(credential)
        return credential


def _credential_from_body(body: Any) -> Credential:
    """Build a credential from an ``{access, refresh, user}`` response."""
    if not isinstance(body, dict):
        raise ValueError("expected a JSON object")
    access = body.get("access")
    refresh = body.get("refresh")
    if not isinstance(access, str) or not access:
        raise ValueError("missing access token")
    if not isinstance(refresh, str) or not refresh:
        raise ValueError("missing refresh token")
    return Credential.issue(
        access_token=access,
        refresh_token=refresh,
        user=Profile.model_validate(body.get("user")),
    )
