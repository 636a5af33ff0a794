"""Asynchronous edudesk SDK client for CLI and UI callers."""

from __future__ import annotations

from typing import Any

import httpx

from packages.edudesk_sdk.collection import EntityCollection
from packages.edudesk_sdk.config import SdkConfig
from packages.edudesk_sdk.credentials import CredentialStore
from packages.edudesk_sdk.ids import LocalIdFactory
from packages.edudesk_sdk.mutations import InsertPosition, OptimisticMutationController
from packages.edudesk_sdk.pipeline import RequestPipeline
from packages.edudesk_sdk.renewal import RenewalState
from packages.edudesk_sdk.resources import ResourceSpec, get_resource
from packages.edudesk_sdk.session import SessionClient
from packages.edudesk_sdk.storage import JsonFileStorage, KeyValueStorage


class EdudeskClient:
    """Owns one session pipeline and the per-resource controllers built on it."""

    def __init__(
        self,
        *,
        config: SdkConfig | None = None,
        storage: KeyValueStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        insert_position: InsertPosition = InsertPosition.FRONT,
    ) -> None:
        """Create one client with injected storage/transport or config-built ones."""
        self._config = SdkConfig() if config is None else config
        self._store = CredentialStore(
            JsonFileStorage(self._config.credentials_path) if storage is None else storage
        )
        self._pipeline = RequestPipeline(
            config=self._config, store=self._store, transport=transport
        )
        self._session = SessionClient(config=self._config, pipeline=self._pipeline)
        self._ids = LocalIdFactory()
        self._insert_position = insert_position
        self._controllers: dict[str, OptimisticMutationController[Any]] = {}

    async def aclose(self) -> None:
        """Close underlying transport resources."""
        await self._pipeline.aclose()

    async def __aenter__(self) -> EdudeskClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    @property
    def session(self) -> SessionClient:
        return self._session

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def renewal_state(self) -> RenewalState:
        return self._pipeline.renewal_state

    def controller(
        self, resource: str | ResourceSpec[Any]
    ) -> OptimisticMutationController[Any]:
        """Return the controller for ``resource``, building it on first use."""
        spec = get_resource(resource) if isinstance(resource, str) else resource
        controller = self._controllers.get(spec.name)
        if controller is None:
            controller = OptimisticMutationController(
                resource=spec,
                collection=EntityCollection(spec.name),
                pipeline=self._pipeline,
                id_factory=self._ids,
                insert_position=self._insert_position,
            )
            self._controllers[spec.name] = controller
        return controller

    def collection(self, resource: str | ResourceSpec[Any]) -> EntityCollection[Any]:
        """Return the collection the UI renders for ``resource``."""
        return self.controller(resource).collection
