"""Optimistic create/update/delete over one collection, with exact rollback.

Each mutation applies its local effect immediately, sends the request through
the pipeline, and then either reconciles with the server answer or restores
the collection to the state it had before the mutation. Mutations on the same
id are serialized; mutations on different ids run concurrently.
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractContextManager, asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, AsyncIterator, Generic, Mapping, NoReturn, TypeVar

from pydantic import BaseModel

from packages.edudesk_sdk.collection import EntityCollection, EntityRecord, SyncState
from packages.edudesk_sdk.errors import HttpError, ReconciliationError
from packages.edudesk_sdk.ids import EntityId, LocalId, LocalIdFactory, ServerId
from packages.edudesk_sdk.pipeline import (
    ApiRequest,
    RequestPipeline,
    decode_response,
    with_timeout,
)
from packages.edudesk_sdk.resources import ResourceSpec
from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class MutationKind(StrEnum):
    """Kinds of optimistic mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class InsertPosition(StrEnum):
    """Where optimistic creates appear in the collection."""

    FRONT = "front"
    BACK = "back"


@dataclass(frozen=True)
class MutationIntent(Generic[ModelT]):
    """Everything needed to undo one in-flight mutation."""

    kind: MutationKind
    entity_type: str
    entity_id: EntityId | None = None
    temp_id: LocalId | None = None
    payload: Mapping[str, Any] | None = None
    prior_snapshot: EntityRecord[ModelT] | None = None
    prior_index: int | None = None


class KeyedLock:
    """One ``asyncio.Lock`` per key, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[EntityId, asyncio.Lock] = {}
        self._users: dict[EntityId, int] = {}

    def is_busy(self, key: EntityId) -> bool:
        """Return True while any task holds or waits for ``key``."""
        return key in self._locks

    @asynccontextmanager
    async def hold(self, key: EntityId) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class OptimisticMutationController(Generic[ModelT]):
    """Applies mutations of one resource optimistically to its collection."""

    def __init__(
        self,
        *,
        resource: ResourceSpec[ModelT],
        collection: EntityCollection[ModelT],
        pipeline: RequestPipeline,
        id_factory: LocalIdFactory | None = None,
        insert_position: InsertPosition = InsertPosition.FRONT,
        timeout_seconds: float | None = None,
    ) -> None:
        self._resource = resource
        self._collection = collection
        self._pipeline = pipeline
        self._ids = LocalIdFactory() if id_factory is None else id_factory
        self._insert_position = insert_position
        self._timeout_seconds = timeout_seconds
        self._locks = KeyedLock()
        self._aliases: dict[LocalId, ServerId] = {}

    @property
    def collection(self) -> EntityCollection[ModelT]:
        """Return the collection this controller reconciles."""
        return self._collection

    async def load(self) -> tuple[EntityRecord[ModelT], ...]:
        """Replace the collection with the server listing.

        Not meant to run while mutations on this collection are pending.
        """
        request = ApiRequest(method="GET", path=self._resource.path)
        status, body = await self._call(request)
        try:
            parsed = self._resource.parse_listing(body)
        except ValueError as exc:
            self._malformed(request, status, body, exc)
        self._collection.reset(
            EntityRecord(id=server_id, fields=record_fields)
            for server_id, record_fields in parsed
        )
        with log_context({fields.RESOURCE: self._resource.name}):
            _LOGGER.debug("Loaded %d records", len(self._collection))
        return self._collection.snapshot()

    async def create(
        self,
        payload: Mapping[str, Any],
        *,
        files: Mapping[str, Any] | None = None,
    ) -> ServerId:
        """Show ``payload`` as a pending record, then confirm it with the server.

        Returns the server-assigned id. On failure the pending record is
        removed and the error is re-raised.
        """
        body = self._resource.to_body(payload)
        local_fields = self._resource.build_local(body)
        temp_id = self._ids.next_id()
        intent: MutationIntent[ModelT] = MutationIntent(
            kind=MutationKind.CREATE,
            entity_type=self._resource.name,
            temp_id=temp_id,
            payload=body,
        )
        request = ApiRequest(
            method="POST",
            path=self._resource.path,
            json=None if files else body,
            data=body if files else None,
            files=files,
        )

        try:
            async with self._locks.hold(temp_id):
                self._insert_pending(EntityRecord(temp_id, local_fields, SyncState.PENDING))
                with self._mutation_context(intent, temp_id):
                    try:
                        status, response_body = await self._call(request)
                        server_id, confirmed = self._parse_record(
                            request, status, response_body
                        )
                    except (Exception, asyncio.CancelledError) as exc:
                        self._roll_back(intent, exc)
                        raise
                    self._collection.replace(
                        temp_id,
                        EntityRecord(server_id, confirmed, SyncState.CONFIRMED),
                    )
                    # Mutations queued on the temporary id are redirected here.
                    self._aliases[temp_id] = server_id
                    _LOGGER.debug("Create confirmed as %s", server_id)
        finally:
            self._forget_alias(temp_id)
        return server_id

    async def update(self, entity_id: EntityId, payload: Mapping[str, Any]) -> None:
        """Patch the record locally, then confirm or restore it."""
        body = self._resource.to_body(payload)
        async with self._serialized(entity_id) as target:
            prior = self._require(target, MutationKind.UPDATE)
            patched = self._resource.apply_patch(prior.fields, body)
            intent: MutationIntent[ModelT] = MutationIntent(
                kind=MutationKind.UPDATE,
                entity_type=self._resource.name,
                entity_id=target,
                payload=body,
                prior_snapshot=prior,
            )
            request = ApiRequest(
                method="PATCH",
                path=self._resource.item_path(target),
                json=body,
            )
            self._collection.update(target, lambda _: patched, sync_state=SyncState.PENDING)
            with self._mutation_context(intent, target):
                try:
                    status, response_body = await self._call(request)
                    echoed = (
                        None
                        if response_body is None
                        else self._parse_fields(request, status, response_body)
                    )
                except (Exception, asyncio.CancelledError) as exc:
                    self._roll_back(intent, exc)
                    raise
                self._collection.update(
                    target,
                    (lambda current: current) if echoed is None else (lambda _: echoed),
                    sync_state=SyncState.CONFIRMED,
                )
                _LOGGER.debug("Update confirmed")

    async def delete(self, entity_id: EntityId) -> None:
        """Remove the record locally, then confirm or re-insert it."""
        async with self._serialized(entity_id) as target:
            self._require(target, MutationKind.DELETE)
            request = ApiRequest(method="DELETE", path=self._resource.item_path(target))
            index, prior = self._collection.remove(target)
            intent: MutationIntent[ModelT] = MutationIntent(
                kind=MutationKind.DELETE,
                entity_type=self._resource.name,
                entity_id=target,
                prior_snapshot=prior,
                prior_index=index,
            )
            with self._mutation_context(intent, target):
                try:
                    await self._call(request)
                except (Exception, asyncio.CancelledError) as exc:
                    self._roll_back(intent, exc)
                    raise
                _LOGGER.debug("Delete confirmed")

    @asynccontextmanager
    async def _serialized(self, entity_id: EntityId) -> AsyncIterator[ServerId]:
        """Hold the lock for ``entity_id`` and yield the server id to act on.

        A temporary id waits for its create to finish and is then redirected
        to the server id, whose lock is taken as well.
        """
        if isinstance(entity_id, ServerId):
            async with self._locks.hold(entity_id):
                yield entity_id
            return
        try:
            async with self._locks.hold(entity_id):
                target = self._aliases.get(entity_id)
                if target is None:
                    self._missing(entity_id, "temporary id has no confirmed record")
                async with self._locks.hold(target):
                    yield target
        finally:
            self._forget_alias(entity_id)

    def _forget_alias(self, temp_id: LocalId) -> None:
        """Drop the alias of ``temp_id`` once nothing holds or awaits its lock."""
        if not self._locks.is_busy(temp_id):
            self._aliases.pop(temp_id, None)

    async def _call(self, request: ApiRequest) -> tuple[int, Any]:
        response = await self._pipeline.send(with_timeout(request, self._timeout_seconds))
        return response.status_code, decode_response(request, response)

    def _insert_pending(self, record: EntityRecord[ModelT]) -> None:
        if self._insert_position is InsertPosition.FRONT:
            self._collection.insert_at_front(record)
        else:
            self._collection.append(record)

    def _require(self, entity_id: ServerId, kind: MutationKind) -> EntityRecord[ModelT]:
        record = self._collection.get(entity_id)
        if record is None:
            self._missing(entity_id, f"{kind.value} target not in collection")
        return record

    def _missing(self, entity_id: EntityId, problem: str) -> NoReturn:
        with log_context(
            {fields.RESOURCE: self._resource.name, fields.ENTITY_ID: str(entity_id)}
        ):
            _LOGGER.error("Cannot mutate %s: %s", entity_id, problem)
        raise ReconciliationError(
            message=f"{self._resource.name} {entity_id}: {problem}",
            entity_id=str(entity_id),
            operation="mutate",
        )

    def _parse_record(
        self, request: ApiRequest, status: int, body: Any
    ) -> tuple[ServerId, ModelT]:
        try:
            return self._resource.parse_record(body)
        except ValueError as exc:
            self._malformed(request, status, body, exc)

    def _parse_fields(self, request: ApiRequest, status: int, body: Any) -> ModelT:
        try:
            return self._resource.parse_fields(body)
        except ValueError as exc:
            self._malformed(request, status, body, exc)

    def _malformed(
        self, request: ApiRequest, status: int, body: Any, exc: ValueError
    ) -> NoReturn:
        raise HttpError(
            message=f"Unexpected {self._resource.name} response for {request.method} {request.path}: {exc}",
            status=status,
            body=body,
            method=request.method,
            path=request.path,
        ) from exc

    def _roll_back(self, intent: MutationIntent[ModelT], exc: BaseException) -> None:
        """Undo the local effect of ``intent``."""
        prior = intent.prior_snapshot
        if intent.kind is MutationKind.CREATE and intent.temp_id is not None:
            self._collection.remove(intent.temp_id)
        elif (
            intent.kind is MutationKind.UPDATE
            and intent.entity_id is not None
            and prior is not None
        ):
            self._collection.replace(intent.entity_id, prior)
        elif (
            intent.kind is MutationKind.DELETE
            and prior is not None
            and intent.prior_index is not None
        ):
            self._collection.insert(min(intent.prior_index, len(self._collection)), prior)
        else:
            raise ReconciliationError(
                message=f"{intent.entity_type} {intent.kind.value} intent cannot be rolled back",
                entity_id=str(intent.entity_id or intent.temp_id),
                operation="rollback",
            ) from exc
        with log_context({fields.OUTCOME: "rolled_back"}):
            _LOGGER.warning(
                "Rolled back %s after %s: %s",
                intent.kind.value,
                type(exc).__name__,
                exc,
            )

    def _mutation_context(
        self, intent: MutationIntent[ModelT], entity_id: EntityId
    ) -> AbstractContextManager[None]:
        return log_context(
            {
                fields.RESOURCE: intent.entity_type,
                fields.MUTATION: intent.kind.value,
                fields.ENTITY_ID: str(entity_id),
            }
        )
