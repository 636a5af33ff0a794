"""Ordered, id-keyed in-memory registry of records of one entity type.

The collection performs no I/O. All methods are synchronous, so each call is
atomic with respect to the event loop. Invariant violations raise
``ReconciliationError``: they indicate a bug in the caller, not a user error.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Callable, Generic, Iterable, Iterator, NoReturn, TypeVar

from packages.edudesk_sdk.errors import ReconciliationError
from packages.edudesk_sdk.ids import EntityId
from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)

T = TypeVar("T")


class SyncState(StrEnum):
    """Agreement between a local record and the server."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityRecord(Generic[T]):
    """One record as rendered by the UI."""

    id: EntityId
    fields: T
    sync_state: SyncState = SyncState.CONFIRMED


CollectionListener = Callable[[tuple[EntityRecord[T], ...]], None]


class EntityCollection(Generic[T]):
    """Ordered records of one entity type, unique by id."""

    def __init__(
        self,
        entity_type: str,
        records: Iterable[EntityRecord[T]] = (),
    ) -> None:
        self._entity_type = entity_type
        self._records: list[EntityRecord[T]] = []
        self._listeners: list[CollectionListener[T]] = []
        for record in records:
            self._require_absent(record.id, operation="init")
            self._records.append(record)

    @property
    def entity_type(self) -> str:
        """Return the entity type name this collection holds."""
        return self._entity_type

    def snapshot(self) -> tuple[EntityRecord[T], ...]:
        """Return a read-only ordered view for rendering."""
        return tuple(self._records)

    def get(self, entity_id: EntityId) -> EntityRecord[T] | None:
        """Return the record with ``entity_id``, if present."""
        for record in self._records:
            if record.id == entity_id:
                return record
        return None

    def index_of(self, entity_id: EntityId) -> int | None:
        """Return the position of ``entity_id``, if present."""
        for index, record in enumerate(self._records):
            if record.id == entity_id:
                return index
        return None

    def __contains__(self, entity_id: object) -> bool:
        return any(record.id == entity_id for record in self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EntityRecord[T]]:
        return iter(tuple(self._records))

    def insert_at_front(self, record: EntityRecord[T]) -> None:
        """Insert ``record`` as the first item (new items surface first)."""
        self.insert(0, record)

    def append(self, record: EntityRecord[T]) -> None:
        """Insert ``record`` as the last item."""
        self.insert(len(self._records), record)

    def insert(self, index: int, record: EntityRecord[T]) -> None:
        """Insert ``record`` at ``index`` (0 <= index <= len)."""
        self._require_absent(record.id, operation="insert")
        if not 0 <= index <= len(self._records):
            self._fail(record.id, "insert", f"index {index} out of range")
        self._records.insert(index, record)
        self._changed()

    def replace(self, entity_id: EntityId, new_record: EntityRecord[T]) -> None:
        """Swap the record for ``entity_id`` in place, keeping its position."""
        index = self._require_index(entity_id, operation="replace")
        if new_record.id != entity_id and new_record.id in self:
            self._fail(new_record.id, "replace", "replacement id already present")
        self._records[index] = new_record
        self._changed()

    def remove(self, entity_id: EntityId) -> tuple[int, EntityRecord[T]]:
        """Remove ``entity_id``; returns its former index and the record."""
        index = self._require_index(entity_id, operation="remove")
        record = self._records.pop(index)
        self._changed()
        return index, record

    def update(
        self,
        entity_id: EntityId,
        patcher: Callable[[T], T],
        *,
        sync_state: SyncState | None = None,
    ) -> EntityRecord[T]:
        """Apply ``patcher`` to the record's fields in place."""
        index = self._require_index(entity_id, operation="update")
        current = self._records[index]
        updated = replace(
            current,
            fields=patcher(current.fields),
            sync_state=current.sync_state if sync_state is None else sync_state,
        )
        self._records[index] = updated
        self._changed()
        return updated

    def reset(self, records: Iterable[EntityRecord[T]]) -> None:
        """Replace the whole contents, e.g. after a fresh server listing."""
        incoming = list(records)
        seen: set[EntityId] = set()
        for record in incoming:
            if record.id in seen:
                self._fail(record.id, "reset", "duplicate id in listing")
            seen.add(record.id)
        self._records = incoming
        self._changed()

    def subscribe(self, listener: CollectionListener[T]) -> Callable[[], None]:
        """Register a change listener; returns its unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in tuple(self._listeners):
            listener(snapshot)

    def _require_index(self, entity_id: EntityId, *, operation: str) -> int:
        index = self.index_of(entity_id)
        if index is None:
            self._fail(entity_id, operation, "id not present")
        return index

    def _require_absent(self, entity_id: EntityId, *, operation: str) -> None:
        if entity_id in self:
            self._fail(entity_id, operation, "id already present")

    def _fail(self, entity_id: EntityId, operation: str, problem: str) -> NoReturn:
        with log_context(
            {fields.RESOURCE: self._entity_type, fields.ENTITY_ID: entity_id}
        ):
            _LOGGER.error("Collection invariant violated on %s: %s", operation, problem)
        raise ReconciliationError(
            message=f"{self._entity_type} {operation} {entity_id}: {problem}",
            entity_id=str(entity_id),
            operation=operation,
        )
