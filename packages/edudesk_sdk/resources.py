"""REST resource descriptors and the secretary dashboard record models.

A ``ResourceSpec`` knows where a resource lives and how to move between
caller payloads, local record fields, and server bodies. Server field names
are used unchanged on both sides of the wire.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.edudesk_sdk.ids import ServerId, as_server_id

ModelT = TypeVar("ModelT", bound=BaseModel)

_ID_FIELD = "id"


class Task(BaseModel):
    """Secretary priority task."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str = ""
    description: str | None = None
    owner: str = ""
    priority: str = "high"
    status: str = "not_started"
    due_date: str | None = None

    @field_validator("owner", mode="before")
    @classmethod
    def _blank_owner(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return value or "high"

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return value or "not_started"


class Meeting(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str = ""
    meeting_date: str | None = None
    agenda: str = ""
    organizer: str = ""
    meeting_type: str = ""
    status: str = "scheduled"
    followup_completed: bool = False

    @field_validator("agenda", "organizer", "meeting_type", mode="before")
    @classmethod
    def _blank_text(cls, value: Any) -> Any:
        return "" if value is None else value


class Decision(BaseModel):
    """Administrative decision with completion progress (percent)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ref: str = ""
    title: str = ""
    sector: str = ""
    unit: str = ""
    deadline: str | None = None
    status: str = "pending"
    progress: int = Field(default=0, ge=0, le=100)

    @field_validator("progress", mode="before")
    @classmethod
    def _missing_progress(cls, value: Any) -> Any:
        return 0 if value is None else value


class Document(BaseModel):
    """Incoming or outgoing document tracked by the secretariat."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ref: str = ""
    document_type: str = ""
    origin: str = ""
    stage: str = "received"
    deadline: str | None = None
    is_urgent: bool = False
    file: str | None = None

    @field_validator("is_urgent", mode="before")
    @classmethod
    def _missing_urgency(cls, value: Any) -> Any:
        return False if value is None else value


@dataclass(frozen=True)
class ResourceSpec(Generic[ModelT]):
    """Location and record model of one REST collection resource."""

    name: str
    path: str
    model: type[ModelT]

    def item_path(self, entity_id: ServerId) -> str:
        """Return the URL path of one stored item."""
        return f"{self.path}{entity_id.path_segment}/"

    def to_body(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Return the validated wire body for the fields present in ``payload``.

        Unknown fields and values the record model rejects raise ``ValueError``.
        """
        unknown = sorted(set(payload) - set(self.model.model_fields))
        if unknown:
            raise ValueError(f"unknown {self.name} field(s): {', '.join(unknown)}")
        validated = self.model.model_validate(dict(payload))
        return validated.model_dump(mode="json", include=set(payload))

    def build_local(self, body: Mapping[str, Any]) -> ModelT:
        """Build the optimistic fields shown before the server answers."""
        return self.model.model_validate(dict(body))

    def apply_patch(self, current: ModelT, body: Mapping[str, Any]) -> ModelT:
        """Return ``current`` with the partial ``body`` merged in, revalidated."""
        return self.model.model_validate({**current.model_dump(), **body})

    def parse_fields(self, body: Any) -> ModelT:
        """Parse record fields from a server body; unknown keys are dropped."""
        if not isinstance(body, Mapping):
            raise ValueError(f"{self.name} response is not an object")
        return self.model.model_validate(dict(body))

    def parse_record(self, body: Any) -> tuple[ServerId, ModelT]:
        """Parse a server body that carries the record id."""
        if not isinstance(body, Mapping) or _ID_FIELD not in body:
            raise ValueError(f"{self.name} response has no id")
        try:
            server_id = as_server_id(body[_ID_FIELD])
        except TypeError as exc:
            raise ValueError(str(exc)) from exc
        return server_id, self.parse_fields(body)

    def parse_listing(self, body: Any) -> list[tuple[ServerId, ModelT]]:
        """Parse a listing given as a bare array or a ``results`` envelope."""
        items = body.get("results") if isinstance(body, Mapping) else body
        if not isinstance(items, list):
            raise ValueError(f"{self.name} listing is not a list")
        return [self.parse_record(item) for item in items]


TASKS = ResourceSpec(name="tasks", path="/secretary/tasks/", model=Task)
MEETINGS = ResourceSpec(name="meetings", path="/secretary/meetings/", model=Meeting)
DECISIONS = ResourceSpec(name="decisions", path="/secretary/decisions/", model=Decision)
DOCUMENTS = ResourceSpec(name="documents", path="/secretary/documents/", model=Document)

RESOURCES: dict[str, ResourceSpec[Any]] = {
    spec.name: spec for spec in (TASKS, MEETINGS, DECISIONS, DOCUMENTS)
}


def get_resource(name: str) -> ResourceSpec[Any]:
    """Return the registered resource called ``name``."""
    try:
        return RESOURCES[name]
    except KeyError:
        known = ", ".join(sorted(RESOURCES))
        raise ValueError(f"unknown resource {name!r} (expected one of: {known})") from None
