"""Unit tests for resource descriptors and record models."""

from __future__ import annotations

import pytest

from packages.edudesk_sdk.ids import ServerId
from packages.edudesk_sdk.resources import (
    DECISIONS,
    DOCUMENTS,
    MEETINGS,
    RESOURCES,
    TASKS,
    Decision,
    Task,
    get_resource,
)


def test_registry_exposes_secretary_resources() -> None:
    assert sorted(RESOURCES) == ["decisions", "documents", "meetings", "tasks"]
    assert get_resource("meetings") is MEETINGS
    assert TASKS.item_path(ServerId(4)) == "/secretary/tasks/4/"
    with pytest.raises(ValueError, match="unknown resource"):
        get_resource("grades")


def test_to_body_validates_and_keeps_only_given_fields() -> None:
    body = DECISIONS.to_body({"progress": "40", "title": "Transfer"})

    assert body == {"progress": 40, "title": "Transfer"}


def test_to_body_rejects_unknown_and_invalid_fields() -> None:
    with pytest.raises(ValueError, match="unknown tasks field"):
        TASKS.to_body({"headline": "x"})
    with pytest.raises(ValueError):
        DECISIONS.to_body({"progress": 140})


def test_apply_patch_returns_new_record() -> None:
    current = Task(title="Budget", status="not_started")

    patched = TASKS.apply_patch(current, {"status": "done"})

    assert patched == Task(title="Budget", status="done")
    assert current.status == "not_started"


def test_parse_record_fills_defaults_for_null_fields() -> None:
    server_id, document = DOCUMENTS.parse_record(
        {"id": 12, "ref": "D-12", "document_type": "memo", "is_urgent": None, "extra": 1}
    )

    assert server_id == ServerId(12)
    assert document.is_urgent is False
    assert document.document_type == "memo"


def test_parse_record_requires_an_id() -> None:
    with pytest.raises(ValueError):
        TASKS.parse_record({"title": "no id"})
    with pytest.raises(ValueError):
        TASKS.parse_record({"id": None})
    with pytest.raises(ValueError):
        TASKS.parse_record(["not", "an", "object"])


def test_parse_listing_accepts_both_shapes() -> None:
    bare = DECISIONS.parse_listing([{"id": 1, "progress": None}])
    paginated = DECISIONS.parse_listing({"results": [{"id": 2, "progress": 55}]})

    assert bare == [(ServerId(1), Decision(progress=0))]
    assert paginated == [(ServerId(2), Decision(progress=55))]
    with pytest.raises(ValueError):
        DECISIONS.parse_listing({"detail": "nope"})
