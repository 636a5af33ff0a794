"""CLI tests for edudesk Typer commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator

import httpx
import pytest
from typer.testing import CliRunner

from actors.cli import main as cli_main
from packages.edudesk_sdk import EdudeskClient, SdkConfig
from packages.edudesk_shared.logging import clear_context

_USER = {"id": 3, "username": "amina", "first_name": "Amina", "last_name": "Idrissi"}


class _FakeServer:
    """In-memory stand-in for the REST service."""

    def __init__(self) -> None:
        self.tasks: dict[int, dict[str, Any]] = {
            1: {"id": 1, "title": "Budget review", "status": "not_started"},
        }
        self.requests: list[tuple[str, str]] = []
        self.reject_creates = False
        self.offline = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path == "/api/auth/login":
            credentials = json.loads(request.content)
            if credentials.get("password") != "s3cret":
                return httpx.Response(401, json={"detail": "No active account"})
            return httpx.Response(
                200, json={"access": "a-1", "refresh": "r-1", "user": _USER}
            )
        if path == "/api/auth/token/refresh":
            return httpx.Response(401, json={"detail": "Token is invalid"})
        if request.headers.get("authorization") != "Bearer a-1":
            return httpx.Response(401, json={"detail": "Token expired"})
        if path == "/api/secretary/tasks/":
            if request.method == "GET":
                return httpx.Response(200, json={"results": list(self.tasks.values())})
            if self.reject_creates:
                return httpx.Response(400, json={"title": ["This field is required."]})
            body = json.loads(request.content)
            record = {"id": max(self.tasks, default=0) + 1, **body}
            self.tasks[record["id"]] = record
            return httpx.Response(201, json=record)
        task_id = int(path.rstrip("/").rsplit("/", 1)[-1])
        if task_id not in self.tasks:
            return httpx.Response(404, json={"detail": "Not found."})
        if request.method == "PATCH":
            self.tasks[task_id] = {**self.tasks[task_id], **json.loads(request.content)}
            return httpx.Response(200, json=self.tasks[task_id])
        del self.tasks[task_id]
        return httpx.Response(204)


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_context()


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch) -> _FakeServer:
    for key in ("EDUDESK_LOGGING__LEVEL", "EDUDESK_API__BASE_URL", "EDUDESK_API__TIMEOUT_SECONDS"):
        monkeypatch.delenv(key, raising=False)
    fake = _FakeServer()

    def build_client(cfg: cli_main.CliConfig) -> EdudeskClient:
        return EdudeskClient(
            config=SdkConfig.from_settings(cfg.settings),
            transport=httpx.MockTransport(fake.handle),
        )

    monkeypatch.setattr(cli_main, "_build_client", build_client)
    return fake


def _base_args(tmp_path: Path) -> list[str]:
    """Return global flags isolating the CLI from user config."""

    return [
        "--base-url",
        "https://edu.test/api",
        "--credentials",
        str(tmp_path / "credentials.json"),
        "--config",
        str(tmp_path / "edudesk.yaml"),
    ]


def _login(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        cli_main.app, [*_base_args(tmp_path), "login", "amina", "--password", "s3cret"]
    )
    assert result.exit_code == 0, result.output


def test_login_persists_session_for_later_commands(
    server: _FakeServer, tmp_path: Path
) -> None:
    runner = CliRunner()

    _login(runner, tmp_path)
    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "--json", "whoami"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["username"] == "amina"
    assert (tmp_path / "credentials.json").exists()


def test_login_with_wrong_password_maps_to_exit_code_3(
    server: _FakeServer, tmp_path: Path
) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli_main.app, [*_base_args(tmp_path), "login", "amina", "--password", "nope"]
    )

    assert result.exit_code == 3
    assert "No active account" in result.stderr


def test_list_renders_records_for_humans(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "list", "tasks"])

    assert result.exit_code == 0
    assert "- [1] Budget review (not_started)" in result.stdout


def test_create_update_delete_round_trip(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)

    created = runner.invoke(
        cli_main.app,
        [*_base_args(tmp_path), "--json", "create", "tasks", "--set", "title=Exam plan"],
    )
    updated = runner.invoke(
        cli_main.app,
        [*_base_args(tmp_path), "--json", "update", "tasks", "2", "--set", "status=done"],
    )
    deleted = runner.invoke(
        cli_main.app, [*_base_args(tmp_path), "delete", "tasks", "1"]
    )

    assert created.exit_code == 0, created.output
    created_record = json.loads(created.stdout)
    assert created_record["id"] == 2
    assert created_record["title"] == "Exam plan"
    assert created_record["sync_state"] == "confirmed"
    assert updated.exit_code == 0, updated.output
    assert json.loads(updated.stdout)["status"] == "done"
    assert deleted.exit_code == 0
    assert deleted.stdout.strip() == "ok"
    assert sorted(server.tasks) == [2]
    assert ("PATCH", "/api/secretary/tasks/2/") in server.requests


def test_rejected_create_reports_field_errors(
    server: _FakeServer, tmp_path: Path
) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)
    server.reject_creates = True

    result = runner.invoke(
        cli_main.app, [*_base_args(tmp_path), "create", "tasks", "--set", "title="]
    )

    assert result.exit_code == 3
    assert "title: This field is required." in result.stderr


def test_network_failure_maps_to_exit_code_4(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)
    server.offline = True

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "list", "tasks"])

    assert result.exit_code == 4
    assert "could not be reached" in result.stderr


def test_expired_session_maps_to_exit_code_5(server: _FakeServer, tmp_path: Path) -> None:
    """A failed renewal should end the session and ask for a new sign-in."""
    runner = CliRunner()
    credentials = tmp_path / "credentials.json"
    credentials.write_text(
        json.dumps(
            {
                "access_token": "stale",
                "refresh_token": "r-0",
                "user": json.dumps(_USER),
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "list", "tasks"])

    assert result.exit_code == 5
    assert "sign in again" in result.stderr
    assert not credentials.exists()
    assert server.requests.count(("POST", "/api/auth/token/refresh")) == 1


def test_commands_require_a_session(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "whoami"])

    assert result.exit_code == 5
    assert server.requests == []


def test_logout_forgets_session(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "logout"])

    assert result.exit_code == 0
    assert not (tmp_path / "credentials.json").exists()


def test_unknown_resource_is_usage_error(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()
    _login(runner, tmp_path)

    result = runner.invoke(cli_main.app, [*_base_args(tmp_path), "list", "grades"])

    assert result.exit_code == 2
    assert "unknown resource" in result.stderr


def test_malformed_assignment_is_usage_error(server: _FakeServer, tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli_main.app, [*_base_args(tmp_path), "create", "tasks", "--set", "title"]
    )

    assert result.exit_code == 2
    assert "FIELD=VALUE" in result.stderr
