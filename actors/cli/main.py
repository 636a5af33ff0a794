"""edudesk CLI actor implemented with Typer."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer
from pydantic import ValidationError

from packages.edudesk_sdk import (
    AuthExpiredError,
    EdudeskClient,
    EdudeskSdkError,
    EntityRecord,
    HttpError,
    NetworkError,
    SdkConfig,
    ServerId,
    describe_failure,
)
from packages.edudesk_shared.config import EdudeskSettings, load_settings
from packages.edudesk_shared.logging import configure_logging

SUCCESS_EXIT_CODE = 0
USAGE_ERROR_EXIT_CODE = 2
HTTP_ERROR_EXIT_CODE = 3
NETWORK_ERROR_EXIT_CODE = 4
SESSION_EXPIRED_EXIT_CODE = 5


@dataclass(frozen=True)
class CliConfig:
    """Global CLI runtime options propagated to SDK calls."""

    settings: EdudeskSettings
    as_json: bool


class NotSignedInError(AuthExpiredError):
    """Raised by commands that need a session when none is stored."""


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date, Path)):
        return str(value)
    if isinstance(value, EntityRecord):
        return {
            "id": _serialize(value.id),
            "sync_state": value.sync_state.value,
            **_serialize(value.fields),
        }
    if isinstance(value, ServerId):
        return value.value
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="json"))
    if dataclasses.is_dataclass(value):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    return str(value)


def _emit_output(result: Any, as_json: bool) -> None:
    """Render command output in requested format."""

    data = _serialize(result)
    if as_json:
        typer.echo(json.dumps(data, sort_keys=True, separators=(",", ":")))
        return
    if data is None:
        typer.echo("ok")
        return
    if isinstance(data, list):
        typer.echo(_render_records(data))
        return
    if isinstance(data, dict):
        typer.echo(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False))
        return
    typer.echo(str(data))


def _render_records(items: list[Any]) -> str:
    """Render a record listing as one line per record."""
    if len(items) == 0:
        return "No records found."
    lines: list[str] = []
    for item in items:
        if not isinstance(item, dict):
            lines.append(f"- {item}")
            continue
        label = item.get("title") or item.get("ref") or ""
        status = item.get("status") or item.get("stage") or ""
        line = f"- [{item.get('id')}] {label}".rstrip()
        if status != "":
            line = f"{line} ({status})"
        lines.append(line)
    return "\n".join(lines)


def _emit_error(exc: Exception, as_json: bool) -> None:
    """Render mapped SDK errors to stderr."""

    if as_json:
        payload: dict[str, Any] = {"error": str(exc), "notice": describe_failure(exc)}
        if isinstance(exc, HttpError):
            payload["status"] = exc.status
            payload["body"] = _serialize(exc.body)
        typer.echo(json.dumps(payload, sort_keys=True), err=True)
        return
    typer.echo(f"error: {exc}", err=True)
    notice = describe_failure(exc)
    if isinstance(exc, (AuthExpiredError, NetworkError, HttpError)) and notice != str(exc):
        typer.echo(notice, err=True)


def _build_client(cfg: CliConfig) -> EdudeskClient:
    """Return one SDK client built from global CLI settings."""
    return EdudeskClient(config=SdkConfig.from_settings(cfg.settings))


def _run_command(
    cfg: CliConfig, invoke: Callable[[EdudeskClient], Awaitable[Any]]
) -> None:
    """Execute one SDK call and map outputs/errors to process semantics."""

    async def _invoke() -> Any:
        async with _build_client(cfg) as client:
            return await invoke(client)

    try:
        result = asyncio.run(_invoke())
    except AuthExpiredError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=SESSION_EXPIRED_EXIT_CODE) from exc
    except NetworkError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=NETWORK_ERROR_EXIT_CODE) from exc
    except EdudeskSdkError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=HTTP_ERROR_EXIT_CODE) from exc
    except ValueError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=USAGE_ERROR_EXIT_CODE) from exc

    _emit_output(result, cfg.as_json)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""

    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


def _parse_assignments(values: list[str] | None) -> dict[str, str]:
    """Parse repeated ``field=value`` options into one payload."""
    payload: dict[str, str] = {}
    for item in values or []:
        name, separator, value = item.partition("=")
        if separator == "" or name.strip() == "":
            raise typer.BadParameter(f"expected FIELD=VALUE, got {item!r}", param_hint="--set")
        payload[name.strip()] = value
    return payload


def _parse_server_id(value: str) -> ServerId:
    """Return the server id named on the command line."""
    text = value.strip()
    return ServerId(int(text) if text.isdigit() else text)


def _require_session(client: EdudeskClient) -> None:
    if client.session.current_user() is None:
        raise NotSignedInError(
            message="Not signed in; run `edudesk login` first",
            reason="no_session",
        )


app = typer.Typer(no_args_is_help=True, help="edudesk command-line interface")


@app.callback()
def main(
    ctx: typer.Context,
    base_url: str | None = typer.Option(None, help="REST API base URL"),
    timeout: float | None = typer.Option(
        None, min=0.001, help="Request timeout in seconds"
    ),
    credentials: Path | None = typer.Option(
        None, help="Path of the stored session credentials"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="YAML settings file"
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Store global options for all commands."""

    try:
        settings = load_settings(
            cli_params={
                "api": {"base_url": base_url, "timeout_seconds": timeout},
                "storage": {"credentials_path": credentials},
            },
            config_path=config,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
        environment=settings.logging.environment,
    )
    ctx.obj = CliConfig(settings=settings, as_json=as_json)


@app.command("login")
def login_command(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Account username"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Account password"
    ),
) -> None:
    """Sign in and store the session."""
    cfg = _require_config(ctx)
    _run_command(cfg, lambda client: client.session.login(username, password))


@app.command("logout")
def logout_command(ctx: typer.Context) -> None:
    """Forget the stored session."""
    cfg = _require_config(ctx)

    async def invoke(client: EdudeskClient) -> None:
        client.session.logout()

    _run_command(cfg, invoke)


@app.command("whoami")
def whoami_command(ctx: typer.Context) -> None:
    """Show the signed-in user."""
    cfg = _require_config(ctx)

    async def invoke(client: EdudeskClient) -> Any:
        _require_session(client)
        return client.session.current_user()

    _run_command(cfg, invoke)


@app.command("list")
def list_command(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="tasks, meetings, decisions or documents"),
) -> None:
    """List the records of one resource."""
    cfg = _require_config(ctx)

    async def invoke(client: EdudeskClient) -> Any:
        _require_session(client)
        return await client.controller(resource).load()

    _run_command(cfg, invoke)


@app.command("create")
def create_command(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="tasks, meetings, decisions or documents"),
    assignments: list[str] | None = typer.Option(
        None, "--set", help="Field value as FIELD=VALUE (repeatable)"
    ),
    attachment: Path | None = typer.Option(
        None,
        "--file",
        exists=True,
        dir_okay=False,
        readable=True,
        help="File to upload with the record",
    ),
) -> None:
    """Create one record."""
    cfg = _require_config(ctx)
    payload = _parse_assignments(assignments)

    async def invoke(client: EdudeskClient) -> Any:
        _require_session(client)
        controller = client.controller(resource)
        files = None
        if attachment is not None:
            files = {"file": (attachment.name, attachment.read_bytes())}
        server_id = await controller.create(payload, files=files)
        return controller.collection.get(server_id)

    _run_command(cfg, invoke)


@app.command("update")
def update_command(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="tasks, meetings, decisions or documents"),
    record_id: str = typer.Argument(..., help="Server id of the record"),
    assignments: list[str] | None = typer.Option(
        None, "--set", help="Field value as FIELD=VALUE (repeatable)"
    ),
) -> None:
    """Update fields of one record."""
    cfg = _require_config(ctx)
    payload = _parse_assignments(assignments)
    if not payload:
        raise typer.BadParameter("nothing to update", param_hint="--set")
    entity_id = _parse_server_id(record_id)

    async def invoke(client: EdudeskClient) -> Any:
        _require_session(client)
        controller = client.controller(resource)
        await controller.load()
        await controller.update(entity_id, payload)
        return controller.collection.get(entity_id)

    _run_command(cfg, invoke)


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="tasks, meetings, decisions or documents"),
    record_id: str = typer.Argument(..., help="Server id of the record"),
) -> None:
    """Delete one record."""
    cfg = _require_config(ctx)
    entity_id = _parse_server_id(record_id)

    async def invoke(client: EdudeskClient) -> None:
        _require_session(client)
        controller = client.controller(resource)
        await controller.load()
        await controller.delete(entity_id)

    _run_command(cfg, invoke)


if __name__ == "__main__":
    app()
