"""Entry-point for the Memory Lane application."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import typer
import uvicorn

from memory_lane.bootstrap import initialize_app
from memory_lane.config import AppConfig
from memory_lane.dropbox import DropboxLibrary, DropboxSession, TemporaryLinkCache
from memory_lane.logging_utils import DEFAULT_LOG_FORMAT, configure_logging, get_log_file_path
from memory_lane.processing import FasterWhisperTranscription
from memory_lane.services.entries import EntryRepository
from memory_lane.services.narration import NarrationService
from memory_lane.services.settings import SettingsStore
from memory_lane.services.sync import EntrySynchronizer, SyncError, SyncInterruptedError
from memory_lane.ui.console import ConsoleUI
from memory_lane.ui.modern import ModernUI
from memory_lane.web import build_token_authorizer, create_app


LOGGER = logging.getLogger("memory_lane.cli")

EDITOR_TOKEN_ENV = "MEMORY_LANE_EDITOR_TOKEN"
HTTP_TIMEOUT_SECONDS = 30.0

cli = typer.Typer(add_completion=False, help="Memory Lane management commands")


def _prepare_logging(storage_root: Path) -> None:
    log_file = get_log_file_path(storage_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(handlers=[file_handler, stream_handler])


@dataclass
class Services:
    repository: EntryRepository
    library: DropboxLibrary
    synchronizer: EntrySynchronizer
    narration: NarrationService
    settings_store: SettingsStore


def build_services(config: AppConfig, http: httpx.AsyncClient) -> Services:
    """Wire the catalog, the Dropbox adapter and the editing services together."""

    repository = EntryRepository(config)
    session = DropboxSession(http)
    library = DropboxLibrary(session, TemporaryLinkCache(session), folder=config.dropbox_folder)

    def _transcription_factory() -> FasterWhisperTranscription:
        return FasterWhisperTranscription(
            config.transcription_model,
            download_root=config.storage_root / "models",
        )

    return Services(
        repository=repository,
        library=library,
        synchronizer=EntrySynchronizer(repository, library),
        narration=NarrationService(
            repository, library, transcription_factory=_transcription_factory
        ),
        settings_store=SettingsStore(config),
    )


class UIStyle(str, Enum):
    MODERN = "modern"
    CONSOLE = "console"


style_option = typer.Option(
    UIStyle.MODERN,
    "--style",
    "-s",
    help="Select the overview presentation style.",
    show_default=True,
)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="MEMORY_LANE_ROOT_PATH",
    ),
) -> None:
    """Run the FastAPI-powered viewer and editor."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    http = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    services = build_services(app_config, http)

    editor_token = os.environ.get(EDITOR_TOKEN_ENV)
    if not editor_token:
        LOGGER.warning("%s is not set; editor endpoints will reject every request.", EDITOR_TOKEN_ENV)

    @contextlib.asynccontextmanager
    async def lifespan(_app) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await http.aclose()

    normalized_root = _normalize_root_path(root_path)
    app = create_app(
        services.repository,
        config=app_config,
        narration=services.narration,
        synchronizer=services.synchronizer,
        settings_store=services.settings_store,
        authorizer=build_token_authorizer(editor_token),
        root_path=normalized_root,
        lifespan=lifespan,
    )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    server.run()


async def _run_sync(config: AppConfig):
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as http:
        services = build_services(config, http)
        return await services.synchronizer.run()


@cli.command()
def sync() -> None:
    """Reconcile the catalog with the Dropbox folder once."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    typer.echo(f"Syncing entries from Dropbox folder '{config.dropbox_folder or '/'}'…")
    try:
        result = asyncio.run(_run_sync(config))
    except SyncInterruptedError as error:
        partial = error.partial
        typer.echo(
            f"Sync failed: {error} (added={partial.added}, unchanged={partial.unchanged} before failure)"
        )
        raise typer.Exit(code=1) from error
    except SyncError as error:
        typer.echo(f"Sync failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"  Added: {result.added}")
    typer.echo(f"  Unchanged: {result.unchanged}")
    typer.echo(f"  Missing remotely: {result.removed}")


@cli.command()
def overview(style: UIStyle = style_option) -> None:
    """Render an overview of catalogued entries using the chosen UI style."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    repository = EntryRepository(config)
    if style is UIStyle.MODERN:
        ui = ModernUI(repository)
    else:
        ui = ConsoleUI(repository)
    ui.run()


if __name__ == "__main__":
    cli()
