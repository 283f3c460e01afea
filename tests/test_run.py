"""Tests for the run.py entrypoint helpers."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

import run
from memory_lane.services.entries import EntryPatch, EntryRepository
from memory_lane.services.sync import SyncError, SyncInterruptedError, SyncResult


def _setup_serve(monkeypatch, tmp_path, root_path):
    captured = {}

    monkeypatch.setattr(
        run,
        "initialize_app",
        lambda: SimpleNamespace(storage_root=tmp_path, dropbox_folder=""),
    )
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)
    services = SimpleNamespace(
        repository=object(),
        narration=object(),
        synchronizer=object(),
        settings_store=object(),
    )
    monkeypatch.setattr(run, "build_services", lambda config, http: services)

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def fake_create_app(repository, **kwargs):
        captured["repository"] = repository
        captured["app_kwargs"] = kwargs
        return dummy_app

    monkeypatch.setattr(run, "create_app", fake_create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_config"] = config
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)

    run.serve(host="0.0.0.0", port=9000, root_path=root_path)

    captured["services"] = services
    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_wires_services_and_runs_server(monkeypatch, tmp_path):
    monkeypatch.setenv(run.EDITOR_TOKEN_ENV, "secret")

    captured = _setup_serve(monkeypatch, tmp_path, root_path="memories/")

    services = captured["services"]
    kwargs = captured["app_kwargs"]
    assert captured["repository"] is services.repository
    assert kwargs["narration"] is services.narration
    assert kwargs["synchronizer"] is services.synchronizer
    assert kwargs["root_path"] == "/memories"
    assert captured["config_kwargs"]["root_path"] == "/memories"
    assert captured["config_kwargs"]["port"] == 9000
    assert captured["server_run"] is True
    assert captured["app_state_server"] is captured["server_instance"]

    authorize = kwargs["authorizer"]
    assert authorize(SimpleNamespace(headers={"authorization": "Bearer secret"})) is True
    assert authorize(SimpleNamespace(headers={})) is False


def test_serve_warns_without_editor_token(monkeypatch, tmp_path, caplog):
    monkeypatch.delenv(run.EDITOR_TOKEN_ENV, raising=False)

    with caplog.at_level("WARNING", logger="memory_lane.cli"):
        captured = _setup_serve(monkeypatch, tmp_path, root_path=None)

    assert run.EDITOR_TOKEN_ENV in caplog.text
    authorize = captured["app_kwargs"]["authorizer"]
    assert authorize(SimpleNamespace(headers={"authorization": "Bearer "})) is False
    assert captured["app_kwargs"]["root_path"] == ""


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, ""), ("  ", ""), ("/", ""), ("app", "/app"), ("/app/", "/app")],
)
def test_normalize_root_path(raw, expected):
    assert run._normalize_root_path(raw) == expected


def _patch_cli_setup(monkeypatch, config):
    monkeypatch.setattr(run, "initialize_app", lambda: config)
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)


def test_sync_command_prints_counts(monkeypatch, temp_config):
    _patch_cli_setup(monkeypatch, temp_config)

    async def fake_run_sync(config):
        return SyncResult(added=3, removed=1, unchanged=4)

    monkeypatch.setattr(run, "_run_sync", fake_run_sync)

    result = CliRunner().invoke(run.cli, ["sync"])

    assert result.exit_code == 0
    assert "Added: 3" in result.output
    assert "Unchanged: 4" in result.output
    assert "Missing remotely: 1" in result.output


@pytest.mark.parametrize(
    "error",
    [
        SyncError("Sync failed: remote listing unavailable"),
        SyncInterruptedError("Sync failed while processing 'x'", partial=SyncResult(added=1)),
    ],
)
def test_sync_command_fails_with_exit_code(monkeypatch, temp_config, error):
    _patch_cli_setup(monkeypatch, temp_config)

    async def fake_run_sync(config):
        raise error

    monkeypatch.setattr(run, "_run_sync", fake_run_sync)

    result = CliRunner().invoke(run.cli, ["sync"])

    assert result.exit_code == 1
    assert "Sync failed" in result.output


def test_overview_console_style(monkeypatch, temp_config):
    _patch_cli_setup(monkeypatch, temp_config)
    repository = EntryRepository(temp_config)
    entry = repository.create("/Memories/beach.jpg")
    repository.update(entry.id, EntryPatch(title="Beach day", position=0))

    result = CliRunner().invoke(run.cli, ["overview", "--style", "console"])

    assert result.exit_code == 0
    assert "Active" in result.output
    assert "Beach day" in result.output


def test_build_services_uses_configured_folder(temp_config):
    services = run.build_services(temp_config, http=SimpleNamespace())

    assert services.library.folder == "/Memories"
    assert isinstance(services.repository, EntryRepository)
