import json
from pathlib import Path

import memory_lane.config as config_module
from memory_lane.config import AppConfig, load_config


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/memory-lane.db",
        },
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".memory_lane" / "storage").resolve()
    expected_database = (expected_storage / "memory-lane.db").resolve()

    assert config.storage_root == expected_storage
    assert config.database_file == expected_database
    assert expected_storage.exists()


def test_database_outside_storage_is_kept_on_fallback(tmp_path: Path, monkeypatch) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)
    (tmp_path / "storage").write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "db/memory-lane.db"},
        base_path=tmp_path,
    )

    assert config.database_file == (tmp_path / "db" / "memory-lane.db").resolve()


def test_dropbox_folder_is_normalized(tmp_path: Path) -> None:
    root = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "storage/a.db", "dropbox_folder": "/"},
        base_path=tmp_path,
    )
    nested = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/a.db",
            "dropbox_folder": " /Family/Memories/ ",
        },
        base_path=tmp_path,
    )

    assert root.dropbox_folder == ""
    assert nested.dropbox_folder == "/Family/Memories"
    assert nested.transcription_model == "base"


def test_load_config_applies_environment_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "settings.json"
    config_path.write_text(
        json.dumps(
            {
                "storage_root": str(tmp_path / "storage"),
                "database_file": str(tmp_path / "storage" / "memory-lane.db"),
                "dropbox_folder": "/Memories",
                "transcription_model": "small",
            }
        ),
        encoding="utf-8",
    )
    override = tmp_path / "elsewhere" / "catalog.db"

    config = load_config(
        config_path,
        environ={
            config_module.DATABASE_PATH_ENV: str(override),
            config_module.DROPBOX_FOLDER_ENV: "/Shared",
        },
    )

    assert config.database_file == override.resolve()
    assert config.dropbox_folder == "/Shared"
    assert config.transcription_model == "small"


def test_load_config_without_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "settings.json"
    config_path.write_text(
        json.dumps(
            {
                "storage_root": str(tmp_path / "storage"),
                "database_file": str(tmp_path / "storage" / "memory-lane.db"),
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})

    assert config.storage_root == (tmp_path / "storage").resolve()
    assert config.dropbox_folder == ""
