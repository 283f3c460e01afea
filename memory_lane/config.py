"""Configuration loading utilities for the Memory Lane application."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".memory_lane_write_check"

DATABASE_PATH_ENV = "MEMORY_LANE_DATABASE_PATH"
DROPBOX_FOLDER_ENV = "DROPBOX_FOLDER"
DEFAULT_TRANSCRIPTION_MODEL = "base"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. The flag in the returned tuple tells the
    caller whether a fallback had to be used. When nothing can be prepared the
    original ``preferred`` path is returned so the failure surfaces later, at
    bootstrap time.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and remote-store settings for the application."""

    storage_root: Path
    database_file: Path
    dropbox_folder: str = ""
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".memory_lane" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database

        folder = str(mapping.get("dropbox_folder") or "").strip()
        if folder == "/":
            # The Dropbox API addresses the app root as an empty path.
            folder = ""
        model = str(mapping.get("transcription_model") or DEFAULT_TRANSCRIPTION_MODEL)

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            dropbox_folder=folder.rstrip("/"),
            transcription_model=model,
        )


def _apply_environment(raw_config: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    merged = dict(raw_config)
    database_override = environ.get(DATABASE_PATH_ENV)
    if database_override:
        LOGGER.debug("Database path overridden from environment: %s", database_override)
        merged["database_file"] = database_override
    folder_override = environ.get(DROPBOX_FOLDER_ENV)
    if folder_override is not None:
        merged["dropbox_folder"] = folder_override
    return merged


def load_config(
    config_path: Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    merged = _apply_environment(raw_config, os.environ if environ is None else environ)
    return AppConfig.from_mapping(merged, base_path=base_path)


__all__ = ["AppConfig", "DATABASE_PATH_ENV", "DROPBOX_FOLDER_ENV", "load_config"]
