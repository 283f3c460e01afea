"""Persistence helpers for viewer settings."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from ..config import AppConfig


LOGGER = logging.getLogger(__name__)


@dataclass
class ViewerSettings:
    """Options the public slideshow reads on start-up."""

    auto_advance_delay: int = 5  # seconds; 0 disables auto advance
    show_titles: bool = True


def _parse_bool(raw: str) -> Optional[bool]:
    lowered = raw.strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    return None


def _parse_delay(raw: str) -> Optional[int]:
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


_PARSERS = {
    "auto_advance_delay": _parse_delay,
    "show_titles": _parse_bool,
}


def _serialize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SettingsStore:
    """Load and store :class:`ViewerSettings` in the ``settings`` table."""

    def __init__(self, config: AppConfig) -> None:
        self._db_path = config.database_file

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def get(self, key: str) -> Optional[str]:
        connection = self._connect()
        try:
            row = connection.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        finally:
            connection.close()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        connection = self._connect()
        try:
            with connection:
                connection.execute(
                    "INSERT INTO settings(key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        finally:
            connection.close()

    def load(self) -> ViewerSettings:
        settings = ViewerSettings()
        for field in fields(settings):
            raw = self.get(field.name)
            if raw is None:
                continue
            parsed = _PARSERS[field.name](raw)
            if parsed is None:
                LOGGER.warning("Ignoring invalid stored value for %s: %r", field.name, raw)
                continue
            setattr(settings, field.name, parsed)
        return settings

    def update(self, **changes: Any) -> ViewerSettings:
        """Persist the provided fields and return the refreshed settings."""

        known = {field.name for field in fields(ViewerSettings)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError("Unknown viewer settings: " + ", ".join(sorted(unknown)))
        for name, value in changes.items():
            if value is None:
                continue
            if name == "auto_advance_delay" and (isinstance(value, bool) or int(value) < 0):
                raise ValueError("auto_advance_delay must be a non-negative integer")
            self.set(name, _serialize(value))
        return self.load()

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self.load())


__all__ = ["SettingsStore", "ViewerSettings"]
