"""Entry catalog persisted in SQLite.

The catalog owns the ordered, stateful record of slideshow entries. An
entry's lifecycle status is never stored: it is derived from the
``disabled`` flag and the nullable ``position`` column.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig


LOGGER = logging.getLogger(__name__)


class EntryStatus(str, Enum):
    ACTIVE = "active"
    STAGING = "staging"
    DISABLED = "disabled"


def entry_status(disabled: bool, position: Optional[int]) -> EntryStatus:
    """Return the lifecycle status for the given ``disabled``/``position`` pair."""

    if disabled:
        return EntryStatus.DISABLED
    if position is None:
        return EntryStatus.STAGING
    return EntryStatus.ACTIVE


@dataclass
class EntryRecord:
    id: str
    remote_path: str
    title: Optional[str]
    transcript: Optional[str]
    position: Optional[int]
    disabled: bool
    has_narration: bool
    created_at: datetime
    updated_at: datetime

    @property
    def status(self) -> EntryStatus:
        return entry_status(self.disabled, self.position)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "EntryRecord":
        return cls(
            id=row["id"],
            remote_path=row["remote_path"],
            title=row["title"],
            transcript=row["transcript"],
            position=row["position"],
            disabled=bool(row["disabled"]),
            has_narration=bool(row["has_narration"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


_MISSING: Any = object()


@dataclass(frozen=True)
class EntryPatch:
    """Partial update for an entry.

    Fields left at the ``_MISSING`` sentinel are untouched; a field set to
    ``None`` is cleared. ``disabled`` and ``has_narration`` cannot be cleared.
    """

    title: Optional[str] = _MISSING
    transcript: Optional[str] = _MISSING
    position: Optional[int] = _MISSING
    disabled: bool = _MISSING
    has_narration: bool = _MISSING

    def changes(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not _MISSING
        }

    def is_empty(self) -> bool:
        return not self.changes()

    def merge(self, other: "EntryPatch") -> "EntryPatch":
        """Return a patch where fields provided by *other* win."""

        return replace(self, **other.changes())


# Ordering used by ``list_all``: active entries by position, then staging
# entries newest first, then disabled entries most recently touched first.
_STATUS_TIER = {
    EntryStatus.ACTIVE: 0,
    EntryStatus.STAGING: 1,
    EntryStatus.DISABLED: 2,
}


def catalog_sort_key(record: EntryRecord) -> Tuple[int, int, float, str]:
    """Return the (status tier, position, timestamp) sort key for *record*."""

    status = record.status
    if status is EntryStatus.DISABLED:
        stamp = record.updated_at
    else:
        stamp = record.created_at
    position = record.position if status is EntryStatus.ACTIVE else 0
    return (_STATUS_TIER[status], int(position or 0), -stamp.timestamp(), record.id)


def status_patch(
    record: EntryRecord,
    status: EntryStatus,
    *,
    next_position: Callable[[], int],
) -> EntryPatch:
    """Compose the update that moves *record* into *status*.

    Activating keeps an existing slot so a disabled entry returns to where it
    was; only an unplaced entry is appended via *next_position*. Staging drops
    the slot. Disabling keeps the slot.
    """

    status = EntryStatus(status)
    if status is EntryStatus.ACTIVE:
        if record.position is None:
            return EntryPatch(disabled=False, position=next_position())
        return EntryPatch(disabled=False)
    if status is EntryStatus.STAGING:
        return EntryPatch(disabled=False, position=None)
    return EntryPatch(disabled=True)


class EntryConflictError(RuntimeError):
    """Raised when an entry already exists for a remote path."""

    def __init__(self, remote_path: str) -> None:
        super().__init__(f"An entry already exists for '{remote_path}'")
        self.remote_path = remote_path


_SELECT_COLUMNS = (
    "id, remote_path, title, transcript, position, disabled, has_narration, "
    "created_at, updated_at"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntryRepository:
    """CRUD and ordering helpers for slideshow entries."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter
        self._clock = clock

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting database events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        try:
            yield event_payload
        except Exception as exc:
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            event_payload.setdefault("status", "ok")
            filtered = {
                key: value for key, value in event_payload.items() if value is not None
            }
            self._event_emitter(
                "DB_QUERY",
                action,
                payload=filtered,
                duration_ms=duration_ms,
            )

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit or roll back together."""

        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def _now(self) -> str:
        return self._clock().isoformat()

    def _fetch(self, query: str, parameters: Sequence[Any] = ()) -> List[EntryRecord]:
        with self._session() as connection:
            rows = connection.execute(query, tuple(parameters)).fetchall()
        return [EntryRecord.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_entry(self, entry_id: str) -> Optional[EntryRecord]:
        with self._track_db_event("get_entry", entry_id=entry_id) as event:
            records = self._fetch(
                f"SELECT {_SELECT_COLUMNS} FROM entries WHERE id = ?", (entry_id,)
            )
            event["found"] = bool(records)
            return records[0] if records else None

    def get_entry_by_path(self, remote_path: str) -> Optional[EntryRecord]:
        with self._track_db_event("get_entry_by_path", remote_path=remote_path) as event:
            records = self._fetch(
                f"SELECT {_SELECT_COLUMNS} FROM entries WHERE remote_path = ?",
                (remote_path,),
            )
            event["found"] = bool(records)
            return records[0] if records else None

    def list_all(self) -> List[EntryRecord]:
        """Return every entry: active, then staging, then disabled."""

        with self._track_db_event("list_all") as event:
            records = self._fetch(f"SELECT {_SELECT_COLUMNS} FROM entries")
            records.sort(key=catalog_sort_key)
            event["rowcount"] = len(records)
            return records

    def list_active(self) -> List[EntryRecord]:
        with self._track_db_event("list_active") as event:
            records = self._fetch(
                f"SELECT {_SELECT_COLUMNS} FROM entries "
                "WHERE disabled = 0 AND position IS NOT NULL "
                "ORDER BY position ASC, created_at DESC"
            )
            event["rowcount"] = len(records)
            return records

    def list_staging(self) -> List[EntryRecord]:
        with self._track_db_event("list_staging") as event:
            records = self._fetch(
                f"SELECT {_SELECT_COLUMNS} FROM entries "
                "WHERE disabled = 0 AND position IS NULL "
                "ORDER BY created_at DESC"
            )
            event["rowcount"] = len(records)
            return records

    def list_disabled(self) -> List[EntryRecord]:
        with self._track_db_event("list_disabled") as event:
            records = self._fetch(
                f"SELECT {_SELECT_COLUMNS} FROM entries "
                "WHERE disabled = 1 "
                "ORDER BY updated_at DESC"
            )
            event["rowcount"] = len(records)
            return records

    def next_position(self) -> int:
        """Return one past the highest assigned position, or ``0``."""

        with self._session() as connection:
            row = connection.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM entries "
                "WHERE position IS NOT NULL"
            ).fetchone()
        next_value = int(row[0]) if row is not None and row[0] is not None else 0
        LOGGER.debug("Computed next entry position -> %s", next_value)
        return next_value

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, remote_path: str) -> EntryRecord:
        """Insert a staging entry for *remote_path*.

        Raises :class:`EntryConflictError` when the path is already catalogued.
        """

        entry_id = str(uuid.uuid4())
        created_at = self._clock()
        timestamp = created_at.isoformat()
        with self._track_db_event("create", remote_path=remote_path) as event:
            try:
                with self._session() as connection:
                    connection.execute(
                        "INSERT INTO entries(id, remote_path, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?)",
                        (entry_id, remote_path, timestamp, timestamp),
                    )
            except sqlite3.IntegrityError as error:
                event["result"] = "conflict"
                raise EntryConflictError(remote_path) from error
            event.update({"entry_id": entry_id, "rowcount": 1})
        LOGGER.debug("Entry '%s' created with id=%s", remote_path, entry_id)
        return EntryRecord(
            id=entry_id,
            remote_path=remote_path,
            title=None,
            transcript=None,
            position=None,
            disabled=False,
            has_narration=False,
            created_at=created_at,
            updated_at=created_at,
        )

    def update(self, entry_id: str, patch: EntryPatch) -> Optional[EntryRecord]:
        """Apply *patch* and return the refreshed entry, or ``None`` if missing."""

        changes = patch.changes()
        if not changes:
            LOGGER.debug("No changes requested for entry id=%s", entry_id)
            return self.get_entry(entry_id)

        position = changes.get("position")
        if position is not None and (not isinstance(position, int) or position < 0):
            raise ValueError(f"Position must be a non-negative integer, got {position!r}")

        assignments: List[str] = []
        params: List[Any] = []
        for name, value in changes.items():
            assignments.append(f"{name} = ?")
            if name in ("disabled", "has_narration"):
                params.append(1 if value else 0)
            else:
                params.append(value)
        assignments.append("updated_at = ?")
        params.append(self._now())
        params.append(entry_id)

        with self._track_db_event(
            "update", entry_id=entry_id, fields=sorted(changes)
        ) as event:
            with self._session() as connection:
                cursor = connection.execute(
                    "UPDATE entries SET " + ", ".join(assignments) + " WHERE id = ?",
                    params,
                )
                affected = cursor.rowcount if cursor.rowcount > 0 else 0
            event["rowcount"] = affected
            if not affected:
                LOGGER.debug("Skipping update for missing entry id=%s", entry_id)
                return None
        LOGGER.debug("Entry id=%s updated with fields=%s", entry_id, sorted(changes))
        return self.get_entry(entry_id)

    def set_status(self, entry_id: str, status: EntryStatus) -> Optional[EntryRecord]:
        """Move an entry into *status* using the editor transition rules."""

        record = self.get_entry(entry_id)
        if record is None:
            return None
        return self.update(
            entry_id, status_patch(record, status, next_position=self.next_position)
        )

    def reorder(self, ordered_ids: Sequence[str]) -> None:
        """Assign ``position = index`` for each id, all-or-nothing.

        Entries missing from *ordered_ids* keep their current position.
        """

        identifiers = list(ordered_ids)
        if not identifiers:
            LOGGER.debug("No entry reordering requested")
            return
        if len(identifiers) != len(set(identifiers)):
            raise ValueError("Duplicate entry identifier in reorder request")

        timestamp = self._now()
        with self._track_db_event("reorder", changes=len(identifiers)) as event:
            with self._session() as connection:
                for index, entry_id in enumerate(identifiers):
                    connection.execute(
                        "UPDATE entries SET position = ?, updated_at = ? WHERE id = ?",
                        (index, timestamp, entry_id),
                    )
                    LOGGER.debug("Entry id=%s assigned position=%s", entry_id, index)
            event.update({"result": "reordered", "rowcount": len(identifiers)})

    def delete(self, entry_id: str) -> bool:
        LOGGER.debug("Removing entry id=%s", entry_id)
        with self._track_db_event("delete", entry_id=entry_id) as event:
            with self._session() as connection:
                cursor = connection.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
                affected = cursor.rowcount if cursor.rowcount > 0 else 0
            event["rowcount"] = affected
            return affected > 0


__all__ = [
    "EntryConflictError",
    "EntryPatch",
    "EntryRecord",
    "EntryRepository",
    "EntryStatus",
    "catalog_sort_key",
    "entry_status",
    "status_patch",
]
