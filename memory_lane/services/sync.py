"""Reconcile the entry catalog with the remote media listing."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Protocol, Sequence

from .entries import EntryConflictError, EntryPatch, EntryRecord, EntryRepository
from .events import emit_structured_event


LOGGER = logging.getLogger(__name__)


class RemoteListingFile(Protocol):
    path: str
    has_narration: bool


class MediaSource(Protocol):
    """Anything able to list the remote media files."""

    async def list_media_files(self) -> Sequence[RemoteListingFile]:
        """Return every media file under the configured root."""


@dataclass
class SyncResult:
    added: int = 0
    removed: int = 0
    unchanged: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class SyncError(RuntimeError):
    """Raised when the remote listing cannot be fetched; nothing was written."""


class SyncInterruptedError(RuntimeError):
    """Raised when a write fails partway through a pass.

    ``partial`` holds the counts for the files handled before the failure;
    their writes are kept.
    """

    def __init__(self, message: str, *, partial: SyncResult) -> None:
        super().__init__(message)
        self.partial = partial


class EntrySynchronizer:
    """One-shot, operator-triggered reconciliation pass.

    New remote files become staging entries, narration flags follow the
    remote listing, and entries whose file vanished are only counted. The
    pass writes entry by entry, so re-running it after a failure is safe.
    """

    def __init__(self, repository: EntryRepository, source: MediaSource) -> None:
        self._repository = repository
        self._source = source

    async def run(self) -> SyncResult:
        start = time.perf_counter()
        try:
            remote_files = list(await self._source.list_media_files())
        except Exception as error:
            LOGGER.warning("Remote listing failed; sync aborted: %s", error)
            raise SyncError("Sync failed: remote listing unavailable") from error

        existing = self._repository.list_all()
        remote_paths = {remote.path for remote in remote_files}
        local_paths = {entry.remote_path for entry in existing}

        result = SyncResult()
        current = ""
        try:
            for remote in remote_files:
                current = remote.path
                if remote.path not in local_paths:
                    if self._add(remote):
                        result.added += 1
                    else:
                        result.unchanged += 1
                    local_paths.add(remote.path)
                else:
                    self._sync_narration(remote)
                    result.unchanged += 1
        except Exception as error:
            LOGGER.error("Sync interrupted at '%s': %s", current, error)
            raise SyncInterruptedError(
                f"Sync failed while processing '{current}'", partial=result
            ) from error

        missing: List[EntryRecord] = [
            entry for entry in existing if entry.remote_path not in remote_paths
        ]
        result.removed = len(missing)
        for entry in missing:
            LOGGER.info("Entry id=%s has no remote file at '%s'", entry.id, entry.remote_path)

        emit_structured_event(
            "SYNC",
            "Reconciliation completed",
            payload={**result.as_dict(), "remote_files": len(remote_files)},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return result

    def _add(self, remote: RemoteListingFile) -> bool:
        """Create an entry for *remote*; return ``False`` if one already existed."""

        try:
            entry = self._repository.create(remote.path)
        except EntryConflictError:
            # A concurrent pass created it first.
            LOGGER.debug("Entry for '%s' already present", remote.path)
            self._sync_narration(remote)
            return False
        if remote.has_narration:
            self._repository.update(entry.id, EntryPatch(has_narration=True))
        return True

    def _sync_narration(self, remote: RemoteListingFile) -> None:
        entry = self._repository.get_entry_by_path(remote.path)
        if entry is None or entry.has_narration == bool(remote.has_narration):
            return
        LOGGER.debug(
            "Narration flag for '%s' changed to %s", remote.path, remote.has_narration
        )
        self._repository.update(entry.id, EntryPatch(has_narration=bool(remote.has_narration)))


__all__ = [
    "EntrySynchronizer",
    "MediaSource",
    "SyncError",
    "SyncInterruptedError",
    "SyncResult",
]
