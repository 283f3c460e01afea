"""Narration recording, removal and transcription for entries."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from ..dropbox.files import narration_path
from ..processing.transcription import TranscriptionEngine
from .entries import EntryPatch, EntryRecord, EntryRepository


LOGGER = logging.getLogger(__name__)


class NarrationStore(Protocol):
    async def get_temporary_link(self, remote_path: str) -> str: ...

    async def upload_narration(self, media_path: str, data: bytes) -> str: ...

    async def delete_narration(self, media_path: str) -> str: ...

    async def download(self, link: str) -> bytes: ...


class NarrationService:
    """Coordinate the catalog, the remote store and the transcription backend."""

    def __init__(
        self,
        repository: EntryRepository,
        store: NarrationStore,
        *,
        transcription_factory: Optional[Callable[[], TranscriptionEngine]] = None,
    ) -> None:
        self._repository = repository
        self._store = store
        self._transcription_factory = transcription_factory
        self._engine: Optional[TranscriptionEngine] = None

    def _transcription_engine(self) -> TranscriptionEngine:
        if self._engine is None:
            if self._transcription_factory is None:
                raise RuntimeError("No transcription backend configured")
            self._engine = self._transcription_factory()
        return self._engine

    async def save_narration(self, entry_id: str, audio: bytes) -> Optional[EntryRecord]:
        entry = self._repository.get_entry(entry_id)
        if entry is None:
            return None
        target = await self._store.upload_narration(entry.remote_path, audio)
        LOGGER.info("Stored narration for entry id=%s at '%s'", entry_id, target)
        return self._repository.update(entry_id, EntryPatch(has_narration=True))

    async def remove_narration(self, entry_id: str) -> Optional[EntryRecord]:
        entry = self._repository.get_entry(entry_id)
        if entry is None:
            return None
        await self._store.delete_narration(entry.remote_path)
        LOGGER.info("Removed narration for entry id=%s", entry_id)
        return self._repository.update(
            entry_id, EntryPatch(transcript=None, has_narration=False)
        )

    async def transcribe(self, entry_id: str) -> Optional[str]:
        """Transcribe the entry's narration and store the text.

        Raises :class:`~memory_lane.dropbox.RemoteObjectNotFoundError` when the
        entry has no narration.
        """

        entry = self._repository.get_entry(entry_id)
        if entry is None:
            return None
        link = await self._store.get_temporary_link(narration_path(entry.remote_path))
        audio = await self._store.download(link)
        engine = self._transcription_engine()
        transcript = await asyncio.to_thread(engine.transcribe, audio)
        self._repository.update(entry_id, EntryPatch(transcript=transcript))
        LOGGER.info(
            "Transcribed narration for entry id=%s (%d characters)", entry_id, len(transcript)
        )
        return transcript

    async def media_link(self, entry_id: str) -> Optional[str]:
        entry = self._viewable(entry_id)
        if entry is None:
            return None
        return await self._store.get_temporary_link(entry.remote_path)

    async def narration_link(self, entry_id: str) -> Optional[str]:
        entry = self._viewable(entry_id)
        if entry is None:
            return None
        return await self._store.get_temporary_link(narration_path(entry.remote_path))

    def _viewable(self, entry_id: str) -> Optional[EntryRecord]:
        entry = self._repository.get_entry(entry_id)
        if entry is None or entry.disabled:
            return None
        return entry


__all__ = ["NarrationService", "NarrationStore"]
