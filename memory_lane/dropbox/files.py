"""Listing, linking and narration storage on top of a Dropbox folder."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import httpx

from ..services.cache import Clock, TTLCache
from ..services.events import emit_remote_event
from .client import DropboxSession, RemoteUnavailableError


LOGGER = logging.getLogger(__name__)


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".avi")
NARRATION_SUFFIX = ".narration.webm"

# Temporary links are valid for four hours; serve them for three.
LINK_CACHE_TTL = 3 * 60 * 60


@dataclass(frozen=True)
class RemoteFile:
    path: str
    name: str
    is_video: bool
    has_narration: bool


def narration_path(remote_path: str) -> str:
    return remote_path + NARRATION_SUFFIX


def is_narration_file(name: str) -> bool:
    return name.lower().endswith(NARRATION_SUFFIX)


def is_video_file(name: str) -> bool:
    return name.lower().endswith(VIDEO_EXTENSIONS)


def is_media_file(name: str) -> bool:
    if is_narration_file(name):
        return False
    return name.lower().endswith(IMAGE_EXTENSIONS + VIDEO_EXTENSIONS)


def classify_listing(entries: Iterable[Dict[str, Any]]) -> List[RemoteFile]:
    """Turn raw ``list_folder`` metadata into media files with narration flags."""

    files = [entry for entry in entries if entry.get(".tag") == "file"]
    narration_paths = {
        str(entry.get("path_lower") or "").lower()
        for entry in files
        if is_narration_file(str(entry.get("name") or ""))
    }

    media: List[RemoteFile] = []
    for entry in files:
        name = str(entry.get("name") or "")
        if not is_media_file(name):
            continue
        path_lower = str(entry.get("path_lower") or "")
        media.append(
            RemoteFile(
                path=entry.get("path_display") or path_lower,
                name=name,
                is_video=is_video_file(name),
                has_narration=narration_path(path_lower).lower() in narration_paths,
            )
        )
    return media


class TemporaryLinkCache:
    """Cache short-lived download links per remote path."""

    def __init__(
        self,
        session: DropboxSession,
        *,
        clock: Clock = time.monotonic,
        ttl: float = LINK_CACHE_TTL,
    ) -> None:
        self._session = session
        self._ttl = ttl
        self._links: TTLCache[str, str] = TTLCache(clock=clock, name="temporary-link")

    async def get_link(self, remote_path: str) -> str:
        return await self._links.get_or_populate(
            remote_path, lambda: self._issue(remote_path), self._ttl
        )

    def invalidate(self, remote_path: str) -> bool:
        return self._links.invalidate(remote_path)

    async def _issue(self, remote_path: str) -> str:
        start = time.perf_counter()
        result = await self._session.rpc("files/get_temporary_link", {"path": remote_path})
        emit_remote_event(
            "get_temporary_link",
            payload={"path": remote_path},
            duration_ms=(time.perf_counter() - start) * 1000.0,
            level=logging.DEBUG,
        )
        link = result.get("link")
        if not link:
            raise RemoteUnavailableError(f"Dropbox returned no link for '{remote_path}'")
        return str(link)


class DropboxLibrary:
    """Media folder operations used by the catalog and the editing flow."""

    def __init__(
        self,
        session: DropboxSession,
        links: TemporaryLinkCache,
        *,
        folder: str = "",
    ) -> None:
        self._session = session
        self._links = links
        self._folder = folder

    @property
    def folder(self) -> str:
        return self._folder

    @property
    def links(self) -> TemporaryLinkCache:
        return self._links

    async def list_files(self) -> List[Dict[str, Any]]:
        """Return the raw metadata of every entry directly under the folder."""

        start = time.perf_counter()
        result = await self._session.rpc("files/list_folder", {"path": self._folder})
        entries: List[Dict[str, Any]] = list(result.get("entries", []))
        pages = 1
        while result.get("has_more"):
            result = await self._session.rpc(
                "files/list_folder/continue", {"cursor": result["cursor"]}
            )
            entries.extend(result.get("entries", []))
            pages += 1
        emit_remote_event(
            "list_folder",
            payload={"folder": self._folder or "/", "entries": len(entries), "pages": pages},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return entries

    async def list_media_files(self) -> List[RemoteFile]:
        media = classify_listing(await self.list_files())
        LOGGER.debug("Listing classified %d media files", len(media))
        return media

    async def get_temporary_link(self, remote_path: str) -> str:
        return await self._links.get_link(remote_path)

    async def put_object(self, remote_path: str, data: bytes) -> None:
        start = time.perf_counter()
        await self._session.upload(
            "files/upload",
            {"path": remote_path, "mode": "overwrite", "mute": True},
            data,
        )
        emit_remote_event(
            "upload",
            payload={"path": remote_path, "bytes": len(data)},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )

    async def delete_object(self, remote_path: str) -> None:
        """Delete *remote_path*; an already absent object is not an error."""

        try:
            await self._session.rpc("files/delete_v2", {"path": remote_path})
        except RemoteUnavailableError as error:
            if error.status_code != 409:
                raise
            LOGGER.debug("Remote object '%s' already absent: %s", remote_path, error)
            emit_remote_event("delete", payload={"path": remote_path, "result": "absent"})
            return
        emit_remote_event("delete", payload={"path": remote_path, "result": "deleted"})

    async def upload_narration(self, media_path: str, data: bytes) -> str:
        target = narration_path(media_path)
        await self.put_object(target, data)
        # The narration path is reused on every recording.
        self._links.invalidate(target)
        return target

    async def delete_narration(self, media_path: str) -> str:
        target = narration_path(media_path)
        try:
            await self.delete_object(target)
        finally:
            self._links.invalidate(target)
        return target

    async def download(self, link: str) -> bytes:
        """Fetch the bytes behind a temporary link."""

        try:
            response = await self._session.http.get(link, follow_redirects=True)
        except httpx.HTTPError as error:
            raise RemoteUnavailableError(f"Download failed: {error}") from error
        if not response.is_success:
            raise RemoteUnavailableError(
                f"Download failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.content


__all__ = [
    "DropboxLibrary",
    "IMAGE_EXTENSIONS",
    "LINK_CACHE_TTL",
    "NARRATION_SUFFIX",
    "RemoteFile",
    "TemporaryLinkCache",
    "VIDEO_EXTENSIONS",
    "classify_listing",
    "is_media_file",
    "is_narration_file",
    "is_video_file",
    "narration_path",
]
