"""Dropbox-backed remote store."""

from .client import (
    ACCESS_TOKEN_LIFETIME,
    DropboxConfigurationError,
    DropboxCredentials,
    DropboxHandle,
    DropboxSession,
    REFRESH_BUFFER,
    RemoteObjectNotFoundError,
    RemoteUnavailableError,
)
from .files import (
    DropboxLibrary,
    LINK_CACHE_TTL,
    NARRATION_SUFFIX,
    RemoteFile,
    TemporaryLinkCache,
    classify_listing,
    is_media_file,
    is_video_file,
    narration_path,
)

__all__ = [
    "ACCESS_TOKEN_LIFETIME",
    "DropboxConfigurationError",
    "DropboxCredentials",
    "DropboxHandle",
    "DropboxLibrary",
    "DropboxSession",
    "LINK_CACHE_TTL",
    "NARRATION_SUFFIX",
    "REFRESH_BUFFER",
    "RemoteFile",
    "RemoteObjectNotFoundError",
    "RemoteUnavailableError",
    "TemporaryLinkCache",
    "classify_listing",
    "is_media_file",
    "is_video_file",
    "narration_path",
]
