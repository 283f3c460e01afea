"""Authorized access to the Dropbox HTTP API."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from ..services.cache import Clock, TTLCache


LOGGER = logging.getLogger(__name__)


TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"

# Dropbox short-lived access tokens last four hours.
ACCESS_TOKEN_LIFETIME = 4 * 60 * 60
REFRESH_BUFFER = 5 * 60

APP_KEY_ENV = "DROPBOX_APP_KEY"
APP_SECRET_ENV = "DROPBOX_APP_SECRET"
REFRESH_TOKEN_ENV = "DROPBOX_REFRESH_TOKEN"


class DropboxConfigurationError(RuntimeError):
    """Raised when Dropbox credentials are not configured."""


class RemoteUnavailableError(RuntimeError):
    """Raised when the remote store cannot complete a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteObjectNotFoundError(RemoteUnavailableError):
    """Raised when the requested remote object does not exist."""


@dataclass(frozen=True)
class DropboxCredentials:
    app_key: str
    app_secret: str
    refresh_token: str

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DropboxCredentials":
        source = os.environ if environ is None else environ
        values = {
            name: (source.get(name) or "").strip()
            for name in (APP_KEY_ENV, APP_SECRET_ENV, REFRESH_TOKEN_ENV)
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise DropboxConfigurationError(
                "Dropbox credentials not configured (missing: " + ", ".join(missing) + ")"
            )
        return cls(
            app_key=values[APP_KEY_ENV],
            app_secret=values[APP_SECRET_ENV],
            refresh_token=values[REFRESH_TOKEN_ENV],
        )


def _error_summary(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error_summary") or body.get("error_description") or body)
    return str(body)


def _raise_for_status(response: httpx.Response, route: str) -> None:
    if response.is_success:
        return
    summary = _error_summary(response)
    message = f"Dropbox {route} failed with HTTP {response.status_code}: {summary}"
    if response.status_code == 409 and "not_found" in summary:
        raise RemoteObjectNotFoundError(message, status_code=response.status_code)
    raise RemoteUnavailableError(message, status_code=response.status_code)


class DropboxHandle:
    """An access token bound to an HTTP client."""

    def __init__(self, http: httpx.AsyncClient, access_token: str) -> None:
        self._http = http
        self._access_token = access_token

    @property
    def access_token(self) -> str:
        return self._access_token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def rpc(self, route: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call an RPC-style endpoint and return its JSON body."""

        try:
            response = await self._http.post(
                f"{API_URL}/{route}", json=payload, headers=self._headers()
            )
        except httpx.HTTPError as error:
            raise RemoteUnavailableError(f"Dropbox {route} request failed: {error}") from error
        _raise_for_status(response, route)
        return response.json()

    async def upload(self, route: str, arg: Dict[str, Any], data: bytes) -> Dict[str, Any]:
        """Call a content-upload endpoint with *data* as the request body."""

        headers = self._headers()
        headers["Dropbox-API-Arg"] = json.dumps(arg)
        headers["Content-Type"] = "application/octet-stream"
        try:
            response = await self._http.post(
                f"{CONTENT_URL}/{route}", content=data, headers=headers
            )
        except httpx.HTTPError as error:
            raise RemoteUnavailableError(f"Dropbox {route} request failed: {error}") from error
        _raise_for_status(response, route)
        return response.json()


class DropboxSession:
    """Keep one ready-to-use :class:`DropboxHandle`, refreshed before it expires.

    Credentials are read on every refresh rather than at construction so a
    missing configuration only fails the remote call that needs it. Two
    callers racing past an expired handle may both refresh; the later handle
    simply replaces the earlier one.
    """

    _HANDLE_KEY = "handle"

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        credentials_loader: Callable[[], DropboxCredentials] = DropboxCredentials.from_env,
        clock: Clock = time.monotonic,
    ) -> None:
        self._http = http
        self._credentials_loader = credentials_loader
        self._handles: TTLCache[str, DropboxHandle] = TTLCache(clock=clock, name="dropbox-handle")

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def get_handle(self) -> DropboxHandle:
        return await self._handles.get_or_populate(
            self._HANDLE_KEY,
            self._mint_handle,
            ACCESS_TOKEN_LIFETIME - REFRESH_BUFFER,
        )

    def invalidate(self) -> None:
        """Forget the cached handle so the next call refreshes it."""

        self._handles.invalidate(self._HANDLE_KEY)

    async def rpc(self, route: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(lambda handle: handle.rpc(route, payload))

    async def upload(self, route: str, arg: Dict[str, Any], data: bytes) -> Dict[str, Any]:
        return await self._call(lambda handle: handle.upload(route, arg, data))

    async def _call(
        self, operation: Callable[[DropboxHandle], Awaitable[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        """Run *operation* with the cached handle, refreshing once on HTTP 401."""

        handle = await self.get_handle()
        try:
            return await operation(handle)
        except RemoteUnavailableError as error:
            if error.status_code != 401:
                raise
            LOGGER.warning("Dropbox rejected the cached access token; refreshing: %s", error)
            self.invalidate()
        return await operation(await self.get_handle())

    async def _mint_handle(self) -> DropboxHandle:
        credentials = self._credentials_loader()
        LOGGER.info("Refreshing Dropbox access token")
        try:
            response = await self._http.post(
                TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credentials.refresh_token,
                    "client_id": credentials.app_key,
                    "client_secret": credentials.app_secret,
                },
            )
        except httpx.HTTPError as error:
            raise RemoteUnavailableError(f"Dropbox token refresh failed: {error}") from error
        _raise_for_status(response, "oauth2/token")
        access_token = response.json().get("access_token")
        if not access_token:
            raise RemoteUnavailableError("Dropbox token refresh returned no access token")
        return DropboxHandle(self._http, access_token)


__all__ = [
    "ACCESS_TOKEN_LIFETIME",
    "DropboxConfigurationError",
    "DropboxCredentials",
    "DropboxHandle",
    "DropboxSession",
    "REFRESH_BUFFER",
    "RemoteObjectNotFoundError",
    "RemoteUnavailableError",
]
