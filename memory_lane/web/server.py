"""FastAPI application exposing the catalog to the viewer and the editor."""

from __future__ import annotations

import contextvars
import logging
import secrets
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, File, HTTPException, Request, Response, UploadFile, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..dropbox import DropboxConfigurationError, RemoteObjectNotFoundError, RemoteUnavailableError
from ..services.entries import EntryPatch, EntryRecord, EntryRepository, EntryStatus, status_patch
from ..services.events import emit_db_event, emit_structured_event
from ..services.narration import NarrationService
from ..services.settings import SettingsStore
from ..services.sync import EntrySynchronizer, SyncError, SyncInterruptedError


Authorizer = Callable[[Request], bool]

_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "memory_lane_request_id", default=None
)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the current request id into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        request_id = _REQUEST_ID_VAR.get()
        if request_id:
            extra.setdefault("request_id", request_id)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("memory_lane.events"), {})


class RequestContextMiddleware:
    """Assign a request id for the lifetime of each HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        token = _REQUEST_ID_VAR.set(uuid.uuid4().hex[:12])
        try:
            await self.app(scope, receive, send)
        finally:
            _REQUEST_ID_VAR.reset(token)


def _log_event(message: str, **context: Any) -> None:
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context.setdefault("request_id", request_id)
    emit_structured_event("APP_EVENT", message, context=context, logger=EVENT_LOGGER)


def build_token_authorizer(token: Optional[str]) -> Authorizer:
    """Return an authorizer accepting ``Authorization: Bearer <token>``.

    Without a configured token every editor request is rejected.
    """

    expected = (token or "").strip()

    def _authorize(request: Request) -> bool:
        if not expected:
            return False
        scheme, _, supplied = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() != "bearer":
            return False
        return secrets.compare_digest(supplied.strip(), expected)

    return _authorize


class EntryUpdatePayload(BaseModel):
    title: Optional[str] = None
    transcript: Optional[str] = None
    disabled: Optional[bool] = None
    status: Optional[EntryStatus] = None


class EntryReorderPayload(BaseModel):
    ordered_ids: List[str] = Field(default_factory=list)


class SettingsPayload(BaseModel):
    auto_advance_delay: Optional[int] = Field(None, ge=0)
    show_titles: Optional[bool] = None


def _serialize_entry(record: EntryRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "remote_path": record.remote_path,
        "title": record.title,
        "transcript": record.transcript,
        "position": record.position,
        "disabled": record.disabled,
        "has_narration": record.has_narration,
        "status": record.status.value,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }


def _build_patch(record: EntryRecord, payload: EntryUpdatePayload, repository: EntryRepository) -> EntryPatch:
    provided = payload.model_fields_set
    patch = EntryPatch()
    if "title" in provided:
        patch = patch.merge(EntryPatch(title=payload.title))
    if "transcript" in provided:
        patch = patch.merge(EntryPatch(transcript=payload.transcript))
    if "disabled" in provided and payload.disabled is not None:
        patch = patch.merge(EntryPatch(disabled=payload.disabled))
    if payload.status is not None:
        patch = patch.merge(
            status_patch(record, payload.status, next_position=repository.next_position)
        )
    return patch


def create_app(
    repository: EntryRepository,
    *,
    config: AppConfig,
    narration: NarrationService,
    synchronizer: EntrySynchronizer,
    settings_store: SettingsStore,
    authorizer: Authorizer,
    root_path: str | None = None,
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Memory Lane",
        description="A narrated slideshow backed by a Dropbox folder",
        root_path=root_path or "",
        lifespan=lifespan,
    )
    app.state.server = None
    app.state.config = config

    def _repository_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
        if event_type == "DB_QUERY":
            emit_db_event(message, logger=EVENT_LOGGER, **kwargs)
        else:
            emit_structured_event(event_type, message, logger=EVENT_LOGGER, **kwargs)

    repository.configure_event_emitter(_repository_event_emitter)
    app.add_middleware(RequestContextMiddleware)

    def require_editor(request: Request) -> None:
        if not authorizer(request):
            raise HTTPException(status_code=401, detail="Unauthorized")

    def _require_entry(entry_id: str) -> EntryRecord:
        record = repository.get_entry(entry_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Entry not found")
        return record

    # ------------------------------------------------------------------
    # Public viewer
    # ------------------------------------------------------------------
    @app.get("/api/entries")
    async def list_active_entries() -> List[Dict[str, Any]]:
        return [_serialize_entry(record) for record in repository.list_active()]

    @app.get("/api/entries/{entry_id}")
    async def get_public_entry(entry_id: str) -> Dict[str, Any]:
        record = repository.get_entry(entry_id)
        if record is None or record.disabled:
            raise HTTPException(status_code=404, detail="Entry not found")
        return _serialize_entry(record)

    @app.get("/api/media/{entry_id}")
    async def redirect_to_media(entry_id: str) -> RedirectResponse:
        try:
            link = await narration.media_link(entry_id)
        except (RemoteUnavailableError, DropboxConfigurationError) as error:
            LOGGER.error("Failed to get media link for entry id=%s: %s", entry_id, error)
            raise HTTPException(status_code=500, detail="Failed to get media") from error
        if link is None:
            raise HTTPException(status_code=404, detail="Not found")
        return RedirectResponse(link, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    @app.get("/api/narration/{entry_id}")
    async def redirect_to_narration(entry_id: str) -> RedirectResponse:
        try:
            link = await narration.narration_link(entry_id)
        except RemoteObjectNotFoundError as error:
            raise HTTPException(status_code=404, detail="No narration") from error
        except (RemoteUnavailableError, DropboxConfigurationError) as error:
            LOGGER.error("Failed to get narration link for entry id=%s: %s", entry_id, error)
            raise HTTPException(status_code=500, detail="Failed to get narration") from error
        if link is None:
            raise HTTPException(status_code=404, detail="Not found")
        response = RedirectResponse(link, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.get("/api/settings/viewer")
    async def get_viewer_settings() -> Dict[str, Any]:
        return settings_store.as_dict()

    # ------------------------------------------------------------------
    # Editor
    # ------------------------------------------------------------------
    editor = [Depends(require_editor)]

    @app.get("/api/edit/entries", dependencies=editor)
    async def list_all_entries() -> List[Dict[str, Any]]:
        return [_serialize_entry(record) for record in repository.list_all()]

    @app.put("/api/edit/entries/reorder", dependencies=editor)
    async def reorder_entries(payload: EntryReorderPayload) -> List[Dict[str, Any]]:
        identifiers = payload.ordered_ids
        if len(identifiers) != len(set(identifiers)):
            raise HTTPException(status_code=400, detail="Duplicate entry identifier provided")
        for entry_id in identifiers:
            _require_entry(entry_id)

        _log_event("Reordering entries", entry_count=len(identifiers))
        repository.reorder(identifiers)
        return [_serialize_entry(record) for record in repository.list_active()]

    @app.post("/api/edit/entries/sync", dependencies=editor)
    async def sync_entries() -> Dict[str, int]:
        _log_event("Starting sync")
        try:
            result = await synchronizer.run()
        except (SyncError, SyncInterruptedError, DropboxConfigurationError) as error:
            LOGGER.error("Sync failed: %s", error, exc_info=True)
            raise HTTPException(status_code=500, detail="Sync failed") from error
        _log_event("Sync finished", **result.as_dict())
        return result.as_dict()

    @app.get("/api/edit/entries/{entry_id}", dependencies=editor)
    async def get_entry(entry_id: str) -> Dict[str, Any]:
        return _serialize_entry(_require_entry(entry_id))

    @app.put("/api/edit/entries/{entry_id}", dependencies=editor)
    async def update_entry(entry_id: str, payload: EntryUpdatePayload) -> Dict[str, Any]:
        record = _require_entry(entry_id)
        patch = _build_patch(record, payload, repository)
        _log_event("Updating entry", entry_id=entry_id, fields=sorted(patch.changes()))
        updated = repository.update(entry_id, patch)
        if updated is None:
            raise HTTPException(status_code=404, detail="Entry not found")
        return _serialize_entry(updated)

    @app.delete(
        "/api/edit/entries/{entry_id}",
        dependencies=editor,
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def delete_entry(entry_id: str) -> Response:
        _log_event("Deleting entry", entry_id=entry_id)
        if not repository.delete(entry_id):
            raise HTTPException(status_code=404, detail="Entry not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/edit/narration/{entry_id}", dependencies=editor)
    async def upload_narration(
        entry_id: str, audio: Optional[UploadFile] = File(None)
    ) -> Dict[str, Any]:
        _require_entry(entry_id)
        if audio is None:
            raise HTTPException(status_code=400, detail="No audio file provided")
        data = await audio.read()
        if not data:
            raise HTTPException(status_code=400, detail="No audio file provided")
        try:
            await narration.save_narration(entry_id, data)
        except (RemoteUnavailableError, DropboxConfigurationError) as error:
            LOGGER.error("Narration upload failed for entry id=%s: %s", entry_id, error)
            raise HTTPException(status_code=500, detail="Upload failed") from error
        _log_event("Stored narration", entry_id=entry_id, size=len(data))
        return {"success": True}

    @app.delete("/api/edit/narration/{entry_id}", dependencies=editor)
    async def delete_narration(entry_id: str) -> Dict[str, Any]:
        _require_entry(entry_id)
        try:
            await narration.remove_narration(entry_id)
        except (RemoteUnavailableError, DropboxConfigurationError) as error:
            LOGGER.error("Narration delete failed for entry id=%s: %s", entry_id, error)
            raise HTTPException(status_code=500, detail="Delete failed") from error
        _log_event("Removed narration", entry_id=entry_id)
        return {"success": True}

    @app.post("/api/edit/transcribe/{entry_id}", dependencies=editor)
    async def transcribe_narration(entry_id: str) -> Dict[str, Any]:
        _require_entry(entry_id)
        try:
            transcript = await narration.transcribe(entry_id)
        except RemoteObjectNotFoundError as error:
            raise HTTPException(
                status_code=404, detail="No narration found for this entry"
            ) from error
        except Exception as error:  # noqa: BLE001
            LOGGER.error("Transcription failed for entry id=%s: %s", entry_id, error, exc_info=True)
            raise HTTPException(status_code=500, detail="Transcription failed") from error
        return {"transcript": transcript}

    @app.get("/api/edit/settings", dependencies=editor)
    async def get_editor_settings() -> Dict[str, Any]:
        return settings_store.as_dict()

    @app.put("/api/edit/settings", dependencies=editor)
    async def update_settings(payload: SettingsPayload) -> Dict[str, Any]:
        changes = {
            name: getattr(payload, name)
            for name in payload.model_fields_set
            if getattr(payload, name) is not None
        }
        _log_event("Updating viewer settings", fields=sorted(changes))
        settings_store.update(**changes)
        return settings_store.as_dict()

    return app


__all__ = ["build_token_authorizer", "create_app"]
