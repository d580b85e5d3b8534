import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException

from recordings_viewer.dependencies import get_metadata_store, require_org_device, to_http_exception
from recordings_viewer.errors import ValidationError, ViewerError
from recordings_viewer.services.session_metadata import SessionMetadataStore
from recordings_viewer.util_models import (
    NoteCreateRequest,
    NoteResource,
    NoteResponse,
    NotesResponse,
    NoteUpdateRequest,
)

router = APIRouter()
logger = logging.getLogger("recordings_viewer.notes")


def _resource(value: Optional[str]) -> Optional[NoteResource]:
    try:
        return NoteResource(value)
    except ValueError:
        return None


def validate_new_note(req: NoteCreateRequest) -> dict:
    if req.timestamp is None or req.timestamp < 0:
        raise ValidationError("Invalid timestamp", field="timestamp")
    if not req.content or not req.content.strip():
        raise ValidationError("Content is required", field="content")
    resource = _resource(req.resource)
    if resource is None:
        raise ValidationError("Invalid resource", field="resource")
    return {"timestamp": req.timestamp, "content": req.content.strip(), "resource": resource}


def validate_note_update(req: NoteUpdateRequest) -> dict:
    """Invalid optional fields are dropped; nothing left is an error."""
    if not req.noteId:
        raise ValidationError("noteId is required", field="noteId")
    updates = {}
    if req.content and req.content.strip():
        updates["content"] = req.content.strip()
    if req.timestamp is not None and req.timestamp >= 0:
        updates["timestamp"] = req.timestamp
    resource = _resource(req.resource) if req.resource else None
    if resource is not None:
        updates["resource"] = resource
    if not updates:
        raise ValidationError("No valid updates provided")
    return updates


@router.get("/sessions/{folder_name}/notes", response_model=NotesResponse)
def list_notes(
    folder_name: str,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        notes = metadata_store.get_notes(org, device, folder_name)
    except ViewerError as e:
        raise to_http_exception(e)
    return NotesResponse(notes=notes)


@router.post("/sessions/{folder_name}/notes", response_model=NoteResponse)
def add_note(
    folder_name: str,
    req: NoteCreateRequest,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        fields = validate_new_note(req)
        note = metadata_store.add_note(org, device, folder_name, **fields)
    except ViewerError as e:
        raise to_http_exception(e)
    return NoteResponse(note=note)


@router.put("/sessions/{folder_name}/notes", response_model=NoteResponse)
def update_note(
    folder_name: str,
    req: NoteUpdateRequest,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        updates = validate_note_update(req)
        note = metadata_store.update_note(org, device, folder_name, req.noteId, updates)
    except ViewerError as e:
        raise to_http_exception(e)
    return NoteResponse(note=note)


@router.delete("/sessions/{folder_name}/notes")
def delete_note(
    folder_name: str,
    noteId: Optional[str] = None,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    if not noteId:
        raise HTTPException(status_code=400, detail="noteId is required")
    try:
        metadata_store.delete_note(org, device, folder_name, noteId)
    except ViewerError as e:
        raise to_http_exception(e)
    return {"success": True}
