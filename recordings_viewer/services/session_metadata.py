"""
Per-session JSON documents: `metadata.json` (favorite / score) and `notes.json`.

Reads are forgiving: a missing or malformed document reads as its default.
Writes need the session to exist.

Updates are read-modify-write of the whole document with no version check, so two
clients writing at once can silently drop one change (last writer wins).
"""

import json
import uuid
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from recordings_viewer.errors import NotFoundError, ObjectNotFound
from recordings_viewer.services import keys
from recordings_viewer.services.catalog import CatalogService
from recordings_viewer.storage import ObjectStore
from recordings_viewer.util_models import Note, NoteResource, SessionMetadata

logger = logging.getLogger("recordings_viewer.session_metadata")

JSON_CONTENT_TYPE = "application/json"


def _now_iso() -> str:
    ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return ts.replace("+00:00", "Z")


def _load_json(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def _parse_notes(data: Any) -> List[Note]:
    if not isinstance(data, list):
        return []
    notes: List[Note] = []
    for item in data:
        try:
            notes.append(Note.model_validate(item))
        except ValueError:
            logger.warning(f"[notes] dropping malformed note entry: {item!r}")
    return notes


class SessionMetadataStore:
    def __init__(self, store: ObjectStore, catalog: CatalogService):
        self.store = store
        self.catalog = catalog

    # ---------- raw document access ---------- #

    def _read_document(self, key: str) -> Any:
        try:
            raw = self.store.get_object(key)
        except ObjectNotFound:
            return None
        return _load_json(raw)

    def _write_document(self, key: str, data: Any) -> None:
        self.store.put_object(key, json.dumps(data, indent=2, ensure_ascii=False), JSON_CONTENT_TYPE)

    # ---------- metadata ---------- #

    def read_metadata(self, prefix: str) -> SessionMetadata:
        return SessionMetadata.from_document(self._read_document(keys.metadata_key(prefix)))

    def get(self, org: str, device: str, folder_name: str) -> SessionMetadata:
        prefix = self.catalog.find_session_prefix(org, device, folder_name)
        if not prefix:
            return SessionMetadata()
        return self.read_metadata(prefix)

    def update(self, org: str, device: str, folder_name: str, partial: Dict[str, Any]) -> SessionMetadata:
        """Shallow-merge `partial` over the stored document. Values are validated by the caller."""
        prefix = self.catalog.require_session_prefix(org, device, folder_name)
        current = self.read_metadata(prefix)
        merged = current.model_copy(update=partial)
        self._write_document(keys.metadata_key(prefix), merged.model_dump())
        logger.info(f"[metadata] updated {prefix}: {partial}")
        return merged

    # ---------- notes ---------- #

    def read_notes(self, prefix: str) -> List[Note]:
        return _parse_notes(self._read_document(keys.notes_key(prefix)))

    def _save_notes(self, prefix: str, notes: List[Note]) -> None:
        self._write_document(keys.notes_key(prefix), [n.model_dump(mode="json") for n in notes])

    def get_notes(self, org: str, device: str, folder_name: str) -> List[Note]:
        prefix = self.catalog.find_session_prefix(org, device, folder_name)
        if not prefix:
            return []
        return self.read_notes(prefix)

    def add_note(self, org: str, device: str, folder_name: str,
                 timestamp: float, resource: NoteResource, content: str) -> Note:
        prefix = self.catalog.require_session_prefix(org, device, folder_name)
        notes = self.read_notes(prefix)
        note = Note(
            id=str(uuid.uuid4()),
            timestamp=timestamp,
            resource=resource,
            content=content,
            createdAt=_now_iso(),
        )
        notes.append(note)
        self._save_notes(prefix, notes)
        return note

    def update_note(self, org: str, device: str, folder_name: str,
                    note_id: str, updates: Dict[str, Any]) -> Note:
        prefix = self.catalog.require_session_prefix(org, device, folder_name)
        notes = self.read_notes(prefix)
        for index, note in enumerate(notes):
            if note.id == note_id:
                notes[index] = note.model_copy(update=updates)
                self._save_notes(prefix, notes)
                return notes[index]
        raise NotFoundError(f"Note not found: {note_id}")

    def delete_note(self, org: str, device: str, folder_name: str, note_id: str) -> None:
        prefix = self.catalog.require_session_prefix(org, device, folder_name)
        notes = self.read_notes(prefix)
        remaining = [n for n in notes if n.id != note_id]
        if len(remaining) == len(notes):
            raise NotFoundError(f"Note not found: {note_id}")
        self._save_notes(prefix, remaining)

    async def notes_counts(self, org: str, device: str, folder_names: Iterable[str]) -> Dict[str, int]:
        """One prefix-resolution pass for the whole batch, then the note reads fan out."""
        names = [n for n in dict.fromkeys(folder_names) if n]
        if not names:
            return {}
        prefixes = await asyncio.to_thread(self.catalog.resolver.resolve_many, org, device, names)

        async def _count(name: str) -> int:
            prefix: Optional[str] = prefixes.get(name)
            if not prefix:
                return 0
            notes = await asyncio.to_thread(self.read_notes, prefix)
            return len(notes)

        counts = await asyncio.gather(*[_count(name) for name in names])
        return dict(zip(names, counts))
