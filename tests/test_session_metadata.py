import asyncio
import json

import pytest

from recordings_viewer.errors import NotFoundError
from recordings_viewer.util_models import NoteResource, SessionMetadata

ORG = "acme"
DEVICE = "rig-01"
FOLDER = "10-00-00_sess1"


def test_metadata_defaults_when_missing(seed, metadata_store):
    seed(FOLDER)
    assert metadata_store.get(ORG, DEVICE, FOLDER) == SessionMetadata(favorite=False, score=None)


def test_metadata_defaults_for_unknown_session(metadata_store):
    assert metadata_store.get(ORG, DEVICE, "nope") == SessionMetadata()


def test_metadata_malformed_reads_as_defaults(seed, store, metadata_store):
    prefix = seed(FOLDER)
    store.add(f"{prefix}/metadata.json", b"{broken")
    assert metadata_store.get(ORG, DEVICE, FOLDER) == SessionMetadata()


def test_metadata_partial_fields_get_defaults(seed, store, metadata_store):
    prefix = seed(FOLDER)
    store.add(f"{prefix}/metadata.json", json.dumps({"score": 4, "extra": "kept out"}))
    assert metadata_store.get(ORG, DEVICE, FOLDER) == SessionMetadata(favorite=False, score=4)


def test_metadata_update_round_trip(seed, store, metadata_store):
    prefix = seed(FOLDER)
    metadata_store.update(ORG, DEVICE, FOLDER, {"favorite": True})
    assert metadata_store.get(ORG, DEVICE, FOLDER) == SessionMetadata(favorite=True, score=None)

    metadata_store.update(ORG, DEVICE, FOLDER, {"score": 3})
    assert metadata_store.get(ORG, DEVICE, FOLDER) == SessionMetadata(favorite=True, score=3)

    stored = json.loads(store.get_object(f"{prefix}/metadata.json"))
    assert stored == {"favorite": True, "score": 3}
    assert store.content_type(f"{prefix}/metadata.json") == "application/json"


def test_metadata_update_unknown_session(metadata_store):
    with pytest.raises(NotFoundError):
        metadata_store.update(ORG, DEVICE, "nope", {"favorite": True})


def test_notes_crud(seed, metadata_store):
    seed(FOLDER)
    assert metadata_store.get_notes(ORG, DEVICE, FOLDER) == []

    note = metadata_store.add_note(ORG, DEVICE, FOLDER, timestamp=12.5,
                                   resource=NoteResource.SCREEN_VIDEO, content="look here")
    assert note.id
    assert note.createdAt.endswith("Z")
    assert metadata_store.get_notes(ORG, DEVICE, FOLDER) == [note]

    updated = metadata_store.update_note(ORG, DEVICE, FOLDER, note.id, {"content": "edited"})
    assert updated.content == "edited"
    assert updated.timestamp == 12.5
    assert updated.createdAt == note.createdAt

    metadata_store.delete_note(ORG, DEVICE, FOLDER, note.id)
    assert metadata_store.get_notes(ORG, DEVICE, FOLDER) == []


def test_note_missing(seed, metadata_store):
    seed(FOLDER)
    with pytest.raises(NotFoundError):
        metadata_store.update_note(ORG, DEVICE, FOLDER, "ghost", {"content": "x"})
    with pytest.raises(NotFoundError):
        metadata_store.delete_note(ORG, DEVICE, FOLDER, "ghost")


def test_notes_for_unknown_session(metadata_store):
    assert metadata_store.get_notes(ORG, DEVICE, "nope") == []
    with pytest.raises(NotFoundError):
        metadata_store.add_note(ORG, DEVICE, "nope", 1.0, NoteResource.GLOBAL, "x")


def test_notes_counts(seed, metadata_store):
    seed("10-00-00_a")
    seed("11-00-00_b")
    for i in range(3):
        metadata_store.add_note(ORG, DEVICE, "10-00-00_a", float(i), NoteResource.GLOBAL, f"n{i}")

    counts = asyncio.run(metadata_store.notes_counts(ORG, DEVICE, ["10-00-00_a", "11-00-00_b", "missing"]))

    assert counts == {"10-00-00_a": 3, "11-00-00_b": 0, "missing": 0}
