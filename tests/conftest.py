import os

# In-memory bucket for everything imported below
os.environ["USE_MOCK_STORAGE"] = "1"
os.environ.setdefault("GCP_PROJECT", "test-project")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from recordings_viewer import dependencies
from recordings_viewer.main import app
from recordings_viewer.services.catalog import CatalogService, IndexedPrefixResolver
from recordings_viewer.services.session_metadata import SessionMetadataStore
from recordings_viewer.storage import InMemoryObjectStore
from recordings_viewer.util_models import TranscriptionResult, TranscriptSegment

ORG = "acme"
DEVICE = "rig-01"

ALL_FILES = (
    "screen/video.mp4",
    "screen/audio.wav",
    "camera/video.mp4",
    "audio/raw.wav",
    "audio/clean.wav",
)


class FakeTranscriber:
    def __init__(self, result=None, error=None):
        self.result = result or TranscriptionResult(
            text="hola mundo adios",
            segments=[
                TranscriptSegment(text=" hola mundo ", start=0.5, end=2.25),
                TranscriptSegment(text="adios", start=3.0, end=4.0),
            ],
        )
        self.error = error
        self.calls = []

    def transcribe(self, audio, language, granularities):
        self.calls.append({"audio": audio, "language": language, "granularities": tuple(granularities)})
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def store():
    # small pages so multi-page listing is exercised
    return InMemoryObjectStore(bucket_name="test-bucket", page_size=3)


@pytest.fixture
def catalog(store):
    return CatalogService(store, IndexedPrefixResolver(store))


@pytest.fixture
def metadata_store(store, catalog):
    return SessionMetadataStore(store, catalog)


@pytest.fixture
def seed(store):
    def _seed(folder, files=ALL_FILES, org=ORG, device=DEVICE, date=("2024", "01", "15"),
              last_modified=None, data=b"0123456789"):
        year, month, day = date
        prefix = f"{org}/{device}/{year}/{month}/{day}/{folder}"
        for rel in files:
            store.add(f"{prefix}/{rel}", data,
                      last_modified=last_modified or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))
        return prefix
    return _seed


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def client(store, catalog, metadata_store, transcriber):
    app.dependency_overrides[dependencies.get_object_store] = lambda: store
    app.dependency_overrides[dependencies.get_catalog] = lambda: catalog
    app.dependency_overrides[dependencies.get_metadata_store] = lambda: metadata_store
    app.dependency_overrides[dependencies.get_transcriber] = lambda: transcriber
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
