import logging
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, status

from recordings_viewer.errors import (
    NotFoundError,
    TranscriptionError,
    TransportError,
    ValidationError,
    ViewerError,
)
from recordings_viewer.services.catalog import CatalogService, IndexedPrefixResolver
from recordings_viewer.services.session_metadata import SessionMetadataStore
from recordings_viewer.services.transcription import MockTranscriber, Transcriber, TranscriptionBridge
from recordings_viewer.storage import GCSObjectStore, ObjectStore, object_store

logger = logging.getLogger("recordings_viewer.dependencies")

_catalog = CatalogService(object_store, IndexedPrefixResolver(object_store))
_metadata_store = SessionMetadataStore(object_store, _catalog)
_transcriber: Optional[Transcriber] = None


def get_object_store() -> ObjectStore:
    return object_store


def get_catalog() -> CatalogService:
    return _catalog


def get_metadata_store() -> SessionMetadataStore:
    return _metadata_store


def get_transcriber() -> Transcriber:
    global _transcriber
    if _transcriber is None:
        if isinstance(object_store, GCSObjectStore):
            from recordings_viewer.services.google_speech import GoogleSpeechTranscriber
            _transcriber = GoogleSpeechTranscriber(object_store)
        else:
            logger.warning("Object store is not GCS, using mock transcriber")
            _transcriber = MockTranscriber()
    return _transcriber


def get_transcription_bridge(
    store: ObjectStore = Depends(get_object_store),
    catalog: CatalogService = Depends(get_catalog),
    transcriber: Transcriber = Depends(get_transcriber),
) -> TranscriptionBridge:
    return TranscriptionBridge(store, catalog, transcriber)


def require_org_device(org: Optional[str] = None, device: Optional[str] = None) -> Tuple[str, str]:
    if not org or not device:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing org or device parameter")
    return org, device


class FieldHTTPException(HTTPException):
    """400 whose body also names the offending field; rendered by the handler in main.py."""

    def __init__(self, status_code: int, detail: str, field: Optional[str] = None):
        super().__init__(status_code=status_code, detail=detail)
        self.field = field


def to_http_exception(e: ViewerError) -> HTTPException:
    """Map the service error taxonomy onto HTTP responses."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return FieldHTTPException(status_code=400, detail=str(e), field=e.field)
    if isinstance(e, TranscriptionError):
        logger.error(f"[transcribe] {e}")
        return HTTPException(status_code=500, detail=str(e))
    if isinstance(e, TransportError):
        logger.error(f"[storage] {e}")
        return HTTPException(status_code=502, detail=str(e))
    logger.error(f"[unexpected] {e}")
    return HTTPException(status_code=500, detail=str(e))
