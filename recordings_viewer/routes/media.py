import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from recordings_viewer.dependencies import get_catalog, get_object_store, to_http_exception
from recordings_viewer.errors import ViewerError
from recordings_viewer.services.catalog import CatalogService
from recordings_viewer.storage import PRESIGN_TTL_SECONDS, ObjectStore
from recordings_viewer.util_models import UrlResponse

router = APIRouter()
logger = logging.getLogger("recordings_viewer.media")

CONTENT_TYPES = {
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".webm": "video/webm",
    ".vtt": "text/vtt",
    ".json": "application/json",
}


def content_type_for(key: str) -> str:
    for ext, content_type in CONTENT_TYPES.items():
        if key.endswith(ext):
            return content_type
    return "application/octet-stream"


def cache_control_for(key: str) -> str:
    # caption documents get regenerated in place
    if key.endswith(".vtt"):
        return "no-cache, no-store, must-revalidate"
    return "public, max-age=3600"


@router.get("/presign", response_model=UrlResponse)
def presign(key: Optional[str] = None, catalog: CatalogService = Depends(get_catalog)):
    if not key:
        raise HTTPException(status_code=400, detail="Missing key parameter")
    try:
        return UrlResponse(url=catalog.presign(key, PRESIGN_TTL_SECONDS))
    except ViewerError as e:
        raise to_http_exception(e)


@router.get("/proxy")
def proxy(key: Optional[str] = None, store: ObjectStore = Depends(get_object_store)):
    """Same-origin relay so the browser can decode audio bytes without CORS."""
    if not key:
        raise HTTPException(status_code=400, detail="Missing key parameter")
    try:
        data = store.get_object(key)
    except ViewerError as e:
        raise to_http_exception(e)
    return Response(
        content=data,
        media_type=content_type_for(key),
        headers={"Cache-Control": cache_control_for(key)},
    )
