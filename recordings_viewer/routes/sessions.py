import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException

from recordings_viewer.dependencies import (
    get_catalog,
    get_metadata_store,
    require_org_device,
    to_http_exception,
)
from recordings_viewer.errors import ValidationError, ViewerError
from recordings_viewer.services import keys, session_query
from recordings_viewer.services.catalog import CatalogService
from recordings_viewer.services.session_metadata import SessionMetadataStore
from recordings_viewer.storage import PRESIGN_TTL_SECONDS
from recordings_viewer.util_models import (
    FileRole,
    MediaUrlsResponse,
    MetadataUpdateRequest,
    MetadataUpdateResponse,
    NotesCountResponse,
    Session,
    SessionListResponse,
    SessionMetadata,
    SessionStats,
    SessionStatusFilter,
    UrlResponse,
)

router = APIRouter()
logger = logging.getLogger("recordings_viewer.sessions")

SCORE_MIN, SCORE_MAX = 1, 5


def validate_metadata_update(req: MetadataUpdateRequest) -> dict:
    """Only the fields the client actually sent; score may be explicitly null."""
    updates = {}
    if "favorite" in req.model_fields_set:
        if req.favorite is None:
            raise ValidationError("favorite must be a boolean", field="favorite")
        updates["favorite"] = req.favorite
    if "score" in req.model_fields_set:
        if req.score is not None and not SCORE_MIN <= req.score <= SCORE_MAX:
            raise ValidationError(f"score must be between {SCORE_MIN} and {SCORE_MAX} or null", field="score")
        updates["score"] = req.score
    if not updates:
        raise ValidationError("No valid updates provided")
    return updates


def _parse_date_key(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD", field="date")
    return value


# ---------- listing ---------- #

@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    status: SessionStatusFilter = SessionStatusFilter.ALL,
    date: Optional[str] = None,
    page: int = 1,
    perPage: Optional[int] = None,
    org_device: Tuple[str, str] = Depends(require_org_device),
    catalog: CatalogService = Depends(get_catalog),
):
    """
    Sessions for one device, newest first, with org/device display names.

    - status: all | complete | incomplete (favorites needs metadata, which is lazy-loaded by the client)
    - date: YYYY-MM-DD calendar filter
    - page / perPage: optional paging, omitted perPage returns everything
    """
    org, device = org_device
    try:
        date_key = _parse_date_key(date)
        if perPage is not None and perPage < 1:
            raise ValidationError("perPage must be positive", field="perPage")
        listing = await catalog.list_sessions(org, device)
    except ViewerError as e:
        raise to_http_exception(e)

    filtered = session_query.filter_sessions(listing.sessions, status, date_key)
    items, page, total_pages = session_query.paginate(filtered, page, perPage)
    return SessionListResponse(
        sessions=items,
        orgName=listing.orgName,
        deviceName=listing.deviceName,
        total=len(filtered),
        page=page,
        perPage=perPage,
        totalPages=total_pages,
    )


@router.get("/sessions/stats", response_model=SessionStats)
async def session_stats(
    today: Optional[str] = None,
    org_device: Tuple[str, str] = Depends(require_org_device),
    catalog: CatalogService = Depends(get_catalog),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        ref_day = datetime.strptime(_parse_date_key(today), "%Y-%m-%d").date() if today else datetime.now(timezone.utc).date()
        listing = await catalog.list_sessions(org, device)
        metadata = await asyncio.gather(
            *[asyncio.to_thread(metadata_store.read_metadata, s.prefix) for s in listing.sessions]
        )
    except ViewerError as e:
        raise to_http_exception(e)

    sessions = [s.model_copy(update={"metadata": m}) for s, m in zip(listing.sessions, metadata)]
    return session_query.compute_stats(sessions, ref_day)


@router.get("/sessions/notes-count", response_model=NotesCountResponse)
async def notes_count(
    ids: Optional[str] = None,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    """ids: comma-separated folder names. Returns {folderName: count}."""
    org, device = org_device
    if not ids:
        raise HTTPException(status_code=400, detail="Missing ids parameter")
    folder_names = [i for i in ids.split(",") if i]
    try:
        counts = await metadata_store.notes_counts(org, device, folder_names)
    except ViewerError as e:
        raise to_http_exception(e)
    return NotesCountResponse(counts=counts)


# ---------- single session ---------- #

@router.get("/sessions/{folder_name}", response_model=Session)
def get_session(
    folder_name: str,
    org_device: Tuple[str, str] = Depends(require_org_device),
    catalog: CatalogService = Depends(get_catalog),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        session = catalog.get_session(org, device, folder_name)
        session.metadata = metadata_store.read_metadata(session.prefix)
    except ViewerError as e:
        raise to_http_exception(e)
    return session


@router.get("/sessions/{folder_name}/media", response_model=MediaUrlsResponse)
def get_media_urls(
    folder_name: str,
    org_device: Tuple[str, str] = Depends(require_org_device),
    catalog: CatalogService = Depends(get_catalog),
):
    """Time-limited read URLs for every media / caption file the session has."""
    org, device = org_device
    try:
        session = catalog.get_session(org, device, folder_name)
        media = catalog.media_keys(session)
        urls = {role.value: catalog.presign(key, PRESIGN_TTL_SECONDS) for role, key in media.items()}
    except ViewerError as e:
        raise to_http_exception(e)
    return MediaUrlsResponse(
        urls=urls,
        keys={role.value: key for role, key in media.items()},
        expiresIn=PRESIGN_TTL_SECONDS,
    )


@router.get("/sessions/{folder_name}/video-url", response_model=UrlResponse)
def get_video_url(
    folder_name: str,
    org_device: Tuple[str, str] = Depends(require_org_device),
    catalog: CatalogService = Depends(get_catalog),
):
    org, device = org_device
    try:
        prefix = catalog.require_session_prefix(org, device, folder_name)
        url = catalog.presign(keys.build_key(prefix, keys.ROLE_PATHS[FileRole.SCREEN_VIDEO]), PRESIGN_TTL_SECONDS)
    except ViewerError as e:
        raise to_http_exception(e)
    return UrlResponse(url=url)


# ---------- metadata ---------- #

@router.get("/sessions/{folder_name}/metadata", response_model=SessionMetadata)
def get_metadata(
    folder_name: str,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        return metadata_store.get(org, device, folder_name)
    except ViewerError as e:
        raise to_http_exception(e)


@router.put("/sessions/{folder_name}/metadata", response_model=MetadataUpdateResponse)
def update_metadata(
    folder_name: str,
    req: MetadataUpdateRequest,
    org_device: Tuple[str, str] = Depends(require_org_device),
    metadata_store: SessionMetadataStore = Depends(get_metadata_store),
):
    org, device = org_device
    try:
        updates = validate_metadata_update(req)
        metadata = metadata_store.update(org, device, folder_name, updates)
    except ViewerError as e:
        raise to_http_exception(e)
    return MetadataUpdateResponse(success=True, metadata=metadata)
