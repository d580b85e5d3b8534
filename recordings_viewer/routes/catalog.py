import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from recordings_viewer.dependencies import get_catalog, to_http_exception
from recordings_viewer.errors import ViewerError
from recordings_viewer.services.catalog import CatalogService
from recordings_viewer.util_models import DeviceListResponse, OrgListResponse, SessionListResponse

router = APIRouter()
logger = logging.getLogger("recordings_viewer.routes.catalog")


@router.get("/orgs", response_model=OrgListResponse)
async def list_orgs(catalog: CatalogService = Depends(get_catalog)):
    try:
        orgs = await catalog.list_organizations()
    except ViewerError as e:
        raise to_http_exception(e)
    return OrgListResponse(orgs=orgs)


@router.get("/orgs/{org}/devices", response_model=DeviceListResponse)
async def list_devices(org: str, catalog: CatalogService = Depends(get_catalog)):
    """Devices under an org, plus the org's display name (fetched concurrently)."""
    if not org:
        raise HTTPException(status_code=400, detail="Missing organization parameter")
    try:
        devices, org_name = await _gather_devices(catalog, org)
    except ViewerError as e:
        raise to_http_exception(e)
    return DeviceListResponse(org=org, orgName=org_name, devices=devices)


async def _gather_devices(catalog: CatalogService, org: str):
    return await asyncio.gather(
        catalog.list_devices(org),
        asyncio.to_thread(catalog.get_org_name, org),
    )


@router.get("/legacy/sessions", response_model=SessionListResponse)
def list_legacy_sessions(catalog: CatalogService = Depends(get_catalog)):
    """Flat key scheme: one session per top-level prefix, dated by its earliest object."""
    try:
        sessions = catalog.list_legacy_sessions()
    except ViewerError as e:
        raise to_http_exception(e)
    return SessionListResponse(sessions=sessions, total=len(sessions))
