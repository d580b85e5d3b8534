"""
Async HTTP client for the recordings viewer API.

Used by the list view and the session view. Error responses are mapped back onto the
service error taxonomy so callers handle the same exceptions on both sides of the wire.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from recordings_viewer.errors import NotFoundError, TransportError, ValidationError
from recordings_viewer.util_models import (
    Device,
    MediaUrlsResponse,
    Note,
    Organization,
    Session,
    SessionListResponse,
    SessionMetadata,
    SessionStats,
    TranscribeResponse,
)

logger = logging.getLogger("recordings_viewer.client.api")

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0


class RecordingsApiClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def __aenter__(self) -> "RecordingsApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            resp = await self.http.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"[api] {method} {path} failed: {e}")
            raise TransportError(f"{method} {path} failed: {e}", cause=e) from e

        if resp.status_code >= 400:
            field = None
            try:
                body = resp.json()
                detail = body.get("detail", resp.text)
                field = body.get("field")
            except (ValueError, AttributeError):
                detail = resp.text
            if resp.status_code == 404:
                raise NotFoundError(str(detail))
            if resp.status_code in (400, 422):
                raise ValidationError(str(detail), field=field)
            raise TransportError(f"{method} {path} -> {resp.status_code}: {detail}")
        return resp

    async def _get_json(self, path: str, **params) -> Any:
        resp = await self._request("GET", path, params=params)
        return resp.json()

    # ---------- catalog ---------- #

    async def list_orgs(self) -> List[Organization]:
        data = await self._get_json("/orgs")
        return [Organization.model_validate(o) for o in data["orgs"]]

    async def list_devices(self, org: str) -> List[Device]:
        data = await self._get_json(f"/orgs/{org}/devices")
        return [Device.model_validate(d) for d in data["devices"]]

    async def list_sessions(self, org: str, device: str, status: Optional[str] = None,
                            date: Optional[str] = None, page: Optional[int] = None,
                            per_page: Optional[int] = None) -> SessionListResponse:
        data = await self._get_json(
            "/sessions", org=org, device=device, status=status, date=date, page=page, perPage=per_page
        )
        return SessionListResponse.model_validate(data)

    async def session_stats(self, org: str, device: str, today: Optional[str] = None) -> SessionStats:
        data = await self._get_json("/sessions/stats", org=org, device=device, today=today)
        return SessionStats.model_validate(data)

    async def get_session(self, org: str, device: str, folder_name: str) -> Session:
        data = await self._get_json(f"/sessions/{folder_name}", org=org, device=device)
        return Session.model_validate(data)

    async def get_media_urls(self, org: str, device: str, folder_name: str) -> MediaUrlsResponse:
        data = await self._get_json(f"/sessions/{folder_name}/media", org=org, device=device)
        return MediaUrlsResponse.model_validate(data)

    # ---------- metadata / notes ---------- #

    async def get_metadata(self, org: str, device: str, folder_name: str) -> SessionMetadata:
        data = await self._get_json(f"/sessions/{folder_name}/metadata", org=org, device=device)
        return SessionMetadata.model_validate(data)

    async def update_metadata(self, org: str, device: str, folder_name: str, **fields) -> SessionMetadata:
        resp = await self._request(
            "PUT", f"/sessions/{folder_name}/metadata", params={"org": org, "device": device}, json=fields
        )
        return SessionMetadata.model_validate(resp.json()["metadata"])

    async def get_notes(self, org: str, device: str, folder_name: str) -> List[Note]:
        data = await self._get_json(f"/sessions/{folder_name}/notes", org=org, device=device)
        return [Note.model_validate(n) for n in data["notes"]]

    async def add_note(self, org: str, device: str, folder_name: str,
                       timestamp: float, resource: str, content: str) -> Note:
        resp = await self._request(
            "POST", f"/sessions/{folder_name}/notes",
            params={"org": org, "device": device},
            json={"timestamp": timestamp, "resource": resource, "content": content},
        )
        return Note.model_validate(resp.json()["note"])

    async def update_note(self, org: str, device: str, folder_name: str, note_id: str, **fields) -> Note:
        resp = await self._request(
            "PUT", f"/sessions/{folder_name}/notes",
            params={"org": org, "device": device},
            json={"noteId": note_id, **fields},
        )
        return Note.model_validate(resp.json()["note"])

    async def delete_note(self, org: str, device: str, folder_name: str, note_id: str) -> None:
        await self._request(
            "DELETE", f"/sessions/{folder_name}/notes",
            params={"org": org, "device": device, "noteId": note_id},
        )

    async def notes_count(self, org: str, device: str, folder_names: Iterable[str]) -> Dict[str, int]:
        ids = ",".join(folder_names)
        if not ids:
            return {}
        data = await self._get_json("/sessions/notes-count", org=org, device=device, ids=ids)
        return data["counts"]

    # ---------- media ---------- #

    async def fetch_bytes(self, key: str) -> bytes:
        """Object bytes through the same-origin relay."""
        resp = await self._request("GET", "/proxy", params={"key": key})
        return resp.content

    async def fetch_text(self, key: str) -> str:
        resp = await self._request("GET", "/proxy", params={"key": key})
        return resp.text

    async def transcribe(self, org: str, device: str, folder_name: str, audio_type: str) -> TranscribeResponse:
        resp = await self._request(
            "POST", "/transcribe",
            json={"sessionId": folder_name, "audioType": audio_type, "org": org, "device": device},
        )
        return TranscribeResponse.model_validate(resp.json())
