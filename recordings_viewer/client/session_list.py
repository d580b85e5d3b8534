"""
Client-side session list for one device.

Holds the last listing, the per-session metadata fetched so far and the notes counts,
and re-lists on a fixed interval while started. A refresh replaces file presence and
sizes but never resets metadata the view already knows about.
"""

import asyncio
import contextlib
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from recordings_viewer.client.api_client import RecordingsApiClient
from recordings_viewer.client.dedup import RequestDeduplicator
from recordings_viewer.errors import ViewerError
from recordings_viewer.services import session_query
from recordings_viewer.util_models import Session, SessionMetadata, SessionStats, SessionStatusFilter

logger = logging.getLogger("recordings_viewer.client.session_list")

AUTO_REFRESH_SECONDS = 5.0


def merge_sessions(fresh: Iterable[Session], known_metadata: Dict[str, SessionMetadata]) -> List[Session]:
    """Fresh listing wins for files; locally known metadata wins over listing defaults."""
    merged = []
    for s in fresh:
        metadata = known_metadata.get(s.folderName)
        merged.append(s.model_copy(update={"metadata": metadata}) if metadata is not None else s)
    return merged


class SessionListView:
    def __init__(self, api: RecordingsApiClient, org: str, device: str,
                 per_page: int = session_query.DEFAULT_PER_PAGE,
                 refresh_interval: float = AUTO_REFRESH_SECONDS):
        self.api = api
        self.org = org
        self.device = device
        self.per_page = per_page
        self.refresh_interval = refresh_interval

        self.sessions: List[Session] = []
        self.org_name: Optional[str] = None
        self.device_name: Optional[str] = None
        self.status = SessionStatusFilter.ALL
        self.date_key: Optional[str] = None
        self.page = 1
        self.error: Optional[str] = None

        self.metadata: Dict[str, SessionMetadata] = {}
        self.notes_counts: Dict[str, int] = {}
        self._fetches = RequestDeduplicator()
        self._refresh_task: Optional[asyncio.Task] = None

    # ---------- lifecycle ---------- #

    async def start(self) -> None:
        await self.refresh()
        if self._refresh_task is None and self.refresh_interval > 0:
            self._refresh_task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._fetches.reset()

    @property
    def running(self) -> bool:
        return self._refresh_task is not None

    async def _auto_refresh(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except ViewerError as e:
                logger.warning(f"[auto_refresh] {self.org}/{self.device}: {e}")
                self.error = str(e)

    # ---------- data ---------- #

    async def refresh(self) -> List[Session]:
        listing = await self.api.list_sessions(self.org, self.device)
        self.org_name = listing.orgName
        self.device_name = listing.deviceName
        self.sessions = merge_sessions(listing.sessions, self.metadata)
        self.error = None
        await self.load_visible_details()
        return self.sessions

    def visible(self) -> List[Session]:
        filtered = session_query.filter_sessions(self.sessions, self.status, self.date_key)
        items, self.page, _ = session_query.paginate(filtered, self.page, self.per_page)
        return items

    def total_pages(self) -> int:
        filtered = session_query.filter_sessions(self.sessions, self.status, self.date_key)
        return session_query.paginate(filtered, self.page, self.per_page)[2]

    def stats(self, today: Optional[date] = None) -> SessionStats:
        return session_query.compute_stats(self.sessions, today or date.today())

    def set_filter(self, status: SessionStatusFilter = SessionStatusFilter.ALL,
                   date_key: Optional[str] = None) -> None:
        self.status = status
        self.date_key = date_key
        self.page = 1

    def set_page(self, page: int) -> None:
        self.page = page

    async def load_visible_details(self) -> None:
        """Metadata and notes counts for the visible page, at most once per session."""
        names = [s.folderName for s in self.visible()]
        await asyncio.gather(self._load_metadata(names), self._load_notes_counts(names))

    async def _load_metadata(self, names: List[str]) -> None:
        async def _one(name: str) -> SessionMetadata:
            return await self.api.get_metadata(self.org, self.device, name)

        pending = [n for n in names if ("metadata", n) not in self._fetches]
        results = await asyncio.gather(
            *[self._fetches.fetch(("metadata", n), lambda n=n: _one(n)) for n in pending],
            return_exceptions=True,
        )
        for name, result in zip(pending, results):
            if not isinstance(result, SessionMetadata):
                # fetches cancelled by stop() come back as CancelledError
                if not isinstance(result, asyncio.CancelledError):
                    logger.warning(f"[metadata] {name}: {result}")
                continue
            # a local edit made while the fetch was in flight wins
            self.metadata.setdefault(name, result)
        self.sessions = merge_sessions(self.sessions, self.metadata)

    async def _load_notes_counts(self, names: List[str]) -> None:
        pending = [n for n in names if ("notes", n) not in self._fetches]
        if not pending:
            return
        batch = asyncio.ensure_future(self.api.notes_count(self.org, self.device, pending))

        async def _count(name: str) -> int:
            counts = await asyncio.shield(batch)
            return counts.get(name, 0)

        results = await asyncio.gather(
            *[self._fetches.fetch(("notes", n), lambda n=n: _count(n)) for n in pending],
            return_exceptions=True,
        )
        for name, result in zip(pending, results):
            if isinstance(result, BaseException):
                if not isinstance(result, asyncio.CancelledError):
                    logger.warning(f"[notes_count] {name}: {result}")
                continue
            self.notes_counts[name] = result

    # ---------- edits ---------- #

    async def set_favorite(self, folder_name: str, favorite: bool) -> SessionMetadata:
        return await self._update_metadata(folder_name, favorite=favorite)

    async def set_score(self, folder_name: str, score: Optional[int]) -> SessionMetadata:
        return await self._update_metadata(folder_name, score=score)

    async def _update_metadata(self, folder_name: str, **fields) -> SessionMetadata:
        metadata = await self.api.update_metadata(self.org, self.device, folder_name, **fields)
        self.metadata[folder_name] = metadata
        self.sessions = merge_sessions(self.sessions, self.metadata)
        return metadata
