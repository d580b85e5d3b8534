import json
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from recordings_viewer.errors import NotFoundError, ObjectNotFound
from recordings_viewer.services import keys
from recordings_viewer.services.aggregator import KeyLayout, SessionAggregator
from recordings_viewer.storage import ObjectStore
from recordings_viewer.util_models import Device, FileRole, Organization, Session

logger = logging.getLogger("recordings_viewer.catalog")


# ============================================================================
# Session prefix resolution
# ============================================================================

class PrefixResolver(ABC):
    """Resolves a short folder name to its full dated session prefix."""

    @abstractmethod
    def resolve(self, org: str, device: str, folder_name: str) -> Optional[str]:
        ...

    def resolve_many(self, org: str, device: str, folder_names: Iterable[str]) -> Dict[str, Optional[str]]:
        return {name: self.resolve(org, device, name) for name in folder_names}


class ScanningPrefixResolver(PrefixResolver):
    """
    Walks every object under org/device/ and matches the folder segment.
    O(objects under the device) per call; use resolve_many for batches.
    """

    def __init__(self, store: ObjectStore):
        self.store = store

    def _scan(self, org: str, device: str, wanted: set, stop_when_complete: bool = True) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for obj in self.store.iter_objects(keys.device_prefix(org, device)):
            parts = obj.key.split("/")
            if len(parts) < keys.SESSION_KEY_MIN_SEGMENTS:
                continue
            folder = parts[keys.FOLDER_SEGMENT_INDEX]
            if folder in wanted and folder not in found:
                found[folder] = "/".join(parts[: keys.FOLDER_SEGMENT_INDEX + 1])
                if stop_when_complete and len(found) == len(wanted):
                    break
        return found

    def resolve(self, org, device, folder_name):
        return self._scan(org, device, {folder_name}).get(folder_name)

    def resolve_many(self, org, device, folder_names):
        names = list(dict.fromkeys(folder_names))
        found = self._scan(org, device, set(names))
        return {name: found.get(name) for name in names}


class IndexedPrefixResolver(ScanningPrefixResolver):
    """
    Keeps a folderName -> prefix index fed by listing passes, scanning only on a miss.
    Folder names never change once written, so entries stay valid.
    """

    def __init__(self, store: ObjectStore):
        super().__init__(store)
        self._index: Dict[Tuple[str, str, str], str] = {}

    def remember(self, sessions: Iterable[Session]) -> None:
        for s in sessions:
            if s.org and s.device:
                self._index[(s.org, s.device, s.folderName)] = s.prefix

    def forget(self, org: str, device: str, folder_name: str) -> None:
        self._index.pop((org, device, folder_name), None)

    def resolve(self, org, device, folder_name):
        cached = self._index.get((org, device, folder_name))
        if cached:
            return cached
        prefix = super().resolve(org, device, folder_name)
        if prefix:
            self._index[(org, device, folder_name)] = prefix
        return prefix

    def resolve_many(self, org, device, folder_names):
        names = list(dict.fromkeys(folder_names))
        result = {name: self._index.get((org, device, name)) for name in names}
        missing = {name for name, prefix in result.items() if not prefix}
        if missing:
            found = self._scan(org, device, missing)
            for name, prefix in found.items():
                self._index[(org, device, name)] = prefix
                result[name] = prefix
        return result


# ============================================================================
# Catalog
# ============================================================================

@dataclass
class SessionListing:
    sessions: List[Session] = field(default_factory=list)
    orgName: Optional[str] = None
    deviceName: Optional[str] = None


MEDIA_ROLES = (
    FileRole.SCREEN_VIDEO,
    FileRole.SCREEN_AUDIO,
    FileRole.CAMERA_VIDEO,
    FileRole.AUDIO_RAW,
    FileRole.AUDIO_CLEAN,
    FileRole.TRANSCRIPT_SCREEN,
    FileRole.TRANSCRIPT_RAW,
    FileRole.TRANSCRIPT_CLEAN,
)


class CatalogService:
    def __init__(self, store: ObjectStore, resolver: Optional[PrefixResolver] = None):
        self.store = store
        self.resolver = resolver or ScanningPrefixResolver(store)

    # ---------- descriptors ---------- #

    def read_descriptor(self, key: str) -> Optional[dict]:
        """Optional `_metadata.json` sidecar. Missing or malformed reads as absent."""
        try:
            raw = self.store.get_object(key)
        except ObjectNotFound:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(f"[descriptor] malformed JSON at {key}")
            return None
        return data if isinstance(data, dict) else None

    def get_org_name(self, org: str) -> Optional[str]:
        descriptor = self.read_descriptor(keys.org_descriptor_key(org))
        return descriptor.get("name") if descriptor else None

    def get_device_name(self, org: str, device: str) -> Optional[str]:
        descriptor = self.read_descriptor(keys.device_descriptor_key(org, device))
        return descriptor.get("name") if descriptor else None

    # ---------- orgs / devices (single-level listing) ---------- #

    async def list_organizations(self) -> List[Organization]:
        prefixes = await asyncio.to_thread(self.store.list_common_prefixes, "")
        org_ids = [keys.child_name(p) for p in prefixes if not keys.is_staging_key(p)]
        names = await asyncio.gather(*[asyncio.to_thread(self.get_org_name, org) for org in org_ids])
        return [Organization(id=org, name=name) for org, name in zip(org_ids, names)]

    async def list_devices(self, org: str) -> List[Device]:
        prefixes = await asyncio.to_thread(self.store.list_common_prefixes, keys.org_prefix(org))
        device_ids = [keys.child_name(p) for p in prefixes]
        names = await asyncio.gather(
            *[asyncio.to_thread(self.get_device_name, org, device) for device in device_ids]
        )
        return [Device(id=device, orgId=org, name=name) for device, name in zip(device_ids, names)]

    # ---------- sessions ---------- #

    def scan_sessions(self, org: str, device: str) -> List[Session]:
        aggregator = SessionAggregator(KeyLayout.DATED)
        aggregator.add_all(self.store.iter_objects(keys.device_prefix(org, device)))
        if aggregator.skipped:
            logger.debug(f"[list_sessions] {org}/{device}: skipped {aggregator.skipped} stray objects")
        sessions = aggregator.sessions()
        if isinstance(self.resolver, IndexedPrefixResolver):
            self.resolver.remember(sessions)
        return sessions

    async def list_sessions(self, org: str, device: str) -> SessionListing:
        # display names don't depend on the listing, fetch them alongside it
        sessions, org_name, device_name = await asyncio.gather(
            asyncio.to_thread(self.scan_sessions, org, device),
            asyncio.to_thread(self.get_org_name, org),
            asyncio.to_thread(self.get_device_name, org, device),
        )
        logger.info(f"[list_sessions] {org}/{device}: {len(sessions)} sessions")
        return SessionListing(sessions=sessions, orgName=org_name, deviceName=device_name)

    def list_legacy_sessions(self) -> List[Session]:
        """Whole-bucket scan for the flat key scheme (no folder-encoded date)."""
        aggregator = SessionAggregator(KeyLayout.FLAT)
        aggregator.add_all(o for o in self.store.iter_objects("") if not keys.is_staging_key(o.key))
        return aggregator.sessions()

    def find_session_prefix(self, org: str, device: str, folder_name: str) -> Optional[str]:
        return self.resolver.resolve(org, device, folder_name)

    def require_session_prefix(self, org: str, device: str, folder_name: str) -> str:
        prefix = self.find_session_prefix(org, device, folder_name)
        if not prefix:
            raise NotFoundError(f"Session not found: {org}/{device}/{folder_name}")
        return prefix

    def get_session(self, org: str, device: str, folder_name: str) -> Session:
        prefix = self.require_session_prefix(org, device, folder_name)
        aggregator = SessionAggregator(KeyLayout.DATED)
        aggregator.add_all(self.store.iter_objects(f"{prefix}/"))
        session = aggregator.by_prefix().get(prefix)
        if session is None:
            raise NotFoundError(f"Session not found: {org}/{device}/{folder_name}")
        return session

    # ---------- media ---------- #

    @staticmethod
    def media_keys(session: Session) -> Dict[FileRole, str]:
        found: Dict[FileRole, str] = {}
        for f in session.files:
            if f.role in MEDIA_ROLES and f.role not in found:
                found[f.role] = f.key
        return found

    def presign(self, key: str, ttl_seconds: int) -> str:
        return self.store.presigned_read_url(key, ttl_seconds)
