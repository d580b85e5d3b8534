import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from recordings_viewer.services import keys
from recordings_viewer.storage import ObjectInfo
from recordings_viewer.util_models import Session, SessionFile, SessionMetadata

logger = logging.getLogger("recordings_viewer.aggregator")


class KeyLayout(str, Enum):
    DATED = "dated"  # org/device/yyyy/mm/dd/folder/...
    FLAT = "flat"    # session/... (whole-bucket legacy scheme)


class TimestampStrategy(str, Enum):
    FOLDER_DATE = "folder_date"
    EARLIEST_MODIFIED = "earliest_modified"


def folder_timestamp(year: str, month: str, day: str, time: str) -> datetime:
    hour, minute, second = (int(p) for p in time.split("-"))
    return datetime(int(year), int(month), int(day), hour, minute, second, tzinfo=timezone.utc)


class SessionAggregator:
    """
    Groups a stream of object listings into Session records keyed by session prefix.

    Objects that don't look like session content are skipped silently; a live bucket
    always has some. Metadata is left at its defaults here and fetched lazily elsewhere,
    so aggregation stays one pass over the listing.
    """

    def __init__(self, layout: KeyLayout = KeyLayout.DATED, timestamp_strategy: Optional[TimestampStrategy] = None):
        self.layout = layout
        if timestamp_strategy is None:
            # the flat scheme has no folder-encoded date to fall back on
            timestamp_strategy = (
                TimestampStrategy.FOLDER_DATE if layout == KeyLayout.DATED else TimestampStrategy.EARLIEST_MODIFIED
            )
        self.timestamp_strategy = timestamp_strategy
        self._sessions: Dict[str, Session] = {}
        self.skipped = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, obj: ObjectInfo) -> Optional[Session]:
        if self.layout == KeyLayout.DATED:
            session = self._dated_session_for(obj)
        else:
            session = self._flat_session_for(obj)
        if session is None:
            self.skipped += 1
            logger.debug(f"[aggregate] skipped key: {obj.key}")
            return None

        session.files.append(SessionFile(
            key=obj.key,
            size=obj.size,
            lastModified=obj.last_modified,
            role=keys.classify_role(obj.key),
        ))
        if self.timestamp_strategy == TimestampStrategy.EARLIEST_MODIFIED and obj.last_modified < session.timestamp:
            session.timestamp = obj.last_modified
        return session

    def add_all(self, objects: Iterable[ObjectInfo]) -> "SessionAggregator":
        for obj in objects:
            self.add(obj)
        return self

    def by_prefix(self) -> Dict[str, Session]:
        return dict(self._sessions)

    def sessions(self) -> List[Session]:
        """Most recent first; ties keep insertion order."""
        return sorted(self._sessions.values(), key=lambda s: s.timestamp, reverse=True)

    # ---------- helpers ---------- #

    def _dated_session_for(self, obj: ObjectInfo) -> Optional[Session]:
        parts = keys.parse_session_key(obj.key)
        if parts is None:
            return None

        prefix = parts.prefix
        session = self._sessions.get(prefix)
        if session is not None:
            return session

        folder = keys.parse_folder_name(parts.folder)
        if self.timestamp_strategy == TimestampStrategy.FOLDER_DATE:
            try:
                timestamp = folder_timestamp(parts.year, parts.month, parts.day, folder.time)
            except ValueError:
                # pattern matched but the date itself is impossible (e.g. month 13)
                return None
        else:
            timestamp = obj.last_modified

        session = Session(
            displayId=folder.displayId,
            folderName=parts.folder,
            prefix=prefix,
            org=parts.org,
            device=parts.device,
            year=parts.year,
            month=parts.month,
            day=parts.day,
            time=folder.time,
            timestamp=timestamp,
            files=[],
            metadata=SessionMetadata(),
        )
        self._sessions[prefix] = session
        return session

    def _flat_session_for(self, obj: ObjectInfo) -> Optional[Session]:
        parts = obj.key.split("/")
        if len(parts) < 2 or not parts[0]:
            return None
        session_id = parts[0]
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                displayId=session_id,
                folderName=session_id,
                prefix=session_id,
                timestamp=obj.last_modified,
                files=[],
                metadata=SessionMetadata(),
            )
            self._sessions[session_id] = session
        return session


def aggregate_sessions(
    objects: Iterable[ObjectInfo],
    layout: KeyLayout = KeyLayout.DATED,
    timestamp_strategy: Optional[TimestampStrategy] = None,
) -> List[Session]:
    return SessionAggregator(layout, timestamp_strategy).add_all(objects).sessions()
