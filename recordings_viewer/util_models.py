from enum import Enum

from pydantic import BaseModel, Field, computed_field
from typing import Optional, List, Any, Dict
from datetime import datetime

# --- Enums ---

class FileRole(str, Enum):
    SCREEN_VIDEO = "screen-video"
    SCREEN_AUDIO = "screen-audio"
    CAMERA_VIDEO = "camera-video"
    AUDIO_RAW = "audio-raw"
    AUDIO_CLEAN = "audio-clean"
    TRANSCRIPT_SCREEN = "transcript-screen"
    TRANSCRIPT_RAW = "transcript-raw"
    TRANSCRIPT_CLEAN = "transcript-clean"
    UNKNOWN = "unknown"


class NoteResource(str, Enum):
    GLOBAL = "global"
    SCREEN_VIDEO = "screen-video"
    SCREEN_AUDIO = "screen-audio"
    CAMERA_VIDEO = "camera-video"
    AUDIO_RAW = "audio-raw"
    AUDIO_CLEAN = "audio-clean"


class AudioRole(str, Enum):
    SCREEN_AUDIO = "screen-audio"
    AUDIO_RAW = "audio-raw"
    AUDIO_CLEAN = "audio-clean"


class SessionStatusFilter(str, Enum):
    ALL = "all"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    FAVORITES = "favorites"


# Roles that must all be present for a session to count as complete
REQUIRED_ROLES = (
    FileRole.SCREEN_VIDEO,
    FileRole.SCREEN_AUDIO,
    FileRole.CAMERA_VIDEO,
    FileRole.AUDIO_RAW,
    FileRole.AUDIO_CLEAN,
)


# --- Catalog ---

class Organization(BaseModel):
    id: str
    name: Optional[str] = None

    @computed_field
    @property
    def displayName(self) -> str:
        return self.name or self.id


class Device(BaseModel):
    id: str
    orgId: str
    name: Optional[str] = None

    @computed_field
    @property
    def displayName(self) -> str:
        return self.name or self.id


class SessionFile(BaseModel):
    key: str
    size: int
    lastModified: datetime
    role: FileRole


class SessionMetadata(BaseModel):
    favorite: bool = False
    score: Optional[int] = None

    @classmethod
    def from_document(cls, data: Any) -> "SessionMetadata":
        """Per-field defaults; anything that isn't a dict reads as absent."""
        if not isinstance(data, dict):
            return cls()
        favorite = data.get("favorite")
        score = data.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            score = None
        return cls(
            favorite=favorite if isinstance(favorite, bool) else False,
            score=int(score) if score is not None else None,
        )


class Session(BaseModel):
    """
    Read-only view reconstructed from storage on every listing pass.
    Presence flags, totalSize and completeness are derived from `files`.
    """
    displayId: str
    folderName: str
    prefix: str
    org: str = ""
    device: str = ""
    year: str = ""
    month: str = ""
    day: str = ""
    time: str = "00-00-00"
    timestamp: datetime
    files: List[SessionFile] = []
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)

    def has_role(self, role: FileRole) -> bool:
        return any(f.role == role for f in self.files)

    @computed_field
    @property
    def hasScreenVideo(self) -> bool:
        return self.has_role(FileRole.SCREEN_VIDEO)

    @computed_field
    @property
    def hasScreenAudio(self) -> bool:
        return self.has_role(FileRole.SCREEN_AUDIO)

    @computed_field
    @property
    def hasCameraVideo(self) -> bool:
        return self.has_role(FileRole.CAMERA_VIDEO)

    @computed_field
    @property
    def hasAudioRaw(self) -> bool:
        return self.has_role(FileRole.AUDIO_RAW)

    @computed_field
    @property
    def hasAudioClean(self) -> bool:
        return self.has_role(FileRole.AUDIO_CLEAN)

    @computed_field
    @property
    def hasTranscriptScreen(self) -> bool:
        return self.has_role(FileRole.TRANSCRIPT_SCREEN)

    @computed_field
    @property
    def hasTranscriptRaw(self) -> bool:
        return self.has_role(FileRole.TRANSCRIPT_RAW)

    @computed_field
    @property
    def hasTranscriptClean(self) -> bool:
        return self.has_role(FileRole.TRANSCRIPT_CLEAN)

    @computed_field
    @property
    def totalSize(self) -> int:
        return sum(f.size for f in self.files)

    @computed_field
    @property
    def isComplete(self) -> bool:
        return is_complete(self)

    @property
    def dateKey(self) -> str:
        return f"{self.year}-{self.month}-{self.day}"


def is_complete(session: Session) -> bool:
    return all([
        session.hasScreenVideo,
        session.hasScreenAudio,
        session.hasCameraVideo,
        session.hasAudioRaw,
        session.hasAudioClean,
    ])


# --- Notes ---

class Note(BaseModel):
    id: str
    timestamp: float  # seconds into the session
    resource: NoteResource
    content: str
    createdAt: str  # ISO 8601, UTC


class NoteCreateRequest(BaseModel):
    timestamp: Optional[float] = None
    resource: Optional[str] = None
    content: Optional[str] = None


class NoteUpdateRequest(BaseModel):
    noteId: Optional[str] = None
    timestamp: Optional[float] = None
    resource: Optional[str] = None
    content: Optional[str] = None


class NotesResponse(BaseModel):
    notes: List[Note]


class NoteResponse(BaseModel):
    note: Note


# --- Metadata ---

class MetadataUpdateRequest(BaseModel):
    favorite: Optional[bool] = None
    score: Optional[int] = None


class MetadataUpdateResponse(BaseModel):
    success: bool = True
    metadata: SessionMetadata


# --- Listing responses ---

class OrgListResponse(BaseModel):
    orgs: List[Organization]


class DeviceListResponse(BaseModel):
    org: str
    orgName: Optional[str] = None
    devices: List[Device]


class SessionListResponse(BaseModel):
    sessions: List[Session]
    orgName: Optional[str] = None
    deviceName: Optional[str] = None
    total: int
    page: int = 1
    perPage: Optional[int] = None
    totalPages: int = 1


class PeriodStats(BaseModel):
    total: int = 0
    complete: int = 0
    missingCamera: int = 0
    missingAudio: int = 0


class DayBucket(BaseModel):
    date: str
    total: int = 0
    complete: int = 0
    incomplete: int = 0


class SessionStats(BaseModel):
    total: int = 0
    complete: int = 0
    missingCamera: int = 0
    missingAudio: int = 0
    favorites: int = 0
    thisWeek: PeriodStats = Field(default_factory=PeriodStats)
    lastWeek: PeriodStats = Field(default_factory=PeriodStats)
    days: List[DayBucket] = []


class MediaUrlsResponse(BaseModel):
    urls: Dict[str, str]
    keys: Dict[str, str]
    expiresIn: int


class UrlResponse(BaseModel):
    url: str


class NotesCountResponse(BaseModel):
    counts: Dict[str, int]


# --- Transcription ---

class TranscribeRequest(BaseModel):
    sessionId: Optional[str] = None
    audioType: Optional[str] = None
    org: Optional[str] = None
    device: Optional[str] = None


class TranscribeResponse(BaseModel):
    success: bool = True
    vttKey: str
    text: str
    segmentCount: int


class TranscriptSegment(BaseModel):
    text: str
    start: float
    end: float


class TranscriptionResult(BaseModel):
    text: str = ""
    segments: List[TranscriptSegment] = []
