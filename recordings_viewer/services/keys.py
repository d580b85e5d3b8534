"""
Key path conventions for the recordings bucket.

    org/device/yyyy/mm/dd/HH-MM-SS_<displayId>/<role-specific relative path>

Everything here is pure string handling, no I/O.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from recordings_viewer.util_models import AudioRole, FileRole

FOLDER_NAME_RE = re.compile(r"^(\d{2}-\d{2}-\d{2})_(.+)$")
YEAR_RE = re.compile(r"^\d{4}$")
TWO_DIGIT_RE = re.compile(r"^\d{2}$")

FALLBACK_TIME = "00-00-00"

# Minimum segment count of an object key inside a session folder:
# org, device, year, month, day, folder, filename
SESSION_KEY_MIN_SEGMENTS = 7
FOLDER_SEGMENT_INDEX = 5

DESCRIPTOR_NAME = "_metadata.json"
METADATA_NAME = "metadata.json"
NOTES_NAME = "notes.json"

# Bucket root for transient objects (transcription staging); never an organization.
STAGING_ROOT = "_staging"

# Checked in order; the .vtt fragments come before the audio files that share their directory.
ROLE_FRAGMENTS: Tuple[Tuple[str, FileRole], ...] = (
    ("screen/audio.vtt", FileRole.TRANSCRIPT_SCREEN),
    ("audio/raw.vtt", FileRole.TRANSCRIPT_RAW),
    ("audio/clean.vtt", FileRole.TRANSCRIPT_CLEAN),
    ("screen/video", FileRole.SCREEN_VIDEO),
    ("screen/audio.wav", FileRole.SCREEN_AUDIO),
    ("camera/video", FileRole.CAMERA_VIDEO),
    ("audio/raw.wav", FileRole.AUDIO_RAW),
    ("audio/clean.wav", FileRole.AUDIO_CLEAN),
)

# Default relative paths inside a session folder
ROLE_PATHS: Dict[FileRole, str] = {
    FileRole.SCREEN_VIDEO: "screen/video.mp4",
    FileRole.SCREEN_AUDIO: "screen/audio.wav",
    FileRole.TRANSCRIPT_SCREEN: "screen/audio.vtt",
    FileRole.CAMERA_VIDEO: "camera/video.mp4",
    FileRole.AUDIO_RAW: "audio/raw.wav",
    FileRole.TRANSCRIPT_RAW: "audio/raw.vtt",
    FileRole.AUDIO_CLEAN: "audio/clean.wav",
    FileRole.TRANSCRIPT_CLEAN: "audio/clean.vtt",
}

# audio role -> (source audio path, caption document path)
AUDIO_TRANSCRIPT_PATHS: Dict[AudioRole, Tuple[str, str]] = {
    AudioRole.SCREEN_AUDIO: ("screen/audio.wav", "screen/audio.vtt"),
    AudioRole.AUDIO_RAW: ("audio/raw.wav", "audio/raw.vtt"),
    AudioRole.AUDIO_CLEAN: ("audio/clean.wav", "audio/clean.vtt"),
}


@dataclass(frozen=True)
class FolderName:
    time: str
    displayId: str


@dataclass(frozen=True)
class SessionKeyParts:
    org: str
    device: str
    year: str
    month: str
    day: str
    folder: str
    relative: str

    @property
    def prefix(self) -> str:
        return build_prefix(self.org, self.device, self.year, self.month, self.day, self.folder)


def parse_folder_name(name: str) -> FolderName:
    """`HH-MM-SS_<rest>`; legacy names that don't match fall back to time 00-00-00."""
    match = FOLDER_NAME_RE.match(name or "")
    if not match:
        return FolderName(time=FALLBACK_TIME, displayId=name)
    return FolderName(time=match.group(1), displayId=match.group(2))


def classify_role(key: str) -> FileRole:
    for fragment, role in ROLE_FRAGMENTS:
        if fragment in key:
            return role
    return FileRole.UNKNOWN


def is_date_triple(year: str, month: str, day: str) -> bool:
    return bool(YEAR_RE.match(year) and TWO_DIGIT_RE.match(month) and TWO_DIGIT_RE.match(day))


def parse_session_key(key: str) -> Optional[SessionKeyParts]:
    """Split an object key into its session coordinates, or None for stray objects."""
    parts = key.split("/")
    if len(parts) < SESSION_KEY_MIN_SEGMENTS:
        return None
    org, device, year, month, day, folder = parts[:6]
    if not is_date_triple(year, month, day):
        return None
    if not org or not device or not folder:
        return None
    return SessionKeyParts(
        org=org,
        device=device,
        year=year,
        month=month,
        day=day,
        folder=folder,
        relative="/".join(parts[6:]),
    )


def build_prefix(org: str, device: str, year: str, month: str, day: str, folder: str) -> str:
    return "/".join([org, device, year, month, day, folder])


def build_key(session_prefix: str, relative_path: str) -> str:
    return f"{session_prefix}/{relative_path}"


def org_prefix(org: str) -> str:
    return f"{org}/"


def device_prefix(org: str, device: str) -> str:
    return f"{org}/{device}/"


def org_descriptor_key(org: str) -> str:
    return f"{org}/{DESCRIPTOR_NAME}"


def device_descriptor_key(org: str, device: str) -> str:
    return f"{org}/{device}/{DESCRIPTOR_NAME}"


def metadata_key(session_prefix: str) -> str:
    return build_key(session_prefix, METADATA_NAME)


def notes_key(session_prefix: str) -> str:
    return build_key(session_prefix, NOTES_NAME)


def child_name(common_prefix: str) -> str:
    """'org/device/' -> 'device'"""
    return common_prefix.rstrip("/").rsplit("/", 1)[-1]


def staging_prefix(*parts: str) -> str:
    return "/".join((STAGING_ROOT,) + parts) + "/"


def is_staging_key(key: str) -> bool:
    return key.split("/", 1)[0] == STAGING_ROOT
