"""
State for one open session: media URLs, playback sync, per-track audio analyses,
caption tracks and notes. Everything here lives between `start()` and `stop()`;
nothing is kept at module level.
"""

import asyncio
import contextlib
import logging
from typing import Dict, List, Optional

from recordings_viewer.client.api_client import RecordingsApiClient
from recordings_viewer.client.audio_analyzer import AudioAnalyzer, TrackAnalysis
from recordings_viewer.client.caption_merge import TaggedCue, active_cues, merge_cues, tag_cues
from recordings_viewer.client.dedup import RequestDeduplicator
from recordings_viewer.client.playback import PlaybackSynchronizer
from recordings_viewer.errors import ViewerError
from recordings_viewer.services.captions import CaptionCue, parse_vtt
from recordings_viewer.util_models import (
    AudioRole,
    FileRole,
    MediaUrlsResponse,
    Note,
    NoteResource,
    Session,
    TranscribeResponse,
)

logger = logging.getLogger("recordings_viewer.client.session_view")

DURATION_ANALYSIS_CEILING_SECONDS = 10.0

AUDIO_FILE_ROLES = {
    AudioRole.SCREEN_AUDIO: FileRole.SCREEN_AUDIO,
    AudioRole.AUDIO_RAW: FileRole.AUDIO_RAW,
    AudioRole.AUDIO_CLEAN: FileRole.AUDIO_CLEAN,
}
CAPTION_FILE_ROLES = {
    AudioRole.SCREEN_AUDIO: FileRole.TRANSCRIPT_SCREEN,
    AudioRole.AUDIO_RAW: FileRole.TRANSCRIPT_RAW,
    AudioRole.AUDIO_CLEAN: FileRole.TRANSCRIPT_CLEAN,
}
CAPTION_ROLE_VALUES = {r.value for r in CAPTION_FILE_ROLES.values()}
MIC_VARIANTS = {"raw": AudioRole.AUDIO_RAW, "clean": AudioRole.AUDIO_CLEAN}


class SessionViewContext:
    def __init__(self, api: RecordingsApiClient, org: str, device: str, folder_name: str,
                 synchronizer: Optional[PlaybackSynchronizer] = None,
                 duration_ceiling: float = DURATION_ANALYSIS_CEILING_SECONDS):
        self.api = api
        self.org = org
        self.device = device
        self.folder_name = folder_name
        self.synchronizer = synchronizer or PlaybackSynchronizer()
        self.analyzer = AudioAnalyzer(api)
        self.duration_ceiling = duration_ceiling

        self.session: Optional[Session] = None
        self.media: Optional[MediaUrlsResponse] = None
        self.captions: Dict[AudioRole, List[CaptionCue]] = {}
        self.caption_errors: Dict[AudioRole, str] = {}
        self.durations: Dict[str, float] = {}
        self.notes: List[Note] = []
        self.mic_variant = "clean"
        self.analyzing_durations = False
        self.error: Optional[str] = None

        self._fetches = RequestDeduplicator()
        self._ceiling_task: Optional[asyncio.Task] = None

    # ---------- lifecycle ---------- #

    async def start(self, analyze_audio: bool = True) -> None:
        self.synchronizer.begin_loading()
        try:
            self.session = await self.api.get_session(self.org, self.device, self.folder_name)
            self.media = await self.api.get_media_urls(self.org, self.device, self.folder_name)
        except ViewerError as e:
            logger.error(f"[session_view] {self.folder_name}: {e}")
            self.error = str(e)
            return
        self.synchronizer.mark_ready()

        self.analyzing_durations = bool(self._timed_keys())
        self._ceiling_task = asyncio.create_task(self._duration_ceiling())

        jobs = [self.load_captions(role) for role in AudioRole]
        jobs.append(self.load_notes())
        if analyze_audio:
            jobs.extend(self.analyze_track(role) for role in AudioRole)
        # stop() mid-load cancels the shared fetches; the view just ends up partially loaded
        for result in await asyncio.gather(*jobs, return_exceptions=True):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.warning(f"[session_view] {self.folder_name}: {result}")

    async def stop(self) -> None:
        self.synchronizer.stop()
        self.analyzer.close()
        task, self._ceiling_task = self._ceiling_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._fetches.reset()

    async def _duration_ceiling(self) -> None:
        # some media never report a duration; stop showing "analyzing" after a while
        await asyncio.sleep(self.duration_ceiling)
        self.analyzing_durations = False

    # ---------- media ---------- #

    def media_key(self, role: FileRole) -> Optional[str]:
        if self.media is None:
            return None
        return self.media.keys.get(role.value)

    def media_url(self, role: FileRole) -> Optional[str]:
        if self.media is None:
            return None
        return self.media.urls.get(role.value)

    def _timed_keys(self) -> List[str]:
        if self.media is None:
            return []
        return [k for role, k in self.media.keys.items() if role not in CAPTION_ROLE_VALUES]

    def record_duration(self, key: str, seconds: float) -> None:
        self.durations[key] = seconds
        if all(k in self.durations for k in self._timed_keys()):
            self.analyzing_durations = False

    @property
    def mic_role(self) -> AudioRole:
        return MIC_VARIANTS[self.mic_variant]

    def select_mic(self, variant: str) -> None:
        if variant not in MIC_VARIANTS:
            raise ValueError(f"Unknown mic variant: {variant}")
        self.mic_variant = variant

    async def analyze_track(self, role: AudioRole) -> Optional[TrackAnalysis]:
        key = self.media_key(AUDIO_FILE_ROLES[role])
        if not key:
            return None
        return await self._fetches.fetch(("analysis", key), lambda: self.analyzer.analyze(role, key))

    # ---------- captions ---------- #

    async def load_captions(self, role: AudioRole, force: bool = False) -> List[CaptionCue]:
        key = self.media_key(CAPTION_FILE_ROLES[role])
        if not key:
            return []
        if force:
            self._fetches.forget(("captions", key))
        try:
            text = await self._fetches.fetch(("captions", key), lambda: self.api.fetch_text(key))
        except ViewerError as e:
            logger.warning(f"[captions] {role.value}: {e}")
            self.caption_errors[role] = str(e)
            return []
        self.captions[role] = parse_vtt(text)
        self.caption_errors.pop(role, None)
        return self.captions[role]

    def merged_captions(self) -> List[TaggedCue]:
        return merge_cues(
            tag_cues(self.captions.get(AudioRole.SCREEN_AUDIO, []), AudioRole.SCREEN_AUDIO.value),
            tag_cues(self.captions.get(self.mic_role, []), self.mic_role.value),
        )

    def active_captions(self) -> List[TaggedCue]:
        return active_cues(self.merged_captions(), self.synchronizer.current_time)

    async def transcribe(self, role: AudioRole) -> TranscribeResponse:
        result = await self.api.transcribe(self.org, self.device, self.folder_name, role.value)
        if self.media is not None:
            self.media.keys[CAPTION_FILE_ROLES[role].value] = result.vttKey
        await self.load_captions(role, force=True)
        return result

    # ---------- notes ---------- #

    async def load_notes(self) -> List[Note]:
        try:
            self.notes = await self.api.get_notes(self.org, self.device, self.folder_name)
        except ViewerError as e:
            logger.warning(f"[notes] {self.folder_name}: {e}")
        return self.notes

    def capture_timestamp(self) -> float:
        return self.synchronizer.current_time

    async def add_note(self, content: str, resource: NoteResource = NoteResource.GLOBAL,
                       timestamp: Optional[float] = None) -> Note:
        if timestamp is None:
            timestamp = self.capture_timestamp()
        note = await self.api.add_note(self.org, self.device, self.folder_name, timestamp, resource.value, content)
        self.notes.append(note)
        return note

    async def delete_note(self, note_id: str) -> None:
        await self.api.delete_note(self.org, self.device, self.folder_name, note_id)
        self.notes = [n for n in self.notes if n.id != note_id]

    # ---------- keyboard ---------- #

    def handle_key(self, key: str) -> bool:
        if key == " ":
            self.synchronizer.toggle()
        elif key == "ArrowLeft":
            self.synchronizer.skip(-5.0)
        elif key == "ArrowRight":
            self.synchronizer.skip(5.0)
        else:
            return False
        return True
