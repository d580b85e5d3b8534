import os
import logging
from dataclasses import dataclass
from typing import List, Protocol, Sequence

from recordings_viewer.errors import NotFoundError, TranscriptionError, ViewerError
from recordings_viewer.services import keys
from recordings_viewer.services.captions import VTT_CONTENT_TYPE, CaptionCue, build_vtt
from recordings_viewer.services.catalog import CatalogService
from recordings_viewer.storage import ObjectStore
from recordings_viewer.util_models import AudioRole, TranscriptionResult, TranscriptSegment

logger = logging.getLogger("recordings_viewer.transcription")

LANGUAGE = os.environ.get("TRANSCRIBE_LANGUAGE", "es-ES")

# Segment timestamps from a segment-only request are less accurate (the first segment
# gets pinned to 0.0 by at least one provider), so both granularities are always asked for.
GRANULARITIES = ("segment", "word")


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, language: str, granularities: Sequence[str]) -> TranscriptionResult:
        ...


class MockTranscriber:
    """Used with USE_MOCK_STORAGE=1."""

    def transcribe(self, audio, language, granularities):
        return TranscriptionResult(
            text="Mock transcript.",
            segments=[TranscriptSegment(text="Mock transcript.", start=0.5, end=2.0)],
        )


@dataclass
class TranscriptionOutcome:
    vttKey: str
    text: str
    segmentCount: int


def segments_to_cues(segments: List[TranscriptSegment]) -> List[CaptionCue]:
    return [CaptionCue(start=s.start, end=s.end, text=s.text.strip()) for s in segments]


class TranscriptionBridge:
    def __init__(self, store: ObjectStore, catalog: CatalogService, transcriber: Transcriber,
                 language: str = LANGUAGE):
        self.store = store
        self.catalog = catalog
        self.transcriber = transcriber
        self.language = language

    def transcribe(self, org: str, device: str, folder_name: str, audio_role: AudioRole) -> TranscriptionOutcome:
        """
        Transcribe one audio track and overwrite its caption document.
        A failure at any step leaves the previous caption document untouched.
        """
        audio_path, vtt_path = keys.AUDIO_TRANSCRIPT_PATHS[audio_role]

        prefix = self.catalog.require_session_prefix(org, device, folder_name)
        audio_key = keys.build_key(prefix, audio_path)
        vtt_key = keys.build_key(prefix, vtt_path)

        try:
            audio = self.store.get_object(audio_key)
        except NotFoundError as e:
            raise NotFoundError(f"Audio file not found: {audio_key}") from e

        try:
            result = self.transcriber.transcribe(audio, self.language, GRANULARITIES)
        except ViewerError:
            raise
        except Exception as e:
            logger.error(f"[transcribe] provider error for {audio_key}: {e}")
            raise TranscriptionError(f"Transcription failed: {e}", cause=e) from e

        cues = segments_to_cues(result.segments)
        self.store.put_object(vtt_key, build_vtt(cues), VTT_CONTENT_TYPE)
        logger.info(f"[transcribe] wrote {len(cues)} cues to {vtt_key}")

        return TranscriptionOutcome(vttKey=vtt_key, text=result.text, segmentCount=len(cues))
