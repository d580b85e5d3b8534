import os
import json
import uuid
import logging
from typing import Any, Dict, List, Optional, Sequence

from google.cloud import speech_v2
from google.cloud.speech_v2.types import cloud_speech
from google.api_core.client_options import ClientOptions
from google.api_core import exceptions

from recordings_viewer.errors import TranscriptionError
from recordings_viewer.services import keys
from recordings_viewer.storage import GCSObjectStore
from recordings_viewer.util_models import TranscriptionResult, TranscriptSegment

logger = logging.getLogger("recordings_viewer.google_speech")

# Config
PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT")
LOCATION = os.environ.get("SPEECH_LOCATION", "global")
RECOGNIZER_ID = os.environ.get("SPEECH_RECOGNIZER", "_")
MODEL = os.environ.get("SPEECH_MODEL", "long")
OPERATION_TIMEOUT_SEC = int(os.environ.get("SPEECH_TIMEOUT_SEC", "1800"))


def _parse_time_to_sec(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("s"):
            s = s[:-1]
        try:
            return float(s)
        except ValueError:
            return None
    if isinstance(value, dict):
        seconds = value.get("seconds")
        nanos = value.get("nanos") or 0
        if seconds is None:
            return None
        try:
            return float(seconds) + float(nanos) / 1_000_000_000
        except (TypeError, ValueError):
            return None
    return None


def _word_time(word: Dict[str, Any], *names: str) -> Optional[float]:
    for name in names:
        if name in word:
            return _parse_time_to_sec(word.get(name))
    return None


def extract_segments(results: List[Dict[str, Any]]) -> List[TranscriptSegment]:
    """
    One segment per recognition result. Start/end come from the first and last word
    offsets; without word offsets the result end offset is used and the segment starts
    where the previous one ended.
    """
    segments: List[TranscriptSegment] = []
    cursor_end = 0.0
    for result in results:
        alternatives = result.get("alternatives") or []
        if not alternatives:
            continue
        alt = alternatives[0] or {}
        text = (alt.get("transcript") or "").strip()
        if not text:
            continue

        words = alt.get("words") or []
        start_sec = end_sec = None
        if words:
            start_sec = _word_time(words[0], "startOffset", "startTime", "start_offset")
            end_sec = _word_time(words[-1], "endOffset", "endTime", "end_offset")

        if start_sec is None or end_sec is None:
            result_end = _parse_time_to_sec(result.get("resultEndOffset") or result.get("resultEndTime"))
            if result_end is not None:
                start_sec = cursor_end
                end_sec = result_end

        if start_sec is None or end_sec is None:
            continue
        if end_sec < start_sec:
            start_sec, end_sec = end_sec, start_sec

        segments.append(TranscriptSegment(text=text, start=float(start_sec), end=float(end_sec)))
        cursor_end = max(cursor_end, end_sec)
    return segments


class GoogleSpeechTranscriber:
    """
    Speech-to-Text V2 BatchRecognize. The audio is staged in the recordings bucket
    under a temporary prefix, results are written back as JSON and read from there.
    """

    def __init__(self, store: GCSObjectStore, project_id: Optional[str] = PROJECT_ID,
                 location: str = LOCATION, recognizer_id: str = RECOGNIZER_ID, model: str = MODEL,
                 client: Optional[speech_v2.SpeechClient] = None):
        self.store = store
        self.project_id = project_id
        self.location = location
        self.recognizer_id = recognizer_id
        self.model = model
        self._client = client

    @property
    def client(self) -> speech_v2.SpeechClient:
        if self._client is None:
            if self.location and self.location != "global":
                # V2 regional recognizers require the regional endpoint
                options = ClientOptions(api_endpoint=f"{self.location}-speech.googleapis.com")
                self._client = speech_v2.SpeechClient(client_options=options)
            else:
                self._client = speech_v2.SpeechClient()
        return self._client

    @property
    def recognizer_path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location}/recognizers/{self.recognizer_id}"

    def transcribe(self, audio: bytes, language: str, granularities: Sequence[str]) -> TranscriptionResult:
        if not audio:
            raise TranscriptionError("Audio file is empty.")

        job_uuid = uuid.uuid4().hex
        job_prefix = keys.staging_prefix("transcription", job_uuid)
        input_key = f"{job_prefix}input.wav"
        output_prefix = f"{job_prefix}output/"

        self.store.put_object(input_key, audio, "audio/wav")
        try:
            config = cloud_speech.RecognitionConfig(
                auto_decoding_config=cloud_speech.AutoDetectDecodingConfig(),
                language_codes=[language],
                model=self.model,
                features=cloud_speech.RecognitionFeatures(
                    enable_automatic_punctuation=True,
                    enable_word_time_offsets="word" in granularities,
                ),
            )
            request = cloud_speech.BatchRecognizeRequest(
                recognizer=self.recognizer_path,
                config=config,
                files=[cloud_speech.BatchRecognizeFileMetadata(uri=self.store.gs_uri(input_key))],
                recognition_output_config=cloud_speech.RecognitionOutputConfig(
                    gcs_output_config=cloud_speech.GcsOutputConfig(uri=self.store.gs_uri(output_prefix))
                ),
            )

            logger.info(f"[stt] BatchRecognize started for {input_key} ({len(audio)} bytes, {language})")
            operation = self.client.batch_recognize(request=request)
            result = operation.result(timeout=OPERATION_TIMEOUT_SEC)

            for file_res in result.results.values():
                if file_res.error and file_res.error.code != 0:
                    raise TranscriptionError(f"STT processing failed: {file_res.error.message}")

            return self._read_outputs(output_prefix)
        except exceptions.GoogleAPICallError as e:
            raise TranscriptionError(f"Speech-to-Text request failed: {e}", cause=e) from e
        finally:
            self._cleanup(job_prefix)

    def _read_outputs(self, output_prefix: str) -> TranscriptionResult:
        transcript_parts: List[str] = []
        segments: List[TranscriptSegment] = []
        found_json = False

        for obj in sorted(self.store.iter_objects(output_prefix), key=lambda o: o.key):
            if not obj.key.endswith(".json"):
                continue
            found_json = True
            data = json.loads(self.store.get_object(obj.key))
            results = data.get("results", [])
            for r in results:
                alts = r.get("alternatives", [])
                if alts:
                    transcript_parts.append((alts[0].get("transcript") or "").strip())
            segments.extend(extract_segments(results))

        if not found_json:
            raise TranscriptionError("STT completed but no output JSON found.")

        return TranscriptionResult(text=" ".join(p for p in transcript_parts if p), segments=segments)

    def _cleanup(self, prefix: str) -> None:
        try:
            for obj in list(self.store.iter_objects(prefix)):
                self.store.delete_object(obj.key)
        except Exception as e:
            logger.warning(f"[stt] failed to clean up {prefix}: {e}")
