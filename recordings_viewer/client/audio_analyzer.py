"""
Waveform and level statistics for one audio track.

Bytes come through the same-origin `/proxy` relay. Only the first channel is analysed.
The waveform is a visual downsampling (mean absolute amplitude per block, normalized to
the loudest block); the statistics are advisory and drive no decisions.
"""

import io
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import soundfile as sf

from recordings_viewer.client.api_client import RecordingsApiClient
from recordings_viewer.errors import ViewerError
from recordings_viewer.util_models import AudioRole

logger = logging.getLogger("recordings_viewer.client.audio")

WAVEFORM_BLOCKS = 200
SILENCE_THRESHOLD = 0.01  # about -40 dB
CLIP_LEVEL = 0.99
CLIP_COUNT = 100
DB_FLOOR = -60.0


@dataclass
class AudioStats:
    peakDb: float
    rmsDb: float
    dynamicRange: float
    silencePercent: float
    clipping: bool
    sampleRate: int
    channels: int
    duration: float


@dataclass
class AudioAnalysis:
    waveform: List[float]
    stats: AudioStats


class TrackStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class TrackAnalysis:
    role: AudioRole
    key: str
    status: TrackStatus = TrackStatus.PENDING
    analysis: Optional[AudioAnalysis] = None
    error: Optional[str] = None


class AudioDecodeError(ViewerError):
    pass


def to_db(amplitude: float) -> float:
    if amplitude <= 0:
        return -math.inf
    return 20 * math.log10(amplitude)


def decode_audio(data: bytes) -> Tuple[np.ndarray, int, int]:
    """Returns (first channel as float64, sample rate, channel count)."""
    try:
        frames, sample_rate = sf.read(io.BytesIO(data), always_2d=True, dtype="float64")
    except (RuntimeError, TypeError, ValueError) as e:
        raise AudioDecodeError(f"Could not decode audio: {e}") from e
    return frames[:, 0], int(sample_rate), int(frames.shape[1])


def compute_waveform(samples: np.ndarray, blocks: int = WAVEFORM_BLOCKS) -> List[float]:
    block_size = len(samples) // blocks
    if block_size == 0:
        return [0.0] * blocks
    trimmed = np.abs(samples[: block_size * blocks]).reshape(blocks, block_size)
    peaks = trimmed.mean(axis=1)
    max_peak = peaks.max()
    if max_peak <= 0:
        return [0.0] * blocks
    return (peaks / max_peak).tolist()


def compute_stats(samples: np.ndarray, sample_rate: int, channels: int) -> AudioStats:
    count = len(samples)
    duration = count / sample_rate if sample_rate else 0.0
    if count == 0:
        return AudioStats(DB_FLOOR, DB_FLOOR, 0.0, 0.0, False, sample_rate, channels, duration)

    magnitude = np.abs(samples)
    peak_db = to_db(float(magnitude.max()))
    rms_db = to_db(float(np.sqrt(np.mean(samples ** 2))))
    both_finite = math.isfinite(peak_db) and math.isfinite(rms_db)

    return AudioStats(
        peakDb=peak_db if math.isfinite(peak_db) else DB_FLOOR,
        rmsDb=rms_db if math.isfinite(rms_db) else DB_FLOOR,
        dynamicRange=peak_db - rms_db if both_finite else 0.0,
        silencePercent=float(np.count_nonzero(magnitude < SILENCE_THRESHOLD)) / count * 100,
        clipping=int(np.count_nonzero(magnitude >= CLIP_LEVEL)) > CLIP_COUNT,
        sampleRate=sample_rate,
        channels=channels,
        duration=duration,
    )


def analyze_audio(data: bytes) -> AudioAnalysis:
    samples, sample_rate, channels = decode_audio(data)
    return AudioAnalysis(
        waveform=compute_waveform(samples),
        stats=compute_stats(samples, sample_rate, channels),
    )


class AudioAnalyzer:
    """Per-track analyses for one session view; a failing track only marks itself."""

    def __init__(self, api: RecordingsApiClient):
        self.api = api
        self.tracks: Dict[AudioRole, TrackAnalysis] = {}

    async def analyze(self, role: AudioRole, key: str) -> TrackAnalysis:
        track = TrackAnalysis(role=role, key=key, status=TrackStatus.LOADING)
        self.tracks[role] = track
        try:
            data = await self.api.fetch_bytes(key)
            track.analysis = analyze_audio(data)
            track.status = TrackStatus.READY
        except ViewerError as e:
            logger.warning(f"[audio] {role.value} {key}: {e}")
            track.status = TrackStatus.ERROR
            track.error = "Failed to load"
        return track

    def get(self, role: AudioRole) -> Optional[TrackAnalysis]:
        return self.tracks.get(role)

    def close(self) -> None:
        self.tracks.clear()
