"""
Keeps the media elements of one session view playing together.

The screen video (when present) is the timing master: only its time updates move the
displayed playhead. Every command fans out to all elements. Followers never write their
time back, and master updates are ignored for a short window after a user seek so the
playhead doesn't snap back before the seek lands.
"""

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from recordings_viewer.util_models import FileRole

logger = logging.getLogger("recordings_viewer.client.playback")

SEEK_SETTLE_SECONDS = 0.1
SKIP_SECONDS = 5.0

# master preference when there is no screen video
MASTER_ORDER = (FileRole.SCREEN_VIDEO, FileRole.CAMERA_VIDEO, FileRole.SCREEN_AUDIO,
                FileRole.AUDIO_RAW, FileRole.AUDIO_CLEAN)


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


class MediaElement(Protocol):
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def set_rate(self, rate: float) -> None: ...
    def set_volume(self, volume: float) -> None: ...


class PlaybackSynchronizer:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.state = PlaybackState.IDLE
        self.elements: Dict[FileRole, MediaElement] = {}
        self.current_time = 0.0
        self.duration = 0.0
        self.rate = 1.0
        self.volume = 1.0
        self._settle_until = 0.0

    @property
    def master_role(self) -> Optional[FileRole]:
        for role in MASTER_ORDER:
            if role in self.elements:
                return role
        return None

    @property
    def followers(self) -> List[FileRole]:
        master = self.master_role
        return [r for r in self.elements if r != master]

    # ---------- lifecycle ---------- #

    def begin_loading(self) -> None:
        self.state = PlaybackState.LOADING

    def attach(self, role: FileRole, element: MediaElement) -> None:
        self.elements[role] = element
        element.set_rate(self.rate)
        element.set_volume(self.volume)

    def mark_ready(self) -> None:
        if self.state in (PlaybackState.IDLE, PlaybackState.LOADING):
            self.state = PlaybackState.READY

    def stop(self) -> None:
        """Pause everything and drop the elements; the view is going away."""
        for element in self.elements.values():
            element.pause()
        self.elements.clear()
        self.state = PlaybackState.IDLE
        self.current_time = 0.0

    # ---------- commands ---------- #

    def _fan_out(self, action: Callable[[MediaElement], None]) -> None:
        for role, element in self.elements.items():
            try:
                action(element)
            except Exception as e:
                # one broken element must not stall the others
                logger.warning(f"[playback] {role.value}: {e}")

    def play(self) -> None:
        if self.state in (PlaybackState.IDLE, PlaybackState.LOADING):
            return
        if self.state == PlaybackState.ENDED:
            self.seek(0.0)
        self._fan_out(lambda e: e.play())
        self.state = PlaybackState.PLAYING

    def pause(self) -> None:
        if self.state != PlaybackState.PLAYING:
            return
        self._fan_out(lambda e: e.pause())
        self.state = PlaybackState.PAUSED

    def toggle(self) -> None:
        if self.state == PlaybackState.PLAYING:
            self.pause()
        else:
            self.play()

    def seek(self, seconds: float) -> None:
        target = max(0.0, seconds)
        if self.duration > 0:
            target = min(target, self.duration)
        self.current_time = target
        self._settle_until = self.clock() + SEEK_SETTLE_SECONDS
        self._fan_out(lambda e: e.seek(target))
        if self.state == PlaybackState.ENDED:
            self.state = PlaybackState.PAUSED

    def skip(self, delta: float = SKIP_SECONDS) -> None:
        self.seek(self.current_time + delta)

    def set_rate(self, rate: float) -> None:
        self.rate = rate
        self._fan_out(lambda e: e.set_rate(rate))

    def set_volume(self, volume: float) -> None:
        self.volume = min(max(volume, 0.0), 1.0)
        self._fan_out(lambda e: e.set_volume(self.volume))

    # ---------- element events ---------- #

    def on_time_update(self, role: FileRole, seconds: float) -> bool:
        """Returns True when the update moved the playhead."""
        if role != self.master_role:
            return False
        if self.clock() < self._settle_until:
            return False
        self.current_time = seconds
        return True

    def on_loaded_metadata(self, role: FileRole, duration: float) -> None:
        if duration and duration > self.duration:
            self.duration = duration
        self.mark_ready()

    def on_ended(self, role: FileRole) -> None:
        if role != self.master_role:
            return
        self._fan_out(lambda e: e.pause())
        self.state = PlaybackState.ENDED
