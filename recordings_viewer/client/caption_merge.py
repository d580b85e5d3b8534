from dataclasses import dataclass
from typing import Iterable, List

from recordings_viewer.services.captions import CaptionCue


@dataclass
class TaggedCue:
    source: str
    start: float
    end: float
    text: str

    def is_active(self, playhead: float) -> bool:
        # half-open, so adjacent cues never highlight together
        return self.start <= playhead < self.end


def tag_cues(cues: Iterable[CaptionCue], source: str) -> List[TaggedCue]:
    return [TaggedCue(source=source, start=c.start, end=c.end, text=c.text) for c in cues]


def merge_cues(*tracks: Iterable[TaggedCue]) -> List[TaggedCue]:
    """Stable sort by start; overlapping cues from different sources are all kept."""
    merged: List[TaggedCue] = []
    for track in tracks:
        merged.extend(track)
    return sorted(merged, key=lambda c: c.start)


def active_cues(cues: Iterable[TaggedCue], playhead: float) -> List[TaggedCue]:
    return [c for c in cues if c.is_active(playhead)]
