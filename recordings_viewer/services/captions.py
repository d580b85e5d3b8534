"""WebVTT caption documents: cue formatting and parsing."""

import re
from dataclasses import dataclass
from typing import Iterable, List

VTT_HEADER = "WEBVTT"
VTT_CONTENT_TYPE = "text/vtt"

_CUE_ID_RE = re.compile(r"^\d+$")


@dataclass
class CaptionCue:
    start: float
    end: float
    text: str


def format_timestamp(seconds: float) -> str:
    """125.5 -> '00:02:05.500'"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    total_sec, ms = divmod(total_ms, 1000)
    hours, rem = divmod(total_sec, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def parse_timestamp(value: str) -> float:
    """Accepts 'HH:MM:SS.mmm' and 'MM:SS.mmm'."""
    parts = value.strip().split(":")
    seconds_part = parts[-1]
    if "." in seconds_part:
        whole, frac = seconds_part.split(".", 1)
        total = float(whole) + float(f"0.{frac}")
    else:
        total = float(seconds_part)
    if len(parts) >= 2:
        total += int(parts[-2]) * 60
    if len(parts) >= 3:
        total += int(parts[-3]) * 3600
    return total


def build_vtt(cues: Iterable[CaptionCue]) -> str:
    blocks = [f"{VTT_HEADER}\n\n"]
    for index, cue in enumerate(cues, start=1):
        blocks.append(
            f"{index}\n"
            f"{format_timestamp(cue.start)} --> {format_timestamp(cue.end)}\n"
            f"{cue.text.strip()}\n\n"
        )
    return "".join(blocks)


def parse_vtt(content: str) -> List[CaptionCue]:
    """
    Header lines are skipped, numeric cue identifiers ignored, multi-line cue text is
    joined with a space, and cues without text are dropped.
    """
    lines = content.replace("\r\n", "\n").split("\n")
    cues: List[CaptionCue] = []
    i = 0
    while i < len(lines) and "-->" not in lines[i]:
        i += 1

    while i < len(lines):
        line = lines[i].strip()
        if "-->" not in line:
            i += 1
            continue

        start_str, end_str = [s.strip() for s in line.split("-->", 1)]
        # cue settings may follow the end timestamp
        end_str = end_str.split()[0] if end_str else end_str
        try:
            start, end = parse_timestamp(start_str), parse_timestamp(end_str)
        except ValueError:
            i += 1
            continue

        text_lines: List[str] = []
        i += 1
        while i < len(lines) and lines[i].strip() and "-->" not in lines[i]:
            text = lines[i].strip()
            if not _CUE_ID_RE.match(text):
                text_lines.append(text)
            i += 1

        if text_lines:
            cues.append(CaptionCue(start=start, end=end, text=" ".join(text_lines)))
    return cues
