"""Filtering, pagination, statistics and calendar bucketing over session lists."""

import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from recordings_viewer.util_models import (
    DayBucket,
    PeriodStats,
    Session,
    SessionStats,
    SessionStatusFilter,
    is_complete,
)

DEFAULT_PER_PAGE = 10


def session_date(session: Session) -> Optional[date]:
    try:
        return date(int(session.year), int(session.month), int(session.day))
    except ValueError:
        return None


def filter_sessions(
    sessions: Iterable[Session],
    status: SessionStatusFilter = SessionStatusFilter.ALL,
    date_key: Optional[str] = None,
) -> List[Session]:
    """Date filter (YYYY-MM-DD) first, then the status filter."""
    result = []
    for s in sessions:
        if date_key and s.dateKey != date_key:
            continue
        complete = is_complete(s)
        if status == SessionStatusFilter.COMPLETE and not complete:
            continue
        if status == SessionStatusFilter.INCOMPLETE and complete:
            continue
        if status == SessionStatusFilter.FAVORITES and not s.metadata.favorite:
            continue
        result.append(s)
    return result


def paginate(items: Sequence, page: int = 1, per_page: Optional[int] = DEFAULT_PER_PAGE) -> Tuple[list, int, int]:
    """Returns (page items, clamped page number, total pages). per_page=None disables paging."""
    if not per_page:
        return list(items), 1, 1
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), page, total_pages


def week_bounds(today: date) -> Tuple[date, date]:
    """Monday..Sunday of the week containing `today`."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def _missing_audio(s: Session) -> bool:
    return not s.hasAudioRaw or not s.hasAudioClean


def period_stats(sessions: Iterable[Session]) -> PeriodStats:
    stats = PeriodStats()
    for s in sessions:
        stats.total += 1
        if is_complete(s):
            stats.complete += 1
        if not s.hasCameraVideo:
            stats.missingCamera += 1
        if _missing_audio(s):
            stats.missingAudio += 1
    return stats


def bucket_by_day(sessions: Iterable[Session]) -> List[DayBucket]:
    buckets: Dict[str, DayBucket] = {}
    for s in sessions:
        bucket = buckets.setdefault(s.dateKey, DayBucket(date=s.dateKey))
        bucket.total += 1
        if is_complete(s):
            bucket.complete += 1
        else:
            bucket.incomplete += 1
    return [buckets[k] for k in sorted(buckets)]


def bucket_by_hour(sessions: Iterable[Session], date_key: str) -> List[DayBucket]:
    """24 buckets for one day, labelled by hour ('0'..'23')."""
    hours = [DayBucket(date=str(h)) for h in range(24)]
    for s in sessions:
        if s.dateKey != date_key:
            continue
        try:
            hour = int(s.time.split("-")[0])
        except ValueError:
            continue
        if not 0 <= hour < 24:
            continue
        hours[hour].total += 1
        if is_complete(s):
            hours[hour].complete += 1
        else:
            hours[hour].incomplete += 1
    return hours


def compute_stats(sessions: Sequence[Session], today: date) -> SessionStats:
    this_start, this_end = week_bounds(today)
    last_start, last_end = this_start - timedelta(days=7), this_end - timedelta(days=7)

    def in_range(s: Session, start: date, end: date) -> bool:
        d = session_date(s)
        return d is not None and start <= d <= end

    overall = period_stats(sessions)
    return SessionStats(
        total=overall.total,
        complete=overall.complete,
        missingCamera=overall.missingCamera,
        missingAudio=overall.missingAudio,
        favorites=sum(1 for s in sessions if s.metadata.favorite),
        thisWeek=period_stats(s for s in sessions if in_range(s, this_start, this_end)),
        lastWeek=period_stats(s for s in sessions if in_range(s, last_start, last_end)),
        days=bucket_by_day(sessions),
    )


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {units[i]}"


def format_duration(seconds: float) -> str:
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
