import itertools
from datetime import datetime, timezone

from recordings_viewer.services.aggregator import (
    KeyLayout,
    SessionAggregator,
    TimestampStrategy,
    aggregate_sessions,
)
from recordings_viewer.storage import ObjectInfo
from recordings_viewer.util_models import FileRole, Session, SessionFile, is_complete

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def obj(key, size=10, when=T0):
    return ObjectInfo(key=key, size=size, last_modified=when)


PREFIX = "acme/rig/2024/01/15/10-30-00_sess1"
OBJECTS = [
    obj(f"{PREFIX}/screen/video.mp4", 100),
    obj(f"{PREFIX}/screen/audio.wav", 20),
    obj(f"{PREFIX}/audio/raw.wav", 30),
    obj(f"{PREFIX}/audio/raw.vtt", 4),
]


def test_groups_files_into_session():
    sessions = aggregate_sessions(OBJECTS)
    assert len(sessions) == 1
    s = sessions[0]
    assert s.folderName == "10-30-00_sess1"
    assert s.displayId == "sess1"
    assert s.prefix == PREFIX
    assert s.time == "10-30-00"
    assert s.timestamp == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert s.totalSize == 154
    assert s.hasScreenVideo and s.hasScreenAudio and s.hasAudioRaw and s.hasTranscriptRaw
    assert not s.hasCameraVideo
    assert not s.isComplete
    assert s.metadata.favorite is False


def test_aggregation_is_order_independent():
    expected = None
    for perm in itertools.permutations(OBJECTS):
        s = aggregate_sessions(perm)[0]
        snapshot = (
            {(f.key, f.size, f.role) for f in s.files},
            s.hasScreenVideo, s.hasScreenAudio, s.hasCameraVideo, s.hasAudioRaw, s.hasAudioClean,
            s.totalSize,
        )
        if expected is None:
            expected = snapshot
        assert snapshot == expected


def test_stray_top_level_object_is_ignored():
    aggregator = SessionAggregator()
    assert aggregator.add(obj("randomfile.txt")) is None
    assert len(aggregator) == 0
    assert aggregator.skipped == 1


def test_impossible_date_is_skipped():
    sessions = aggregate_sessions([obj("acme/rig/2024/13/40/10-00-00_x/audio/raw.wav")])
    assert sessions == []


def test_empty_listing():
    assert aggregate_sessions([]) == []


def test_sessions_sorted_newest_first():
    sessions = aggregate_sessions([
        obj("acme/rig/2024/01/10/09-00-00_a/audio/raw.wav"),
        obj("acme/rig/2024/01/12/09-00-00_c/audio/raw.wav"),
        obj("acme/rig/2024/01/12/08-00-00_b/audio/raw.wav"),
    ])
    assert [s.displayId for s in sessions] == ["c", "b", "a"]


def test_legacy_folder_name_falls_back_to_midnight():
    s = aggregate_sessions([obj("acme/rig/2024/01/10/legacy-folder/audio/raw.wav")])[0]
    assert s.time == "00-00-00"
    assert s.displayId == "legacy-folder"
    assert s.timestamp == datetime(2024, 1, 10, tzinfo=timezone.utc)


def test_flat_layout_uses_earliest_modified():
    early = datetime(2023, 5, 1, tzinfo=timezone.utc)
    late = datetime(2023, 5, 3, tzinfo=timezone.utc)
    aggregator = SessionAggregator(KeyLayout.FLAT)
    assert aggregator.timestamp_strategy == TimestampStrategy.EARLIEST_MODIFIED
    aggregator.add_all([
        obj("s1/screen/video.mp4", when=late),
        obj("s1/audio/raw.wav", when=early),
        obj("toplevel.txt"),
    ])
    sessions = aggregator.sessions()
    assert len(sessions) == 1
    assert sessions[0].folderName == "s1"
    assert sessions[0].timestamp == early
    assert aggregator.skipped == 1


def _session_with(roles):
    return Session(
        displayId="x", folderName="x", prefix="x", timestamp=T0,
        files=[SessionFile(key=f"x/{r.value}", size=1, lastModified=T0, role=r) for r in roles],
    )


def test_completeness_follows_flags():
    required = [FileRole.SCREEN_VIDEO, FileRole.SCREEN_AUDIO, FileRole.CAMERA_VIDEO,
                FileRole.AUDIO_RAW, FileRole.AUDIO_CLEAN]
    assert is_complete(_session_with(required))
    for missing in required:
        s = _session_with([r for r in required if r != missing])
        assert not is_complete(s)
        assert s.isComplete is False
