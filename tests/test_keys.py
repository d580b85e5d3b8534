import pytest

from recordings_viewer.services import keys
from recordings_viewer.util_models import FileRole


@pytest.mark.parametrize("relative,role", [
    ("screen/video.mp4", FileRole.SCREEN_VIDEO),
    ("screen/video.webm", FileRole.SCREEN_VIDEO),
    ("screen/audio.wav", FileRole.SCREEN_AUDIO),
    ("screen/audio.vtt", FileRole.TRANSCRIPT_SCREEN),
    ("camera/video.mp4", FileRole.CAMERA_VIDEO),
    ("audio/raw.wav", FileRole.AUDIO_RAW),
    ("audio/raw.vtt", FileRole.TRANSCRIPT_RAW),
    ("audio/clean.wav", FileRole.AUDIO_CLEAN),
    ("audio/clean.vtt", FileRole.TRANSCRIPT_CLEAN),
    ("metadata.json", FileRole.UNKNOWN),
    ("notes.json", FileRole.UNKNOWN),
])
def test_classify_role(relative, role):
    key = f"org/dev/2024/01/01/10-00-00_sess1/{relative}"
    assert keys.classify_role(key) == role
    # deterministic
    assert keys.classify_role(key) == keys.classify_role(key)


def test_classify_role_suffix_discrimination():
    assert keys.classify_role("org/dev/2024/01/01/10-00-00_sess1/audio/clean.vtt") == FileRole.TRANSCRIPT_CLEAN
    assert keys.classify_role("org/dev/2024/01/01/10-00-00_sess1/audio/clean.wav") == FileRole.AUDIO_CLEAN


def test_classify_role_is_total():
    for key in ["", "/", "randomfile.txt", "a/b/c", "screen", "audio/clean"]:
        assert isinstance(keys.classify_role(key), FileRole)


def test_parse_folder_name():
    parsed = keys.parse_folder_name("09-15-30_sess_abc123")
    assert parsed.time == "09-15-30"
    assert parsed.displayId == "sess_abc123"


def test_parse_folder_name_fallback():
    parsed = keys.parse_folder_name("not-a-valid-name")
    assert parsed.time == keys.FALLBACK_TIME
    assert parsed.displayId == "not-a-valid-name"


def test_parse_session_key():
    parts = keys.parse_session_key("acme/rig/2024/03/09/08-00-00_x/audio/raw.wav")
    assert parts.org == "acme"
    assert parts.device == "rig"
    assert (parts.year, parts.month, parts.day) == ("2024", "03", "09")
    assert parts.folder == "08-00-00_x"
    assert parts.relative == "audio/raw.wav"
    assert parts.prefix == "acme/rig/2024/03/09/08-00-00_x"


@pytest.mark.parametrize("key", [
    "randomfile.txt",
    "acme/rig/_metadata.json",
    "acme/rig/2024/03/09/08-00-00_x",
    "acme/rig/24/03/09/08-00-00_x/audio/raw.wav",
    "acme/rig/2024/3/09/08-00-00_x/audio/raw.wav",
])
def test_parse_session_key_rejects_stray_keys(key):
    assert keys.parse_session_key(key) is None


def test_key_builders():
    prefix = keys.build_prefix("o", "d", "2024", "01", "02", "10-00-00_s")
    assert prefix == "o/d/2024/01/02/10-00-00_s"
    assert keys.metadata_key(prefix) == f"{prefix}/metadata.json"
    assert keys.notes_key(prefix) == f"{prefix}/notes.json"
    assert keys.org_descriptor_key("o") == "o/_metadata.json"
    assert keys.device_descriptor_key("o", "d") == "o/d/_metadata.json"
    assert keys.child_name("o/d/") == "d"
