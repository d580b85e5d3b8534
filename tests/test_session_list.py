import asyncio
from datetime import datetime, timezone

import pytest

from recordings_viewer.client.dedup import RequestDeduplicator
from recordings_viewer.client.session_list import SessionListView, merge_sessions
from recordings_viewer.errors import TransportError
from recordings_viewer.util_models import (
    FileRole,
    Session,
    SessionFile,
    SessionListResponse,
    SessionMetadata,
    SessionStatusFilter,
)

T0 = datetime(2024, 1, 15, 10, tzinfo=timezone.utc)


def make_session(folder, roles):
    return Session(
        displayId=folder.split("_", 1)[1], folderName=folder, prefix=f"acme/rig/2024/01/15/{folder}",
        org="acme", device="rig", year="2024", month="01", day="15", timestamp=T0,
        files=[SessionFile(key=f"{folder}/{r.value}", size=5, lastModified=T0, role=r) for r in roles],
    )


class FakeApi:
    def __init__(self, sessions):
        self.sessions = sessions
        self.list_calls = 0
        self.metadata_calls = []
        self.notes_calls = []
        self.favorites = {"10-00-00_s": True}

    async def list_sessions(self, org, device):
        self.list_calls += 1
        return SessionListResponse(sessions=self.sessions, orgName="Acme", deviceName="Rig",
                                   total=len(self.sessions))

    async def get_metadata(self, org, device, folder_name):
        self.metadata_calls.append(folder_name)
        return SessionMetadata(favorite=self.favorites.get(folder_name, False))

    async def notes_count(self, org, device, folder_names):
        self.notes_calls.append(list(folder_names))
        return {name: 2 for name in folder_names}

    async def update_metadata(self, org, device, folder_name, **fields):
        return SessionMetadata(**{"favorite": False, "score": None, **fields})


def test_refresh_preserves_known_metadata():
    api = FakeApi([make_session("10-00-00_s", [FileRole.SCREEN_VIDEO])])
    view = SessionListView(api, "acme", "rig", refresh_interval=0)

    async def run():
        await view.refresh()
        assert view.sessions[0].metadata.favorite is True
        assert view.sessions[0].hasCameraVideo is False

        # new file lands; the listing itself carries default metadata
        api.sessions = [make_session("10-00-00_s", [FileRole.SCREEN_VIDEO, FileRole.CAMERA_VIDEO])]
        await view.refresh()

    asyncio.run(run())

    s = view.sessions[0]
    assert s.metadata.favorite is True
    assert s.hasCameraVideo is True
    assert api.metadata_calls == ["10-00-00_s"]
    assert api.notes_calls == [["10-00-00_s"]]
    assert view.notes_counts == {"10-00-00_s": 2}
    assert view.org_name == "Acme"


def test_details_only_for_visible_page():
    sessions = [make_session(f"10-00-0{i}_s{i}", [FileRole.SCREEN_VIDEO]) for i in range(5)]
    api = FakeApi(sessions)
    view = SessionListView(api, "acme", "rig", per_page=2, refresh_interval=0)

    asyncio.run(view.refresh())

    assert sorted(api.metadata_calls) == ["10-00-00_s0", "10-00-01_s1"]
    assert view.total_pages() == 3


def test_filters_and_local_edits():
    api = FakeApi([
        make_session("10-00-00_s", [FileRole.SCREEN_VIDEO]),
        make_session("11-00-00_t", [FileRole.SCREEN_VIDEO]),
    ])
    view = SessionListView(api, "acme", "rig", refresh_interval=0)

    async def run():
        await view.refresh()
        await view.set_favorite("11-00-00_t", True)
        await view.refresh()

    asyncio.run(run())

    view.set_filter(SessionStatusFilter.FAVORITES)
    assert {s.folderName for s in view.visible()} == {"10-00-00_s", "11-00-00_t"}
    assert view.stats(datetime(2024, 1, 17).date()).favorites == 2


def test_merge_sessions_replaces_files_keeps_metadata():
    fresh = [make_session("10-00-00_s", [FileRole.AUDIO_RAW])]
    merged = merge_sessions(fresh, {"10-00-00_s": SessionMetadata(favorite=True, score=5)})
    assert merged[0].metadata == SessionMetadata(favorite=True, score=5)
    assert merged[0].hasAudioRaw
    assert merge_sessions(fresh, {})[0].metadata == SessionMetadata()


def test_auto_refresh_start_stop():
    api = FakeApi([make_session("10-00-00_s", [FileRole.SCREEN_VIDEO])])
    view = SessionListView(api, "acme", "rig", refresh_interval=0.01)

    async def run():
        await view.start()
        assert view.running
        await asyncio.sleep(0.1)
        await view.stop()
        calls = api.list_calls
        await asyncio.sleep(0.05)
        return calls

    calls_at_stop = asyncio.run(run())
    assert calls_at_stop >= 2
    assert api.list_calls == calls_at_stop
    assert not view.running


def test_dedup_shares_in_flight_fetch():
    calls = []

    async def factory():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "value"

    async def run():
        dedup = RequestDeduplicator()
        results = await asyncio.gather(*[dedup.fetch("k", factory) for _ in range(5)])
        again = await dedup.fetch("k", factory)
        return dedup, results, again

    dedup, results, again = asyncio.run(run())
    assert results == ["value"] * 5
    assert again == "value"
    assert calls == [1]
    assert dedup.result("k") == "value"


def test_dedup_retries_after_failure():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise TransportError("boom")
        return 42

    async def run():
        dedup = RequestDeduplicator()
        with pytest.raises(TransportError):
            await dedup.fetch("k", flaky)
        await asyncio.sleep(0)
        assert "k" not in dedup
        return await dedup.fetch("k", flaky)

    assert asyncio.run(run()) == 42
    assert len(attempts) == 2


class SlowDetailsApi(FakeApi):
    def __init__(self, sessions):
        super().__init__(sessions)
        self.delay = 0.5

    async def get_metadata(self, org, device, folder_name):
        await asyncio.sleep(self.delay)
        return await super().get_metadata(org, device, folder_name)

    async def notes_count(self, org, device, folder_names):
        await asyncio.sleep(self.delay)
        return await super().notes_count(org, device, folder_names)


def test_stop_during_load_then_remount():
    api = SlowDetailsApi([make_session("10-00-00_s", [FileRole.SCREEN_VIDEO])])
    view = SessionListView(api, "acme", "rig", refresh_interval=0)

    async def run():
        loading = asyncio.create_task(view.start())
        await asyncio.sleep(0.01)
        await view.stop()
        await loading
        after_stop = (dict(view.metadata), dict(view.notes_counts))

        api.delay = 0
        await view.start()
        await view.stop()
        return after_stop

    metadata_after_stop, counts_after_stop = asyncio.run(run())

    # cancelled fetches leave nothing behind
    assert metadata_after_stop == {}
    assert counts_after_stop == {}
    # the remount fetches again and the favorites filter works on real metadata
    assert view.metadata == {"10-00-00_s": SessionMetadata(favorite=True)}
    assert view.notes_counts == {"10-00-00_s": 2}
    view.set_filter(SessionStatusFilter.FAVORITES)
    assert [s.folderName for s in view.visible()] == ["10-00-00_s"]
    assert view.stats(datetime(2024, 1, 17).date()).favorites == 1
