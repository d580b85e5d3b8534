import asyncio
import json

import pytest

from recordings_viewer.errors import NotFoundError
from recordings_viewer.services.catalog import CatalogService, IndexedPrefixResolver, ScanningPrefixResolver
from recordings_viewer.util_models import FileRole

ORG = "acme"
DEVICE = "rig-01"


def test_list_organizations_with_descriptor(store, catalog):
    store.add("acme/_metadata.json", json.dumps({"id": "acme", "name": "Acme Corp"}))
    store.add("acme/rig-01/2024/01/15/10-00-00_a/audio/raw.wav", b"x")
    store.add("beta/rig-09/2024/01/15/10-00-00_b/audio/raw.wav", b"x")

    orgs = asyncio.run(catalog.list_organizations())

    assert [o.id for o in orgs] == ["acme", "beta"]
    assert orgs[0].name == "Acme Corp"
    assert orgs[1].name is None
    assert orgs[1].displayName == "beta"


def test_list_devices_across_pages(store, catalog):
    # page_size=3 in the fixture, so the delimiter listing spans several pages
    for i in range(5):
        store.add(f"acme/dev-{i}/2024/01/15/10-00-00_s/audio/raw.wav", b"x")
    store.add("acme/dev-2/_metadata.json", json.dumps({"name": "Front Desk"}))

    devices = asyncio.run(catalog.list_devices("acme"))

    assert [d.id for d in devices] == [f"dev-{i}" for i in range(5)]
    assert devices[2].displayName == "Front Desk"
    assert all(d.orgId == "acme" for d in devices)


def test_malformed_descriptor_reads_as_absent(store, catalog):
    store.add("acme/_metadata.json", b"{not json")
    assert catalog.get_org_name("acme") is None


def test_list_sessions_empty_device(catalog):
    listing = asyncio.run(catalog.list_sessions("orgX", "deviceY"))
    assert listing.sessions == []
    assert listing.orgName is None


def test_list_sessions_with_names(store, catalog, seed):
    store.add(f"{ORG}/_metadata.json", json.dumps({"name": "Acme"}))
    store.add(f"{ORG}/{DEVICE}/_metadata.json", json.dumps({"name": "Rig One"}))
    seed("10-00-00_a")
    seed("11-00-00_b", files=("audio/raw.wav",))

    listing = asyncio.run(catalog.list_sessions(ORG, DEVICE))

    assert listing.orgName == "Acme"
    assert listing.deviceName == "Rig One"
    assert [s.displayId for s in listing.sessions] == ["b", "a"]
    assert listing.sessions[1].isComplete
    assert not listing.sessions[0].isComplete


def test_find_session_prefix(seed, catalog):
    prefix = seed("10-00-00_a", date=("2023", "12", "31"))
    assert catalog.find_session_prefix(ORG, DEVICE, "10-00-00_a") == prefix
    assert catalog.find_session_prefix(ORG, DEVICE, "missing") is None
    with pytest.raises(NotFoundError):
        catalog.require_session_prefix(ORG, DEVICE, "missing")


def test_scanning_resolver_batch(store, seed):
    a = seed("10-00-00_a")
    b = seed("11-00-00_b", date=("2024", "02", "01"))
    resolver = ScanningPrefixResolver(store)
    assert resolver.resolve_many(ORG, DEVICE, ["11-00-00_b", "10-00-00_a", "nope"]) == {
        "11-00-00_b": b,
        "10-00-00_a": a,
        "nope": None,
    }


def test_indexed_resolver_uses_listing(store, seed):
    prefix = seed("10-00-00_a")
    resolver = IndexedPrefixResolver(store)
    catalog = CatalogService(store, resolver)
    catalog.scan_sessions(ORG, DEVICE)

    # the index answers even once the objects are gone
    store.clear()
    assert resolver.resolve(ORG, DEVICE, "10-00-00_a") == prefix
    resolver.forget(ORG, DEVICE, "10-00-00_a")
    assert resolver.resolve(ORG, DEVICE, "10-00-00_a") is None


def test_get_session_and_media_keys(seed, catalog):
    prefix = seed("10-00-00_a", files=("screen/video.mp4", "audio/clean.wav", "audio/clean.vtt"))
    seed("10-00-00_ab", files=("camera/video.mp4",))

    session = catalog.get_session(ORG, DEVICE, "10-00-00_a")

    assert session.prefix == prefix
    assert {f.role for f in session.files} == {
        FileRole.SCREEN_VIDEO, FileRole.AUDIO_CLEAN, FileRole.TRANSCRIPT_CLEAN
    }
    assert catalog.media_keys(session) == {
        FileRole.SCREEN_VIDEO: f"{prefix}/screen/video.mp4",
        FileRole.AUDIO_CLEAN: f"{prefix}/audio/clean.wav",
        FileRole.TRANSCRIPT_CLEAN: f"{prefix}/audio/clean.vtt",
    }


def test_get_session_missing(catalog):
    with pytest.raises(NotFoundError):
        catalog.get_session(ORG, DEVICE, "10-00-00_nope")


def test_legacy_sessions(store, catalog):
    store.add("sessA/screen/video.mp4", b"x")
    store.add("sessA/audio/raw.wav", b"x")
    store.add("readme.txt", b"x")
    sessions = catalog.list_legacy_sessions()
    assert [s.folderName for s in sessions] == ["sessA"]
    assert len(sessions[0].files) == 2


def test_staging_objects_are_not_orgs_or_sessions(store, catalog):
    store.add("acme/rig-01/2024/01/15/10-00-00_a/audio/raw.wav", b"x")
    store.add("sessA/audio/raw.wav", b"x")
    store.add("_staging/transcription/job1/input.wav", b"x")

    orgs = asyncio.run(catalog.list_organizations())

    assert [o.id for o in orgs] == ["acme", "sessA"]
    assert "_staging" not in [s.folderName for s in catalog.list_legacy_sessions()]
