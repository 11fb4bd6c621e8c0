import json

import httpx

from sources import OLDEST, VideoKind, parse_catalog, parse_created_at, video_from_dict
from sources.local import LocalSource
from sources.remote import RemoteSource

ENTRIES = [
    {"id": "a", "title": "Alpha", "type": "youtube", "url": "https://youtu.be/abc",
     "createdAt": "2024-01-01T00:00:00Z", "mustWatch": True},
    {"id": "b", "title": "Beta", "type": "mp4", "url": "https://cdn/b.mp4",
     "createdAt": 1706745600000, "order": 3},
    {"id": "c", "title": "Gamma", "type": "hls", "url": "https://cdn/c.m3u8",
     "subtitles": "https://cdn/c.vtt"},
]


def test_parse_bare_array():
    catalog = parse_catalog(ENTRIES)
    assert [v.id for v in catalog.videos] == ["a", "b", "c"]
    assert [v.kind for v in catalog.videos] == [
        VideoKind.EMBEDDED, VideoKind.PROGRESSIVE, VideoKind.ADAPTIVE,
    ]
    assert catalog.settings == {}


def test_parse_object_with_settings():
    catalog = parse_catalog({"videos": ENTRIES, "settings": {"autoplay": False}})
    assert len(catalog.videos) == 3
    assert catalog.settings == {"autoplay": False}


def test_parse_drops_entries_without_id():
    catalog = parse_catalog([{"title": "no id", "url": "x"}, "garbage", ENTRIES[0]])
    assert [v.id for v in catalog.videos] == ["a"]


def test_parse_invalid_document():
    assert parse_catalog("nope").videos == []


def test_unknown_type_keeps_entry():
    video = video_from_dict({"id": "x", "type": "flash", "url": "x.swf"})
    assert video.kind is None
    assert video.type_name == "flash"


def test_optional_fields():
    a, b, c = parse_catalog(ENTRIES).videos
    assert a.must_watch and a.order is None
    assert b.order == 3
    assert c.subtitle_url == "https://cdn/c.vtt"
    assert c.created_at == OLDEST


def test_created_at_formats():
    iso = parse_created_at("2024-02-01T00:00:00Z")
    epoch = parse_created_at(1706745600000)
    assert iso == epoch
    assert parse_created_at("not a date") == OLDEST
    assert parse_created_at(None) == OLDEST


def test_to_dict_keeps_unknown_fields():
    video = video_from_dict({"id": "a", "type": "mp4", "url": "u", "extra": 1})
    data = video.to_dict()
    assert data["extra"] == 1
    assert data["type"] == "mp4"


# ── 本地文件 ──


def test_local_source_missing_file(tmp_path):
    assert LocalSource(str(tmp_path / "videos.json")).load_catalog().videos == []


def test_local_source_corrupt_file(tmp_path):
    path = tmp_path / "videos.json"
    path.write_text("[{", encoding="utf-8")
    assert LocalSource(str(path)).load_catalog().videos == []


def test_local_source_save_then_load(tmp_path):
    path = tmp_path / "videos.json"
    source = LocalSource(str(path))
    videos = parse_catalog(ENTRIES).videos

    assert source.save_catalog(videos)

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert isinstance(saved, list)
    assert [v.id for v in source.load_catalog().videos] == ["a", "b", "c"]


# ── HTTP ──


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_remote_source_load():
    captured = {}

    def handler(request):
        captured["cache"] = request.headers.get("cache-control")
        return httpx.Response(200, json={"videos": ENTRIES})

    source = RemoteSource("http://admin/api/videos", client=_client(handler))
    catalog = source.load_catalog()

    assert len(catalog.videos) == 3
    assert captured["cache"] == "no-store"


def test_remote_source_http_error_returns_empty():
    source = RemoteSource(
        "http://admin/api/videos",
        client=_client(lambda request: httpx.Response(500)),
    )
    assert source.load_catalog().videos == []


def test_remote_source_bad_json_returns_empty():
    source = RemoteSource(
        "http://admin/api/videos",
        client=_client(lambda request: httpx.Response(200, content=b"<html>")),
    )
    assert source.load_catalog().videos == []


def test_remote_source_save_sends_token():
    received = {}

    def handler(request):
        received["auth"] = request.headers.get("authorization")
        received["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    source = RemoteSource("http://admin/api/videos", token="secret", client=_client(handler))

    assert source.save_catalog(parse_catalog(ENTRIES).videos)
    assert received["auth"] == "Bearer secret"
    assert [e["id"] for e in received["body"]] == ["a", "b", "c"]


def test_remote_source_save_failure():
    source = RemoteSource(
        "http://admin/api/videos",
        client=_client(lambda request: httpx.Response(401)),
    )
    assert source.save_catalog([]) is False
