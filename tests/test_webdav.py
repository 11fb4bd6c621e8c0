"""WebDAV 目录源：用假客户端代替网盘"""

import json

import pytest

from sources import parse_catalog
from sources.webdav import WebDAVSource

ENTRIES = [
    {"id": "a", "title": "Alpha", "type": "mp4", "url": "https://dav/a.mp4",
     "createdAt": "2024-01-01T00:00:00Z"},
    {"id": "b", "title": "Beta", "type": "hls", "url": "https://dav/b.m3u8",
     "createdAt": "2024-02-01T00:00:00Z"},
]


class FakeDavClient:
    def __init__(self, payload: bytes = b"", failures: int = 0):
        self.payload = payload
        self.failures = failures
        self.downloads: list[str] = []
        self.uploads: dict[str, bytes] = {}
        self.upload_error: Exception | None = None

    def download_fileobj(self, path, fileobj):
        self.downloads.append(path)
        if self.failures:
            self.failures -= 1
            raise ConnectionError("503 Service Unavailable")
        fileobj.write(self.payload)

    def upload_fileobj(self, fileobj, path, overwrite=False):
        if self.upload_error:
            raise self.upload_error
        assert overwrite
        self.uploads[path] = fileobj.read()


@pytest.fixture
def sleeps(monkeypatch):
    waited = []
    monkeypatch.setattr("sources.webdav.time.sleep", waited.append)
    return waited


def make_source(client, **kwargs):
    source = WebDAVSource("https://dav.example.com/", "user", "pass", **kwargs)
    source.client = client
    return source


def test_load_catalog(sleeps):
    client = FakeDavClient(json.dumps(ENTRIES).encode("utf-8"))
    catalog = make_source(client).load_catalog()

    assert [v.id for v in catalog.videos] == ["a", "b"]
    assert client.downloads == ["/videos.json"]
    assert sleeps == []


def test_load_retries_then_succeeds(sleeps):
    client = FakeDavClient(json.dumps({"videos": ENTRIES}).encode("utf-8"), failures=2)
    catalog = make_source(client, path="/share/videos.json").load_catalog()

    assert len(catalog.videos) == 2
    assert client.downloads == ["/share/videos.json"] * 3
    assert sleeps == [3, 6]


def test_load_gives_up_with_empty_catalog(sleeps):
    client = FakeDavClient(failures=10)
    catalog = make_source(client, max_retries=3).load_catalog()

    assert catalog.videos == []
    assert len(client.downloads) == 3
    assert sleeps == [3, 6]


def test_load_bad_json_is_not_retried(sleeps):
    client = FakeDavClient(b"<html>login</html>")
    catalog = make_source(client).load_catalog()

    assert catalog.videos == []
    assert len(client.downloads) == 1


def test_save_catalog_uploads_json():
    client = FakeDavClient()
    source = make_source(client)

    assert source.save_catalog(parse_catalog(ENTRIES).videos)

    saved = json.loads(client.uploads["/videos.json"].decode("utf-8"))
    assert [e["id"] for e in saved] == ["a", "b"]


def test_save_catalog_failure():
    client = FakeDavClient()
    client.upload_error = ConnectionError("refused")

    assert make_source(client).save_catalog([]) is False
