"""测试公共夹具：手动时钟、假原生播放层、假播放器"""

from __future__ import annotations

import pytest

from errors import MalformedReference, UnknownKind
from orchestrator import PlaybackOrchestrator
from players import PlaybackAdapter
from progress import MemoryProgressStore
from sources import Catalog, CatalogSource, Video, video_from_dict


def make_video(video_id: str, created: str, type_name: str = "mp4", **extra) -> Video:
    data = {
        "id": video_id,
        "title": video_id.upper(),
        "type": type_name,
        "url": extra.pop("url", f"https://example.com/{video_id}.mp4"),
        "createdAt": created,
    }
    data.update(extra)
    return video_from_dict(data)


# ── 手动时钟 ──────────────────────────────────────────────────────────


class _Handle:
    def __init__(self, when: float, fn):
        self.when = when
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """call_later 只登记，advance() 时按到期顺序执行"""

    def __init__(self):
        self.now = 0.0
        self._pending: list[_Handle] = []

    def call_later(self, delay, fn):
        handle = _Handle(self.now + delay, fn)
        self._pending.append(handle)
        return handle

    def advance(self, seconds: float):
        target = self.now + seconds
        while True:
            due = [h for h in self._pending if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._pending.remove(handle)
            self.now = handle.when
            handle.fn()
        self.now = target

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self._pending if not h.cancelled]


# ── 假原生播放层 ──────────────────────────────────────────────────────


class FakeElement:
    def __init__(self, src, start_at=0.0, subtitles=None, headers=None, title="",
                 config=None, scheduler=None):
        self.src = src
        self.start_at = start_at
        self.subtitles = subtitles
        self.headers = headers or {}
        self.title = title
        self.config = config
        self.current_time = start_at
        self.duration = 0.0
        self.paused = True
        self.destroyed = False
        self.recover_ok = True
        self.play_error: Exception | None = None
        self.calls: list[str] = []
        self._listeners: dict[str, list] = {}

    def on(self, event, fn):
        self._listeners.setdefault(event, []).append(fn)

    def emit(self, event, *args):
        for fn in self._listeners.get(event, []):
            fn(*args)

    def load(self):
        self.calls.append("load")

    def play(self):
        if self.play_error:
            raise self.play_error
        self.calls.append("play")
        self.paused = False

    def pause(self):
        self.calls.append("pause")
        self.paused = True

    def seek(self, seconds):
        self.calls.append(f"seek:{seconds}")
        self.current_time = seconds

    def request_fullscreen(self):
        self.calls.append("fullscreen")

    def restart_load(self):
        self.calls.append("restart_load")

    def recover_media_error(self):
        self.calls.append("recover")
        return self.recover_ok

    def destroy(self):
        self.destroyed = True


class ElementRecorder:
    """element_factory 替身，记录创建过的 FakeElement"""

    def __init__(self):
        self.created: list[FakeElement] = []

    def __call__(self, *args, **kwargs):
        element = FakeElement(*args, **kwargs)
        self.created.append(element)
        return element

    @property
    def last(self) -> FakeElement:
        return self.created[-1]


# ── 假播放器（编排器测试用） ──────────────────────────────────────────


class FakeAdapter(PlaybackAdapter):
    def __init__(self, video, start_at=0.0):
        super().__init__(video, start_at)
        self.loaded = False
        self.paused = True
        self.time = start_at
        self.duration = 0.0
        self.seeks: list[float] = []
        self.fullscreen = False
        self.released = False

    def load(self):
        self.loaded = True

    def play(self):
        self.paused = False

    def pause(self):
        self.paused = True

    def seek_to(self, seconds):
        target = self.clamp(seconds)
        self.seeks.append(target)
        self.time = target

    def get_current_time(self):
        return self.time

    def get_duration(self):
        return self.duration

    def is_paused(self):
        return self.paused

    def request_fullscreen(self):
        self.fullscreen = True

    def _release(self):
        self.released = True

    # 模拟原生事件
    def ready(self, duration: float = 60.0):
        self.duration = duration
        self._emit_ready()

    def tick(self, current: float, duration: float = 60.0):
        self.time = current
        self._emit_time(current, duration)

    def end(self):
        self._emit_ended()

    def fail(self, error):
        self._emit_error(error)


class AdapterFactory:
    def __init__(self):
        self.created: list[FakeAdapter] = []

    def __call__(self, video, start_at=0.0, config=None, scheduler=None):
        if video.kind is None:
            raise UnknownKind(video.id, f"unknown type: {video.type_name}")
        if not video.url:
            raise MalformedReference(video.id, "empty url")
        adapter = FakeAdapter(video, start_at)
        self.created.append(adapter)
        return adapter

    @property
    def last(self) -> FakeAdapter:
        return self.created[-1]


class StaticSource(CatalogSource):
    def __init__(self, videos: list[Video] | None = None):
        self.videos = list(videos or [])
        self.loads = 0
        self.saved: list[Video] | None = None

    def load_catalog(self) -> Catalog:
        self.loads += 1
        return Catalog(videos=list(self.videos))

    def save_catalog(self, videos) -> bool:
        self.saved = list(videos)
        return True


# ── 夹具 ──────────────────────────────────────────────────────────────


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def elements():
    return ElementRecorder()


@pytest.fixture
def store():
    return MemoryProgressStore()


@pytest.fixture
def factory():
    return AdapterFactory()


@pytest.fixture
def make_player(store, factory, scheduler):
    """按给定目录创建编排器并完成首次加载"""

    def _make(videos, config=None, boot=True):
        source = StaticSource(videos)
        player = PlaybackOrchestrator(
            source=source,
            store=store,
            config=config or {},
            adapter_factory=factory,
            scheduler=scheduler,
        )
        if boot:
            player.boot()
        return player

    return _make
