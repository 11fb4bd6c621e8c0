"""播放器抽象：三种播放后端的统一控制接口"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

from errors import MalformedReference, PlaybackError, UnknownKind
from sources import Video, VideoKind

log = logging.getLogger(__name__)

TimeCallback = Callable[[float, float], None]


class PlaybackAdapter(ABC):
    """播放器适配器基类

    子类只负责驱动各自的原生播放器，回调的派发（结束只触发一次、
    销毁后不再派发任何事件）统一在这里处理。
    """

    def __init__(self, video: Video, start_at: float = 0.0):
        self.video = video
        self.start_at = max(0.0, start_at)
        self._on_ready: Callable[[], None] | None = None
        self._on_time: TimeCallback | None = None
        self._on_ended: Callable[[], None] | None = None
        self._on_error: Callable[[PlaybackError], None] | None = None
        self._cb_lock = threading.Lock()
        self._ready_fired = False
        self._finished = False     # 已结束或已失败，本次播放不再上报
        self._disposed = False

    # ── 控制 ──────────────────────────────────

    @abstractmethod
    def load(self):
        """开始加载（异步），就绪后触发 on_ready"""

    @abstractmethod
    def play(self):
        """请求播放，后端拒绝时转为 on_error"""

    @abstractmethod
    def pause(self):
        ...

    @abstractmethod
    def seek_to(self, seconds: float):
        ...

    @abstractmethod
    def get_current_time(self) -> float:
        ...

    @abstractmethod
    def get_duration(self) -> float:
        ...

    @abstractmethod
    def is_paused(self) -> bool:
        ...

    @abstractmethod
    def request_fullscreen(self):
        """尽力而为，不会失败"""

    def dispose(self):
        """释放原生播放器，之后的回调全部丢弃"""
        with self._cb_lock:
            self._disposed = True
        self._release()

    @abstractmethod
    def _release(self):
        ...

    # ── 回调注册 ──────────────────────────────────

    def on_ready(self, callback: Callable[[], None]):
        self._on_ready = callback

    def on_time_update(self, callback: TimeCallback):
        self._on_time = callback

    def on_ended(self, callback: Callable[[], None]):
        self._on_ended = callback

    def on_error(self, callback: Callable[[PlaybackError], None]):
        self._on_error = callback

    # ── 回调派发 ──────────────────────────────────

    def clamp(self, seconds: float) -> float:
        duration = self.get_duration()
        seconds = max(0.0, seconds)
        return min(seconds, duration) if duration > 0 else seconds

    def _emit_ready(self):
        with self._cb_lock:
            if self._disposed or self._ready_fired:
                return
            self._ready_fired = True
        if self._on_ready:
            self._on_ready()

    def _emit_time(self, current: float, duration: float):
        if self._disposed or self._finished:
            return
        if self._on_time:
            self._on_time(current, duration)

    def _emit_ended(self):
        with self._cb_lock:
            if self._disposed or self._finished:
                return
            self._finished = True
        if self._on_ended:
            self._on_ended()

    def _emit_error(self, error: PlaybackError):
        with self._cb_lock:
            if self._disposed or self._finished:
                return
            self._finished = True
        log.warning("✗ %s 播放失败: %s", self.video.label, error)
        if self._on_error:
            self._on_error(error)


def create_adapter(video: Video, start_at: float = 0.0, config: dict | None = None,
                   scheduler=None, **kwargs) -> PlaybackAdapter:
    """按视频类型创建播放器；类型未知或地址无效时抛出 PlaybackError"""
    if video.kind is None:
        raise UnknownKind(video.id, f"unknown type: {video.type_name or '(empty)'}")
    if not video.url:
        raise MalformedReference(video.id, "empty url")

    if video.kind == VideoKind.EMBEDDED:
        from players.embedded import EmbeddedStreamAdapter
        return EmbeddedStreamAdapter(video, start_at, config=config, scheduler=scheduler, **kwargs)
    if video.kind == VideoKind.PROGRESSIVE:
        from players.progressive import ProgressiveFileAdapter
        return ProgressiveFileAdapter(video, start_at, config=config, scheduler=scheduler, **kwargs)
    from players.adaptive import AdaptiveStreamAdapter
    return AdaptiveStreamAdapter(video, start_at, config=config, scheduler=scheduler, **kwargs)
