"""YouTube 等第三方托管视频播放器

先用 yt-dlp 在后台线程解析出可播放的流地址（异步握手），再交给 ffplay。
不跟踪实时进度，只关心播放结束；任何错误直接上报，不重试。
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

import yt_dlp

from errors import BackendFault, MalformedReference, PlaybackError
from players import PlaybackAdapter
from players.element import MediaElement
from sources import Video
from timers import Scheduler

log = logging.getLogger(__name__)


@dataclass
class ResolvedStream:
    url: str
    headers: dict = field(default_factory=dict)
    duration: float = 0.0


def parse_video_id(url: str) -> str | None:
    """从 YouTube 链接中提取视频 id"""
    try:
        u = urlparse(url)
    except ValueError:
        return None
    host = (u.hostname or "").lower()
    if "youtu.be" in host:
        vid = u.path.strip("/").split("/")[0]
        return vid or None
    if "youtube" not in host:
        return None
    v = parse_qs(u.query).get("v")
    if v and v[0]:
        return v[0]
    parts = [p for p in u.path.split("/") if p]
    if len(parts) >= 2 and parts[0] in ("embed", "shorts", "live"):
        return parts[1]
    return None


def resolve_stream(url: str) -> ResolvedStream:
    """通过 yt-dlp 解析出可直接播放的地址"""
    opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "format": "best[acodec!=none][vcodec!=none]/best",
        "socket_timeout": 10,
        "retries": 1,
    }
    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)
    except yt_dlp.utils.DownloadError as e:
        raise BackendFault(detail=str(e)) from e
    if not info or not info.get("url"):
        raise BackendFault(detail="no playable format")
    return ResolvedStream(
        url=info["url"],
        headers=dict(info.get("http_headers") or {}),
        duration=float(info.get("duration") or 0.0),
    )


class EmbeddedStreamAdapter(PlaybackAdapter):
    def __init__(self, video: Video, start_at: float = 0.0, config: dict | None = None,
                 scheduler: Scheduler | None = None, element_factory=None, resolver=None):
        # 嵌入式播放器只接受整秒起播位置
        super().__init__(video, math.floor(max(0.0, start_at)))
        self.video_key = parse_video_id(video.url)
        if not self.video_key:
            raise MalformedReference(video.id, f"invalid YouTube url: {video.url}")
        self.config = config or {}
        self.scheduler = scheduler or Scheduler()
        self.element_factory = element_factory or MediaElement
        self.resolver = resolver or resolve_stream
        self.element = None
        self.handshake: threading.Thread | None = None
        self._duration = 0.0

    def load(self):
        self.handshake = threading.Thread(target=self._handshake, daemon=True)
        self.handshake.start()

    def _handshake(self):
        try:
            stream = self.resolver(self.video.url)
        except PlaybackError as e:
            self._emit_error(BackendFault(self.video.id, e.detail or str(e)))
            return
        except Exception as e:
            log.exception("解析 %s 失败", self.video.url)
            self._emit_error(BackendFault(self.video.id, str(e)))
            return

        # 握手期间可能已经切换了视频
        if self._disposed:
            log.info("握手完成时播放器已销毁，忽略: %s", self.video.label)
            return

        element = self.element_factory(
            stream.url,
            start_at=self.start_at,
            headers=stream.headers,
            title=self.video.label,
            config=self.config.get("player", {}),
            scheduler=self.scheduler,
        )
        element.on("ended", self._emit_ended)
        element.on("error", self._handle_error)
        self.element = element
        self._duration = stream.duration
        if self._disposed:
            element.destroy()
            return
        self._emit_ready()

    def _handle_error(self, category: str, detail: str):
        self._emit_error(BackendFault(self.video.id, f"{category}: {detail}"))

    def play(self):
        if self.element is None:
            return
        try:
            self.element.play()
        except OSError as e:
            self._emit_error(BackendFault(self.video.id, f"playback failed: {e}"))

    def pause(self):
        if self.element is not None:
            self.element.pause()

    def seek_to(self, seconds: float):
        if self.element is not None:
            self.element.seek(self.clamp(seconds))

    def get_current_time(self) -> float:
        return self.element.current_time if self.element is not None else 0.0

    def get_duration(self) -> float:
        if self.element is not None and self.element.duration:
            return self.element.duration
        return self._duration

    def is_paused(self) -> bool:
        return self.element.paused if self.element is not None else True

    def request_fullscreen(self):
        if self.element is None:
            return
        try:
            self.element.request_fullscreen()
        except Exception as e:
            log.debug("全屏请求失败: %s", e)

    def _release(self):
        if self.element is not None:
            self.element.destroy()
