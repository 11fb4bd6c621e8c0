"""直链视频文件播放器（mp4 等）"""

import logging

from errors import BackendFault
from players import PlaybackAdapter
from players.element import MediaElement
from sources import Video
from timers import Scheduler

log = logging.getLogger(__name__)


class ProgressiveFileAdapter(PlaybackAdapter):
    """原生错误直接上报，不重试（通常是地址错误或编码不支持）"""

    def __init__(self, video: Video, start_at: float = 0.0, config: dict | None = None,
                 scheduler: Scheduler | None = None, element_factory=None):
        super().__init__(video, start_at)
        self.config = config or {}
        self.scheduler = scheduler or Scheduler()
        factory = element_factory or MediaElement
        self.element = factory(
            video.url,
            start_at=self.start_at,
            subtitles=video.subtitle_url,
            title=video.label,
            config=self.config.get("player", {}),
            scheduler=self.scheduler,
        )
        self.element.on("loadedmetadata", self._handle_metadata)
        self.element.on("timeupdate", self._emit_time)
        self.element.on("waiting", self._handle_waiting)
        self.element.on("playing", self._handle_playing)
        self.element.on("ended", self._emit_ended)
        self.element.on("error", self._handle_error)

    def load(self):
        self.element.load()

    def play(self):
        try:
            self.element.play()
        except OSError as e:
            self._emit_error(BackendFault(self.video.id, f"playback failed: {e}"))

    def pause(self):
        self.element.pause()

    def seek_to(self, seconds: float):
        self.element.seek(self.clamp(seconds))

    def get_current_time(self) -> float:
        return self.element.current_time or 0.0

    def get_duration(self) -> float:
        return self.element.duration or 0.0

    def is_paused(self) -> bool:
        return self.element.paused

    def request_fullscreen(self):
        try:
            self.element.request_fullscreen()
        except Exception as e:
            log.debug("全屏请求失败: %s", e)

    def _release(self):
        self.element.destroy()

    # ── 原生事件 ──────────────────────────────────

    def _handle_metadata(self):
        self._emit_ready()

    def _handle_waiting(self):
        pass

    def _handle_playing(self):
        pass

    def _handle_error(self, category: str, detail: str):
        self._emit_error(BackendFault(self.video.id, f"{category}: {detail}"))
