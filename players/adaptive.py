"""HLS 自适应流播放器

容忍短暂的网络抖动：
* 缓冲超过 stall_timeout 秒未恢复 → 视为直播已结束，按正常结束切换下一个
* 网络类故障 → retry_delay 秒后重新加载，最多 max_retries 次，超出 → RetryExhausted
* 媒体类故障 → 原地恢复解码，不单独计入重试；恢复后未再播放又出错，按网络故障计
* 启动时清单加载失败 → 立即上报，不重试
* 清单解析成功或重新加载后恢复播放 → 重试计数清零
"""

import logging
import threading

from errors import BackendFault, RetryExhausted
from players.progressive import ProgressiveFileAdapter

log = logging.getLogger(__name__)


class AdaptiveStreamAdapter(ProgressiveFileAdapter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        resilience = self.config.get("resilience", {})
        self.max_retries = resilience.get("max_retries", 3)
        self.retry_delay = resilience.get("retry_delay", 1)
        self.stall_timeout = resilience.get("stall_timeout", 10)

        self.retries = 0
        self._recovering = False     # 已原地恢复，尚未重新开始播放
        self._lock = threading.Lock()
        self._stall_timer = None
        self._retry_timer = None

    def _release(self):
        with self._lock:
            timers = (self._stall_timer, self._retry_timer)
            self._stall_timer = self._retry_timer = None
        for t in timers:
            if t is not None:
                t.cancel()
        super()._release()

    # ── 原生事件 ──────────────────────────────────

    def _handle_metadata(self):
        with self._lock:
            self.retries = 0
        self._emit_ready()

    def _handle_waiting(self):
        with self._lock:
            if self._stall_timer is not None or self._disposed:
                return
            self._stall_timer = self.scheduler.call_later(self.stall_timeout, self._handle_stall)

    def _handle_playing(self):
        with self._lock:
            timer = self._stall_timer
            self._stall_timer = None
            if self.retries or self._recovering:
                log.info("直播流已恢复播放: %s", self.video.label)
            self.retries = 0
            self._recovering = False
        if timer is not None:
            timer.cancel()

    def _handle_stall(self):
        with self._lock:
            if self._stall_timer is None:
                return
            self._stall_timer = None
        log.warning("直播流缓冲超过 %d 秒，视为已结束: %s", self.stall_timeout, self.video.label)
        self._emit_ended()

    def _handle_error(self, category: str, detail: str):
        if category == "load":
            log.warning("直播流不可用: %s", self.video.label)
            self._emit_error(BackendFault(self.video.id, f"manifest load failed: {detail}"))
        elif category == "network":
            self._retry(detail)
        elif category == "media":
            self._recover(detail)
        else:
            self._emit_error(BackendFault(self.video.id, f"unrecoverable: {detail}"))

    def _recover(self, detail: str):
        with self._lock:
            again = self._recovering
            self._recovering = True
        # 上次恢复后还没播放过就再次出错，说明无法原地恢复
        if again or not self.element.recover_media_error():
            self._retry(detail)
            return
        log.info("媒体错误，已原地恢复: %s", self.video.label)

    def _retry(self, detail: str):
        with self._lock:
            if self._disposed:
                return
            self.retries += 1
            attempt = self.retries
            exhausted = attempt > self.max_retries
            if not exhausted:
                self._retry_timer = self.scheduler.call_later(self.retry_delay, self._reload)

        if exhausted:
            log.warning("达到最大重试次数 (%d)，切换下一个: %s", self.max_retries, self.video.label)
            self._emit_error(RetryExhausted(self.video.id, detail))
            return
        log.warning("网络错误，第 %d 次重试: %s", attempt, self.video.label)

    def _reload(self):
        with self._lock:
            if self._retry_timer is None:
                return
            self._retry_timer = None
        self.element.restart_load()
