"""FFplay 原生播放层

用 ffprobe 探测、ffplay 播放，模拟浏览器 <video> 元素的事件模型：
loadedmetadata / timeupdate / waiting / playing / ended / error。
暂停通过挂起进程实现，跳转、全屏、重新加载都以新位置重启 ffplay。
"""

import json
import logging
import re
import subprocess
import threading
import time
from typing import Callable

import psutil

from timers import Scheduler

log = logging.getLogger(__name__)

# 正则：匹配 ffplay 输出中的 Duration 和状态行（"  12.34 A-V:  0.001 fd=..."）
_RE_DURATION = re.compile(r"Duration:\s*(\d+):(\d+):(\d+)\.(\d+)")
_RE_CLOCK = re.compile(r"^\s*(\d+\.\d+)\s+(?:A-V|M-A|M-V):")

_RE_NETWORK = re.compile(
    r"Failed to open segment|Failed to reload playlist|HTTP error \d+|Server returned"
    r"|Connection (?:refused|reset|timed out)|Operation timed out|Network is unreachable"
    r"|Input/output error|I/O error|Failed to resolve hostname|No such file or directory"
    r"|Protocol not found",
    re.IGNORECASE,
)
_RE_MEDIA = re.compile(
    r"Invalid data found|error while decoding|decode_slice_header error|non-existing PPS"
    r"|concealing \d+|corrupt (?:input|decoded frame)|Invalid NAL unit|missing picture",
    re.IGNORECASE,
)

# 播放中时钟超过该秒数不动即认为在缓冲
WAITING_AFTER = 2.0
# timeupdate 最小间隔
TIMEUPDATE_INTERVAL = 0.25
# 距离结尾小于该秒数的退出视为播放完毕
END_TOLERANCE = 1.5


def parse_duration(text: str) -> float | None:
    m = _RE_DURATION.search(text)
    if not m:
        return None
    return (
        int(m.group(1)) * 3600 + int(m.group(2)) * 60
        + int(m.group(3)) + int(m.group(4)) / 100
    )


def parse_clock(text: str) -> float | None:
    m = _RE_CLOCK.match(text)
    return float(m.group(1)) if m else None


def classify_line(text: str) -> str | None:
    """错误行分类：network / media / None"""
    if _RE_NETWORK.search(text):
        return "network"
    if _RE_MEDIA.search(text):
        return "media"
    return None


class MediaElement:
    def __init__(self, src: str, start_at: float = 0.0, subtitles: str | None = None,
                 headers: dict | None = None, title: str = "", config: dict | None = None,
                 scheduler: Scheduler | None = None):
        cfg = config or {}
        self.src = src
        self.subtitles = subtitles
        self.headers = headers or {}
        self.title = title
        self.ffplay = cfg.get("ffplay", "ffplay")
        self.ffprobe = cfg.get("ffprobe", "ffprobe")
        self.fullscreen = bool(cfg.get("fullscreen", False))
        self.extra_args = [str(a) for a in cfg.get("extra_args", [])]
        self.probe_timeout = cfg.get("probe_timeout", 20)
        self.scheduler = scheduler or Scheduler()

        self._listeners: dict[str, list[Callable]] = {}
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._watchdog = None
        self._destroyed = False

        self._position = max(0.0, start_at)
        self._duration = 0.0
        self._paused = True
        self._waiting = False
        self._ticked = False
        self._last_advance = time.monotonic()
        self._last_timeupdate = 0.0
        self._error_category: str | None = None
        self._error_detail = ""

    # ── 事件 ──────────────────────────────────

    def on(self, event: str, fn: Callable):
        self._listeners.setdefault(event, []).append(fn)

    def _emit(self, event: str, *args):
        if self._destroyed:
            return
        for fn in list(self._listeners.get(event, [])):
            try:
                fn(*args)
            except Exception:
                log.exception("处理 %s 事件出错", event)

    # ── 属性 ──────────────────────────────────

    @property
    def current_time(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def paused(self) -> bool:
        return self._paused

    # ── 公共 API ──────────────────────────────────

    def load(self):
        """后台探测媒体信息"""
        threading.Thread(target=self._probe, daemon=True).start()

    def play(self):
        """启动或恢复播放；ffplay 无法启动时抛出 OSError"""
        with self._lock:
            proc = self._process
            paused = self._paused
        if proc is None:
            self._spawn(self._position)
        elif paused:
            self._signal(proc, resume=True)
            with self._lock:
                self._paused = False
                self._last_advance = time.monotonic()

    def pause(self):
        with self._lock:
            proc = self._process
            self._paused = True
        if proc is not None:
            self._signal(proc, resume=False)

    def seek(self, seconds: float):
        with self._lock:
            self._position = max(0.0, seconds)
            running = self._process is not None
            paused = self._paused
        if running:
            self._relaunch()
            if paused:
                self.pause()

    def request_fullscreen(self):
        if self.fullscreen:
            return
        self.fullscreen = True
        with self._lock:
            running = self._process is not None and not self._paused
        if running:
            try:
                self._relaunch()
            except OSError as e:
                log.warning("切换全屏失败: %s", e)

    def restart_load(self):
        """从当前位置重新加载"""
        try:
            self._relaunch()
        except OSError as e:
            self._emit("error", "other", str(e))

    def recover_media_error(self) -> bool:
        """重建解码器后继续播放，失败返回 False"""
        try:
            self._relaunch()
        except OSError as e:
            log.warning("解码恢复失败: %s", e)
            return False
        return True

    def destroy(self):
        with self._lock:
            self._destroyed = True
            proc = self._process
            self._process = None
            watchdog = self._watchdog
            self._watchdog = None
        if watchdog is not None:
            watchdog.cancel()
        if proc is not None:
            self._terminate(proc)

    # ── ffprobe ──────────────────────────────────

    def _probe(self):
        cmd = [self.ffprobe, "-v", "error", "-print_format", "json", "-show_format"]
        cmd += self._header_args()
        cmd.append(self.src)
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.probe_timeout)
        except subprocess.TimeoutExpired:
            self._emit("error", "load", f"probe timeout ({self.probe_timeout}s)")
            return
        except OSError as e:
            self._emit("error", "load", str(e))
            return

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()[-200:]
            self._emit("error", "load", stderr or f"ffprobe exit {result.returncode}")
            return

        try:
            info = json.loads(result.stdout.decode("utf-8", errors="replace") or "{}")
            duration = float(info.get("format", {}).get("duration") or 0.0)
        except (ValueError, AttributeError):
            duration = 0.0
        with self._lock:
            self._duration = duration
        self._emit("loadedmetadata")

    # ── ffplay 进程 ──────────────────────────────────

    def _header_args(self) -> list[str]:
        if not self.headers:
            return []
        return ["-headers", "".join(f"{k}: {v}\r\n" for k, v in self.headers.items())]

    def _build_cmd(self, position: float) -> list[str]:
        cmd = [self.ffplay, "-hide_banner", "-autoexit", "-stats", "-loglevel", "info"]
        if self.fullscreen:
            cmd.append("-fs")
        if self.title:
            cmd += ["-window_title", self.title]
        cmd += self._header_args()
        if position > 0:
            cmd += ["-ss", f"{position:.1f}"]
        if self.subtitles:
            safe_path = self.subtitles.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")
            cmd += ["-vf", f"subtitles='{safe_path}'"]
        cmd += self.extra_args
        cmd += ["-i", self.src]
        return cmd

    def _spawn(self, position: float):
        cmd = self._build_cmd(position)
        log.info("ffplay CMD: %s", " ".join(cmd)[:500])
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        with self._lock:
            if self._destroyed:
                destroyed = True
            else:
                destroyed = False
                self._process = proc
                self._position = position
                self._paused = False
                self._waiting = False
                self._ticked = False
                self._last_advance = time.monotonic()
                self._error_category = None
                self._error_detail = ""
        if destroyed:
            self._terminate(proc)
            return
        threading.Thread(target=self._read_output, args=(proc,), daemon=True).start()
        self._arm_watchdog()

    def _relaunch(self):
        with self._lock:
            old = self._process
            self._process = None
            position = self._position
        if old is not None:
            self._terminate(old)
        self._spawn(position)

    def _read_output(self, proc: subprocess.Popen):
        """读取 ffplay 输出直到进程退出"""
        if proc.stderr:
            for line in proc.stderr:
                if proc is not self._process:
                    break
                self._handle_line(line.strip())
        proc.wait()

        with self._lock:
            # 重启 / 销毁导致的退出不上报
            if proc is not self._process or self._destroyed:
                return
            self._process = None
            self._paused = True
            reached_end = self._duration > 0 and self._position >= self._duration - END_TOLERANCE
            category, detail = self._error_category, self._error_detail

        if reached_end or category is None:
            self._emit("ended")
        else:
            self._emit("error", category, detail)

    def _handle_line(self, text: str):
        if not text:
            return

        duration = parse_duration(text)
        if duration is not None:
            with self._lock:
                if self._duration <= 0:
                    self._duration = duration

        clock = parse_clock(text)
        if clock is not None:
            self._handle_clock(clock)
            return

        category = classify_line(text)
        if category:
            with self._lock:
                self._error_category = category
                self._error_detail = text[-200:]
            log.warning("[ffplay] %s", text)

    def _handle_clock(self, clock: float):
        now = time.monotonic()
        with self._lock:
            advanced = clock > self._position + 0.01 or not self._ticked
            resumed = advanced and (self._waiting or not self._ticked)
            if advanced:
                self._position = clock
                self._last_advance = now
                self._waiting = False
                self._ticked = True
                # 时钟继续前进说明之前的错误已恢复
                self._error_category = None
            send_time = now - self._last_timeupdate >= TIMEUPDATE_INTERVAL
            if send_time:
                self._last_timeupdate = now
            position, duration = self._position, self._duration

        if resumed:
            self._emit("playing")
        if send_time:
            self._emit("timeupdate", position, duration)

    def _arm_watchdog(self):
        with self._lock:
            if self._destroyed or self._watchdog is not None:
                return
            self._watchdog = self.scheduler.call_later(1.0, self._check_stall)

    def _check_stall(self):
        """播放中时钟长时间不动 → waiting"""
        with self._lock:
            self._watchdog = None
            if self._destroyed or self._process is None:
                return
            stalled = (
                not self._paused and not self._waiting
                and time.monotonic() - self._last_advance >= WAITING_AFTER
            )
            if stalled:
                self._waiting = True
        if stalled:
            log.info("ffplay 缓冲中: %s", self.src)
            self._emit("waiting")
        self._arm_watchdog()

    @staticmethod
    def _signal(proc: subprocess.Popen, resume: bool):
        try:
            p = psutil.Process(proc.pid)
            if resume:
                p.resume()
            else:
                p.suspend()
        except psutil.Error as e:
            log.warning("挂起/恢复 ffplay 失败: %s", e)

    @classmethod
    def _terminate(cls, proc: subprocess.Popen):
        """终止 ffplay 进程"""
        if proc.poll() is not None:
            return
        # 挂起状态的进程收不到 SIGTERM
        cls._signal(proc, resume=True)
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
        log.info("ffplay 进程已终止")
