"""播放编排核心

持有当前视频和唯一的播放器实例，把控制命令、播放器事件、定时器
统一转换成事件，在单一线程中依次处理：

    Idle → Loaded → Selecting → Ready → Playing ⇄ Paused → (结束 / 故障) → Selecting

切换视频总是先销毁旧播放器再创建新的；每个播放器绑定一个递增的 generation，
旧播放器迟到的回调会被丢弃。
"""

import logging
import queue
import threading
from datetime import datetime
from enum import Enum

import psutil

import events as ev
from errors import PlaybackError
from players import PlaybackAdapter, create_adapter
from progress import ProgressRecord, ProgressStore
from selection import (
    advance_backward,
    advance_forward,
    index_of,
    initial_pick,
    skip_on_error,
    sort_catalog,
)
from sources import Catalog, CatalogSource, Video
from timers import Scheduler

log = logging.getLogger(__name__)


class State(Enum):
    IDLE = "idle"              # 尚未加载目录
    LOADED = "loaded"          # 有目录，未选中视频
    SELECTING = "selecting"    # 已选中，播放器加载中
    READY = "ready"            # 播放器就绪，等待开始
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackOrchestrator:
    def __init__(self, source: CatalogSource, store: ProgressStore, config: dict | None = None,
                 adapter_factory=create_adapter, scheduler: Scheduler | None = None):
        self.source = source
        self.store = store
        self.config = config or {}
        self.adapter_factory = adapter_factory
        self.scheduler = scheduler or Scheduler()

        catalog_cfg = self.config.get("catalog", {})
        player_cfg = self.config.get("player", {})
        resilience = self.config.get("resilience", {})
        self.refresh_interval = catalog_cfg.get("refresh_interval", 300)
        self.persist_interval = resilience.get("persist_interval", 5)
        self.error_skip_delay = resilience.get("error_skip_delay", 1)
        self.autoplay = player_cfg.get("autoplay", True)

        self._events: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None
        self._refresh_timer = None
        self.fetcher: threading.Thread | None = None

        # 会话状态（由事件线程修改，状态快照加锁读取）
        self.state = State.IDLE
        self.catalog: list[Video] = []
        self.settings: dict = {}
        self.current: Video | None = None
        self.adapter: PlaybackAdapter | None = None
        self.generation = 0
        self.is_playing = False
        self.current_time = 0.0
        self.duration = 0.0
        self._last_persisted = 0.0
        self._autoplay_pending = False
        self._started_by_viewer = False    # 观众至少手动开始过一次

        self.start_time: datetime | None = None
        self.videos_played = 0
        self.videos_skipped = 0

        self._handlers = {
            ev.CatalogLoaded: self._on_catalog_loaded,
            ev.RefreshCatalog: self._on_refresh,
            ev.AdapterReady: self._on_ready,
            ev.TimeUpdate: self._on_time_update,
            ev.Ended: self._on_ended,
            ev.Failed: self._on_failed,
            ev.StartPlayback: self._on_start,
            ev.TogglePause: self._on_toggle,
            ev.Pause: self._on_pause,
            ev.Seek: self._on_seek,
            ev.SeekBy: self._on_seek_by,
            ev.Fullscreen: self._on_fullscreen,
            ev.Next: self._on_next,
            ev.Previous: self._on_previous,
            ev.SelectVideo: self._on_select,
            ev.Shutdown: self._on_shutdown,
        }

    # ── 生命周期 ──────────────────────────────────

    def boot(self):
        """同步加载一次目录，选出首个视频，并启动定时刷新"""
        if self._running:
            return
        self._running = True
        self.start_time = datetime.now()
        self.dispatch(ev.CatalogLoaded(self._fetch_catalog()))
        self._arm_refresh()

    def start(self):
        """启动事件循环（阻塞直到 stop）"""
        self.boot()
        log.info("=" * 50)
        log.info("播放服务已启动，视频总数: %d", len(self.catalog))
        log.info("=" * 50)

        while self._running:
            try:
                event = self._events.get(timeout=0.5)
            except queue.Empty:
                continue
            self.dispatch(event)

        log.info("播放服务已停止")

    def run_in_thread(self):
        """在后台线程中启动事件循环"""
        self._thread = threading.Thread(target=self.start, daemon=True)
        self._thread.start()

    def stop(self):
        """停止事件循环并释放播放器"""
        if self._thread and self._thread.is_alive():
            self.post(ev.Shutdown())
            self._thread.join(timeout=5)
        else:
            self.dispatch(ev.Shutdown())

    @property
    def is_running(self) -> bool:
        return self._running

    # ── 事件入口 ──────────────────────────────────

    def post(self, event):
        """任意线程投递事件"""
        self._events.put(event)

    def drain(self, limit: int = 1000) -> int:
        """在当前线程处理完所有排队事件，返回处理数量"""
        handled = 0
        while handled < limit:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self.dispatch(event)
            handled += 1
        return handled

    def dispatch(self, event):
        """状态机转移：处理单个事件"""
        handler = self._handlers.get(type(event))
        if handler is None:
            log.warning("未知事件: %r", event)
            return
        try:
            handler(event)
        except Exception:
            log.exception("处理事件失败: %r", event)

    # ── 控制命令（供 Web 面板调用） ──────────────────

    def start_playback(self):
        self.post(ev.StartPlayback())

    def toggle(self):
        self.post(ev.TogglePause())

    def pause(self):
        self.post(ev.Pause())

    def seek(self, seconds: float):
        self.post(ev.Seek(seconds))

    def seek_by(self, delta: float):
        self.post(ev.SeekBy(delta))

    def fullscreen(self):
        self.post(ev.Fullscreen())

    def next(self):
        self.post(ev.Next())

    def previous(self):
        self.post(ev.Previous())

    def select(self, video_id: str) -> bool:
        if not any(v.id == video_id for v in self.catalog):
            return False
        self.post(ev.SelectVideo(video_id))
        return True

    def refresh(self):
        self.post(ev.RefreshCatalog())

    # ── 状态快照 ──────────────────────────────────

    @property
    def nothing_to_play(self) -> bool:
        return self.state != State.IDLE and self.current is None

    @property
    def status(self) -> dict:
        """返回当前播放状态"""
        uptime = ""
        if self.start_time:
            delta = datetime.now() - self.start_time
            hours, remainder = divmod(int(delta.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime = f"{hours}h {minutes}m {seconds}s"

        with self._lock:
            current = self.current
            ordered = sort_catalog(self.catalog)
            progress = 0.0
            if self.duration > 0:
                progress = min(self.current_time / self.duration * 100, 100)
            return {
                "running": self._running,
                "state": self.state.value,
                "nothing_to_play": self.state != State.IDLE and current is None,
                "current_video": {
                    "id": current.id,
                    "title": current.label,
                    "type": current.type_name,
                } if current else None,
                "is_playing": self.is_playing,
                "current_time": round(self.current_time, 1),
                "duration": round(self.duration, 1),
                "progress": round(progress, 1),
                "index": index_of(ordered, current.id if current else None) + 1,
                "total": len(ordered),
                "videos_played": self.videos_played,
                "videos_skipped": self.videos_skipped,
                "uptime": uptime,
                "cpu_percent": psutil.cpu_percent(interval=0),
                "memory_percent": psutil.virtual_memory().percent,
            }

    @property
    def playlist(self) -> list[dict]:
        """按播放顺序返回目录及观看状态（供播放列表侧栏使用）"""
        records = self.store.get()
        with self._lock:
            ordered = sort_catalog(self.catalog)
            current_id = self.current.id if self.current else None
        items = []
        for i, v in enumerate(ordered):
            record = records.get(v.id)
            items.append({
                "index": i,
                "id": v.id,
                "title": v.label,
                "type": v.type_name,
                "seen": bool(record and record.seen),
                "error": bool(record and record.error),
                "current": v.id == current_id,
            })
        return items

    # ── 目录 ──────────────────────────────────

    def _fetch_catalog(self) -> Catalog:
        try:
            return self.source.load_catalog()
        except Exception:
            log.exception("加载目录失败")
            return Catalog()

    def _fetch_and_post(self):
        self.post(ev.CatalogLoaded(self._fetch_catalog()))

    def _arm_refresh(self):
        if not self._running or self.refresh_interval <= 0:
            return
        self._refresh_timer = self.scheduler.call_later(self.refresh_interval, self._refresh_tick)

    def _refresh_tick(self):
        if not self._running:
            return
        log.info("定时刷新视频列表...")
        self.post(ev.RefreshCatalog())
        self._arm_refresh()

    def _on_refresh(self, event: ev.RefreshCatalog):
        # 网络请求放到后台线程，结果以 CatalogLoaded 回到队列
        self.fetcher = threading.Thread(target=self._fetch_and_post, daemon=True)
        self.fetcher.start()

    def _on_catalog_loaded(self, event: ev.CatalogLoaded):
        with self._lock:
            self.catalog = list(event.catalog.videos)
            self.settings = dict(event.catalog.settings)
            if self.state == State.IDLE:
                self.state = State.LOADED
        log.info("已加载 %d 个视频", len(self.catalog))

        if self.current is None:
            video = initial_pick(self.catalog, self.store.get())
            if video is None:
                log.warning("无可播放的视频")
                return
            self._select(video, autoplay=self._should_autoplay())
        elif not any(v.id == self.current.id for v in self.catalog):
            # 不打断当前播放，播完后按新目录选择
            log.info("当前视频已从列表移除，播放结束后切换: %s", self.current.label)

    # ── 选择与切换 ──────────────────────────────────

    def _should_autoplay(self) -> bool:
        return self.autoplay and self._started_by_viewer

    def _teardown(self):
        """销毁当前播放器，之后它的回调全部作废"""
        adapter = self.adapter
        self.adapter = None
        self.generation += 1
        if adapter is not None:
            try:
                adapter.dispose()
            except Exception:
                log.exception("释放播放器失败: %s", adapter.video.label)

    def _switch(self, video: Video | None, autoplay: bool):
        if video is None:
            self._teardown()
            with self._lock:
                self.current = None
                self.is_playing = False
                self.current_time = 0.0
                self.duration = 0.0
                self.state = State.LOADED
            log.warning("无可播放的视频")
            return
        self._select(video, autoplay)

    def _select(self, video: Video, autoplay: bool):
        self._teardown()
        generation = self.generation

        record = self.store.get().get(video.id)
        start_at = record.resume_position if record else 0.0

        with self._lock:
            self.current = video
            self.is_playing = False
            self.current_time = 0.0
            self.duration = 0.0
            self.state = State.SELECTING
        self._last_persisted = 0.0
        self._autoplay_pending = autoplay

        if start_at > 0:
            log.info("▶ 选中: %s (从 %.1f 秒续播)", video.label, start_at)
        else:
            log.info("▶ 选中: %s", video.label)

        try:
            adapter = self.adapter_factory(video, start_at, config=self.config, scheduler=self.scheduler)
        except PlaybackError as e:
            e.video_id = e.video_id or video.id
            log.warning("无法播放 %s: %s，%s 秒后跳过", video.label, e, self.error_skip_delay)
            failed = ev.Failed(generation, e)
            self.scheduler.call_later(self.error_skip_delay, lambda: self.post(failed))
            return

        self._bind(adapter, generation)
        self.adapter = adapter
        adapter.load()

    def _bind(self, adapter: PlaybackAdapter, generation: int):
        adapter.on_ready(lambda: self.post(ev.AdapterReady(generation)))
        adapter.on_time_update(lambda cur, dur: self.post(ev.TimeUpdate(generation, cur, dur)))
        adapter.on_ended(lambda: self.post(ev.Ended(generation)))
        adapter.on_error(lambda err: self.post(ev.Failed(generation, err)))

    def _is_current(self, event) -> bool:
        if event.generation != self.generation or self.current is None:
            log.debug("忽略过期播放器事件: %r", event)
            return False
        return True

    # ── 播放器事件 ──────────────────────────────────

    def _on_ready(self, event: ev.AdapterReady):
        if not self._is_current(event) or self.adapter is None:
            return
        with self._lock:
            self.state = State.READY
            self.duration = self.adapter.get_duration()
        log.info("播放器就绪: %s", self.current.label)
        if self._autoplay_pending:
            self._play()

    def _on_time_update(self, event: ev.TimeUpdate):
        if not self._is_current(event):
            return
        with self._lock:
            self.current_time = event.current
            self.duration = event.duration or 0.0

        # 节流：与上次保存的位置相差 persist_interval 秒以上才写入
        if abs(event.current - self._last_persisted) >= self.persist_interval:
            self._last_persisted = event.current
            self.store.update(self.current.id, ProgressRecord.watching(event.current))

    def _on_ended(self, event: ev.Ended):
        if not self._is_current(event):
            return
        video = self.current
        log.info("✓ %s 播放完毕", video.label)
        self.store.update(video.id, ProgressRecord.finished())
        self.videos_played += 1

        nxt = advance_forward(self.catalog, self.store.get(), video.id)
        self._switch(nxt, autoplay=self._should_autoplay())

    def _on_failed(self, event: ev.Failed):
        if not self._is_current(event):
            return
        video = self.current
        log.warning("⏭ 跳过 %s: %s", video.label, event.error)
        self.store.update(video.id, ProgressRecord.finished(error=True))
        self.videos_skipped += 1

        nxt = skip_on_error(self.catalog, self.store.get(), video.id)
        self._switch(nxt, autoplay=self._should_autoplay())

    # ── 控制命令 ──────────────────────────────────

    def _play(self):
        self._autoplay_pending = False
        self._started_by_viewer = True
        self.adapter.play()
        with self._lock:
            self.is_playing = True
            self.state = State.PLAYING

    def _on_start(self, event: ev.StartPlayback):
        if self.current is None:
            return
        if self.adapter is None or self.state == State.SELECTING:
            # 尚未就绪，就绪后自动开始
            self._autoplay_pending = True
            self._started_by_viewer = True
            return
        if self.state in (State.READY, State.PAUSED):
            self._play()

    def _on_toggle(self, event: ev.TogglePause):
        if self.adapter is None or self.state == State.SELECTING:
            return
        # 以播放器实际状态为准（后端可能自己暂停）
        if self.adapter.is_paused():
            self._play()
        else:
            self.adapter.pause()
            with self._lock:
                self.is_playing = False
                self.state = State.PAUSED

    def _on_pause(self, event: ev.Pause):
        if self.adapter is None or self.adapter.is_paused():
            return
        self.adapter.pause()
        with self._lock:
            self.is_playing = False
            self.state = State.PAUSED

    def _on_seek(self, event: ev.Seek):
        if self.adapter is not None:
            self.adapter.seek_to(event.seconds)

    def _on_seek_by(self, event: ev.SeekBy):
        if self.adapter is not None:
            self.adapter.seek_to(self.adapter.get_current_time() + event.delta)

    def _on_fullscreen(self, event: ev.Fullscreen):
        if self.adapter is not None:
            self.adapter.request_fullscreen()

    def _on_next(self, event: ev.Next):
        # 手动切换不标记当前视频为已看
        nxt = advance_forward(self.catalog, self.store.get(), self.current.id if self.current else None)
        self._manual_switch(nxt)

    def _on_previous(self, event: ev.Previous):
        prev = advance_backward(self.catalog, self.current.id if self.current else None)
        self._manual_switch(prev)

    def _on_select(self, event: ev.SelectVideo):
        video = next((v for v in self.catalog if v.id == event.video_id), None)
        if video is None:
            log.warning("视频不存在: %s", event.video_id)
            return
        self._manual_switch(video)

    def _manual_switch(self, video: Video | None):
        if video is None:
            return
        if self.current is not None and video.id == self.current.id:
            return
        log.info("⏯ 切换到: %s", video.label)
        self._select(video, autoplay=self._should_autoplay())

    def _on_shutdown(self, event: ev.Shutdown):
        self._running = False
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None
        self._teardown()
        with self._lock:
            self.is_playing = False
