"""编排器事件

播放器回调、定时器和外部控制（Web 面板等）都转换为事件，
放入编排器队列，由单一线程依次处理。
播放器事件带 generation，用来丢弃已销毁播放器的迟到回调。
"""

from dataclasses import dataclass

from errors import PlaybackError
from sources import Catalog


# ── 播放器事件 ──────────────────────────────────

@dataclass(frozen=True)
class AdapterReady:
    generation: int


@dataclass(frozen=True)
class TimeUpdate:
    generation: int
    current: float
    duration: float


@dataclass(frozen=True)
class Ended:
    generation: int


@dataclass(frozen=True)
class Failed:
    generation: int
    error: PlaybackError


# ── 目录事件 ──────────────────────────────────

@dataclass(frozen=True)
class CatalogLoaded:
    catalog: Catalog


@dataclass(frozen=True)
class RefreshCatalog:
    """立即重新加载目录（定时或手动）"""


# ── 控制命令 ──────────────────────────────────

@dataclass(frozen=True)
class StartPlayback:
    pass


@dataclass(frozen=True)
class TogglePause:
    pass


@dataclass(frozen=True)
class Pause:
    pass


@dataclass(frozen=True)
class Seek:
    seconds: float


@dataclass(frozen=True)
class SeekBy:
    delta: float


@dataclass(frozen=True)
class Fullscreen:
    pass


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class SelectVideo:
    video_id: str


@dataclass(frozen=True)
class Shutdown:
    pass
