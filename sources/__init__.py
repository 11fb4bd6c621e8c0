"""视频目录：数据模型与目录来源抽象基类"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

log = logging.getLogger(__name__)

# 缺失 / 无法解析的 createdAt 排在最后
OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class VideoKind(Enum):
    EMBEDDED = "embedded"        # 第三方托管（YouTube）
    PROGRESSIVE = "progressive"  # 直链视频文件（mp4）
    ADAPTIVE = "adaptive"        # 分片流（HLS）


# 管理后台写入的 type 值 → 播放类型
KIND_ALIASES = {
    "youtube": VideoKind.EMBEDDED,
    "embedded": VideoKind.EMBEDDED,
    "mp4": VideoKind.PROGRESSIVE,
    "progressive": VideoKind.PROGRESSIVE,
    "hls": VideoKind.ADAPTIVE,
    "adaptive": VideoKind.ADAPTIVE,
}


@dataclass(frozen=True)
class Video:
    """目录条目（加载后不可变，以 id 作为身份）"""
    id: str
    url: str
    title: str = ""
    kind: VideoKind | None = None      # None 表示未知类型
    type_name: str = ""                # 目录中原始的 type 字段
    subtitle_url: str | None = None
    must_watch: bool = False
    protected: bool = False
    created_at: datetime = OLDEST
    order: int | None = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def label(self) -> str:
        return self.title or self.id

    def to_dict(self) -> dict:
        """序列化为目录 JSON（保留原始条目中的未知字段）"""
        data = dict(self.raw)
        data.update({
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "type": self.type_name or (self.kind.value if self.kind else ""),
        })
        if self.subtitle_url:
            data["subtitles"] = self.subtitle_url
        return data


@dataclass
class Catalog:
    videos: list[Video] = field(default_factory=list)
    settings: dict = field(default_factory=dict)


def parse_created_at(value) -> datetime:
    """ISO-8601 字符串或毫秒时间戳 → 带时区的 datetime"""
    if value is None or value == "":
        return OLDEST
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError):
        log.warning("无法解析 createdAt: %r", value)
        return OLDEST
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def video_from_dict(data: dict) -> Video | None:
    """从目录条目构建 Video，缺少 id 的条目返回 None"""
    video_id = data.get("id")
    if video_id in (None, ""):
        log.warning("目录条目缺少 id，已忽略: %s", data.get("title") or data.get("url"))
        return None

    type_name = str(data.get("type") or data.get("kind") or "")
    order = data.get("order")
    return Video(
        id=str(video_id),
        url=str(data.get("url") or ""),
        title=str(data.get("title") or ""),
        kind=KIND_ALIASES.get(type_name.lower()),
        type_name=type_name,
        subtitle_url=data.get("subtitles") or data.get("subtitleUrl") or None,
        must_watch=bool(data.get("mustWatch", False)),
        protected=bool(data.get("protected", False)),
        created_at=parse_created_at(data.get("createdAt")),
        order=order if isinstance(order, int) else None,
        raw=dict(data),
    )


def parse_catalog(data) -> Catalog:
    """解析目录 JSON：裸数组或 {"videos": [...], "settings": {...}}"""
    settings = {}
    if isinstance(data, dict):
        settings = data.get("settings") or {}
        entries = data.get("videos") or []
    elif isinstance(data, list):
        entries = data
    else:
        log.warning("目录格式无效: %s", type(data).__name__)
        return Catalog()

    videos = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        video = video_from_dict(entry)
        if video:
            videos.append(video)
    return Catalog(videos=videos, settings=settings if isinstance(settings, dict) else {})


class CatalogSource(ABC):
    """视频目录来源抽象基类"""

    @abstractmethod
    def load_catalog(self) -> Catalog:
        """加载目录；网络 / 解析失败时返回空目录，不抛异常"""
        ...

    @abstractmethod
    def save_catalog(self, videos: list[Video]) -> bool:
        """保存目录，返回是否成功"""
        ...
