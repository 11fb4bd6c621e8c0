"""观看进度持久化

以视频 id 为键保存 {seen, position, error, updatedAt}，跨进程重启保留。
目录中已删除的视频对应的记录不做清理。
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

log = logging.getLogger(__name__)

PROGRESS_FILE = Path("progress.json")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ProgressRecord:
    seen: bool = False
    position: float = 0.0          # 仅在 seen == False 时有意义
    error: bool | None = None
    updated_at: int = 0            # 毫秒时间戳

    @classmethod
    def watching(cls, position: float) -> "ProgressRecord":
        return cls(seen=False, position=position, updated_at=now_ms())

    @classmethod
    def finished(cls, error: bool = False) -> "ProgressRecord":
        return cls(seen=True, position=0.0, error=True if error else None, updated_at=now_ms())

    @property
    def resume_position(self) -> float:
        """续播位置：已看过的视频从头开始"""
        return 0.0 if self.seen else max(0.0, self.position)

    def to_dict(self) -> dict:
        data = {"seen": self.seen, "position": self.position, "updatedAt": self.updated_at}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressRecord":
        # 旧版播放器写入的是 progress 字段
        position = data.get("position", data.get("progress", 0.0))
        try:
            position = float(position or 0.0)
        except (TypeError, ValueError):
            position = 0.0
        error = data.get("error")
        return cls(
            seen=bool(data.get("seen", False)),
            position=position,
            error=bool(error) if error is not None else None,
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


def parse_timestamp(value) -> int:
    """毫秒时间戳或 ISO-8601 字符串 → 毫秒；无法解析返回 0"""
    if not value:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        log.warning("无法解析 updatedAt: %r", value)
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


ProgressMap = dict[str, ProgressRecord]


class ProgressStore(ABC):
    """进度存储抽象：整表读写，单条记录整体替换"""

    @abstractmethod
    def get(self) -> ProgressMap:
        ...

    @abstractmethod
    def set(self, records: ProgressMap):
        ...

    def update(self, video_id: str, record: ProgressRecord):
        """替换单个视频的记录（最后写入者生效）"""
        records = self.get()
        records[video_id] = record
        self.set(records)


class MemoryProgressStore(ProgressStore):
    def __init__(self, records: ProgressMap | None = None):
        self._records: ProgressMap = dict(records or {})
        self._lock = threading.Lock()
        self.writes = 0

    def get(self) -> ProgressMap:
        with self._lock:
            return dict(self._records)

    def set(self, records: ProgressMap):
        with self._lock:
            self._records = dict(records)
            self.writes += 1


class JsonProgressStore(ProgressStore):
    """进度文件存储（progress.json）"""

    def __init__(self, path: str | Path = PROGRESS_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self) -> ProgressMap:
        with self._lock:
            return self._load()

    def set(self, records: ProgressMap):
        with self._lock:
            self._save(records)

    def update(self, video_id: str, record: ProgressRecord):
        # 读改写在同一把锁内完成
        with self._lock:
            records = self._load()
            records[video_id] = record
            self._save(records)

    def _load(self) -> ProgressMap:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as e:
            # ValueError 包括 JSON 格式错误和编码错误
            log.warning("读取进度失败: %s", e)
            return {}
        if not isinstance(data, dict):
            log.warning("进度文件格式无效，已忽略: %s", self.path)
            return {}
        return {
            str(k): ProgressRecord.from_dict(v)
            for k, v in data.items()
            if isinstance(v, dict)
        }

    def _save(self, records: ProgressMap):
        try:
            data = {k: v.to_dict() for k, v in records.items()}
            self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            log.warning("保存进度失败: %s", e)
