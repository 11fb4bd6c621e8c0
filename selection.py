"""下一个视频的选择策略

全部为纯函数：输入目录、进度表和当前视频 id，输出要播放的视频。
遍历顺序始终按 createdAt 倒序（最新的在前），同一时间按目录原顺序，
管理后台写入的 order 字段不参与排序。
"""

from progress import ProgressMap
from sources import Video


def sort_catalog(catalog: list[Video]) -> list[Video]:
    """按 createdAt 倒序排序（稳定排序）"""
    return sorted(catalog, key=lambda v: v.created_at, reverse=True)


def is_seen(progress: ProgressMap, video_id: str) -> bool:
    record = progress.get(video_id)
    return bool(record and record.seen)


def index_of(ordered: list[Video], video_id: str | None) -> int:
    if video_id is None:
        return -1
    for i, v in enumerate(ordered):
        if v.id == video_id:
            return i
    return -1


def initial_pick(catalog: list[Video], progress: ProgressMap) -> Video | None:
    """最新的未看视频；全部看过则取最新的一个；目录为空返回 None"""
    ordered = sort_catalog(catalog)
    for v in ordered:
        if not is_seen(progress, v.id):
            return v
    return ordered[0] if ordered else None


def advance_forward(catalog: list[Video], progress: ProgressMap,
                    current_id: str | None) -> Video | None:
    """自然结束 / 手动下一个

    先向后找未看的，再从头找到当前位置为止，全部看过则顺延一个（末尾回到开头）。
    current_id 不在目录中时视为位于列表之前。
    """
    ordered = sort_catalog(catalog)
    if not ordered:
        return None
    current = index_of(ordered, current_id)

    for v in ordered[current + 1:]:
        if not is_seen(progress, v.id):
            return v
    for v in ordered[:max(current, 0)]:
        if not is_seen(progress, v.id):
            return v

    return ordered[(current + 1) % len(ordered)]


def advance_backward(catalog: list[Video], current_id: str | None) -> Video | None:
    """手动上一个：前一个视频，第一个之前回到最后一个"""
    ordered = sort_catalog(catalog)
    if not ordered:
        return None
    current = index_of(ordered, current_id)
    return ordered[current - 1] if current > 0 else ordered[-1]


def skip_on_error(catalog: list[Video], progress: ProgressMap,
                  failed_id: str | None) -> Video | None:
    """与 initial_pick 相同，但排除出错的视频，避免立即重选"""
    return initial_pick([v for v in catalog if v.id != failed_id], progress)
