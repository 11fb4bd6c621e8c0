"""播放故障分类

所有故障在编排器边界上处理方式相同：标记为已看 + error，跳到下一个视频。
"""


class PlaybackError(Exception):
    """播放故障基类"""

    reason = "playback error"

    def __init__(self, video_id: str = "", detail: str = ""):
        self.video_id = video_id
        self.detail = detail
        super().__init__(f"{self.reason}: {detail}" if detail else self.reason)


class MalformedReference(PlaybackError):
    """视频地址 / 标识无法被对应后端解析"""
    reason = "malformed reference"


class BackendFault(PlaybackError):
    """播放后端报告的原生错误"""
    reason = "backend fault"


class StallTimeout(PlaybackError):
    """直播流缓冲超时未恢复"""
    reason = "stall timeout"


class RetryExhausted(PlaybackError):
    """自适应流重试次数用尽"""
    reason = "retry exhausted"


class UnknownKind(PlaybackError):
    """目录条目引用了无法处理的视频类型"""
    reason = "unknown kind"
